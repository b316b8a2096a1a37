"""
Discrepancy finder (stage 3 generation)

Asks the generator to cross-reference manufacturer claims with community
signal, then runs the repair ladder and the stage 3 validator over the
response. Normalization and scoring happen afterwards in the supervisor.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from truth_audit.models.domain import Product
from truth_audit.services.json_parser import parse_llm_json, build_strict_json_prompt
from truth_audit.services.stage_validators import ValidationResult, validate_stage3

logger = logging.getLogger(__name__)

RAW_TEXT_LIMIT = 4000

DISCREPANCY_SCHEMA = {
    "type": "object",
    "required": ["reality_ledger", "red_flags"],
    "properties": {
        "reality_ledger": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"label": {"type": "string"}, "value": {"type": "string"}},
            },
        },
        "red_flags": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["claim", "reality", "severity"],
                "properties": {
                    "claim": {"type": "string"},
                    "reality": {"type": "string"},
                    "severity": {"type": "string", "enum": ["minor", "moderate", "severe"]},
                    "impact": {"type": "string"},
                },
            },
        },
    },
}

DISCREPANCY_SHAPE = """{
  "reality_ledger": [
    {"label": "Battery Capacity", "value": "2850Wh (tested avg)"},
    {"label": "AC Output", "value": "Confirmed 3000W"}
  ],
  "red_flags": [
    {"claim": "exact claim text", "reality": "what testing/users found",
     "severity": "minor|moderate|severe", "impact": "practical effect on users"}
  ]
}"""


@dataclass
class DiscrepancyReport:
    """Parsed and validated stage 3 generator output."""
    payload: Any = None
    validation: ValidationResult = field(default_factory=lambda: ValidationResult(valid=False))
    timed_out: bool = False
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def reality_ledger(self) -> List[Dict[str, str]]:
        if isinstance(self.payload, dict) and isinstance(self.payload.get('reality_ledger'), list):
            return [
                {'label': str(item.get('label', '')), 'value': str(item.get('value', ''))}
                for item in self.payload['reality_ledger']
                if isinstance(item, dict)
            ]
        return []


def _signal_texts(signal: Dict[str, Any], key: str) -> str:
    items = signal.get(key) or []
    return '; '.join(item['text'] for item in items if isinstance(item, dict) and item.get('text'))


def build_discrepancy_prompt(
    product: Product,
    claims: List[Dict[str, str]],
    signal: Dict[str, Any]
) -> str:
    claim_lines = '\n'.join(f"- {c['label']}: {c['value']}" for c in claims)
    prompt = f"""Cross-reference manufacturer claims with real-world feedback for {product.display_name}.

MANUFACTURER CLAIMS:
{claim_lines}

COMMUNITY FEEDBACK:
Most Praised: {_signal_texts(signal, 'most_praised') or 'none available'}
Issues: {_signal_texts(signal, 'most_reported_issues') or 'none available'}

TASK 1: REALITY LEDGER
For EACH manufacturer claim above, determine the real world value based on feedback.
- If confirmed: use the claimed value (e.g. Confirmed 2000W).
- If different: use the observed value (e.g. Actually ~1800W).
- If unknown: write Not verified.

TASK 2: DISCREPANCIES
Identify ONLY meaningful discrepancies (>3% variance or functional impact).
Do not use double quotes inside string values."""
    return build_strict_json_prompt(prompt, DISCREPANCY_SHAPE)


class DiscrepancyFinder:
    """
    Stage 3 generation step.

    Generator failures are reported on the DiscrepancyReport, never raised.
    """

    def __init__(self, generator, timeout: float = 30.0):
        self.generator = generator
        self.timeout = timeout

    async def find(
        self,
        product: Product,
        claims: List[Dict[str, str]],
        signal: Dict[str, Any]
    ) -> DiscrepancyReport:
        logger.info(f"🔎 Cross-referencing {len(claims)} claims for {product.display_name}")

        result = await self.generator.generate(
            build_discrepancy_prompt(product, claims, signal), DISCREPANCY_SCHEMA, self.timeout
        )
        meta = result.meta()

        if result.timed_out:
            logger.warning(f"⏱️ Stage 3 generation timed out for {product.id}")
            return DiscrepancyReport(timed_out=True, error="timeout", meta=meta)
        if not result.ok:
            return DiscrepancyReport(error=f"generator_error: {result.error}", meta=meta)

        outcome = parse_llm_json(result.text)
        meta["parse_status"] = outcome.parse_status
        if outcome.strategy:
            meta["parse_strategy"] = outcome.strategy
        if outcome.partial or not outcome.ok:
            meta["raw_text"] = result.text[:RAW_TEXT_LIMIT]
        if not outcome.ok:
            meta["parse_error"] = outcome.error
            return DiscrepancyReport(
                validation=ValidationResult(valid=False, error="parse_error"),
                error="parse_error",
                meta=meta,
            )

        validation = validate_stage3(outcome.data)
        meta["item_count"] = validation.item_count
        if not validation.valid:
            logger.warning(f"⚠️ Stage 3 payload invalid: {validation.error}")
            return DiscrepancyReport(
                payload=outcome.data,
                validation=validation,
                error=validation.error,
                meta=meta,
            )

        logger.info(f"✅ Stage 3: {validation.item_count} raw discrepancies "
                    f"({outcome.parse_status})")
        return DiscrepancyReport(payload=outcome.data, validation=validation, meta=meta)
