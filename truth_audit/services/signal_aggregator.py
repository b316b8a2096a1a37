"""
Signal aggregator (stage 2) - community praise and reported issues

Always degrades: timeout, generator failure, unparseable output or missing
arrays all produce empty lists with degraded=True. Nothing here raises into
the pipeline.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from pydantic import ValidationError

from truth_audit.models.domain import Product
from truth_audit.models.payloads import SignalItem
from truth_audit.services.json_parser import parse_llm_json, build_strict_json_prompt

logger = logging.getLogger(__name__)

MAX_CONTEXT_CLAIMS = 10
MAX_LINE_CHARS = 160
MAX_CONTEXT_CHARS = 2000

SIGNAL_SCHEMA = {
    "type": "object",
    "required": ["most_praised", "most_reported_issues"],
    "properties": {
        "most_praised": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["text"],
                "properties": {"text": {"type": "string"}, "sources": {"type": "integer"}},
            },
        },
        "most_reported_issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["text"],
                "properties": {"text": {"type": "string"}, "sources": {"type": "integer"}},
            },
        },
    },
}

SIGNAL_SHAPE = """{
  "most_praised": [{"text": "Battery life exceeds rated capacity in real-world testing", "sources": 8}],
  "most_reported_issues": [{"text": "Fan noise above 50% load (measured ~45dB)", "sources": 5}]
}"""


@dataclass
class SignalResult:
    most_praised: List[SignalItem] = field(default_factory=list)
    most_reported_issues: List[SignalItem] = field(default_factory=list)
    degraded: bool = False
    reason: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Stage 2 wire shape."""
        return {
            "most_praised": [item.to_dict() for item in self.most_praised],
            "most_reported_issues": [item.to_dict() for item in self.most_reported_issues],
            "source_summary": {
                "praised_count": len(self.most_praised),
                "issue_count": len(self.most_reported_issues),
                "degraded": self.degraded,
            },
        }


def build_context(product: Product, claims: List[Dict[str, str]]) -> str:
    """Bounded claim bundle: first claims only, long lines clipped."""
    lines = []
    used = 0
    for claim in claims[:MAX_CONTEXT_CLAIMS]:
        line = f"- {claim['label']}: {claim['value']}"[:MAX_LINE_CHARS]
        if used + len(line) + 1 > MAX_CONTEXT_CHARS:
            break
        lines.append(line)
        used += len(line) + 1
    return '\n'.join(lines)


def build_signal_prompt(product: Product, claims: List[Dict[str, str]]) -> str:
    prompt = f"""You are analyzing community feedback for: {product.display_name}

CONTEXT (Manufacturer Claims):
{build_context(product, claims)}

Based on real-world user discussions and your knowledge of this product category, identify:

1. MOST CONSISTENT PRAISE (5-7 items):
   - What users consistently appreciate
   - Features that meet or exceed expectations
   - Include estimated number of sources mentioning each

2. MOST REPORTED ISSUES (3-5 items):
   - Common complaints or limitations
   - Features that underperform claims
   - Include estimated number of sources mentioning each

Focus on objective, verifiable observations. Avoid marketing language."""
    return build_strict_json_prompt(prompt, SIGNAL_SHAPE)


def coerce_signal_items(raw: Any) -> List[SignalItem]:
    if not isinstance(raw, list):
        return []
    items = []
    for entry in raw:
        try:
            items.append(SignalItem.model_validate(entry))
        except ValidationError:
            continue
    return items


class SignalAggregator:
    """
    Stage 2 executor.

    generator: any object exposing `async generate(prompt, schema, timeout)`
    """

    def __init__(self, generator, timeout: float = 15.0):
        self.generator = generator
        self.timeout = timeout

    def _degraded(self, reason: str, meta: Dict[str, Any]) -> SignalResult:
        logger.warning(f"⚠️ Stage 2 degraded to empty signal: {reason}")
        return SignalResult(degraded=True, reason=reason, meta={**meta, "reason": reason})

    async def aggregate(self, product: Product, claims: List[Dict[str, str]]) -> SignalResult:
        logger.info(f"📡 Gathering community signal for {product.display_name}")

        try:
            result = await self.generator.generate(
                build_signal_prompt(product, claims), SIGNAL_SCHEMA, self.timeout
            )
        except Exception as e:
            logger.error(f"❌ Stage 2 generator raised: {e}", exc_info=True)
            return self._degraded(f"generator_error: {e}", {})

        meta = result.meta()
        if result.timed_out:
            return self._degraded("timeout", meta)
        if not result.ok:
            return self._degraded(f"generator_error: {result.error}", meta)

        outcome = parse_llm_json(result.text)
        meta["parse_status"] = outcome.parse_status
        if not outcome.ok:
            meta["parse_error"] = outcome.error
            return self._degraded("parse_error", meta)

        data = outcome.data
        if not isinstance(data, dict) or not isinstance(data.get("most_praised"), list) \
                or not isinstance(data.get("most_reported_issues"), list):
            return self._degraded("missing_arrays", meta)

        signal = SignalResult(
            most_praised=coerce_signal_items(data["most_praised"]),
            most_reported_issues=coerce_signal_items(data["most_reported_issues"]),
            meta=meta,
        )
        signal.meta["item_count"] = len(signal.most_praised) + len(signal.most_reported_issues)

        logger.info(f"✅ Stage 2: {len(signal.most_praised)} praise items, "
                    f"{len(signal.most_reported_issues)} issues")
        return signal
