"""
Verdict synthesizer (stage 4 narrative)

The score itself is deterministic (see truth_index). The generator only
interprets it: strengths, limitations, fit guidance and an optional small
adjustment proposal that the truth index gates may reject.

Unlike stage 2 this step does not degrade: malformed or missing output
raises VerdictError so stage 4 is recorded as failed rather than faked.
"""
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from truth_audit.models.domain import BaseScores, MetricBar, NormalizedEntry, Product, TruthIndexBreakdown
from truth_audit.models.payloads import VerdictPayload
from truth_audit.services.copy_sanitizer import sanitize_copy, sanitize_copy_list
from truth_audit.services.json_parser import parse_llm_json, build_strict_json_prompt
from truth_audit.services.truth_index import weighted_base

logger = logging.getLogger(__name__)

DATA_CONFIDENCE = (
    "Data confidence: High · Sources: manufacturer docs, community feedback · "
    "Refresh cadence: ~14 days"
)

VERDICT_SCHEMA = {
    "type": "object",
    "required": ["score_interpretation", "strengths", "limitations"],
    "properties": {
        "score_interpretation": {"type": "string"},
        "strengths": {"type": "array", "items": {"type": "string"}},
        "limitations": {"type": "array", "items": {"type": "string"}},
        "practical_impact": {"type": "array", "items": {"type": "string"}},
        "good_fit": {"type": "array", "items": {"type": "string"}},
        "consider_alternatives": {"type": "array", "items": {"type": "string"}},
        "score_adjustment": {
            "type": "object",
            "properties": {"delta": {"type": "integer"}, "reason": {"type": "string"}},
        },
    },
}

VERDICT_SHAPE = """{
  "score_interpretation": "One sentence explaining the score based on verified discrepancies.",
  "strengths": ["Specific strength from community data"],
  "limitations": ["Verified: specific discrepancy"],
  "practical_impact": ["Specific consequence with numbers"],
  "good_fit": ["Specific user type"],
  "consider_alternatives": ["If you need [specific unmet need]..."],
  "score_adjustment": {"delta": 0, "reason": "optional, must quote a discrepancy claim"}
}"""


class VerdictError(Exception):
    """Stage 4 generator output unusable."""

    def __init__(self, message: str, timed_out: bool = False):
        self.timed_out = timed_out
        super().__init__(message)


def build_verdict_prompt(
    product: Product,
    claims: List[Dict[str, str]],
    signal: Dict[str, Any],
    entries: List[NormalizedEntry],
    scores: BaseScores
) -> str:
    base = weighted_base(scores)
    claim_lines = '\n'.join(f"- {c['label']}: {c['value']}" for c in claims[:8])
    praised = '\n'.join(
        f"- {item['text']}" for item in signal.get('most_praised', [])
    ) or '- No community praise data available'
    issues = '\n'.join(
        f"- {item['text']}" for item in signal.get('most_reported_issues', [])
    ) or '- No community issue data available'
    flags = '\n'.join(
        f"- [{e.severity.value}] CLAIM: {e.claim} → REALITY: {e.reality} (Impact: {e.impact or 'n/a'})"
        for e in entries
    )

    prompt = f"""Synthesize a verdict for the following product audit.

PRODUCT: {product.display_name}

=== PRE-COMPUTED SCORES (deterministic, do not override) ===
Truth Index Base Score: {base}
Claims Accuracy: {scores.claims_accuracy}
Real-World Fit: {scores.real_world_fit}
Operational Noise: {scores.operational_noise}

=== CONTEXT ===
1. MANUFACTURER CLAIMS:
{claim_lines}

2. COMMUNITY SIGNALS:
Praised:
{praised}
Issues:
{issues}

3. VERIFIED DISCREPANCIES ({len(entries)} unique issues):
{flags}

=== INSTRUCTIONS ===
Interpret and summarize the data above. Do NOT invent new issues.
- limitations: reference ONLY items from section 3, prefixed with "Verified:".
- score_adjustment: optional, delta between -3 and 3, and the reason must quote
  the claim text of a discrepancy from section 3.
- Write for a consumer audience in plain language. No jargon."""
    return build_strict_json_prompt(prompt, VERDICT_SHAPE)


def sanitize_verdict(payload: VerdictPayload) -> VerdictPayload:
    return payload.model_copy(update={
        'score_interpretation': sanitize_copy(payload.score_interpretation),
        'strengths': sanitize_copy_list(payload.strengths),
        'limitations': sanitize_copy_list(payload.limitations),
        'practical_impact': sanitize_copy_list(payload.practical_impact),
        'good_fit': sanitize_copy_list(payload.good_fit),
        'consider_alternatives': sanitize_copy_list(payload.consider_alternatives),
    })


def build_verdict_data(
    verdict: VerdictPayload,
    breakdown: TruthIndexBreakdown,
    metric_bars: List[MetricBar]
) -> Dict[str, Any]:
    """Stage 4 wire shape."""
    return {
        "truth_index": breakdown.final,
        "metric_bars": [bar.to_dict() for bar in metric_bars],
        "score_interpretation": verdict.score_interpretation,
        "strengths": verdict.strengths,
        "limitations": verdict.limitations,
        "practical_impact": verdict.practical_impact,
        "good_fit": verdict.good_fit,
        "consider_alternatives": verdict.consider_alternatives,
        "data_confidence": DATA_CONFIDENCE,
        "truth_breakdown": breakdown.to_dict(),
    }


class VerdictSynthesizer:

    def __init__(self, generator, timeout: float = 20.0):
        self.generator = generator
        self.timeout = timeout

    async def synthesize(
        self,
        product: Product,
        claims: List[Dict[str, str]],
        signal: Dict[str, Any],
        entries: List[NormalizedEntry],
        scores: BaseScores
    ) -> VerdictPayload:
        """
        Raises:
            VerdictError: timeout, generator failure, unparseable or invalid output
        """
        logger.info(f"⚖️ Synthesizing verdict for {product.display_name}")

        result = await self.generator.generate(
            build_verdict_prompt(product, claims, signal, entries, scores),
            VERDICT_SCHEMA,
            self.timeout
        )
        if result.timed_out:
            raise VerdictError("timeout", timed_out=True)
        if not result.ok:
            raise VerdictError(f"generator_error: {result.error}")

        outcome = parse_llm_json(result.text)
        if not outcome.ok or not isinstance(outcome.data, dict):
            raise VerdictError(f"STAGE_JSON_PARSE_FAILED: {outcome.error or 'not an object'}")

        try:
            verdict = VerdictPayload.model_validate(outcome.data)
        except ValidationError as e:
            raise VerdictError(f"invalid verdict payload: {e.error_count()} errors") from e

        return sanitize_verdict(verdict)
