"""
Truth Index calculator (stage 4)

base  = round(0.45 x claims_accuracy + 0.35 x real_world_fit + 0.20 x operational_noise)
final = clamp(base + delta, 0, 100)

The generator may propose a delta, but it only counts when it passes every
gate: bounded (|delta| <= 3, nonzero, integral), explained (reason of at
least 10 chars) and grounded (the reason quotes a surviving entry).
A rejected proposal is discarded whole; it never partially applies.
"""
import logging
from typing import Any, Iterable, List, Optional, Union

from truth_audit.models.domain import (
    BaseScores,
    LLMAdjustment,
    NormalizedEntry,
    PenaltySummary,
    Severity,
    TruthIndexBreakdown,
)
from truth_audit.models.payloads import ScoreAdjustment
from truth_audit.services.scoring import clamp

logger = logging.getLogger(__name__)

# Integer percentages so the weighted sum is exact
WEIGHTS_PCT = {
    'claims_accuracy': 45,
    'real_world_fit': 35,
    'operational_noise': 20,
}

MAX_ABS_DELTA = 3
MIN_REASON_CHARS = 10
MIN_REFERENCE_CHARS = 5
CLAIM_PREFIX_CHARS = 20
KEY_FRAGMENT_CHARS = 15

PENALTY_WEIGHT = {
    Severity.SEVERE: 3,
    Severity.MODERATE: 2,
    Severity.MINOR: 1,
}


def weighted_base(scores: BaseScores) -> int:
    """Weighted mean of the buckets; an exact .5 tie rounds down."""
    total = (
        WEIGHTS_PCT['claims_accuracy'] * scores.claims_accuracy
        + WEIGHTS_PCT['real_world_fit'] * scores.real_world_fit
        + WEIGHTS_PCT['operational_noise'] * scores.operational_noise
    )
    whole, hundredths = divmod(total, 100)
    return whole + (1 if hundredths > 50 else 0)


def summarize_penalties(entries: Iterable[NormalizedEntry]) -> PenaltySummary:
    summary = PenaltySummary()
    for entry in entries:
        if entry.severity == Severity.SEVERE:
            summary.severe += 1
        elif entry.severity == Severity.MODERATE:
            summary.moderate += 1
        else:
            summary.minor += 1
    summary.total = -(
        PENALTY_WEIGHT[Severity.SEVERE] * summary.severe
        + PENALTY_WEIGHT[Severity.MODERATE] * summary.moderate
        + PENALTY_WEIGHT[Severity.MINOR] * summary.minor
    )
    return summary


def _coerce_delta(delta: Any) -> Optional[int]:
    if isinstance(delta, bool) or not isinstance(delta, (int, float)):
        return None
    if isinstance(delta, float) and not delta.is_integer():
        return None
    delta = int(delta)
    if delta == 0 or abs(delta) > MAX_ABS_DELTA:
        return None
    return delta


def references_entry(reason: str, entries: Iterable[NormalizedEntry]) -> bool:
    """Reason quotes a claim prefix or a key fragment of some entry."""
    reason_lower = reason.lower()
    for entry in entries:
        claim_lower = (entry.claim or '').strip().lower()
        if len(claim_lower) >= MIN_REFERENCE_CHARS and claim_lower[:CLAIM_PREFIX_CHARS] in reason_lower:
            return True
        for fragment in entry.key.split('::'):
            if len(fragment) >= MIN_REFERENCE_CHARS and fragment[:KEY_FRAGMENT_CHARS] in reason_lower:
                return True
    return False


def validate_adjustment(
    suggestion: Union[ScoreAdjustment, dict, None],
    entries: List[NormalizedEntry]
) -> Optional[LLMAdjustment]:
    """
    Returns:
        The accepted adjustment, or None when any gate fails
    """
    if suggestion is None:
        return None
    if isinstance(suggestion, dict):
        suggestion = ScoreAdjustment.model_validate(suggestion)

    delta = _coerce_delta(suggestion.delta)
    if delta is None:
        logger.info(f"🚫 Adjustment rejected: delta {suggestion.delta!r} out of bounds")
        return None

    reason = suggestion.reason.strip()
    if len(reason) < MIN_REASON_CHARS:
        logger.info("🚫 Adjustment rejected: reason too short")
        return None

    if not references_entry(reason, entries):
        logger.info("🚫 Adjustment rejected: reason does not reference any discrepancy")
        return None

    return LLMAdjustment(delta=delta, reason=reason)


def compute_truth_index(
    scores: BaseScores,
    entries: List[NormalizedEntry],
    suggestion: Union[ScoreAdjustment, dict, None] = None
) -> TruthIndexBreakdown:
    base = weighted_base(scores)
    adjustment = validate_adjustment(suggestion, entries)
    final = clamp(base + (adjustment.delta if adjustment else 0))

    rejected = None
    if suggestion is not None and adjustment is None:
        rejected = "adjustment failed validation"

    logger.info(f"🎯 Truth Index: base={base} delta={adjustment.delta if adjustment else 0} final={final}")

    return TruthIndexBreakdown(
        base=base,
        final=final,
        weights={name: pct / 100 for name, pct in WEIGHTS_PCT.items()},
        component_scores=scores,
        penalties=summarize_penalties(entries),
        llm_adjustment=adjustment,
        rejected_adjustment=rejected,
    )
