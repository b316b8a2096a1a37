"""
Scoring engine (stage 3b) - deterministic bucket scores and metric bars
"""
from typing import Iterable, List

from truth_audit.models.domain import BaseScores, Bucket, MetricBar, NormalizedEntry, Severity

SEVERITY_PENALTY = {
    Severity.SEVERE: 15,
    Severity.MODERATE: 10,
    Severity.MINOR: 5,
}

BAR_LABELS = (
    (Bucket.CLAIMS_ACCURACY, 'Claims Accuracy'),
    (Bucket.REAL_WORLD_FIT, 'Real-World Fit'),
    (Bucket.OPERATIONAL_NOISE, 'Operational Noise'),
)

HIGH_THRESHOLD = 85
MODERATE_THRESHOLD = 60


def clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def compute_base_scores(entries: Iterable[NormalizedEntry]) -> BaseScores:
    """
    Every bucket starts at 100 and loses the severity penalty of each entry
    tagged with it. Clamped once at the end.
    """
    totals = {bucket: 100 for bucket in Bucket}
    for entry in entries:
        penalty = SEVERITY_PENALTY[entry.severity]
        for bucket in set(entry.tags):
            totals[bucket] -= penalty

    return BaseScores(
        claims_accuracy=clamp(totals[Bucket.CLAIMS_ACCURACY]),
        real_world_fit=clamp(totals[Bucket.REAL_WORLD_FIT]),
        operational_noise=clamp(totals[Bucket.OPERATIONAL_NOISE]),
    )


def rating_for(percentage: int) -> str:
    if percentage >= HIGH_THRESHOLD:
        return 'High'
    if percentage >= MODERATE_THRESHOLD:
        return 'Moderate'
    return 'Low'


def build_metric_bars(scores: BaseScores) -> List[MetricBar]:
    return [
        MetricBar(label=label, rating=rating_for(scores.get(bucket)), percentage=scores.get(bucket))
        for bucket, label in BAR_LABELS
    ]
