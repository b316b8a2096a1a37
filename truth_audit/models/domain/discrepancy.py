"""
Discrepancy and scoring domain models

Produced by stage_3 (normalization + base scores) and stage_4 (truth index).
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum


class Severity(Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class Bucket(Enum):
    """Scoring buckets a discrepancy can be tagged with."""
    CLAIMS_ACCURACY = "claims_accuracy"
    REAL_WORLD_FIT = "real_world_fit"
    OPERATIONAL_NOISE = "operational_noise"


@dataclass
class NormalizedEntry:
    """
    One deduplicated discrepancy.

    key is the fingerprint of normalized claim + reality (or claim + impact).
    tags is never empty.
    """
    key: str
    claim: str
    reality: str
    impact: str
    severity: Severity
    tags: List[Bucket]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "claim": self.claim,
            "reality": self.reality,
            "impact": self.impact,
            "severity": self.severity.value,
            "tags": [t.value for t in self.tags],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedEntry":
        return cls(
            key=data["key"],
            claim=data.get("claim", ""),
            reality=data.get("reality", ""),
            impact=data.get("impact", ""),
            severity=Severity(data.get("severity", "minor")),
            tags=[Bucket(t) for t in data.get("tags", [])] or [Bucket.CLAIMS_ACCURACY],
        )


@dataclass
class NormalizedStage3:
    entries: List[NormalizedEntry] = field(default_factory=list)
    total_count: int = 0   # candidates before dedup
    unique_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "totalCount": self.total_count,
            "uniqueCount": self.unique_count,
        }


@dataclass
class BaseScores:
    claims_accuracy: int = 100
    real_world_fit: int = 100
    operational_noise: int = 100

    def get(self, bucket: Bucket) -> int:
        return getattr(self, bucket.value)

    def to_dict(self) -> Dict[str, int]:
        return {
            "claims_accuracy": self.claims_accuracy,
            "real_world_fit": self.real_world_fit,
            "operational_noise": self.operational_noise,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaseScores":
        return cls(
            claims_accuracy=int(data.get("claims_accuracy", 100)),
            real_world_fit=int(data.get("real_world_fit", 100)),
            operational_noise=int(data.get("operational_noise", 100)),
        )


@dataclass
class MetricBar:
    label: str
    rating: str  # High | Moderate | Low
    percentage: int

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "rating": self.rating, "percentage": self.percentage}


@dataclass
class LLMAdjustment:
    delta: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"delta": self.delta, "reason": self.reason}


@dataclass
class PenaltySummary:
    """Informational only, never feeds the final score."""
    severe: int = 0
    moderate: int = 0
    minor: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "severe": self.severe,
            "moderate": self.moderate,
            "minor": self.minor,
            "total": self.total,
        }


@dataclass
class TruthIndexBreakdown:
    """
    Auditable derivation of the final score.

    final == clamp(base + (llm_adjustment.delta if llm_adjustment else 0), 0, 100)
    """
    base: int
    final: int
    weights: Dict[str, float]
    component_scores: BaseScores
    penalties: PenaltySummary
    llm_adjustment: Optional[LLMAdjustment] = None
    rejected_adjustment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base,
            "final": self.final,
            "weights": dict(self.weights),
            "component_scores": self.component_scores.to_dict(),
            "penalties": self.penalties.to_dict(),
            "llm_adjustment": self.llm_adjustment.to_dict() if self.llm_adjustment else None,
            "rejected_adjustment": self.rejected_adjustment,
        }
