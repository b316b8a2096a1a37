"""
Stage record domain model

Storage: PostgreSQL (audit.stage_records, one row per subject + stage key)

Each stage row carries its own version counter so concurrent writers
use compare-and-swap instead of rewriting a per-subject blob.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from enum import Enum


class StageStatus(Enum):
    """Lifecycle status of a single stage."""
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    BLOCKED = "blocked"  # stage_4 only, when the stage_3 gate fails


STAGE_KEYS = ('stage_1', 'stage_2', 'stage_3', 'stage_4')


def stage_key(index: int) -> str:
    """1 → 'stage_1'. Raises ValueError outside 1..4."""
    if index < 1 or index > len(STAGE_KEYS):
        raise ValueError(f"Invalid stage index: {index}. Must be 1-{len(STAGE_KEYS)}")
    return STAGE_KEYS[index - 1]


def stage_index(key: str) -> int:
    """'stage_3' → 3"""
    return STAGE_KEYS.index(key) + 1


@dataclass
class StageRecord:
    """
    Result of one stage for one subject.

    Invariant: data is present iff status is DONE.
    version is 0 for a record that has never been persisted.
    """
    status: StageStatus = StageStatus.PENDING
    ttl_days: int = 30
    completed_at: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    version: int = 0

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = StageStatus(self.status)
        if self.status == StageStatus.DONE and self.data is None:
            raise ValueError("done stage record requires data")
        if self.status != StageStatus.DONE and self.data is not None:
            raise ValueError(f"{self.status.value} stage record cannot carry data")

    @classmethod
    def done(cls, data: Dict[str, Any], ttl_days: int, completed_at: datetime,
             meta: Optional[Dict[str, Any]] = None) -> "StageRecord":
        return cls(
            status=StageStatus.DONE,
            ttl_days=ttl_days,
            completed_at=completed_at,
            data=data,
            meta=meta or {},
        )

    @classmethod
    def failed(cls, error: str, ttl_days: int, completed_at: datetime,
               meta: Optional[Dict[str, Any]] = None) -> "StageRecord":
        return cls(
            status=StageStatus.ERROR,
            ttl_days=ttl_days,
            completed_at=completed_at,
            error=error,
            meta=meta or {},
        )

    @classmethod
    def blocked(cls, reason: str, ttl_days: int, completed_at: datetime) -> "StageRecord":
        return cls(
            status=StageStatus.BLOCKED,
            ttl_days=ttl_days,
            completed_at=completed_at,
            error=reason,
            meta={'reason': reason},
        )

    @classmethod
    def running(cls, ttl_days: int) -> "StageRecord":
        return cls(status=StageStatus.RUNNING, ttl_days=ttl_days)

    def is_fresh(self, now: datetime) -> bool:
        """Reusable iff done and younger than its TTL."""
        if self.status != StageStatus.DONE or self.completed_at is None:
            return False
        return now - self.completed_at < timedelta(days=self.ttl_days)

    def with_version(self, version: int) -> "StageRecord":
        return StageRecord(
            status=self.status,
            ttl_days=self.ttl_days,
            completed_at=self.completed_at,
            data=self.data,
            error=self.error,
            meta=dict(self.meta),
            version=version,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "status": self.status.value,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "ttl_days": self.ttl_days,
            "data": self.data,
            "error": self.error,
            "meta": self.meta,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageRecord":
        """Create from dictionary."""
        completed_at = data.get("completed_at")
        if isinstance(completed_at, str):
            completed_at = datetime.fromisoformat(completed_at)
        return cls(
            status=StageStatus(data.get("status", "pending")),
            ttl_days=data.get("ttl_days", 30),
            completed_at=completed_at,
            data=data.get("data"),
            error=data.get("error"),
            meta=data.get("meta") or {},
            version=data.get("version", 0),
        )
