"""
Audit run domain model

Storage: PostgreSQL (audit.audit_runs table)

Lifecycle: pending → running (claimed) → done | error | incomplete | timeout
Terminal status is written exactly once.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum

from truth_audit.utils.id_generator import generate_id


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    INCOMPLETE = "incomplete"  # stage_4 blocked by the stage_3 gate
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset({
    RunStatus.DONE,
    RunStatus.ERROR,
    RunStatus.INCOMPLETE,
    RunStatus.TIMEOUT,
})

ACTIVE_STATUSES = frozenset({RunStatus.PENDING, RunStatus.RUNNING})


@dataclass
class AuditRun:
    """
    One execution attempt of the four-stage pipeline for a subject.

    force_from_stage: stages >= this index are re-executed even when fresh
    (set by explicit retry requests).
    """
    subject_id: str
    id: str = field(default_factory=lambda: generate_id('audit_run'))
    status: RunStatus = RunStatus.PENDING
    progress: int = 0
    force_from_stage: Optional[int] = None
    attempt_count: int = 0
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_heartbeat: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = RunStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "status": self.status.value,
            "progress": self.progress,
            "force_from_stage": self.force_from_stage,
            "attempt_count": self.attempt_count,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
        }

    @classmethod
    def from_row(cls, row) -> "AuditRun":
        """Create from an asyncpg record (or any mapping with the same columns)."""
        return cls(
            id=row['id'],
            subject_id=row['subject_id'],
            status=RunStatus(row['status']),
            progress=row['progress'] or 0,
            force_from_stage=row['force_from_stage'],
            attempt_count=row['attempt_count'] or 0,
            error=row['error'],
            created_at=row['created_at'],
            started_at=row['started_at'],
            finished_at=row['finished_at'],
            last_heartbeat=row['last_heartbeat'],
        )
