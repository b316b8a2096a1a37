"""
Pydantic models for the audit HTTP API
"""
from pydantic import BaseModel
from typing import Optional, Dict, Any

from truth_audit.models.domain import AuditRun, StageRecord


class StartAuditRequest(BaseModel):
    """Request to audit a subject"""
    subject_id: str
    force_refresh: bool = False


class StageResponse(BaseModel):
    status: str
    completed_at: Optional[str] = None
    ttl_days: int
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    meta: Dict[str, Any] = {}
    version: int = 0

    @classmethod
    def from_record(cls, record: StageRecord) -> "StageResponse":
        return cls(**record.to_dict())


class RunResponse(BaseModel):
    id: str
    subject_id: str
    status: str
    progress: int
    force_from_stage: Optional[int] = None
    attempt_count: int = 0
    error: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    last_heartbeat: Optional[str] = None

    @classmethod
    def from_run(cls, run: AuditRun) -> "RunResponse":
        return cls(**run.to_dict())


class StartAuditResponse(BaseModel):
    """Either a run to poll, or the cached stages when everything is fresh"""
    cached: bool
    created: bool
    run: Optional[RunResponse] = None
    stages: Dict[str, StageResponse] = {}


class AuditStatusResponse(BaseModel):
    run: RunResponse
    stages: Dict[str, StageResponse]
    retry_available: bool = False
