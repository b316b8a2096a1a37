"""
Audit Endpoints

1. POST /audit                                       → start (or reuse) an audit
2. GET  /audit/runs/{run_id}                         → poll run progress + stages
3. GET  /audit/subjects/{subject_id}/stages          → latest stage records
4. POST /audit/subjects/{subject_id}/stages/{n}/retry → re-run from stage n

Services are resolved through get_audit_service so tests can override it.
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Path

from truth_audit.config.settings import get_settings
from truth_audit.models.api import (
    AuditStatusResponse,
    RunResponse,
    StageResponse,
    StartAuditRequest,
    StartAuditResponse,
)
from truth_audit.models.domain import StageStatus
from truth_audit.services.audit_service import (
    AuditService,
    RunNotFoundError,
    StartResult,
    SubjectNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["Audit"])

# Globals (initialized on first request)
audit_service = None


async def get_audit_service() -> AuditService:
    """Build the service over PostgreSQL + Redis once per process"""
    global audit_service

    if audit_service is None:
        from truth_audit.config.database import create_postgres_pool, create_job_queue
        from truth_audit.repositories import AuditRunRepository, ProductRepository, StageRepository

        settings = get_settings()
        db_pool = await create_postgres_pool()
        job_queue = await create_job_queue()
        audit_service = AuditService(
            stage_store=StageRepository(db_pool),
            run_store=AuditRunRepository(db_pool),
            product_store=ProductRepository(db_pool),
            job_queue=job_queue,
            queue_name=settings.audit_queue_name,
        )

    return audit_service


def _stages_response(stages) -> Dict[str, StageResponse]:
    return {key: StageResponse.from_record(record) for key, record in stages.items()}


def _start_response(result: StartResult) -> StartAuditResponse:
    return StartAuditResponse(
        cached=result.cached,
        created=result.created,
        run=RunResponse.from_run(result.run) if result.run else None,
        stages=_stages_response(result.stages),
    )


@router.post("", response_model=StartAuditResponse)
async def start_audit(
    request: StartAuditRequest,
    service: AuditService = Depends(get_audit_service)
):
    try:
        result = await service.start_audit(request.subject_id, force_refresh=request.force_refresh)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Subject {request.subject_id} not found")
    return _start_response(result)


@router.get("/runs/{run_id}", response_model=AuditStatusResponse)
async def get_run_status(run_id: str, service: AuditService = Depends(get_audit_service)):
    try:
        run, stages = await service.get_status(run_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail=f"Audit run {run_id} not found")

    retry_available = run.is_terminal and any(
        record.status in (StageStatus.ERROR, StageStatus.BLOCKED) for record in stages.values()
    )
    return AuditStatusResponse(
        run=RunResponse.from_run(run),
        stages=_stages_response(stages),
        retry_available=retry_available,
    )


@router.get("/subjects/{subject_id}/stages", response_model=Dict[str, StageResponse])
async def get_subject_stages(subject_id: str, service: AuditService = Depends(get_audit_service)):
    try:
        stages = await service.get_stages(subject_id)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Subject {subject_id} not found")
    return _stages_response(stages)


@router.post("/subjects/{subject_id}/stages/{stage}/retry", response_model=StartAuditResponse)
async def retry_stage(
    subject_id: str,
    stage: int = Path(..., ge=1, le=4),
    service: AuditService = Depends(get_audit_service)
):
    try:
        result = await service.request_retry(subject_id, stage)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Subject {subject_id} not found")
    return _start_response(result)
