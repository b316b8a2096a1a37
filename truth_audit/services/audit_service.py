"""
Audit service - entry points used by the HTTP layer

start_audit:   returns cached stages when everything is fresh, otherwise
               creates (or reuses) the subject's active run and enqueues it
get_status:    run progress plus the subject's stage map
request_retry: new run that re-executes from a given stage onward
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from truth_audit.models.domain import AuditRun, StageRecord, STAGE_KEYS, stage_key
from truth_audit.services.job_queue import AUDIT_QUEUE
from truth_audit.utils.clock import utc_now

logger = logging.getLogger(__name__)


class SubjectNotFoundError(Exception):
    pass


class RunNotFoundError(Exception):
    pass


@dataclass
class StartResult:
    run: Optional[AuditRun] = None
    created: bool = False
    cached: bool = False
    stages: Dict[str, StageRecord] = field(default_factory=dict)


class AuditService:

    def __init__(
        self,
        stage_store,
        run_store,
        product_store,
        job_queue=None,
        queue_name: str = AUDIT_QUEUE,
        clock: Callable[[], datetime] = utc_now
    ):
        self.stage_store = stage_store
        self.run_store = run_store
        self.product_store = product_store
        self.job_queue = job_queue
        self.queue_name = queue_name
        self.clock = clock

    async def _require_subject(self, subject_id: str):
        product = await self.product_store.get_by_id(subject_id)
        if product is None:
            raise SubjectNotFoundError(subject_id)
        return product

    async def _create_run(self, subject_id: str, force_from_stage: Optional[int]) -> StartResult:
        run, created = await self.run_store.create(
            AuditRun(subject_id=subject_id, force_from_stage=force_from_stage)
        )
        if created and self.job_queue is not None:
            await self.job_queue.enqueue(self.queue_name, {'run_id': run.id})
            logger.info(f"📤 Enqueued audit run {run.id}")
        return StartResult(run=run, created=created)

    def all_fresh(self, stages: Dict[str, StageRecord]) -> bool:
        now = self.clock()
        return all(key in stages and stages[key].is_fresh(now) for key in STAGE_KEYS)

    async def start_audit(self, subject_id: str, force_refresh: bool = False) -> StartResult:
        """
        Raises:
            SubjectNotFoundError: Unknown subject
        """
        await self._require_subject(subject_id)

        if not force_refresh:
            stages = await self.stage_store.get_stages(subject_id)
            if self.all_fresh(stages):
                logger.info(f"♻️ All stages fresh for {subject_id}, returning cached audit")
                return StartResult(cached=True, stages=stages)

        return await self._create_run(subject_id, 1 if force_refresh else None)

    async def request_retry(self, subject_id: str, stage: int) -> StartResult:
        """
        Re-execute `stage` and everything after it; fresh upstream stages are reused.

        Raises:
            ValueError: stage outside 1..4
            SubjectNotFoundError: Unknown subject
        """
        stage_key(stage)
        await self._require_subject(subject_id)
        logger.info(f"🔁 Retry requested for {subject_id} from stage {stage}")
        result = await self._create_run(subject_id, stage)
        if not result.created and result.run.force_from_stage != stage:
            logger.warning(f"⚠️ Retry from stage {stage} for {subject_id} not applied: "
                           f"active run {result.run.id} (force_from={result.run.force_from_stage}) returned instead")
        return result

    async def get_status(self, run_id: str) -> Tuple[AuditRun, Dict[str, StageRecord]]:
        """
        Raises:
            RunNotFoundError: Unknown run
        """
        run = await self.run_store.get_by_id(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        stages = await self.stage_store.get_stages(run.subject_id)
        return run, stages

    async def get_stages(self, subject_id: str) -> Dict[str, StageRecord]:
        await self._require_subject(subject_id)
        return await self.stage_store.get_stages(subject_id)
