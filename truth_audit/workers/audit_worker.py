"""
AuditSupervisor - progressive four-stage audit pipeline

Pipeline stages:
1. Claim extraction   - deterministic, cannot fail
2. Signal aggregation - generator call, degrades to empty arrays
3. Discrepancies      - generator call → repair/parse → validate → normalize → score
4. Truth Index        - verdict narrative + deterministic score with gated adjustment

Each stage is persisted as its own row (compare-and-swap on version) before
the next one starts. Fresh rows are reused instead of re-executed, until one
stage re-executes; every later stage then re-executes too. If stage 3 is
unusable, stage 4 is written as blocked and the run ends incomplete with
stages 1-3 preserved, so stage 4 alone can be retried.

Run ownership: a worker only executes a run it claimed (pending → running).
The lease is the claimed attempt_count. Every progress step is also a
heartbeat; a failed heartbeat means the lease was lost and the worker stops
without writing anything further.

Output: run.status in {done, error, incomplete, timeout}
"""
import asyncio
import logging
import signal
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from truth_audit.config.settings import Settings, get_settings
from truth_audit.models.domain import (
    AuditRun,
    BaseScores,
    NormalizedEntry,
    Product,
    RunStatus,
    StageRecord,
    stage_index,
)
from truth_audit.repositories.stage_repository import StageVersionConflict
from truth_audit.services.claim_extractor import extract_claim_profile
from truth_audit.services.discrepancy_finder import DiscrepancyFinder
from truth_audit.services.discrepancy_normalizer import DEFAULT_POLICY, NormalizationPolicy, normalize_stage3
from truth_audit.services.scoring import build_metric_bars, compute_base_scores
from truth_audit.services.signal_aggregator import SignalAggregator
from truth_audit.services.stage_validators import validate_stage4
from truth_audit.services.truth_index import compute_truth_index
from truth_audit.services.verdict_synthesizer import VerdictError, VerdictSynthesizer, build_verdict_data
from truth_audit.utils.clock import utc_now

logger = logging.getLogger(__name__)

# Progress milestones (monotonic)
PROGRESS_CLAIMED = 10
PROGRESS_STAGE1_DONE = 25
PROGRESS_STAGE2_STARTED = 35
PROGRESS_STAGE2_DONE = 55
PROGRESS_STAGE3_NORMALIZED = 70
PROGRESS_SCORES_COMPUTED = 85
PROGRESS_VERDICT_GENERATED = 92
PROGRESS_DONE = 100


class LeaseLostError(Exception):
    """Heartbeat rejected: the run is no longer running under this worker."""


@dataclass
class RunContext:
    run: AuditRun
    stages: Dict[str, StageRecord] = field(default_factory=dict)
    current_stage: Optional[str] = None
    progress: int = 0
    reexecuted: bool = False


class AuditSupervisor:
    """
    Executes audit runs against injected stores and generator.

    stage_store:   get_stages / get_stage / upsert_stage
    run_store:     get_by_id / claim / heartbeat / finish
    product_store: get_by_id
    generator:     async generate(prompt, schema, timeout) -> GenerationResult
    """

    def __init__(
        self,
        stage_store,
        run_store,
        product_store,
        generator,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        policy: NormalizationPolicy = DEFAULT_POLICY
    ):
        settings = settings or get_settings()
        self.stage_store = stage_store
        self.run_store = run_store
        self.product_store = product_store
        self.clock = clock
        self.policy = policy
        self.ttls = settings.stage_ttls()

        self.signal_aggregator = SignalAggregator(generator, settings.stage2_timeout_seconds)
        self.discrepancy_finder = DiscrepancyFinder(generator, settings.stage3_timeout_seconds)
        self.verdict_synthesizer = VerdictSynthesizer(generator, settings.stage4_timeout_seconds)

    # =========================================================================
    # RUN LIFECYCLE
    # =========================================================================

    async def process_run(self, run_id: str) -> Optional[RunStatus]:
        """
        Claim and execute a run by id.

        Returns:
            Terminal status written (or already present), None if the run was
            not ours to execute (missing, leased elsewhere, lease lost)
        """
        run = await self.run_store.get_by_id(run_id)
        if run is None:
            logger.error(f"❌ Audit run {run_id} not found")
            return None
        if run.is_terminal:
            logger.info(f"⏭️ Audit run {run_id} already {run.status.value}, skipping")
            return run.status
        if run.status == RunStatus.RUNNING:
            logger.info(f"⏭️ Audit run {run_id} is leased by another worker, skipping")
            return None

        claimed = await self.run_store.claim(run_id)
        if claimed is None:
            logger.info(f"⏭️ Lost claim race for audit run {run_id}")
            return None

        return await self.execute(claimed)

    async def execute(self, run: AuditRun) -> Optional[RunStatus]:
        """Execute a claimed (running) run to a terminal status."""
        ctx = RunContext(run=run)
        logger.info(f"🚀 Audit run {run.id} for {run.subject_id} "
                    f"(attempt {run.attempt_count}, force_from={run.force_from_stage})")

        try:
            await self._progress(ctx, PROGRESS_CLAIMED)
            ctx.stages = await self.stage_store.get_stages(run.subject_id)

            product = await self.product_store.get_by_id(run.subject_id)
            if product is None:
                logger.error(f"❌ Subject {run.subject_id} not found")
                await self._finish(ctx, RunStatus.ERROR, "SUBJECT_NOT_FOUND")
                return RunStatus.ERROR

            status, error = await self._run_stages(ctx, product)

        except LeaseLostError:
            logger.warning(f"⚠️ Lease lost on audit run {run.id}, abandoning")
            return None
        except asyncio.CancelledError:
            logger.warning(f"⚠️ Audit run {run.id} cancelled during {ctx.current_stage}")
            await self._fail_current_stage(ctx, "cancelled")
            await self._finish(ctx, RunStatus.ERROR, "cancelled")
            raise
        except Exception as e:
            logger.error(f"❌ Audit run {run.id} failed during {ctx.current_stage}: {e}", exc_info=True)
            await self._fail_current_stage(ctx, str(e))
            await self._finish(ctx, RunStatus.ERROR, f"{ctx.current_stage or 'setup'}: {e}")
            return RunStatus.ERROR

        await self._finish(ctx, status, error)
        return status

    async def _run_stages(self, ctx: RunContext, product: Product) -> Tuple[RunStatus, Optional[str]]:
        # =========================================================
        # STAGE 1: Claim extraction
        # =========================================================
        ctx.current_stage = 'stage_1'
        record = self._reusable(ctx, 'stage_1')
        if record is None:
            await self._mark_running(ctx, 'stage_1')
            claims = extract_claim_profile(product)
            record = await self._write_done(ctx, 'stage_1', {'claim_profile': claims},
                                            {'claim_count': len(claims)})
        claims = record.data['claim_profile']
        await self._progress(ctx, PROGRESS_STAGE1_DONE)

        # =========================================================
        # STAGE 2: Signal aggregation (never fails)
        # =========================================================
        ctx.current_stage = 'stage_2'
        await self._progress(ctx, PROGRESS_STAGE2_STARTED)
        record = self._reusable(ctx, 'stage_2')
        if record is None:
            await self._mark_running(ctx, 'stage_2')
            result = await self.signal_aggregator.aggregate(product, claims)
            record = await self._write_done(ctx, 'stage_2', result.to_dict(), result.meta)
        signal_data = record.data
        await self._progress(ctx, PROGRESS_STAGE2_DONE)

        # =========================================================
        # STAGE 3: Discrepancies → normalize → score
        # =========================================================
        ctx.current_stage = 'stage_3'
        record = self._reusable(ctx, 'stage_3')
        if record is None:
            await self._mark_running(ctx, 'stage_3')
            report = await self.discrepancy_finder.find(product, claims, signal_data)

            if report.timed_out:
                await self._write_failed(ctx, 'stage_3', "timeout", report.meta)
                await self._write_blocked(ctx, "stage3_timeout")
                return RunStatus.TIMEOUT, "STAGE3_TIMEOUT"

            if not report.validation.valid:
                await self._write_failed(ctx, 'stage_3', report.error or "invalid", report.meta)
                await self._write_blocked(ctx, "stage3_invalid")
                if report.error and report.error.startswith("generator_error"):
                    return RunStatus.ERROR, f"STAGE3_FAILED: {report.error}"
                return RunStatus.INCOMPLETE, f"STAGE3_INVALID: {report.error}"

            normalized = normalize_stage3(report.validation.items, self.policy)
            await self._progress(ctx, PROGRESS_STAGE3_NORMALIZED)

            scores = compute_base_scores(normalized.entries)
            bars = build_metric_bars(scores)
            await self._progress(ctx, PROGRESS_SCORES_COMPUTED)

            entry_dicts = [e.to_dict() for e in normalized.entries]
            stage3_data = {
                **normalized.to_dict(),
                'red_flags': entry_dicts,
                'discrepancies': entry_dicts,
                'reality_ledger': report.reality_ledger,
                'verified_claims': max(0, len(claims) - normalized.unique_count),
                'flagged_claims': normalized.unique_count,
                'base_scores': scores.to_dict(),
                'metric_bars': [bar.to_dict() for bar in bars],
            }
            meta = {**report.meta, 'total_count': normalized.total_count,
                    'unique_count': normalized.unique_count}
            record = await self._write_done(ctx, 'stage_3', stage3_data, meta)
        else:
            await self._progress(ctx, PROGRESS_SCORES_COMPUTED)

        entries = [NormalizedEntry.from_dict(e) for e in record.data['entries']]
        scores = BaseScores.from_dict(record.data['base_scores'])

        if not entries:
            logger.warning(f"⚠️ No usable discrepancies for {product.id}, blocking stage 4")
            await self._write_blocked(ctx, "stage3_insufficient_data")
            return RunStatus.INCOMPLETE, "STAGE3_INSUFFICIENT_DATA"

        # =========================================================
        # STAGE 4: Truth Index
        # =========================================================
        ctx.current_stage = 'stage_4'
        record = self._reusable(ctx, 'stage_4')
        if record is None:
            await self._mark_running(ctx, 'stage_4')
            try:
                verdict = await self.verdict_synthesizer.synthesize(
                    product, claims, signal_data, entries, scores
                )
            except VerdictError as e:
                await self._write_failed(ctx, 'stage_4', str(e), {'timed_out': e.timed_out})
                if e.timed_out:
                    return RunStatus.TIMEOUT, "STAGE4_TIMEOUT"
                return RunStatus.ERROR, f"STAGE4_FAILED: {e}"
            await self._progress(ctx, PROGRESS_VERDICT_GENERATED)

            breakdown = compute_truth_index(scores, entries, verdict.score_adjustment)
            data = build_verdict_data(verdict, breakdown, build_metric_bars(scores))
            validation = validate_stage4(data)
            if not validation.valid:
                await self._write_failed(ctx, 'stage_4', validation.error, {})
                return RunStatus.ERROR, f"STAGE4_INVALID: {validation.error}"

            await self._write_done(ctx, 'stage_4', data, {
                'base': breakdown.base,
                'final': breakdown.final,
                'adjustment_accepted': breakdown.llm_adjustment is not None,
            })
        else:
            await self._progress(ctx, PROGRESS_VERDICT_GENERATED)

        ctx.current_stage = None
        return RunStatus.DONE, None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _reusable(self, ctx: RunContext, key: str) -> Optional[StageRecord]:
        """Cached record if fresh and not forced; nothing is reused once a stage re-ran."""
        if ctx.reexecuted:
            return None
        force_from = ctx.run.force_from_stage
        if force_from is not None and stage_index(key) >= force_from:
            return None
        record = ctx.stages.get(key)
        if record is not None and record.is_fresh(self.clock()):
            logger.info(f"♻️ Reusing fresh {key} for {ctx.run.subject_id}")
            return record
        return None

    async def _progress(self, ctx: RunContext, progress: int):
        ctx.progress = max(ctx.progress, progress)
        alive = await self.run_store.heartbeat(ctx.run.id, ctx.progress, ctx.run.attempt_count)
        if not alive:
            raise LeaseLostError(ctx.run.id)

    async def _write(self, ctx: RunContext, key: str, record: StageRecord) -> StageRecord:
        """Compare-and-swap one stage row, re-reading and retrying once on conflict."""
        current = ctx.stages.get(key)
        expected = current.version if current else 0
        try:
            stored = await self.stage_store.upsert_stage(ctx.run.subject_id, key, record, expected)
        except StageVersionConflict:
            latest = await self.stage_store.get_stage(ctx.run.subject_id, key)
            expected = latest.version if latest else 0
            stored = await self.stage_store.upsert_stage(ctx.run.subject_id, key, record, expected)
        ctx.stages[key] = stored
        return stored

    async def _mark_running(self, ctx: RunContext, key: str):
        ctx.reexecuted = True
        await self._write(ctx, key, StageRecord.running(self.ttls[key]))

    async def _write_done(self, ctx: RunContext, key: str, data: Dict[str, Any],
                          meta: Optional[Dict[str, Any]] = None) -> StageRecord:
        record = StageRecord.done(data, self.ttls[key], self.clock(), meta)
        stored = await self._write(ctx, key, record)
        logger.info(f"✅ {ctx.run.subject_id}/{key} done")
        return stored

    async def _write_failed(self, ctx: RunContext, key: str, error: str,
                            meta: Optional[Dict[str, Any]] = None):
        await self._write(ctx, key, StageRecord.failed(error, self.ttls[key], self.clock(), meta))
        logger.warning(f"❌ {ctx.run.subject_id}/{key} error: {error}")

    async def _write_blocked(self, ctx: RunContext, reason: str):
        await self._write(ctx, 'stage_4', StageRecord.blocked(reason, self.ttls['stage_4'], self.clock()))
        logger.warning(f"🚧 {ctx.run.subject_id}/stage_4 blocked: {reason}")

    async def _fail_current_stage(self, ctx: RunContext, error: str):
        """Best effort: never leave the in-flight stage marked running."""
        if ctx.current_stage is None:
            return
        try:
            await self._write_failed(ctx, ctx.current_stage, error)
        except Exception as e:
            logger.error(f"❌ Could not record failure of {ctx.current_stage}: {e}")

    async def _finish(self, ctx: RunContext, status: RunStatus, error: Optional[str]):
        await self.run_store.finish(ctx.run.id, status, error, ctx.run.attempt_count)


# =============================================================================
# WORKER LOOP
# =============================================================================

async def run_audit_worker():
    """Main worker loop: queue-driven, with claim_next polling when idle."""
    from truth_audit.config.database import create_postgres_pool, create_job_queue
    from truth_audit.repositories import AuditRunRepository, ProductRepository, StageRepository
    from truth_audit.services.generation_client import GenerationClient

    settings = get_settings()
    db_pool = await create_postgres_pool()
    job_queue = await create_job_queue()

    run_store = AuditRunRepository(db_pool)
    supervisor = AuditSupervisor(
        stage_store=StageRepository(db_pool),
        run_store=run_store,
        product_store=ProductRepository(db_pool),
        generator=GenerationClient(settings.openai_api_key, model=settings.openai_model),
        settings=settings,
    )

    stopping = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stopping.set)

    logger.info(f"🧾 AuditWorker started, listening on {settings.audit_queue_name}")

    try:
        while not stopping.is_set():
            try:
                job = await job_queue.dequeue(settings.audit_queue_name, timeout=settings.worker_poll_seconds)

                if job:
                    await supervisor.process_run(job['run_id'])
                else:
                    run = await run_store.claim_next()
                    if run:
                        await supervisor.execute(run)

            except Exception as e:
                logger.error(f"❌ Worker error: {e}", exc_info=True)
                await asyncio.sleep(1)
    finally:
        logger.info("👋 AuditWorker shutting down")
        await job_queue.close()
        await db_pool.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(run_audit_worker())
