"""
StaleRunReaper - recovers audit runs whose worker stopped heart-beating

A run stuck in 'running' past the heartbeat timeout goes back to 'pending'
and is re-enqueued, until it has used max_attempts; after that it ends as
'timeout' with error HEARTBEAT_TIMEOUT.
"""
import asyncio
import logging
import signal
from typing import List, Tuple

from truth_audit.config.settings import get_settings
from truth_audit.services.job_queue import AUDIT_QUEUE

logger = logging.getLogger(__name__)


class StaleRunReaper:

    def __init__(
        self,
        run_store,
        job_queue=None,
        heartbeat_timeout_seconds: int = 300,
        max_attempts: int = 3,
        queue_name: str = AUDIT_QUEUE
    ):
        self.run_store = run_store
        self.job_queue = job_queue
        self.heartbeat_timeout_seconds = heartbeat_timeout_seconds
        self.max_attempts = max_attempts
        self.queue_name = queue_name

    async def reap_once(self) -> Tuple[List[str], List[str]]:
        """
        Returns:
            (reset_ids, timed_out_ids)
        """
        reset_ids, timed_out_ids = await self.run_store.reset_stale_runs(
            self.heartbeat_timeout_seconds, self.max_attempts
        )
        if self.job_queue is not None:
            for run_id in reset_ids:
                await self.job_queue.enqueue(self.queue_name, {'run_id': run_id})
        return reset_ids, timed_out_ids


async def run_reaper():
    """Reaper loop."""
    from truth_audit.config.database import create_postgres_pool, create_job_queue
    from truth_audit.repositories import AuditRunRepository

    settings = get_settings()
    db_pool = await create_postgres_pool(min_size=1, max_size=2)
    job_queue = await create_job_queue()

    reaper = StaleRunReaper(
        AuditRunRepository(db_pool),
        job_queue,
        heartbeat_timeout_seconds=settings.heartbeat_timeout_seconds,
        max_attempts=settings.max_run_attempts,
        queue_name=settings.audit_queue_name,
    )

    stopping = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stopping.set)

    logger.info(f"🧹 StaleRunReaper started (timeout={settings.heartbeat_timeout_seconds}s, "
                f"every {settings.reaper_interval_seconds}s)")

    try:
        while not stopping.is_set():
            try:
                await reaper.reap_once()
            except Exception as e:
                logger.error(f"❌ Reaper error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stopping.wait(), timeout=settings.reaper_interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        logger.info("👋 StaleRunReaper shutting down")
        await job_queue.close()
        await db_pool.close()
