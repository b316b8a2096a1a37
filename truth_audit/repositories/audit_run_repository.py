"""
AuditRun Repository - PostgreSQL storage for audit runs and their leases

Storage strategy:
- PostgreSQL: audit.audit_runs table
- A partial unique index allows one pending/running run per subject
- Claiming is a conditional update (status = 'pending'), so exactly one
  worker wins; each claim bumps attempt_count, which is the lease token
- Heartbeats and finish only apply while the run is 'running' under the
  caller's attempt, so a worker whose run was reset and re-claimed is shut out
- Terminal status is written once (conditional on a non-terminal status)
"""
import logging
from typing import Optional, List, Tuple
import asyncpg

from truth_audit.models.domain import AuditRun, RunStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

RUN_COLUMNS = """
    id, subject_id, status, progress, force_from_stage, attempt_count, error,
    created_at, started_at, finished_at, last_heartbeat
"""


class AuditRunRepository:
    """
    Repository for AuditRun management
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def create(self, run: AuditRun) -> Tuple[AuditRun, bool]:
        """
        Insert a pending run unless the subject already has an active one

        Returns:
            (run, created) - the existing active run and False on collision
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                INSERT INTO audit.audit_runs (id, subject_id, status, progress, force_from_stage)
                VALUES ($1, $2, 'pending', 0, $3)
                ON CONFLICT (subject_id) WHERE status IN ('pending', 'running') DO NOTHING
                RETURNING {RUN_COLUMNS}
            """, run.id, run.subject_id, run.force_from_stage)

            if row:
                logger.info(f"🆕 Created audit run {row['id']} for {run.subject_id}")
                return AuditRun.from_row(row), True

            existing = await conn.fetchrow(f"""
                SELECT {RUN_COLUMNS}
                FROM audit.audit_runs
                WHERE subject_id = $1 AND status IN ('pending', 'running')
            """, run.subject_id)

        if existing is None:
            # Active run finished between the insert and the lookup
            return await self.create(run)

        logger.info(f"♻️ Reusing active audit run {existing['id']} for {run.subject_id}")
        return AuditRun.from_row(existing), False

    async def get_by_id(self, run_id: str) -> Optional[AuditRun]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {RUN_COLUMNS}
                FROM audit.audit_runs
                WHERE id = $1
            """, run_id)

        return AuditRun.from_row(row) if row else None

    async def get_active_for_subject(self, subject_id: str) -> Optional[AuditRun]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {RUN_COLUMNS}
                FROM audit.audit_runs
                WHERE subject_id = $1 AND status IN ('pending', 'running')
            """, subject_id)

        return AuditRun.from_row(row) if row else None

    async def claim(self, run_id: str) -> Optional[AuditRun]:
        """
        Atomically move a pending run to running

        Returns:
            The claimed run, or None if another worker got there first
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                UPDATE audit.audit_runs
                SET status = 'running',
                    started_at = NOW(),
                    last_heartbeat = NOW(),
                    attempt_count = attempt_count + 1
                WHERE id = $1 AND status = 'pending'
                RETURNING {RUN_COLUMNS}
            """, run_id)

        return AuditRun.from_row(row) if row else None

    async def claim_next(self) -> Optional[AuditRun]:
        """
        Claim the oldest pending run (queue-less fallback for idle workers)
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                UPDATE audit.audit_runs
                SET status = 'running',
                    started_at = NOW(),
                    last_heartbeat = NOW(),
                    attempt_count = attempt_count + 1
                WHERE id = (
                    SELECT id FROM audit.audit_runs
                    WHERE status = 'pending'
                    ORDER BY created_at
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {RUN_COLUMNS}
            """)

        return AuditRun.from_row(row) if row else None

    async def heartbeat(self, run_id: str, progress: int, attempt_count: Optional[int] = None) -> bool:
        """
        Refresh the lease and raise progress (never lowers it)

        Args:
            attempt_count: Attempt the caller claimed; None skips the check

        Returns:
            False if the run is no longer running under that attempt (lease lost)
        """
        async with self.db_pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE audit.audit_runs
                SET last_heartbeat = NOW(),
                    progress = GREATEST(progress, $2)
                WHERE id = $1 AND status = 'running'
                  AND ($3::int IS NULL OR attempt_count = $3::int)
            """, run_id, progress, attempt_count)

        # Extract count from "UPDATE N" result
        return bool(result) and int(result.split()[-1]) > 0

    async def finish(
        self,
        run_id: str,
        status: RunStatus,
        error: Optional[str] = None,
        attempt_count: Optional[int] = None
    ) -> bool:
        """
        Write the terminal status of a run exactly once

        Args:
            attempt_count: Attempt the caller claimed; None skips the check

        Returns:
            False if the run was already terminal or re-claimed by another attempt
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status.value} is not a terminal run status")

        async with self.db_pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE audit.audit_runs
                SET status = $2,
                    error = $3,
                    finished_at = NOW(),
                    progress = CASE WHEN $2 = 'done' THEN 100 ELSE progress END
                WHERE id = $1 AND status IN ('pending', 'running')
                  AND ($4::int IS NULL OR attempt_count = $4::int)
            """, run_id, status.value, error, attempt_count)

        finished = bool(result) and int(result.split()[-1]) > 0
        if finished:
            logger.info(f"🏁 Audit run {run_id} → {status.value}")
        else:
            logger.warning(f"⚠️ Audit run {run_id} already terminal or re-claimed, ignoring {status.value}")
        return finished

    async def reset_stale_runs(
        self,
        heartbeat_timeout_seconds: int = 300,
        max_attempts: int = 3
    ) -> Tuple[List[str], List[str]]:
        """
        Reset runs whose lease expired

        Runs under max_attempts go back to pending; the rest end as timeout.

        Returns:
            (reset_ids, timed_out_ids)
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                reset = await conn.fetch("""
                    UPDATE audit.audit_runs
                    SET status = 'pending',
                        started_at = NULL,
                        last_heartbeat = NULL
                    WHERE status = 'running'
                      AND last_heartbeat < NOW() - make_interval(secs => $1)
                      AND attempt_count < $2
                    RETURNING id
                """, heartbeat_timeout_seconds, max_attempts)

                timed_out = await conn.fetch("""
                    UPDATE audit.audit_runs
                    SET status = 'timeout',
                        error = 'HEARTBEAT_TIMEOUT',
                        finished_at = NOW()
                    WHERE status = 'running'
                      AND last_heartbeat < NOW() - make_interval(secs => $1)
                      AND attempt_count >= $2
                    RETURNING id
                """, heartbeat_timeout_seconds, max_attempts)

        reset_ids = [row['id'] for row in reset]
        timed_out_ids = [row['id'] for row in timed_out]

        if reset_ids:
            logger.info(f"🔄 Reset {len(reset_ids)} stale audit runs")
        if timed_out_ids:
            logger.warning(f"⏱️ Timed out {len(timed_out_ids)} audit runs after {max_attempts} attempts")

        return reset_ids, timed_out_ids
