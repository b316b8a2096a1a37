"""
Stage Repository - PostgreSQL storage for per-stage audit results

Storage strategy:
- PostgreSQL: audit.stage_records, one row per (subject_id, stage_key)
- Every write is a compare-and-swap on the row's version column, so two
  writers touching different stages never overwrite each other and two
  writers racing on the same stage fail loudly instead of losing an update.
"""
import json
import logging
from typing import Optional, Dict
import asyncpg

from truth_audit.models.domain import StageRecord, STAGE_KEYS

logger = logging.getLogger(__name__)


class StageVersionConflict(Exception):
    """Stage row changed (or appeared) since it was read."""

    def __init__(self, subject_id: str, stage_key: str, expected_version: int):
        self.subject_id = subject_id
        self.stage_key = stage_key
        self.expected_version = expected_version
        super().__init__(
            f"{subject_id}/{stage_key}: expected version {expected_version}"
        )


def _load_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_record(row) -> StageRecord:
    return StageRecord(
        status=row['status'],
        ttl_days=row['ttl_days'],
        completed_at=row['completed_at'],
        data=_load_json(row['data']),
        error=row['error'],
        meta=_load_json(row['meta']) or {},
        version=row['version'],
    )


class StageRepository:
    """
    Repository for StageRecord rows

    Reads return the whole stage map for a subject; writes go one stage at a time.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_stages(self, subject_id: str) -> Dict[str, StageRecord]:
        """
        Get all persisted stage records for a subject

        Returns:
            Dict keyed by stage key; missing stages are absent
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT stage_key, status, ttl_days, completed_at, data, error, meta, version
                FROM audit.stage_records
                WHERE subject_id = $1
            """, subject_id)

        records = {row['stage_key']: _row_to_record(row) for row in rows}
        return {key: records[key] for key in STAGE_KEYS if key in records}

    async def get_stage(self, subject_id: str, stage_key: str) -> Optional[StageRecord]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT stage_key, status, ttl_days, completed_at, data, error, meta, version
                FROM audit.stage_records
                WHERE subject_id = $1 AND stage_key = $2
            """, subject_id, stage_key)

        return _row_to_record(row) if row else None

    async def upsert_stage(
        self,
        subject_id: str,
        stage_key: str,
        record: StageRecord,
        expected_version: int
    ) -> StageRecord:
        """
        Write one stage row if it is still at expected_version

        Args:
            subject_id: Subject the stage belongs to
            stage_key: 'stage_1' .. 'stage_4'
            record: New contents (its own version field is ignored)
            expected_version: Version read by the caller, 0 if the row did not exist

        Returns:
            The stored record carrying its new version

        Raises:
            StageVersionConflict: Row was created or modified concurrently
        """
        data = json.dumps(record.data) if record.data is not None else None
        meta = json.dumps(record.meta or {})

        async with self.db_pool.acquire() as conn:
            if expected_version == 0:
                new_version = await conn.fetchval("""
                    INSERT INTO audit.stage_records (
                        subject_id, stage_key, status, ttl_days, completed_at,
                        data, error, meta, version, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8::jsonb, 1, NOW())
                    ON CONFLICT (subject_id, stage_key) DO NOTHING
                    RETURNING version
                """, subject_id, stage_key, record.status.value, record.ttl_days,
                    record.completed_at, data, record.error, meta)
            else:
                new_version = await conn.fetchval("""
                    UPDATE audit.stage_records
                    SET status = $3,
                        ttl_days = $4,
                        completed_at = $5,
                        data = $6::jsonb,
                        error = $7,
                        meta = $8::jsonb,
                        version = version + 1,
                        updated_at = NOW()
                    WHERE subject_id = $1 AND stage_key = $2 AND version = $9
                    RETURNING version
                """, subject_id, stage_key, record.status.value, record.ttl_days,
                    record.completed_at, data, record.error, meta, expected_version)

        if new_version is None:
            logger.warning(
                f"⚠️ Stage version conflict on {subject_id}/{stage_key} "
                f"(expected v{expected_version})"
            )
            raise StageVersionConflict(subject_id, stage_key, expected_version)

        logger.debug(f"💾 {subject_id}/{stage_key} → {record.status.value} (v{new_version})")
        return record.with_version(new_version)
