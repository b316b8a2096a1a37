"""
In-memory stand-ins for the stores, generator, queue and clock.

They follow the same contracts as the PostgreSQL repositories (conditional
claim, write-once finish, compare-and-swap stage rows) so supervisor tests
exercise the real concurrency rules without a database.
"""
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from truth_audit.models.domain import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AuditRun,
    Product,
    RunStatus,
    StageRecord,
    STAGE_KEYS,
)
from truth_audit.repositories.stage_repository import StageVersionConflict
from truth_audit.services.generation_client import GenerationResult


class FakeClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class InMemoryStageStore:

    def __init__(self):
        self.rows: Dict[Tuple[str, str], StageRecord] = {}
        self.writes: List[Tuple[str, str]] = []  # (stage_key, status)
        self.conflicts_to_inject = 0

    async def get_stages(self, subject_id: str) -> Dict[str, StageRecord]:
        return {
            key: self.rows[(subject_id, key)]
            for key in STAGE_KEYS
            if (subject_id, key) in self.rows
        }

    async def get_stage(self, subject_id: str, stage_key: str) -> Optional[StageRecord]:
        return self.rows.get((subject_id, stage_key))

    async def upsert_stage(self, subject_id, stage_key, record, expected_version):
        current = self.rows.get((subject_id, stage_key))
        current_version = current.version if current else 0

        if self.conflicts_to_inject > 0:
            self.conflicts_to_inject -= 1
            # Someone else bumped the row in between
            bumped = (current or StageRecord()).with_version(current_version + 1)
            self.rows[(subject_id, stage_key)] = bumped
            raise StageVersionConflict(subject_id, stage_key, expected_version)

        if current_version != expected_version:
            raise StageVersionConflict(subject_id, stage_key, expected_version)

        # Round-trip through JSON like the JSONB columns do
        data = json.loads(json.dumps(record.data)) if record.data is not None else None
        stored = StageRecord(
            status=record.status,
            ttl_days=record.ttl_days,
            completed_at=record.completed_at,
            data=data,
            error=record.error,
            meta=json.loads(json.dumps(record.meta)),
            version=current_version + 1,
        )
        self.rows[(subject_id, stage_key)] = stored
        self.writes.append((stage_key, stored.status.value))
        return stored

    def seed(self, subject_id: str, stage_key: str, record: StageRecord):
        self.rows[(subject_id, stage_key)] = record.with_version(1)


class InMemoryRunStore:

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.runs: Dict[str, AuditRun] = {}
        self.heartbeats: List[int] = []

    async def create(self, run: AuditRun) -> Tuple[AuditRun, bool]:
        active = await self.get_active_for_subject(run.subject_id)
        if active is not None:
            return active, False
        run.created_at = self.clock()
        self.runs[run.id] = run
        return run, True

    async def get_by_id(self, run_id: str) -> Optional[AuditRun]:
        return self.runs.get(run_id)

    async def get_active_for_subject(self, subject_id: str) -> Optional[AuditRun]:
        for run in self.runs.values():
            if run.subject_id == subject_id and run.status in ACTIVE_STATUSES:
                return run
        return None

    async def claim(self, run_id: str) -> Optional[AuditRun]:
        run = self.runs.get(run_id)
        if run is None or run.status != RunStatus.PENDING:
            return None
        run.status = RunStatus.RUNNING
        run.started_at = self.clock()
        run.last_heartbeat = self.clock()
        run.attempt_count += 1
        # Callers hold a snapshot of the claimed row, like RETURNING gives them
        return replace(run)

    async def claim_next(self) -> Optional[AuditRun]:
        pending = sorted(
            (r for r in self.runs.values() if r.status == RunStatus.PENDING),
            key=lambda r: r.created_at,
        )
        if not pending:
            return None
        return await self.claim(pending[0].id)

    async def heartbeat(self, run_id: str, progress: int, attempt_count: Optional[int] = None) -> bool:
        run = self.runs.get(run_id)
        if run is None or run.status != RunStatus.RUNNING:
            return False
        if attempt_count is not None and run.attempt_count != attempt_count:
            return False
        run.progress = max(run.progress, progress)
        run.last_heartbeat = self.clock()
        self.heartbeats.append(run.progress)
        return True

    async def finish(self, run_id: str, status: RunStatus, error: Optional[str] = None,
                     attempt_count: Optional[int] = None) -> bool:
        run = self.runs.get(run_id)
        if run is None or run.status in TERMINAL_STATUSES:
            return False
        if attempt_count is not None and run.attempt_count != attempt_count:
            return False
        run.status = status
        run.error = error
        run.finished_at = self.clock()
        if status == RunStatus.DONE:
            run.progress = 100
        return True

    async def reset_stale_runs(self, heartbeat_timeout_seconds: int = 300, max_attempts: int = 3):
        cutoff = self.clock() - timedelta(seconds=heartbeat_timeout_seconds)
        reset_ids, timed_out_ids = [], []
        for run in self.runs.values():
            if run.status != RunStatus.RUNNING or run.last_heartbeat >= cutoff:
                continue
            if run.attempt_count < max_attempts:
                run.status = RunStatus.PENDING
                run.started_at = None
                run.last_heartbeat = None
                reset_ids.append(run.id)
            else:
                run.status = RunStatus.TIMEOUT
                run.error = 'HEARTBEAT_TIMEOUT'
                run.finished_at = self.clock()
                timed_out_ids.append(run.id)
        return reset_ids, timed_out_ids


class InMemoryProductStore:

    def __init__(self, *products: Product):
        self.products = {p.id: p for p in products}

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)


class FakeJobQueue:

    def __init__(self):
        self.jobs: List[Tuple[str, dict]] = []

    async def enqueue(self, queue_name: str, job: dict):
        self.jobs.append((queue_name, job))


def _stage_of(schema: Optional[Dict[str, Any]]) -> str:
    required = (schema or {}).get('required', [])
    if 'most_praised' in required:
        return 'stage_2'
    if 'red_flags' in required:
        return 'stage_3'
    return 'stage_4'


class ScriptedGenerator:
    """
    Returns scripted responses per stage.

    Each script entry is a str (successful text), a GenerationResult, or an
    Exception instance (raised). A list is consumed one entry per call; the
    last entry repeats.
    """

    def __init__(self, stage_2: Any = None, stage_3: Any = None, stage_4: Any = None):
        self.scripts = {'stage_2': stage_2, 'stage_3': stage_3, 'stage_4': stage_4}
        self.calls: List[str] = []
        self.prompts: Dict[str, List[str]] = {'stage_2': [], 'stage_3': [], 'stage_4': []}

    async def generate(self, prompt: str, schema=None, timeout: float = 30.0) -> GenerationResult:
        stage = _stage_of(schema)
        self.calls.append(stage)
        self.prompts[stage].append(prompt)

        script = self.scripts[stage]
        if isinstance(script, list):
            script = script.pop(0) if len(script) > 1 else script[0]

        if script is None:
            return GenerationResult(ok=False, error="no script")
        if isinstance(script, Exception):
            raise script
        if isinstance(script, GenerationResult):
            return script
        if not isinstance(script, str):
            script = json.dumps(script)
        return GenerationResult(text=script, ok=True, elapsed_ms=5)


TIMEOUT = GenerationResult(ok=False, error="timeout", timed_out=True, elapsed_ms=30000)
