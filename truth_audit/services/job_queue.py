"""
Redis-based job queue for audit runs

Uses LPUSH/BRPOP: each job is consumed by exactly ONE worker.
The queue only carries run ids; the run row in PostgreSQL is the source of
truth and claiming it is what grants ownership, so a duplicated or lost
job is harmless (the reaper and claim_next cover lost ones).
"""
import json
import redis.asyncio as redis
from typing import Optional

AUDIT_QUEUE = 'queue:audit:high'


class JobQueue:

    def __init__(self, redis_url: str):
        self.redis = None
        self.redis_url = redis_url

    async def connect(self):
        """Initialize Redis connection"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.close()

    async def enqueue(self, queue_name: str, job: dict):
        """
        Add job to queue

        Example:
            await queue.enqueue('queue:audit:high', {'run_id': 'ar_x5b8r2yj'})
        """
        await self.redis.lpush(queue_name, json.dumps(job))

    async def dequeue(self, queue_name: str, timeout: int = 5) -> Optional[dict]:
        """
        Blocking pop from queue (BRPOP)

        Returns:
            Job dict or None on timeout
        """
        result = await self.redis.brpop(queue_name, timeout=timeout)
        if result:
            # result is a tuple: (queue_name, job_json)
            return json.loads(result[1])
        return None
