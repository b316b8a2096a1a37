"""
Database Configuration
======================

Connection configuration for the audit worker, reaper and API.
PostgreSQL and Redis settings come from the shared Settings object
(environment variables or .env).
"""
from dataclasses import dataclass
from typing import Optional

from .settings import Settings, get_settings


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    dsn: str
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_settings(cls, settings: Settings, min_size: int = 2, max_size: int = 10) -> 'PostgresConfig':
        """Create config from application settings."""
        return cls(dsn=settings.database_url, min_size=min_size, max_size=max_size)

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        return {
            'dsn': self.dsn,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RedisConfig':
        """Create config from application settings."""
        if not settings.redis_url:
            raise ValueError("REDIS_URL is required")

        return cls(url=settings.redis_url)


def get_postgres_config(settings: Optional[Settings] = None, min_size: int = 2,
                        max_size: int = 10) -> PostgresConfig:
    """Get PostgreSQL configuration from settings."""
    return PostgresConfig.from_settings(settings or get_settings(), min_size=min_size, max_size=max_size)


def get_redis_config(settings: Optional[Settings] = None) -> RedisConfig:
    """Get Redis configuration from settings."""
    return RedisConfig.from_settings(settings or get_settings())


async def create_postgres_pool(min_size: int = 2, max_size: int = 10):
    """Create PostgreSQL connection pool from settings."""
    import asyncpg
    config = get_postgres_config(min_size=min_size, max_size=max_size)
    return await asyncpg.create_pool(**config.to_asyncpg_kwargs())


async def create_job_queue():
    """Create and connect Redis job queue from settings."""
    from truth_audit.services.job_queue import JobQueue
    config = get_redis_config()
    queue = JobQueue(config.url)
    await queue.connect()
    return queue
