from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can come from:
    - docker-compose.yml environment section
    - .env file (for secrets like API keys)
    - System environment

    Variable names match docker-compose conventions:
    - POSTGRES_HOST, POSTGRES_PORT, etc. (for database)
    - REDIS_URL (for the audit queue)
    - OPENAI_API_KEY, OPENAI_MODEL (for generation)
    """

    # PostgreSQL (from docker-compose)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "audit_user"
    postgres_password: str = "audit_pass"
    postgres_db: str = "truth_audit"
    database_url: Optional[str] = Field(default=None, validate_default=True)

    # OpenAI (from .env)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Redis
    redis_url: str = "redis://localhost:6379"
    audit_queue_name: str = "queue:audit:high"

    # Generation timeouts (seconds)
    stage2_timeout_seconds: float = 15.0
    stage3_timeout_seconds: float = 30.0
    stage4_timeout_seconds: float = 20.0

    # Stage freshness windows (days)
    stage1_ttl_days: int = 30
    stage2_ttl_days: int = 14
    stage3_ttl_days: int = 30
    stage4_ttl_days: int = 30

    # Run leases
    heartbeat_timeout_seconds: int = 300
    max_run_attempts: int = 3
    reaper_interval_seconds: int = 60
    worker_poll_seconds: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra env vars

    @field_validator('database_url', mode='before')
    @classmethod
    def construct_database_url(cls, v, info):
        """Construct database URL from components if not explicitly set"""
        if v:
            return v

        data = info.data
        host = data.get('postgres_host', 'localhost')
        port = data.get('postgres_port', 5432)
        user = data.get('postgres_user', 'audit_user')
        password = data.get('postgres_password', 'audit_pass')
        db = data.get('postgres_db', 'truth_audit')

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    def stage_ttls(self) -> dict:
        """TTL days keyed by stage key."""
        return {
            'stage_1': self.stage1_ttl_days,
            'stage_2': self.stage2_ttl_days,
            'stage_3': self.stage3_ttl_days,
            'stage_4': self.stage4_ttl_days,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
