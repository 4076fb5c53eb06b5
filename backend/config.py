from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "RecallFlow"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'recallflow.db'}"
    stats_timezone: str = "Asia/Shanghai"  # day boundary for daily stats
    default_exam_size: int = 20
    debug: bool = False

    model_config = {"env_prefix": "RECALLFLOW_", "env_file": ".env"}


settings = Settings()
