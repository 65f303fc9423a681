from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def start_of_local_day(now: datetime, tz_name: str = "UTC") -> datetime:
    """Return local midnight of the day containing ``now``, as naive UTC.

    ``now`` is a naive UTC datetime, like everything else we persist.
    """
    tz = ZoneInfo(tz_name)
    local_now = now.replace(tzinfo=UTC).astimezone(tz)
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return local_midnight.astimezone(UTC).replace(tzinfo=None)


def to_local(now: datetime, tz_name: str = "UTC") -> datetime:
    """Convert a naive UTC datetime to an aware datetime in ``tz_name``."""
    return now.replace(tzinfo=UTC).astimezone(ZoneInfo(tz_name))


class Settings(BaseSettings):
    app_name: str = "Flashcard SRS"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'flashcard_srs.db'}"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_rate_limit_rpm: int = 50
    due_cards_default_limit: int = 10
    due_cards_max_limit: int = 100
    local_timezone: str = "UTC"
    reminder_hours: list[int] = [10, 15, 20]
    reminder_window_minutes: int = 30
    reminder_batch_size: int = 5
    store_retry_attempts: int = 3
    review_conflict_attempts: int = 10
    max_generation_input_chars: int = 5000
    debug: bool = False

    model_config = {"env_prefix": "FLASHCARD_SRS_", "env_file": ".env"}


settings = Settings()

