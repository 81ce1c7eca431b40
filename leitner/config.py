from datetime import UTC, datetime, time

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()``. Session timestamps and
    due dates are all naive, so a fixed daily expiration time is applied to
    the wall clock of whatever the session clock returns.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Leitner Learn"
    schedule_preset: str = "linear"
    sides_mode: str = "normal"
    card_limit: int | None = None
    time_limit_minutes: int | None = None
    retest_failed_cards: bool = False
    group_by_category: bool = False
    random_category_order: bool = False
    shuffle_ratio: float = 0.0
    amount_to_test_front: int = 1
    amount_to_test_back: int = 1
    fixed_expiration_time: time | None = None
    debug: bool = False

    model_config = {"env_prefix": "LEITNER_", "env_file": ".env"}


settings = Settings()
