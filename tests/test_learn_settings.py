"""Tests for learn settings: schedules, expiration dates and validation."""

from datetime import datetime, time

import pytest
from pydantic import ValidationError

from leitner.config import Settings
from leitner.learn.settings import (
    MINUTES_PER_DAY,
    SCHEDULE_LEVELS,
    CategoryOrder,
    LearnSettings,
    SchedulePreset,
    SidesMode,
    preset_schedule,
)

HOURLY = [60 * (i + 1) for i in range(SCHEDULE_LEVELS)]
LEARNED_AT = datetime(2024, 1, 1, 10, 0)


# --- Presets ---


class TestPresetSchedules:
    def test_constant(self) -> None:
        assert preset_schedule(SchedulePreset.CONSTANT) == [MINUTES_PER_DAY] * SCHEDULE_LEVELS

    def test_linear(self) -> None:
        schedule = preset_schedule(SchedulePreset.LINEAR)
        assert schedule[0] == MINUTES_PER_DAY
        assert schedule[9] == 10 * MINUTES_PER_DAY

    def test_quadratic(self) -> None:
        schedule = preset_schedule(SchedulePreset.QUADRATIC)
        assert schedule[2] == 9 * MINUTES_PER_DAY
        assert schedule[9] == 100 * MINUTES_PER_DAY

    def test_exponential(self) -> None:
        schedule = preset_schedule(SchedulePreset.EXPONENTIAL)
        assert schedule[0] == MINUTES_PER_DAY
        assert schedule[3] == 8 * MINUTES_PER_DAY

    def test_cram(self) -> None:
        schedule = preset_schedule(SchedulePreset.CRAM)
        assert schedule[0] == 5
        assert schedule[9] == 50

    def test_custom_has_no_preset(self) -> None:
        with pytest.raises(ValueError):
            preset_schedule(SchedulePreset.CUSTOM)


# --- Expiration dates ---


class TestExpirationDate:
    def test_adds_scheduled_minutes(self) -> None:
        settings = LearnSettings(schedule=HOURLY)
        assert settings.expiration_date(LEARNED_AT, 0) == datetime(2024, 1, 1, 11, 0)
        assert settings.expiration_date(LEARNED_AT, 2) == datetime(2024, 1, 1, 13, 0)

    def test_high_levels_use_last_entry(self) -> None:
        settings = LearnSettings(schedule=HOURLY)
        assert settings.expiration_date(LEARNED_AT, 9) == datetime(2024, 1, 1, 20, 0)
        assert settings.expiration_date(LEARNED_AT, 42) == datetime(2024, 1, 1, 20, 0)

    def test_fixed_time_already_passed_rolls_to_next_day(self) -> None:
        settings = LearnSettings(schedule=HOURLY, fixed_expiration_time=time(9, 0))
        assert settings.expiration_date(LEARNED_AT, 0) == datetime(2024, 1, 2, 9, 0)

    def test_fixed_time_later_same_day(self) -> None:
        settings = LearnSettings(schedule=HOURLY, fixed_expiration_time=time(18, 30))
        assert settings.expiration_date(LEARNED_AT, 0) == datetime(2024, 1, 1, 18, 30)

    def test_fixed_time_exactly_reached_rolls_over(self) -> None:
        settings = LearnSettings(schedule=HOURLY, fixed_expiration_time=time(11, 0))
        assert settings.expiration_date(LEARNED_AT, 0) == datetime(2024, 1, 2, 11, 0)

    def test_fixed_time_drops_seconds(self) -> None:
        settings = LearnSettings(schedule=HOURLY, fixed_expiration_time=time(12, 0))
        learned_at = datetime(2024, 1, 1, 10, 0, 42, 1234)
        assert settings.expiration_date(learned_at, 0) == datetime(2024, 1, 1, 12, 0)

    def test_default_schedule_is_linear(self) -> None:
        settings = LearnSettings()
        assert settings.schedule_preset == SchedulePreset.LINEAR
        assert settings.expiration_date(LEARNED_AT, 1) == datetime(2024, 1, 3, 10, 0)


# --- Validation ---


class TestValidation:
    def test_schedule_without_preset_is_custom(self) -> None:
        settings = LearnSettings(schedule=HOURLY)
        assert settings.schedule_preset == SchedulePreset.CUSTOM

    def test_preset_fills_schedule(self) -> None:
        settings = LearnSettings(schedule_preset="cram")
        assert settings.schedule == preset_schedule(SchedulePreset.CRAM)

    def test_custom_preset_requires_schedule(self) -> None:
        with pytest.raises(ValidationError):
            LearnSettings(schedule_preset=SchedulePreset.CUSTOM)

    def test_schedule_length(self) -> None:
        with pytest.raises(ValidationError):
            LearnSettings(schedule=[60, 120])

    def test_negative_schedule_entry(self) -> None:
        with pytest.raises(ValidationError):
            LearnSettings(schedule=[-1] + HOURLY[1:])

    def test_shuffle_ratio_bounds(self) -> None:
        with pytest.raises(ValidationError):
            LearnSettings(shuffle_ratio=1.5)
        with pytest.raises(ValidationError):
            LearnSettings(shuffle_ratio=-0.1)

    def test_card_limit_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            LearnSettings(card_limit=0)

    def test_settings_are_frozen(self) -> None:
        settings = LearnSettings()
        with pytest.raises(ValidationError):
            settings.shuffle_ratio = 0.5  # type: ignore[misc]


# --- Accessors and copies ---


class TestAccessors:
    def test_limits_disabled_by_default(self) -> None:
        settings = LearnSettings()
        assert not settings.card_limit_enabled
        assert not settings.time_limit_enabled

    def test_limits_enabled(self) -> None:
        settings = LearnSettings(card_limit=20, time_limit=15)
        assert settings.card_limit_enabled
        assert settings.time_limit_enabled

    def test_amount_to_test(self) -> None:
        settings = LearnSettings(amount_to_test_front=3, amount_to_test_back=2)
        assert settings.amount_to_test(True) == 3
        assert settings.amount_to_test(False) == 2

    def test_with_preset_returns_copy(self) -> None:
        settings = LearnSettings(schedule=HOURLY, card_limit=5)
        cram = settings.with_preset(SchedulePreset.CRAM)
        assert cram.schedule_preset == SchedulePreset.CRAM
        assert cram.schedule == preset_schedule(SchedulePreset.CRAM)
        assert cram.card_limit == 5
        assert settings.schedule == HOURLY

    def test_with_custom_schedule(self) -> None:
        settings = LearnSettings().with_custom_schedule(HOURLY)
        assert settings.schedule_preset == SchedulePreset.CUSTOM
        assert settings.schedule == HOURLY

    def test_from_config(self) -> None:
        config = Settings(
            schedule_preset="quadratic",
            sides_mode="both",
            card_limit=12,
            time_limit_minutes=30,
            retest_failed_cards=True,
            group_by_category=True,
            random_category_order=True,
            shuffle_ratio=0.25,
            amount_to_test_back=2,
            fixed_expiration_time=time(7, 15),
        )
        settings = LearnSettings.from_config(config)
        assert settings.schedule_preset == SchedulePreset.QUADRATIC
        assert settings.sides_mode == SidesMode.BOTH
        assert settings.card_limit == 12
        assert settings.time_limit == 30
        assert settings.retest_failed_cards
        assert settings.category_order == CategoryOrder.RANDOM
        assert settings.shuffle_ratio == 0.25
        assert settings.amount_to_test(False) == 2
        assert settings.fixed_expiration_time == time(7, 15)
