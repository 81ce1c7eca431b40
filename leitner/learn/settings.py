"""Learn settings: the strategy a learn session follows.

Holds the review schedule, side presentation mode, limits and shuffling
options. Settings are immutable; use the ``with_*`` helpers to derive a
changed copy between sessions.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from leitner.config import Settings

# Number of deck levels the schedule distinguishes; higher levels reuse the last entry
SCHEDULE_LEVELS = 10
MINUTES_PER_DAY = 60 * 24


class SchedulePreset(str, Enum):
    """Named review schedules."""

    CONSTANT = "constant"          # 1 day for every level
    LINEAR = "linear"              # level + 1 days
    QUADRATIC = "quadratic"        # (level + 1)^2 days
    EXPONENTIAL = "exponential"    # 2^level days
    CRAM = "cram"                  # 5 * (level + 1) minutes
    CUSTOM = "custom"


class SidesMode(str, Enum):
    """Which side of a card is shown as the question."""

    NORMAL = "normal"      # front to back
    FLIPPED = "flipped"    # back to front
    RANDOM = "random"      # coin flip per card
    BOTH = "both"          # both sides must be passed independently


class CategoryOrder(str, Enum):
    """Category order used when grouping cards by category."""

    FIXED = "fixed"
    RANDOM = "random"


def preset_schedule(preset: SchedulePreset) -> list[int]:
    """Return the schedule of a preset, in minutes per deck level."""
    levels = range(SCHEDULE_LEVELS)
    if preset == SchedulePreset.CONSTANT:
        return [MINUTES_PER_DAY for _ in levels]
    if preset == SchedulePreset.LINEAR:
        return [(i + 1) * MINUTES_PER_DAY for i in levels]
    if preset == SchedulePreset.QUADRATIC:
        return [(i + 1) ** 2 * MINUTES_PER_DAY for i in levels]
    if preset == SchedulePreset.EXPONENTIAL:
        return [2**i * MINUTES_PER_DAY for i in levels]
    if preset == SchedulePreset.CRAM:
        return [(i + 1) * 5 for i in levels]
    raise ValueError(f"No built-in schedule for preset: {preset.value}")


class LearnSettings(BaseModel):
    """Strategy for one learn session."""

    model_config = ConfigDict(frozen=True)

    # Correct answers needed per side in both-sides mode
    amount_to_test_front: int = Field(default=1, ge=1)
    amount_to_test_back: int = Field(default=1, ge=1)

    schedule_preset: SchedulePreset = SchedulePreset.LINEAR
    # Minutes until due, indexed by the deck level before the card is raised
    schedule: list[int]
    fixed_expiration_time: time | None = None

    card_limit: int | None = Field(default=None, ge=1)
    time_limit: int | None = Field(default=None, ge=1)  # minutes

    retest_failed_cards: bool = False
    sides_mode: SidesMode = SidesMode.NORMAL
    group_by_category: bool = False
    category_order: CategoryOrder = CategoryOrder.FIXED
    # Share of cards drawn at a random level instead of their own
    shuffle_ratio: float = Field(default=0.0, ge=0.0, le=1.0)

    @model_validator(mode="before")
    @classmethod
    def _fill_schedule(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        preset = data.get("schedule_preset")
        if preset is not None:
            preset = SchedulePreset(preset)

        if data.get("schedule") is None:
            preset = preset or SchedulePreset.LINEAR
            if preset == SchedulePreset.CUSTOM:
                raise ValueError("A custom schedule preset requires a schedule")
            data["schedule"] = preset_schedule(preset)
        elif preset is None or (
            preset != SchedulePreset.CUSTOM and list(data["schedule"]) != preset_schedule(preset)
        ):
            preset = SchedulePreset.CUSTOM

        data["schedule_preset"] = preset
        return data

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, schedule: list[int]) -> list[int]:
        if len(schedule) != SCHEDULE_LEVELS:
            raise ValueError(
                f"Schedule needs {SCHEDULE_LEVELS} entries, got {len(schedule)}"
            )
        if any(minutes < 0 for minutes in schedule):
            raise ValueError("Schedule entries must not be negative")
        return schedule

    @classmethod
    def from_config(cls, config: Settings) -> LearnSettings:
        """Build default learn settings from the process configuration."""
        return cls(
            amount_to_test_front=config.amount_to_test_front,
            amount_to_test_back=config.amount_to_test_back,
            schedule_preset=config.schedule_preset,
            fixed_expiration_time=config.fixed_expiration_time,
            card_limit=config.card_limit,
            time_limit=config.time_limit_minutes,
            retest_failed_cards=config.retest_failed_cards,
            sides_mode=config.sides_mode,
            group_by_category=config.group_by_category,
            category_order=(
                CategoryOrder.RANDOM if config.random_category_order else CategoryOrder.FIXED
            ),
            shuffle_ratio=config.shuffle_ratio,
        )

    @property
    def card_limit_enabled(self) -> bool:
        return self.card_limit is not None

    @property
    def time_limit_enabled(self) -> bool:
        return self.time_limit is not None

    def amount_to_test(self, front: bool) -> int:
        """Return how often a side must be passed before it counts as learned."""
        return self.amount_to_test_front if front else self.amount_to_test_back

    def expiration_date(self, learned_at: datetime, level: int) -> datetime:
        """Return when a card passed at ``learned_at`` is due again.

        Args:
            learned_at: The moment the card was learned.
            level: The card's deck level before it is raised.

        Returns:
            ``learned_at`` plus the scheduled delay for the level. With a
            fixed expiration time the result moves forward to the next
            occurrence of that time of day.
        """
        minutes = self.schedule[min(max(level, 0), SCHEDULE_LEVELS - 1)]
        due = learned_at + timedelta(minutes=minutes)

        fixed = self.fixed_expiration_time
        if fixed is not None:
            # If the fixed time has already passed on that day, use the next day
            if (due.hour, due.minute) >= (fixed.hour, fixed.minute):
                due += timedelta(days=1)
            due = due.replace(hour=fixed.hour, minute=fixed.minute, second=0, microsecond=0)

        return due

    def with_preset(self, preset: SchedulePreset) -> LearnSettings:
        """Return a copy using one of the preset schedules."""
        data = self.model_dump()
        data.update(schedule_preset=preset, schedule=None)
        return LearnSettings(**data)

    def with_custom_schedule(self, schedule: list[int]) -> LearnSettings:
        """Return a copy using a custom schedule (minutes per level)."""
        data = self.model_dump()
        data.update(schedule_preset=SchedulePreset.CUSTOM, schedule=list(schedule))
        return LearnSettings(**data)
