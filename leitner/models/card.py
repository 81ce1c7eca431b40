"""Flashcard model with Leitner deck level and per-side progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from leitner.config import utcnow

if TYPE_CHECKING:
    from leitner.models.category import Category


@dataclass(eq=False)
class Card:
    """A two-sided flashcard sitting in one Leitner deck.

    Cards compare and hash by identity, so two cards with the same text are
    still distinct members of a learn session.
    """

    front: str
    back: str
    level: int = 0
    category: Category | None = field(default=None, repr=False)

    # Correct answers per side while learning in both-sides mode
    learned_front: int = 0
    learned_back: int = 0

    date_created: datetime = field(default_factory=utcnow)
    date_tested: datetime | None = None
    date_expired: datetime | None = None
    date_touched: datetime = field(default_factory=utcnow)
    tests_total: int = 0
    tests_passed: int = 0

    def is_unlearned(self) -> bool:
        """Return True if the card sits in the first deck."""
        return self.level == 0

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True if a learned card is due for review again."""
        if self.level == 0 or self.date_expired is None:
            return False
        return self.date_expired <= (now or utcnow())

    def is_learned(self, now: datetime | None = None) -> bool:
        """Return True if the card is above deck 0 and not yet due."""
        return self.level > 0 and not self.is_expired(now)

    def learned_amount(self, front: bool) -> int:
        """Return how often one side has been answered correctly."""
        return self.learned_front if front else self.learned_back

    def has_side_progress(self) -> bool:
        return self.learned_front > 0 or self.learned_back > 0

    def increment_learned_amount(self, front: bool, touched_at: datetime | None = None) -> None:
        """Count a correct answer for one side and notify the category tree."""
        if front:
            self.learned_front += 1
        else:
            self.learned_back += 1
        self.date_touched = touched_at or utcnow()

        if self.category is not None:
            self.category.fire_deck_changed(self)

    def reset_learned_amounts(self) -> None:
        self.learned_front = 0
        self.learned_back = 0
