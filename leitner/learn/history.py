"""Learn history: summaries of finished learn sessions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from leitner.learn.session import LearnSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    """Statistics for a completed learn session."""

    start: datetime
    end: datetime
    passed: int = 0
    failed: int = 0
    relearned: int = 0
    skipped: int = 0
    cards_checked: int = 0

    @property
    def learned(self) -> int:
        return self.passed + self.relearned

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @classmethod
    def from_session(cls, session: LearnSession) -> SessionSummary:
        start = session.start_time or session.end_time
        return cls(
            start=start,
            end=session.end_time or start,
            passed=len(session.passed_cards),
            failed=len(session.failed_cards),
            relearned=len(session.relearned_cards),
            skipped=len(session.skipped_cards),
            cards_checked=len(session.checked_cards),
        )


@dataclass
class LearnHistory:
    """Records a summary for every relevant session that ends.

    Used as the ``provider`` of learn sessions. Sessions that neither
    learned nor failed a card are not recorded.
    """

    summaries: list[SessionSummary] = field(default_factory=list)
    on_session_ended: list[Callable[[LearnSession], None]] = field(default_factory=list)

    def session_ended(self, session: LearnSession) -> None:
        if session.is_relevant():
            summary = SessionSummary.from_session(session)
            self.summaries.append(summary)
            logger.info(
                "Recorded session: %d passed, %d failed, %d relearned in %s",
                summary.passed,
                summary.failed,
                summary.relearned,
                summary.duration,
            )
        else:
            logger.debug("Session ended without changes, not recorded")

        for callback in self.on_session_ended:
            callback(session)

    @property
    def last_summary(self) -> SessionSummary | None:
        return self.summaries[-1] if self.summaries else None

    @property
    def total_learned(self) -> int:
        return sum(summary.learned for summary in self.summaries)

    @property
    def total_failed(self) -> int:
        return sum(summary.failed for summary in self.summaries)
