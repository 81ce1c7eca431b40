"""Learn session orchestrator.

A learn session draws cards from a category tree according to its
``LearnSettings`` and reacts to the learner's answers:

1. The session fetches the next card and hands it to every registered
   ``LearnCardObserver``.
2. The host reports the answer with ``card_checked`` or ``card_skipped``.
   The session updates its bookkeeping and mutates the card through its
   category (raise level, reset level, reappend).
3. The category emits a ``CardEvent`` for that mutation. The session
   receives it in ``handle_card_event`` and either fetches the next card or
   ends, reporting to its ``LearnSessionProvider``.

Cards removed or changed from outside the session (e.g. deleted in an
editor) arrive through the same event entry point and skip step 2.

Events that arrive while a check or skip is still updating the session are
queued and processed once the update is complete, so the next card is
always drawn from a consistent active set.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from leitner.config import utcnow
from leitner.learn.equivalence import EquivalenceClassSet
from leitner.learn.settings import CategoryOrder, LearnSettings, SidesMode
from leitner.models.card import Card
from leitner.models.category import CardEvent, CardEventType, Category

logger = logging.getLogger(__name__)


class SessionState(Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    ENDED = "ended"


class SessionStateError(RuntimeError):
    """A session operation was used outside the state it is valid in."""


class LearnCardObserver(Protocol):
    def next_card_fetched(self, card: Card, flipped: bool) -> None: ...


class LearnSessionProvider(Protocol):
    def session_ended(self, session: LearnSession) -> None: ...


@dataclass(eq=False)
class CardInfo:
    """Session-local wrapper for a card.

    ``level`` is the shadow level used for draw order. It equals the card's
    real level unless shuffling moved the card to another level.
    ``card_level`` is the real level the session last saw.
    """

    card: Card
    level: int
    card_level: int

    @classmethod
    def for_card(cls, card: Card) -> CardInfo:
        return cls(card=card, level=card.level, card_level=card.level)

    @property
    def category(self) -> Category | None:
        return self.card.category

    def sync_level(self) -> None:
        """Drop any shuffled level and follow the card's real level."""
        self.level = self.card_level = self.card.level


@dataclass
class _DetachedCard:
    """Session state of a removed card, restored if it is added back."""

    info: CardInfo
    learned: bool
    failed: bool
    skipped: bool
    pooled: bool  # was in Active or Reserve
    checked_at: int | None


class LearnSession:
    """Runs one Leitner learn session over a set of cards.

    Cards are split into exclusive subsets: *active* cards can be drawn,
    *reserve* cards wait because of the card limit, *learned* cards have been
    passed this session. Cards move between active and reserve, and from
    active to learned, but never leave learned.
    """

    def __init__(
        self,
        category: Category,
        settings: LearnSettings,
        selected_cards: Iterable[Card] = (),
        learn_unlearned: bool = False,
        learn_expired: bool = False,
        provider: LearnSessionProvider | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Prepare a session. Call ``start`` to fetch the first card.

        Args:
            category: Category whose subtree is learned.
            settings: Strategy for this session.
            selected_cards: Explicit card list, used only when neither
                ``learn_unlearned`` nor ``learn_expired`` is set.
            learn_unlearned: Learn all deck 0 cards of the subtree.
            learn_expired: Learn all expired cards of the subtree.
            provider: Notified once when the session ends.
            rng: Random source for shuffling, draw order and sides.
            clock: Source of the current time.
        """
        self._category = category
        self._root = category.root
        self._settings = settings
        self._provider = provider
        self._rng = rng or random.Random()
        self._clock = clock

        self._state = SessionState.UNSTARTED
        self._quit = False
        self._current: CardInfo | None = None
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None

        self._infos: dict[Card, CardInfo] = {}
        # Removed cards, restored with their markers if added back (e.g. moved)
        self._detached: dict[Card, _DetachedCard] = {}

        # Markers; ever-failed never shrinks except when a card is removed
        self._learned: set[Card] = set()
        self._ever_failed: set[Card] = set()
        self._skipped: set[Card] = set()
        self._partially_learned: set[Card] = set()  # active cards only
        # Cards in the order they were last shown, without duplicates
        self._checked: list[Card] = []

        self._observers: list[LearnCardObserver] = []
        self._inbox: deque[CardEvent] = deque()
        self._in_transition = False

        self._category_order: dict[Category | None, int] = (
            self._create_category_order() if settings.group_by_category else {}
        )
        self._active = self._fetch_cards(selected_cards, learn_unlearned, learn_expired)
        self._reserve: EquivalenceClassSet[CardInfo] = EquivalenceClassSet(
            self._active.key, rng=self._rng
        )

        self._root.add_handler(self)

    # --- Accessors ---

    @property
    def settings(self) -> LearnSettings:
        return self._settings

    @property
    def category(self) -> Category:
        return self._category

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def start_time(self) -> datetime | None:
        return self._start_time

    @property
    def end_time(self) -> datetime | None:
        return self._end_time

    @property
    def deadline(self) -> datetime | None:
        """When the time limit runs out, if one is set and the session started.

        The session owns no timer; the host calls ``on_timer`` at this time.
        """
        if self._start_time is None or not self._settings.time_limit_enabled:
            return None
        return self._start_time + timedelta(minutes=self._settings.time_limit)

    @property
    def current_card(self) -> Card:
        return self._require_current().card

    @property
    def current_shuffle_level(self) -> int:
        """The shadow level the current card is drawn at."""
        return self._require_current().level

    @property
    def cards_left(self) -> frozenset[Card]:
        return frozenset(info.card for info in self._active)

    @property
    def reserve_cards(self) -> frozenset[Card]:
        return frozenset(info.card for info in self._reserve)

    @property
    def learned_cards(self) -> frozenset[Card]:
        return frozenset(self._learned)

    @property
    def passed_cards(self) -> frozenset[Card]:
        """Cards learned without failing first."""
        return frozenset(self._learned - self._ever_failed)

    @property
    def failed_cards(self) -> frozenset[Card]:
        """Cards failed and not learned afterwards."""
        return frozenset(self._ever_failed - self._learned)

    @property
    def relearned_cards(self) -> frozenset[Card]:
        """Cards learned after having failed."""
        return frozenset(self._ever_failed & self._learned)

    @property
    def skipped_cards(self) -> frozenset[Card]:
        return frozenset(self._skipped)

    @property
    def partially_learned_cards(self) -> frozenset[Card]:
        return frozenset(self._partially_learned)

    @property
    def checked_cards(self) -> tuple[Card, ...]:
        """Cards shown so far, least recently shown first."""
        return tuple(self._checked)

    @property
    def n_cards_learned(self) -> int:
        return len(self._learned)

    @property
    def n_cards_partially_learned(self) -> int:
        return len(self._partially_learned)

    def is_relevant(self) -> bool:
        """Return True if the session changed any card worth recording."""
        return bool(self._ever_failed or self._learned)

    def is_quit(self) -> bool:
        limit_reached = (
            self._settings.card_limit_enabled
            and len(self._learned) >= self._settings.card_limit
        )
        return self._quit or self._active.is_empty() or limit_reached

    # --- Observers ---

    def add_observer(self, observer: LearnCardObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: LearnCardObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # --- Lifecycle ---

    def start(self) -> None:
        """Start learning and fetch the first card."""
        if self._state is not SessionState.UNSTARTED:
            raise SessionStateError("A learn session can only be started once")

        self._state = SessionState.RUNNING
        self._start_time = self._clock()

        # With a card limit, keep exactly that many cards active
        limit = self._settings.card_limit
        if self._settings.card_limit_enabled and len(self._active) > limit:
            self._reserve = self._active
            self._active = self._reserve.partition(limit)

        logger.info(
            "Started learn session on %r: %d active, %d in reserve",
            self._category.name,
            len(self._active),
            len(self._reserve),
        )
        self._goto_next_card()

    def end(self) -> None:
        """End the session. Calling it again has no effect."""
        if self._state is SessionState.ENDED:
            return

        self._state = SessionState.ENDED
        self._end_time = self._clock()
        self._root.remove_handler(self)
        self._inbox.clear()
        self._infos.clear()
        self._detached.clear()

        logger.info(
            "Ended learn session: %d passed, %d failed, %d relearned, %d skipped",
            len(self.passed_cards),
            len(self.failed_cards),
            len(self.relearned_cards),
            len(self._skipped),
        )
        if self._provider is not None:
            self._provider.session_ended(self)

    def quit(self) -> None:
        """Ask the session to end before the next card is fetched."""
        self._quit = True

    def on_timer(self) -> None:
        """Called by the host when the time limit has run out."""
        logger.info("Time limit reached, quitting after the current card")
        self.quit()

    # --- Answers ---

    def card_checked(self, passed: bool, shown_flipped: bool = False) -> None:
        """Apply the learner's answer to the current card.

        Args:
            passed: Whether the card was answered correctly.
            shown_flipped: Whether the card was shown back side first.
        """
        info = self._require_current()
        card = info.card
        logger.debug("Card checked (%s): %r", "passed" if passed else "failed", card.front)

        assert card not in self._learned
        assert info not in self._reserve
        assert info in self._active

        with self._transition():
            self._skipped.discard(card)
            self._partially_learned.discard(card)

            if passed:
                self._card_passed(info, shown_flipped)
            else:
                self._card_failed(info)

            logger.debug(
                "...cards remaining: %d, partially learned: %d, failed: %d",
                len(self._active),
                len(self._partially_learned),
                len(self._ever_failed),
            )

    def card_skipped(self) -> None:
        """Put the current card aside without grading it."""
        info = self._require_current()
        card = info.card
        logger.debug("Card skipped: %r", card.front)

        assert card not in self._learned
        assert info not in self._reserve
        assert info in self._active

        with self._transition():
            self._skipped.add(card)

            if not self._reserve.is_empty():
                self._partially_learned.discard(card)

                replacement = next(self._reserve.loop_iterator())
                if replacement.card.has_side_progress():
                    self._partially_learned.add(replacement.card)

                self._reserve.remove(replacement)
                self._active.add(replacement)
                self._active.remove(info)
                self._reserve.add_expired(info)
                logger.debug(
                    "Swapped %r to reserve, %r to active", card.front, replacement.card.front
                )

            logger.debug("...cards remaining: %d", len(self._active))
            self._category_of(card).reappend_card(card)

    def _card_passed(self, info: CardInfo, shown_flipped: bool) -> None:
        card = info.card

        # In both-sides mode each side must reach its target before the card moves up
        if self._settings.sides_mode is SidesMode.BOTH:
            tested_front = not shown_flipped
            front = card.learned_front + (1 if tested_front else 0)
            back = card.learned_back + (0 if tested_front else 1)

            if front < self._settings.amount_to_test(True) or back < self._settings.amount_to_test(
                False
            ):
                self._partially_learned.add(card)
                logger.debug("...partially passed")
                card.increment_learned_amount(tested_front, self._start_time)
                return

        logger.debug("...passed")
        self._active.remove(info)
        self._learned.add(card)

        expires_at = self._settings.expiration_date(self._start_time, card.level)
        self._category_of(card).raise_card_level(card, self._start_time, expires_at)

    def _card_failed(self, info: CardInfo) -> None:
        card = info.card

        if not self._settings.retest_failed_cards:
            self._active.remove(info)

        # Only cards that had been learned before count as failed
        if card.level > 0:
            self._ever_failed.add(card)
            logger.debug("...failed")

        self._category_of(card).reset_card_level(card, self._start_time)
        info.sync_level()
        self._active.reset_equivalence_class(info)

    # --- Card events ---

    def handle_card_event(self, event: CardEvent) -> None:
        """Entry point for card events of the category tree."""
        if self._state is SessionState.ENDED:
            return

        self._inbox.append(event)
        if not self._in_transition:
            self._drain_inbox()

    def _drain_inbox(self) -> None:
        while self._inbox:
            self._process_event(self._inbox.popleft())

    def _process_event(self, event: CardEvent) -> None:
        if self._state is SessionState.ENDED:
            return

        card = event.card
        if event.type is CardEventType.ADDED:
            self._card_added(card)
            return

        info = self._infos.get(card)
        if info is None:
            logger.debug("Ignoring %s event for card outside the session", event.type.value)
            return

        if event.type is CardEventType.REMOVED:
            self._card_removed(info)
        elif event.type is CardEventType.DECK_CHANGED:
            self._card_deck_changed(info)

    def _card_added(self, card: Card) -> None:
        detached = self._detached.pop(card, None)
        if detached is None:
            # Unknown to the session, or still a live member
            return

        info = detached.info
        self._infos[card] = info
        if detached.learned:
            self._learned.add(card)
        if detached.failed:
            self._ever_failed.add(card)
        if detached.skipped:
            self._skipped.add(card)
        if detached.checked_at is not None:
            self._checked.insert(detached.checked_at, card)

        # Learned cards and cards dropped after a fail stay out of the pools
        if not detached.pooled:
            return

        info.sync_level()
        # Cards beyond the card limit wait in the reserve
        if (
            self._settings.card_limit_enabled
            and len(self._learned) + len(self._active) >= self._settings.card_limit
        ):
            self._reserve.add(info)
        else:
            self._active.add(info)
            if card.has_side_progress():
                self._partially_learned.add(card)

    def _card_removed(self, info: CardInfo) -> None:
        card = info.card
        pooled = info in self._active or info in self._reserve
        checked_at = self._checked.index(card) if card in self._checked else None
        self._detached[card] = _DetachedCard(
            info=info,
            learned=card in self._learned,
            failed=card in self._ever_failed,
            skipped=card in self._skipped,
            pooled=pooled,
            checked_at=checked_at,
        )

        self._active.remove(info)
        self._reserve.remove(info)
        self._learned.discard(card)
        self._partially_learned.discard(card)
        self._ever_failed.discard(card)
        self._skipped.discard(card)
        del self._infos[card]
        if checked_at is not None:
            del self._checked[checked_at]

        if info is self._current and self.is_running:
            self._goto_next_card()

    def _card_deck_changed(self, info: CardInfo) -> None:
        # Reclassify cards whose real level changed outside a check
        if info.card_level != info.card.level:
            info.sync_level()
            self._active.reset_equivalence_class(info)
            self._reserve.reset_equivalence_class(info)

        if info is self._current and self.is_running:
            self._goto_next_card()

    # --- Internals ---

    @contextmanager
    def _transition(self) -> Iterator[None]:
        """Hold back card events until the enclosed update is complete."""
        self._in_transition = True
        try:
            yield
        except BaseException:
            self._inbox.clear()
            raise
        finally:
            self._in_transition = False
        self._drain_inbox()

    def _require_current(self) -> CardInfo:
        if self._state is not SessionState.RUNNING or self._current is None:
            raise SessionStateError(f"No current card: the session is {self._state.value}")
        return self._current

    def _category_of(self, card: Card) -> Category:
        if card.category is None:
            raise SessionStateError(f"Card {card.front!r} does not belong to a category")
        return card.category

    def _goto_next_card(self) -> None:
        if self.is_quit():
            self.end()
            return

        last = self._current
        draws = self._active.loop_iterator()
        current = next(draws)

        # Avoid showing the same card twice in a row
        if len(self._active) > 1 and current is last:
            current = next(draws)

        self._current = current
        card = current.card
        if card in self._checked:
            self._checked.remove(card)
        self._checked.append(card)

        flipped = self._check_if_flipped(card)
        for observer in list(self._observers):
            observer.next_card_fetched(card, flipped)

    def _check_if_flipped(self, card: Card) -> bool:
        mode = self._settings.sides_mode
        if mode is SidesMode.RANDOM:
            return self._rng.randrange(2) == 1

        if mode is SidesMode.BOTH:
            # Pick the side in proportion to how much of it is left to learn
            need_front = max(0, self._settings.amount_to_test(True) - card.learned_front)
            need_back = max(0, self._settings.amount_to_test(False) - card.learned_back)
            if need_front + need_back == 0:
                return False
            return self._rng.randrange(need_front + need_back) < need_back

        return mode is SidesMode.FLIPPED

    def _fetch_cards(
        self,
        selected_cards: Iterable[Card],
        learn_unlearned: bool,
        learn_expired: bool,
    ) -> EquivalenceClassSet[CardInfo]:
        cards: list[Card] = []
        if learn_unlearned:
            cards.extend(self._category.unlearned_cards())
        if learn_expired:
            cards.extend(self._category.expired_cards(self._clock()))
        if not learn_unlearned and not learn_expired:
            cards.extend(selected_cards)

        infos: list[CardInfo] = []
        for card in cards:
            if card in self._infos:
                continue
            if card.category is None:
                logger.warning("Skipping card %r: it does not belong to a category", card.front)
                continue
            info = self._infos[card] = CardInfo.for_card(card)
            infos.append(info)

        self._shuffle_levels(infos)
        return EquivalenceClassSet(self._sort_key, infos, rng=self._rng)

    def _shuffle_levels(self, infos: list[CardInfo]) -> None:
        """Move a share of the cards onto a random other level present."""
        levels = sorted({info.card_level for info in infos})
        if len(levels) < 2:
            return

        count = int(self._settings.shuffle_ratio * len(infos))
        for info in self._rng.sample(infos, count):
            info.level = self._rng.choice([level for level in levels if level != info.card_level])

        logger.debug("Shuffled %d of %d cards onto other levels", count, len(infos))

    def _create_category_order(self) -> dict[Category | None, int]:
        """Map every category of the subtree to its position in the session."""
        categories = self._category.subtree()
        if self._settings.category_order is CategoryOrder.RANDOM:
            self._rng.shuffle(categories)

        order: dict[Category | None, int] = {
            category: i for i, category in enumerate(categories)
        }
        # Cards without a category come last
        order[None] = len(categories)
        return order

    def _sort_key(self, info: CardInfo) -> tuple[int, int]:
        if not self._settings.group_by_category:
            return (info.level, 0)
        return (info.level, self._category_order.get(info.category, len(self._category_order)))
