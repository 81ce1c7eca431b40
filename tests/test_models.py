"""Tests for the card and category models and the events they emit."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

from leitner.models import Card, CardEvent, CardEventType, Category

NOW = datetime(2024, 1, 1, 10, 0)


def _make_handler() -> MagicMock:
    return MagicMock(spec=["handle_card_event"])


def _events(handler: MagicMock) -> list[CardEvent]:
    return [call.args[0] for call in handler.handle_card_event.call_args_list]


# --- Card ---


class TestCard:
    def test_identity_equality(self) -> None:
        assert Card("q", "a") != Card("q", "a")

    def test_unlearned(self) -> None:
        assert Card("q", "a").is_unlearned()
        assert not Card("q", "a", level=1).is_unlearned()

    def test_expired(self) -> None:
        card = Card("q", "a", level=2, date_expired=NOW - timedelta(minutes=1))
        assert card.is_expired(NOW)
        assert not card.is_learned(NOW)

    def test_not_yet_expired(self) -> None:
        card = Card("q", "a", level=2, date_expired=NOW + timedelta(days=1))
        assert not card.is_expired(NOW)
        assert card.is_learned(NOW)

    def test_level_zero_never_expires(self) -> None:
        card = Card("q", "a", level=0, date_expired=NOW - timedelta(days=1))
        assert not card.is_expired(NOW)

    def test_learned_amount(self) -> None:
        card = Card("q", "a", learned_front=2, learned_back=1)
        assert card.learned_amount(True) == 2
        assert card.learned_amount(False) == 1
        assert card.has_side_progress()
        card.reset_learned_amounts()
        assert not card.has_side_progress()


# --- Category tree ---


class TestCategoryTree:
    def setup_method(self) -> None:
        self.root = Category(name="Root")
        self.french = self.root.add_child("French")
        self.verbs = self.french.add_child("Verbs")
        self.spanish = self.root.add_child("Spanish")

    def test_root(self) -> None:
        assert self.verbs.root is self.root
        assert self.root.root is self.root

    def test_subtree_is_pre_order(self) -> None:
        names = [category.name for category in self.root.subtree()]
        assert names == ["Root", "French", "Verbs", "Spanish"]

    def test_unlearned_and_expired_cards(self) -> None:
        new = self.verbs.add_card(Card("être", "to be"))
        due = self.french.add_card(
            Card("chat", "cat", level=1, date_expired=NOW - timedelta(hours=1))
        )
        self.french.add_card(Card("chien", "dog", level=1, date_expired=NOW + timedelta(hours=1)))
        self.spanish.add_card(Card("gato", "cat"))

        assert self.french.unlearned_cards() == [new]
        assert self.french.expired_cards(NOW) == [due]
        assert len(self.root.all_cards()) == 4


# --- Events ---


class TestCategoryEvents:
    def setup_method(self) -> None:
        self.root = Category(name="Root")
        self.child = self.root.add_child("Child")
        self.handler = _make_handler()
        self.child.add_handler(self.handler)

    def test_handlers_live_on_root(self) -> None:
        card = self.root.add_card(Card("q", "a"))
        event = _events(self.handler)[0]
        assert event.type is CardEventType.ADDED
        assert event.card is card
        assert event.category is self.root

    def test_remove_card(self) -> None:
        card = self.child.add_card(Card("q", "a"))
        self.child.remove_card(card)
        assert card.category is None
        assert card not in self.child.cards
        assert _events(self.handler)[-1].type is CardEventType.REMOVED

    def test_move_card(self) -> None:
        card = self.root.add_card(Card("q", "a"))
        self.root.move_card(card, self.child)
        types = [event.type for event in _events(self.handler)]
        assert types == [CardEventType.ADDED, CardEventType.REMOVED, CardEventType.ADDED]
        assert card.category is self.child

    def test_raise_card_level(self) -> None:
        card = self.child.add_card(Card("q", "a", level=1, learned_front=1))
        expires = NOW + timedelta(days=2)
        self.child.raise_card_level(card, NOW, expires)

        assert card.level == 2
        assert card.date_tested == NOW
        assert card.date_expired == expires
        assert card.tests_total == 1
        assert card.tests_passed == 1
        assert card.learned_front == 0
        assert _events(self.handler)[-1].type is CardEventType.DECK_CHANGED

    def test_reset_card_level(self) -> None:
        card = self.child.add_card(Card("q", "a", level=4, date_expired=NOW))
        self.child.reset_card_level(card, NOW)

        assert card.level == 0
        assert card.date_expired is None
        assert card.tests_total == 1
        assert card.tests_passed == 0
        assert _events(self.handler)[-1].type is CardEventType.DECK_CHANGED

    def test_reappend_card(self) -> None:
        first = self.child.add_card(Card("q1", "a1"))
        second = self.child.add_card(Card("q2", "a2"))
        self.child.reappend_card(first)
        assert self.child.cards == [second, first]
        assert _events(self.handler)[-1].type is CardEventType.DECK_CHANGED

    def test_increment_learned_amount(self) -> None:
        card = self.child.add_card(Card("q", "a"))
        card.increment_learned_amount(front=False)
        assert card.learned_back == 1
        assert card.learned_front == 0
        assert _events(self.handler)[-1].type is CardEventType.DECK_CHANGED

    def test_remove_handler(self) -> None:
        self.root.remove_handler(self.handler)
        self.child.add_card(Card("q", "a"))
        self.handler.handle_card_event.assert_not_called()

    def test_increment_learned_amount_uses_given_time(self) -> None:
        card = self.child.add_card(Card("q", "a"))
        card.increment_learned_amount(front=True, touched_at=NOW)
        assert card.learned_front == 1
        assert card.date_touched == NOW
