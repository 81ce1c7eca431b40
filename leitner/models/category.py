"""Category tree holding cards, and the card events it emits.

Every mutation of a card's deck level, position or membership goes through
the card's category, which delivers a typed ``CardEvent`` to each handler
registered on the root of the tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from leitner.config import utcnow
from leitner.models.card import Card

logger = logging.getLogger(__name__)


class CardEventType(Enum):
    """What happened to a card."""

    ADDED = "added"
    REMOVED = "removed"
    DECK_CHANGED = "deck_changed"


@dataclass(frozen=True)
class CardEvent:
    """A change notification for one card in the category tree."""

    type: CardEventType
    card: Card
    category: Category


class CardEventHandler(Protocol):
    def handle_card_event(self, event: CardEvent) -> None: ...


@dataclass(eq=False)
class Category:
    """A node in the category tree, owning an ordered list of cards."""

    name: str
    parent: Category | None = field(default=None, repr=False)
    children: list[Category] = field(default_factory=list, repr=False)
    cards: list[Card] = field(default_factory=list, repr=False)
    _handlers: list[CardEventHandler] = field(default_factory=list, repr=False)

    # --- Tree ---

    @property
    def root(self) -> Category:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def add_child(self, name: str) -> Category:
        """Create and attach a child category."""
        child = Category(name=name, parent=self)
        self.children.append(child)
        return child

    def subtree(self) -> list[Category]:
        """Return this category and all descendants in pre-order."""
        result = [self]
        for child in self.children:
            result.extend(child.subtree())
        return result

    def all_cards(self) -> list[Card]:
        """Return the cards of the whole subtree, category by category."""
        return [card for category in self.subtree() for card in category.cards]

    def unlearned_cards(self) -> list[Card]:
        """Return subtree cards that are still in deck 0."""
        return [card for card in self.all_cards() if card.is_unlearned()]

    def expired_cards(self, now: datetime | None = None) -> list[Card]:
        """Return subtree cards whose review is due."""
        now = now or utcnow()
        return [card for card in self.all_cards() if card.is_expired(now)]

    # --- Event handlers ---

    def add_handler(self, handler: CardEventHandler) -> None:
        """Register a handler for card events of the whole tree."""
        self.root._handlers.append(handler)

    def remove_handler(self, handler: CardEventHandler) -> None:
        handlers = self.root._handlers
        if handler in handlers:
            handlers.remove(handler)

    def _fire(self, event_type: CardEventType, card: Card) -> None:
        event = CardEvent(type=event_type, card=card, category=self)
        # Handlers may detach themselves while handling
        for handler in list(self.root._handlers):
            handler.handle_card_event(event)

    def fire_deck_changed(self, card: Card) -> None:
        self._fire(CardEventType.DECK_CHANGED, card)

    # --- Card membership ---

    def add_card(self, card: Card) -> Card:
        """Append a card to this category."""
        card.category = self
        self.cards.append(card)
        self._fire(CardEventType.ADDED, card)
        return card

    def remove_card(self, card: Card) -> None:
        """Detach a card from this category."""
        self.cards.remove(card)
        card.category = None
        self._fire(CardEventType.REMOVED, card)

    def move_card(self, card: Card, target: Category) -> None:
        """Move a card into another category of the same tree."""
        self.remove_card(card)
        target.add_card(card)

    # --- Card mutation ---

    def raise_card_level(self, card: Card, tested_at: datetime, expires_at: datetime) -> None:
        """Move a card one deck up after it passed."""
        card.level += 1
        card.date_tested = tested_at
        card.date_expired = expires_at
        card.date_touched = tested_at
        card.tests_total += 1
        card.tests_passed += 1
        card.reset_learned_amounts()

        logger.debug("Raised card %r to level %d, due %s", card.front, card.level, expires_at)
        self.fire_deck_changed(card)

    def reset_card_level(self, card: Card, tested_at: datetime) -> None:
        """Send a card back to deck 0 after it failed."""
        card.level = 0
        card.date_tested = tested_at
        card.date_expired = None
        card.date_touched = tested_at
        card.tests_total += 1
        card.reset_learned_amounts()

        logger.debug("Reset card %r to level 0", card.front)
        self.fire_deck_changed(card)

    def reappend_card(self, card: Card) -> None:
        """Move a card to the end of this category's presentation order."""
        self.cards.remove(card)
        self.cards.append(card)
        self.fire_deck_changed(card)
