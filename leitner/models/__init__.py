"""In-memory card and category models driven by learn sessions."""

from leitner.models.card import Card
from leitner.models.category import Category, CardEvent, CardEventHandler, CardEventType

__all__ = ["Card", "CardEvent", "CardEventHandler", "CardEventType", "Category"]
