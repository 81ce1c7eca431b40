"""Randomised draw set partitioned into ordered equivalence classes.

Elements are bucketed by a caller-supplied key (for learn sessions: the
card's deck level, optionally refined by category order). Draws always come
from the lowest class that still has undrawn elements in the current pass,
in random order within the class, so lower decks come first while equally
ranked cards are mixed. Once every class has been drawn through, a new pass
starts with a fresh random order.

Membership is by identity. Each element's key is snapshotted when it enters
the set, so a key that changes later has no effect until
``reset_equivalence_class`` is called for that element.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Hashable, Iterable, Iterator
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_MISSING = object()


def _discard(items: list[T], element: T) -> bool:
    """Remove ``element`` from ``items`` by identity."""
    for i, item in enumerate(items):
        if item is element:
            del items[i]
            return True
    return False


@dataclass
class _EquivalenceClass(Generic[T]):
    """Members sharing one key, plus the ones not yet drawn in this pass."""

    key: Any
    members: dict[int, T] = field(default_factory=dict)
    pending: list[T] = field(default_factory=list)  # drawn from the end


class LoopIterator(Generic[T]):
    """Endless draw sequence over an ``EquivalenceClassSet``.

    The draw position lives in the set itself, so every iterator obtained
    from the same set continues the same pass.
    """

    def __init__(self, owner: EquivalenceClassSet[T]) -> None:
        self._owner = owner

    def __iter__(self) -> LoopIterator[T]:
        return self

    def __next__(self) -> T:
        return self._owner._draw()


class EquivalenceClassSet(Generic[T]):
    """A set that hands out elements lowest equivalence class first."""

    def __init__(
        self,
        key: Callable[[T], Hashable],
        elements: Iterable[T] = (),
        rng: random.Random | None = None,
    ) -> None:
        """Create a set ordering its classes by ``key``.

        Args:
            key: Maps an element to its class. Keys must be hashable and
                mutually comparable.
            elements: Initial members.
            rng: Random source for draw order (injected in tests).
        """
        self._key = key
        self._rng = rng or random.Random()
        self._classes: dict[Any, _EquivalenceClass[T]] = {}
        self._keys: dict[int, Any] = {}  # id(element) -> key snapshot
        self.add_all(elements)

    @property
    def key(self) -> Callable[[T], Hashable]:
        """The ordering key used to bucket elements into classes."""
        return self._key

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, element: object) -> bool:
        key = self._keys.get(id(element), _MISSING)
        if key is _MISSING:
            return False
        return self._classes[key].members.get(id(element)) is element

    def __iter__(self) -> Iterator[T]:
        """Iterate members class by class, lowest key first."""
        for key in sorted(self._classes):
            yield from list(self._classes[key].members.values())

    def __repr__(self) -> str:
        sizes = {key: len(self._classes[key].members) for key in sorted(self._classes)}
        return f"EquivalenceClassSet({sizes})"

    def is_empty(self) -> bool:
        return not self._keys

    # --- Mutation ---

    def add(self, element: T) -> bool:
        """Add an element, eligible to be drawn in the current pass."""
        return self._insert(element, pending=True)

    def add_all(self, elements: Iterable[T]) -> None:
        for element in elements:
            self.add(element)

    def add_expired(self, element: T) -> bool:
        """Add an element that must not be drawn again until the next pass."""
        return self._insert(element, pending=False)

    def remove(self, element: T) -> bool:
        """Remove an element, also dropping it from the pending draw order.

        Returns:
            False if the element was not a member.
        """
        if element not in self:
            return False
        key = self._keys.pop(id(element))
        self._detach(key, element)
        return True

    def reset_equivalence_class(self, element: T) -> bool:
        """Re-evaluate an element's key and move it to its new class.

        Whether the element is still pending in the current pass carries
        over to the new class.

        Returns:
            False if the element was not a member.
        """
        if element not in self:
            return False

        old_key = self._keys[id(element)]
        new_key = self._key(element)
        if new_key == old_key:
            return True

        was_pending = self._detach(old_key, element)
        self._keys[id(element)] = new_key
        self._attach(new_key, element, pending=was_pending)
        return True

    def partition(self, n: int) -> EquivalenceClassSet[T]:
        """Split off ``n`` elements into a new set with the same key.

        Elements are taken lowest class first, in draw order. If ``n`` is at
        least the size of the set, every element moves.
        """
        if n < 0:
            raise ValueError(f"Cannot partition a negative number of elements: {n}")

        taken = list(islice(self._draw_order(), n))
        other: EquivalenceClassSet[T] = EquivalenceClassSet(self._key, rng=self._rng)
        for element in taken:
            self.remove(element)
            other.add(element)
        return other

    # --- Drawing ---

    def loop_iterator(self) -> LoopIterator[T]:
        """Return the endless draw sequence of this set."""
        return LoopIterator(self)

    def _draw(self) -> T:
        if not self._keys:
            raise IndexError("draw from an empty EquivalenceClassSet")

        eq_class = self._first_pending_class()
        if eq_class is None:
            self._start_pass()
            eq_class = self._first_pending_class()
            assert eq_class is not None
        return eq_class.pending.pop()

    def _first_pending_class(self) -> _EquivalenceClass[T] | None:
        for key in sorted(self._classes):
            eq_class = self._classes[key]
            if eq_class.pending:
                return eq_class
        return None

    def _start_pass(self) -> None:
        for eq_class in self._classes.values():
            eq_class.pending = list(eq_class.members.values())
            self._rng.shuffle(eq_class.pending)

    def _draw_order(self) -> Iterator[T]:
        """Yield members in the order they would be drawn from now on."""
        for key in sorted(self._classes):
            eq_class = self._classes[key]
            yield from reversed(eq_class.pending)

            pending_ids = {id(element) for element in eq_class.pending}
            drawn = [e for i, e in eq_class.members.items() if i not in pending_ids]
            self._rng.shuffle(drawn)
            yield from drawn

    # --- Internals ---

    def _insert(self, element: T, pending: bool) -> bool:
        if element in self:
            return False
        key = self._key(element)
        self._keys[id(element)] = key
        self._attach(key, element, pending=pending)
        return True

    def _attach(self, key: Any, element: T, pending: bool) -> None:
        eq_class = self._classes.get(key)
        if eq_class is None:
            eq_class = self._classes[key] = _EquivalenceClass(key=key)
        eq_class.members[id(element)] = element
        if pending:
            eq_class.pending.insert(self._rng.randint(0, len(eq_class.pending)), element)

    def _detach(self, key: Any, element: T) -> bool:
        """Take an element out of its class; return whether it was pending."""
        eq_class = self._classes[key]
        del eq_class.members[id(element)]
        was_pending = _discard(eq_class.pending, element)
        if not eq_class.members:
            del self._classes[key]
        return was_pending
