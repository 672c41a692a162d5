"""
CategoryGraph -- the configurable pipeline topology.

===============================================================================
PURPOSE
===============================================================================

Categories form chains by pointing at exactly one successor:

    뽑기 (pulling) -> 자르기 (cutting) -> 포장 (packing) -> 운송 (transport)

Several independent chains may coexist. The start of a chain is any
category that no other category points at.

===============================================================================
INVARIANTS
===============================================================================

C1 (Acyclic): no category can reach itself by following successor links.
    - set_next simulates the forward walk with the new edge in place and
      rejects the edit with CycleError before anything is committed.
    - rewire_path checks every rewired link the same way before committing.
    - path_from still guards every walk with a visited set, so data loaded
      from an older store can never make traversal loop.

C2 (No dangling links): removing a category clears every successor link
    that pointed at it.

C3 (Total order): ``order`` values are the list positions 0..n-1 after every
    mutation that touches ordering.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ONE REPRESENTATION
   The collection is a single ordered tuple of frozen Category values. The
   id index is built on demand from a snapshot.

2. SNAPSHOT READS
   Every mutation builds a new tuple and swaps it in under a lock. Readers
   take ``snapshot()`` and work on an immutable value with no locking, which
   is what the resolver and the transition engine receive as a parameter.

3. USAGE CHECKS BELONG TO THE CALLER
   ``remove`` takes the ids of jobs still referencing the category. The
   graph only reports the conflict (InUseError); deciding where those ids
   come from is the service layer's job.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterable, Sequence
from uuid import uuid4

from fieldwork_kernel.domain.category import Category, CategoryRate, require_name
from fieldwork_kernel.exceptions import (
    CategoryNotFoundError,
    CycleError,
    InUseError,
    RateNotFoundError,
    ValidationError,
)

_DIRECTIONS = ("up", "down")


def _new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class CategoryGraphSnapshot:
    """
    Immutable view of the category collection at one point in time.

    Contract:
        Pure functions over ``categories``; safe to share across threads.
    """

    categories: tuple[Category, ...] = ()

    def index(self) -> dict[str, Category]:
        """Lookup-by-id index, built on demand."""
        return {c.id: c for c in self.categories}

    def get(self, category_id: str) -> Category | None:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def require(self, category_id: str) -> Category:
        category = self.get(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    def __contains__(self, category_id: object) -> bool:
        return any(c.id == category_id for c in self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def path_from(self, category_id: str) -> list[Category]:
        """
        Walk successor links starting at ``category_id``.

        Stops at a missing link, an unknown id, or a revisit (the repeated
        category is not included). An unknown start yields an empty path.
        """
        by_id = self.index()
        path: list[Category] = []
        visited: set[str] = set()
        current_id: str | None = category_id

        while current_id is not None and current_id not in visited:
            category = by_id.get(current_id)
            if category is None:
                break
            path.append(category)
            visited.add(current_id)
            current_id = category.next_category_id

        return path

    def starting_categories(self) -> list[Category]:
        """
        Pipeline entry points: categories no other category points at.

        Falls back to the full collection when none qualify (empty or fully
        cyclic data) so callers always have something to start from.
        """
        targets = {
            c.next_category_id for c in self.categories if c.next_category_id is not None
        }
        starts = [c for c in self.categories if c.id not in targets]
        return starts if starts else list(self.categories)

    def reaches(self, from_id: str, target_id: str) -> bool:
        """True when ``target_id`` lies on the path starting at ``from_id``."""
        return any(c.id == target_id for c in self.path_from(from_id))

    def next_category_options(self, category_id: str) -> list[Category]:
        """
        Categories that may legally become the successor of ``category_id``.

        Excludes the category itself and every category whose path already
        reaches it (linking to those would close a loop).
        """
        self.require(category_id)
        return [
            c
            for c in self.categories
            if c.id != category_id and not self.reaches(c.id, category_id)
        ]


class CategoryGraph:
    """
    Mutable, lock-serialized collection of categories.

    Contract:
        All mutations go through this class and are serialized by an
        internal lock. Reads delegate to the current snapshot.

    Guarantees:
        - C1, C2 and C3 from the module docstring hold after every call.
        - A failed mutation leaves the graph unchanged.
    """

    def __init__(
        self,
        categories: Iterable[Category] = (),
        id_factory: Callable[[], str] = _new_id,
    ):
        # Stored orders may have gaps or duplicates; positions are what count.
        ordered = _renumbered(sorted(categories, key=lambda c: c.order))
        self._snapshot = CategoryGraphSnapshot(ordered)
        self._id_factory = id_factory
        self._lock = threading.RLock()

    @classmethod
    def from_snapshot(
        cls,
        snapshot: CategoryGraphSnapshot,
        id_factory: Callable[[], str] = _new_id,
    ) -> CategoryGraph:
        return cls(snapshot.categories, id_factory=id_factory)

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(self) -> CategoryGraphSnapshot:
        return self._snapshot

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._snapshot.categories

    def get(self, category_id: str) -> Category:
        return self._snapshot.require(category_id)

    def path_from(self, category_id: str) -> list[Category]:
        return self._snapshot.path_from(category_id)

    def starting_categories(self) -> list[Category]:
        return self._snapshot.starting_categories()

    def next_category_options(self, category_id: str) -> list[Category]:
        return self._snapshot.next_category_options(category_id)

    def __len__(self) -> int:
        return len(self._snapshot)

    # =========================================================================
    # Category lifecycle
    # =========================================================================

    def add_category(self, name: str, description: str | None = None) -> Category:
        """Append a new category at the end of the ordering."""
        clean = require_name(name)
        with self._lock:
            current = self._snapshot.categories
            category = Category(
                id=self._id_factory(),
                name=clean,
                order=len(current),
                description=description,
            )
            self._commit(current + (category,))
            return category

    def rename(self, category_id: str, name: str) -> Category:
        clean = require_name(name)
        with self._lock:
            category = self._snapshot.require(category_id)
            updated = replace(category, name=clean)
            self._commit(self._replaced(updated))
            return updated

    def remove(
        self,
        category_id: str,
        referencing_job_ids: Sequence[str] = (),
    ) -> Category:
        """
        Delete a category and clear every successor link pointing at it.

        Raises:
            CategoryNotFoundError: unknown id.
            InUseError: ``referencing_job_ids`` is non-empty; nothing changes.
        """
        with self._lock:
            category = self._snapshot.require(category_id)
            if referencing_job_ids:
                raise InUseError(category_id, list(referencing_job_ids))

            remaining = []
            for c in self._snapshot.categories:
                if c.id == category_id:
                    continue
                if c.next_category_id == category_id:
                    c = replace(c, next_category_id=None)
                remaining.append(c)
            self._commit(_renumbered(remaining))
            return category

    # =========================================================================
    # Links
    # =========================================================================

    def set_next(self, category_id: str, next_category_id: str | None) -> Category:
        """
        Set or clear the successor of ``category_id``.

        Raises:
            CategoryNotFoundError: either id is unknown.
            CycleError: ``category_id`` would become reachable from itself.
        """
        with self._lock:
            snapshot = self._snapshot
            category = snapshot.require(category_id)
            if next_category_id is not None:
                snapshot.require(next_category_id)
                loop = _loop_through_new_edge(snapshot, category_id, next_category_id)
                if loop:
                    raise CycleError(category_id, next_category_id, loop)

            updated = replace(category, next_category_id=next_category_id)
            self._commit(self._replaced(updated))
            return updated

    def rewire_path(self, ordered_ids: Sequence[str]) -> list[Category]:
        """
        Link ``ordered_ids`` into one chain in the given order.

        ``ordered_ids[i]`` points at ``ordered_ids[i + 1]`` and the last
        entry's successor is cleared. Applied atomically.

        Raises:
            ValidationError: empty input or duplicate ids.
            CategoryNotFoundError: an id is unknown.
            CycleError: a rewired link would lead back into the path.
        """
        if not ordered_ids:
            raise ValidationError("Path must contain at least one category", field="ordered_ids")
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Path contains duplicate categories", field="ordered_ids")

        with self._lock:
            snapshot = self._snapshot
            for category_id in ordered_ids:
                snapshot.require(category_id)

            links = {
                category_id: (ordered_ids[i + 1] if i + 1 < len(ordered_ids) else None)
                for i, category_id in enumerate(ordered_ids)
            }
            rewired = tuple(
                replace(c, next_category_id=links[c.id]) if c.id in links else c
                for c in snapshot.categories
            )
            candidate = CategoryGraphSnapshot(rewired)
            for category_id, next_category_id in links.items():
                if next_category_id is None:
                    continue
                loop = _loop_through_new_edge(candidate, category_id, next_category_id)
                if loop:
                    raise CycleError(category_id, next_category_id, loop)
            self._commit(rewired)
            return self._snapshot.path_from(ordered_ids[0])

    def move_in_path(self, start_category_id: str, index: int, direction: str) -> list[Category]:
        """
        Swap the path entry at ``index`` with its neighbour and rewire.

        Moving the first entry up or the last entry down is a no-op.
        """
        _require_direction(direction)
        with self._lock:
            self._snapshot.require(start_category_id)
            path_ids = [c.id for c in self._snapshot.path_from(start_category_id)]
            if not 0 <= index < len(path_ids):
                raise ValidationError(
                    f"Index {index} outside path of length {len(path_ids)}", field="index"
                )
            target = index - 1 if direction == "up" else index + 1
            if target < 0 or target >= len(path_ids):
                return self._snapshot.path_from(start_category_id)
            path_ids[index], path_ids[target] = path_ids[target], path_ids[index]
            return self.rewire_path(path_ids)

    # =========================================================================
    # Ordering
    # =========================================================================

    def reorder(self, new_ordered_ids: Sequence[str]) -> list[Category]:
        """
        Replace the display ordering.

        Raises:
            ValidationError: ``new_ordered_ids`` is not exactly the current
                id multiset (no drops, additions or duplicates).
        """
        with self._lock:
            current = self._snapshot.categories
            if Counter(new_ordered_ids) != Counter(c.id for c in current):
                raise ValidationError(
                    "Reorder must list every category exactly once",
                    field="new_ordered_ids",
                )
            by_id = self._snapshot.index()
            self._commit(_renumbered(by_id[i] for i in new_ordered_ids))
            return list(self._snapshot.categories)

    def move(self, category_id: str, direction: str) -> list[Category]:
        """Swap a category with its display neighbour; no-op at the edges."""
        _require_direction(direction)
        with self._lock:
            ids = [c.id for c in self._snapshot.categories]
            if category_id not in ids:
                raise CategoryNotFoundError(category_id)
            position = ids.index(category_id)
            target = position - 1 if direction == "up" else position + 1
            if target < 0 or target >= len(ids):
                return list(self._snapshot.categories)
            ids[position], ids[target] = ids[target], ids[position]
            return self.reorder(ids)

    # =========================================================================
    # Rate items
    # =========================================================================

    def add_rate(
        self,
        category_id: str,
        name: str,
        default_price: Decimal | int | str,
        unit: str,
        description: str | None = None,
    ) -> CategoryRate:
        with self._lock:
            category = self._snapshot.require(category_id)
            rate = CategoryRate(
                id=self._id_factory(),
                name=name,
                default_price=default_price,
                unit=unit,
                description=description,
            )
            self._commit(self._replaced(replace(category, rates=category.rates + (rate,))))
            return rate

    def update_rate(
        self,
        category_id: str,
        rate_id: str,
        *,
        name: str | None = None,
        default_price: Decimal | int | str | None = None,
        unit: str | None = None,
        description: str | None = None,
    ) -> CategoryRate:
        with self._lock:
            category = self._snapshot.require(category_id)
            rate = category.find_rate(rate_id)
            if rate is None:
                raise RateNotFoundError(category_id, rate_id)
            updated = CategoryRate(
                id=rate.id,
                name=rate.name if name is None else name,
                default_price=rate.default_price if default_price is None else default_price,
                unit=rate.unit if unit is None else unit,
                description=rate.description if description is None else description,
            )
            rates = tuple(updated if r.id == rate_id else r for r in category.rates)
            self._commit(self._replaced(replace(category, rates=rates)))
            return updated

    def remove_rate(self, category_id: str, rate_id: str) -> None:
        with self._lock:
            category = self._snapshot.require(category_id)
            if category.find_rate(rate_id) is None:
                raise RateNotFoundError(category_id, rate_id)
            rates = tuple(r for r in category.rates if r.id != rate_id)
            self._commit(self._replaced(replace(category, rates=rates)))

    # =========================================================================
    # Internals
    # =========================================================================

    def _replaced(self, updated: Category) -> tuple[Category, ...]:
        return tuple(
            updated if c.id == updated.id else c for c in self._snapshot.categories
        )

    def _commit(self, categories: Iterable[Category]) -> None:
        self._snapshot = CategoryGraphSnapshot(tuple(categories))


def _renumbered(categories: Iterable[Category]) -> tuple[Category, ...]:
    return tuple(
        c if c.order == position else replace(c, order=position)
        for position, c in enumerate(categories)
    )


def _require_direction(direction: str) -> None:
    if direction not in _DIRECTIONS:
        raise ValidationError(
            f"direction must be 'up' or 'down', got {direction!r}", field="direction"
        )


def _loop_through_new_edge(
    snapshot: CategoryGraphSnapshot,
    category_id: str,
    next_category_id: str,
) -> list[str]:
    """
    Simulate the walk from ``next_category_id`` with the new edge in place.

    Returns the loop ``[category_id, next_category_id, ..., category_id]``
    when the walk comes back to ``category_id``, otherwise an empty list.
    The walk is bounded by a visited set so pre-existing loops elsewhere
    cannot make it run forever.
    """
    by_id = snapshot.index()
    loop = [category_id]
    visited: set[str] = set()
    current_id: str | None = next_category_id

    while current_id is not None and current_id not in visited:
        loop.append(current_id)
        if current_id == category_id:
            return loop
        visited.add(current_id)
        category = by_id.get(current_id)
        if category is None:
            break
        current_id = category.next_category_id

    return []
