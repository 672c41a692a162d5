"""
CategoryGraphService -- administration of the work category pipeline.

Responsibility:
    Loads the category graph from its repository, applies one mutation,
    and saves the result.  Deleting a category first asks the job
    repository which live jobs still use it.

Architecture position:
    Kernel > Services -- imperative shell around the pure CategoryGraph.

Invariants enforced:
    ACYCLIC_CHAIN -- delegated to CategoryGraph.set_next / rewire_path.
    - Load-mutate-save cycles are serialized by a service lock, so two
      concurrent link changes cannot each pass the cycle check against a
      stale graph and together close a loop.

Failure modes:
    - Every domain error (ValidationError, CategoryNotFoundError,
      CycleError, InUseError, RateNotFoundError) propagates unchanged after
      a ``category_change_rejected`` warning.  The graph is not saved.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from typing import Any, Callable, Sequence, TypeVar

from fieldwork_kernel.domain.category import Category, CategoryRate
from fieldwork_kernel.domain.category_graph import CategoryGraph, CategoryGraphSnapshot
from fieldwork_kernel.exceptions import FieldworkError
from fieldwork_kernel.logging_config import get_logger
from fieldwork_kernel.services.collaborators import CategoryGraphRepository, ScheduleRepository

logger = get_logger("services.category_graph")

T = TypeVar("T")


class CategoryGraphService:
    """Pipeline administration over a category repository."""

    def __init__(
        self,
        graph_repository: CategoryGraphRepository,
        schedule_repository: ScheduleRepository,
    ):
        self._graphs = graph_repository
        self._schedules = schedule_repository
        self._lock = threading.RLock()

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(self) -> CategoryGraphSnapshot:
        return self._graphs.load_category_graph().snapshot()

    def categories(self) -> list[Category]:
        return list(self.snapshot().categories)

    def path_from(self, category_id: str) -> list[Category]:
        return self.snapshot().path_from(category_id)

    def starting_categories(self) -> list[Category]:
        return self.snapshot().starting_categories()

    def next_category_options(self, category_id: str) -> list[Category]:
        """Categories that may become the successor of ``category_id``."""
        return self.snapshot().next_category_options(category_id)

    # =========================================================================
    # Category lifecycle
    # =========================================================================

    def add_category(self, name: str, description: str | None = None) -> Category:
        category = self._mutate(
            "add_category",
            lambda graph: graph.add_category(name, description),
            category_name=name,
        )
        logger.info(
            "category_added",
            extra={
                "category_id": category.id,
                "category_name": category.name,
                "order": category.order,
            },
        )
        return category

    def rename_category(self, category_id: str, name: str) -> Category:
        category = self._mutate(
            "rename_category",
            lambda graph: graph.rename(category_id, name),
            category_id=category_id,
        )
        logger.info(
            "category_renamed",
            extra={"category_id": category_id, "category_name": category.name},
        )
        return category

    def remove_category(self, category_id: str) -> Category:
        """
        Delete a category that no live job uses.

        Raises:
            InUseError: live jobs still have a work unit for the category;
                the graph is left unchanged.
        """

        def remove(graph: CategoryGraph) -> Category:
            graph.get(category_id)
            referencing = self._schedules.find_jobs_referencing_category(category_id)
            return graph.remove(category_id, referencing)

        category = self._mutate("remove_category", remove, category_id=category_id)
        logger.info(
            "category_removed",
            extra={"category_id": category_id, "category_name": category.name},
        )
        return category

    # =========================================================================
    # Links
    # =========================================================================

    def set_next(self, category_id: str, next_category_id: str | None) -> Category:
        category = self._mutate(
            "set_next",
            lambda graph: graph.set_next(category_id, next_category_id),
            category_id=category_id,
            next_category_id=next_category_id,
        )
        event = "category_linked" if next_category_id else "category_unlinked"
        logger.info(
            event,
            extra={"category_id": category_id, "next_category_id": next_category_id},
        )
        return category

    def rewire_path(self, ordered_ids: Sequence[str]) -> list[Category]:
        path = self._mutate(
            "rewire_path",
            lambda graph: graph.rewire_path(ordered_ids),
            ordered_ids=list(ordered_ids),
        )
        logger.info("category_path_rewired", extra={"path": [c.id for c in path]})
        return path

    def move_in_path(self, start_category_id: str, index: int, direction: str) -> list[Category]:
        path = self._mutate(
            "move_in_path",
            lambda graph: graph.move_in_path(start_category_id, index, direction),
            category_id=start_category_id,
            index=index,
            direction=direction,
        )
        logger.info("category_path_rewired", extra={"path": [c.id for c in path]})
        return path

    # =========================================================================
    # Ordering
    # =========================================================================

    def reorder(self, new_ordered_ids: Sequence[str]) -> list[Category]:
        ordered = self._mutate(
            "reorder",
            lambda graph: graph.reorder(new_ordered_ids),
            count=len(new_ordered_ids),
        )
        logger.info("categories_reordered", extra={"order": [c.id for c in ordered]})
        return ordered

    def move_category(self, category_id: str, direction: str) -> list[Category]:
        ordered = self._mutate(
            "move_category",
            lambda graph: graph.move(category_id, direction),
            category_id=category_id,
            direction=direction,
        )
        logger.info("categories_reordered", extra={"order": [c.id for c in ordered]})
        return ordered

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
        rate = self._mutate(
            "add_rate",
            lambda graph: graph.add_rate(category_id, name, default_price, unit, description),
            category_id=category_id,
        )
        logger.info(
            "category_rate_added",
            extra={
                "category_id": category_id,
                "rate_id": rate.id,
                "default_price": rate.default_price,
            },
        )
        return rate

    def update_rate(self, category_id: str, rate_id: str, **changes: Any) -> CategoryRate:
        rate = self._mutate(
            "update_rate",
            lambda graph: graph.update_rate(category_id, rate_id, **changes),
            category_id=category_id,
            rate_id=rate_id,
        )
        logger.info("category_rate_updated", extra={"category_id": category_id, "rate_id": rate_id})
        return rate

    def remove_rate(self, category_id: str, rate_id: str) -> None:
        self._mutate(
            "remove_rate",
            lambda graph: graph.remove_rate(category_id, rate_id),
            category_id=category_id,
            rate_id=rate_id,
        )
        logger.info("category_rate_removed", extra={"category_id": category_id, "rate_id": rate_id})

    # =========================================================================
    # Internals
    # =========================================================================

    def _mutate(self, operation: str, change: Callable[[CategoryGraph], T], **fields: Any) -> T:
        with self._lock:
            graph = self._graphs.load_category_graph()
            try:
                result = change(graph)
            except FieldworkError as exc:
                logger.warning(
                    "category_change_rejected",
                    extra={"operation": operation, "error_code": exc.code, **fields},
                )
                raise
            self._graphs.save_category_graph(graph)
            return result
