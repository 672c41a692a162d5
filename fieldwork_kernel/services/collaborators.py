"""
Collaborator contracts consumed by the process engine.

Responsibility:
    Structural protocols for the worker directory, the job and category
    stores, and the stage-history sink, plus the in-memory implementations
    used by tests and by callers that keep reference data in process.

Architecture position:
    Kernel > Services. The SQLAlchemy implementations of the store
    protocols live in ``fieldwork_kernel.services.sql_repositories``.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from fieldwork_kernel.domain.category_graph import CategoryGraph, CategoryGraphSnapshot
from fieldwork_kernel.domain.schedule import ScheduleAggregate
from fieldwork_kernel.domain.worker import Worker
from fieldwork_kernel.exceptions import ImmutabilityViolationError, ScheduleNotFoundError

HistorySink = Callable[[dict[str, Any]], None]


@runtime_checkable
class WorkerDirectory(Protocol):
    def get_worker(self, worker_id: str) -> Worker | None:
        ...

    def list_workers_eligible_for_category(self, category_id: str) -> list[Worker]:
        ...


@runtime_checkable
class ScheduleRepository(Protocol):
    def load_aggregate(self, schedule_id: str) -> ScheduleAggregate:
        ...

    def save_aggregate(self, aggregate: ScheduleAggregate) -> None:
        ...

    def find_jobs_referencing_category(self, category_id: str) -> list[str]:
        ...


@runtime_checkable
class CategoryGraphRepository(Protocol):
    def load_category_graph(self) -> CategoryGraph:
        ...

    def save_category_graph(self, graph: CategoryGraph) -> None:
        ...


class InMemoryWorkerDirectory:
    """Worker directory over a fixed set of workers, ordered by name."""

    def __init__(self, workers: Iterable[Worker] = ()):
        self._workers: dict[str, Worker] = {w.id: w for w in workers}

    def add(self, worker: Worker) -> None:
        self._workers[worker.id] = worker

    def get_worker(self, worker_id: str) -> Worker | None:
        return self._workers.get(worker_id)

    def list_workers_eligible_for_category(self, category_id: str) -> list[Worker]:
        eligible = [w for w in self._workers.values() if w.is_eligible_for(category_id)]
        return sorted(eligible, key=lambda w: w.name)


class InMemoryHistorySink:
    """Append-only list of stage transition records."""

    def __init__(self) -> None:
        self._records: list[dict[str, Any]] = []

    def __call__(self, record: dict[str, Any]) -> None:
        self._records.append(dict(record))

    @property
    def records(self) -> tuple[dict[str, Any], ...]:
        return tuple(self._records)

    def for_schedule(self, schedule_id: str) -> list[dict[str, Any]]:
        return [r for r in self._records if r.get("schedule_id") == schedule_id]


class InMemoryScheduleRepository:
    """
    Job store kept in a dict.

    Aggregates are deep-copied on save and on load, so changes made to a
    loaded aggregate are invisible until ``save_aggregate`` is called.
    """

    def __init__(self, aggregates: Iterable[ScheduleAggregate] = ()):
        self._aggregates: dict[str, ScheduleAggregate] = {}
        for aggregate in aggregates:
            self.save_aggregate(aggregate)

    def load_aggregate(self, schedule_id: str) -> ScheduleAggregate:
        stored = self._aggregates.get(schedule_id)
        if stored is None:
            raise ScheduleNotFoundError(schedule_id)
        return copy.deepcopy(stored)

    def save_aggregate(self, aggregate: ScheduleAggregate) -> None:
        stored = self._aggregates.get(aggregate.id)
        if stored is not None:
            known = len(stored.stage_history)
            if aggregate.stage_history[:known] != stored.stage_history:
                raise ImmutabilityViolationError(
                    entity_type="StageHistory",
                    entity_id=aggregate.id,
                    reason="stored stage history cannot be rewritten",
                )
            known = len(stored.additional_settlements)
            if aggregate.additional_settlements[:known] != stored.additional_settlements:
                raise ImmutabilityViolationError(
                    entity_type="AdditionalSettlement",
                    entity_id=aggregate.id,
                    reason="stored additional settlements cannot be rewritten or removed",
                )
        self._aggregates[aggregate.id] = copy.deepcopy(aggregate)

    def find_jobs_referencing_category(self, category_id: str) -> list[str]:
        return sorted(
            a.id
            for a in self._aggregates.values()
            if not a.is_terminal and a.find(category_id) is not None
        )

    def __len__(self) -> int:
        return len(self._aggregates)


class InMemoryCategoryGraphRepository:
    """Category store holding the last saved snapshot."""

    def __init__(self, graph: CategoryGraph | None = None):
        self._snapshot: CategoryGraphSnapshot = (
            graph.snapshot() if graph is not None else CategoryGraphSnapshot(())
        )

    def load_category_graph(self) -> CategoryGraph:
        return CategoryGraph.from_snapshot(self._snapshot)

    def save_category_graph(self, graph: CategoryGraph) -> None:
        self._snapshot = graph.snapshot()
