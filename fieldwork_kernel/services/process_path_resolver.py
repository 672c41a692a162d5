"""
Process-Path Resolver -- planning and progress over category chains.

Responsibility:
    Reconstructs the ordered chain of a category from an explicitly passed
    ``CategoryGraphSnapshot``, populates jobs and drafts with one work unit
    per chain step, and summarizes job progress along the chain.

Architecture position:
    Services layer, pure reads over snapshots. Safe to call concurrently
    with graph mutations (snapshots are immutable).

Progress convention:
    percentage = round_half_up((completed + 0.5 * in_progress) / total * 100)

    In-progress work gets half credit so a job that has started shows
    movement before its first step finishes. Existing displays depend on
    this exact formula.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from fieldwork_kernel.domain.category import Category
from fieldwork_kernel.domain.category_graph import CategoryGraphSnapshot
from fieldwork_kernel.domain.schedule import CategorySchedule, ScheduleAggregate
from fieldwork_kernel.domain.stages import WorkStage
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("services.process_path")

_HALF = Decimal("0.5")
_HUNDRED = Decimal("100")


class _UnitContainer(Protocol):
    category_schedules: list[CategorySchedule]

    def append_category(
        self, category: Category, scheduled_start: datetime | None = None
    ) -> CategorySchedule | None:
        ...


@dataclass(frozen=True)
class ProgressSummary:
    completed: int
    total: int
    percentage: int


class ProcessPathResolver:
    """Chain resolution and progress reporting over graph snapshots."""

    def full_path(self, snapshot: CategoryGraphSnapshot, start_category_id: str) -> list[Category]:
        """Ordered chain starting at ``start_category_id`` (cycle-guarded)."""
        return snapshot.path_from(start_category_id)

    def populate(
        self,
        target: _UnitContainer,
        snapshot: CategoryGraphSnapshot,
        start_category_id: str,
        scheduled_start: datetime | None = None,
    ) -> list[CategorySchedule]:
        """
        Add one work unit per chain step not already present.

        Idempotent: categories that already have a unit are skipped, so
        calling this twice never duplicates work. Returns the new units in
        chain order.
        """
        added: list[CategorySchedule] = []
        for category in self.full_path(snapshot, start_category_id):
            unit = target.append_category(category, scheduled_start)
            if unit is not None:
                added.append(unit)
        logger.debug(
            "path_populated",
            extra={
                "start_category_id": start_category_id,
                "added": [u.category_id for u in added],
            },
        )
        return added

    def resolve_start(
        self,
        aggregate: ScheduleAggregate,
        snapshot: CategoryGraphSnapshot,
    ) -> str | None:
        """
        Start category of the chain the job follows.

        The first entry point whose chain contains the job's first unit;
        when none does (for example the unit's category was deleted or is
        mid-chain of a broken link) the first unit's category itself.
        """
        if not aggregate.category_schedules:
            return None
        first_id = aggregate.category_schedules[0].category_id
        for start in snapshot.starting_categories():
            if snapshot.reaches(start.id, first_id):
                return start.id
        return first_id

    def progress_summary(
        self,
        aggregate: ScheduleAggregate,
        snapshot: CategoryGraphSnapshot,
        start_category_id: str | None = None,
    ) -> ProgressSummary:
        """
        Progress of the job along its resolved chain.

        Only units whose category lies on the resolved start-to-end path
        count. Cancelled units count toward the total with no credit.
        """
        start = start_category_id or self.resolve_start(aggregate, snapshot)
        if start is None:
            return ProgressSummary(completed=0, total=0, percentage=0)

        path_ids = {c.id for c in self.full_path(snapshot, start)}
        units = [cs for cs in aggregate.category_schedules if cs.category_id in path_ids]
        total = len(units)
        if total == 0:
            return ProgressSummary(completed=0, total=0, percentage=0)

        completed = sum(1 for cs in units if cs.stage is WorkStage.COMPLETED)
        in_progress = sum(1 for cs in units if cs.stage is WorkStage.IN_PROGRESS)
        ratio = (Decimal(completed) + _HALF * in_progress) / Decimal(total) * _HUNDRED
        percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return ProgressSummary(completed=completed, total=total, percentage=percentage)
