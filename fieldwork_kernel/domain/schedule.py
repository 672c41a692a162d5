"""
Schedule -- jobs and their per-category work units.

===============================================================================
PURPOSE
===============================================================================

A job (ScheduleAggregate) is one farmer + one field occurrence. It owns one
CategorySchedule per category of its work flow:

    job  ──┬── 뽑기  [완료, worker=김반장, amount=300000]
           ├── 자르기 [진행중, worker=이반장]
           └── 포장  [예정]

Each unit moves through its own stages; the job total is derived from the
units and the ad hoc settlements registered against them.

===============================================================================
SNAPSHOT FIELDS
===============================================================================

``category_name`` and ``worker_name`` are value copies taken when the unit
is created and when the worker is assigned. Renaming a category or a worker
later does not change existing units. This keeps printed statements and the
stage history readable exactly as they were at the time.

===============================================================================
APPEND-ONLY COLLECTIONS
===============================================================================

``stage_history`` and ``additional_settlements`` are tuples. The only way to
extend them is ``record_stage`` / ``add_settlement``, which build a new
tuple with the entry appended; existing entries are never replaced or
reordered.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Callable

from fieldwork_kernel.domain import settlement
from fieldwork_kernel.domain.category import Category
from fieldwork_kernel.domain.stages import PaymentStatus, WorkStage, WorkType
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    RateEntry,
    RateInfo,
    StageRecord,
    TransportInfo,
)
from fieldwork_kernel.exceptions import CategoryScheduleNotFoundError, ValidationError


@dataclass
class CategorySchedule:
    """
    One job's unit of work for one category.

    Contract:
        Created in stage SCHEDULED. ``stage``, ``worker_*``, ``amount``,
        ``rate`` and ``settlement_skipped`` are changed only by the stage
        transition engine.
    """

    category_id: str
    category_name: str
    stage: WorkStage = WorkStage.SCHEDULED
    worker_id: str | None = None
    worker_name: str | None = None
    scheduled_start: datetime | None = None
    amount: Decimal | None = None
    rate: RateEntry | None = None
    settlement_skipped: bool = False
    memo: str | None = None

    @classmethod
    def for_category(
        cls,
        category: Category,
        scheduled_start: datetime | None = None,
    ) -> CategorySchedule:
        return cls(
            category_id=category.id,
            category_name=category.name,
            scheduled_start=scheduled_start,
        )

    @property
    def has_worker(self) -> bool:
        return bool(self.worker_id and self.worker_id.strip())


@dataclass(frozen=True)
class FieldRef:
    """A field selected for a job, with an optional sub-location."""

    id: str
    name: str | None = None
    location_id: str | None = None
    flag_number: str | None = None


@dataclass
class ScheduleAggregate:
    """
    A job: one farmer, one field, an ordered list of work units.

    Guarantees:
        - ``total_settlement`` is recomputed from the live collections on
          every read.
        - ``stage_history`` and ``additional_settlements`` only grow.
    """

    id: str
    farmer_id: str
    field_id: str
    farmer_name: str | None = None
    field_name: str | None = None
    location_id: str | None = None
    flag_number: str | None = None
    work_type: WorkType | None = None
    category_schedules: list[CategorySchedule] = field(default_factory=list)
    rate_info: RateInfo = field(default_factory=RateInfo)
    transport_info: TransportInfo | None = None
    additional_settlements: tuple[AdditionalSettlement, ...] = ()
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_id: str | None = None
    stage_history: tuple[StageRecord, ...] = ()
    scheduled_start: datetime | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    memo: str | None = None
    created_at: datetime | None = None

    # -------------------------------------------------------------------------
    # Work units
    # -------------------------------------------------------------------------

    @property
    def category_ids(self) -> list[str]:
        return [cs.category_id for cs in self.category_schedules]

    def find(self, category_id: str) -> CategorySchedule | None:
        for cs in self.category_schedules:
            if cs.category_id == category_id:
                return cs
        return None

    def require(self, category_id: str) -> CategorySchedule:
        cs = self.find(category_id)
        if cs is None:
            raise CategoryScheduleNotFoundError(self.id, category_id)
        return cs

    def append_category(
        self,
        category: Category,
        scheduled_start: datetime | None = None,
    ) -> CategorySchedule | None:
        """Add a unit for ``category`` unless one exists; returns the new unit."""
        if self.find(category.id) is not None:
            return None
        unit = CategorySchedule.for_category(
            category, scheduled_start if scheduled_start is not None else self.scheduled_start
        )
        self.category_schedules.append(unit)
        return unit

    @property
    def is_terminal(self) -> bool:
        return bool(self.category_schedules) and all(
            cs.stage.is_terminal for cs in self.category_schedules
        )

    @property
    def overall_stage(self) -> WorkStage:
        """
        Job-level stage shown in lists.

        All cancelled -> CANCELLED; all terminal -> COMPLETED; any unit
        started or finished -> IN_PROGRESS; any preparing -> PREPARING;
        otherwise SCHEDULED.
        """
        stages = [cs.stage for cs in self.category_schedules]
        if not stages:
            return WorkStage.SCHEDULED
        if all(s is WorkStage.CANCELLED for s in stages):
            return WorkStage.CANCELLED
        if all(s.is_terminal for s in stages):
            return WorkStage.COMPLETED
        if any(s in (WorkStage.IN_PROGRESS, WorkStage.COMPLETED) for s in stages):
            return WorkStage.IN_PROGRESS
        if any(s is WorkStage.PREPARING for s in stages):
            return WorkStage.PREPARING
        return WorkStage.SCHEDULED

    # -------------------------------------------------------------------------
    # Append-only collections
    # -------------------------------------------------------------------------

    def record_stage(self, record: StageRecord) -> None:
        self.stage_history = self.stage_history + (record,)

    def add_settlement(self, entry: AdditionalSettlement) -> None:
        self.add_settlements((entry,))

    def add_settlements(self, entries: tuple[AdditionalSettlement, ...]) -> None:
        self.additional_settlements = self.additional_settlements + tuple(entries)

    def history_for(self, category_id: str) -> list[StageRecord]:
        return [r for r in self.stage_history if r.category_id == category_id]

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    @property
    def total_settlement(self) -> Decimal:
        return settlement.total_settlement(
            self.category_schedules, self.additional_settlements
        )

    def settlement_breakdown(self) -> settlement.SettlementBreakdown:
        return settlement.breakdown(self.category_schedules, self.additional_settlements)


@dataclass
class ScheduleDraft:
    """
    A job being composed before submission.

    Work units can be added and removed freely here; once submitted they can
    only be cancelled. Submitting produces one ScheduleAggregate per field.
    """

    farmer_id: str
    farmer_name: str | None = None
    fields: list[FieldRef] = field(default_factory=list)
    work_type: WorkType | None = None
    category_schedules: list[CategorySchedule] = field(default_factory=list)
    rate_info: RateInfo = field(default_factory=RateInfo)
    transport_info: TransportInfo | None = None
    scheduled_start: datetime | None = None
    memo: str | None = None

    @property
    def category_ids(self) -> list[str]:
        return [cs.category_id for cs in self.category_schedules]

    def find(self, category_id: str) -> CategorySchedule | None:
        for cs in self.category_schedules:
            if cs.category_id == category_id:
                return cs
        return None

    def add_field(self, field_ref: FieldRef) -> None:
        if all(f.id != field_ref.id for f in self.fields):
            self.fields.append(field_ref)

    def append_category(
        self,
        category: Category,
        scheduled_start: datetime | None = None,
    ) -> CategorySchedule | None:
        if self.find(category.id) is not None:
            return None
        unit = CategorySchedule.for_category(
            category, scheduled_start if scheduled_start is not None else self.scheduled_start
        )
        self.category_schedules.append(unit)
        return unit

    def remove_category(self, category_id: str) -> CategorySchedule:
        unit = self.find(category_id)
        if unit is None:
            raise CategoryScheduleNotFoundError("draft", category_id)
        self.category_schedules.remove(unit)
        return unit

    def validate(self) -> None:
        if not self.farmer_id:
            raise ValidationError("A farmer must be selected", field="farmer_id")
        if not self.fields:
            raise ValidationError("At least one field must be selected", field="fields")
        if not self.category_schedules:
            raise ValidationError(
                "At least one category must be selected", field="category_schedules"
            )

    def to_aggregates(
        self,
        id_factory: Callable[[], str],
        now: datetime,
        actor: str,
    ) -> list[ScheduleAggregate]:
        """
        Build one job per selected field.

        Each job gets its own copies of the work units and an opening
        history record per unit (stage SCHEDULED, by ``actor``).
        """
        self.validate()
        jobs: list[ScheduleAggregate] = []
        for field_ref in self.fields:
            units = [replace(cs) for cs in self.category_schedules]
            history = tuple(
                StageRecord(
                    category_id=cs.category_id,
                    stage=cs.stage,
                    timestamp=now,
                    actor=actor,
                )
                for cs in units
            )
            jobs.append(
                ScheduleAggregate(
                    id=id_factory(),
                    farmer_id=self.farmer_id,
                    farmer_name=self.farmer_name,
                    field_id=field_ref.id,
                    field_name=field_ref.name,
                    location_id=field_ref.location_id,
                    flag_number=field_ref.flag_number,
                    work_type=self.work_type,
                    category_schedules=units,
                    rate_info=self.rate_info,
                    transport_info=self.transport_info,
                    stage_history=history,
                    scheduled_start=self.scheduled_start,
                    memo=self.memo,
                    created_at=now,
                )
            )
        return jobs
