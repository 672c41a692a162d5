"""
SQLAlchemy implementations of the job and category stores.

Responsibility:
    Map ScheduleAggregate and CategoryGraph to and from the ORM models in
    ``fieldwork_kernel.models``.

Architecture position:
    Kernel > Services -- imperative shell.  Both repositories extend
    BaseService: they take the caller's Session and only ``flush()``; the
    caller owns commit and rollback.

Invariants enforced:
    APPEND_ONLY_HISTORY -- ``save_aggregate`` verifies that the stored
        history is a prefix of the aggregate's history and inserts only the
        new tail.  Existing history and settlement rows are never touched
        (the ORM listeners would reject it anyway).
    - The job total is never persisted; it is re-derived on load.

Failure modes:
    - ScheduleNotFoundError from load_aggregate on an unknown id.
    - ImmutabilityViolationError when an aggregate tries to rewrite or drop
      already stored history or settlement entries.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import select

from fieldwork_kernel.domain.category import Category, CategoryRate
from fieldwork_kernel.domain.category_graph import CategoryGraph
from fieldwork_kernel.domain.schedule import CategorySchedule, ScheduleAggregate
from fieldwork_kernel.domain.stages import TERMINAL_STAGES, PaymentStatus, WorkStage, WorkType
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    Cargo,
    Location,
    RateEntry,
    RateInfo,
    StageRecord,
    TransportInfo,
)
from fieldwork_kernel.exceptions import ImmutabilityViolationError, ScheduleNotFoundError
from fieldwork_kernel.logging_config import get_logger
from fieldwork_kernel.models.category import CategoryModel, CategoryRateModel
from fieldwork_kernel.models.schedule import (
    AdditionalSettlementModel,
    CategoryScheduleModel,
    ScheduleModel,
    StageHistoryModel,
)
from fieldwork_kernel.services.base import BaseService

logger = get_logger("services.sql_repositories")


class SqlScheduleRepository(BaseService[ScheduleModel]):
    """Job store backed by the ``schedules`` table family."""

    def load_aggregate(self, schedule_id: str) -> ScheduleAggregate:
        model = self.session.get(ScheduleModel, schedule_id)
        if model is None:
            raise ScheduleNotFoundError(schedule_id)
        return _to_aggregate(model)

    def save_aggregate(self, aggregate: ScheduleAggregate) -> None:
        model = self.session.get(ScheduleModel, aggregate.id)
        if model is None:
            model = ScheduleModel(id=aggregate.id)
            if aggregate.created_at is not None:
                model.created_at = aggregate.created_at
            self.session.add(model)

        _copy_job_fields(aggregate, model)
        _sync_units(aggregate, model)
        new_records = _append_history(aggregate, model)
        new_settlements = _append_settlements(aggregate, model)

        self.session.flush()
        logger.debug(
            "schedule_saved",
            extra={
                "schedule_id": aggregate.id,
                "units": len(aggregate.category_schedules),
                "new_history_records": new_records,
                "new_settlements": new_settlements,
            },
        )

    def find_jobs_referencing_category(self, category_id: str) -> list[str]:
        """Ids of live (not yet terminal) jobs with a unit of ``category_id``."""
        terminal = [stage.value for stage in TERMINAL_STAGES]
        live_jobs = select(CategoryScheduleModel.schedule_id).where(
            CategoryScheduleModel.stage.not_in(terminal)
        )
        stmt = (
            select(CategoryScheduleModel.schedule_id)
            .where(
                CategoryScheduleModel.category_id == category_id,
                CategoryScheduleModel.schedule_id.in_(live_jobs),
            )
            .distinct()
            .order_by(CategoryScheduleModel.schedule_id)
        )
        return list(self.session.scalars(stmt))


class SqlCategoryGraphRepository(BaseService[CategoryModel]):
    """
    Category store backed by the ``categories`` table.

    ``save_category_graph`` replaces the stored graph with the given one:
    rows are updated in place, new categories inserted and categories the
    graph no longer holds deleted.
    """

    def load_category_graph(self) -> CategoryGraph:
        models = self.session.scalars(
            select(CategoryModel).order_by(CategoryModel.position)
        ).all()
        return CategoryGraph(_to_category(m) for m in models)

    def save_category_graph(self, graph: CategoryGraph) -> None:
        existing = {m.id: m for m in self.session.scalars(select(CategoryModel)).all()}
        kept: set[str] = set()

        for category in graph.categories:
            model = existing.get(category.id)
            if model is None:
                model = CategoryModel(id=category.id)
                self.session.add(model)
            model.name = category.name
            model.description = category.description
            model.position = category.order
            model.next_category_id = category.next_category_id
            _sync_rates(category, model)
            kept.add(category.id)

        removed = [m for cid, m in existing.items() if cid not in kept]
        for model in removed:
            self.session.delete(model)

        self.session.flush()
        logger.debug(
            "category_graph_saved",
            extra={"categories": len(kept), "removed": [m.id for m in removed]},
        )


# =============================================================================
# Schedule mapping
# =============================================================================


def _copy_job_fields(aggregate: ScheduleAggregate, model: ScheduleModel) -> None:
    model.farmer_id = aggregate.farmer_id
    model.farmer_name = aggregate.farmer_name
    model.field_id = aggregate.field_id
    model.field_name = aggregate.field_name
    model.location_id = aggregate.location_id
    model.flag_number = aggregate.flag_number
    model.work_type = aggregate.work_type.value if aggregate.work_type else None

    rate_info = aggregate.rate_info
    model.rate_base_rate = rate_info.base_rate
    model.rate_unit = rate_info.unit
    model.rate_quantity = rate_info.quantity
    model.rate_negotiated_rate = rate_info.negotiated_rate
    model.rate_additional_amount = rate_info.additional_amount

    model.transport_info = _transport_to_json(aggregate.transport_info)
    model.payment_status = aggregate.payment_status.value
    model.payment_id = aggregate.payment_id
    model.scheduled_start = aggregate.scheduled_start
    model.actual_start = aggregate.actual_start
    model.actual_end = aggregate.actual_end
    model.memo = aggregate.memo


def _sync_units(aggregate: ScheduleAggregate, model: ScheduleModel) -> None:
    rows = {row.category_id: row for row in model.category_schedules}
    ordered: list[CategoryScheduleModel] = []
    for position, unit in enumerate(aggregate.category_schedules):
        row = rows.get(unit.category_id)
        if row is None:
            row = CategoryScheduleModel(category_id=unit.category_id)
        row.position = position
        row.category_name = unit.category_name
        row.stage = unit.stage.value
        row.worker_id = unit.worker_id
        row.worker_name = unit.worker_name
        row.scheduled_start = unit.scheduled_start
        row.amount = unit.amount
        row.settlement_skipped = unit.settlement_skipped
        row.memo = unit.memo
        rate = unit.rate
        row.rate_base_rate = rate.base_rate if rate else None
        row.rate_quantity = rate.quantity if rate else None
        row.rate_negotiated_rate = rate.negotiated_rate if rate else None
        row.rate_unit = rate.unit if rate else None
        ordered.append(row)
    model.category_schedules = ordered


def _append_history(aggregate: ScheduleAggregate, model: ScheduleModel) -> int:
    stored = [_to_stage_record(row) for row in model.stage_history]
    if list(aggregate.stage_history[: len(stored)]) != stored:
        raise ImmutabilityViolationError(
            entity_type="StageHistoryModel",
            entity_id=aggregate.id,
            reason="stored stage history cannot be rewritten or truncated",
        )
    new = aggregate.stage_history[len(stored):]
    for offset, record in enumerate(new):
        model.stage_history.append(
            StageHistoryModel(
                sequence=len(stored) + offset,
                category_id=record.category_id,
                stage=record.stage.value,
                timestamp=record.timestamp,
                actor=record.actor,
            )
        )
    return len(new)


def _append_settlements(aggregate: ScheduleAggregate, model: ScheduleModel) -> int:
    stored = [_to_settlement(row) for row in model.additional_settlements]
    if list(aggregate.additional_settlements[: len(stored)]) != stored:
        raise ImmutabilityViolationError(
            entity_type="AdditionalSettlementModel",
            entity_id=aggregate.id,
            reason="stored additional settlements cannot be rewritten or removed",
        )
    new = aggregate.additional_settlements[len(stored):]
    for offset, entry in enumerate(new):
        model.additional_settlements.append(
            AdditionalSettlementModel(
                sequence=len(stored) + offset,
                category_id=entry.category_id,
                amount=entry.amount,
                reason=entry.reason,
                settled_at=entry.settled_at,
                registered_by=entry.registered_by,
            )
        )
    return len(new)


def _to_aggregate(model: ScheduleModel) -> ScheduleAggregate:
    return ScheduleAggregate(
        id=model.id,
        farmer_id=model.farmer_id,
        farmer_name=model.farmer_name,
        field_id=model.field_id,
        field_name=model.field_name,
        location_id=model.location_id,
        flag_number=model.flag_number,
        work_type=WorkType(model.work_type) if model.work_type else None,
        category_schedules=[_to_unit(row) for row in model.category_schedules],
        rate_info=RateInfo(
            base_rate=model.rate_base_rate,
            unit=model.rate_unit,
            quantity=model.rate_quantity,
            negotiated_rate=model.rate_negotiated_rate,
            additional_amount=model.rate_additional_amount,
        ),
        transport_info=_transport_from_json(model.transport_info),
        additional_settlements=tuple(_to_settlement(r) for r in model.additional_settlements),
        payment_status=PaymentStatus(model.payment_status),
        payment_id=model.payment_id,
        stage_history=tuple(_to_stage_record(r) for r in model.stage_history),
        scheduled_start=model.scheduled_start,
        actual_start=model.actual_start,
        actual_end=model.actual_end,
        memo=model.memo,
        created_at=model.created_at,
    )


def _to_unit(row: CategoryScheduleModel) -> CategorySchedule:
    rate = None
    if row.rate_base_rate is not None:
        rate = RateEntry(
            base_rate=row.rate_base_rate,
            quantity=row.rate_quantity,
            negotiated_rate=row.rate_negotiated_rate,
            unit=row.rate_unit or "",
        )
    return CategorySchedule(
        category_id=row.category_id,
        category_name=row.category_name,
        stage=WorkStage(row.stage),
        worker_id=row.worker_id,
        worker_name=row.worker_name,
        scheduled_start=row.scheduled_start,
        amount=row.amount,
        rate=rate,
        settlement_skipped=row.settlement_skipped,
        memo=row.memo,
    )


def _to_stage_record(row: StageHistoryModel) -> StageRecord:
    return StageRecord(
        category_id=row.category_id,
        stage=WorkStage(row.stage),
        timestamp=row.timestamp,
        actor=row.actor,
    )


def _to_settlement(row: AdditionalSettlementModel) -> AdditionalSettlement:
    return AdditionalSettlement(
        category_id=row.category_id,
        amount=row.amount,
        reason=row.reason,
        settled_at=row.settled_at,
        registered_by=row.registered_by,
    )


def _decimal_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _location_to_json(location: Location) -> dict[str, Any]:
    return {
        "address": location.address,
        "detail": location.detail,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "contact_name": location.contact_name,
        "contact_phone": location.contact_phone,
    }


def _transport_to_json(info: TransportInfo | None) -> dict[str, Any] | None:
    if info is None:
        return None
    return {
        "origin": _location_to_json(info.origin),
        "destination": _location_to_json(info.destination),
        "cargo": {
            "type": info.cargo.type,
            "quantity": str(info.cargo.quantity),
            "unit": info.cargo.unit,
        },
        "distance": _decimal_str(info.distance),
        "distance_rate": _decimal_str(info.distance_rate),
        "additional_fee": _decimal_str(info.additional_fee),
    }


def _transport_from_json(data: dict[str, Any] | None) -> TransportInfo | None:
    if data is None:
        return None
    cargo = data["cargo"]
    return TransportInfo(
        origin=Location(**data["origin"]),
        destination=Location(**data["destination"]),
        cargo=Cargo(type=cargo["type"], quantity=cargo["quantity"], unit=cargo["unit"]),
        distance=data.get("distance"),
        distance_rate=data.get("distance_rate"),
        additional_fee=data.get("additional_fee"),
    )


# =============================================================================
# Category mapping
# =============================================================================


def _sync_rates(category: Category, model: CategoryModel) -> None:
    rows = {row.id: row for row in model.rates}
    ordered: list[CategoryRateModel] = []
    for position, rate in enumerate(category.rates):
        row = rows.get(rate.id)
        if row is None:
            row = CategoryRateModel(id=rate.id)
        row.position = position
        row.name = rate.name
        row.description = rate.description
        row.default_price = rate.default_price
        row.unit = rate.unit
        ordered.append(row)
    model.rates = ordered


def _to_category(model: CategoryModel) -> Category:
    return Category(
        id=model.id,
        name=model.name,
        order=model.position,
        next_category_id=model.next_category_id,
        description=model.description,
        rates=tuple(
            CategoryRate(
                id=row.id,
                name=row.name,
                default_price=row.default_price,
                unit=row.unit,
                description=row.description,
            )
            for row in model.rates
        ),
    )
