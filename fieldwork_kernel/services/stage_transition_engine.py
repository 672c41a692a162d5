"""
fieldwork_kernel.services.stage_transition_engine -- work unit stage machine.

Responsibility:
    Executes stage transitions of category work units against the declared
    ``CATEGORY_SCHEDULE_WORKFLOW``, evaluates its guards, captures
    settlement amounts on completion and registers ad hoc settlements.

Architecture position:
    Services layer. Operates on domain aggregates handed in by the caller;
    performs no persistence. Worker lookups go through the WorkerDirectory
    collaborator, history records go to the optional history sink.

Invariants enforced:
    WORKER_GATE         -- IN_PROGRESS is never entered without a worker;
                           the request is suspended with
                           AwaitingWorkerAssignment instead.
    AMOUNT_CAPTURE      -- COMPLETED is never entered without an amount
                           (rate, explicit amount, or explicit skip).
    STAGE_MONOTONICITY  -- only declared transitions fire.
    APPEND_ONLY_HISTORY -- each transition appends exactly one record.

Failure modes:
    - CategoryScheduleNotFoundError: category not part of the job.
    - InvalidTransitionError: target not adjacent / source terminal.
    - MissingAmountError, ValidationError: bad completion or settlement input.
    - WorkerNotFoundError: unknown worker on assignment.
"""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from fieldwork_kernel.domain import settlement
from fieldwork_kernel.domain.clock import Clock, SystemClock
from fieldwork_kernel.domain.outcomes import (
    AwaitingWorkerAssignment,
    Transitioned,
    TransitionOutcome,
    WorkerAssigned,
)
from fieldwork_kernel.domain.schedule import CategorySchedule, ScheduleAggregate
from fieldwork_kernel.domain.stages import PaymentStatus, WorkStage
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    RateEntry,
    StageRecord,
    to_decimal,
)
from fieldwork_kernel.domain.workflow import (
    AMOUNT_CAPTURED,
    CATEGORY_SCHEDULE_WORKFLOW,
    WORKER_ASSIGNED,
    Transition,
    Workflow,
)
from fieldwork_kernel.exceptions import (
    InvalidTransitionError,
    MissingAmountError,
    ValidationError,
    WorkerNotFoundError,
)
from fieldwork_kernel.logging_config import LogContext, get_logger
from fieldwork_kernel.services.collaborators import HistorySink, WorkerDirectory

logger = get_logger("services.stage_transition_engine")

TRACE_TYPE_STAGE_TRANSITION = "STAGE_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_AWAITING_WORKER = "awaiting_worker"
OUTCOME_REJECTED = "rejected"


class StageTransitionEngine:
    """
    Moves category work units through their stages.

    Contract:
        Mutates the aggregate passed in; the caller persists it. One engine
        instance may serve many jobs; it holds no per-job state.
    """

    def __init__(
        self,
        worker_directory: WorkerDirectory,
        clock: Clock | None = None,
        history_sink: HistorySink | None = None,
        transport_category_names: Iterable[str] = (),
        workflow: Workflow = CATEGORY_SCHEDULE_WORKFLOW,
    ):
        self._workers = worker_directory
        self._clock = clock or SystemClock()
        self._history_sink = history_sink
        self._transport_category_names = frozenset(transport_category_names)
        self._workflow = workflow

    # =========================================================================
    # Stage transitions
    # =========================================================================

    def advance(
        self,
        aggregate: ScheduleAggregate,
        category_id: str,
        target_stage: WorkStage | str,
        actor: str,
        *,
        rate: RateEntry | None = None,
        amount: Decimal | int | str | None = None,
        skip_settlement: bool = False,
    ) -> TransitionOutcome:
        """
        Request a stage change for one work unit.

        Args:
            aggregate: The job owning the unit.
            category_id: Category of the unit to move.
            target_stage: Requested stage.
            actor: Who requested the change (recorded in the history).
            rate: Rate entered on completion; the amount is computed from it.
            amount: Explicit amount on completion.
            skip_settlement: Complete without entering a rate (amount 0).

        Returns:
            Transitioned, or AwaitingWorkerAssignment when the unit needs a
            worker before it can start.

        Raises:
            CategoryScheduleNotFoundError, InvalidTransitionError,
            MissingAmountError, ValidationError.
        """
        started = time.monotonic()
        try:
            target = WorkStage(target_stage)
        except ValueError as e:
            raise ValidationError(f"Unknown stage: {target_stage!r}", field="target_stage") from e
        unit = aggregate.require(category_id)

        with LogContext.bind(schedule_id=aggregate.id, category_id=category_id, actor_id=actor):
            try:
                transition = self._legal_transition(unit, target)
                completion = self._check_completion_input(
                    aggregate, unit, target, rate, amount, skip_settlement
                )
            except (InvalidTransitionError, ValidationError) as exc:
                self._emit_trace(
                    aggregate, unit, unit.stage, OUTCOME_REJECTED, str(exc), started, target
                )
                raise

            if transition.guard is WORKER_ASSIGNED and not unit.has_worker:
                candidates = tuple(
                    self._workers.list_workers_eligible_for_category(category_id)
                )
                logger.info(
                    "awaiting_worker_assignment",
                    extra={"candidate_count": len(candidates)},
                )
                self._emit_trace(
                    aggregate,
                    unit,
                    unit.stage,
                    OUTCOME_AWAITING_WORKER,
                    WORKER_ASSIGNED.description,
                    started,
                    target,
                )
                return AwaitingWorkerAssignment(
                    schedule_id=aggregate.id,
                    category_id=category_id,
                    requested_stage=target,
                    candidates=candidates,
                )

            if completion is not None:
                unit.amount, unit.rate, unit.settlement_skipped = completion

            return self._apply(aggregate, unit, target, actor, transition, started)

    def cancel(
        self,
        aggregate: ScheduleAggregate,
        category_id: str,
        actor: str,
    ) -> TransitionOutcome:
        """Cancel a work unit from any non-terminal stage."""
        return self.advance(aggregate, category_id, WorkStage.CANCELLED, actor)

    def assign_worker(
        self,
        aggregate: ScheduleAggregate,
        category_id: str,
        worker_id: str,
        actor: str,
    ) -> TransitionOutcome:
        """
        Assign a worker to a work unit.

        Assignment is what starts the work: a unit waiting in PREPARING is
        moved to IN_PROGRESS as part of the same call.

        Raises:
            ValidationError: blank worker id.
            WorkerNotFoundError: worker unknown to the directory.
            InvalidTransitionError: unit already completed or cancelled.
        """
        started = time.monotonic()
        if not worker_id or not worker_id.strip():
            raise ValidationError("worker_id must not be empty", field="worker_id")
        unit = aggregate.require(category_id)

        with LogContext.bind(schedule_id=aggregate.id, category_id=category_id, actor_id=actor):
            if unit.stage.is_terminal:
                raise InvalidTransitionError(
                    category_id,
                    unit.stage.value,
                    unit.stage.value,
                    reason="worker cannot change on a closed work unit",
                )
            worker = self._workers.get_worker(worker_id)
            if worker is None:
                raise WorkerNotFoundError(worker_id)
            if not worker.is_eligible_for(category_id):
                logger.warning(
                    "worker_not_affiliated_with_category",
                    extra={"worker_id": worker.id},
                )

            unit.worker_id = worker.id
            unit.worker_name = worker.name
            logger.info(
                "worker_assigned",
                extra={"worker_id": worker.id, "stage": unit.stage.value},
            )

            if unit.stage is WorkStage.PREPARING:
                transition = self._legal_transition(unit, WorkStage.IN_PROGRESS)
                return self._apply(
                    aggregate, unit, WorkStage.IN_PROGRESS, actor, transition, started
                )

            return WorkerAssigned(
                schedule_id=aggregate.id,
                category_id=category_id,
                worker_id=worker.id,
                worker_name=worker.name,
                stage=unit.stage,
            )

    # =========================================================================
    # Settlements
    # =========================================================================

    def compute_unit_amount(
        self,
        aggregate: ScheduleAggregate,
        unit: CategorySchedule,
        rate: RateEntry,
    ) -> Decimal:
        """Amount owed for ``unit`` at ``rate``, transport extras included."""
        is_transport = settlement.is_transport_unit(
            aggregate.work_type, unit.category_name, self._transport_category_names
        )
        return settlement.unit_amount(rate, aggregate.transport_info, is_transport)

    def register_additional_settlement(
        self,
        aggregate: ScheduleAggregate,
        category_id: str,
        amount: Decimal | int | str,
        reason: str,
        actor: str | None = None,
    ) -> AdditionalSettlement:
        """
        Append an ad hoc charge against one work unit.

        The unit's own amount is left untouched; the charge is summed into
        the job total separately. Allowed on finished jobs.

        Raises:
            CategoryScheduleNotFoundError: category not part of the job.
            ValidationError: zero or non-numeric amount, blank reason.
        """
        aggregate.require(category_id)
        value = to_decimal(amount, "amount")
        if value == 0:
            raise ValidationError("Additional settlement amount must not be zero", field="amount")
        if not reason or not reason.strip():
            raise ValidationError("Additional settlement needs a reason", field="reason")

        entry = AdditionalSettlement(
            category_id=category_id,
            amount=value,
            reason=reason.strip(),
            settled_at=self._clock.now(),
            registered_by=actor,
        )
        aggregate.add_settlement(entry)
        logger.info(
            "additional_settlement_registered",
            extra={
                "schedule_id": aggregate.id,
                "category_id": category_id,
                "amount": value,
                "total_settlement": aggregate.total_settlement,
            },
        )
        return entry

    # =========================================================================
    # Internals
    # =========================================================================

    def _legal_transition(self, unit: CategorySchedule, target: WorkStage) -> Transition:
        if unit.stage.is_terminal:
            raise InvalidTransitionError(
                unit.category_id,
                unit.stage.value,
                target.value,
                reason=f"{unit.stage.value} is terminal",
            )
        transition = self._workflow.find_transition(unit.stage.value, target.value)
        if transition is None:
            raise InvalidTransitionError(
                unit.category_id,
                unit.stage.value,
                target.value,
                reason="not an adjacent forward step or cancellation",
            )
        return transition

    def _check_completion_input(
        self,
        aggregate: ScheduleAggregate,
        unit: CategorySchedule,
        target: WorkStage,
        rate: RateEntry | None,
        amount: Decimal | int | str | None,
        skip_settlement: bool,
    ) -> tuple[Decimal, RateEntry | None, bool] | None:
        """Validate settlement input; returns (amount, rate, skipped) on completion."""
        supplied = rate is not None or amount is not None
        if target is not WorkStage.COMPLETED:
            if supplied or skip_settlement:
                raise ValidationError(
                    "Settlement input is only accepted on completion", field="amount"
                )
            return None

        if skip_settlement:
            if supplied:
                raise ValidationError(
                    "skip_settlement cannot be combined with a rate or amount",
                    field="skip_settlement",
                )
            return Decimal("0"), None, True

        if rate is not None and amount is not None:
            raise ValidationError("Pass either a rate or an amount, not both", field="amount")
        if rate is not None:
            return self.compute_unit_amount(aggregate, unit, rate), rate, False
        if amount is not None:
            value = to_decimal(amount, "amount")
            if value < 0:
                raise ValidationError(f"amount must not be negative: {value}", field="amount")
            return value, None, False

        raise MissingAmountError(aggregate.id, unit.category_id)

    def _apply(
        self,
        aggregate: ScheduleAggregate,
        unit: CategorySchedule,
        target: WorkStage,
        actor: str,
        transition: Transition,
        started: float,
    ) -> Transitioned:
        from_stage = unit.stage
        now = self._clock.now()
        unit.stage = target
        record = StageRecord(
            category_id=unit.category_id,
            stage=target,
            timestamp=now,
            actor=actor,
        )
        aggregate.record_stage(record)
        self._apply_job_side_effects(aggregate, target, now)

        reason = transition.action
        if transition.guard is AMOUNT_CAPTURED:
            reason = "settlement skipped" if unit.settlement_skipped else f"amount={unit.amount}"
        self._emit_trace(aggregate, unit, from_stage, OUTCOME_SUCCESS, reason, started, target)

        return Transitioned(
            schedule_id=aggregate.id,
            category_id=unit.category_id,
            from_stage=from_stage,
            to_stage=target,
            record=record,
        )

    def _apply_job_side_effects(
        self,
        aggregate: ScheduleAggregate,
        target: WorkStage,
        now: datetime,
    ) -> None:
        if target is WorkStage.IN_PROGRESS and aggregate.actual_start is None:
            aggregate.actual_start = now

        if target is WorkStage.CANCELLED and aggregate.payment_id is not None:
            logger.info(
                "payment_detached",
                extra={"payment_id": aggregate.payment_id},
            )
            aggregate.payment_id = None
            aggregate.payment_status = PaymentStatus.PENDING

        if (
            aggregate.is_terminal
            and aggregate.actual_end is None
            and any(cs.stage is WorkStage.COMPLETED for cs in aggregate.category_schedules)
        ):
            if aggregate.actual_start is None:
                aggregate.actual_start = aggregate.scheduled_start or now
            aggregate.actual_end = now

    def _emit_trace(
        self,
        aggregate: ScheduleAggregate,
        unit: CategorySchedule,
        from_stage: WorkStage,
        outcome: str,
        reason: str,
        started: float,
        to_stage: WorkStage,
    ) -> None:
        """Emit a structured transition record to the log and the history sink."""
        record: dict[str, Any] = {
            "trace_type": TRACE_TYPE_STAGE_TRANSITION,
            "schedule_id": aggregate.id,
            "category_id": unit.category_id,
            "category_name": unit.category_name,
            "from_stage": from_stage.value,
            "to_stage": to_stage.value,
            "outcome": outcome,
            "reason": reason,
            "duration_ms": round((time.monotonic() - started) * 1000, 3),
        }
        if outcome == OUTCOME_SUCCESS:
            last = aggregate.stage_history[-1]
            record["timestamp"] = last.timestamp.isoformat()
            record["actor"] = last.actor
            logger.info("stage_transition", extra=record)
        else:
            logger.warning("stage_transition", extra=record)
        if outcome == OUTCOME_SUCCESS and self._history_sink is not None:
            self._history_sink(record)
