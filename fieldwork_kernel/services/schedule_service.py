"""
ScheduleService -- job lifecycle orchestration.

Responsibility:
    Turns drafts into jobs, and runs every work unit command as
    load -> engine -> save against the job repository.  Path planning and
    progress use a graph snapshot taken from the category repository at
    call time.

Architecture position:
    Kernel > Services -- imperative shell.  Owns no domain rules itself:
    stage rules live in StageTransitionEngine, chain rules in the graph and
    the ProcessPathResolver.

Invariants enforced:
    APPEND_ONLY_HISTORY -- units added to an existing job get an opening
        SCHEDULED record, just like units created with the job.
    - A suspended request (AwaitingWorkerAssignment) mutates nothing and is
      not saved.
    - A rejected command raises before the job is saved, so the stored job
      is unchanged.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable
from uuid import uuid4

from fieldwork_kernel.domain.clock import Clock, SystemClock
from fieldwork_kernel.domain.outcomes import TransitionOutcome
from fieldwork_kernel.domain.schedule import CategorySchedule, ScheduleAggregate, ScheduleDraft
from fieldwork_kernel.domain.stages import WorkStage
from fieldwork_kernel.domain.values import AdditionalSettlement, RateEntry, StageRecord
from fieldwork_kernel.logging_config import LogContext, get_logger
from fieldwork_kernel.services.collaborators import CategoryGraphRepository, ScheduleRepository
from fieldwork_kernel.services.process_path_resolver import ProcessPathResolver, ProgressSummary
from fieldwork_kernel.services.stage_transition_engine import StageTransitionEngine

logger = get_logger("services.schedule")


def _new_id() -> str:
    return str(uuid4())


class ScheduleService:
    """
    Job commands over the job and category repositories.

    Contract:
        ``default_actor`` is the actor recorded on the opening history
        records when the caller does not name one.
    """

    def __init__(
        self,
        schedule_repository: ScheduleRepository,
        graph_repository: CategoryGraphRepository,
        engine: StageTransitionEngine,
        clock: Clock | None = None,
        default_actor: str = "system",
        resolver: ProcessPathResolver | None = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._schedules = schedule_repository
        self._graphs = graph_repository
        self._engine = engine
        self._clock = clock or SystemClock()
        self._default_actor = default_actor
        self._resolver = resolver or ProcessPathResolver()
        self._id_factory = id_factory

    # =========================================================================
    # Planning
    # =========================================================================

    def plan_draft(
        self,
        draft: ScheduleDraft,
        start_category_id: str,
        scheduled_start: datetime | None = None,
    ) -> list[CategorySchedule]:
        """Add the work units of the chain starting at ``start_category_id``."""
        snapshot = self._graphs.load_category_graph().snapshot()
        return self._resolver.populate(draft, snapshot, start_category_id, scheduled_start)

    def create_jobs(
        self,
        draft: ScheduleDraft,
        actor: str | None = None,
    ) -> list[ScheduleAggregate]:
        """
        Submit a draft: one job per selected field.

        Raises:
            ValidationError: no farmer, field or category selected.
        """
        jobs = draft.to_aggregates(
            self._id_factory, self._clock.now(), actor or self._default_actor
        )
        for job in jobs:
            self._schedules.save_aggregate(job)
        logger.info(
            "jobs_created",
            extra={
                "farmer_id": draft.farmer_id,
                "schedule_ids": [job.id for job in jobs],
                "category_ids": draft.category_ids,
            },
        )
        return jobs

    def extend_job(
        self,
        schedule_id: str,
        start_category_id: str,
        actor: str | None = None,
    ) -> list[CategorySchedule]:
        """
        Add the missing units of a chain to an existing job.

        Idempotent: units already on the job are left as they are.
        """
        aggregate = self._schedules.load_aggregate(schedule_id)
        snapshot = self._graphs.load_category_graph().snapshot()
        added = self._resolver.populate(aggregate, snapshot, start_category_id)
        if not added:
            return []
        now = self._clock.now()
        for unit in added:
            aggregate.record_stage(
                StageRecord(
                    category_id=unit.category_id,
                    stage=WorkStage.SCHEDULED,
                    timestamp=now,
                    actor=actor or self._default_actor,
                )
            )
        self._schedules.save_aggregate(aggregate)
        logger.info(
            "job_extended",
            extra={"schedule_id": schedule_id, "category_ids": [u.category_id for u in added]},
        )
        return added

    # =========================================================================
    # Work unit commands
    # =========================================================================

    def load(self, schedule_id: str) -> ScheduleAggregate:
        return self._schedules.load_aggregate(schedule_id)

    def advance(
        self,
        schedule_id: str,
        category_id: str,
        target_stage: WorkStage | str,
        actor: str,
        *,
        rate: RateEntry | None = None,
        amount: Decimal | int | str | None = None,
        skip_settlement: bool = False,
    ) -> TransitionOutcome:
        with LogContext.bind(schedule_id=schedule_id):
            aggregate = self._schedules.load_aggregate(schedule_id)
            outcome = self._engine.advance(
                aggregate,
                category_id,
                target_stage,
                actor,
                rate=rate,
                amount=amount,
                skip_settlement=skip_settlement,
            )
            if not outcome.is_suspended:
                self._schedules.save_aggregate(aggregate)
            return outcome

    def cancel(self, schedule_id: str, category_id: str, actor: str) -> TransitionOutcome:
        return self.advance(schedule_id, category_id, WorkStage.CANCELLED, actor)

    def assign_worker(
        self,
        schedule_id: str,
        category_id: str,
        worker_id: str,
        actor: str,
    ) -> TransitionOutcome:
        with LogContext.bind(schedule_id=schedule_id):
            aggregate = self._schedules.load_aggregate(schedule_id)
            outcome = self._engine.assign_worker(aggregate, category_id, worker_id, actor)
            self._schedules.save_aggregate(aggregate)
            return outcome

    def register_additional_settlement(
        self,
        schedule_id: str,
        category_id: str,
        amount: Decimal | int | str,
        reason: str,
        actor: str | None = None,
    ) -> AdditionalSettlement:
        with LogContext.bind(schedule_id=schedule_id):
            aggregate = self._schedules.load_aggregate(schedule_id)
            entry = self._engine.register_additional_settlement(
                aggregate, category_id, amount, reason, actor
            )
            self._schedules.save_aggregate(aggregate)
            return entry

    # =========================================================================
    # Reporting
    # =========================================================================

    def progress(
        self,
        schedule_id: str,
        start_category_id: str | None = None,
    ) -> ProgressSummary:
        aggregate = self._schedules.load_aggregate(schedule_id)
        snapshot = self._graphs.load_category_graph().snapshot()
        return self._resolver.progress_summary(aggregate, snapshot, start_category_id)
