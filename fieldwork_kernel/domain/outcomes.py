"""
Transition outcomes returned by the stage transition engine.

A stage request ends in one of three ways:

    Transitioned              the unit moved; carries the history record
    WorkerAssigned            a worker was set, the stage did not change
    AwaitingWorkerAssignment  the unit needs a worker before it can start;
                              carries the eligible candidates

The third one is an expected branch of the flow (the screen shows a worker
picker), so it is a result value rather than an exception. Faults such as
illegal transitions are raised as typed exceptions instead.
"""

from __future__ import annotations

from dataclasses import dataclass

from fieldwork_kernel.domain.stages import WorkStage
from fieldwork_kernel.domain.values import StageRecord
from fieldwork_kernel.domain.worker import Worker


@dataclass(frozen=True)
class TransitionOutcome:
    """Common shape of every engine result."""

    schedule_id: str
    category_id: str

    @property
    def is_suspended(self) -> bool:
        return False


@dataclass(frozen=True)
class Transitioned(TransitionOutcome):
    from_stage: WorkStage
    to_stage: WorkStage
    record: StageRecord


@dataclass(frozen=True)
class WorkerAssigned(TransitionOutcome):
    worker_id: str
    worker_name: str
    stage: WorkStage


@dataclass(frozen=True)
class AwaitingWorkerAssignment(TransitionOutcome):
    """
    The unit cannot enter IN_PROGRESS until a worker is assigned.

    ``candidates`` are the workers eligible for the unit's category. The
    caller picks one and calls ``assign_worker``, which performs the
    pending transition.
    """

    requested_stage: WorkStage
    candidates: tuple[Worker, ...] = ()

    @property
    def is_suspended(self) -> bool:
        return True
