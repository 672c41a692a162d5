"""
Work stages and job enumerations.

The stage values are the Korean labels stored by the field office
(예정/준비중/진행중/완료/취소) so persisted rows stay readable by the
existing screens.
"""

from __future__ import annotations

from enum import Enum


class WorkStage(str, Enum):
    """Stage of one category work unit."""

    SCHEDULED = "예정"
    PREPARING = "준비중"
    IN_PROGRESS = "진행중"
    COMPLETED = "완료"
    CANCELLED = "취소"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES

    @property
    def rank(self) -> int:
        """Position in the forward order; CANCELLED ranks after everything."""
        if self is WorkStage.CANCELLED:
            return len(FORWARD_ORDER)
        return FORWARD_ORDER.index(self)


FORWARD_ORDER: tuple[WorkStage, ...] = (
    WorkStage.SCHEDULED,
    WorkStage.PREPARING,
    WorkStage.IN_PROGRESS,
    WorkStage.COMPLETED,
)

TERMINAL_STAGES: frozenset[WorkStage] = frozenset(
    {WorkStage.COMPLETED, WorkStage.CANCELLED}
)

CANCELLABLE_STAGES: frozenset[WorkStage] = frozenset(
    {WorkStage.SCHEDULED, WorkStage.PREPARING, WorkStage.IN_PROGRESS}
)


def next_stage(stage: WorkStage) -> WorkStage:
    """Forward successor of ``stage``; identity for terminal stages."""
    if stage.is_terminal:
        return stage
    return FORWARD_ORDER[FORWARD_ORDER.index(stage) + 1]


class WorkType(str, Enum):
    """Kind of job, as recorded on the job header."""

    PULLING = "pulling"
    CUTTING = "cutting"
    PACKING = "packing"
    TRANSPORT = "transport"
    NETTING = "netting"


class PaymentStatus(str, Enum):
    """Settlement state of a job from the payments desk point of view."""

    PENDING = "pending"
    REQUESTED = "requested"
    ONHOLD = "onhold"
    COMPLETED = "completed"
