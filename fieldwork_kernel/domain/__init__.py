"""
Pure domain layer.

Value objects, the category graph, the work unit workflow and settlement
arithmetic, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Logging or configuration

Time enters only through the injected Clock.
"""

from fieldwork_kernel.domain.category import Category, CategoryRate
from fieldwork_kernel.domain.category_graph import CategoryGraph, CategoryGraphSnapshot
from fieldwork_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fieldwork_kernel.domain.outcomes import (
    AwaitingWorkerAssignment,
    Transitioned,
    TransitionOutcome,
    WorkerAssigned,
)
from fieldwork_kernel.domain.schedule import (
    CategorySchedule,
    FieldRef,
    ScheduleAggregate,
    ScheduleDraft,
)
from fieldwork_kernel.domain.settlement import SettlementBreakdown
from fieldwork_kernel.domain.stages import PaymentStatus, WorkStage, WorkType, next_stage
from fieldwork_kernel.domain.values import (
    AdditionalSettlement,
    Cargo,
    Location,
    RateEntry,
    RateInfo,
    StageRecord,
    TransportInfo,
)
from fieldwork_kernel.domain.worker import Worker, WorkerType
from fieldwork_kernel.domain.workflow import CATEGORY_SCHEDULE_WORKFLOW, Guard, Transition, Workflow

__all__ = [
    "AdditionalSettlement",
    "AwaitingWorkerAssignment",
    "CATEGORY_SCHEDULE_WORKFLOW",
    "Cargo",
    "Category",
    "CategoryGraph",
    "CategoryGraphSnapshot",
    "CategoryRate",
    "CategorySchedule",
    "Clock",
    "DeterministicClock",
    "FieldRef",
    "Guard",
    "Location",
    "PaymentStatus",
    "RateEntry",
    "RateInfo",
    "ScheduleAggregate",
    "ScheduleDraft",
    "SettlementBreakdown",
    "StageRecord",
    "SystemClock",
    "Transition",
    "TransitionOutcome",
    "Transitioned",
    "TransportInfo",
    "Worker",
    "WorkerAssigned",
    "WorkerType",
    "WorkStage",
    "WorkType",
    "Workflow",
    "next_stage",
]
