"""Services for the fieldwork kernel (engine, planning, job and pipeline commands)."""

from fieldwork_kernel.services.category_graph_service import CategoryGraphService
from fieldwork_kernel.services.collaborators import (
    CategoryGraphRepository,
    HistorySink,
    InMemoryCategoryGraphRepository,
    InMemoryHistorySink,
    InMemoryScheduleRepository,
    InMemoryWorkerDirectory,
    ScheduleRepository,
    WorkerDirectory,
)
from fieldwork_kernel.services.process_path_resolver import ProcessPathResolver, ProgressSummary
from fieldwork_kernel.services.schedule_service import ScheduleService
from fieldwork_kernel.services.stage_transition_engine import StageTransitionEngine

__all__ = [
    "CategoryGraphRepository",
    "CategoryGraphService",
    "HistorySink",
    "InMemoryCategoryGraphRepository",
    "InMemoryHistorySink",
    "InMemoryScheduleRepository",
    "InMemoryWorkerDirectory",
    "ProcessPathResolver",
    "ProgressSummary",
    "ScheduleRepository",
    "ScheduleService",
    "StageTransitionEngine",
    "WorkerDirectory",
]
