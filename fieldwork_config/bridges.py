"""
Config -> Kernel Bridges.

Functions that turn ``EngineSettings`` into kernel objects.  They live in
fieldwork_config (the producer) because the kernel must NEVER import
fieldwork_config.

Usage:
    from fieldwork_config import get_active_settings
    from fieldwork_config.bridges import build_engine, build_seed_graph

    settings = get_active_settings()
    graph = build_seed_graph(settings)
    engine = build_engine(settings, worker_directory)
"""

from __future__ import annotations

import logging
from typing import Callable

from fieldwork_config.schema import EngineSettings
from fieldwork_kernel.db.engine import init_engine_from_url
from fieldwork_kernel.domain.category_graph import CategoryGraph
from fieldwork_kernel.domain.clock import Clock
from fieldwork_kernel.logging_config import configure_logging
from fieldwork_kernel.services.collaborators import (
    CategoryGraphRepository,
    HistorySink,
    ScheduleRepository,
    WorkerDirectory,
)
from fieldwork_kernel.services.schedule_service import ScheduleService
from fieldwork_kernel.services.stage_transition_engine import StageTransitionEngine


def build_seed_graph(
    settings: EngineSettings,
    id_factory: Callable[[], str] | None = None,
) -> CategoryGraph:
    """
    Create the categories of ``seed_pipeline`` and link them in order.

    Rate items without a unit get ``settings.default_unit``.
    """
    graph = CategoryGraph(id_factory=id_factory) if id_factory else CategoryGraph()
    previous = None
    for seed in settings.seed_pipeline:
        category = graph.add_category(seed.name, seed.description)
        for rate in seed.rates:
            graph.add_rate(
                category.id,
                rate.name,
                rate.default_price,
                rate.unit or settings.default_unit,
                rate.description,
            )
        if previous is not None:
            graph.set_next(previous.id, category.id)
        previous = category
    return graph


def build_engine(
    settings: EngineSettings,
    worker_directory: WorkerDirectory,
    clock: Clock | None = None,
    history_sink: HistorySink | None = None,
) -> StageTransitionEngine:
    return StageTransitionEngine(
        worker_directory,
        clock=clock,
        history_sink=history_sink,
        transport_category_names=settings.transport_category_names,
    )


def build_schedule_service(
    settings: EngineSettings,
    schedule_repository: ScheduleRepository,
    graph_repository: CategoryGraphRepository,
    engine: StageTransitionEngine,
    clock: Clock | None = None,
) -> ScheduleService:
    return ScheduleService(
        schedule_repository,
        graph_repository,
        engine,
        clock=clock,
        default_actor=settings.default_actor,
    )


def configure_kernel_logging(settings: EngineSettings) -> None:
    configure_logging(level=logging.getLevelName(settings.log_level))


def init_database(settings: EngineSettings):
    """Initialize the kernel's SQLAlchemy engine from ``database_url``."""
    return init_engine_from_url(settings.database_url)
