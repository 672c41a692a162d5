"""
Pytest fixtures for the fieldwork kernel test suite.

Provides:
- Structured logging configuration and log capture
- A deterministic clock and sequential id factories
- A linked three-step category chain and a worker directory
- In-memory repositories, the transition engine and the services
- An in-memory SQLite session for persistence tests
"""

import itertools
import json
import logging
from io import StringIO
from typing import Callable, Iterator

import pytest
from sqlalchemy.orm import Session

from fieldwork_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from fieldwork_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fieldwork_kernel.domain.category_graph import CategoryGraph
from fieldwork_kernel.domain.clock import DeterministicClock
from fieldwork_kernel.domain.schedule import FieldRef, ScheduleAggregate, ScheduleDraft
from fieldwork_kernel.domain.values import StageRecord
from fieldwork_kernel.domain.worker import Worker, WorkerType
from fieldwork_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fieldwork_kernel.services.category_graph_service import CategoryGraphService
from fieldwork_kernel.services.collaborators import (
    InMemoryCategoryGraphRepository,
    InMemoryHistorySink,
    InMemoryScheduleRepository,
    InMemoryWorkerDirectory,
)
from fieldwork_kernel.services.process_path_resolver import ProcessPathResolver
from fieldwork_kernel.services.schedule_service import ScheduleService
from fieldwork_kernel.services.stage_transition_engine import StageTransitionEngine


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fieldwork_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.advance(...)
            logs = captured_logs()
            assert any(r["message"] == "stage_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fieldwork_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time and identity
# =============================================================================


def sequential_ids(prefix: str) -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def make_ids() -> Callable[[str], Callable[[], str]]:
    """Factory of sequential id generators: make_ids("cat")() -> "cat-1", ..."""
    return sequential_ids


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Category chain and workers
# =============================================================================


@pytest.fixture
def graph() -> CategoryGraph:
    """뽑기 (cat-1) -> 자르기 (cat-2) -> 포장 (cat-3)."""
    g = CategoryGraph(id_factory=sequential_ids("cat"))
    a = g.add_category("뽑기")
    b = g.add_category("자르기")
    c = g.add_category("포장")
    g.set_next(a.id, b.id)
    g.set_next(b.id, c.id)
    return g


@pytest.fixture
def workers() -> InMemoryWorkerDirectory:
    return InMemoryWorkerDirectory(
        [
            Worker(
                id="w-kim",
                name="김반장",
                worker_type=WorkerType.FOREMAN,
                category_ids=frozenset({"cat-1", "cat-2", "cat-3"}),
            ),
            Worker(
                id="w-lee",
                name="이반장",
                worker_type=WorkerType.FOREMAN,
                category_ids=frozenset({"cat-2"}),
            ),
            Worker(
                id="w-park",
                name="박기사",
                worker_type=WorkerType.DRIVER,
            ),
        ]
    )


@pytest.fixture
def history_sink() -> InMemoryHistorySink:
    return InMemoryHistorySink()


@pytest.fixture
def engine(workers, clock, history_sink) -> StageTransitionEngine:
    return StageTransitionEngine(
        workers,
        clock=clock,
        history_sink=history_sink,
        transport_category_names=("운송",),
    )


@pytest.fixture
def resolver() -> ProcessPathResolver:
    return ProcessPathResolver()


# =============================================================================
# Jobs
# =============================================================================


@pytest.fixture
def make_job(graph, clock) -> Callable[..., ScheduleAggregate]:
    """
    Build a job whose units follow the chain starting at ``start``.

    Every unit gets its opening SCHEDULED history record, as a submitted
    job would.
    """

    def _make(job_id: str = "job-1", start: str = "cat-1", **fields) -> ScheduleAggregate:
        job = ScheduleAggregate(id=job_id, farmer_id="farmer-1", field_id="field-1", **fields)
        ProcessPathResolver().populate(job, graph.snapshot(), start)
        for unit in job.category_schedules:
            job.record_stage(
                StageRecord(
                    category_id=unit.category_id,
                    stage=unit.stage,
                    timestamp=clock.now(),
                    actor="system",
                )
            )
        return job

    return _make


@pytest.fixture
def make_draft() -> Callable[..., ScheduleDraft]:
    def _make(field_ids: tuple[str, ...] = ("field-1",), **fields) -> ScheduleDraft:
        draft = ScheduleDraft(farmer_id="farmer-1", farmer_name="홍길동", **fields)
        for field_id in field_ids:
            draft.add_field(FieldRef(id=field_id, name=f"밭 {field_id}"))
        return draft

    return _make


# =============================================================================
# Repositories and services (in memory)
# =============================================================================


@pytest.fixture
def schedule_repository() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


@pytest.fixture
def graph_repository(graph) -> InMemoryCategoryGraphRepository:
    return InMemoryCategoryGraphRepository(graph)


@pytest.fixture
def category_service(graph_repository, schedule_repository) -> CategoryGraphService:
    return CategoryGraphService(graph_repository, schedule_repository)


@pytest.fixture
def schedule_service(schedule_repository, graph_repository, engine, clock) -> ScheduleService:
    return ScheduleService(
        schedule_repository,
        graph_repository,
        engine,
        clock=clock,
        default_actor="system",
        id_factory=sequential_ids("job"),
    )


# =============================================================================
# Database (SQLite in memory)
# =============================================================================


@pytest.fixture
def session() -> Iterator[Session]:
    """A session on a fresh in-memory database with append-only listeners."""
    init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    db_session = get_session()
    try:
        yield db_session
    finally:
        db_session.rollback()
        db_session.close()
        unregister_immutability_listeners()
        reset_engine()
