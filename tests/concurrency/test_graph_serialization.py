"""
Graph edits racing from many threads.

Every load-mutate-save cycle in CategoryGraphService runs under one lock,
and CategoryGraph serializes its own mutations, so concurrent edits must
behave as if they had been applied one after another: conflicting links
never both land, and no edit is lost.
"""

import itertools
import random
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from fieldwork_kernel.domain.category_graph import CategoryGraph
from fieldwork_kernel.exceptions import CycleError
from fieldwork_kernel.services.category_graph_service import CategoryGraphService
from fieldwork_kernel.services.collaborators import (
    InMemoryCategoryGraphRepository,
    InMemoryScheduleRepository,
)

pytestmark = pytest.mark.slow_locks

THREADS = 16


def _assert_acyclic(categories, path_from):
    for category in categories:
        path = path_from(category.id)
        assert len({c.id for c in path}) == len(path)
        assert path[-1].next_category_id is None


@pytest.fixture
def pair_service(make_ids):
    graph = CategoryGraph(id_factory=make_ids("cat"))
    graph.add_category("뽑기")
    graph.add_category("자르기")
    return CategoryGraphService(
        InMemoryCategoryGraphRepository(graph), InMemoryScheduleRepository()
    )


class TestConflictingLinks:
    def test_opposite_links_never_both_land(self, pair_service):
        barrier = Barrier(THREADS, timeout=30)
        directions = [("cat-1", "cat-2"), ("cat-2", "cat-1")] * (THREADS // 2)

        def link(direction):
            barrier.wait()
            try:
                pair_service.set_next(*direction)
            except CycleError:
                return direction, False
            return direction, True

        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            results = list(executor.map(link, directions))

        landed = {direction for direction, ok in results if ok}
        rejected = {direction for direction, ok in results if not ok}
        assert len(landed) == 1
        assert rejected == set(directions) - landed

        ((source, target),) = landed
        snapshot = pair_service.snapshot()
        assert snapshot.require(source).next_category_id == target
        assert snapshot.require(target).next_category_id is None
        _assert_acyclic(snapshot.categories, pair_service.path_from)

    def test_random_links_stay_acyclic(self, make_ids):
        graph = CategoryGraph(id_factory=make_ids("cat"))
        ids = [graph.add_category(f"category {i}").id for i in range(6)]
        edits = list(itertools.product(ids, ids)) * 3
        random.Random(7).shuffle(edits)
        barrier = Barrier(THREADS, timeout=30)

        def worker(chunk):
            barrier.wait()
            for source, target in chunk:
                try:
                    graph.set_next(source, target)
                except CycleError:
                    pass

        chunks = [edits[i::THREADS] for i in range(THREADS)]
        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            list(executor.map(worker, chunks))

        _assert_acyclic(graph.categories, graph.path_from)


class TestNoLostUpdates:
    def test_concurrent_adds_all_survive(self, pair_service):
        barrier = Barrier(THREADS, timeout=30)

        def add(i):
            barrier.wait()
            return pair_service.add_category(f"작업 {i}").id

        with ThreadPoolExecutor(max_workers=THREADS) as executor:
            added = list(executor.map(add, range(THREADS)))

        categories = pair_service.categories()
        assert len(categories) == THREADS + 2
        assert {c.id for c in categories} >= set(added)
        assert [c.order for c in categories] == list(range(THREADS + 2))
