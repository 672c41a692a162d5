"""Worker value object as seen by the process engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WorkerType(str, Enum):
    FOREMAN = "foreman"  # 작업반장
    DRIVER = "driver"  # 운송기사


@dataclass(frozen=True)
class Worker:
    """
    A foreman or driver from the worker directory.

    ``category_ids`` are the work categories the worker declared affiliation
    with; eligibility for a work unit is membership in that set.
    """

    id: str
    name: str
    worker_type: WorkerType = WorkerType.FOREMAN
    category_ids: frozenset[str] = frozenset()
    phone_number: str | None = None

    def is_eligible_for(self, category_id: str) -> bool:
        return category_id in self.category_ids
