"""
Process Invariants Contract.

These invariants are structural law for the process engine. No setting in
``fieldwork_config`` may switch them off.

This module exists solely to declare them explicitly. Enforcement lives in
CategoryGraph, StageTransitionEngine, the ScheduleAggregate settlement
properties and the append-only listeners in ``fieldwork_kernel.db``.
"""

from enum import Enum, unique


@unique
class ProcessInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ACYCLIC_CHAIN = "acyclic_chain"
    """No category can reach itself by following successor links. Enforced
    by CategoryGraph.set_next / rewire_path before committing an edge, and
    guarded again by the visited set in path_from."""

    WORKER_GATE = "worker_gate"
    """A work unit never reaches IN_PROGRESS without a worker. Enforced by
    StageTransitionEngine, which suspends with AwaitingWorkerAssignment."""

    AMOUNT_CAPTURE = "amount_capture"
    """A work unit never reaches COMPLETED with an undefined amount. Enforced
    by StageTransitionEngine (MissingAmountError)."""

    STAGE_MONOTONICITY = "stage_monotonicity"
    """Stages only move forward one step at a time, except a single jump to
    CANCELLED from a non-terminal stage. Enforced by the declared workflow."""

    AMOUNT_CONSERVATION = "amount_conservation"
    """Job total equals the live sum of unit amounts plus additional
    settlements. Enforced by deriving the total on every read."""

    APPEND_ONLY_HISTORY = "append_only_history"
    """Stage history records are never mutated or reordered. Enforced by the
    aggregate API and by ORM listeners on StageHistoryModel and
    AdditionalSettlementModel."""


ALL_PROCESS_INVARIANTS: frozenset[ProcessInvariant] = frozenset(ProcessInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "fieldwork_config",
)
