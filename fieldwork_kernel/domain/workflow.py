"""
Canonical workflow types (``fieldwork_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for stage machines, and the one workflow the kernel
runs: the lifecycle of a single category work unit.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass

from fieldwork_kernel.domain.stages import WorkStage


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the transition engine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``; terminal states
    have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"undeclared state ({t.from_state} -> {t.to_state})"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action!r}"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the declared transition between two states, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


WORKER_ASSIGNED = Guard(
    name="worker_assigned",
    description="A worker must be assigned before work starts",
)

AMOUNT_CAPTURED = Guard(
    name="amount_captured",
    description="A settlement amount (or explicit skip) must be captured on completion",
)


CATEGORY_SCHEDULE_WORKFLOW = Workflow(
    name="category_schedule",
    description="Lifecycle of one category work unit within a job",
    initial_state=WorkStage.SCHEDULED.value,
    states=tuple(stage.value for stage in WorkStage),
    transitions=(
        Transition(WorkStage.SCHEDULED.value, WorkStage.PREPARING.value, "prepare"),
        Transition(
            WorkStage.PREPARING.value,
            WorkStage.IN_PROGRESS.value,
            "start",
            guard=WORKER_ASSIGNED,
        ),
        Transition(
            WorkStage.IN_PROGRESS.value,
            WorkStage.COMPLETED.value,
            "complete",
            guard=AMOUNT_CAPTURED,
        ),
        Transition(WorkStage.SCHEDULED.value, WorkStage.CANCELLED.value, "cancel"),
        Transition(WorkStage.PREPARING.value, WorkStage.CANCELLED.value, "cancel"),
        Transition(WorkStage.IN_PROGRESS.value, WorkStage.CANCELLED.value, "cancel"),
    ),
    terminal_states=(WorkStage.COMPLETED.value, WorkStage.CANCELLED.value),
)
