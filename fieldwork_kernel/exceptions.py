"""
Typed Exception Hierarchy for the Fieldwork Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the process engine (CRUD screens, services, batch scripts) must
react differently to "the admin typed an empty name", "that link would loop
the pipeline" and "you cannot reopen finished work". Parsing message strings
for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        graph.set_next(cutting.id, pulling.id)
    except CycleError as e:
        show_rejection(code=e.code, path=e.path)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from FieldworkError:

    FieldworkError (base)
    |
    +-- ValidationError
    |   +-- MissingAmountError
    |
    +-- NotFoundError
    |   +-- CategoryNotFoundError
    |   +-- CategoryScheduleNotFoundError
    |   +-- ScheduleNotFoundError
    |   +-- WorkerNotFoundError
    |   +-- RateNotFoundError
    |
    +-- CycleError
    +-- InUseError
    +-- InvalidTransitionError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                          | When Raised
------------------------------|-------------------------------------------------
VALIDATION_ERROR              | Malformed input (empty name, zero settlement,
                              | mismatched reorder set, ...)
MISSING_AMOUNT                | Completion requested without amount or skip flag
CATEGORY_NOT_FOUND            | Category id unknown to the graph
CATEGORY_SCHEDULE_NOT_FOUND   | Category id not part of the job
SCHEDULE_NOT_FOUND            | Job id unknown to the repository
WORKER_NOT_FOUND              | Worker id unknown to the worker directory
RATE_NOT_FOUND                | Rate item id unknown on the category
CATEGORY_CYCLE                | set_next / rewire would close a loop
CATEGORY_IN_USE               | Delete blocked by live job references
INVALID_TRANSITION            | Non-adjacent or terminal-violating stage change
IMMUTABILITY_VIOLATION        | UPDATE/DELETE of append-only history rows

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Waiting for a worker is NOT an exception. It is an expected branch of the
   transition flow and is returned as ``AwaitingWorkerAssignment`` from
   ``fieldwork_kernel.domain.outcomes``.

2. ``code`` is a class attribute so it can be read without instantiation
   (API documentation, static analysis).

3. Errors are raised synchronously and never retried internally. Retries
   belong to the persistence collaborator.
"""


class FieldworkError(Exception):
    """
    Base exception for all fieldwork kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FIELDWORK_ERROR"


# Validation


class ValidationError(FieldworkError):
    """Malformed input rejected before any state change."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MissingAmountError(ValidationError):
    """
    Completion requested without a captured amount.

    The caller must enter a rate, pass an explicit amount, or set the
    skip-settlement flag.
    """

    code: str = "MISSING_AMOUNT"

    def __init__(self, schedule_id: str, category_id: str):
        self.schedule_id = schedule_id
        self.category_id = category_id
        super().__init__(
            f"Completing category {category_id} of job {schedule_id} "
            "requires a rate, an amount or skip_settlement=True",
            field="amount",
        )


# Lookups


class NotFoundError(FieldworkError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class CategoryNotFoundError(NotFoundError):
    """Category with given ID was not found in the graph."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class CategoryScheduleNotFoundError(NotFoundError):
    """The job has no work unit for the given category."""

    code: str = "CATEGORY_SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str, category_id: str):
        self.schedule_id = schedule_id
        self.category_id = category_id
        super().__init__(
            f"Job {schedule_id} has no work unit for category {category_id}"
        )


class ScheduleNotFoundError(NotFoundError):
    """Job with given ID was not found."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}")


class WorkerNotFoundError(NotFoundError):
    """Worker with given ID is unknown to the worker directory."""

    code: str = "WORKER_NOT_FOUND"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker not found: {worker_id}")


class RateNotFoundError(NotFoundError):
    """Rate item with given ID does not exist on the category."""

    code: str = "RATE_NOT_FOUND"

    def __init__(self, category_id: str, rate_id: str):
        self.category_id = category_id
        self.rate_id = rate_id
        super().__init__(f"Rate {rate_id} not found on category {category_id}")


# Graph integrity


class CycleError(FieldworkError):
    """
    Linking categories would make a category reachable from itself.

    ``path`` is the loop that the rejected edit would have created, starting
    and ending at ``category_id``.
    """

    code: str = "CATEGORY_CYCLE"

    def __init__(self, category_id: str, next_category_id: str, path: list[str]):
        self.category_id = category_id
        self.next_category_id = next_category_id
        self.path = path
        super().__init__(
            f"Linking {category_id} -> {next_category_id} would create a cycle: "
            f"{' -> '.join(path)}"
        )


class InUseError(FieldworkError):
    """Category is still referenced by live jobs and cannot be deleted."""

    code: str = "CATEGORY_IN_USE"

    def __init__(self, category_id: str, schedule_ids: list[str]):
        self.category_id = category_id
        self.schedule_ids = schedule_ids
        super().__init__(
            f"Category {category_id} is referenced by {len(schedule_ids)} job(s)"
        )


# Stage machine


class InvalidTransitionError(FieldworkError):
    """Requested stage change is not legal from the current stage."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, category_id: str, from_stage: str, to_stage: str, reason: str = ""):
        self.category_id = category_id
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.reason = reason
        message = f"Cannot move category {category_id} from {from_stage} to {to_stage}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Persistence


class ImmutabilityViolationError(FieldworkError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
