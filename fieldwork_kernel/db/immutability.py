"""
ORM-Level Append-Only Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A job's stage history is the record of who moved which work unit when, and
its additional settlements are money owed to workers.  Both may only grow:
a correction is a new entry, never an edit of an old one.

The domain aggregate already exposes these collections as tuples that can
only be extended.  This module is the second line: it stops code that goes
around the aggregate and edits rows through the ORM.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update event] --> _reject_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _reject_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The exception aborts the flush; nothing reaches the database.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                      | When Immutable
----------------------------|----------------------
StageHistoryModel           | ALWAYS (from creation)
AdditionalSettlementModel   | ALWAYS (from creation)

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
repositories never issue them for these tables.
"""

from sqlalchemy import event

from fieldwork_kernel.exceptions import ImmutabilityViolationError
from fieldwork_kernel.invariants import ProcessInvariant
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(target, operation: str) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": ProcessInvariant.APPEND_ONLY_HISTORY.value,
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} rows are append-only and cannot be {verb}",
    )


def _reject_update(mapper, connection, target):
    _block(target, "UPDATE")


def _reject_delete(mapper, connection, target):
    _block(target, "DELETE")


def _append_only_models():
    from fieldwork_kernel.models.schedule import AdditionalSettlementModel, StageHistoryModel

    return (StageHistoryModel, AdditionalSettlementModel)


def register_immutability_listeners() -> None:
    """
    Register the append-only listeners.

    Call once during application start-up, after the models are imported.
    Calling it again is harmless.
    """
    for model in _append_only_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that need to violate the rule on purpose.
    """
    for model in _append_only_models():
        _safe_remove_listener(model, "before_update", _reject_update)
        _safe_remove_listener(model, "before_delete", _reject_delete)
