"""
ORM-Level Immutability Enforcement for ledger events.

===============================================================================
WHY THIS EXISTS
===============================================================================

Lots and removals are the source of truth of the stock ledger.  Remaining
balances and withdrawal values are recomputed from them by FIFO replay on
every read, so editing or deleting a past event silently rewrites every
balance and value derived after it.  Corrections are new events.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable          | Why
----------------|-------------------------|--------------------------------------
LotModel        | ALWAYS (from creation)  | FIFO replay and lot prices read it
RemovalModel    | ALWAYS (from creation)  | FIFO replay consumes it

MaterialModel is NOT protected: its aggregate_mm is a cached sum updated
by every ledger event.

===============================================================================
LIMITATIONS
===============================================================================

Bulk ``session.execute(update(...))`` and raw SQL bypass ORM events.
"""

from sqlalchemy import event

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_lot_immutability(mapper, connection, target):
    """Prevent any updates to lots."""
    _block("Lot", target, "UPDATE", "Lots are immutable; record a new event instead")


def _check_lot_delete(mapper, connection, target):
    """Prevent deletion of lots."""
    _block("Lot", target, "DELETE", "Lots cannot be deleted")


def _check_removal_immutability(mapper, connection, target):
    """Prevent any updates to removals."""
    _block("Removal", target, "UPDATE", "Removals are immutable; record a new event instead")


def _check_removal_delete(mapper, connection, target):
    """Prevent deletion of removals."""
    _block("Removal", target, "DELETE", "Removals cannot be deleted")


def _listeners():
    from ledger_kernel.models.ledger_event import LotModel, RemovalModel

    return (
        (LotModel, "before_update", _check_lot_immutability),
        (LotModel, "before_delete", _check_lot_delete),
        (RemovalModel, "before_update", _check_removal_immutability),
        (RemovalModel, "before_delete", _check_removal_delete),
    )


def register_immutability_listeners():
    """
    Register the immutability enforcement event listeners.

    Call this after the models are imported but before any ledger writes.
    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately corrupt the ledger.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
