"""
ORM-Level Immutability Enforcement for posting outputs.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted transactions and rejection records are the pipeline's outputs.  Once a
record is written it is never corrected in place: a rejected transaction is
fixed by resubmitting it as a NEW input, and a posted transaction is never
edited or removed.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |                                                  ^
         v                                                  |
    [before_delete event] --> _check_*_delete() ------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable          | Why
----------------------|-------------------------|--------------------------------
PostedTransaction     | ALWAYS (from creation)  | Balances were moved by it
TransactionRejection  | ALWAYS (from creation)  | Operator audit of failures

Reference state (Account, CategoryBalance, Card) is NOT protected here: the
posting engine mutates balances on every accepted transaction.

===============================================================================
USAGE
===============================================================================

    from card_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    from card_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event

from card_kernel.exceptions import ImmutabilityViolationError
from card_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_posted_transaction_update(mapper, connection, target):
    """Prevent any updates to PostedTransaction records."""
    from card_kernel.models.transaction import PostedTransaction

    if not isinstance(target, PostedTransaction):
        return

    _block(
        "PostedTransaction",
        target.transaction_id,
        "UPDATE",
        "Posted transactions cannot be modified",
    )


def _check_posted_transaction_delete(mapper, connection, target):
    """Prevent deletion of PostedTransaction records."""
    from card_kernel.models.transaction import PostedTransaction

    if not isinstance(target, PostedTransaction):
        return

    _block(
        "PostedTransaction",
        target.transaction_id,
        "DELETE",
        "Posted transactions cannot be deleted",
    )


def _check_rejection_update(mapper, connection, target):
    """Prevent any updates to TransactionRejection records."""
    from card_kernel.models.rejection import TransactionRejection

    if not isinstance(target, TransactionRejection):
        return

    _block(
        "TransactionRejection",
        str(target.id),
        "UPDATE",
        "Rejection records are append-only; resubmit the transaction instead",
    )


def _check_rejection_delete(mapper, connection, target):
    """Prevent deletion of TransactionRejection records."""
    from card_kernel.models.rejection import TransactionRejection

    if not isinstance(target, TransactionRejection):
        return

    _block(
        "TransactionRejection",
        str(target.id),
        "DELETE",
        "Rejection records cannot be deleted",
    )


_LISTENERS = (
    ("before_update", _check_posted_transaction_update, "transaction"),
    ("before_delete", _check_posted_transaction_delete, "transaction"),
    ("before_update", _check_rejection_update, "rejection"),
    ("before_delete", _check_rejection_delete, "rejection"),
)


def _targets():
    from card_kernel.models.rejection import TransactionRejection
    from card_kernel.models.transaction import PostedTransaction

    return {"transaction": PostedTransaction, "rejection": TransactionRejection}


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Registering twice is harmless.
    """
    targets = _targets()
    for event_name, listener_fn, key in _LISTENERS:
        if not event.contains(targets[key], event_name, listener_fn):
            event.listen(targets[key], event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Safely remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests.
    """
    targets = _targets()
    for event_name, listener_fn, key in _LISTENERS:
        _safe_remove_listener(targets[key], event_name, listener_fn)
