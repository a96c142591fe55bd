"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A posted journal entry is a financial fact.  Corrections are new entries
(reversals) or a void marker -- never edits.  Services already refuse these
operations with typed errors; this module is the backstop that catches any
code path (a script, a future service, a test shortcut) that tries to write
through the ORM anyway.

    session.flush()
         |
         v
    [before_update / before_delete / before_insert] --> _check_*()
         |                                                  |
         v                                                  v
    SQL sent to database               ImmutabilityViolationError (flush aborted)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|------------------------------------------------------------
JournalEntry  | POSTED: only the POSTED -> VOID transition (status,
              | void_reason, voided_by_id, voided_at) may change.
              | VOID: nothing changes.  Only DRAFT entries may be deleted.
JournalLine   | Inserted, updated or deleted only while the entry is DRAFT.
Account       | account_type frozen once a posted line references the
              | account; never deleted while any line references it.
FiscalYear    | Closed years never change and are never deleted; the
              | open -> closed transition sets only the close columns.

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; LedgerAPI calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    """Mapped attributes (columns and relationships) with pending changes."""
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in AUDIT_FIELDS and attr.history.has_changes()
    ]


def _previous_value(target, key: str):
    """Value the attribute had when loaded (before pending changes)."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


# =============================================================================
# JournalEntry / JournalLine
# =============================================================================


def _check_journal_entry_update(mapper, connection, target):
    """
    Block changes to POSTED and VOID entries, except the void transition.

    Logic:
        1. Was DRAFT before this flush: anything goes (editing, posting).
        2. Was POSTED: only POSTED -> VOID with the void columns.
        3. Was VOID: nothing.
    """
    from ledger_kernel.models.journal import (
        VOID_TRANSITION_FIELDS,
        JournalEntryStatus,
    )

    previous = _previous_value(target, "status")
    if previous == JournalEntryStatus.DRAFT:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if (
        previous == JournalEntryStatus.POSTED
        and target.status == JournalEntryStatus.VOID
        and set(changed) <= VOID_TRANSITION_FIELDS
    ):
        return

    _blocked(
        "JournalEntry",
        target.id,
        "UPDATE",
        f"Cannot modify {changed} on {previous.value} journal entry",
        fields=changed,
    )


def _check_journal_entry_delete(mapper, connection, target):
    from ledger_kernel.models.journal import JournalEntryStatus

    previous = _previous_value(target, "status")
    if previous != JournalEntryStatus.DRAFT:
        _blocked(
            "JournalEntry",
            target.id,
            "DELETE",
            f"{previous.value} journal entries cannot be deleted",
        )


def _entry_status_for_line(connection, line):
    """Persisted status of the line's parent entry."""
    from ledger_kernel.models.journal import JournalEntry

    if line.entry is not None:
        return _previous_value(line.entry, "status")
    return connection.execute(
        select(JournalEntry.status).where(JournalEntry.id == line.journal_entry_id)
    ).scalar_one_or_none()


def _check_journal_line_write(operation: str):
    def _check(mapper, connection, target):
        from ledger_kernel.models.journal import JournalEntryStatus

        status = _entry_status_for_line(connection, target)
        if status is None or status == JournalEntryStatus.DRAFT:
            return
        _blocked(
            "JournalLine",
            target.id,
            operation,
            f"Journal lines cannot be changed once the entry is {status.value}",
        )

    _check.__name__ = f"_check_journal_line_{operation.lower()}"
    return _check


_check_journal_line_insert = _check_journal_line_write("INSERT")
_check_journal_line_update = _check_journal_line_write("UPDATE")
_check_journal_line_delete = _check_journal_line_write("DELETE")


# =============================================================================
# Account
# =============================================================================


def _account_has_posted_lines(connection, account_id) -> bool:
    from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine

    return connection.execute(
        select(JournalLine.id)
        .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
        .where(
            JournalLine.account_id == account_id,
            JournalEntry.status != JournalEntryStatus.DRAFT,
        )
        .limit(1)
    ).first() is not None


def _check_account_update(mapper, connection, target):
    """account_type is frozen once posted (or voided) lines reference the account."""
    if not get_history(target, "account_type").has_changes():
        return
    if _account_has_posted_lines(connection, target.id):
        _blocked(
            "Account",
            target.id,
            "UPDATE",
            "Cannot change account_type on an account referenced by posted lines",
            fields=["account_type"],
        )


def _check_account_deletion_before_flush(session, flush_context, instances):
    """
    Accounts referenced by any journal line are never deleted.

    Runs in before_flush so the check happens before cascades are planned.
    """
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalLine

    for obj in list(session.deleted):
        if not isinstance(obj, Account):
            continue
        with session.no_autoflush:
            referenced = session.execute(
                select(JournalLine.id).where(JournalLine.account_id == obj.id).limit(1)
            ).first()
        if referenced is not None:
            _blocked(
                "Account",
                obj.id,
                "DELETE",
                "Accounts referenced by journal lines cannot be deleted",
            )


# =============================================================================
# FiscalYear
# =============================================================================


def _check_fiscal_year_update(mapper, connection, target):
    from ledger_kernel.models.fiscal_year import CLOSE_TRANSITION_FIELDS

    was_closed = _previous_value(target, "is_closed")
    changed = _changed_fields(target)
    if not changed:
        return

    if was_closed:
        _blocked(
            "FiscalYear",
            target.id,
            "UPDATE",
            "Closed fiscal years cannot be modified",
            fields=changed,
        )

    # Open year: the close may only touch the close columns.
    if target.is_closed and not set(changed) <= CLOSE_TRANSITION_FIELDS:
        _blocked(
            "FiscalYear",
            target.id,
            "UPDATE",
            "Closing a fiscal year may not change its name or dates",
            fields=changed,
        )


def _check_fiscal_year_delete(mapper, connection, target):
    if _previous_value(target, "is_closed"):
        _blocked(
            "FiscalYear",
            target.id,
            "DELETE",
            "Closed fiscal years cannot be deleted",
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.fiscal_year import FiscalYear
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    return [
        (Session, "before_flush", _check_account_deletion_before_flush),
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_insert", _check_journal_line_insert),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (Account, "before_update", _check_account_update),
        (FiscalYear, "before_update", _check_fiscal_year_update),
        (FiscalYear, "before_delete", _check_fiscal_year_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener in _listener_table():
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)


def unregister_immutability_listeners() -> None:
    """Remove immutability enforcement event listeners. FOR TESTING ONLY."""
    for target, event_name, listener in _listener_table():
        if event.contains(target, event_name, listener):
            event.remove(target, event_name, listener)
