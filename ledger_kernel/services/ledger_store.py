"""
LedgerStore -- validated persistence of journal entries as drafts.

Responsibility:
    Turns a JournalEntryDraft into JournalEntry + JournalLine rows after
    checking every line, the balance and the referenced accounts; allocates
    the entry number from the locked sequence counter; edits and discards
    drafts.  Read access lives in JournalSelector and LedgerSelector.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerAPI, PostingService.reverse(), RecurringService and
    FiscalYearService.close_year().  Delegates number allocation to
    SequenceService and the closed-year gate to FiscalYearService.

Invariants enforced:
    - At least two lines; every line has exactly one nonzero,
      non-negative side; debits == credits exactly (Decimal, 2 dp).
    - Every line references an existing, active account.  Closing entries
      and reversals may reference inactive accounts.
    - source=closing is reserved for the year-end close (closing=True).
    - No draft is dated inside a closed fiscal year.
    - entry_number is "<prefix>-<seq>" from SequenceService; numbers are
      never reused (a discarded draft leaves a gap).
    - All validation happens before the first write.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - EmptyEntryError, InvalidLineError, LinesImbalancedError,
      InvalidAccountError, InvalidSourceError, PeriodClosedError on
      append/update.
    - EntryNotFoundError, InvalidStatusTransitionError on update/discard.

Audit relevance:
    journal_entry_appended / journal_draft_updated / journal_draft_discarded
    are logged at INFO; rejected drafts at WARNING with the error code.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import DraftLine, JournalEntryDraft
from ledger_kernel.exceptions import (
    EmptyEntryError,
    EntryNotFoundError,
    InvalidAccountError,
    InvalidLineError,
    InvalidSourceError,
    InvalidStatusTransitionError,
    LinesImbalancedError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import (
    EntrySource,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.selectors.journal_selector import JournalEntryDTO, JournalSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_store")

DEFAULT_ENTRY_NUMBER_PREFIX = "JE"
DEFAULT_ENTRY_NUMBER_WIDTH = 6

# Written only by the year-end close
_RESERVED_SOURCES = frozenset({EntrySource.CLOSING})


def validate_lines(lines: Sequence[DraftLine]) -> tuple[Decimal, Decimal]:
    """
    Check line count, sides and balance of a line set.

    Shared by journal drafts and recurring templates.

    Returns:
        (total_debits, total_credits), equal on success.

    Raises:
        EmptyEntryError: Fewer than two lines.
        InvalidLineError: Negative amount, or not exactly one side set.
        LinesImbalancedError: Debits != credits.
    """
    if len(lines) < 2:
        raise EmptyEntryError(len(lines))

    total_debits = ZERO
    total_credits = ZERO
    for index, line in enumerate(lines, start=1):
        if line.debit < ZERO or line.credit < ZERO:
            raise InvalidLineError(index, "amounts must not be negative")
        if line.debit > ZERO and line.credit > ZERO:
            raise InvalidLineError(index, "a line cannot carry both a debit and a credit")
        if line.debit == ZERO and line.credit == ZERO:
            raise InvalidLineError(index, "a line needs a nonzero debit or credit")
        total_debits += line.debit
        total_credits += line.credit

    if total_debits != total_credits:
        raise LinesImbalancedError(total_debits, total_credits)

    return total_debits, total_credits


def resolve_source(source: str, reserved_ok: bool = False) -> EntrySource:
    """
    Map a draft's source string to EntrySource.

    Raises:
        InvalidSourceError: Unknown source, or a reserved one from a caller
            that may not use it.
    """
    try:
        resolved = EntrySource(source)
    except ValueError:
        raise InvalidSourceError(str(source)) from None
    if resolved in _RESERVED_SOURCES and not reserved_ok:
        raise InvalidSourceError(resolved.value, "reserved for the year-end close")
    return resolved


def validate_accounts(
    session: Session,
    account_ids: Sequence[UUID],
    allow_inactive: bool = False,
) -> dict[UUID, Account]:
    """
    Load the referenced accounts in one query.

    Raises:
        InvalidAccountError: Missing account, or inactive when not allowed.
    """
    wanted = set(account_ids)
    accounts = {
        account.id: account
        for account in session.execute(
            select(Account).where(Account.id.in_(list(wanted)))
        ).scalars()
    }
    for account_id in account_ids:
        account = accounts.get(account_id)
        if account is None:
            raise InvalidAccountError(str(account_id), "account does not exist")
        if not account.is_active and not allow_inactive:
            raise InvalidAccountError(
                str(account_id), f"account {account.code} is inactive"
            )
    return accounts


class LedgerStore(BaseService[JournalEntry]):
    """
    Write side of the journal.

    Contract:
        append_entry() validates a draft and persists it as a DRAFT entry
        with a freshly allocated number.  update_draft() and discard_draft()
        act on DRAFT entries only.  All methods return JournalEntryDTOs.

    Guarantees:
        - A refused draft writes nothing, not even a sequence value.

    Non-goals:
        - Does NOT post (that is PostingService).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        entry_number_prefix: str = DEFAULT_ENTRY_NUMBER_PREFIX,
        entry_number_width: int = DEFAULT_ENTRY_NUMBER_WIDTH,
        fiscal_years: FiscalYearService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._prefix = entry_number_prefix
        self._width = entry_number_width
        self._sequences = SequenceService(session)
        self._fiscal_years = fiscal_years or FiscalYearService(session, self._clock)

    def _format_number(self, seq: int) -> str:
        return f"{self._prefix}-{seq:0{self._width}d}"

    def _validate(
        self, draft: JournalEntryDraft, allow_inactive: bool, closing: bool = False
    ) -> EntrySource:
        try:
            source = resolve_source(draft.source, reserved_ok=closing)
            validate_lines(draft.lines)
            validate_accounts(
                self.session,
                [line.account_id for line in draft.lines],
                allow_inactive=allow_inactive or closing,
            )
        except ValidationError as exc:
            logger.warning(
                "journal_entry_rejected",
                extra={
                    "error_code": exc.code,
                    "entry_date": str(draft.entry_date),
                    "source": draft.source,
                    "line_count": len(draft.lines),
                },
            )
            raise
        self._fiscal_years.check_date_not_closed(draft.entry_date, operation="draft")
        return source

    def _build_lines(
        self, draft: JournalEntryDraft, actor_id: UUID
    ) -> list[JournalLine]:
        return [
            JournalLine(
                account_id=line.account_id,
                line_seq=index,
                description=line.description,
                debit=line.debit,
                credit=line.credit,
                created_by_id=actor_id,
            )
            for index, line in enumerate(draft.lines, start=1)
        ]

    def _get_entry_for_update(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def _require_draft(self, entry: JournalEntry) -> None:
        if not entry.is_draft:
            raise InvalidStatusTransitionError(
                entry_id=str(entry.id),
                current_status=entry.status.value,
                required_status=JournalEntryStatus.DRAFT.value,
            )

    def append_entry(
        self,
        draft: JournalEntryDraft,
        actor_id: UUID,
        reversal_of_id: UUID | None = None,
        closing: bool = False,
    ) -> JournalEntryDTO:
        """
        Validate and persist a draft entry.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - A DRAFT JournalEntry with its lines (line_seq 1..n) is flushed.
            - entry_number is allocated from the locked counter row.

        Only the year-end close passes closing=True; it alone may use
        source=closing and book onto inactive accounts.  Reversals
        (reversal_of_id set) may also touch inactive accounts.

        Raises:
            EmptyEntryError, InvalidLineError, LinesImbalancedError,
            InvalidAccountError, InvalidSourceError, PeriodClosedError.
        """
        source = self._validate(
            draft, allow_inactive=reversal_of_id is not None, closing=closing
        )

        seq = self._sequences.next_value(SequenceService.JOURNAL_ENTRY)
        entry = JournalEntry(
            seq=seq,
            entry_number=self._format_number(seq),
            entry_date=draft.entry_date,
            reference=draft.reference,
            description=draft.description,
            status=JournalEntryStatus.DRAFT,
            source=source,
            source_type=draft.source_type,
            source_id=draft.source_id,
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        entry.lines = self._build_lines(draft, actor_id)
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "entry_date": str(entry.entry_date),
                "source": entry.source.value,
                "line_count": len(entry.lines),
                "total": str(draft.total_debits),
            },
        )
        return JournalSelector.to_dto(entry)

    def update_draft(
        self,
        entry_id: UUID,
        draft: JournalEntryDraft,
        actor_id: UUID,
    ) -> JournalEntryDTO:
        """
        Replace header and lines of a draft, with full revalidation.

        The entry keeps its id and number.

        Raises:
            EntryNotFoundError, InvalidStatusTransitionError, plus every
            append_entry() validation error.
        """
        entry = self._get_entry_for_update(entry_id)
        self._require_draft(entry)
        source = self._validate(draft, allow_inactive=entry.reversal_of_id is not None)

        # Old lines go first so line_seq values can be reused.
        entry.lines.clear()
        self.session.flush()

        entry.entry_date = draft.entry_date
        entry.reference = draft.reference
        entry.description = draft.description
        entry.source = source
        entry.source_type = draft.source_type
        entry.source_id = draft.source_id
        entry.updated_by_id = actor_id
        entry.lines = self._build_lines(draft, actor_id)
        self.session.flush()

        logger.info(
            "journal_draft_updated",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "line_count": len(entry.lines),
            },
        )
        return JournalSelector.to_dto(entry)

    def discard_draft(self, entry_id: UUID, actor_id: UUID) -> None:
        """
        Delete a draft and its lines.  Its entry number is not reused.

        Raises:
            EntryNotFoundError, InvalidStatusTransitionError.
        """
        entry = self._get_entry_for_update(entry_id)
        self._require_draft(entry)

        entry_number = entry.entry_number
        self.session.delete(entry)
        self.session.flush()

        logger.info(
            "journal_draft_discarded",
            extra={
                "entry_id": str(entry_id),
                "entry_number": entry_number,
                "discarded_by_id": str(actor_id),
            },
        )
