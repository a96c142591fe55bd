"""
PostingService -- the journal entry state machine (draft -> posted -> void)
and reversals.

Responsibility:
    Posts drafts after re-validating them against the current state of the
    chart and the fiscal calendar, voids posted entries with a reason, and
    reverses posted entries by appending and posting a mirrored entry.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerAPI, RecurringService and FiscalYearService.close_year().
    Composes LedgerStore (reversal drafts) and FiscalYearService (date gates).

Invariants enforced:
    - Only DRAFT -> POSTED and POSTED -> VOID; no backward transitions.
    - Posting re-checks balance and accounts: an account deactivated after
      the draft was written blocks posting.
    - The covering fiscal year exists and is open, read FOR SHARE so that a
      concurrent close is serialized against the post.
    - An entry has at most one live reversal, and an entry with a live
      reversal cannot be voided (either would double-count the correction).
    - Entries dated inside a closed year can be neither voided nor reversed.
    - Posted content never changes (db/immutability.py is the backstop).
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - EntryNotFoundError: unknown entry id.
    - InvalidStatusTransitionError: wrong source status (carries current and
      required status).
    - VoidReasonRequiredError: blank void reason.
    - EntryAlreadyReversedError: second reversal, or void of a reversed entry.
    - FiscalYearNotFoundError / PeriodClosedError: date gate.
    - LinesImbalancedError / InvalidAccountError: re-validation at post.

Audit relevance:
    journal_entry_posted, journal_entry_voided and journal_entry_reversed are
    logged at INFO with entry number, actor and amounts.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import DraftLine, JournalEntryDraft
from ledger_kernel.exceptions import (
    EntryAlreadyReversedError,
    EntryNotFoundError,
    InvalidStatusTransitionError,
    VoidReasonRequiredError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import EntrySource, JournalEntry, JournalEntryStatus
from ledger_kernel.selectors.journal_selector import JournalEntryDTO, JournalSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.fiscal_year_service import FiscalYearService
from ledger_kernel.services.ledger_store import (
    LedgerStore,
    validate_accounts,
    validate_lines,
)

logger = get_logger("services.posting")


class PostingService(BaseService[JournalEntry]):
    """
    Journal entry lifecycle transitions.

    Contract:
        Accepts entry ids, returns JournalEntryDTOs reflecting the new state.
        The entry row is locked FOR UPDATE for the duration of a transition,
        so two concurrent posts (or a post and a void) of the same entry are
        serialized and the loser sees the winner's status.

    Guarantees:
        - reverse() leaves the original entry POSTED and unchanged.
        - A reversal is POSTED with source=adjustment, reversal_of_id set,
          dated clock.today().

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT support partial (line-level) reversals.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fiscal_years: FiscalYearService | None = None,
        ledger_store: LedgerStore | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._fiscal_years = fiscal_years or FiscalYearService(session, self._clock)
        self._store = ledger_store or LedgerStore(
            session, self._clock, fiscal_years=self._fiscal_years
        )
        self._journal = JournalSelector(session)

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

    def _require_status(self, entry: JournalEntry, required: JournalEntryStatus) -> None:
        if entry.status != required:
            logger.warning(
                "invalid_status_transition",
                extra={
                    "entry_id": str(entry.id),
                    "current_status": entry.status.value,
                    "required_status": required.value,
                },
            )
            raise InvalidStatusTransitionError(
                entry_id=str(entry.id),
                current_status=entry.status.value,
                required_status=required.value,
            )

    def _require_not_reversed(self, entry: JournalEntry) -> None:
        reversal = self._journal.get_reversal_of(entry.id)
        if reversal is not None:
            raise EntryAlreadyReversedError(str(entry.id), str(reversal.id))

    # -------------------------------------------------------------------------
    # draft -> posted
    # -------------------------------------------------------------------------

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntryDTO:
        """
        Post a draft entry.

        Preconditions:
            - Entry is DRAFT.

        Postconditions:
            - status is POSTED; posted_by_id/posted_at are set.
            - The entry now counts in every balance.

        Raises:
            EntryNotFoundError, InvalidStatusTransitionError,
            LinesImbalancedError, EmptyEntryError, InvalidAccountError,
            FiscalYearNotFoundError, PeriodClosedError.
        """
        entry = self._get_entry_for_update(entry_id)
        self._require_status(entry, JournalEntryStatus.DRAFT)

        lines = [
            DraftLine(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in entry.lines
        ]
        total, _ = validate_lines(lines)
        validate_accounts(
            self.session,
            [line.account_id for line in lines],
            allow_inactive=(
                entry.source == EntrySource.CLOSING or entry.reversal_of_id is not None
            ),
        )

        year = self._fiscal_years.check_date_postable(entry.entry_date, operation="post")

        entry.status = JournalEntryStatus.POSTED
        entry.posted_by_id = actor_id
        entry.posted_at = self._clock.now()
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "entry_date": str(entry.entry_date),
                "fiscal_year_id": str(year.id),
                "source": entry.source.value,
                "total": str(total),
                "posted_by_id": str(actor_id),
            },
        )
        return JournalSelector.to_dto(entry)

    def create_and_post(
        self, draft: JournalEntryDraft, actor_id: UUID, closing: bool = False
    ) -> JournalEntryDTO:
        """Append a draft and post it in the caller's transaction.

        closing=True is passed by FiscalYearService.close_year only.
        """
        appended = self._store.append_entry(draft, actor_id, closing=closing)
        return self.post(appended.id, actor_id)

    # -------------------------------------------------------------------------
    # posted -> void
    # -------------------------------------------------------------------------

    def void(self, entry_id: UUID, reason: str, actor_id: UUID) -> JournalEntryDTO:
        """
        Void a posted entry.  Lines and amounts stay as they were; the entry
        simply stops counting.

        Raises:
            VoidReasonRequiredError, EntryNotFoundError,
            InvalidStatusTransitionError, EntryAlreadyReversedError,
            PeriodClosedError.
        """
        reason = (reason or "").strip()
        if not reason:
            raise VoidReasonRequiredError(str(entry_id))

        entry = self._get_entry_for_update(entry_id)
        self._require_status(entry, JournalEntryStatus.POSTED)
        self._require_not_reversed(entry)
        self._fiscal_years.check_date_not_closed(entry.entry_date, operation="void")

        entry.status = JournalEntryStatus.VOID
        entry.void_reason = reason
        entry.voided_by_id = actor_id
        entry.voided_at = self._clock.now()
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_voided",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "void_reason": reason,
                "voided_by_id": str(actor_id),
            },
        )
        return JournalSelector.to_dto(entry)

    # -------------------------------------------------------------------------
    # reversal
    # -------------------------------------------------------------------------

    def reverse(self, entry_id: UUID, actor_id: UUID) -> JournalEntryDTO:
        """
        Reverse a posted entry with a mirrored entry dated today.

        Debits and credits of every line swap sides.  Both the original
        entry date and the reversal date must lie outside closed years, so
        a closed year never gains an entry with a live reversal.

        Returns:
            The posted reversal entry.

        Raises:
            EntryNotFoundError, InvalidStatusTransitionError,
            EntryAlreadyReversedError, FiscalYearNotFoundError,
            PeriodClosedError.
        """
        original = self._get_entry_for_update(entry_id)
        self._require_status(original, JournalEntryStatus.POSTED)
        self._require_not_reversed(original)
        self._fiscal_years.check_date_not_closed(original.entry_date, operation="reverse")

        mirrored = tuple(
            DraftLine(
                account_id=line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=(
                    f"Reversal: {line.description}" if line.description else "Reversal"
                ),
            )
            for line in original.lines
        )
        draft = JournalEntryDraft(
            entry_date=self._clock.today(),
            lines=mirrored,
            description=f"Reversal of {original.entry_number}",
            reference=f"REV-{original.entry_number}",
            source=EntrySource.ADJUSTMENT,
            source_type=original.source_type,
            source_id=original.source_id,
        )

        with LogContext.bind(entry_id=str(original.id)):
            appended = self._store.append_entry(draft, actor_id, reversal_of_id=original.id)
            reversal = self.post(appended.id, actor_id)

            logger.info(
                "journal_entry_reversed",
                extra={
                    "original_entry_id": str(original.id),
                    "original_entry_number": original.entry_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_entry_number": reversal.entry_number,
                    "reversal_date": str(reversal.entry_date),
                },
            )
        return reversal
