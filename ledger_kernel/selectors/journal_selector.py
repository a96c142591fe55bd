"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only query access to journal entries and their lines.
    Converts ORM models to frozen DTOs for clean layer separation.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos.py and selectors/base.py.

Invariants enforced:
    - Read-only: No mutations performed on any queried data.
    - DTO convention: All public methods return JournalEntryDTO/JournalLineDTO
      (or a Page of them), never raw ORM models.
    - Lines are sorted by line_seq for deterministic ordering.

Failure modes:
    - Returns None / an empty page when nothing matches (never raises on
      absence of data; LedgerAPI turns None into EntryNotFoundError).
    - InvalidStatusError / InvalidSourceError: a listing filter names no
      known status or source (raised before any query runs).

Audit relevance:
    The journal listing is the back office's audit trail: every entry,
    including voided ones and the reversals that compensate others.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import EntryFilter, Page
from ledger_kernel.exceptions import InvalidSourceError, InvalidStatusError
from ledger_kernel.models.journal import (
    EntrySource,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from ledger_kernel.selectors.base import BaseSelector


def _status_filter(status: str) -> JournalEntryStatus:
    try:
        return JournalEntryStatus(status)
    except ValueError:
        raise InvalidStatusError(str(status)) from None


def _source_filter(source: str) -> EntrySource:
    try:
        return EntrySource(source)
    except ValueError:
        raise InvalidSourceError(str(source)) from None


@dataclass(frozen=True)
class JournalLineDTO:
    """Data transfer object for a journal line."""

    id: UUID
    account_id: UUID
    debit: Decimal
    credit: Decimal
    description: str | None
    line_seq: int


@dataclass(frozen=True)
class JournalEntryDTO:
    """Data transfer object for a journal entry."""

    id: UUID
    entry_number: str
    seq: int
    entry_date: date
    reference: str | None
    description: str | None
    status: JournalEntryStatus
    source: EntrySource
    source_type: str | None
    source_id: str | None
    reversal_of_id: UUID | None
    created_by_id: UUID
    posted_by_id: UUID | None
    posted_at: datetime | None
    voided_by_id: UUID | None
    voided_at: datetime | None
    void_reason: str | None
    lines: tuple[JournalLineDTO, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalSelector(BaseSelector[JournalEntry]):
    """
    Selector for journal entry queries.

    Guarantees:
        - Eager loading: JournalEntry.lines are loaded via selectinload to
          avoid N+1 queries.
        - Listings are ordered newest first (entry_date, then seq).

    Non-goals:
        - This selector does NOT compute balances; use BalanceSelector.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def to_dto(entry: JournalEntry) -> JournalEntryDTO:
        """Convert ORM model to DTO."""
        lines = tuple(
            JournalLineDTO(
                id=line.id,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                line_seq=line.line_seq,
            )
            for line in sorted(entry.lines, key=lambda x: x.line_seq)
        )

        return JournalEntryDTO(
            id=entry.id,
            entry_number=entry.entry_number,
            seq=entry.seq,
            entry_date=entry.entry_date,
            reference=entry.reference,
            description=entry.description,
            status=entry.status,
            source=entry.source,
            source_type=entry.source_type,
            source_id=entry.source_id,
            reversal_of_id=entry.reversal_of_id,
            created_by_id=entry.created_by_id,
            posted_by_id=entry.posted_by_id,
            posted_at=entry.posted_at,
            voided_by_id=entry.voided_by_id,
            voided_at=entry.voided_at,
            void_reason=entry.void_reason,
            lines=lines,
        )

    def get_entry(self, journal_entry_id: UUID) -> JournalEntryDTO | None:
        entry = self.session.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.id == journal_entry_id)
        ).scalar_one_or_none()

        if entry is None:
            return None

        return self.to_dto(entry)

    def get_by_number(self, entry_number: str) -> JournalEntryDTO | None:
        entry = self.session.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()

        if entry is None:
            return None

        return self.to_dto(entry)

    def get_reversal_of(self, journal_entry_id: UUID) -> JournalEntryDTO | None:
        """The live (not voided) entry that reverses journal_entry_id, if any."""
        entry = self.session.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(
                JournalEntry.reversal_of_id == journal_entry_id,
                JournalEntry.status != JournalEntryStatus.VOID,
            )
        ).scalar_one_or_none()

        if entry is None:
            return None

        return self.to_dto(entry)

    def get_entries_by_source(self, source_type: str, source_id: str) -> list[JournalEntryDTO]:
        """Entries recorded for one collaborator document (e.g. a sale)."""
        entries = self.session.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
            .order_by(JournalEntry.seq)
        ).scalars().all()

        return [self.to_dto(entry) for entry in entries]

    def list_entries(
        self,
        filters: EntryFilter | None = None,
        page: int = 1,
        per_page: int = 25,
    ) -> Page[JournalEntryDTO]:
        """
        Paginated journal listing.

        Preconditions: page >= 1 and per_page >= 1 (LedgerAPI clamps both).
        Postconditions: items are at most per_page entries; total counts
            every entry matching the filters.
        """
        filters = filters or EntryFilter()
        conditions = []

        if filters.date_from is not None:
            conditions.append(JournalEntry.entry_date >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(JournalEntry.entry_date <= filters.date_to)
        if filters.status is not None:
            conditions.append(JournalEntry.status == _status_filter(filters.status))
        if filters.source is not None:
            conditions.append(JournalEntry.source == _source_filter(filters.source))
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    JournalEntry.entry_number.ilike(pattern),
                    JournalEntry.reference.ilike(pattern),
                    JournalEntry.description.ilike(pattern),
                )
            )
        if filters.account_id is not None:
            conditions.append(
                exists().where(
                    JournalLine.journal_entry_id == JournalEntry.id,
                    JournalLine.account_id == filters.account_id,
                )
            )

        total = self.session.execute(
            select(func.count(JournalEntry.id)).where(*conditions)
        ).scalar_one()

        entries = self.session.execute(
            select(JournalEntry)
            .options(selectinload(JournalEntry.lines))
            .where(*conditions)
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.seq.desc())
            .limit(per_page)
            .offset((page - 1) * per_page)
        ).scalars().all()

        return Page(
            items=tuple(self.to_dto(entry) for entry in entries),
            total=total,
            page=page,
            per_page=per_page,
        )
