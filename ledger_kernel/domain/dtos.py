"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    journal entry drafts coming in from collaborators, account / fiscal year
    snapshots going out, and the generic Page wrapper for listings.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of database access.  from_model() class methods exist as boundary
    converters but are only invoked from the service and selector layers.

Invariants enforced:
    - Money fields are Decimal quantized by round_money() at construction,
      so two drafts built from "10.5" and Decimal("10.50") compare equal.
    - Domain logic accepts/returns DTOs, never ORM entities.

Failure modes:
    - TypeError from round_money() when a float amount is supplied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from ledger_kernel.db.types import ZERO, round_money

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.fiscal_year import FiscalYear as FiscalYearModel

T = TypeVar("T")


def _enum_value(value) -> str:
    return getattr(value, "value", value)


@dataclass(frozen=True)
class DraftLine:
    """
    One proposed journal line.

    Contract:
        Carries an already-resolved account id and a single-currency amount
        on exactly one side.  Validation (sides, signs, account state) is
        LedgerStore's job so that every refusal is reported as a typed error.
    """

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", round_money(self.debit))
        object.__setattr__(self, "credit", round_money(self.credit))

    @classmethod
    def dr(cls, account_id: UUID, amount, description: str | None = None) -> DraftLine:
        return cls(account_id=account_id, debit=amount, description=description)

    @classmethod
    def cr(cls, account_id: UUID, amount, description: str | None = None) -> DraftLine:
        return cls(account_id=account_id, credit=amount, description=description)


@dataclass(frozen=True)
class JournalEntryDraft:
    """
    A journal entry as proposed by a collaborator (sale, refund, expense,
    manual entry screen).

    Guarantees:
        - Immutable (frozen dataclass); lines are a tuple.
        - source is the string value of EntrySource.
    """

    entry_date: date
    lines: tuple[DraftLine, ...]
    description: str | None = None
    reference: str | None = None
    source: str = "manual"
    source_type: str | None = None
    source_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "source", _enum_value(self.source))

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


@dataclass(frozen=True)
class AccountInfo:
    """
    Pure domain representation of an account.

    Guarantees:
        - Immutable snapshot; account_type is the string value.
    """

    id: UUID
    code: str
    name: str
    account_type: str
    subtype: str
    opening_balance: Decimal
    is_system: bool
    is_active: bool
    parent_id: UUID | None = None
    name_local: str | None = None
    description: str | None = None

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            account_type=_enum_value(model.account_type),
            subtype=model.subtype,
            opening_balance=model.opening_balance,
            is_system=model.is_system,
            is_active=model.is_active,
            parent_id=model.parent_id,
            name_local=model.name_local,
            description=model.description,
        )


@dataclass(frozen=True)
class AccountNode:
    """A node of the account forest: an account and its ordered children."""

    account: AccountInfo
    children: tuple[AccountNode, ...] = ()

    def walk(self):
        """Yield this node's account and every descendant, depth first."""
        yield self.account
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class FiscalYearInfo:
    """
    Pure domain representation of a fiscal year.

    Non-goals:
        - Does NOT enforce close locks (FiscalYearService does that).
    """

    id: UUID
    name: str
    start_date: date
    end_date: date
    is_closed: bool
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    closing_entry_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return not self.is_closed

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @classmethod
    def from_model(cls, model: FiscalYearModel) -> FiscalYearInfo:
        return cls(
            id=model.id,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            is_closed=model.is_closed,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            closing_entry_id=model.closing_entry_id,
        )


@dataclass(frozen=True)
class EntryFilter:
    """Filters for journal entry listings. All fields are optional."""

    date_from: date | None = None
    date_to: date | None = None
    status: str | None = None
    source: str | None = None
    search: str | None = None
    account_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.status is not None:
            object.__setattr__(self, "status", _enum_value(self.status))
        if self.source is not None:
            object.__setattr__(self, "source", _enum_value(self.source))


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a paginated listing."""

    items: tuple[T, ...]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass(frozen=True)
class TemplateLineSpec:
    """One line of a recurring template, same rules as DraftLine."""

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", round_money(self.debit))
        object.__setattr__(self, "credit", round_money(self.credit))


@dataclass(frozen=True)
class RecurringTemplateInfo:
    id: UUID
    name: str
    description: str | None
    frequency: str
    start_date: date
    end_date: date | None
    next_run_date: date
    last_run_date: date | None
    occurrences: int
    max_occurrences: int | None
    is_active: bool
    lines: tuple[TemplateLineSpec, ...] = field(default_factory=tuple)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)
