"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is globally unique (uq_account_code).
    - account_type never changes once a posted line references the account
      (db/immutability.py).
    - subtype belongs to ACCOUNT_SUBTYPES[account_type] (AccountService).
    - parent shares the account's type and the tree has no cycles
      (AccountService).

Failure modes:
    - IntegrityError on duplicate code if the service-level check is
      bypassed.
    - ImmutabilityViolationError on account_type change after posting.

Audit relevance:
    Account rows define the structure of the general ledger.  Accounts
    referenced by journal lines are deactivated, never deleted, so every
    historical line keeps its account.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyCents

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


# Subtypes allowed per account type
ACCOUNT_SUBTYPES: dict[AccountType, tuple[str, ...]] = {
    AccountType.ASSET: (
        "cash",
        "bank",
        "accounts_receivable",
        "inventory",
        "prepaid",
        "fixed_asset",
        "other_asset",
    ),
    AccountType.LIABILITY: (
        "accounts_payable",
        "credit_card",
        "current_liability",
        "long_term_liability",
        "other_liability",
    ),
    AccountType.EQUITY: (
        "owners_equity",
        "retained_earnings",
        "other_equity",
    ),
    AccountType.INCOME: (
        "sales",
        "other_income",
    ),
    AccountType.EXPENSE: (
        "cost_of_goods_sold",
        "operating_expense",
        "payroll",
        "other_expense",
    ),
}

RETAINED_EARNINGS_SUBTYPE = "retained_earnings"

# Temporary accounts are zeroed by the year-end close
TEMPORARY_ACCOUNT_TYPES = frozenset({AccountType.INCOME, AccountType.EXPENSE})


def enum_column(enum_cls: type[Enum], length: int = 20) -> SAEnum:
    """Enum column stored as its string value (no native DB enum)."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Account(TrackedBase):
    """
    Chart of Accounts entry -- a single node in the account tree.

    Contract:
        Account.code is unique.  Balances are never stored here; they are
        derived from opening_balance plus posted journal lines.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, INCOME, EXPENSE.
        - opening_balance is signed in the account's normal direction and
          fixed at creation.

    Non-goals:
        - Deletion guards live in AccountService, which reports them as
          typed errors before any SQL is issued.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_active", "is_active"),
    )

    # Account identifier (human-readable, sortable)
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Localized display name
    name_local: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    account_type: Mapped[AccountType] = mapped_column(
        enum_column(AccountType),
        nullable=False,
    )

    subtype: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    opening_balance: Mapped[Decimal] = mapped_column(
        MoneyCents(),
        default=Decimal("0.00"),
        nullable=False,
    )

    # System accounts cannot be deactivated, modified or deleted
    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Whether the account accepts new lines
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(
        back_populates="parent",
        order_by="Account.code",
    )

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
