"""
FiscalYearService -- fiscal year lifecycle, date gating and the year-end close.

Responsibility:
    Creates non-overlapping fiscal years, answers which year covers a date,
    gates posting/voiding/drafting on closed years, and closes a year by
    moving every income and expense balance into retained earnings.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerStore (draft dates), PostingService (post/void dates)
    and LedgerAPI (lifecycle).  close_year composes BalanceSelector,
    LedgerStore and PostingService.

Invariants enforced:
    - Fiscal years never overlap; start_date <= end_date.
    - Closing is one-directional.  The year row is locked FOR UPDATE for
      the whole close, and post() reads it FOR SHARE, so a posting either
      lands before the close computes balances or sees is_closed.
    - After a close, every income and expense account has zero posted
      activity inside the year and retained earnings moved by net income.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidDateRangeError: start_date > end_date.
    - DateOverlapError: new range intersects an existing year.
    - FiscalYearNotFoundError: unknown id, or no year covers a posting date.
    - PeriodClosedError: date falls inside a closed year.
    - FiscalYearAlreadyClosedError: close of a closed year.
    - RetainedEarningsAccountMissingError: no retained earnings account.
    - UnbalancedLedgerError: posted debits != credits up to the year end.

Audit relevance:
    Creation and close are logged at INFO with year name, actor and net
    income; date-gate refusals are logged at WARNING.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.closing import AccountActivity, ClosingPlan, build_closing_lines
from ledger_kernel.domain.dtos import DraftLine, FiscalYearInfo, JournalEntryDraft
from ledger_kernel.exceptions import (
    DateOverlapError,
    FiscalYearAlreadyClosedError,
    FiscalYearNotFoundError,
    InvalidDateRangeError,
    PeriodClosedError,
    RetainedEarningsAccountMissingError,
    UnbalancedLedgerError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    RETAINED_EARNINGS_SUBTYPE,
    TEMPORARY_ACCOUNT_TYPES,
    Account,
    AccountType,
)
from ledger_kernel.models.fiscal_year import FiscalYear
from ledger_kernel.models.journal import EntrySource
from ledger_kernel.selectors.balance_selector import BalanceSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.fiscal_year")

DEFAULT_RETAINED_EARNINGS_CODE = "3100"


@dataclass(frozen=True)
class CloseResult:
    """Outcome of a fiscal year close."""

    fiscal_year: FiscalYearInfo
    closing_entry_id: UUID | None
    total_revenue: Decimal
    total_expense: Decimal

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expense


@dataclass(frozen=True)
class ClosePreview:
    """What close_year would post, computed without writing anything."""

    fiscal_year: FiscalYearInfo
    retained_earnings_account_id: UUID
    retained_earnings_code: str
    activities: tuple[AccountActivity, ...]
    lines: tuple[DraftLine, ...]
    total_revenue: Decimal
    total_expense: Decimal

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expense

    @property
    def needs_entry(self) -> bool:
        return len(self.lines) > 0


class FiscalYearService(BaseService[FiscalYear]):
    """
    Service for the fiscal year lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        frozen FiscalYearInfo DTOs.  The check_* methods raise typed errors
        and return the covering year (or None).

    Guarantees:
        - close_year either posts the closing entry AND marks the year
          closed, or (on any error) leaves both untouched once the caller
          rolls back.

    Non-goals:
        - Does NOT reopen years.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        retained_earnings_code: str = DEFAULT_RETAINED_EARNINGS_CODE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._retained_earnings_code = retained_earnings_code

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_fiscal_year(
        self,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalYearInfo:
        """
        Create a new, open fiscal year.

        Raises:
            InvalidDateRangeError: If start_date > end_date.
            DateOverlapError: If the range intersects an existing year.
        """
        if start_date > end_date:
            raise InvalidDateRangeError(str(start_date), str(end_date))

        self._validate_no_overlap(name, start_date, end_date)

        year = FiscalYear(
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_closed=False,
            created_by_id=actor_id,
        )
        self.session.add(year)
        self.session.flush()

        logger.info(
            "fiscal_year_created",
            extra={
                "fiscal_year_id": str(year.id),
                "fiscal_year_name": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return FiscalYearInfo.from_model(year)

    def _validate_no_overlap(self, name: str, start_date: date, end_date: date) -> None:
        """Two ranges overlap if start1 <= end2 AND start2 <= end1."""
        overlapping = self.session.execute(
            select(FiscalYear)
            .where(
                FiscalYear.start_date <= end_date,
                FiscalYear.end_date >= start_date,
            )
            .order_by(FiscalYear.start_date)
            .limit(1)
        ).scalar_one_or_none()

        if overlapping is not None:
            raise DateOverlapError(
                fiscal_year_name=name,
                existing_name=overlapping.name,
                existing_start=str(overlapping.start_date),
                existing_end=str(overlapping.end_date),
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _year_for_date(self, day: date, lock: str | None = None) -> FiscalYear | None:
        query = select(FiscalYear).where(
            FiscalYear.start_date <= day,
            FiscalYear.end_date >= day,
        )
        if lock == "share":
            query = query.with_for_update(read=True)
        elif lock == "update":
            query = query.with_for_update()
        if lock is not None:
            query = query.execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def get_year(self, fiscal_year_id: UUID) -> FiscalYearInfo:
        year = self.session.get(FiscalYear, fiscal_year_id)
        if year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        return FiscalYearInfo.from_model(year)

    def get_year_for_date(self, day: date) -> FiscalYearInfo | None:
        year = self._year_for_date(day)
        return FiscalYearInfo.from_model(year) if year is not None else None

    def current_year(self, today: date | None = None) -> FiscalYearInfo | None:
        """The open fiscal year containing today (clock date by default)."""
        year = self._year_for_date(today or self._clock.today())
        if year is None or year.is_closed:
            return None
        return FiscalYearInfo.from_model(year)

    def list_years(self) -> list[FiscalYearInfo]:
        years = self.session.execute(
            select(FiscalYear).order_by(FiscalYear.start_date)
        ).scalars().all()
        return [FiscalYearInfo.from_model(y) for y in years]

    # -------------------------------------------------------------------------
    # Date gates
    # -------------------------------------------------------------------------

    def _refuse_closed(self, year: FiscalYear, day: date, operation: str) -> None:
        if not year.is_closed:
            return
        logger.warning(
            "period_closed_refused",
            extra={
                "fiscal_year_name": year.name,
                "entry_date": str(day),
                "operation": operation,
            },
        )
        raise PeriodClosedError(
            fiscal_year_name=year.name,
            start_date=str(year.start_date),
            end_date=str(year.end_date),
            entry_date=str(day),
        )

    def check_date_not_closed(self, day: date, operation: str = "draft") -> FiscalYearInfo | None:
        """
        Refuse dates inside a closed year.  A date outside every year passes.

        Raises:
            PeriodClosedError: If a closed year covers the date.
        """
        year = self._year_for_date(day)
        if year is None:
            return None
        self._refuse_closed(year, day, operation)
        return FiscalYearInfo.from_model(year)

    def check_date_postable(self, day: date, operation: str = "post") -> FiscalYearInfo:
        """
        Require an existing, open year covering the date.

        The covering row is read FOR SHARE: a concurrent close (FOR UPDATE)
        blocks until this transaction ends, and this call waits for an
        in-flight close and then sees is_closed.

        Raises:
            FiscalYearNotFoundError: If no year covers the date.
            PeriodClosedError: If the covering year is closed.
        """
        year = self._year_for_date(day, lock="share")
        if year is None:
            logger.warning(
                "fiscal_year_missing_refused",
                extra={"entry_date": str(day), "operation": operation},
            )
            raise FiscalYearNotFoundError(str(day))
        self._refuse_closed(year, day, operation)
        return FiscalYearInfo.from_model(year)

    # -------------------------------------------------------------------------
    # Year-end close
    # -------------------------------------------------------------------------

    def _get_year_for_update(self, fiscal_year_id: UUID) -> FiscalYear | None:
        """Load the year with SELECT ... FOR UPDATE to serialize closes."""
        return self.session.execute(
            select(FiscalYear)
            .where(FiscalYear.id == fiscal_year_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def resolve_retained_earnings(self) -> Account:
        """
        The retained earnings account: the configured code when it names an
        equity account, else the first active equity account of subtype
        retained_earnings (by code).

        Raises:
            RetainedEarningsAccountMissingError: If neither exists.
        """
        account = self.session.execute(
            select(Account).where(
                Account.code == self._retained_earnings_code,
                Account.account_type == AccountType.EQUITY,
            )
        ).scalar_one_or_none()
        if account is not None:
            return account

        account = self.session.execute(
            select(Account)
            .where(
                Account.account_type == AccountType.EQUITY,
                Account.subtype == RETAINED_EARNINGS_SUBTYPE,
                Account.is_active.is_(True),
            )
            .order_by(Account.code)
            .limit(1)
        ).scalar_one_or_none()
        if account is None:
            raise RetainedEarningsAccountMissingError(self._retained_earnings_code)
        return account

    def _plan_close(
        self, year: FiscalYear, retained: Account
    ) -> tuple[list[AccountActivity], ClosingPlan]:
        """Balance check, then the year's temporary-account activity and closing lines."""
        balances = BalanceSelector(self.session)
        totals = balances.posted_totals(year.end_date)
        if totals.debit_total != totals.credit_total:
            logger.error(
                "ledger_unbalanced",
                extra={
                    "as_of": str(year.end_date),
                    "debit_total": str(totals.debit_total),
                    "credit_total": str(totals.credit_total),
                },
            )
            raise UnbalancedLedgerError(
                str(year.end_date), totals.debit_total, totals.credit_total
            )

        temporary = self.session.execute(
            select(Account)
            .where(Account.account_type.in_(list(TEMPORARY_ACCOUNT_TYPES)))
            .order_by(Account.code)
        ).scalars().all()
        movement = balances.period_activity(
            [a.id for a in temporary], year.start_date, year.end_date
        )
        activities = [
            AccountActivity(
                account_id=a.id,
                account_code=a.code,
                account_name=a.name,
                account_type=a.account_type.value,
                balance=movement.get(a.id, ZERO),
            )
            for a in temporary
        ]
        return activities, build_closing_lines(activities, retained.id, year.name)

    def preview_close(self, fiscal_year_id: UUID) -> ClosePreview:
        """
        Compute the closing entry close_year would post, without writing.

        Takes no row lock; a posting that lands before the real close
        changes its outcome.

        Raises:
            FiscalYearNotFoundError, FiscalYearAlreadyClosedError,
            RetainedEarningsAccountMissingError, UnbalancedLedgerError.
        """
        year = self.session.get(FiscalYear, fiscal_year_id)
        if year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        if year.is_closed:
            raise FiscalYearAlreadyClosedError(year.name)

        retained = self.resolve_retained_earnings()
        activities, plan = self._plan_close(year, retained)

        logger.debug(
            "fiscal_year_close_previewed",
            extra={
                "fiscal_year_name": year.name,
                "line_count": len(plan.lines),
                "net_income": str(plan.net_income),
            },
        )
        return ClosePreview(
            fiscal_year=FiscalYearInfo.from_model(year),
            retained_earnings_account_id=retained.id,
            retained_earnings_code=retained.code,
            activities=tuple(a for a in activities if a.balance != ZERO),
            lines=plan.lines,
            total_revenue=plan.total_revenue,
            total_expense=plan.total_expense,
        )

    def close_year(
        self,
        fiscal_year_id: UUID,
        actor_id: UUID,
        posting=None,
    ) -> CloseResult:
        """
        Close a fiscal year into retained earnings.

        Steps (one transaction, the year row locked throughout):
            1. Lock the year; refuse when already closed.
            2. Resolve the retained earnings account.
            3. Check posted debits == credits up to end_date.
            4. Posted activity inside the year for every income and expense
               account (inactive and child accounts included).
            5-6. Build the closing lines (domain.closing).
            7. Append and post the closing entry, dated end_date.
            8. Mark the year closed.

        A year without income/expense activity gets no entry but is still
        marked closed.  preview_close runs steps 1-6 without the lock.

        Args:
            posting: PostingService that records the closing entry, so it
                is numbered like every other entry.  A default one is built
                when None.

        Raises:
            FiscalYearNotFoundError, FiscalYearAlreadyClosedError,
            RetainedEarningsAccountMissingError, UnbalancedLedgerError.
        """
        # Deferred import: PostingService depends on this service.
        from ledger_kernel.services.posting_service import PostingService

        year = self._get_year_for_update(fiscal_year_id)
        if year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))
        if year.is_closed:
            raise FiscalYearAlreadyClosedError(year.name)

        retained = self.resolve_retained_earnings()
        _, plan = self._plan_close(year, retained)

        closing_entry_id = None
        if plan.needs_entry:
            draft = JournalEntryDraft(
                entry_date=year.end_date,
                lines=plan.lines,
                description=f"Year-end closing entry for {year.name}",
                reference=f"CLOSING-{year.name}",
                source=EntrySource.CLOSING,
            )
            posting = posting or PostingService(self.session, self._clock, fiscal_years=self)
            entry = posting.create_and_post(draft, actor_id, closing=True)
            closing_entry_id = entry.id

        year.is_closed = True
        year.closed_at = self._clock.now()
        year.closed_by_id = actor_id
        year.closing_entry_id = closing_entry_id
        self.session.flush()

        logger.info(
            "fiscal_year_closed",
            extra={
                "fiscal_year_id": str(year.id),
                "fiscal_year_name": year.name,
                "closed_by_id": str(actor_id),
                "closing_entry_id": str(closing_entry_id) if closing_entry_id else None,
                "total_revenue": str(plan.total_revenue),
                "total_expense": str(plan.total_expense),
                "net_income": str(plan.net_income),
            },
        )

        return CloseResult(
            fiscal_year=FiscalYearInfo.from_model(year),
            closing_entry_id=closing_entry_id,
            total_revenue=plan.total_revenue,
            total_expense=plan.total_expense,
        )
