"""
ledger_services.ledger_api -- the external interface of the ledger.

Responsibility:
    The single entrypoint the POS back office (sales, refunds, expenses,
    purchasing, the accounting screens and the CLI) uses to talk to the
    ledger.  Every public method runs in exactly one database transaction.

Architecture position:
    Services -- the outermost layer over ``ledger_kernel``.  Reads its
    settings from ``ledger_config``; wires kernel services per session in
    ``LedgerServices``.

Invariants enforced:
    - One call, one transaction: ``session_scope()`` commits on success and
      rolls back on any exception, so a failed call changes nothing.
    - Domain errors (``LedgerError`` subclasses) propagate unchanged after
      the rollback.
    - Storage errors (``SQLAlchemyError``) are re-raised as
      ``LedgerOperationFailedError``.
    - Immutability listeners are registered before the first call.
    - No method deletes a posted or void entry.

Failure modes:
    - Every typed error of the kernel services.
    - LedgerOperationFailedError: database failure, nothing changed.

Audit relevance:
    Each call binds ``operation`` and ``actor_id`` into the LogContext, so
    every log line a service writes during the call carries both.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, load_chart, load_settings
from ledger_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountNode,
    EntryFilter,
    FiscalYearInfo,
    JournalEntryDraft,
    Page,
    RecurringTemplateInfo,
    TemplateLineSpec,
)
from ledger_kernel.exceptions import (
    EntryNotFoundError,
    LedgerError,
    LedgerOperationFailedError,
)
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.selectors.balance_selector import BalanceSelector, TrialBalance
from ledger_kernel.selectors.journal_selector import JournalEntryDTO, JournalSelector
from ledger_kernel.selectors.ledger_selector import AccountLedger, LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.chart_seeder import ChartAccount, ChartSeeder, SeedResult
from ledger_kernel.services.fiscal_year_service import (
    ClosePreview,
    CloseResult,
    FiscalYearService,
)
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.recurring_service import RecurringService

logger = get_logger("services.ledger_api")

T = TypeVar("T")


class LedgerServices:
    """
    Kernel services wired for one session.

    All services share the session, the clock and a single
    FiscalYearService, so date gates and the close see the same state.
    """

    def __init__(self, session: Session, settings: LedgerSettings, clock: Clock):
        self.session = session
        self.fiscal_years = FiscalYearService(
            session,
            clock,
            retained_earnings_code=settings.retained_earnings_account_code,
        )
        self.store = LedgerStore(
            session,
            clock,
            entry_number_prefix=settings.entry_number_prefix,
            entry_number_width=settings.entry_number_width,
            fiscal_years=self.fiscal_years,
        )
        self.posting = PostingService(
            session, clock, fiscal_years=self.fiscal_years, ledger_store=self.store
        )
        self.accounts = AccountService(session)
        self.recurring = RecurringService(session, clock, posting=self.posting)
        self.journal = JournalSelector(session)
        self.ledger = LedgerSelector(session)
        self.balances = BalanceSelector(session)


@dataclass(frozen=True)
class RecurringFailure:
    template_id: UUID
    template_name: str
    error_code: str
    message: str


@dataclass(frozen=True)
class RecurringRunReport:
    """Outcome of process_recurring()."""

    as_of: date
    dry_run: bool
    due: tuple[RecurringTemplateInfo, ...]
    posted: tuple[JournalEntryDTO, ...]
    failures: tuple[RecurringFailure, ...]

    @property
    def posted_count(self) -> int:
        return len(self.posted)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class LedgerAPI:
    """
    Transactional facade over the ledger kernel.

    Contract:
        Accepts plain values and DTOs, returns frozen DTOs.  Each call is
        atomic.  ``actor_id`` identifies the back-office user for audit
        columns; authentication is the caller's concern.

    Non-goals:
        - No report rendering, tax rules or currency conversion.
    """

    def __init__(
        self,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._settings = settings or load_settings()
        self._clock = clock or SystemClock()
        register_immutability_listeners()

    @classmethod
    def connect(
        cls,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> LedgerAPI:
        """Initialize the engine from settings (and the schema) and build the API."""
        settings = settings or load_settings()
        configure_logging(level=settings.log_level)
        init_engine_from_url(settings.database_url)
        if create_schema:
            create_tables()
        return cls(settings, clock)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Transaction boundary
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        work: Callable[[LedgerServices], T],
        actor_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            operation=operation,
            actor_id=str(actor_id) if actor_id else None,
            correlation_id=str(uuid4()),
        ):
            try:
                with session_scope() as session:
                    return work(LedgerServices(session, self._settings, self._clock))
            except SQLAlchemyError as exc:
                logger.error(
                    "ledger_operation_failed",
                    extra={"operation": operation, "error_type": type(exc).__name__},
                )
                raise LedgerOperationFailedError(operation, str(exc)) from exc

    def _page_bounds(self, page: int, per_page: int | None) -> tuple[int, int]:
        per_page = per_page or self._settings.default_page_size
        per_page = max(1, min(per_page, self._settings.max_page_size))
        return max(1, page), per_page

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(
        self,
        code: str,
        name: str,
        account_type: str,
        subtype: str,
        actor_id: UUID,
        parent_id: UUID | None = None,
        opening_balance: Decimal | int | str = Decimal("0.00"),
        name_local: str | None = None,
        description: str | None = None,
        is_system: bool = False,
    ) -> AccountInfo:
        return self._run(
            "create_account",
            lambda s: s.accounts.create_account(
                code=code,
                name=name,
                account_type=account_type,
                subtype=subtype,
                actor_id=actor_id,
                parent_id=parent_id,
                opening_balance=opening_balance,
                name_local=name_local,
                description=description,
                is_system=is_system,
            ),
            actor_id,
        )

    def update_account(self, account_id: UUID, actor_id: UUID, **changes) -> AccountInfo:
        """Edit an account; see AccountService.update_account for the fields."""
        return self._run(
            "update_account",
            lambda s: s.accounts.update_account(account_id, actor_id, **changes),
            actor_id,
        )

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        return self._run(
            "deactivate_account",
            lambda s: s.accounts.deactivate_account(account_id, actor_id),
            actor_id,
        )

    def reactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        return self._run(
            "reactivate_account",
            lambda s: s.accounts.reactivate_account(account_id, actor_id),
            actor_id,
        )

    def delete_account(self, account_id: UUID, actor_id: UUID) -> None:
        self._run(
            "delete_account",
            lambda s: s.accounts.delete_account(account_id, actor_id),
            actor_id,
        )

    def get_account(self, account_id: UUID) -> AccountInfo:
        return self._run("get_account", lambda s: s.accounts.get_account(account_id))

    def get_account_by_code(self, code: str) -> AccountInfo:
        return self._run("get_account_by_code", lambda s: s.accounts.get_account_by_code(code))

    def list_accounts(
        self,
        type_filter: str | None = None,
        active_only: bool = False,
        search: str | None = None,
    ) -> list[AccountInfo]:
        return self._run(
            "list_accounts",
            lambda s: s.accounts.list_accounts(type_filter, active_only, search),
        )

    def get_account_tree(self, type_filter: str | None = None) -> list[AccountNode]:
        return self._run("get_account_tree", lambda s: s.accounts.list_tree(type_filter))

    def seed_default_chart(
        self,
        actor_id: UUID,
        chart: Iterable[ChartAccount] | None = None,
    ) -> SeedResult:
        """Create the missing accounts of a chart (the configured one by default)."""
        if chart is None:
            chart = load_chart(self._settings.chart_of_accounts)
        return self._run(
            "seed_default_chart",
            lambda s: ChartSeeder(s.session).seed(chart, actor_id),
            actor_id,
        )

    # -------------------------------------------------------------------------
    # Journal entries
    # -------------------------------------------------------------------------

    def create_journal_entry(
        self,
        draft: JournalEntryDraft,
        actor_id: UUID,
        post: bool = False,
    ) -> JournalEntryDTO:
        """Append a draft; with post=True append and post atomically."""
        if post:
            return self._run(
                "create_journal_entry",
                lambda s: s.posting.create_and_post(draft, actor_id),
                actor_id,
            )
        return self._run(
            "create_journal_entry",
            lambda s: s.store.append_entry(draft, actor_id),
            actor_id,
        )

    def update_journal_entry(
        self,
        entry_id: UUID,
        draft: JournalEntryDraft,
        actor_id: UUID,
    ) -> JournalEntryDTO:
        return self._run(
            "update_journal_entry",
            lambda s: s.store.update_draft(entry_id, draft, actor_id),
            actor_id,
        )

    def discard_journal_entry(self, entry_id: UUID, actor_id: UUID) -> None:
        self._run(
            "discard_journal_entry",
            lambda s: s.store.discard_draft(entry_id, actor_id),
            actor_id,
        )

    def post_journal_entry(self, entry_id: UUID, actor_id: UUID) -> JournalEntryDTO:
        return self._run(
            "post_journal_entry",
            lambda s: s.posting.post(entry_id, actor_id),
            actor_id,
        )

    def void_journal_entry(self, entry_id: UUID, reason: str, actor_id: UUID) -> JournalEntryDTO:
        return self._run(
            "void_journal_entry",
            lambda s: s.posting.void(entry_id, reason, actor_id),
            actor_id,
        )

    def reverse_journal_entry(self, entry_id: UUID, actor_id: UUID) -> JournalEntryDTO:
        return self._run(
            "reverse_journal_entry",
            lambda s: s.posting.reverse(entry_id, actor_id),
            actor_id,
        )

    def get_journal_entry(self, entry_id: UUID) -> JournalEntryDTO:
        def work(s: LedgerServices) -> JournalEntryDTO:
            entry = s.journal.get_entry(entry_id)
            if entry is None:
                raise EntryNotFoundError(str(entry_id))
            return entry

        return self._run("get_journal_entry", work)

    def get_journal_entry_by_number(self, entry_number: str) -> JournalEntryDTO:
        def work(s: LedgerServices) -> JournalEntryDTO:
            entry = s.journal.get_by_number(entry_number)
            if entry is None:
                raise EntryNotFoundError(entry_number)
            return entry

        return self._run("get_journal_entry_by_number", work)

    def list_journal_entries(
        self,
        filters: EntryFilter | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> Page[JournalEntryDTO]:
        page, per_page = self._page_bounds(page, per_page)
        return self._run(
            "list_journal_entries",
            lambda s: s.journal.list_entries(filters, page, per_page),
        )

    def get_entries_for_source(self, source_type: str, source_id: str) -> list[JournalEntryDTO]:
        """Entries recorded for one collaborator document, e.g. a sale."""
        return self._run(
            "get_entries_for_source",
            lambda s: s.journal.get_entries_by_source(source_type, source_id),
        )

    # -------------------------------------------------------------------------
    # Balances and reports
    # -------------------------------------------------------------------------

    def get_account_balance(
        self,
        account_id: UUID,
        as_of: date | None = None,
        include_children: bool = True,
    ) -> Decimal:
        if include_children:
            return self._run(
                "get_account_balance",
                lambda s: s.balances.balance_of(account_id, as_of),
            )
        return self._run(
            "get_account_balance",
            lambda s: s.balances.own_balance_of(account_id, as_of),
        )

    def get_trial_balance(self, as_of: date | None = None) -> TrialBalance:
        return self._run("get_trial_balance", lambda s: s.balances.trial_balance(as_of))

    def get_account_ledger(
        self,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AccountLedger:
        return self._run(
            "get_account_ledger",
            lambda s: s.ledger.account_activity(account_id, date_from, date_to),
        )

    # -------------------------------------------------------------------------
    # Fiscal years
    # -------------------------------------------------------------------------

    def create_fiscal_year(
        self,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalYearInfo:
        return self._run(
            "create_fiscal_year",
            lambda s: s.fiscal_years.create_fiscal_year(name, start_date, end_date, actor_id),
            actor_id,
        )

    def get_current_fiscal_year(self, today: date | None = None) -> FiscalYearInfo | None:
        return self._run(
            "get_current_fiscal_year",
            lambda s: s.fiscal_years.current_year(today),
        )

    def get_fiscal_year(self, fiscal_year_id: UUID) -> FiscalYearInfo:
        return self._run("get_fiscal_year", lambda s: s.fiscal_years.get_year(fiscal_year_id))

    def list_fiscal_years(self) -> list[FiscalYearInfo]:
        return self._run("list_fiscal_years", lambda s: s.fiscal_years.list_years())

    def preview_fiscal_year_close(self, fiscal_year_id: UUID) -> ClosePreview:
        """The closing entry close_fiscal_year would post; writes nothing."""
        with LogContext.bind(fiscal_year_id=str(fiscal_year_id)):
            return self._run(
                "preview_fiscal_year_close",
                lambda s: s.fiscal_years.preview_close(fiscal_year_id),
            )

    def close_fiscal_year(self, fiscal_year_id: UUID, actor_id: UUID) -> CloseResult:
        with LogContext.bind(fiscal_year_id=str(fiscal_year_id)):
            return self._run(
                "close_fiscal_year",
                lambda s: s.fiscal_years.close_year(fiscal_year_id, actor_id, posting=s.posting),
                actor_id,
            )

    # -------------------------------------------------------------------------
    # Recurring entries
    # -------------------------------------------------------------------------

    def create_recurring_template(
        self,
        name: str,
        frequency: str,
        start_date: date,
        lines: list[TemplateLineSpec],
        actor_id: UUID,
        description: str | None = None,
        end_date: date | None = None,
        max_occurrences: int | None = None,
    ) -> RecurringTemplateInfo:
        return self._run(
            "create_recurring_template",
            lambda s: s.recurring.create_template(
                name=name,
                frequency=frequency,
                start_date=start_date,
                lines=lines,
                actor_id=actor_id,
                description=description,
                end_date=end_date,
                max_occurrences=max_occurrences,
            ),
            actor_id,
        )

    def deactivate_recurring_template(
        self, template_id: UUID, actor_id: UUID
    ) -> RecurringTemplateInfo:
        return self._run(
            "deactivate_recurring_template",
            lambda s: s.recurring.deactivate_template(template_id, actor_id),
            actor_id,
        )

    def list_recurring_templates(self, active_only: bool = False) -> list[RecurringTemplateInfo]:
        return self._run(
            "list_recurring_templates",
            lambda s: s.recurring.list_templates(active_only),
        )

    def get_recurring_template(self, template_id: UUID) -> RecurringTemplateInfo:
        return self._run(
            "get_recurring_template",
            lambda s: s.recurring.get_template(template_id),
        )

    def process_recurring(
        self,
        actor_id: UUID,
        as_of: date | None = None,
        dry_run: bool = False,
    ) -> RecurringRunReport:
        """
        Post every due recurring occurrence up to as_of.

        Each occurrence runs in its own transaction.  A failing template is
        logged and counted, and processing continues with the next one.
        Missed occurrences are caught up one transaction at a time.
        """
        as_of = as_of or self._clock.today()
        due = tuple(
            self._run("due_templates", lambda s: s.recurring.due_templates(as_of))
        )
        if dry_run:
            logger.info(
                "recurring_dry_run",
                extra={"as_of": str(as_of), "due_count": len(due)},
            )
            return RecurringRunReport(as_of, True, due, (), ())

        posted: list[JournalEntryDTO] = []
        failures: list[RecurringFailure] = []
        for template in due:
            still_due = True
            while still_due:
                try:
                    entry, still_due = self._run(
                        "run_recurring_template",
                        lambda s: (
                            s.recurring.run_template(template.id, actor_id, as_of),
                            s.recurring.is_due(template.id, as_of),
                        ),
                        actor_id,
                    )
                except LedgerError as exc:
                    logger.warning(
                        "recurring_template_failed",
                        extra={
                            "template_id": str(template.id),
                            "template_name": template.name,
                            "error_code": exc.code,
                        },
                    )
                    failures.append(
                        RecurringFailure(template.id, template.name, exc.code, str(exc))
                    )
                    break
                posted.append(entry)

        logger.info(
            "recurring_processed",
            extra={
                "as_of": str(as_of),
                "due_count": len(due),
                "posted_count": len(posted),
                "failed_count": len(failures),
            },
        )
        return RecurringRunReport(as_of, False, due, tuple(posted), tuple(failures))
