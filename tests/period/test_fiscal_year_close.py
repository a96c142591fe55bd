"""
Fiscal period manager tests.

Verifies:
- Fiscal years never overlap and need start <= end
- Posting needs an open year covering the entry date
- Closing zeroes every income and expense account into retained earnings
  with one posted closing entry, and locks the year
- A close can be previewed without writing anything
- A closed year refuses new entries, posts and voids
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.exceptions import (
    DateOverlapError,
    FiscalYearAlreadyClosedError,
    FiscalYearNotFoundError,
    InvalidDateRangeError,
    PeriodClosedError,
    RetainedEarningsAccountMissingError,
    StateError,
)
from ledger_kernel.models.journal import EntrySource, JournalEntryStatus
from ledger_kernel.services.fiscal_year_service import FiscalYearService


class TestCreateFiscalYear:
    def test_create_open_year(self, api, test_actor_id):
        year = api.create_fiscal_year("FY2024", date(2024, 1, 1), date(2024, 12, 31), test_actor_id)

        assert year.is_open
        assert year.contains_date(date(2024, 6, 15))
        assert not year.contains_date(date(2025, 1, 1))

    def test_start_after_end_rejected(self, api, test_actor_id):
        with pytest.raises(InvalidDateRangeError):
            api.create_fiscal_year("bad", date(2024, 12, 31), date(2024, 1, 1), test_actor_id)

    def test_single_day_year_allowed(self, api, test_actor_id):
        year = api.create_fiscal_year("stub", date(2024, 1, 1), date(2024, 1, 1), test_actor_id)
        assert year.start_date == year.end_date

    @pytest.mark.parametrize(
        "start,end",
        [
            (date(2024, 12, 31), date(2025, 12, 30)),  # shares the last day
            (date(2023, 7, 1), date(2024, 1, 1)),  # shares the first day
            (date(2024, 3, 1), date(2024, 3, 31)),  # inside
            (date(2023, 1, 1), date(2025, 12, 31)),  # surrounds
        ],
    )
    def test_overlap_rejected(self, api, fiscal_year, test_actor_id, start, end):
        with pytest.raises(DateOverlapError) as exc_info:
            api.create_fiscal_year("FY-overlap", start, end, test_actor_id)
        assert exc_info.value.code == "DATE_OVERLAP"

    def test_adjacent_years_allowed(self, api, fiscal_year, test_actor_id):
        api.create_fiscal_year("FY2025", date(2025, 1, 1), date(2025, 12, 31), test_actor_id)
        assert [y.name for y in api.list_fiscal_years()] == ["FY2024", "FY2025"]

    def test_current_year(self, api, fiscal_year):
        assert api.get_current_fiscal_year().id == fiscal_year.id
        assert api.get_current_fiscal_year(date(2030, 1, 1)) is None

    def test_current_year_none_once_closed(self, api, chart, fiscal_year, test_actor_id):
        api.close_fiscal_year(fiscal_year.id, test_actor_id)
        assert api.get_current_fiscal_year() is None

    def test_year_for_date_includes_closed_years(self, session, test_actor_id):
        years = FiscalYearService(session, DeterministicClock())
        fy = years.create_fiscal_year("FY2024", date(2024, 1, 1), date(2024, 12, 31), test_actor_id)

        assert years.get_year_for_date(date(2024, 12, 31)).id == fy.id
        assert years.get_year_for_date(date(2025, 1, 1)) is None


class TestCloseYear:
    @pytest.fixture
    def trading_year(self, api, chart, fiscal_year, post_entry):
        """FY2024 with 1,000 sales, 50 other income, 400 COGS and 150 rent."""
        post_entry(chart["1000"], chart["4000"], "1000.00", entry_date=date(2024, 3, 1))
        post_entry(chart["1010"], chart["4100"], "50.00", entry_date=date(2024, 4, 1))
        post_entry(chart["5000"], chart["1200"], "400.00", entry_date=date(2024, 3, 1))
        post_entry(chart["5300"], chart["1010"], "150.00", entry_date=date(2024, 5, 1))
        return fiscal_year

    def test_close_moves_net_income_to_retained_earnings(
        self, api, chart, trading_year, test_actor_id
    ):
        result = api.close_fiscal_year(trading_year.id, test_actor_id)

        assert result.total_revenue == Decimal("1050.00")
        assert result.total_expense == Decimal("550.00")
        assert result.net_income == Decimal("500.00")
        assert result.fiscal_year.is_closed
        for code in ("4000", "4100", "5000", "5300"):
            assert api.get_account_balance(chart[code].id) == Decimal("0.00")
        assert api.get_account_balance(chart["3100"].id) == Decimal("500.00")

    def test_closing_entry_shape(self, api, chart, trading_year, test_actor_id):
        result = api.close_fiscal_year(trading_year.id, test_actor_id)
        entry = api.get_journal_entry(result.closing_entry_id)

        assert entry.status == JournalEntryStatus.POSTED
        assert entry.source == EntrySource.CLOSING
        assert entry.entry_date == date(2024, 12, 31)
        assert entry.reference == "CLOSING-FY2024"
        assert entry.description == "Year-end closing entry for FY2024"
        assert entry.entry_number.startswith("JE-")
        assert entry.is_balanced
        by_account = {line.account_id: (line.debit, line.credit) for line in entry.lines}
        assert by_account[chart["4000"].id] == (Decimal("1000.00"), Decimal("0.00"))
        assert by_account[chart["5000"].id] == (Decimal("0.00"), Decimal("400.00"))
        assert by_account[chart["3100"].id] == (Decimal("0.00"), Decimal("500.00"))

    def test_net_loss_debits_retained_earnings(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        post_entry(chart["1000"], chart["4000"], "100.00")
        post_entry(chart["5300"], chart["1000"], "300.00")

        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)

        assert result.net_income == Decimal("-200.00")
        assert api.get_account_balance(chart["3100"].id) == Decimal("-200.00")

    def test_break_even_year_has_no_retained_earnings_line(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        post_entry(chart["1000"], chart["4000"], "100.00")
        post_entry(chart["5300"], chart["1000"], "100.00")

        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)
        entry = api.get_journal_entry(result.closing_entry_id)

        assert {line.account_id for line in entry.lines} == {chart["4000"].id, chart["5300"].id}

    def test_year_without_activity_closes_without_entry(self, api, chart, fiscal_year, test_actor_id):
        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)

        assert result.closing_entry_id is None
        assert api.get_fiscal_year(fiscal_year.id).is_closed
        assert api.list_journal_entries().total == 0

    def test_close_ignores_drafts_voids_and_other_years(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        api.create_fiscal_year("FY2025", date(2025, 1, 1), date(2025, 12, 31), test_actor_id)
        post_entry(chart["1000"], chart["4000"], "100.00")
        post_entry(chart["1000"], chart["4000"], "7.00", post=False)
        voided = post_entry(chart["1000"], chart["4000"], "9.00")
        api.void_journal_entry(voided.id, "duplicate", test_actor_id)
        post_entry(chart["1000"], chart["4000"], "11.00", entry_date=date(2025, 2, 1))

        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)

        assert result.total_revenue == Decimal("100.00")
        assert api.get_account_balance(chart["4000"].id) == Decimal("11.00")

    def test_close_includes_inactive_and_child_accounts(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        parent = create_account("4200", "Service Income", "income", "other_income")
        child = create_account("4210", "Repairs", "income", "other_income", parent_id=parent.id)
        post_entry(chart["1000"], child, "80.00")
        api.deactivate_account(child.id, test_actor_id)

        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)

        assert result.total_revenue == Decimal("80.00")
        assert api.get_account_balance(child.id) == Decimal("0.00")
        assert api.get_account_balance(parent.id) == Decimal("0.00")

    def test_close_twice_rejected(self, api, chart, fiscal_year, test_actor_id):
        api.close_fiscal_year(fiscal_year.id, test_actor_id)
        with pytest.raises(FiscalYearAlreadyClosedError):
            api.close_fiscal_year(fiscal_year.id, test_actor_id)

    def test_close_refusals_are_state_errors(self, api, chart, fiscal_year, test_actor_id):
        api.close_fiscal_year(fiscal_year.id, test_actor_id)
        with pytest.raises(StateError) as exc_info:
            api.close_fiscal_year(fiscal_year.id, test_actor_id)
        assert exc_info.value.code == "ALREADY_CLOSED"

    def test_close_unknown_year(self, api, chart, test_actor_id):
        with pytest.raises(FiscalYearNotFoundError):
            api.close_fiscal_year(uuid4(), test_actor_id)

    def test_close_needs_retained_earnings_account(
        self, api, create_account, fiscal_year, post_entry, test_actor_id
    ):
        cash = create_account("1000")
        sales = create_account("4000", account_type="income")
        post_entry(cash, sales, "10.00")

        with pytest.raises(RetainedEarningsAccountMissingError):
            api.close_fiscal_year(fiscal_year.id, test_actor_id)
        assert not api.get_fiscal_year(fiscal_year.id).is_closed
        assert api.get_account_balance(sales.id) == Decimal("10.00")

    def test_retained_earnings_found_by_subtype(
        self, api, create_account, fiscal_year, post_entry, test_actor_id
    ):
        cash = create_account("1000")
        sales = create_account("4000", account_type="income")
        retained = create_account("3900", account_type="equity", subtype="retained_earnings")
        post_entry(cash, sales, "10.00")

        api.close_fiscal_year(fiscal_year.id, test_actor_id)
        assert api.get_account_balance(retained.id) == Decimal("10.00")


class TestClosePreview:
    def test_preview_matches_close_and_writes_nothing(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        post_entry(chart["1000"], chart["4000"], "1000.00", entry_date=date(2024, 3, 1))
        post_entry(chart["5300"], chart["1010"], "150.00", entry_date=date(2024, 5, 1))
        entries_before = api.list_journal_entries().total

        preview = api.preview_fiscal_year_close(fiscal_year.id)

        assert preview.fiscal_year.name == "FY2024"
        assert preview.retained_earnings_code == "3100"
        assert preview.total_revenue == Decimal("1000.00")
        assert preview.total_expense == Decimal("150.00")
        assert preview.net_income == Decimal("850.00")
        assert [a.account_code for a in preview.activities] == ["4000", "5300"]
        by_account = {line.account_id: (line.debit, line.credit) for line in preview.lines}
        assert by_account[chart["3100"].id] == (Decimal("0.00"), Decimal("850.00"))

        assert api.list_journal_entries().total == entries_before
        assert not api.get_fiscal_year(fiscal_year.id).is_closed
        assert api.get_account_balance(chart["4000"].id) == Decimal("1000.00")

        result = api.close_fiscal_year(fiscal_year.id, test_actor_id)
        entry = api.get_journal_entry(result.closing_entry_id)
        assert [(line.account_id, line.debit, line.credit) for line in entry.lines] == [
            (line.account_id, line.debit, line.credit) for line in preview.lines
        ]

    def test_preview_of_quiet_year_has_no_lines(self, api, chart, fiscal_year):
        preview = api.preview_fiscal_year_close(fiscal_year.id)

        assert not preview.needs_entry
        assert preview.activities == ()
        assert preview.net_income == Decimal("0.00")

    def test_preview_refuses_closed_and_unknown_years(
        self, api, chart, fiscal_year, test_actor_id
    ):
        api.close_fiscal_year(fiscal_year.id, test_actor_id)

        with pytest.raises(FiscalYearAlreadyClosedError):
            api.preview_fiscal_year_close(fiscal_year.id)
        with pytest.raises(FiscalYearNotFoundError):
            api.preview_fiscal_year_close(uuid4())


class TestClosedYearLock:
    @pytest.fixture
    def closed_year(self, api, chart, fiscal_year, test_actor_id):
        api.close_fiscal_year(fiscal_year.id, test_actor_id)
        return fiscal_year

    def test_new_entry_refused(self, api, chart, closed_year, post_entry):
        with pytest.raises(PeriodClosedError) as exc_info:
            post_entry(chart["1000"], chart["4000"], "10.00")
        error = exc_info.value
        assert error.code == "PERIOD_CLOSED"
        assert error.fiscal_year_name == "FY2024"
        assert error.start_date == "2024-01-01"
        assert error.end_date == "2024-12-31"
        assert error.entry_date == "2024-06-15"

    def test_existing_draft_cannot_be_posted(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        draft = post_entry(chart["1000"], chart["4000"], "10.00", post=False)
        api.close_fiscal_year(fiscal_year.id, test_actor_id)

        with pytest.raises(PeriodClosedError):
            api.post_journal_entry(draft.id, test_actor_id)

    def test_posted_entry_cannot_be_voided(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        entry = post_entry(chart["1000"], chart["4000"], "10.00")
        api.close_fiscal_year(fiscal_year.id, test_actor_id)

        with pytest.raises(PeriodClosedError):
            api.void_journal_entry(entry.id, "too late", test_actor_id)
        assert api.get_journal_entry(entry.id).status == JournalEntryStatus.POSTED

    def test_next_year_still_open(self, api, chart, closed_year, post_entry, test_actor_id):
        api.create_fiscal_year("FY2025", date(2025, 1, 1), date(2025, 12, 31), test_actor_id)
        entry = post_entry(chart["1000"], chart["4000"], "10.00", entry_date=date(2025, 1, 2))
        assert entry.status == JournalEntryStatus.POSTED
