"""
Ledger store tests: draft validation, numbering and draft editing.

Verifies:
- An entry needs at least two lines, each with exactly one positive side
- Debits must equal credits to the cent
- Every line must reference an existing, active account
- Entry numbers are allocated monotonically and never reused
- A refused draft writes nothing
- The closing source is reserved for the year-end close; unknown sources
  and listing filters are typed validation errors
- Drafts can be edited or discarded; posted entries cannot
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_config import LedgerSettings
from ledger_kernel.domain.dtos import DraftLine, EntryFilter, JournalEntryDraft
from ledger_kernel.exceptions import (
    EmptyEntryError,
    FiscalYearNotFoundError,
    InvalidAccountError,
    InvalidLineError,
    InvalidSourceError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    LedgerError,
    LinesImbalancedError,
    PeriodClosedError,
    ValidationError,
)
from ledger_kernel.models.journal import EntrySource, JournalEntryStatus
from ledger_services import LedgerAPI
from tests.conftest import TODAY, make_draft


class TestLineValidation:
    def test_single_line_rejected(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY, lines=(DraftLine.dr(chart["1000"].id, "10.00"),)
        )
        with pytest.raises(EmptyEntryError) as exc_info:
            api.create_journal_entry(draft, test_actor_id)
        assert exc_info.value.code == "EMPTY_ENTRY"

    def test_imbalanced_lines_rejected(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine.dr(chart["1000"].id, "100.00"),
                DraftLine.cr(chart["4000"].id, "99.99"),
            ),
        )
        with pytest.raises(LinesImbalancedError) as exc_info:
            api.create_journal_entry(draft, test_actor_id)
        assert exc_info.value.difference == Decimal("0.01")

    def test_line_with_both_sides_rejected(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine(chart["1000"].id, debit="5.00", credit="5.00"),
                DraftLine.cr(chart["4000"].id, "0.00"),
            ),
        )
        with pytest.raises(InvalidLineError) as exc_info:
            api.create_journal_entry(draft, test_actor_id)
        assert exc_info.value.line_index == 1

    def test_zero_line_rejected(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine.dr(chart["1000"].id, "10.00"),
                DraftLine.cr(chart["4000"].id, "10.00"),
                DraftLine(chart["4100"].id),
            ),
        )
        with pytest.raises(InvalidLineError) as exc_info:
            api.create_journal_entry(draft, test_actor_id)
        assert exc_info.value.line_index == 3

    def test_negative_amount_rejected(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine.dr(chart["1000"].id, "-10.00"),
                DraftLine.cr(chart["4000"].id, "-10.00"),
            ),
        )
        with pytest.raises(InvalidLineError):
            api.create_journal_entry(draft, test_actor_id)

    def test_unknown_account_rejected(self, api, chart, test_actor_id):
        draft = make_draft(uuid4(), chart["4000"].id, "10.00")
        with pytest.raises(InvalidAccountError):
            api.create_journal_entry(draft, test_actor_id)

    def test_float_amounts_refused(self, chart):
        with pytest.raises(TypeError):
            DraftLine.dr(chart["1000"].id, 10.1)

    def test_amounts_round_half_up_to_cents(self, chart):
        line = DraftLine.dr(chart["1000"].id, "10.005")
        assert line.debit == Decimal("10.01")


class TestNumbering:
    def test_numbers_are_sequential(self, api, chart, fiscal_year, post_entry):
        first = post_entry(chart["1000"], chart["4000"], "1.00", post=False)
        second = post_entry(chart["1000"], chart["4000"], "2.00")

        assert first.entry_number == "JE-000001"
        assert second.entry_number == "JE-000002"
        assert second.seq > first.seq

    def test_discarded_draft_number_not_reused(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        draft = post_entry(chart["1000"], chart["4000"], "1.00", post=False)
        api.discard_journal_entry(draft.id, test_actor_id)

        following = post_entry(chart["1000"], chart["4000"], "1.00", post=False)
        assert following.entry_number == "JE-000002"

    def test_refused_draft_consumes_no_number(self, api, chart, post_entry):
        with pytest.raises(LinesImbalancedError):
            api.create_journal_entry(
                JournalEntryDraft(
                    entry_date=TODAY,
                    lines=(
                        DraftLine.dr(chart["1000"].id, "1.00"),
                        DraftLine.cr(chart["4000"].id, "2.00"),
                    ),
                ),
                uuid4(),
            )

        entry = post_entry(chart["1000"], chart["4000"], "1.00", post=False)
        assert entry.entry_number == "JE-000001"

    def test_configured_prefix_and_width(
        self, settings, deterministic_clock, chart, test_actor_id
    ):
        custom = LedgerAPI(
            LedgerSettings(
                database_url=settings.database_url,
                entry_number_prefix="POS",
                entry_number_width=4,
            ),
            clock=deterministic_clock,
        )
        entry = custom.create_journal_entry(
            make_draft(chart["1000"].id, chart["4000"].id, "1.00"), test_actor_id
        )
        assert entry.entry_number == "POS-0001"


class TestEntrySource:
    def test_closing_source_reserved_for_year_end(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        till = create_account("1400")
        api.deactivate_account(till.id, test_actor_id)

        with pytest.raises(InvalidSourceError) as exc_info:
            post_entry(till, chart["4000"], "25.00", source="closing")
        assert exc_info.value.code == "INVALID_SOURCE"
        assert isinstance(exc_info.value, ValidationError)

        with pytest.raises(InvalidSourceError):
            post_entry(chart["1000"], chart["4000"], "25.00", source=EntrySource.CLOSING)

        assert api.list_journal_entries().total == 0
        assert api.get_account_balance(till.id) == Decimal("0.00")

    def test_inactive_account_refused_for_ordinary_source(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        till = create_account("1400")
        api.deactivate_account(till.id, test_actor_id)

        with pytest.raises(InvalidAccountError):
            post_entry(till, chart["4000"], "25.00", source="adjustment")

    def test_unknown_source_refused_before_numbering(self, api, chart, post_entry):
        with pytest.raises(LedgerError) as exc_info:
            post_entry(chart["1000"], chart["4000"], "10.00", post=False, source="payroll")

        assert isinstance(exc_info.value, InvalidSourceError)
        assert exc_info.value.source == "payroll"
        assert api.list_journal_entries().total == 0

        entry = post_entry(chart["1000"], chart["4000"], "10.00", post=False)
        assert entry.entry_number == "JE-000001"

    def test_draft_cannot_be_rewritten_as_closing(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        entry = post_entry(chart["1000"], chart["4000"], "10.00", post=False)

        with pytest.raises(InvalidSourceError):
            api.update_journal_entry(
                entry.id,
                make_draft(chart["1000"].id, chart["4000"].id, "10.00", source="closing"),
                test_actor_id,
            )
        assert api.get_journal_entry(entry.id).source == EntrySource.MANUAL


class TestDrafts:
    def test_append_creates_draft_with_ordered_lines(self, api, chart, test_actor_id):
        draft = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine.dr(chart["1000"].id, "107.00", "Till 1"),
                DraftLine.cr(chart["4000"].id, "100.00", "Sale"),
                DraftLine.cr(chart["2100"].id, "7.00", "Card fee"),
            ),
            description="POS sale #1001",
            reference="SALE-1001",
            source=EntrySource.SALES,
            source_type="sale",
            source_id="1001",
        )
        entry = api.create_journal_entry(draft, test_actor_id)

        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.source == EntrySource.SALES
        assert [line.line_seq for line in entry.lines] == [1, 2, 3]
        assert entry.total_debits == entry.total_credits == Decimal("107.00")
        assert entry.posted_at is None

    def test_draft_outside_any_year_allowed_but_not_postable(
        self, api, chart, post_entry, test_actor_id
    ):
        entry = post_entry(chart["1000"], chart["4000"], "10.00", post=False)

        with pytest.raises(FiscalYearNotFoundError):
            api.post_journal_entry(entry.id, test_actor_id)
        assert api.get_journal_entry(entry.id).status == JournalEntryStatus.DRAFT

    def test_draft_in_closed_year_refused(self, api, chart, post_entry, test_actor_id):
        year = api.create_fiscal_year(
            "FY2023", date(2023, 1, 1), date(2023, 12, 31), test_actor_id
        )
        api.close_fiscal_year(year.id, test_actor_id)

        with pytest.raises(PeriodClosedError) as exc_info:
            post_entry(chart["1000"], chart["4000"], "10.00", entry_date=date(2023, 5, 1), post=False)
        assert exc_info.value.fiscal_year_name == "FY2023"

    def test_update_draft_replaces_lines(self, api, chart, fiscal_year, post_entry, test_actor_id):
        entry = post_entry(chart["1000"], chart["4000"], "10.00", post=False)

        updated = api.update_journal_entry(
            entry.id,
            make_draft(
                chart["1010"].id, chart["4100"].id, "25.00", description="corrected"
            ),
            test_actor_id,
        )

        assert updated.id == entry.id
        assert updated.entry_number == entry.entry_number
        assert updated.description == "corrected"
        assert [line.account_id for line in updated.lines] == [chart["1010"].id, chart["4100"].id]
        assert updated.total_debits == Decimal("25.00")

    def test_update_draft_revalidates(self, api, chart, fiscal_year, post_entry, test_actor_id):
        entry = post_entry(chart["1000"], chart["4000"], "10.00", post=False)
        bad = JournalEntryDraft(
            entry_date=TODAY,
            lines=(
                DraftLine.dr(chart["1000"].id, "10.00"),
                DraftLine.cr(chart["4000"].id, "9.00"),
            ),
        )
        with pytest.raises(LinesImbalancedError):
            api.update_journal_entry(entry.id, bad, test_actor_id)
        assert api.get_journal_entry(entry.id).total_debits == Decimal("10.00")

    def test_posted_entry_cannot_be_edited_or_discarded(
        self, api, chart, fiscal_year, post_entry, test_actor_id
    ):
        entry = post_entry(chart["1000"], chart["4000"], "10.00")

        with pytest.raises(InvalidStatusTransitionError):
            api.update_journal_entry(
                entry.id, make_draft(chart["1000"].id, chart["4000"].id, "1.00"), test_actor_id
            )
        with pytest.raises(InvalidStatusTransitionError):
            api.discard_journal_entry(entry.id, test_actor_id)


class TestQueries:
    def test_entries_for_source(self, api, chart, fiscal_year, post_entry):
        post_entry(chart["1000"], chart["4000"], "10.00", source_type="sale", source_id="S-1")
        post_entry(chart["1000"], chart["4000"], "20.00", source_type="sale", source_id="S-2")

        entries = api.get_entries_for_source("sale", "S-1")
        assert len(entries) == 1
        assert entries[0].total_debits == Decimal("10.00")

    def test_list_filters_and_pagination(self, api, chart, fiscal_year, post_entry):
        for i in range(5):
            post_entry(chart["1000"], chart["4000"], f"{i + 1}.00")
        post_entry(chart["1000"], chart["4000"], "9.00", post=False, description="held sale")

        posted = api.list_journal_entries(EntryFilter(status="posted"), page=1, per_page=2)
        assert posted.total == 5
        assert len(posted.items) == 2
        assert posted.pages == 3
        assert posted.has_next

        drafts = api.list_journal_entries(EntryFilter(status=JournalEntryStatus.DRAFT))
        assert [e.description for e in drafts.items] == ["held sale"]

        found = api.list_journal_entries(EntryFilter(search="held"))
        assert found.total == 1

        by_account = api.list_journal_entries(EntryFilter(account_id=chart["1010"].id))
        assert by_account.total == 0

    def test_unknown_filter_values_refused(self, api, chart, fiscal_year, post_entry):
        post_entry(chart["1000"], chart["4000"], "1.00")

        with pytest.raises(InvalidStatusError) as exc_info:
            api.list_journal_entries(EntryFilter(status="bogus"))
        assert exc_info.value.code == "INVALID_STATUS"

        with pytest.raises(InvalidSourceError):
            api.list_journal_entries(EntryFilter(source="payroll"))

    def test_closing_source_is_a_valid_filter(self, api, chart, fiscal_year, post_entry):
        post_entry(chart["1000"], chart["4000"], "1.00")
        assert api.list_journal_entries(EntryFilter(source="closing")).total == 0

    def test_per_page_clamped_to_settings(self, api, chart, fiscal_year, post_entry):
        post_entry(chart["1000"], chart["4000"], "1.00")
        page = api.list_journal_entries(per_page=10_000, page=0)

        assert page.per_page == api.settings.max_page_size
        assert page.page == 1

    def test_lookup_by_number(self, api, chart, fiscal_year, post_entry):
        entry = post_entry(chart["1000"], chart["4000"], "1.00")
        assert api.get_journal_entry_by_number(entry.entry_number).id == entry.id
