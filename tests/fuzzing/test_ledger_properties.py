"""
Property-based tests for the ledger.

Hypothesis generates entries, amounts and closing activity; the
properties must hold for all of them.

Database-backed properties share one database across the examples of a
test, so each is stated so that it holds cumulatively: the trial balance
stays balanced however many entries have been posted, and a reversal
returns every balance to where it was just before.
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.closing import AccountActivity, build_closing_lines
from ledger_kernel.domain.dtos import DraftLine, JournalEntryDraft
from ledger_kernel.exceptions import LinesImbalancedError
from tests.conftest import TODAY

DB_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

ACCOUNT_CODES = ["1000", "1010", "1200", "2000", "3000", "4000", "4100", "5000", "5300"]

cents = st.integers(min_value=1, max_value=10_000_000)
amounts = cents.map(lambda c: Decimal(c) / 100)


@st.composite
def balanced_entries(draw):
    """Two to six lines over distinct accounts, debits == credits."""
    codes = draw(st.lists(st.sampled_from(ACCOUNT_CODES), min_size=2, max_size=6, unique=True))
    split = draw(st.integers(min_value=1, max_value=len(codes) - 1))
    debit_codes, credit_codes = codes[:split], codes[split:]
    credit_amounts = [draw(amounts) for _ in credit_codes]
    debit_amounts = [draw(amounts) for _ in debit_codes[:-1]]
    # The first credit absorbs the extra debits; the last debit carries the
    # original credit total, so both sides stay positive and equal.
    credit_amounts[0] += sum(debit_amounts, Decimal("0"))
    debit_amounts.append(sum(credit_amounts, Decimal("0")) - sum(debit_amounts, Decimal("0")))

    return [(code, amount, "dr") for code, amount in zip(debit_codes, debit_amounts)] + [
        (code, amount, "cr") for code, amount in zip(credit_codes, credit_amounts)
    ]


def to_draft(chart, spec) -> JournalEntryDraft:
    lines = tuple(
        DraftLine.dr(chart[code].id, amount)
        if side == "dr"
        else DraftLine.cr(chart[code].id, amount)
        for code, amount, side in spec
    )
    return JournalEntryDraft(entry_date=TODAY, lines=lines, description="generated")


class TestLedgerProperties:
    @DB_SETTINGS
    @given(spec=balanced_entries())
    def test_trial_balance_always_balances(self, api, chart, fiscal_year, test_actor_id, spec):
        entry = api.create_journal_entry(to_draft(chart, spec), test_actor_id, post=True)

        assert entry.is_balanced
        trial = api.get_trial_balance()
        assert trial.is_balanced
        assert trial.difference == Decimal("0.00")

    @DB_SETTINGS
    @given(spec=balanced_entries(), skew=cents)
    def test_imbalanced_entries_write_nothing(
        self, api, chart, fiscal_year, test_actor_id, spec, skew
    ):
        code, amount, side = spec[0]
        spec = [(code, amount + Decimal(skew) / 100, side)] + spec[1:]
        before = api.list_journal_entries().total

        try:
            api.create_journal_entry(to_draft(chart, spec), test_actor_id, post=True)
        except LinesImbalancedError as exc:
            assert exc.difference != Decimal("0.00")
        else:
            raise AssertionError("imbalanced entry was accepted")

        assert api.list_journal_entries().total == before

    @DB_SETTINGS
    @given(spec=balanced_entries())
    def test_reversal_restores_balances(self, api, chart, fiscal_year, test_actor_id, spec):
        ids = [chart[code].id for code in ACCOUNT_CODES]
        before = {i: api.get_account_balance(i) for i in ids}

        entry = api.create_journal_entry(to_draft(chart, spec), test_actor_id, post=True)
        api.reverse_journal_entry(entry.id, test_actor_id)

        assert {i: api.get_account_balance(i) for i in ids} == before


activity = st.builds(
    lambda code, account_type, balance: AccountActivity(
        account_id=uuid4(),
        account_code=code,
        account_name=f"Account {code}",
        account_type=account_type,
        balance=Decimal(balance) / 100,
    ),
    code=st.from_regex(r"[45][0-9]{3}", fullmatch=True),
    account_type=st.sampled_from(["income", "expense"]),
    balance=st.integers(min_value=-10_000_000, max_value=10_000_000),
)


@given(activities=st.lists(activity, max_size=20))
def test_closing_lines_balance_and_net(activities):
    plan = build_closing_lines(activities, uuid4(), "FY")

    debits = sum((line.debit for line in plan.lines), Decimal("0.00"))
    credits = sum((line.credit for line in plan.lines), Decimal("0.00"))
    assert debits == credits
    income = sum((a.balance for a in activities if a.account_type == "income"), Decimal("0"))
    expense = sum((a.balance for a in activities if a.account_type == "expense"), Decimal("0"))
    assert plan.net_income == income - expense
    assert all(line.debit == 0 or line.credit == 0 for line in plan.lines)


@given(value=st.decimals(allow_nan=False, allow_infinity=False, min_value=-10**9, max_value=10**9))
def test_round_money_is_idempotent(value):
    once = round_money(value)
    assert round_money(once) == once
    assert abs(once - value) <= Decimal("0.005")
