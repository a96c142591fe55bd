"""
Balance -- pure normal-balance arithmetic.

Responsibility:
    Turns raw debit/credit totals into balances signed in an account's
    normal direction, and places a net amount in the trial-balance column
    it belongs to.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Asset and expense accounts increase with debits; liability, equity
      and income accounts increase with credits.
    - A positive normalized balance is on the account's natural side.
"""

from decimal import Decimal

from ledger_kernel.db.types import ZERO

DEBIT_NORMAL_TYPES = ("asset", "expense")
CREDIT_NORMAL_TYPES = ("liability", "equity", "income")


def _type_value(account_type) -> str:
    value = getattr(account_type, "value", account_type)
    if value not in DEBIT_NORMAL_TYPES and value not in CREDIT_NORMAL_TYPES:
        raise ValueError(f"Unknown account type: {account_type!r}")
    return value


def normal_balance_sign(account_type) -> int:
    """+1 for debit-normal account types, -1 for credit-normal ones."""
    return 1 if _type_value(account_type) in DEBIT_NORMAL_TYPES else -1


def is_debit_normal(account_type) -> bool:
    return normal_balance_sign(account_type) == 1


def normalize(account_type, debit_total: Decimal, credit_total: Decimal) -> Decimal:
    """Net movement signed so that a positive result is the normal side."""
    return (debit_total - credit_total) * normal_balance_sign(account_type)


def signed_debit_amount(account_type, normalized: Decimal) -> Decimal:
    """Convert a normalized balance back to debit-minus-credit terms."""
    return normalized * normal_balance_sign(account_type)


def split_net(account_type, normalized: Decimal) -> tuple[Decimal, Decimal]:
    """
    Place a normalized balance in the (debit, credit) trial-balance columns.

    A debit-normal account with a positive balance lands in the debit
    column; a negative one (e.g. overdrawn cash) lands in credit.
    """
    net_debit = signed_debit_amount(account_type, normalized)
    if net_debit >= ZERO:
        return net_debit, ZERO
    return ZERO, -net_debit
