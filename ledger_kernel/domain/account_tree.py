"""
Account tree -- pure assembly of the chart of accounts hierarchy.

Responsibility:
    Builds the account forest from a flat account list in one grouping pass,
    and answers subtree / ancestry questions over the same flat list.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Children are ordered by code within each parent.
    - An account whose parent is missing from the input (e.g. filtered out by
      type) is treated as a root.
    - Cycle checks walk parent links with a visited set, so corrupt input
      cannot loop forever.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from uuid import UUID

from ledger_kernel.domain.dtos import AccountInfo, AccountNode


def group_by_parent(accounts: Iterable[AccountInfo]) -> dict[UUID | None, list[AccountInfo]]:
    """Map parent_id -> children sorted by code (None key holds the roots)."""
    accounts = list(accounts)
    known = {a.id for a in accounts}
    groups: dict[UUID | None, list[AccountInfo]] = defaultdict(list)
    for account in accounts:
        parent = account.parent_id if account.parent_id in known else None
        groups[parent].append(account)
    for children in groups.values():
        children.sort(key=lambda a: a.code)
    return groups


def build_forest(accounts: Iterable[AccountInfo]) -> list[AccountNode]:
    """Assemble the account forest, roots and children ordered by code."""
    groups = group_by_parent(accounts)

    def _node(account: AccountInfo, seen: frozenset[UUID]) -> AccountNode:
        if account.id in seen:
            return AccountNode(account=account)
        seen = seen | {account.id}
        return AccountNode(
            account=account,
            children=tuple(_node(child, seen) for child in groups.get(account.id, ())),
        )

    return [_node(root, frozenset()) for root in groups.get(None, ())]


def subtree_ids(accounts: Sequence[AccountInfo], root_id: UUID) -> set[UUID]:
    """The ids of root_id and all its descendants."""
    groups = group_by_parent(accounts)
    result: set[UUID] = set()
    stack = [root_id]
    while stack:
        current = stack.pop()
        if current in result:
            continue
        result.add(current)
        stack.extend(child.id for child in groups.get(current, ()))
    return result


def would_create_cycle(
    accounts: Sequence[AccountInfo],
    account_id: UUID,
    new_parent_id: UUID,
) -> bool:
    """True if making new_parent_id the parent of account_id closes a loop."""
    if new_parent_id == account_id:
        return True
    return new_parent_id in subtree_ids(accounts, account_id)
