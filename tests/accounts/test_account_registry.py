"""
Account registry tests.

Verifies:
- Creation guards: unique code, type-scoped subtype, parent of the same
  type, zero opening balance on temporary accounts
- System accounts cannot be modified, deactivated or deleted
- Deactivation refuses accounts with active children
- Deletion refuses accounts referenced by any journal or recurring
  template line
- The account type locks once posted lines reference the account
- Tree assembly and listing filters
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import TemplateLineSpec
from ledger_kernel.exceptions import (
    AccountError,
    AccountHasActivityError,
    AccountHasChildrenError,
    AccountNotFoundError,
    AccountTypeLockedError,
    DuplicateAccountCodeError,
    InvalidAccountError,
    InvalidOpeningBalanceError,
    InvalidParentError,
    InvalidSubtypeError,
    SystemAccountProtectedError,
)
from ledger_kernel.models.account import AccountType


class TestCreateAccount:
    def test_create_returns_active_account(self, create_account):
        account = create_account("1400", "Petty Cash", AccountType.ASSET, "cash")

        assert account.code == "1400"
        assert account.name == "Petty Cash"
        assert account.account_type == "asset"
        assert account.subtype == "cash"
        assert account.is_active
        assert not account.is_system
        assert account.opening_balance == Decimal("0.00")

    def test_opening_balance_is_rounded_to_cents(self, create_account):
        account = create_account("1400", opening_balance="10.005")
        assert account.opening_balance == Decimal("10.01")

    def test_duplicate_code_rejected(self, create_account):
        create_account("1400")
        with pytest.raises(DuplicateAccountCodeError) as exc_info:
            create_account("1400")
        assert exc_info.value.code == "DUPLICATE_CODE"

    def test_subtype_must_belong_to_type(self, create_account):
        with pytest.raises(InvalidSubtypeError):
            create_account("1400", account_type=AccountType.ASSET, subtype="payroll")

    def test_unknown_type_rejected(self, api, test_actor_id):
        with pytest.raises(ValueError):
            api.create_account("1400", "Odd", "contra", "cash", test_actor_id)

    def test_parent_must_share_type(self, create_account):
        parent = create_account("2200", account_type=AccountType.LIABILITY)
        with pytest.raises(InvalidParentError):
            create_account("1400", account_type=AccountType.ASSET, parent_id=parent.id)

    def test_missing_parent_rejected(self, create_account):
        with pytest.raises(InvalidParentError):
            create_account("1400", parent_id=uuid4())

    @pytest.mark.parametrize("account_type", [AccountType.INCOME, AccountType.EXPENSE])
    def test_temporary_accounts_need_zero_opening_balance(self, create_account, account_type):
        with pytest.raises(InvalidOpeningBalanceError):
            create_account("4900", account_type=account_type, opening_balance="5.00")

    def test_refused_create_writes_nothing(self, api, create_account):
        with pytest.raises(InvalidSubtypeError):
            create_account("1400", subtype="sales")
        with pytest.raises(AccountNotFoundError):
            api.get_account_by_code("1400")


class TestSystemAccounts:
    def test_system_account_cannot_be_deactivated(self, api, chart, test_actor_id):
        with pytest.raises(SystemAccountProtectedError) as exc_info:
            api.deactivate_account(chart["1000"].id, test_actor_id)
        assert exc_info.value.code == "SYSTEM_ACCOUNT_PROTECTED"

    def test_system_account_cannot_be_deleted(self, api, chart, test_actor_id):
        with pytest.raises(SystemAccountProtectedError):
            api.delete_account(chart["3100"].id, test_actor_id)

    def test_system_account_cannot_be_modified(self, api, chart, test_actor_id):
        with pytest.raises(SystemAccountProtectedError):
            api.update_account(chart["4000"].id, test_actor_id, name="Renamed")

    def test_non_system_chart_account_can_be_deactivated(self, api, chart, test_actor_id):
        account = api.deactivate_account(chart["5900"].id, test_actor_id)
        assert not account.is_active


class TestDeactivation:
    def test_active_children_block_deactivation(self, api, create_account, test_actor_id):
        parent = create_account("1400")
        create_account("1410", parent_id=parent.id)

        with pytest.raises(AccountHasChildrenError) as exc_info:
            api.deactivate_account(parent.id, test_actor_id)
        assert exc_info.value.code == "HAS_CHILDREN"

    def test_inactive_children_do_not_block(self, api, create_account, test_actor_id):
        parent = create_account("1400")
        child = create_account("1410", parent_id=parent.id)
        api.deactivate_account(child.id, test_actor_id)

        assert not api.deactivate_account(parent.id, test_actor_id).is_active

    def test_inactive_account_refused_on_new_entries(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        account = create_account("1400")
        api.deactivate_account(account.id, test_actor_id)

        with pytest.raises(InvalidAccountError):
            post_entry(account, chart["4000"], "10.00")

    def test_deactivation_keeps_history(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        account = create_account("1400")
        post_entry(account, chart["4000"], "10.00")
        api.deactivate_account(account.id, test_actor_id)

        assert api.get_account_balance(account.id) == Decimal("10.00")

    def test_reactivate_refused_under_inactive_parent(self, api, create_account, test_actor_id):
        parent = create_account("1400")
        child = create_account("1410", parent_id=parent.id)
        api.deactivate_account(child.id, test_actor_id)
        api.deactivate_account(parent.id, test_actor_id)

        with pytest.raises(InvalidParentError):
            api.reactivate_account(child.id, test_actor_id)

        api.reactivate_account(parent.id, test_actor_id)
        assert api.reactivate_account(child.id, test_actor_id).is_active


class TestDeletion:
    def test_unused_account_can_be_deleted(self, api, create_account, test_actor_id):
        account = create_account("1400")
        api.delete_account(account.id, test_actor_id)

        with pytest.raises(AccountNotFoundError):
            api.get_account(account.id)

    def test_account_with_draft_lines_cannot_be_deleted(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        account = create_account("1400")
        post_entry(account, chart["4000"], "10.00", post=False)

        with pytest.raises(AccountHasActivityError) as exc_info:
            api.delete_account(account.id, test_actor_id)
        assert exc_info.value.code == "HAS_POSTED_ACTIVITY"

    def test_account_with_children_cannot_be_deleted(self, api, create_account, test_actor_id):
        parent = create_account("1400")
        create_account("1410", parent_id=parent.id)

        with pytest.raises(AccountHasChildrenError):
            api.delete_account(parent.id, test_actor_id)

    def test_account_on_recurring_template_cannot_be_deleted(
        self, api, chart, create_account, test_actor_id
    ):
        supplies = create_account("5600", "Shop Supplies", "expense", "operating_expense")
        api.create_recurring_template(
            name="Cleaning supplies",
            frequency="monthly",
            start_date=date(2024, 1, 15),
            lines=[
                TemplateLineSpec(supplies.id, debit="40.00"),
                TemplateLineSpec(chart["1010"].id, credit="40.00"),
            ],
            actor_id=test_actor_id,
        )

        with pytest.raises(AccountHasActivityError) as exc_info:
            api.delete_account(supplies.id, test_actor_id)
        assert exc_info.value.line_count == 0
        assert exc_info.value.template_line_count == 1
        assert api.get_account(supplies.id).code == "5600"

    def test_deletion_refusals_share_the_account_error_base(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        account = create_account("1400")
        post_entry(account, chart["4000"], "10.00")

        for account_id in (account.id, chart["3100"].id, uuid4()):
            with pytest.raises(AccountError):
                api.delete_account(account_id, test_actor_id)


class TestUpdateAccount:
    def test_rename_and_local_name(self, api, create_account, test_actor_id):
        account = create_account("1400")
        updated = api.update_account(
            account.id, test_actor_id, name="Petty Cash", name_local="အသေးသုံးငွေ"
        )
        assert updated.name == "Petty Cash"
        assert updated.name_local == "အသေးသုံးငွေ"

    def test_type_change_allowed_without_activity(self, api, create_account, test_actor_id):
        account = create_account("1400")
        updated = api.update_account(
            account.id, test_actor_id, account_type="liability", subtype="credit_card"
        )
        assert updated.account_type == "liability"

    def test_type_change_locked_after_posting(
        self, api, chart, create_account, fiscal_year, post_entry, test_actor_id
    ):
        account = create_account("1400")
        post_entry(account, chart["4000"], "10.00")

        with pytest.raises(AccountTypeLockedError):
            api.update_account(
                account.id, test_actor_id, account_type="liability", subtype="credit_card"
            )

    def test_type_change_locked_with_children(self, api, create_account, test_actor_id):
        parent = create_account("1400")
        create_account("1410", parent_id=parent.id)

        with pytest.raises(AccountTypeLockedError):
            api.update_account(
                parent.id, test_actor_id, account_type="liability", subtype="credit_card"
            )

    def test_reparent_cannot_create_cycle(self, api, create_account, test_actor_id):
        root = create_account("1400")
        child = create_account("1410", parent_id=root.id)
        grandchild = create_account("1411", parent_id=child.id)

        with pytest.raises(InvalidParentError):
            api.update_account(root.id, test_actor_id, parent_id=grandchild.id)
        with pytest.raises(InvalidParentError):
            api.update_account(root.id, test_actor_id, parent_id=root.id)

    def test_move_to_root(self, api, create_account, test_actor_id):
        root = create_account("1400")
        child = create_account("1410", parent_id=root.id)

        assert api.update_account(child.id, test_actor_id, parent_id=None).parent_id is None


class TestListing:
    def test_tree_orders_children_by_code(self, api, create_account):
        root = create_account("1400")
        create_account("1420", parent_id=root.id)
        create_account("1410", parent_id=root.id)

        tree = api.get_account_tree(type_filter="asset")
        assert [node.account.code for node in tree] == ["1400"]
        assert [child.account.code for child in tree[0].children] == ["1410", "1420"]
        assert [a.code for a in tree[0].walk()] == ["1400", "1410", "1420"]

    def test_filter_by_type_and_active(self, api, chart, test_actor_id):
        api.deactivate_account(chart["5900"].id, test_actor_id)

        expenses = api.list_accounts(type_filter="expense", active_only=True)
        codes = [a.code for a in expenses]
        assert "5900" not in codes
        assert codes == sorted(codes)
        assert all(a.account_type == "expense" for a in expenses)

    def test_search_matches_code_and_name(self, api, chart):
        assert [a.code for a in api.list_accounts(search="Rent")] == ["5300"]
        assert [a.code for a in api.list_accounts(search="110")] == ["1100"]
