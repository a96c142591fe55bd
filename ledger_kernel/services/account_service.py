"""
AccountService -- the account registry (chart of accounts).

Responsibility:
    Creates, edits, deactivates, reactivates and deletes accounts, and
    serves the chart as a flat list or as a forest ordered by code.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerAPI and ChartSeeder.  Tree assembly is delegated to the
    pure functions in domain/account_tree.py.

Invariants enforced:
    - code is unique.
    - subtype belongs to the account type's subtype set.
    - parent exists, shares the account's type, and is never the account
      itself or one of its descendants.
    - Income and expense accounts have a zero opening balance.
    - System accounts are never modified, deactivated or deleted.
    - account_type is frozen once posted lines reference the account
      (db/immutability.py is the backstop).
    - Accounts referenced by any journal line are never deleted.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - DuplicateAccountCodeError, InvalidSubtypeError, InvalidParentError,
      InvalidOpeningBalanceError on create/update.
    - AccountNotFoundError for unknown ids or codes.
    - SystemAccountProtectedError, AccountHasChildrenError,
      AccountHasActivityError, AccountTypeLockedError on guarded changes.

Audit relevance:
    Every registry change is logged at INFO with the account code and
    actor; refused changes are logged at WARNING with the error code.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.account_tree import build_forest, would_create_cycle
from ledger_kernel.domain.dtos import AccountInfo, AccountNode
from ledger_kernel.exceptions import (
    AccountHasActivityError,
    AccountHasChildrenError,
    AccountNotFoundError,
    AccountTypeLockedError,
    DuplicateAccountCodeError,
    InvalidOpeningBalanceError,
    InvalidParentError,
    InvalidSubtypeError,
    SystemAccountProtectedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    ACCOUNT_SUBTYPES,
    TEMPORARY_ACCOUNT_TYPES,
    Account,
    AccountType,
)
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.models.recurring import RecurringTemplateLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

# Distinguishes "leave parent alone" from "move to the root".
_UNSET = object()


class AccountService(BaseService[Account]):
    """
    Account registry.

    Contract:
        Mutations flush within the caller's transaction and return frozen
        AccountInfo DTOs.  Reads return DTOs or AccountNode forests.

    Guarantees:
        - Every guard is checked before any write; a refused call leaves
          the chart unchanged.

    Non-goals:
        - Does NOT compute balances (BalanceSelector).
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _log_refusal(self, exc: Exception, account_code: str) -> None:
        logger.warning(
            "account_change_refused",
            extra={"account_code": account_code, "error_code": getattr(exc, "code", None)},
        )

    def _refuse(self, exc: Exception, account_code: str) -> None:
        self._log_refusal(exc, account_code)
        raise exc

    def _check_subtype(self, account_type: AccountType, subtype: str) -> None:
        if subtype not in ACCOUNT_SUBTYPES[account_type]:
            raise InvalidSubtypeError(account_type.value, subtype)

    def _check_opening_balance(self, account_type: AccountType, opening_balance: Decimal) -> None:
        if account_type in TEMPORARY_ACCOUNT_TYPES and opening_balance != ZERO:
            raise InvalidOpeningBalanceError(account_type.value, opening_balance)

    def _check_parent(self, parent_id: UUID, account_type: AccountType) -> Account:
        parent = self.session.get(Account, parent_id)
        if parent is None:
            raise InvalidParentError(str(parent_id), "parent account does not exist")
        if parent.account_type != account_type:
            raise InvalidParentError(
                str(parent_id),
                f"parent is a {parent.account_type.value} account, "
                f"expected {account_type.value}",
            )
        return parent

    def _child_count(self, account_id: UUID, active_only: bool = False) -> int:
        query = select(func.count(Account.id)).where(Account.parent_id == account_id)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        return self.session.execute(query).scalar_one()

    def _line_count(self, account_id: UUID, posted_only: bool = False) -> int:
        query = select(func.count(JournalLine.id)).where(JournalLine.account_id == account_id)
        if posted_only:
            query = query.join(JournalEntry).where(
                JournalEntry.status != JournalEntryStatus.DRAFT
            )
        return self.session.execute(query).scalar_one()

    def _template_line_count(self, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(RecurringTemplateLine.id)).where(
                RecurringTemplateLine.account_id == account_id
            )
        ).scalar_one()

    def _all_infos(self) -> list[AccountInfo]:
        accounts = self.session.execute(select(Account)).scalars().all()
        return [AccountInfo.from_model(a) for a in accounts]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType | str,
        subtype: str,
        actor_id: UUID,
        parent_id: UUID | None = None,
        opening_balance: Decimal | int | str = ZERO,
        name_local: str | None = None,
        description: str | None = None,
        is_system: bool = False,
    ) -> AccountInfo:
        """
        Create an account.

        Raises:
            DuplicateAccountCodeError: If the code already exists.
            InvalidSubtypeError: If subtype is not valid for the type.
            InvalidParentError: If the parent is missing or of another type.
            InvalidOpeningBalanceError: Nonzero opening balance on an income
                or expense account.
            ValueError: Unknown account type.
        """
        account_type = AccountType(account_type)
        opening_balance = round_money(opening_balance)
        code = code.strip()

        try:
            existing = self.session.execute(
                select(Account.id).where(Account.code == code)
            ).first()
            if existing is not None:
                raise DuplicateAccountCodeError(code)
            self._check_subtype(account_type, subtype)
            self._check_opening_balance(account_type, opening_balance)
            if parent_id is not None:
                self._check_parent(parent_id, account_type)
        except (DuplicateAccountCodeError, InvalidSubtypeError,
                InvalidOpeningBalanceError, InvalidParentError) as exc:
            self._log_refusal(exc, code)
            raise

        account = Account(
            code=code,
            name=name,
            name_local=name_local,
            description=description,
            account_type=account_type,
            subtype=subtype,
            parent_id=parent_id,
            opening_balance=opening_balance,
            is_system=is_system,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "subtype": subtype,
                "parent_id": str(parent_id) if parent_id else None,
                "opening_balance": str(opening_balance),
            },
        )
        return AccountInfo.from_model(account)

    def update_account(
        self,
        account_id: UUID,
        actor_id: UUID,
        name: str | None = None,
        name_local: str | None = None,
        description: str | None = None,
        subtype: str | None = None,
        account_type: AccountType | str | None = None,
        parent_id=_UNSET,
    ) -> AccountInfo:
        """
        Edit an account.  Arguments left as None are unchanged; pass
        parent_id=None to move the account to the root.

        Raises:
            AccountNotFoundError, SystemAccountProtectedError,
            AccountTypeLockedError, InvalidSubtypeError, InvalidParentError,
            InvalidOpeningBalanceError.
        """
        account = self._get(account_id)
        if account.is_system:
            self._refuse(SystemAccountProtectedError(account.code, "modify"), account.code)

        new_type = AccountType(account_type) if account_type is not None else account.account_type
        new_subtype = subtype if subtype is not None else account.subtype
        new_parent_id = account.parent_id if parent_id is _UNSET else parent_id

        try:
            if new_type != account.account_type:
                if self._line_count(account.id, posted_only=True):
                    raise AccountTypeLockedError(
                        account.code, "posted journal lines reference the account"
                    )
                if self._child_count(account.id):
                    raise AccountTypeLockedError(account.code, "the account has child accounts")
                self._check_opening_balance(new_type, account.opening_balance)
            self._check_subtype(new_type, new_subtype)
            if new_parent_id is not None:
                self._check_parent(new_parent_id, new_type)
                if would_create_cycle(self._all_infos(), account.id, new_parent_id):
                    raise InvalidParentError(
                        str(new_parent_id), "an account cannot be its own ancestor"
                    )
        except (AccountTypeLockedError, InvalidSubtypeError,
                InvalidParentError, InvalidOpeningBalanceError) as exc:
            self._log_refusal(exc, account.code)
            raise

        changed = []
        for field, value in (
            ("name", name),
            ("name_local", name_local),
            ("description", description),
        ):
            if value is not None and getattr(account, field) != value:
                setattr(account, field, value)
                changed.append(field)
        if new_type != account.account_type:
            account.account_type = new_type
            changed.append("account_type")
        if new_subtype != account.subtype:
            account.subtype = new_subtype
            changed.append("subtype")
        if new_parent_id != account.parent_id:
            account.parent_id = new_parent_id
            changed.append("parent_id")

        if changed:
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "account_updated",
                extra={"account_code": account.code, "fields": changed},
            )
        return AccountInfo.from_model(account)

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """
        Stop an account from accepting new lines.  History is untouched.

        Raises:
            AccountNotFoundError, SystemAccountProtectedError,
            AccountHasChildrenError (active children exist).
        """
        account = self._get(account_id)
        if account.is_system:
            self._refuse(SystemAccountProtectedError(account.code, "deactivate"), account.code)
        active_children = self._child_count(account.id, active_only=True)
        if active_children:
            self._refuse(AccountHasChildrenError(account.code, active_children), account.code)

        if account.is_active:
            account.is_active = False
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info("account_deactivated", extra={"account_code": account.code})
        return AccountInfo.from_model(account)

    def reactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """
        Raises:
            AccountNotFoundError, InvalidParentError (parent inactive).
        """
        account = self._get(account_id)
        if account.parent is not None and not account.parent.is_active:
            self._refuse(
                InvalidParentError(str(account.parent_id), "parent account is inactive"),
                account.code,
            )

        if not account.is_active:
            account.is_active = True
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info("account_reactivated", extra={"account_code": account.code})
        return AccountInfo.from_model(account)

    def delete_account(self, account_id: UUID, actor_id: UUID) -> None:
        """
        Physically delete an unused account.

        Raises:
            AccountNotFoundError, SystemAccountProtectedError,
            AccountHasChildrenError, AccountHasActivityError (any journal
            line, in any status, or any recurring template line references
            the account).
        """
        account = self._get(account_id)
        if account.is_system:
            self._refuse(SystemAccountProtectedError(account.code, "delete"), account.code)
        children = self._child_count(account.id)
        if children:
            self._refuse(AccountHasChildrenError(account.code, children), account.code)
        lines = self._line_count(account.id)
        template_lines = self._template_line_count(account.id)
        if lines or template_lines:
            self._refuse(
                AccountHasActivityError(account.code, lines, template_lines), account.code
            )

        code = account.code
        self.session.delete(account)
        self.session.flush()
        logger.info(
            "account_deleted",
            extra={"account_code": code, "deleted_by_id": str(actor_id)},
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_account(self, account_id: UUID) -> AccountInfo:
        return AccountInfo.from_model(self._get(account_id))

    def get_account_by_code(self, code: str) -> AccountInfo:
        account = self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(code)
        return AccountInfo.from_model(account)

    def list_accounts(
        self,
        type_filter: AccountType | str | None = None,
        active_only: bool = False,
        search: str | None = None,
    ) -> list[AccountInfo]:
        """Flat account list ordered by code."""
        query = select(Account).order_by(Account.code)
        if type_filter is not None:
            query = query.where(Account.account_type == AccountType(type_filter))
        if active_only:
            query = query.where(Account.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Account.code.ilike(pattern),
                    Account.name.ilike(pattern),
                    Account.name_local.ilike(pattern),
                )
            )
        return [AccountInfo.from_model(a) for a in self.session.execute(query).scalars()]

    def list_tree(self, type_filter: AccountType | str | None = None) -> list[AccountNode]:
        """Account forest, ordered by code within each parent."""
        return build_forest(self.list_accounts(type_filter=type_filter))
