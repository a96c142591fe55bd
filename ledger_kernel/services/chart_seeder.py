"""
ChartSeeder -- idempotent loading of a chart of accounts.

Responsibility:
    Creates the accounts of a chart definition (the packaged default chart
    or a custom one) that do not exist yet, matching on account code.

Architecture position:
    Kernel > Services -- imperative shell.  Accepts any objects carrying the
    account attributes below, so the kernel does not import ledger_config;
    ledger_config.ChartAccountDef satisfies the protocol.

Invariants enforced:
    - First-or-create by code: running the seeder twice changes nothing.
    - Parents are created before children (definitions are processed in
      order; a parent_code must refer to an earlier or existing account).
    - Every account goes through AccountService, so seeded accounts obey
      the same rules as hand-made ones.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import InvalidParentError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.services.account_service import AccountService

logger = get_logger("services.chart_seeder")


class ChartAccount(Protocol):
    code: str
    name: str
    account_type: str
    subtype: str
    parent_code: str | None
    name_local: str | None
    description: str | None
    is_system: bool
    opening_balance: Decimal


@dataclass(frozen=True)
class SeedResult:
    created: tuple[str, ...]
    existing: tuple[str, ...]


class ChartSeeder:
    """Seeds a chart of accounts through AccountService."""

    def __init__(self, session: Session):
        self._session = session
        self._accounts = AccountService(session)

    def _id_for_code(self, code: str) -> UUID | None:
        return self._session.execute(
            select(Account.id).where(Account.code == code)
        ).scalar_one_or_none()

    def seed(self, chart: Iterable[ChartAccount], actor_id: UUID) -> SeedResult:
        """
        Create every account of the chart that is missing.

        Raises:
            InvalidParentError: parent_code names an unknown account.
            Any AccountService.create_account() error for a bad definition.
        """
        created = []
        existing = []
        for definition in chart:
            if self._id_for_code(definition.code) is not None:
                existing.append(definition.code)
                continue

            parent_id = None
            if definition.parent_code:
                parent_id = self._id_for_code(definition.parent_code)
                if parent_id is None:
                    raise InvalidParentError(
                        definition.parent_code, "parent code not found in chart"
                    )

            self._accounts.create_account(
                code=definition.code,
                name=definition.name,
                account_type=definition.account_type,
                subtype=definition.subtype,
                actor_id=actor_id,
                parent_id=parent_id,
                opening_balance=definition.opening_balance,
                name_local=definition.name_local,
                description=definition.description,
                is_system=definition.is_system,
            )
            created.append(definition.code)

        logger.info(
            "chart_seeded",
            extra={"created_count": len(created), "existing_count": len(existing)},
        )
        return SeedResult(created=tuple(created), existing=tuple(existing))
