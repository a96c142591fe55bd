"""
Module: ledger_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    are the read side of the kernel: structured access to ledger data without
    mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ (pure functions and DTOs).  MUST NOT import from services/ or
    outer layers.

Invariants enforced:
    - Read-only access: Selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, never raw ORM
      instances.
    - Session ownership: the caller owns the session and its transaction.

Audit relevance:
    Selectors derive every balance from journal lines -- there are NO stored
    balances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
