"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Collaborators (sales, refunds, expenses, the back-office UI) must react to
ledger refusals precisely.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        api.post_journal_entry(entry_id, actor_id)
    except PeriodClosedError as e:
        show(f"{e.fiscal_year_name} is closed ({e.start_date} - {e.end_date})")
    except LinesImbalancedError as e:
        show(f"Off by {e.difference}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- EmptyEntryError
    |   +-- LinesImbalancedError
    |   +-- InvalidLineError
    |   +-- InvalidAccountError
    |   +-- DuplicateAccountCodeError
    |   +-- InvalidParentError
    |   +-- InvalidSubtypeError
    |   +-- InvalidOpeningBalanceError
    |   +-- InvalidDateRangeError
    |   +-- VoidReasonRequiredError
    |   +-- InvalidTemplateError
    |   +-- InvalidSourceError
    |   +-- InvalidStatusError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- SystemAccountProtectedError
    |   +-- AccountHasChildrenError
    |   +-- AccountHasActivityError
    |   +-- AccountTypeLockedError
    |
    +-- StateError
    |   +-- EntryNotFoundError
    |   +-- InvalidStatusTransitionError
    |   +-- EntryAlreadyReversedError
    |   +-- PeriodClosedError
    |   +-- FiscalYearNotFoundError
    |   +-- FiscalYearAlreadyClosedError
    |   +-- DateOverlapError
    |   +-- RetainedEarningsAccountMissingError
    |   +-- UnbalancedLedgerError
    |   +-- TemplateNotFoundError
    |
    +-- ImmutabilityViolationError
    |
    +-- LedgerOperationFailedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|------------------------------------
Validation   | EMPTY_ENTRY                 | Fewer than two lines
             | LINES_IMBALANCED            | Debits != credits
             | INVALID_LINE                | Negative, both or neither side set
             | INVALID_ACCOUNT             | Line account missing or inactive
             | DUPLICATE_CODE              | Account code already used
             | INVALID_PARENT              | Parent missing, other type, or cycle
             | INVALID_SUBTYPE             | Subtype not allowed for the type
             | INVALID_OPENING_BALANCE     | Opening balance on income/expense
             | INVALID_DATE_RANGE          | start > end
             | VOID_REASON_REQUIRED        | Empty void reason
             | INVALID_TEMPLATE            | Recurring template malformed
-------------|-----------------------------|------------------------------------
Account      | ACCOUNT_NOT_FOUND           | Account ID doesn't exist
             | SYSTEM_ACCOUNT_PROTECTED    | Change to a system account
             | HAS_CHILDREN                | Active children block the change
             | HAS_POSTED_ACTIVITY         | Journal lines reference the account
             | ACCOUNT_TYPE_LOCKED         | Type change after posting
-------------|-----------------------------|------------------------------------
State        | ENTRY_NOT_FOUND             | Entry ID doesn't exist
             | INVALID_STATUS_TRANSITION   | Wrong lifecycle state
             | ENTRY_ALREADY_REVERSED      | Entry already has a reversal
             | PERIOD_CLOSED               | Date inside a closed fiscal year
             | FISCAL_YEAR_NOT_FOUND       | No fiscal year for id/date
             | ALREADY_CLOSED              | Fiscal year already closed
             | DATE_OVERLAP                | Fiscal year ranges intersect
             | RETAINED_EARNINGS_MISSING   | No retained earnings account
             | UNBALANCED_LEDGER           | Posted lines do not balance
             | TEMPLATE_NOT_FOUND          | Recurring template ID doesn't exist
-------------|-----------------------------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | ORM write to a sealed record
-------------|-----------------------------|------------------------------------
Storage      | OPERATION_FAILED            | Database failure, nothing changed

===============================================================================
"""


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Validation exceptions


class ValidationError(LedgerError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class EmptyEntryError(ValidationError):
    """Journal entry has fewer than two lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, line_count: int):
        self.line_count = line_count
        super().__init__(
            f"A journal entry needs at least two lines, got {line_count}"
        )


class LinesImbalancedError(ValidationError):
    """Journal entry debits do not equal credits."""

    code: str = "LINES_IMBALANCED"

    def __init__(self, debits, credits):
        self.debits = debits
        self.credits = credits
        self.difference = debits - credits
        super().__init__(
            f"Entry is out of balance: debits={debits}, credits={credits}, "
            f"difference={self.difference}"
        )


class InvalidLineError(ValidationError):
    """A journal line has a negative amount or not exactly one side set."""

    code: str = "INVALID_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Line {line_index}: {reason}")


class InvalidAccountError(ValidationError):
    """Line references an account that is missing or inactive."""

    code: str = "INVALID_ACCOUNT"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Invalid account {account_id}: {reason}")


class DuplicateAccountCodeError(ValidationError):
    code: str = "DUPLICATE_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code {account_code} already exists")


class InvalidParentError(ValidationError):
    """Parent account missing, of a different type, or a descendant."""

    code: str = "INVALID_PARENT"

    def __init__(self, parent_id: str, reason: str):
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(f"Invalid parent {parent_id}: {reason}")


class InvalidSubtypeError(ValidationError):
    code: str = "INVALID_SUBTYPE"

    def __init__(self, account_type: str, subtype: str):
        self.account_type = account_type
        self.subtype = subtype
        super().__init__(
            f"Subtype {subtype!r} is not valid for {account_type} accounts"
        )


class InvalidOpeningBalanceError(ValidationError):
    """Income and expense accounts start at zero."""

    code: str = "INVALID_OPENING_BALANCE"

    def __init__(self, account_type: str, opening_balance):
        self.account_type = account_type
        self.opening_balance = opening_balance
        super().__init__(
            f"{account_type} accounts cannot carry an opening balance "
            f"({opening_balance})"
        )


class InvalidDateRangeError(ValidationError):
    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: str, end_date: str):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(f"Start date {start_date} is after end date {end_date}")


class VoidReasonRequiredError(ValidationError):
    code: str = "VOID_REASON_REQUIRED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"A reason is required to void entry {entry_id}")


class InvalidTemplateError(ValidationError):
    """Recurring template definition is malformed."""

    code: str = "INVALID_TEMPLATE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid recurring template: {reason}")


class InvalidSourceError(ValidationError):
    """Entry source is unknown, or reserved for the ledger itself."""

    code: str = "INVALID_SOURCE"

    def __init__(self, source: str, reason: str = "unknown entry source"):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid entry source {source!r}: {reason}")


class InvalidStatusError(ValidationError):
    """Status filter names no journal entry status."""

    code: str = "INVALID_STATUS"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown journal entry status: {status!r}")


# Account registry exceptions


class AccountError(LedgerError):
    """Base exception for account registry errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class SystemAccountProtectedError(AccountError):
    """System accounts cannot be deactivated, modified or deleted."""

    code: str = "SYSTEM_ACCOUNT_PROTECTED"

    def __init__(self, account_code: str, action: str):
        self.account_code = account_code
        self.action = action
        super().__init__(f"Cannot {action} system account {account_code}")


class AccountHasChildrenError(AccountError):
    code: str = "HAS_CHILDREN"

    def __init__(self, account_code: str, child_count: int):
        self.account_code = account_code
        self.child_count = child_count
        super().__init__(
            f"Account {account_code} has {child_count} child account(s)"
        )


class AccountHasActivityError(AccountError):
    """Accounts referenced by journal or recurring template lines are never
    physically deleted."""

    code: str = "HAS_POSTED_ACTIVITY"

    def __init__(self, account_code: str, line_count: int, template_line_count: int = 0):
        self.account_code = account_code
        self.line_count = line_count
        self.template_line_count = template_line_count
        super().__init__(
            f"Account {account_code} is referenced by {line_count} journal "
            f"line(s) and {template_line_count} recurring template line(s); "
            "deactivate it instead"
        )


class AccountTypeLockedError(AccountError):
    code: str = "ACCOUNT_TYPE_LOCKED"

    def __init__(self, account_code: str, reason: str):
        self.account_code = account_code
        self.reason = reason
        super().__init__(
            f"Type of account {account_code} cannot change: {reason}"
        )


# Lifecycle / state exceptions


class StateError(LedgerError):
    """Base exception for operations refused by current state."""

    code: str = "STATE_ERROR"


class EntryNotFoundError(StateError):
    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class InvalidStatusTransitionError(StateError):
    """Entry is not in the status the operation requires."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entry_id: str, current_status: str, required_status: str):
        self.entry_id = entry_id
        self.current_status = current_status
        self.required_status = required_status
        super().__init__(
            f"Entry {entry_id} is {current_status}; operation requires "
            f"{required_status}"
        )


class EntryAlreadyReversedError(StateError):
    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_entry_id: str):
        self.entry_id = entry_id
        self.reversal_entry_id = reversal_entry_id
        super().__init__(
            f"Entry {entry_id} already reversed by {reversal_entry_id}"
        )


class PeriodClosedError(StateError):
    """Date falls inside a closed fiscal year."""

    code: str = "PERIOD_CLOSED"

    def __init__(
        self,
        fiscal_year_name: str,
        start_date: str,
        end_date: str,
        entry_date: str,
    ):
        self.fiscal_year_name = fiscal_year_name
        self.start_date = start_date
        self.end_date = end_date
        self.entry_date = entry_date
        super().__init__(
            f"Fiscal year {fiscal_year_name} ({start_date} to {end_date}) is "
            f"closed; cannot record on {entry_date}"
        )


class FiscalYearNotFoundError(StateError):
    code: str = "FISCAL_YEAR_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"No fiscal year found for {identifier}")


class FiscalYearAlreadyClosedError(StateError):
    code: str = "ALREADY_CLOSED"

    def __init__(self, fiscal_year_name: str):
        self.fiscal_year_name = fiscal_year_name
        super().__init__(f"Fiscal year {fiscal_year_name} is already closed")


class DateOverlapError(StateError):
    """New fiscal year intersects an existing one."""

    code: str = "DATE_OVERLAP"

    def __init__(
        self,
        fiscal_year_name: str,
        existing_name: str,
        existing_start: str,
        existing_end: str,
    ):
        self.fiscal_year_name = fiscal_year_name
        self.existing_name = existing_name
        self.existing_start = existing_start
        self.existing_end = existing_end
        super().__init__(
            f"Fiscal year {fiscal_year_name} overlaps {existing_name} "
            f"({existing_start} to {existing_end})"
        )


class RetainedEarningsAccountMissingError(StateError):
    code: str = "RETAINED_EARNINGS_MISSING"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"No retained earnings account found (looked for code {account_code} "
            "and an active equity account of subtype retained_earnings)"
        )


class UnbalancedLedgerError(StateError):
    """Total posted debits differ from total posted credits."""

    code: str = "UNBALANCED_LEDGER"

    def __init__(self, as_of: str, debits, credits):
        self.as_of = as_of
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Ledger out of balance as of {as_of}: debits={debits}, "
            f"credits={credits}"
        )


class TemplateNotFoundError(StateError):
    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Recurring template not found: {template_id}")


# Immutability exceptions


class ImmutabilityViolationError(LedgerError):
    """Attempted write to a posted entry, its lines, or a closed year."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage exceptions


class LedgerOperationFailedError(LedgerError):
    """Storage failure. The transaction was rolled back; nothing changed."""

    code: str = "OPERATION_FAILED"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed, nothing changed: {detail}")
