"""
RecurringService -- recurring journal entry templates.

Responsibility:
    Stores balanced line templates with a schedule (rent, subscriptions,
    depreciation) and turns a due template into a posted journal entry,
    advancing its schedule.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerAPI.process_recurring() and the ledger CLI.  Generated
    entries go through LedgerStore and PostingService like any other entry.

Invariants enforced:
    - Template lines follow the journal line rules (validate_lines) and
      reference existing, active accounts.
    - run_template() posts exactly one entry dated the scheduled run date,
      then moves next_run_date forward by one frequency step (month steps
      keep the start date's day, clamped to the month end).
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidTemplateError: bad name, frequency or schedule bounds.
    - EmptyEntryError / InvalidLineError / LinesImbalancedError /
      InvalidAccountError: bad template lines.
    - TemplateNotFoundError: unknown template id.
    - Any posting error (e.g. PeriodClosedError) from run_template().

Audit relevance:
    Generated entries carry source=recurring, source_type
    "recurring_template" and source_id = template id.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    DraftLine,
    JournalEntryDraft,
    RecurringTemplateInfo,
    TemplateLineSpec,
)
from ledger_kernel.domain.recurrence import FREQUENCIES, next_run_date
from ledger_kernel.exceptions import InvalidTemplateError, TemplateNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import EntrySource
from ledger_kernel.models.recurring import (
    RecurringFrequency,
    RecurringTemplate,
    RecurringTemplateLine,
)
from ledger_kernel.selectors.journal_selector import JournalEntryDTO
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_store import validate_accounts, validate_lines
from ledger_kernel.services.posting_service import PostingService

logger = get_logger("services.recurring")

RECURRING_SOURCE_TYPE = "recurring_template"


def _to_info(template: RecurringTemplate) -> RecurringTemplateInfo:
    return RecurringTemplateInfo(
        id=template.id,
        name=template.name,
        description=template.description,
        frequency=template.frequency.value,
        start_date=template.start_date,
        end_date=template.end_date,
        next_run_date=template.next_run_date,
        last_run_date=template.last_run_date,
        occurrences=template.occurrences,
        max_occurrences=template.max_occurrences,
        is_active=template.is_active,
        lines=tuple(
            TemplateLineSpec(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in template.lines
        ),
    )


class RecurringService(BaseService[RecurringTemplate]):
    """
    Recurring template lifecycle and execution.

    Contract:
        create_template() validates and stores a template; run_template()
        posts the next occurrence.  Both flush within the caller's
        transaction.

    Non-goals:
        - Does NOT catch up missed runs in one call: each run_template()
          posts one occurrence (process_recurring loops until nothing is
          due).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        posting: PostingService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._posting = posting or PostingService(session, self._clock)

    def _get(self, template_id: UUID, for_update: bool = False) -> RecurringTemplate:
        query = select(RecurringTemplate).where(RecurringTemplate.id == template_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        template = self.session.execute(query).scalar_one_or_none()
        if template is None:
            raise TemplateNotFoundError(str(template_id))
        return template

    def create_template(
        self,
        name: str,
        frequency: RecurringFrequency | str,
        start_date: date,
        lines: list[TemplateLineSpec],
        actor_id: UUID,
        description: str | None = None,
        end_date: date | None = None,
        max_occurrences: int | None = None,
    ) -> RecurringTemplateInfo:
        """
        Create an active template whose first run is start_date.

        Raises:
            InvalidTemplateError, EmptyEntryError, InvalidLineError,
            LinesImbalancedError, InvalidAccountError.
        """
        frequency = getattr(frequency, "value", frequency)
        if not name or not name.strip():
            raise InvalidTemplateError("name is required")
        if frequency not in FREQUENCIES:
            raise InvalidTemplateError(f"unknown frequency {frequency!r}")
        if end_date is not None and end_date < start_date:
            raise InvalidTemplateError(
                f"end date {end_date} is before start date {start_date}"
            )
        if max_occurrences is not None and max_occurrences < 1:
            raise InvalidTemplateError("max_occurrences must be at least 1")

        draft_lines = [
            DraftLine(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in lines
        ]
        validate_lines(draft_lines)
        validate_accounts(self.session, [line.account_id for line in draft_lines])

        template = RecurringTemplate(
            name=name.strip(),
            description=description,
            frequency=RecurringFrequency(frequency),
            start_date=start_date,
            end_date=end_date,
            next_run_date=start_date,
            occurrences=0,
            max_occurrences=max_occurrences,
            is_active=True,
            created_by_id=actor_id,
        )
        template.lines = [
            RecurringTemplateLine(
                account_id=line.account_id,
                line_seq=index,
                description=line.description,
                debit=line.debit,
                credit=line.credit,
                created_by_id=actor_id,
            )
            for index, line in enumerate(draft_lines, start=1)
        ]
        self.session.add(template)
        self.session.flush()

        logger.info(
            "recurring_template_created",
            extra={
                "template_id": str(template.id),
                "template_name": template.name,
                "frequency": frequency,
                "next_run_date": str(template.next_run_date),
            },
        )
        return _to_info(template)

    def deactivate_template(self, template_id: UUID, actor_id: UUID) -> RecurringTemplateInfo:
        template = self._get(template_id)
        if template.is_active:
            template.is_active = False
            template.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "recurring_template_deactivated",
                extra={"template_id": str(template.id)},
            )
        return _to_info(template)

    def get_template(self, template_id: UUID) -> RecurringTemplateInfo:
        return _to_info(self._get(template_id))

    def list_templates(self, active_only: bool = False) -> list[RecurringTemplateInfo]:
        query = select(RecurringTemplate).order_by(RecurringTemplate.name)
        if active_only:
            query = query.where(RecurringTemplate.is_active.is_(True))
        return [_to_info(t) for t in self.session.execute(query).scalars()]

    def due_templates(self, as_of: date | None = None) -> list[RecurringTemplateInfo]:
        """Templates due on as_of (clock date by default), oldest run first."""
        as_of = as_of or self._clock.today()
        candidates = self.session.execute(
            select(RecurringTemplate)
            .where(
                RecurringTemplate.is_active.is_(True),
                RecurringTemplate.next_run_date <= as_of,
            )
            .order_by(RecurringTemplate.next_run_date, RecurringTemplate.name)
        ).scalars().all()
        return [_to_info(t) for t in candidates if t.is_due(as_of)]

    def is_due(self, template_id: UUID, as_of: date | None = None) -> bool:
        return self._get(template_id).is_due(as_of or self._clock.today())

    def run_template(
        self,
        template_id: UUID,
        actor_id: UUID,
        as_of: date | None = None,
    ) -> JournalEntryDTO:
        """
        Post the next occurrence of a template and advance its schedule.

        The entry is dated the scheduled run date (next_run_date), not
        as_of.  A template that reaches end_date or max_occurrences is
        deactivated.

        Raises:
            TemplateNotFoundError, InvalidTemplateError (not due), and any
            LedgerStore / PostingService error.
        """
        as_of = as_of or self._clock.today()
        template = self._get(template_id, for_update=True)
        if not template.is_due(as_of):
            raise InvalidTemplateError(
                f"template {template.name} is not due on {as_of}"
            )

        run_date = template.next_run_date
        draft = JournalEntryDraft(
            entry_date=run_date,
            lines=tuple(
                DraftLine(
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
                for line in template.lines
            ),
            description=template.description or template.name,
            reference=f"REC-{template.id}",
            source=EntrySource.RECURRING,
            source_type=RECURRING_SOURCE_TYPE,
            source_id=str(template.id),
        )
        entry = self._posting.create_and_post(draft, actor_id)

        template.last_run_date = run_date
        template.occurrences += 1
        template.next_run_date = next_run_date(
            run_date, template.frequency, anchor_day=template.start_date.day
        )
        if (
            template.max_occurrences is not None
            and template.occurrences >= template.max_occurrences
        ) or (
            template.end_date is not None and template.next_run_date > template.end_date
        ):
            template.is_active = False
        template.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "recurring_template_run",
            extra={
                "template_id": str(template.id),
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "run_date": str(run_date),
                "next_run_date": str(template.next_run_date),
                "occurrences": template.occurrences,
                "is_active": template.is_active,
            },
        )
        return entry
