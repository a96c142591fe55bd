"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM sessions
- Database
- Time/clock (except the injectable Clock)
- I/O
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountNode,
    DraftLine,
    EntryFilter,
    FiscalYearInfo,
    JournalEntryDraft,
    Page,
    RecurringTemplateInfo,
    TemplateLineSpec,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AccountInfo",
    "AccountNode",
    "DraftLine",
    "EntryFilter",
    "FiscalYearInfo",
    "JournalEntryDraft",
    "Page",
    "RecurringTemplateInfo",
    "TemplateLineSpec",
]
