"""
Ledger Kernel - POS back-office general ledger

A double-entry accounting core with:
- Chart of accounts as a typed tree
- Journal entries with draft -> posted -> void lifecycle
- Reversal entries instead of edits
- Fiscal years closed into retained earnings
- Balances and trial balance derived from posted lines
"""

__version__ = "0.1.0"
