"""
Dividend Ledger

A value-backed, single-asset ledger with holder tracking and pull-based
proportional dividend accrual. All amounts are checked unsigned integers.
"""

__version__ = "1.0.0"
