"""
Kazi Ledger - Source Package

A bookkeeping assistant for micro-entrepreneurs who record sales,
expenses and debts by typing, speaking or photographing receipts.

DESIGN PRINCIPLES:
1. AI drafts → Human confirms → Store appends
2. External failures never corrupt local state
3. Every account is an isolated ledger
4. At least one ledger always exists
5. Storage backend is swappable
"""

__version__ = "1.2.5"
__author__ = "Kazi Ledger Team"
