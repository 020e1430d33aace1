"""
Wallet Ledger - Source Package

Ledger consistency engine for a personal-finance service:
planned payment execution, import/export reconciliation, and
pay period / savings goal summaries.

PRINCIPLES:
1. Money is integer cents; direction is carried by sign
2. Every multi-row write happens inside one atomic unit
3. Domain failures are typed and returned verbatim
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Wallet Ledger Team"
