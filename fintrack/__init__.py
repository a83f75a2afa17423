"""
Finance Tracker - Source Package

Personal finance tracking: institutions, accounts, transfers, currency
exchanges, income, and recurring or one-off bill payments.

DESIGN PRINCIPLES:
1. Balances only move through ledger operations
2. Every ledger operation is atomic and leaves one transaction record
3. Fail early, fail visibly - errors are raised, never retried
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
