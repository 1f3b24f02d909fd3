"""
Piggybank

Per-child savings ledger with weekly interest accrual, exact Decimal money
math, hash-chained audit trail and an idempotent interest scheduler.
"""

__version__ = "1.0.0"
