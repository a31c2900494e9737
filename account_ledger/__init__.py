"""
Account Ledger - Source Package

Reconciles noisy financial-statement text into a durable set of
account records without duplicating or silently corrupting the ledger.

DESIGN PRINCIPLES:
1. Parse → Match → Update, or report and wait for a human
2. Fail early, fail visibly
3. No silent corrections (ambiguous or stale data is reported, never applied)
4. Every change is recorded in an append-only history
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Account Ledger Team"
