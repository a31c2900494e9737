"""Request validation package."""

from account_ledger.validation.validator import (
    LedgerValidator,
    ValidationError,
    utc_today,
)

__all__ = ["LedgerValidator", "ValidationError", "utc_today"]
