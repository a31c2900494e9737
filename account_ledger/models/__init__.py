"""
Data Models Package

This package contains all Pydantic models used in the Account Ledger.
All data flowing through the reconciliation core must conform to these schemas.
"""

from account_ledger.models.account import (
    Account,
    AccountCandidate,
    AccountCategory,
    AmbiguityReason,
    AmbiguousMatch,
    BalanceApplied,
    BalanceOutcome,
    BalancePoint,
    CategoryGroup,
    CategorySummary,
    DiagnosticCode,
    MatchFound,
    MatchOutcome,
    MatchTier,
    NoMatch,
    ParseDiagnostic,
    ParseResult,
    PortfolioSummary,
    ReconcileResult,
    StaleReason,
    StaleRejection,
    ValidationIssue,
    fold_names,
    to_utc,
    utc_midnight,
    utc_now,
)
from account_ledger.models.history import (
    BALANCE_ENTRY_TYPES,
    HistoryEntry,
    HistoryEntryBuilder,
    HistoryEntryType,
    MergeResult,
)

__all__ = [
    # Account models
    "Account",
    "AccountCandidate",
    "AccountCategory",
    "CategoryGroup",
    "DiagnosticCode",
    "ParseDiagnostic",
    "ParseResult",
    # Outcomes
    "AmbiguityReason",
    "AmbiguousMatch",
    "BalanceApplied",
    "BalanceOutcome",
    "MatchFound",
    "MatchOutcome",
    "MatchTier",
    "NoMatch",
    "ReconcileResult",
    "StaleReason",
    "StaleRejection",
    "ValidationIssue",
    # Query results
    "BalancePoint",
    "CategorySummary",
    "PortfolioSummary",
    # History models
    "BALANCE_ENTRY_TYPES",
    "HistoryEntry",
    "HistoryEntryBuilder",
    "HistoryEntryType",
    "MergeResult",
    # Helpers
    "fold_names",
    "to_utc",
    "utc_midnight",
    "utc_now",
]
