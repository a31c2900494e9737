"""Account matching package."""

from account_ledger.matching.matcher import AccountMatcher
from account_ledger.matching.tiers import (
    DEFAULT_TIERS,
    TierFunction,
    clean_name,
    exact_tier,
    normalize_name,
    normalized_tier,
    substring_tier,
)

__all__ = [
    "AccountMatcher",
    "DEFAULT_TIERS",
    "TierFunction",
    "clean_name",
    "exact_tier",
    "normalize_name",
    "normalized_tier",
    "substring_tier",
]
