"""
Name comparison tiers.

Each tier is a pure predicate `(candidate_name, account) -> bool` that checks
the candidate name against the account's current name and every previous
name. Tiers are tried in order by the AccountMatcher; the first tier with a
hit decides the outcome.

`Account.display_name` is cosmetic and is never read here.
"""

from typing import Callable

from account_ledger.models.account import Account, MatchTier


TierFunction = Callable[[str, Account], bool]


def clean_name(name: str) -> str:
    """Trimmed, lowercased name."""
    return name.strip().lower()


def normalize_name(name: str) -> str:
    """
    Lowercase, drop every non-alphanumeric character and collapse runs of
    whitespace to a single space.

    "G  My Personal-Cash Account!" -> "g my personalcash account"
    """
    kept = "".join(ch for ch in name.lower() if ch.isalnum() or ch.isspace())
    return " ".join(kept.split())


def _contains_either_way(key: str, other: str) -> bool:
    return bool(key) and bool(other) and (key in other or other in key)


def exact_tier(candidate_name: str, account: Account) -> bool:
    """Tier 1: case-insensitive equality with the name or a previous name."""
    key = clean_name(candidate_name)
    if not key:
        return False
    return any(key == clean_name(name) for name in account.known_names)


def substring_tier(candidate_name: str, account: Account) -> bool:
    """Tier 2: one trimmed name contains the other, either direction."""
    key = clean_name(candidate_name)
    return any(
        _contains_either_way(key, clean_name(name))
        for name in account.known_names
    )


def normalized_tier(candidate_name: str, account: Account) -> bool:
    """Tier 3: exact or substring comparison of normalized names."""
    key = normalize_name(candidate_name)
    for name in account.known_names:
        other = normalize_name(name)
        if key and key == other:
            return True
        if _contains_either_way(key, other):
            return True
    return False


DEFAULT_TIERS: tuple[tuple[MatchTier, TierFunction], ...] = (
    (MatchTier.EXACT, exact_tier),
    (MatchTier.SUBSTRING, substring_tier),
    (MatchTier.NORMALIZED, normalized_tier),
)
