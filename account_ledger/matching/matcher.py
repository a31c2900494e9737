"""
Account Matcher

Finds the existing account a parsed candidate refers to.

GUARANTEES:
- Tiers are tried in order; the first tier with any hit decides.
- Several hits in one tier are narrowed to the most recently updated
  account. If that still leaves more than one, the result is
  AmbiguousMatch. The matcher never picks arbitrarily.
- The matcher is read-only. It never mutates the accounts it is given.
"""

from typing import Iterable, Optional, Sequence

from account_ledger.matching.tiers import DEFAULT_TIERS, TierFunction
from account_ledger.models.account import (
    Account,
    AccountCandidate,
    AmbiguousMatch,
    MatchFound,
    MatchOutcome,
    MatchTier,
    NoMatch,
)


class AccountMatcher:
    """
    Tiered fuzzy matcher.

    Usage:
        outcome = AccountMatcher().match(candidate, accounts)
        if outcome.kind == "matched": ...
    """

    def __init__(
        self,
        tiers: Optional[Sequence[tuple[MatchTier, TierFunction]]] = None,
    ):
        self._tiers = tuple(tiers) if tiers is not None else DEFAULT_TIERS

    @staticmethod
    def _freshest(hits: list[Account]) -> list[Account]:
        newest = max(account.last_updated for account in hits)
        return [account for account in hits if account.last_updated == newest]

    def match(
        self,
        candidate: AccountCandidate,
        accounts: Iterable[Account],
    ) -> MatchOutcome:
        """Match one candidate against the full account collection."""
        pool = list(accounts)

        for tier, predicate in self._tiers:
            hits = [account for account in pool if predicate(candidate.name, account)]
            if not hits:
                continue

            top = self._freshest(hits)
            if len(top) == 1:
                return MatchFound(candidate=candidate, account=top[0], tier=tier)

            return AmbiguousMatch(
                candidate=candidate,
                tier=tier,
                account_ids=[account.id for account in top],
                account_names=[account.name for account in top],
            )

        return NoMatch(candidate=candidate)
