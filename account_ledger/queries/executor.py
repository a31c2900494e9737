"""
Ledger Queries

DESIGN DECISION: Queries are DETERMINISTIC and read-only.
Every figure returned here is computed from committed store data:
the current accounts or the append-only history. Nothing is
estimated or interpolated.

GUARANTEES:
- Only returns real data from storage
- Never mutates the store
- Empty results when nothing matches (never an error)
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from account_ledger.models.account import (
    Account,
    AccountCategory,
    BalancePoint,
    CategorySummary,
    PortfolioSummary,
    to_utc,
)
from account_ledger.models.history import BALANCE_ENTRY_TYPES, HistoryEntry
from account_ledger.services.storage import AccountStorageInterface


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def _net_worth(values: dict[UUID, tuple[AccountCategory, Decimal]]) -> Decimal:
    total = Decimal("0")
    for category, value in values.values():
        if category.is_liability:
            total -= abs(value)
        else:
            total += value
    return total


class LedgerQueries:
    """
    Read-only views over the account store.

    Usage:
        queries = LedgerQueries(store)
        summary = await queries.portfolio_summary()
    """

    def __init__(self, storage: AccountStorageInterface):
        self._storage = storage

    async def history(
        self,
        account_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[HistoryEntry]:
        """
        History entries in commit order, optionally filtered.

        Args:
            account_id: Keep entries touching this account
            start: Keep entries committed at or after this instant
            end: Keep entries committed at or before this instant
        """
        if start is not None and end is not None and to_utc(start) > to_utc(end):
            raise QueryExecutionError("History range start is after its end")

        entries = await self._storage.list_history()
        if account_id is not None:
            entries = [e for e in entries if e.touches(account_id)]
        if start is not None:
            entries = [e for e in entries if e.timestamp >= to_utc(start)]
        if end is not None:
            entries = [e for e in entries if e.timestamp <= to_utc(end)]
        return entries

    async def portfolio_summary(self) -> PortfolioSummary:
        """Per-category totals, allocation and net worth of the current store."""
        accounts = await self._storage.list_accounts()
        summary = PortfolioSummary(account_count=len(accounts))

        for account in accounts:
            bucket = summary.categories.setdefault(
                account.category, CategorySummary(category=account.category)
            )
            bucket.total += account.current_value
            bucket.account_count += 1

        for bucket in summary.categories.values():
            if bucket.category.is_liability:
                summary.total_liabilities += abs(bucket.total)
            else:
                summary.total_assets += bucket.total

        for bucket in summary.categories.values():
            if bucket.category.is_liability:
                continue
            if summary.total_assets > 0:
                bucket.allocation_percent = (
                    bucket.total / summary.total_assets * 100
                ).quantize(Decimal("0.01"))
            else:
                bucket.allocation_percent = Decimal("0")

        summary.net_worth = summary.total_assets - summary.total_liabilities
        return summary

    async def balance_history(self, account_id: UUID) -> list[BalancePoint]:
        """
        Chronological balance observations of one account.

        Built from `account_created` and `balance_updated` entries. Several
        observations at one instant keep the last committed one.
        """
        points: dict[datetime, Decimal] = {}
        for entry in await self.history(account_id=account_id):
            if entry.type not in BALANCE_ENTRY_TYPES or entry.account_id != account_id:
                continue
            if entry.as_of is None or entry.value is None:
                continue
            points[entry.as_of] = entry.value

        return [
            BalancePoint(as_of=as_of, value=value)
            for as_of, value in sorted(points.items())
        ]

    async def net_worth_history(self) -> list[BalancePoint]:
        """
        Net worth at every as-of instant found in the history.

        Each point uses the latest known value of every current account up
        to that instant. Accounts that were deleted or merged away are left
        out of the whole series.
        """
        accounts: dict[UUID, Account] = {
            account.id: account for account in await self._storage.list_accounts()
        }

        observations: list[tuple[datetime, UUID, Decimal]] = []
        for entry in await self._storage.list_history():
            if entry.type not in BALANCE_ENTRY_TYPES or entry.account_id not in accounts:
                continue
            if entry.as_of is None or entry.value is None:
                continue
            observations.append((entry.as_of, entry.account_id, entry.value))
        # Stable sort keeps commit order within one instant
        observations.sort(key=lambda item: item[0])

        latest: dict[UUID, tuple[AccountCategory, Decimal]] = {}
        series: dict[datetime, Decimal] = {}
        for as_of, account_id, value in observations:
            latest[account_id] = (accounts[account_id].category, value)
            series[as_of] = _net_worth(latest)

        return [
            BalancePoint(as_of=as_of, value=value)
            for as_of, value in sorted(series.items())
        ]

    async def history_by_category(self) -> dict[Optional[AccountCategory], list[HistoryEntry]]:
        """History entries grouped by the category of their primary account."""
        grouped: dict[Optional[AccountCategory], list[HistoryEntry]] = defaultdict(list)
        for entry in await self._storage.list_history():
            grouped[entry.category].append(entry)
        return dict(grouped)
