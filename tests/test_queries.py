"""Tests for the read-only ledger queries."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from account_ledger.models.account import AccountCategory
from account_ledger.queries import QueryExecutionError
from tests.conftest import make_candidate, utc


@pytest.fixture
def populated(service):
    """Two statements: Jan 1 (three accounts) and Feb 1 (checking only)."""
    asyncio.run(service.reconcile([
        make_candidate("Checking", "1000", AccountCategory.CASH),
        make_candidate("Brokerage", "3000", AccountCategory.INVESTMENT),
        make_candidate("Visa", "500", AccountCategory.LIABILITY),
    ], as_of_date=date(2026, 1, 1)))
    asyncio.run(service.reconcile(
        [make_candidate("Checking", "2000", AccountCategory.CASH)],
        as_of_date=date(2026, 2, 1),
    ))
    return service


def account_named(service, name):
    return next(a for a in asyncio.run(service.list_accounts()) if a.name == name)


class TestLedgerQueries:
    """Tests for LedgerQueries."""

    def test_portfolio_summary(self, populated):
        summary = asyncio.run(populated.queries.portfolio_summary())

        assert summary.account_count == 3
        assert summary.total_assets == Decimal("5000")
        assert summary.total_liabilities == Decimal("500")
        assert summary.net_worth == Decimal("4500")

        categories = summary.categories
        assert categories[AccountCategory.CASH].allocation_percent == Decimal("40.00")
        assert categories[AccountCategory.INVESTMENT].allocation_percent == Decimal("60.00")
        assert categories[AccountCategory.LIABILITY].allocation_percent is None

    def test_empty_portfolio(self, service):
        summary = asyncio.run(service.queries.portfolio_summary())
        assert summary.account_count == 0
        assert summary.net_worth == Decimal("0")
        assert summary.categories == {}

    def test_balance_history(self, populated):
        checking = account_named(populated, "Checking")
        points = asyncio.run(populated.queries.balance_history(checking.id))

        assert [(p.as_of, p.value) for p in points] == [
            (utc(2026, 1, 1), Decimal("1000")),
            (utc(2026, 2, 1), Decimal("2000")),
        ]

    def test_net_worth_history(self, populated):
        points = asyncio.run(populated.queries.net_worth_history())

        assert [(p.as_of, p.value) for p in points] == [
            (utc(2026, 1, 1), Decimal("3500")),
            (utc(2026, 2, 1), Decimal("4500")),
        ]

    def test_deleted_accounts_leave_the_series(self, populated):
        visa = account_named(populated, "Visa")
        asyncio.run(populated.delete_account(visa.id))

        points = asyncio.run(populated.queries.net_worth_history())
        assert points[-1].value == Decimal("5000")

    def test_history_by_category(self, populated):
        grouped = asyncio.run(populated.queries.history_by_category())

        assert len(grouped[AccountCategory.CASH]) == 2
        assert len(grouped[AccountCategory.INVESTMENT]) == 1
        assert len(grouped[AccountCategory.LIABILITY]) == 1

    def test_history_date_range(self, populated):
        history = asyncio.run(populated.queries.history(
            start=utc(2000, 1, 1), end=utc(2000, 1, 2)
        ))
        assert history == []

    def test_inverted_range_is_an_error(self, populated):
        with pytest.raises(QueryExecutionError):
            asyncio.run(populated.queries.history(start=utc(2026, 2, 1), end=utc(2026, 1, 1)))
