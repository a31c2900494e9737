"""
Shared fixtures for Account Ledger tests.

No network and no real spreadsheet: the service runs against the
in-memory store and a fixed clock.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from account_ledger.models.account import (
    Account,
    AccountCandidate,
    AccountCategory,
)
from account_ledger.orchestrator import LedgerService
from account_ledger.parsing import StatementTextParser
from account_ledger.services.storage import InMemoryAccountStore


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_account(
    name: str,
    category: AccountCategory = AccountCategory.CASH,
    value: str = "0",
    last_updated: datetime = utc(2026, 1, 1),
    created_at: datetime = utc(2025, 12, 1),
    **kwargs,
) -> Account:
    return Account(
        name=name,
        category=category,
        current_value=Decimal(value),
        last_updated=last_updated,
        created_at=created_at,
        **kwargs,
    )


def make_candidate(
    name: str,
    balance: str = "0",
    category: AccountCategory = AccountCategory.CASH,
) -> AccountCandidate:
    return AccountCandidate(name=name, balance=Decimal(balance), category=category)


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def service(store) -> LedgerService:
    return LedgerService(
        storage=store,
        parser=StatementTextParser(min_column_gap=2),
        clock=lambda: FIXED_NOW,
    )
