"""Tests for the balance updater."""

from datetime import date, datetime
from decimal import Decimal

from account_ledger.models.account import (
    BalanceApplied,
    StaleReason,
    StaleRejection,
)
from account_ledger.models.history import HistoryEntryType
from account_ledger.reconcile import BalanceUpdater
from tests.conftest import make_account, utc


class TestAsOfInstant:
    def test_midnight_utc(self):
        assert BalanceUpdater.as_of_instant(date(2026, 1, 15)) == utc(2026, 1, 15)

    def test_datetime_is_truncated_to_its_date(self):
        assert BalanceUpdater.as_of_instant(datetime(2026, 1, 15, 18, 30)) == utc(2026, 1, 15)


class TestBalanceUpdater:
    """Tests for BalanceUpdater.apply."""

    def test_older_statement_is_rejected(self):
        """A statement older than the stored data never overwrites it."""
        account = make_account("Checking", value="500", last_updated=utc(2026, 2, 1))
        outcome, entry = BalanceUpdater().apply(account, Decimal("300"), utc(2026, 1, 15))

        assert isinstance(outcome, StaleRejection)
        assert outcome.reason == StaleReason.OLDER_THAN_STORED
        assert outcome.attempted_value == Decimal("300")
        assert outcome.last_updated == utc(2026, 2, 1)
        assert entry.type == HistoryEntryType.BALANCE_REJECTED_STALE
        assert account.current_value == Decimal("500")

    def test_newer_statement_is_applied_to_a_copy(self):
        account = make_account("Checking", value="500", last_updated=utc(2026, 1, 1))
        outcome, entry = BalanceUpdater().apply(
            account, Decimal("750"), utc(2026, 2, 1), candidate_name="G Checking"
        )

        assert isinstance(outcome, BalanceApplied)
        assert outcome.account.current_value == Decimal("750")
        assert outcome.account.last_updated == utc(2026, 2, 1)
        assert outcome.previous_value == Decimal("500")
        assert account.current_value == Decimal("500")

        assert entry.type == HistoryEntryType.BALANCE_UPDATED
        assert entry.payload["previous_value"] == "500"
        assert entry.payload["candidate_name"] == "G Checking"
        assert entry.as_of == utc(2026, 2, 1)

    def test_same_instant_new_value_is_applied(self):
        account = make_account("Checking", value="500", last_updated=utc(2026, 2, 1))
        outcome, _ = BalanceUpdater().apply(account, Decimal("510"), utc(2026, 2, 1))
        assert isinstance(outcome, BalanceApplied)

    def test_exact_repeat_is_not_newer(self):
        """Applying the same statement twice changes nothing the second time."""
        account = make_account("Checking", value="500", last_updated=utc(2026, 1, 1))
        updater = BalanceUpdater()

        first, _ = updater.apply(account, Decimal("750"), utc(2026, 2, 1))
        second, entry = updater.apply(first.account, Decimal("750"), utc(2026, 2, 1))

        assert isinstance(second, StaleRejection)
        assert second.reason == StaleReason.NOT_NEWER
        assert entry.payload["reason"] == "not_newer"
