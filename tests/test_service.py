"""
Tests for the LedgerService flows.

Every test drives the async service with asyncio.run against the
in-memory store and a fixed clock (2026-03-01 12:00 UTC).
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from account_ledger.models.account import (
    AccountCategory,
    AmbiguityReason,
    BalanceApplied,
    MatchFound,
    StaleReason,
    StaleRejection,
)
from account_ledger.models.history import HistoryEntryType
from account_ledger.orchestrator import LedgerService, create_ledger_service
from account_ledger.services.storage import (
    InMemoryAccountStore,
    NotFoundError,
    StorageError,
)
from account_ledger.validation import ValidationError
from tests.conftest import FIXED_NOW, make_account, make_candidate, utc


STATEMENT = """\
Cash  $10,000
My Personal Cash Account    $1,000
Individual
Emergency Fund    $9,000
Investments  $25,000
Vanguard Brokerage    $25,000
2 days ago
Liabilities
Visa Card    $1,200
"""


def history_types(store):
    return [entry.type for entry in asyncio.run(store.list_history())]


class FailingStore(InMemoryAccountStore):
    """Store whose commits always fail."""

    async def commit(self, changes):
        raise StorageError("disk full")


class TestReconcile:
    """Tests for reconciliation batches."""

    def test_statement_creates_accounts(self, service, store):
        parsed, result = asyncio.run(
            service.process_statement_text(STATEMENT, as_of_date=date(2026, 2, 15))
        )

        assert len(parsed.candidates) == 4
        assert len(result.created) == 4
        assert result.as_of == utc(2026, 2, 15)

        accounts = {a.name: a for a in asyncio.run(store.list_accounts())}
        assert accounts["Emergency Fund"].current_value == Decimal("9000")
        assert accounts["Emergency Fund"].last_updated == utc(2026, 2, 15)
        assert accounts["Emergency Fund"].created_at == FIXED_NOW
        assert accounts["Visa Card"].category == AccountCategory.LIABILITY
        assert accounts["My Personal Cash Account"].account_subtype == "Individual"
        assert history_types(store) == [HistoryEntryType.ACCOUNT_CREATED] * 4

    def test_same_statement_twice_is_a_no_op(self, service, store):
        """Re-uploading a statement changes nothing."""
        asyncio.run(service.process_statement_text(STATEMENT, as_of_date=date(2026, 2, 15)))
        before = {a.id: a for a in asyncio.run(store.list_accounts())}

        _, result = asyncio.run(
            service.process_statement_text(STATEMENT, as_of_date=date(2026, 2, 15))
        )

        assert result.created == []
        assert result.updated == []
        assert len(result.rejected_stale) == 4
        assert {r.reason for r in result.rejected_stale} == {StaleReason.NOT_NEWER}
        assert {a.id: a for a in asyncio.run(store.list_accounts())} == before

    def test_newer_statement_updates_balances(self, service, store):
        asyncio.run(service.process_statement_text(STATEMENT, as_of_date=date(2026, 2, 1)))

        result = asyncio.run(service.reconcile(
            [make_candidate("G Emergency Fund", "9500")], as_of_date=date(2026, 2, 20)
        ))

        assert len(result.updated) == 1
        applied = result.updated[0]
        assert applied.account.name == "Emergency Fund"
        assert applied.previous_value == Decimal("9000")
        assert applied.new_value == Decimal("9500")
        assert history_types(store)[-1] == HistoryEntryType.BALANCE_UPDATED

    def test_stale_statement_is_rejected(self, service, store):
        account = make_account("Checking", value="500", last_updated=utc(2026, 2, 1))
        asyncio.run(store.add_account(account))

        result = asyncio.run(service.reconcile(
            [make_candidate("Checking", "300")], as_of_date=date(2026, 1, 15)
        ))

        assert result.updated == []
        assert result.rejected_stale[0].account_id == account.id
        assert result.rejected_stale[0].reason == StaleReason.OLDER_THAN_STORED
        assert asyncio.run(store.get_account(account.id)).current_value == Decimal("500")
        assert history_types(store) == [HistoryEntryType.BALANCE_REJECTED_STALE]

    def test_future_date_rejects_the_whole_batch(self, service, store):
        with pytest.raises(ValidationError) as exc:
            asyncio.run(service.reconcile(
                [make_candidate("Checking", "300")], as_of_date=date(2026, 3, 2)
            ))

        assert exc.value.issue_types == ["future_date"]
        assert asyncio.run(store.list_accounts()) == []
        assert asyncio.run(store.list_history()) == []

    def test_default_as_of_is_today(self, service):
        result = asyncio.run(service.reconcile([make_candidate("Checking", "1")]))
        assert result.as_of == utc(2026, 3, 1)

    def test_tied_matches_are_reported_not_resolved(self, service, store):
        first = make_account("Savings One", value="1")
        second = make_account("Savings Two", value="2")
        asyncio.run(store.add_account(first))
        asyncio.run(store.add_account(second))

        result = asyncio.run(service.reconcile([make_candidate("Savings", "99")]))

        assert result.updated == [] and result.created == []
        assert set(result.ambiguous[0].account_ids) == {first.id, second.id}
        assert asyncio.run(store.get_account(first.id)).current_value == Decimal("1")
        assert asyncio.run(store.list_history()) == []

    def test_second_line_for_same_account_is_ambiguous(self, service, store):
        result = asyncio.run(service.reconcile([
            make_candidate("Checking", "100"),
            make_candidate("Checking", "200"),
        ]))

        assert len(result.created) == 1
        assert result.ambiguous[0].reason == AmbiguityReason.DUPLICATE_IN_BATCH
        assert result.ambiguous[0].account_ids == [result.created[0].id]
        assert result.ambiguous[0].earlier_outcome == "created"
        assert len(asyncio.run(store.list_accounts())) == 1

    def test_duplicate_after_stale_line_says_rejected(self, service, store):
        """The duplicate report does not claim a rejected line updated the account."""
        account = make_account("My Roth IRA", value="500", last_updated=utc(2026, 2, 1))
        asyncio.run(store.add_account(account))

        result = asyncio.run(service.reconcile([
            make_candidate("My Roth IRA", "400"),
            make_candidate("Roth IRA", "300"),
        ], as_of_date=date(2026, 1, 15)))

        assert len(result.rejected_stale) == 1
        duplicate = result.ambiguous[0]
        assert duplicate.reason == AmbiguityReason.DUPLICATE_IN_BATCH
        assert duplicate.earlier_outcome == "rejected_stale"
        assert "already updated" not in duplicate.message

    def test_failed_commit_is_not_reported_as_success(self):
        service = LedgerService(storage=FailingStore(), clock=lambda: FIXED_NOW)
        with pytest.raises(StorageError):
            asyncio.run(service.reconcile([make_candidate("Checking", "1")]))

    def test_concurrent_batches_do_not_duplicate_accounts(self, service, store):
        async def run_both():
            return await asyncio.gather(
                service.reconcile([make_candidate("Brokerage", "10")]),
                service.reconcile([make_candidate("Brokerage", "10")]),
            )

        first, second = asyncio.run(run_both())

        assert len(asyncio.run(store.list_accounts())) == 1
        assert len(first.created) + len(second.created) == 1

    def test_merge_and_update_on_same_account_run_one_after_the_other(self, service, store):
        """A merge never interleaves with a balance update of the accounts it merges."""
        alpha = make_account("Savings Alpha", value="100", last_updated=utc(2026, 1, 1))
        beta = make_account("Savings Beta", value="200", last_updated=utc(2026, 2, 1))
        asyncio.run(store.add_account(alpha))
        asyncio.run(store.add_account(beta))

        async def run_both():
            return await asyncio.gather(
                service.merge([alpha.id, beta.id]),
                service.reconcile(
                    [make_candidate("Savings Alpha", "700")], as_of_date=date(2026, 2, 20)
                ),
            )

        merged, reconciled = asyncio.run(run_both())

        accounts = asyncio.run(store.list_accounts())
        assert len(accounts) == 1
        survivor = accounts[0]
        assert survivor.id == merged.survivor.id
        assert survivor.current_value == Decimal("700")
        assert len(reconciled.updated) == 1

        history = asyncio.run(store.list_history())
        types = [entry.type for entry in history]
        assert types in (
            [HistoryEntryType.ACCOUNTS_MERGED, HistoryEntryType.BALANCE_UPDATED],
            [HistoryEntryType.BALANCE_UPDATED, HistoryEntryType.ACCOUNTS_MERGED],
        )
        # Whichever ran first, the balance landed on the account that survived
        update = next(e for e in history if e.type == HistoryEntryType.BALANCE_UPDATED)
        assert update.account_id == survivor.id
        assert update.account_id not in merged.removed_ids


class TestMerge:
    """Tests for merging duplicates through the service."""

    def test_merge_commits_everything(self, service, store):
        older = make_account("Test Savings Account", last_updated=utc(2026, 1, 1))
        newer = make_account("Test Savings Acct", last_updated=utc(2026, 2, 1))
        asyncio.run(store.add_account(older))
        asyncio.run(store.add_account(newer))

        result = asyncio.run(service.merge([older.id, newer.id]))

        accounts = asyncio.run(store.list_accounts())
        assert [a.id for a in accounts] == [newer.id]
        assert accounts[0].previous_names == ["Test Savings Account"]
        assert result.removed_ids == [older.id]
        assert history_types(store) == [HistoryEntryType.ACCOUNTS_MERGED]

    def test_absorbed_name_still_matches(self, service, store):
        older = make_account("Test Savings Account", last_updated=utc(2026, 1, 1))
        newer = make_account("Test Savings Acct", last_updated=utc(2026, 2, 1))
        asyncio.run(store.add_account(older))
        asyncio.run(store.add_account(newer))
        asyncio.run(service.merge([older.id, newer.id]))

        outcome = service._matcher.match(
            make_candidate("Test Savings Account"), asyncio.run(store.list_accounts())
        )
        assert isinstance(outcome, MatchFound)
        assert outcome.account.id == newer.id

    def test_invalid_merge_leaves_store_unchanged(self, service, store):
        account = make_account("Checking")
        asyncio.run(store.add_account(account))

        with pytest.raises(ValidationError):
            asyncio.run(service.merge([account.id, make_account("Ghost").id]))
        with pytest.raises(ValidationError):
            asyncio.run(service.merge([account.id]))

        assert [a.id for a in asyncio.run(store.list_accounts())] == [account.id]
        assert asyncio.run(store.list_history()) == []


class TestMaintenance:
    """Tests for operator maintenance operations."""

    @pytest.fixture
    def account(self, store):
        account = make_account("Checking", value="100")
        asyncio.run(store.add_account(account))
        return account

    def test_rename_keeps_old_name(self, service, store, account):
        renamed = asyncio.run(service.rename_account(account.id, "Everyday Checking"))

        assert renamed.name == "Everyday Checking"
        assert renamed.previous_names == ["Checking"]
        assert history_types(store) == [HistoryEntryType.ACCOUNT_RENAMED]

        outcome = service._matcher.match(
            make_candidate("checking"), asyncio.run(store.list_accounts())
        )
        assert outcome.tier == 1

    def test_rename_to_previous_name_is_rejected(self, service, store, account):
        asyncio.run(service.rename_account(account.id, "Everyday Checking"))
        with pytest.raises(ValidationError):
            asyncio.run(service.rename_account(account.id, "Checking"))
        assert asyncio.run(store.get_account(account.id)).name == "Everyday Checking"

    def test_rename_to_same_name_records_nothing(self, service, store, account):
        asyncio.run(service.rename_account(account.id, " Checking "))
        assert asyncio.run(store.list_history()) == []

    def test_display_name_set_and_cleared(self, service, store, account):
        updated = asyncio.run(service.set_display_name(account.id, "Bills"))
        assert updated.display_name == "Bills"
        assert updated.name == "Checking"

        cleared = asyncio.run(service.set_display_name(account.id, "  "))
        assert cleared.display_name is None
        assert history_types(store) == [HistoryEntryType.DISPLAY_NAME_UPDATED] * 2

    def test_update_notes(self, service, store, account):
        updated = asyncio.run(service.update_notes(account.id, "Joint with partner"))
        assert updated.notes == "Joint with partner"
        assert history_types(store) == [HistoryEntryType.NOTES_UPDATED]

    def test_set_balance_follows_update_rules(self, service, store, account):
        applied = asyncio.run(service.set_balance(account.id, Decimal("250"), date(2026, 2, 1)))
        assert isinstance(applied, BalanceApplied)

        stale = asyncio.run(service.set_balance(account.id, Decimal("50"), date(2026, 1, 2)))
        assert isinstance(stale, StaleRejection)
        assert asyncio.run(store.get_account(account.id)).current_value == Decimal("250")

        with pytest.raises(ValidationError):
            asyncio.run(service.set_balance(account.id, Decimal("1"), date(2026, 4, 1)))

    def test_delete_account(self, service, store, account):
        deleted = asyncio.run(service.delete_account(account.id))

        assert deleted.id == account.id
        assert asyncio.run(store.list_accounts()) == []
        assert history_types(store) == [HistoryEntryType.ACCOUNT_DELETED]

        with pytest.raises(NotFoundError):
            asyncio.run(service.delete_account(account.id))

    def test_unknown_account_raises(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.update_notes(make_account("Ghost").id, "x"))


class TestReads:
    def test_get_history_filters_by_account(self, service, store):
        asyncio.run(service.reconcile([
            make_candidate("Checking", "1"),
            make_candidate("Brokerage", "2", AccountCategory.INVESTMENT),
        ]))
        checking = next(a for a in asyncio.run(service.list_accounts()) if a.name == "Checking")

        history = asyncio.run(service.get_history(account_id=checking.id))
        assert [e.account_id for e in history] == [checking.id]
        assert asyncio.run(service.get_account(checking.id)) == checking

    def test_factory_builds_memory_backend(self, monkeypatch):
        from account_ledger.config import get_settings

        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        get_settings.cache_clear()
        try:
            service = create_ledger_service()
            assert asyncio.run(service.list_accounts()) == []
        finally:
            get_settings.cache_clear()
