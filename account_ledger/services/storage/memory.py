"""
In-Memory Storage Implementation

Holds accounts and history in process memory. Used by tests and by hosts
that persist the ledger themselves.

Reads hand out deep copies of the committed state. A commit builds the new
account table aside and swaps it in with a single assignment, so a reader
never observes a half-applied change set.
"""

from typing import Iterable, Optional
from uuid import UUID

from account_ledger.models.account import Account
from account_ledger.models.history import HistoryEntry
from account_ledger.services.storage.interface import (
    AccountStorageInterface,
    DuplicateError,
    NotFoundError,
    StoreChangeSet,
)


class InMemoryAccountStore(AccountStorageInterface):
    """Account store backed by a dict and a tuple of history entries."""

    def __init__(
        self,
        accounts: Optional[Iterable[Account]] = None,
        history: Optional[Iterable[HistoryEntry]] = None,
    ):
        self._accounts: dict[UUID, Account] = {
            account.id: account.model_copy(deep=True) for account in accounts or ()
        }
        self._history: tuple[HistoryEntry, ...] = tuple(history or ())
        # Ids are never reused, even after an account is removed
        self._retired_ids: set[UUID] = set()

    async def list_accounts(self) -> list[Account]:
        return [account.model_copy(deep=True) for account in self._accounts.values()]

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def add_account(self, account: Account) -> bool:
        await self.commit(StoreChangeSet(added=[account]))
        return True

    async def update_account(self, account: Account) -> bool:
        await self.commit(StoreChangeSet(updated=[account]))
        return True

    async def remove_account(self, account_id: UUID) -> bool:
        if account_id not in self._accounts:
            return False
        await self.commit(StoreChangeSet(removed_ids=[account_id]))
        return True

    async def append_history(self, entry: HistoryEntry) -> bool:
        await self.commit(StoreChangeSet(history=[entry]))
        return True

    async def list_history(self) -> list[HistoryEntry]:
        return list(self._history)

    async def commit(self, changes: StoreChangeSet) -> None:
        """Validate the whole change set, then swap it in."""
        accounts = dict(self._accounts)
        retired = set(self._retired_ids)

        for account in changes.added:
            if account.id in accounts or account.id in retired:
                raise DuplicateError(f"Account id already used: {account.id}")
            accounts[account.id] = account.model_copy(deep=True)

        for account in changes.updated:
            if account.id not in accounts:
                raise NotFoundError(f"Account not found: {account.id}")
            accounts[account.id] = account.model_copy(deep=True)

        for account_id in changes.removed_ids:
            if account_id not in accounts:
                raise NotFoundError(f"Account not found: {account_id}")
            del accounts[account_id]
            retired.add(account_id)

        self._accounts = accounts
        self._retired_ids = retired
        self._history = self._history + tuple(changes.history)
