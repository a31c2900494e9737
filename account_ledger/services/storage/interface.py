"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the account store.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from storage implementation

The store holds two things: the current accounts and the append-only
history. Mutations computed by the core are handed over as one
StoreChangeSet through `commit()`, which applies all of it or none of it.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from account_ledger.models.account import Account
from account_ledger.models.history import HistoryEntry


class StoreChangeSet(BaseModel):
    """
    Everything one operation changes, applied in a single commit.

    Order of application: added, updated, removed, then history.
    """

    added: list[Account] = Field(default_factory=list)
    updated: list[Account] = Field(default_factory=list)
    removed_ids: list[UUID] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed_ids or self.history)

    @property
    def mutates_accounts(self) -> bool:
        return bool(self.added or self.updated or self.removed_ids)


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """
        Enumerate every account.

        Returns:
            Copies of all committed accounts
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """
        Retrieve an account by its ID.

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    async def add_account(self, account: Account) -> bool:
        """
        Add a new account.

        Raises:
            DuplicateError: If the id is in use or was used before
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> bool:
        """
        Replace the stored fields of an existing account.

        Raises:
            NotFoundError: If the account doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def remove_account(self, account_id: UUID) -> bool:
        """
        Remove an account.

        Returns:
            True if removed, False if it did not exist
        """
        pass

    @abstractmethod
    async def append_history(self, entry: HistoryEntry) -> bool:
        """
        Append a history entry. History is never modified or deleted.
        """
        pass

    @abstractmethod
    async def list_history(self) -> list[HistoryEntry]:
        """
        Get the full history.

        Returns:
            Entries in the order they were appended
        """
        pass

    @abstractmethod
    async def commit(self, changes: StoreChangeSet) -> None:
        """
        Apply a change set.

        Must not return before the changes are committed. Raises
        StorageError (or a subclass) if they could not be.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
