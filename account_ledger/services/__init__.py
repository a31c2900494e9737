"""Services package."""

from account_ledger.services.storage import (
    AccountStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAccountStore,
    GoogleSheetsClient,
    InMemoryAccountStore,
    NotFoundError,
    StorageError,
    StoreChangeSet,
)

__all__ = [
    "AccountStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAccountStore",
    "GoogleSheetsClient",
    "InMemoryAccountStore",
    "NotFoundError",
    "StorageError",
    "StoreChangeSet",
]
