"""
Storage Services Package

Provides the abstract account store interface and its implementations.
The in-memory store backs tests and embedded use; Google Sheets is the
persistent backend, and either can be swapped for a real database.
"""

from account_ledger.services.storage.interface import (
    AccountStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    StoreChangeSet,
)
from account_ledger.services.storage.memory import InMemoryAccountStore
from account_ledger.services.storage.google_sheets import (
    GoogleSheetsAccountStore,
    GoogleSheetsClient,
)

__all__ = [
    # Interface
    "AccountStorageInterface",
    "StoreChangeSet",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsAccountStore",
    "GoogleSheetsClient",
    "InMemoryAccountStore",
]
