"""
Google Sheets Account Store

Two worksheets: "Accounts" holds one row per live account, "History"
holds the append-only ledger of changes. Both stay readable (and
auditable) by the user in the Sheets UI.

TRADEOFFS:
- A personal ledger is a few hundred rows, so every read loads the
  whole sheet and filtering happens in Python
- No transactions. A change set is written in a fixed order (new accounts,
  updated accounts, removals, then history) so an interrupted commit never
  leaves a history entry describing a change that was not written.
  Every check of a change set runs before its first write, and each
  write step is retried on its own (never the whole change set).
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from account_ledger.config import get_settings
from account_ledger.models.account import Account, AccountCategory
from account_ledger.models.history import HistoryEntry, HistoryEntryType
from account_ledger.services.storage.interface import (
    AccountStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    StoreChangeSet,
)


# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "name",
    "display_name",
    "category",
    "current_value",
    "previous_names_json",
    "last_updated",
    "created_at",
    "notes",
    "institution",
    "account_subtype",
]

# Column mappings for History sheet
HISTORY_COLUMNS = [
    "entry_id",
    "timestamp",
    "type",
    "account_id",
    "account_ids_json",
    "category",
    "description",
    "payload_json",
]

# Missing or duplicate ids fail the same way on every attempt
_write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Opens the configured spreadsheet with service account credentials
    and hands out its two worksheets, creating them on first use.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        """Get or create the Accounts worksheet."""
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=1000
        )

    def get_history_sheet(self) -> gspread.Worksheet:
        """Get or create the History worksheet."""
        return self._get_or_create_sheet(
            self._settings.history_sheet_name, HISTORY_COLUMNS, rows=5000
        )


def account_to_row(account: Account) -> list:
    """Convert an Account to a spreadsheet row."""
    return [
        str(account.id),
        account.name,
        account.display_name or "",
        account.category.value,
        str(account.current_value),
        json.dumps(account.previous_names),
        account.last_updated.isoformat(),
        account.created_at.isoformat(),
        account.notes or "",
        account.institution or "",
        account.account_subtype or "",
    ]


def row_to_account(row: list) -> Account:
    """Convert a spreadsheet row to an Account."""
    # Handle missing columns gracefully
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    previous_json = safe_get(5)
    return Account(
        id=UUID(safe_get(0)),
        name=safe_get(1),
        display_name=safe_get(2) or None,
        category=AccountCategory(safe_get(3)),
        current_value=Decimal(safe_get(4, "0")),
        previous_names=json.loads(previous_json) if previous_json else [],
        last_updated=datetime.fromisoformat(safe_get(6)),
        created_at=datetime.fromisoformat(safe_get(7)),
        notes=safe_get(8),
        institution=safe_get(9) or None,
        account_subtype=safe_get(10) or None,
    )


def row_to_entry(row: list) -> HistoryEntry:
    """Convert a spreadsheet row to a HistoryEntry."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    ids_json = safe_get(4)
    return HistoryEntry(
        entry_id=UUID(safe_get(0)),
        timestamp=datetime.fromisoformat(safe_get(1)),
        type=HistoryEntryType(safe_get(2)),
        account_id=UUID(safe_get(3)) if safe_get(3) else None,
        account_ids=[UUID(i) for i in json.loads(ids_json)] if ids_json else [],
        category=AccountCategory(safe_get(5)) if safe_get(5) else None,
        description=safe_get(6),
        payload=json.loads(safe_get(7)) if safe_get(7) else {},
    )


class GoogleSheetsAccountStore(AccountStorageInterface):
    """
    Google Sheets implementation of the account store.

    Accounts are stored one per row; previous names are JSON-serialized.
    History entries are appended to a second worksheet and never edited.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _account_rows(self, sheet) -> dict[str, int]:
        """Map account id -> 1-based row index (row 1 is the header)."""
        rows = sheet.get_all_values()
        return {
            row[0]: idx
            for idx, row in enumerate(rows[1:], start=2)
            if row and row[0]
        }

    async def list_accounts(self) -> list[Account]:
        try:
            sheet = self._client.get_accounts_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

        return [row_to_account(row) for row in all_rows if row and row[0]]

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        for account in await self.list_accounts():
            if account.id == account_id:
                return account
        return None

    async def add_account(self, account: Account) -> bool:
        await self.commit(StoreChangeSet(added=[account]))
        return True

    async def update_account(self, account: Account) -> bool:
        await self.commit(StoreChangeSet(updated=[account]))
        return True

    async def remove_account(self, account_id: UUID) -> bool:
        try:
            await self.commit(StoreChangeSet(removed_ids=[account_id]))
        except NotFoundError:
            return False
        return True

    async def append_history(self, entry: HistoryEntry) -> bool:
        await self.commit(StoreChangeSet(history=[entry]))
        return True

    async def list_history(self) -> list[HistoryEntry]:
        try:
            sheet = self._client.get_history_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get history: {e}")

        return [row_to_entry(row) for row in all_rows if row and row[0]]

    def _check(self, changes: StoreChangeSet, index: dict[str, int]) -> None:
        """Refuse a change set that names a duplicate or missing id."""
        for account in changes.added:
            if str(account.id) in index:
                raise DuplicateError(f"Account id already used: {account.id}")
        for account in changes.updated:
            if str(account.id) not in index:
                raise NotFoundError(f"Account not found: {account.id}")
        for account_id in changes.removed_ids:
            if str(account_id) not in index:
                raise NotFoundError(f"Account not found: {account_id}")

    # Write steps re-read the sheet first. A retried step only writes what is missing.

    @_write_retry
    def _append_accounts(self, sheet, accounts: list[Account]) -> None:
        present = self._account_rows(sheet)
        missing = [account for account in accounts if str(account.id) not in present]
        if missing:
            sheet.append_rows(
                [account_to_row(account) for account in missing],
                value_input_option="RAW",
            )

    @_write_retry
    def _update_accounts(self, sheet, accounts: list[Account]) -> None:
        index = self._account_rows(sheet)
        for account in accounts:
            if str(account.id) not in index:
                raise NotFoundError(f"Account not found: {account.id}")

        last_col = len(ACCOUNT_COLUMNS)
        sheet.batch_update([
            {
                "range": (
                    f"{rowcol_to_a1(index[str(account.id)], 1)}:"
                    f"{rowcol_to_a1(index[str(account.id)], last_col)}"
                ),
                "values": [account_to_row(account)],
            }
            for account in accounts
        ])

    @_write_retry
    def _delete_accounts(self, sheet, account_ids: list[UUID]) -> None:
        index = self._account_rows(sheet)
        # Delete bottom-up so earlier indexes stay valid; rows already gone are skipped
        for row_idx in sorted(
            (index[str(account_id)] for account_id in account_ids if str(account_id) in index),
            reverse=True,
        ):
            sheet.delete_rows(row_idx)

    @_write_retry
    def _append_history(self, sheet, entries: list[HistoryEntry]) -> None:
        present = {row[0] for row in sheet.get_all_values()[1:] if row and row[0]}
        missing = [entry for entry in entries if str(entry.entry_id) not in present]
        if missing:
            sheet.append_rows(
                [entry.to_sheets_row() for entry in missing],
                value_input_option="RAW",
            )

    async def commit(self, changes: StoreChangeSet) -> None:
        """
        Write a change set in dependency order.

        Every id is checked before the first write. A transient failure
        retries only the step that failed.
        """
        try:
            if changes.mutates_accounts:
                sheet = self._client.get_accounts_sheet()
                self._check(changes, self._account_rows(sheet))

                if changes.added:
                    self._append_accounts(sheet, changes.added)
                if changes.updated:
                    self._update_accounts(sheet, changes.updated)
                if changes.removed_ids:
                    self._delete_accounts(sheet, changes.removed_ids)

            if changes.history:
                self._append_history(self._client.get_history_sheet(), changes.history)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to commit changes: {e}")
