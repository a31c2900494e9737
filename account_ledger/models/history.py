"""
History (Audit) Models for Account Ledger

Every store mutation produces exactly one history entry. Stale balance
rejections are recorded as well, so the history is a full causal trail of
what was applied and what was refused.

DESIGN DECISION: History is append-only. Entries are frozen models; nothing
in the package edits or deletes them once written.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from account_ledger.models.account import (
    Account,
    AccountCategory,
    StaleRejection,
    to_utc,
    utc_now,
)


class HistoryEntryType(str, Enum):
    """Types of account-affecting operations we record."""
    # Reconciliation
    ACCOUNT_CREATED = "account_created"
    BALANCE_UPDATED = "balance_updated"
    BALANCE_REJECTED_STALE = "balance_rejected_stale"

    # Operator actions
    ACCOUNTS_MERGED = "accounts_merged"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNT_RENAMED = "account_renamed"
    DISPLAY_NAME_UPDATED = "display_name_updated"
    NOTES_UPDATED = "notes_updated"


# Entry types that carry a balance observation for the account
BALANCE_ENTRY_TYPES = frozenset({
    HistoryEntryType.ACCOUNT_CREATED,
    HistoryEntryType.BALANCE_UPDATED,
})


class HistoryEntry(BaseModel):
    """
    A single immutable history entry.

    `account_id` is the primary account (the survivor for merges);
    `account_ids` lists every account the operation touched.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the operation was committed (UTC)"
    )
    type: HistoryEntryType
    account_id: Optional[UUID] = None
    account_ids: list[UUID] = Field(default_factory=list)
    category: Optional[AccountCategory] = None
    description: str = Field(..., max_length=500)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Type-specific, JSON-serializable details"
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    def touches(self, account_id: UUID) -> bool:
        return self.account_id == account_id or account_id in self.account_ids

    @property
    def as_of(self) -> Optional[datetime]:
        """As-of instant of a balance observation, when the entry has one."""
        raw = self.payload.get("as_of")
        return to_utc(datetime.fromisoformat(raw)) if raw else None

    @property
    def value(self) -> Optional[Decimal]:
        """Balance recorded by a balance observation, when the entry has one."""
        raw = self.payload.get("new_value")
        return Decimal(raw) if raw is not None else None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "entry_id": str(self.entry_id),
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "account_id": str(self.account_id) if self.account_id else None,
            "account_ids": [str(i) for i in self.account_ids],
            "category": self.category.value if self.category else None,
            "description": self.description,
            "payload": self.payload,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [entry_id, timestamp, type, account_id, account_ids_json, category,
         description, payload_json]
        """
        return [
            str(self.entry_id),
            self.timestamp.isoformat(),
            self.type.value,
            str(self.account_id) if self.account_id else "",
            json.dumps([str(i) for i in self.account_ids]),
            self.category.value if self.category else "",
            self.description,
            json.dumps(self.payload) if self.payload else "",
        ]


class HistoryEntryBuilder:
    """
    Helper class to build history entries for each operation.

    Usage:
        entry = HistoryEntryBuilder.account_created(account)
        entry = HistoryEntryBuilder.accounts_merged(ids, survivor, removed, names)

    Decimals and instants are stored as strings in the payload so entries
    round-trip through JSON unchanged.
    """

    @staticmethod
    def account_created(
        account: Account,
        source_line: Optional[str] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.ACCOUNT_CREATED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=f"Account created: {account.name}",
            payload={
                "name": account.name,
                "new_value": str(account.current_value),
                "as_of": account.last_updated.isoformat(),
                "source_line": source_line,
            },
        )

    @staticmethod
    def balance_updated(
        account: Account,
        previous_value: Decimal,
        previous_updated: datetime,
        candidate_name: Optional[str] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.BALANCE_UPDATED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=(
                f"Balance updated: {account.name} "
                f"{previous_value} -> {account.current_value}"
            ),
            payload={
                "name": account.name,
                "candidate_name": candidate_name,
                "previous_value": str(previous_value),
                "new_value": str(account.current_value),
                "previous_updated": previous_updated.isoformat(),
                "as_of": account.last_updated.isoformat(),
            },
        )

    @staticmethod
    def balance_rejected_stale(
        rejection: StaleRejection,
        category: Optional[AccountCategory] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.BALANCE_REJECTED_STALE,
            account_id=rejection.account_id,
            account_ids=[rejection.account_id],
            category=category,
            description=f"Stale balance rejected: {rejection.account_name}",
            payload={
                "name": rejection.account_name,
                "candidate_name": rejection.candidate_name,
                "attempted_value": str(rejection.attempted_value),
                "stored_value": str(rejection.stored_value),
                "attempted_as_of": rejection.as_of.isoformat(),
                "last_updated": rejection.last_updated.isoformat(),
                "reason": rejection.reason.value,
            },
        )

    @staticmethod
    def accounts_merged(
        input_ids: list[UUID],
        survivor: Account,
        removed_ids: list[UUID],
        absorbed_names: list[str],
    ) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.ACCOUNTS_MERGED,
            account_id=survivor.id,
            account_ids=list(input_ids),
            category=survivor.category,
            description=(
                f"Merged {len(removed_ids)} account(s) into {survivor.name}"
            ),
            payload={
                "merged_account_ids": [str(i) for i in input_ids],
                "survivor_id": str(survivor.id),
                "survivor_name": survivor.name,
                "removed_ids": [str(i) for i in removed_ids],
                "absorbed_names": list(absorbed_names),
            },
        )

    @staticmethod
    def account_deleted(account: Account) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.ACCOUNT_DELETED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=f"Account deleted: {account.name}",
            payload={
                "name": account.name,
                "previous_names": list(account.previous_names),
                "last_value": str(account.current_value),
            },
        )

    @staticmethod
    def account_renamed(account: Account, old_name: str) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.ACCOUNT_RENAMED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=f"Account renamed: {old_name} -> {account.name}",
            payload={
                "old_name": old_name,
                "new_name": account.name,
            },
        )

    @staticmethod
    def display_name_updated(
        account: Account,
        old_display_name: Optional[str],
    ) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.DISPLAY_NAME_UPDATED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=f"Display name updated: {account.name}",
            payload={
                "old_display_name": old_display_name,
                "new_display_name": account.display_name,
            },
        )

    @staticmethod
    def notes_updated(account: Account) -> HistoryEntry:
        return HistoryEntry(
            type=HistoryEntryType.NOTES_UPDATED,
            account_id=account.id,
            account_ids=[account.id],
            category=account.category,
            description=f"Notes updated: {account.name}",
            payload={"notes": account.notes},
        )


class MergeResult(BaseModel):
    """Outcome of a successful merge."""

    survivor: Account
    absorbed_names: list[str]
    removed_ids: list[UUID]
    history_entry: HistoryEntry
