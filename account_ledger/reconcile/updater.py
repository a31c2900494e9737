"""
Balance Updater

Applies a statement balance to a matched account under the time-ordering
rule: a balance is only applied when its as-of instant (UTC midnight of the
statement date) is at or after the account's `last_updated` instant.

A refused balance is NOT an error. It comes back as a StaleRejection plus a
`balance_rejected_stale` history entry, so the caller can report it and keep
processing the rest of the batch.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from account_ledger.models.account import (
    Account,
    BalanceApplied,
    BalanceOutcome,
    StaleReason,
    StaleRejection,
    to_utc,
    utc_midnight,
)
from account_ledger.models.history import HistoryEntry, HistoryEntryBuilder


class BalanceUpdater:
    """
    Pure balance-update rules.

    The updater never touches a store. It returns the updated account copy
    and the history entry; committing both is the caller's job.
    """

    @staticmethod
    def as_of_instant(as_of: date) -> datetime:
        """UTC midnight of the as-of calendar date."""
        if isinstance(as_of, datetime):
            as_of = as_of.date()
        return utc_midnight(as_of)

    def apply(
        self,
        account: Account,
        value: Decimal,
        as_of: datetime,
        candidate_name: Optional[str] = None,
    ) -> tuple[BalanceOutcome, HistoryEntry]:
        """
        Apply `value` to `account` as of `as_of`.

        Returns:
            (outcome, history_entry) - outcome is BalanceApplied carrying the
            updated copy of the account, or StaleRejection when the stored
            data is newer. Re-applying the exact stored state (same instant,
            same value) is rejected as NOT_NEWER, which keeps repeated
            uploads of one statement idempotent.
        """
        as_of = to_utc(as_of)
        candidate_name = candidate_name or account.name

        reason: Optional[StaleReason] = None
        if as_of < account.last_updated:
            reason = StaleReason.OLDER_THAN_STORED
        elif as_of == account.last_updated and value == account.current_value:
            reason = StaleReason.NOT_NEWER

        if reason is not None:
            rejection = StaleRejection(
                account_id=account.id,
                account_name=account.name,
                candidate_name=candidate_name,
                attempted_value=value,
                stored_value=account.current_value,
                as_of=as_of,
                last_updated=account.last_updated,
                reason=reason,
            )
            entry = HistoryEntryBuilder.balance_rejected_stale(
                rejection, category=account.category
            )
            return rejection, entry

        updated = account.model_copy(
            deep=True,
            update={"current_value": value, "last_updated": as_of},
        )
        entry = HistoryEntryBuilder.balance_updated(
            updated,
            previous_value=account.current_value,
            previous_updated=account.last_updated,
            candidate_name=candidate_name,
        )
        applied = BalanceApplied(
            account=updated,
            previous_value=account.current_value,
            new_value=value,
            as_of=as_of,
        )
        return applied, entry
