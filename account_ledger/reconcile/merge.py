"""
Merge Engine

Consolidates operator-selected duplicate accounts into one survivor.

Algorithm:
1. Validate: at least two distinct ids, every id exists.
2. Survivor = the account with the most recent `last_updated`. Exact ties
   go to the earliest `created_at`, then to the lowest id. The ordering does
   not depend on the order the ids were given in, so any permutation of the
   same set yields the same survivor.
3. Every non-survivor contributes its name and then its previous names, in
   request order, to the survivor's `previous_names` (first occurrence wins,
   the survivor's own name is never added).
4. Non-survivors are removed. One `accounts_merged` history entry is written.

The engine only plans the merge on copies. The caller commits the plan as
one change set, so either everything is applied or nothing is.
"""

from typing import Iterable, Mapping, Optional
from uuid import UUID

from account_ledger.models.account import Account, fold_names
from account_ledger.models.history import HistoryEntryBuilder, MergeResult
from account_ledger.validation import LedgerValidator


def survivor_sort_key(account: Account) -> tuple:
    """Sort key that puts the survivor first."""
    return (-account.last_updated.timestamp(), account.created_at, str(account.id))


class MergeEngine:
    """Plans merges of duplicate accounts."""

    def __init__(self, validator: Optional[LedgerValidator] = None):
        self._validator = validator or LedgerValidator()

    @staticmethod
    def select_survivor(members: Iterable[Account]) -> Account:
        return min(members, key=survivor_sort_key)

    def plan(
        self,
        account_ids: Iterable[UUID],
        accounts: Mapping[UUID, Account],
    ) -> MergeResult:
        """
        Plan a merge against a snapshot of the store.

        Args:
            account_ids: Ids selected by the operator
            accounts: Snapshot of the store keyed by id

        Returns:
            MergeResult with the updated survivor copy, the names it
            absorbed, the ids to remove and the history entry to append.

        Raises:
            ValidationError: If the request is invalid (nothing is planned)
        """
        requested = self._validator.validate_merge_request(account_ids, accounts)
        members = [accounts[account_id] for account_id in requested]

        survivor = self.select_survivor(members)
        absorbed: list[str] = []
        for member in members:
            if member.id == survivor.id:
                continue
            absorbed = fold_names(absorbed, member.known_names, exclude=survivor.name)

        merged = survivor.model_copy(
            deep=True,
            update={
                "previous_names": fold_names(
                    survivor.previous_names, absorbed, exclude=survivor.name
                ),
            },
        )
        removed_ids = [member.id for member in members if member.id != survivor.id]

        entry = HistoryEntryBuilder.accounts_merged(
            input_ids=requested,
            survivor=merged,
            removed_ids=removed_ids,
            absorbed_names=absorbed,
        )
        return MergeResult(
            survivor=merged,
            absorbed_names=absorbed,
            removed_ids=removed_ids,
            history_entry=entry,
        )
