"""Balance updates and account merges."""

from account_ledger.reconcile.merge import MergeEngine, survivor_sort_key
from account_ledger.reconcile.updater import BalanceUpdater

__all__ = ["BalanceUpdater", "MergeEngine", "survivor_sort_key"]
