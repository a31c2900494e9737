"""Query execution package."""

from account_ledger.queries.executor import LedgerQueries, QueryExecutionError

__all__ = ["LedgerQueries", "QueryExecutionError"]
