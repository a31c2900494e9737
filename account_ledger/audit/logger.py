"""
Audit Logger

DESIGN DECISION: Every committed ledger change is mirrored to the
structured log. This provides:
1. Complete traceability alongside the stored history
2. Debugging capability
3. A place for operational events that are not ledger changes
   (parse summaries, refused merges)

The durable history is written by the store as part of each commit.
The audit logger only mirrors it, so a logging failure can never lose
or duplicate ledger state:
- It is async to match the service flow
- It gracefully handles failures (never raises into the caller)
- It supports correlation IDs to trace the events of one operation
"""

from typing import Iterable, Optional
from uuid import UUID, uuid4

import structlog

from account_ledger.models.account import ParseResult, ReconcileResult
from account_ledger.models.history import HistoryEntry, HistoryEntryType


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Mirrors history entries and operational events to the structured log.
    """

    def __init__(self, logger_name: str = "account_ledger.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def log(
        self,
        entry: HistoryEntry,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Log one history entry.

        Stale rejections are logged at warning level, everything else at info.
        Returns False if the log write failed.
        """
        try:
            log_dict = entry.to_log_dict()
            if correlation_id is not None:
                log_dict["correlation_id"] = str(correlation_id)

            if entry.type == HistoryEntryType.BALANCE_REJECTED_STALE:
                self._logger.warning("history_entry", **log_dict)
            else:
                self._logger.info("history_entry", **log_dict)
            return True
        except Exception as e:
            # Log failure but don't raise
            self._log_failure("history_entry", e, entry_id=str(entry.entry_id))
            return False

    async def log_committed(
        self,
        entries: Iterable[HistoryEntry],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Log every entry of a committed change set. Returns how many were logged."""
        logged = 0
        for entry in entries:
            if await self.log(entry, correlation_id=correlation_id):
                logged += 1
        return logged

    async def log_parse_summary(
        self,
        result: ParseResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of parsing one statement text."""
        try:
            self._logger.info(
                "statement_parsed",
                candidate_count=len(result.candidates),
                diagnostic_count=len(result.diagnostics),
                diagnostic_codes=sorted({d.code.value for d in result.diagnostics}),
                net_worth=str(result.net_worth),
                stated_net_worth=(
                    str(result.stated_net_worth)
                    if result.stated_net_worth is not None else None
                ),
                correlation_id=str(correlation_id) if correlation_id else None,
            )
        except Exception as e:
            self._log_failure("statement_parsed", e)

    async def log_reconcile_summary(
        self,
        result: ReconcileResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the counts of one reconciliation batch."""
        try:
            log = self._logger.warning if result.needs_attention else self._logger.info
            log(
                "reconcile_completed",
                as_of=result.as_of.isoformat(),
                updated=len(result.updated),
                created=len(result.created),
                rejected_stale=len(result.rejected_stale),
                ambiguous=len(result.ambiguous),
                correlation_id=str(correlation_id) if correlation_id else None,
            )
        except Exception as e:
            self._log_failure("reconcile_completed", e)

    async def log_request_rejected(
        self,
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a request refused by validation (nothing was changed)."""
        try:
            self._logger.warning(
                "request_rejected",
                operation=operation,
                issues=issues,
                correlation_id=str(correlation_id) if correlation_id else None,
            )
        except Exception as e:
            self._log_failure("request_rejected", e)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error that aborted an operation."""
        try:
            self._logger.error(
                "operation_failed",
                error_type=error_type,
                error_message=error_message,
                details=details or {},
                correlation_id=str(correlation_id) if correlation_id else None,
            )
        except Exception as e:
            self._log_failure("operation_failed", e)

    def _log_failure(self, failed_event: str, error: Exception, **fields) -> None:
        """Report a log call that failed. Gives up quietly if logging itself is broken."""
        try:
            self._logger.error(
                "audit_log_failed",
                failed_event=failed_event,
                error=str(error),
                **fields,
            )
        except Exception:
            return


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new operation (e.g., a statement upload).
    Pass it through all subsequent log calls.
    """
    return uuid4()
