"""
Main Orchestrator for Account Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Statement reconciliation (text → parse → match → update/create → commit)
2. Merge (operator-selected duplicates → survivor → commit)
3. Operator maintenance (rename, display name, notes, balance, delete)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every mutation runs under one asyncio.Lock (single writer)
- Each operation reads one snapshot, computes everything on copies and
  hands the store ONE change set, so it is applied in full or not at all
- Requests are validated before anything is mutated
- Nothing is reported as done until the store commit has returned
- Every committed history entry is mirrored to the audit log

This is the "glue" that ensures the ledger is never duplicated or
silently corrupted, even when statements arrive concurrently.
"""

import asyncio
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

from account_ledger.audit import AuditLogger, create_correlation_id
from account_ledger.config import get_settings
from account_ledger.matching import AccountMatcher
from account_ledger.models.account import (
    Account,
    AccountCandidate,
    AmbiguityReason,
    AmbiguousMatch,
    BalanceApplied,
    BalanceOutcome,
    ParseResult,
    ReconcileResult,
    StaleRejection,
    fold_names,
    utc_now,
)
from account_ledger.models.history import (
    HistoryEntry,
    HistoryEntryBuilder,
    MergeResult,
)
from account_ledger.parsing import StatementTextParser
from account_ledger.queries import LedgerQueries
from account_ledger.reconcile import BalanceUpdater, MergeEngine
from account_ledger.services.storage import (
    AccountStorageInterface,
    GoogleSheetsAccountStore,
    GoogleSheetsClient,
    InMemoryAccountStore,
    NotFoundError,
    StoreChangeSet,
)
from account_ledger.validation import LedgerValidator, ValidationError


def _revise(account: Account, **changes) -> Account:
    """Validated copy of `account` with `changes` applied."""
    return Account.model_validate({**account.model_dump(), **changes})


class LedgerService:
    """
    The single entry point for changing the ledger.

    Flow of a reconciliation batch:
    1. Validate → the as-of date must not be in the future (whole batch)
    2. Snapshot → read all accounts under the write lock
    3. Match → each candidate against the working snapshot
    4. Update/Create → stale balances are rejected, never applied
    5. Commit → one change set, then log

    Ambiguous matches are reported and left for a human. The service
    NEVER picks one of several equally good accounts.
    """

    def __init__(
        self,
        storage: AccountStorageInterface,
        matcher: Optional[AccountMatcher] = None,
        updater: Optional[BalanceUpdater] = None,
        merge_engine: Optional[MergeEngine] = None,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        parser: Optional[StatementTextParser] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._matcher = matcher or AccountMatcher()
        self._updater = updater or BalanceUpdater()
        self._validator = validator or LedgerValidator()
        self._merge_engine = merge_engine or MergeEngine(self._validator)
        self._audit_logger = audit_logger or AuditLogger()
        self._parser = parser
        self._clock = clock
        self._queries = LedgerQueries(storage)
        self._write_lock = asyncio.Lock()

    @property
    def queries(self) -> LedgerQueries:
        return self._queries

    def _today(self) -> date:
        return self._clock().date()

    async def _validate_as_of(
        self,
        operation: str,
        as_of_date: Optional[date],
        correlation_id: UUID,
    ) -> datetime:
        """Resolve the as-of instant, or log and raise if the date is refused."""
        try:
            as_of = self._validator.validate_as_of_date(as_of_date, today=self._today())
        except ValidationError as e:
            await self._log_rejection(operation, e, correlation_id)
            raise
        return self._updater.as_of_instant(as_of)

    async def _log_rejection(
        self,
        operation: str,
        error: ValidationError,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_request_rejected(
            operation=operation,
            issues=[issue.model_dump() for issue in error.issues],
            correlation_id=correlation_id,
        )

    async def _commit(
        self,
        operation: str,
        changes: StoreChangeSet,
        correlation_id: UUID,
    ) -> None:
        """Commit a change set. Failures are logged and re-raised."""
        if changes.is_empty:
            return
        try:
            await self._storage.commit(changes)
        except Exception as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation},
                correlation_id=correlation_id,
            )
            raise

    async def _require_account(self, account_id: UUID) -> Account:
        account = await self._storage.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    # =========================================================================
    # PARSING & RECONCILIATION
    # =========================================================================

    def parse_text(self, text: str) -> ParseResult:
        """Parse statement text. Pure; never touches the store."""
        if self._parser is None:
            self._parser = StatementTextParser()
        return self._parser.parse(text)

    async def reconcile(
        self,
        candidates: Iterable[AccountCandidate],
        as_of_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ReconcileResult:
        """
        Reconcile a batch of candidates against the store.

        Args:
            candidates: Parsed candidates, in statement order
            as_of_date: Statement date (defaults to today, UTC)

        Returns:
            ReconcileResult with one outcome per candidate.

        Raises:
            ValidationError: If the as-of date is in the future. Nothing is
                             changed and no candidate is processed.
            StorageError: If the commit fails. Nothing is reported as applied.
        """
        correlation_id = correlation_id or create_correlation_id()
        candidates = list(candidates)
        as_of = await self._validate_as_of("reconcile", as_of_date, correlation_id)

        result = ReconcileResult(as_of=as_of)
        history: list[HistoryEntry] = []

        async with self._write_lock:
            snapshot: dict[UUID, Account] = {
                account.id: account for account in await self._storage.list_accounts()
            }
            added: dict[UUID, Account] = {}
            updated: dict[UUID, Account] = {}
            # account id -> what an earlier line of this batch did to it
            touched: dict[UUID, str] = {}

            for candidate in candidates:
                outcome = self._matcher.match(candidate, snapshot.values())

                if outcome.kind == "ambiguous":
                    result.ambiguous.append(outcome)
                    continue

                if outcome.kind == "no_match":
                    account = Account(
                        name=candidate.name,
                        category=candidate.category,
                        current_value=candidate.balance,
                        last_updated=as_of,
                        created_at=self._clock(),
                        institution=candidate.institution,
                        account_subtype=candidate.account_subtype,
                    )
                    snapshot[account.id] = account
                    added[account.id] = account
                    touched[account.id] = "created"
                    history.append(HistoryEntryBuilder.account_created(
                        account, source_line=candidate.source_line
                    ))
                    result.created.append(account)
                    continue

                account = outcome.account
                if account.id in touched:
                    # A second line of the same statement claims this account
                    result.ambiguous.append(AmbiguousMatch(
                        candidate=candidate,
                        tier=outcome.tier,
                        reason=AmbiguityReason.DUPLICATE_IN_BATCH,
                        account_ids=[account.id],
                        account_names=[account.name],
                        earlier_outcome=touched[account.id],
                    ))
                    continue

                balance, entry = self._updater.apply(
                    account, candidate.balance, as_of, candidate_name=candidate.name
                )
                history.append(entry)

                if isinstance(balance, StaleRejection):
                    touched[account.id] = "rejected_stale"
                    result.rejected_stale.append(balance)
                    continue

                touched[account.id] = "updated"
                snapshot[account.id] = balance.account
                updated[account.id] = balance.account
                result.updated.append(balance)

            await self._commit(
                "reconcile",
                StoreChangeSet(
                    added=list(added.values()),
                    updated=list(updated.values()),
                    history=history,
                ),
                correlation_id,
            )

        await self._audit_logger.log_committed(history, correlation_id=correlation_id)
        await self._audit_logger.log_reconcile_summary(result, correlation_id=correlation_id)
        return result

    async def process_statement_text(
        self,
        text: str,
        as_of_date: Optional[date] = None,
    ) -> tuple[ParseResult, ReconcileResult]:
        """
        Parse statement text and reconcile its candidates.

        Parsing happens outside the write lock. Parse diagnostics are
        returned as data alongside the reconciliation outcome.
        """
        correlation_id = create_correlation_id()
        parsed = self.parse_text(text)
        await self._audit_logger.log_parse_summary(parsed, correlation_id=correlation_id)

        result = await self.reconcile(
            parsed.candidates,
            as_of_date=as_of_date,
            correlation_id=correlation_id,
        )
        return parsed, result

    # =========================================================================
    # MERGE
    # =========================================================================

    async def merge(self, account_ids: Iterable[UUID]) -> MergeResult:
        """
        Merge operator-selected duplicates into one survivor.

        Raises:
            ValidationError: Fewer than 2 distinct ids or an unknown id.
                             The store is left unchanged.
        """
        correlation_id = create_correlation_id()
        account_ids = list(account_ids)

        async with self._write_lock:
            snapshot = {
                account.id: account for account in await self._storage.list_accounts()
            }
            try:
                plan = self._merge_engine.plan(account_ids, snapshot)
            except ValidationError as e:
                await self._log_rejection("merge", e, correlation_id)
                raise

            await self._commit(
                "merge",
                StoreChangeSet(
                    updated=[plan.survivor],
                    removed_ids=plan.removed_ids,
                    history=[plan.history_entry],
                ),
                correlation_id,
            )

        await self._audit_logger.log(plan.history_entry, correlation_id=correlation_id)
        return plan

    # =========================================================================
    # OPERATOR MAINTENANCE
    # =========================================================================

    async def _revise_account(
        self,
        operation: str,
        account_id: UUID,
        revise: Callable[[Account], Optional[tuple[Account, HistoryEntry]]],
    ) -> Account:
        """
        Apply a single-account revision under the write lock.

        `revise` returns the new account and its history entry, or None
        when the request changes nothing.
        """
        correlation_id = create_correlation_id()
        async with self._write_lock:
            account = await self._require_account(account_id)
            try:
                revision = revise(account)
            except ValidationError as e:
                await self._log_rejection(operation, e, correlation_id)
                raise
            if revision is None:
                return account

            revised, entry = revision
            await self._commit(
                operation,
                StoreChangeSet(updated=[revised], history=[entry]),
                correlation_id,
            )

        await self._audit_logger.log(entry, correlation_id=correlation_id)
        return revised

    async def rename_account(self, account_id: UUID, new_name: str) -> Account:
        """
        Correct an account's name.

        The old name is kept in `previous_names`, so statements using it
        still match.
        """
        def revise(account: Account):
            name = self._validator.validate_rename(account, new_name)
            if name == account.name:
                return None
            renamed = _revise(
                account,
                name=name,
                previous_names=fold_names(
                    account.previous_names, [account.name], exclude=name
                ),
            )
            return renamed, HistoryEntryBuilder.account_renamed(renamed, old_name=account.name)

        return await self._revise_account("rename_account", account_id, revise)

    async def set_display_name(
        self,
        account_id: UUID,
        display_name: Optional[str],
    ) -> Account:
        """Set or clear (None / blank) the cosmetic display name."""
        def revise(account: Account):
            revised = _revise(account, display_name=display_name)
            if revised.display_name == account.display_name:
                return None
            return revised, HistoryEntryBuilder.display_name_updated(
                revised, old_display_name=account.display_name
            )

        return await self._revise_account("set_display_name", account_id, revise)

    async def update_notes(self, account_id: UUID, notes: str) -> Account:
        def revise(account: Account):
            revised = _revise(account, notes=notes or "")
            if revised.notes == account.notes:
                return None
            return revised, HistoryEntryBuilder.notes_updated(revised)

        return await self._revise_account("update_notes", account_id, revise)

    async def set_balance(
        self,
        account_id: UUID,
        value: Decimal,
        as_of_date: Optional[date] = None,
    ) -> BalanceOutcome:
        """
        Manually set one account's balance.

        Follows the same rules as reconciliation: a future date raises
        ValidationError, older data comes back as a StaleRejection.
        """
        correlation_id = create_correlation_id()
        as_of = await self._validate_as_of("set_balance", as_of_date, correlation_id)

        async with self._write_lock:
            account = await self._require_account(account_id)
            outcome, entry = self._updater.apply(account, Decimal(value), as_of)
            updated = [outcome.account] if isinstance(outcome, BalanceApplied) else []
            await self._commit(
                "set_balance",
                StoreChangeSet(updated=updated, history=[entry]),
                correlation_id,
            )

        await self._audit_logger.log(entry, correlation_id=correlation_id)
        return outcome

    async def delete_account(self, account_id: UUID) -> Account:
        """
        Delete one account. Its id is never reused.

        Raises:
            NotFoundError: If the account does not exist
        """
        correlation_id = create_correlation_id()
        async with self._write_lock:
            account = await self._require_account(account_id)
            entry = HistoryEntryBuilder.account_deleted(account)
            await self._commit(
                "delete_account",
                StoreChangeSet(removed_ids=[account.id], history=[entry]),
                correlation_id,
            )

        await self._audit_logger.log(entry, correlation_id=correlation_id)
        return account

    # =========================================================================
    # READS
    # =========================================================================

    async def list_accounts(self) -> list[Account]:
        return await self._storage.list_accounts()

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        return await self._storage.get_account(account_id)

    async def get_history(
        self,
        account_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[HistoryEntry]:
        """History entries, optionally for one account and a commit-time range."""
        return await self._queries.history(account_id=account_id, start=start, end=end)


def create_storage() -> AccountStorageInterface:
    """Build the account store selected by `STORAGE_BACKEND`."""
    if get_settings().app.storage_backend == "google_sheets":
        return GoogleSheetsAccountStore(GoogleSheetsClient())
    return InMemoryAccountStore()


def create_ledger_service(
    storage: Optional[AccountStorageInterface] = None,
) -> LedgerService:
    """
    Factory function to create the ledger service.

    Args:
        storage: Account store to use. Built from settings when None.
    """
    app_settings = get_settings().app
    logging.basicConfig(format="%(message)s", level=app_settings.log_level)

    return LedgerService(
        storage=storage or create_storage(),
        audit_logger=AuditLogger(),
    )
