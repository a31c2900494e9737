"""
Request Validation

DESIGN DECISION: Every operator or batch request is validated in full
before anything is mutated. A request that fails validation raises
ValidationError carrying every issue found, and the store is left exactly
as it was.

What is validated here:
- As-of dates (a statement cannot be dated after today)
- Merge requests (at least two distinct, existing accounts)
- Operator renames (non-empty, not a name the account already had)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can correct and resubmit.
"""

from datetime import date, datetime, timezone
from typing import Iterable, Mapping, Optional
from uuid import UUID

from account_ledger.models.account import Account, ValidationIssue


class ValidationError(Exception):
    """A request was refused before any mutation took place."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))

    @property
    def issue_types(self) -> list[str]:
        return [issue.issue_type for issue in self.issues]


def utc_today() -> date:
    """Current calendar date in UTC."""
    return datetime.now(timezone.utc).date()


class LedgerValidator:
    """Validates requests against a snapshot of the store."""

    def validate_as_of_date(
        self,
        as_of: Optional[date],
        today: Optional[date] = None,
    ) -> date:
        """
        Resolve and check the as-of date of a batch.

        Returns:
            The as-of date to use (today when none was given).

        Raises:
            ValidationError: If the date is after today.
        """
        today = today or utc_today()
        if as_of is None:
            return today
        if isinstance(as_of, datetime):
            as_of = as_of.date()

        if as_of > today:
            raise ValidationError([ValidationIssue(
                field="as_of_date",
                issue_type="future_date",
                message=f"As-of date {as_of.isoformat()} is after today ({today.isoformat()})",
                suggested_fix="Use the date printed on the statement",
            )])
        return as_of

    def validate_merge_request(
        self,
        account_ids: Iterable[UUID],
        accounts: Mapping[UUID, Account],
    ) -> list[UUID]:
        """
        Check a merge request.

        Returns:
            The distinct requested ids, in first-seen order.

        Raises:
            ValidationError: Fewer than two distinct ids, or unknown ids.
        """
        distinct: list[UUID] = []
        for account_id in account_ids:
            if account_id not in distinct:
                distinct.append(account_id)

        issues = []
        if len(distinct) < 2:
            issues.append(ValidationIssue(
                field="account_ids",
                issue_type="too_few",
                message=f"A merge needs at least 2 distinct accounts, got {len(distinct)}",
                suggested_fix="Select every duplicate account to merge",
            ))

        missing = [account_id for account_id in distinct if account_id not in accounts]
        for account_id in missing:
            issues.append(ValidationIssue(
                field="account_ids",
                issue_type="not_found",
                message=f"Account {account_id} does not exist",
                suggested_fix="Refresh the account list and select again",
            ))

        if issues:
            raise ValidationError(issues)
        return distinct

    def validate_rename(self, account: Account, new_name: str) -> str:
        """
        Check an operator name correction.

        Returns:
            The trimmed new name.

        Raises:
            ValidationError: Empty name, or a name the account already had.
        """
        cleaned = (new_name or "").strip()
        if not cleaned:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="missing",
                message="Account name cannot be empty",
            )])
        if cleaned in account.previous_names:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="previous_name",
                message=f"'{cleaned}' is already a previous name of '{account.name}'",
                suggested_fix="Set a display name instead; previous names are kept permanently",
            )])
        return cleaned
