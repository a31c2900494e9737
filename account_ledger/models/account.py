"""
Core Data Models for Account Ledger

These models define the strict schemas for everything flowing through the
reconciliation core:
1. Persistent accounts (what the store holds)
2. Transient candidates and diagnostics (what the parser produces)
3. Tagged outcome variants (what the matcher, updater and merge engine return)

DESIGN DECISION: Every non-applied outcome is an explicit variant with a
`kind` discriminator instead of a nullable field. Callers branch on `kind`
and every variant carries enough context for an operator to act on it.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC instant (naive values are UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_midnight(day: date) -> datetime:
    """UTC midnight of a calendar date."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountCategory(str, Enum):
    """
    Account categories, one per statement section.

    UNCATEGORIZED is assigned to candidates that appear before any
    section header.
    """
    CASH = "cash"
    INVESTMENT = "investment"
    REAL_ESTATE = "real_estate"
    LIABILITY = "liability"
    UNCATEGORIZED = "uncategorized"

    @property
    def is_liability(self) -> bool:
        return self is AccountCategory.LIABILITY


class DiagnosticCode(str, Enum):
    """Reasons a line was skipped, flagged or interpreted specially."""
    EMPTY_INPUT = "empty_input"
    ZERO_BALANCE_ARTIFACT = "zero_balance_artifact"
    UNPARSEABLE_AMOUNT = "unparseable_amount"
    UNCATEGORIZED_ACCOUNT = "uncategorized_account"
    ORPHAN_VALUE = "orphan_value"
    UNRECOGNIZED_LINE = "unrecognized_line"


class MatchTier(int, Enum):
    """Matcher tiers, in the order they are attempted."""
    EXACT = 1
    SUBSTRING = 2
    NORMALIZED = 3


class StaleReason(str, Enum):
    """Why a balance update was not applied."""
    OLDER_THAN_STORED = "older_than_stored"
    NOT_NEWER = "not_newer"


class AmbiguityReason(str, Enum):
    """Why a candidate could not be assigned to a single account."""
    TIED_MATCHES = "tied_matches"
    DUPLICATE_IN_BATCH = "duplicate_in_batch"


# =============================================================================
# CORE ACCOUNT MODEL
# =============================================================================

class Account(BaseModel):
    """
    A persisted account.

    `name` is the matching identity. `display_name` is cosmetic and is
    NEVER consulted by the matcher.

    INVARIANT: `previous_names` never contains `name`, holds no duplicates,
    and only grows for the lifetime of the account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Opaque, stable account identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Matching identity, usually OCR-derived"
    )
    display_name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Cosmetic name shown to the user"
    )
    category: AccountCategory = Field(
        ...,
        description="Statement section the account belongs to"
    )
    current_value: Decimal = Field(
        default=Decimal("0"),
        description="Latest accepted balance"
    )
    previous_names: list[str] = Field(
        default_factory=list,
        description="Names this account was known by, first occurrence order"
    )
    last_updated: datetime = Field(
        default_factory=utc_now,
        description="As-of instant of the current value (UTC)"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the account was created (UTC)"
    )
    notes: str = Field(
        default="",
        max_length=2000,
    )
    institution: Optional[str] = None
    account_subtype: Optional[str] = None

    @field_validator("last_updated", "created_at")
    @classmethod
    def normalize_instants(cls, v: datetime) -> datetime:
        return to_utc(v)

    @field_validator("display_name")
    @classmethod
    def blank_display_name_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def validate_previous_names(self) -> "Account":
        """Enforce the previous-names invariant."""
        if self.name in self.previous_names:
            raise ValueError("previous_names must not contain the current name")
        if len(set(self.previous_names)) != len(self.previous_names):
            raise ValueError("previous_names must not contain duplicates")
        return self

    @property
    def label(self) -> str:
        """Name to show to a human."""
        return self.display_name or self.name

    @property
    def known_names(self) -> list[str]:
        """Current name followed by every previous name."""
        return [self.name, *self.previous_names]


def fold_names(existing: list[str], incoming: list[str], exclude: str) -> list[str]:
    """
    Append `incoming` names to `existing`, de-duplicated by first occurrence.

    `exclude` (the current name of the receiving account) is never added.
    Existing entries are never reordered or dropped.
    """
    folded = list(existing)
    seen = set(folded)
    for name in incoming:
        if name == exclude or name in seen:
            continue
        folded.append(name)
        seen.add(name)
    return folded


# =============================================================================
# PARSER OUTPUT MODELS
# =============================================================================

class AccountCandidate(BaseModel):
    """
    A parsed account record awaiting matching.

    CRITICAL: This is PROPOSED data from OCR text. It is never persisted
    as-is; it only becomes an Account through reconciliation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    balance: Decimal
    category: AccountCategory = AccountCategory.UNCATEGORIZED

    # Source reference for diagnostics
    line_number: Optional[int] = Field(default=None, ge=1)
    source_line: Optional[str] = None

    # Metadata lines that followed the account line
    institution: Optional[str] = None
    account_subtype: Optional[str] = None
    last_synced: Optional[str] = Field(
        default=None,
        description="Relative-age string as printed, e.g. '2 days ago'"
    )
    metadata: list[str] = Field(default_factory=list)


class ParseDiagnostic(BaseModel):
    """A per-line, non-fatal parser finding."""

    line_number: Optional[int] = None
    line: str = ""
    code: DiagnosticCode
    message: str
    severity: str = Field(
        default="warning",
        pattern="^(error|warning|info)$",
    )


class CategoryGroup(BaseModel):
    """Candidates of one statement section."""

    category: AccountCategory
    candidates: list[AccountCandidate] = Field(default_factory=list)
    stated_total: Optional[Decimal] = Field(
        default=None,
        description="Section subtotal printed next to the header"
    )

    @property
    def computed_total(self) -> Decimal:
        return sum((c.balance for c in self.candidates), Decimal("0"))


class ParseResult(BaseModel):
    """Everything the parser produced from one text block."""

    candidates: list[AccountCandidate] = Field(default_factory=list)
    diagnostics: list[ParseDiagnostic] = Field(default_factory=list)
    net_worth: Decimal = Decimal("0")
    stated_net_worth: Optional[Decimal] = None
    groups: dict[AccountCategory, CategoryGroup] = Field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == "error" for d in self.diagnostics)


# =============================================================================
# MATCHER OUTCOMES
# =============================================================================

class MatchFound(BaseModel):
    kind: Literal["matched"] = "matched"
    candidate: AccountCandidate
    account: Account
    tier: MatchTier


class NoMatch(BaseModel):
    kind: Literal["no_match"] = "no_match"
    candidate: AccountCandidate


class AmbiguousMatch(BaseModel):
    """
    The candidate fits more than one account (or an account already claimed
    by an earlier candidate of the same batch). Requires a human decision.
    """
    kind: Literal["ambiguous"] = "ambiguous"
    candidate: AccountCandidate
    tier: MatchTier
    reason: AmbiguityReason = AmbiguityReason.TIED_MATCHES
    account_ids: list[UUID]
    account_names: list[str]
    # What the earlier line of the batch did to the account (duplicates only)
    earlier_outcome: Optional[Literal["created", "updated", "rejected_stale"]] = None

    @property
    def message(self) -> str:
        names = ", ".join(self.account_names)
        if self.reason == AmbiguityReason.DUPLICATE_IN_BATCH:
            earlier = {
                "created": "created",
                "updated": "already updated",
                "rejected_stale": "tried to update with a stale balance",
            }.get(self.earlier_outcome, "already claimed")
            return (
                f"'{self.candidate.name}' matches {names}, which an earlier line "
                f"of this statement {earlier}"
            )
        return f"'{self.candidate.name}' matches several accounts equally well: {names}"


MatchOutcome = Annotated[
    Union[MatchFound, NoMatch, AmbiguousMatch],
    Field(discriminator="kind"),
]


# =============================================================================
# UPDATER OUTCOMES
# =============================================================================

class BalanceApplied(BaseModel):
    kind: Literal["applied"] = "applied"
    account: Account
    previous_value: Decimal
    new_value: Decimal
    as_of: datetime


class StaleRejection(BaseModel):
    """A balance that was not applied because the store holds newer data."""
    kind: Literal["stale"] = "stale"
    account_id: UUID
    account_name: str
    candidate_name: str
    attempted_value: Decimal
    stored_value: Decimal
    as_of: datetime
    last_updated: datetime
    reason: StaleReason

    @property
    def message(self) -> str:
        if self.reason == StaleReason.NOT_NEWER:
            return (
                f"'{self.account_name}' already holds {self.stored_value} "
                f"as of {self.as_of.date().isoformat()}"
            )
        return (
            f"'{self.account_name}' was updated {self.last_updated.isoformat()}, "
            f"after the statement date {self.as_of.date().isoformat()}"
        )


BalanceOutcome = Annotated[
    Union[BalanceApplied, StaleRejection],
    Field(discriminator="kind"),
]


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single reason a requested operation was refused."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'future_date', 'not_found', 'too_few')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


# =============================================================================
# OPERATION RESULTS
# =============================================================================

class ReconcileResult(BaseModel):
    """Per-candidate outcomes of one reconciliation batch."""

    as_of: datetime
    updated: list[BalanceApplied] = Field(default_factory=list)
    created: list[Account] = Field(default_factory=list)
    rejected_stale: list[StaleRejection] = Field(default_factory=list)
    ambiguous: list[AmbiguousMatch] = Field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.updated) + len(self.created)

    @property
    def needs_attention(self) -> bool:
        return bool(self.rejected_stale or self.ambiguous)


# =============================================================================
# QUERY RESULT MODELS
# =============================================================================

class CategorySummary(BaseModel):
    """Totals for one category of the current portfolio."""

    category: AccountCategory
    total: Decimal = Decimal("0")
    account_count: int = 0
    allocation_percent: Optional[Decimal] = Field(
        default=None,
        description="Share of total assets; None for liabilities"
    )


class PortfolioSummary(BaseModel):
    """Snapshot of the whole store."""

    categories: dict[AccountCategory, CategorySummary] = Field(default_factory=dict)
    total_assets: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")
    account_count: int = 0


class BalancePoint(BaseModel):
    """A value observed at an as-of instant."""

    as_of: datetime
    value: Decimal
