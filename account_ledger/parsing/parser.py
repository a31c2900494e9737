"""
Statement Text Parser

Turns the raw text of a balance-summary screenshot (as produced by an
external OCR step) into structured account candidates.

Expected shape of the text, repeated per section:

    Cash                                   $10,000     <- header + subtotal
    My Personal Cash Account               $1,000      <- account line
    Individual                                         <- metadata
    Checking                               $1,000
    Chase
    2 days ago

IMPORTANT BOUNDARIES:
1. The parser is a pure function of the text. It never touches a store.
2. It never raises on malformed input. Every line it cannot use becomes a
   ParseDiagnostic and parsing continues with the next line.
3. Section subtotals are recorded on their group, never emitted as accounts.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from account_ledger.config import get_settings
from account_ledger.models.account import (
    AccountCandidate,
    AccountCategory,
    CategoryGroup,
    DiagnosticCode,
    ParseDiagnostic,
    ParseResult,
)


# Section header text (lowercased, whitespace collapsed) -> category
SECTION_HEADERS = {
    "cash": AccountCategory.CASH,
    "investments": AccountCategory.INVESTMENT,
    "investment": AccountCategory.INVESTMENT,
    "real estate": AccountCategory.REAL_ESTATE,
    "liabilities": AccountCategory.LIABILITY,
    "liability": AccountCategory.LIABILITY,
}

# Metadata keywords that describe the account type rather than the institution
SUBTYPE_KEYWORDS = (
    "individual",
    "joint",
    "roth ira",
    "traditional ira",
    "sep ira",
    "ira",
    "employer plan",
    "401k",
    "403b",
    "hsa",
    "trust",
    "custodial",
    "brokerage",
)

# Connection status lines some aggregators print under an account
STATUS_PHRASES = (
    "temporarily down",
    "needs attention",
    "reconnect",
    "syncing",
    "updating",
)

_RELATIVE_AGE = re.compile(
    r"^(?:(?:\d+|an?|one)\s+(?:second|minute|min|hour|hr|day|week|month|year)s?\s+ago"
    r"|just now|today|yesterday)$",
    re.IGNORECASE,
)

# A monetary token at the end of a line. With an explicit '$' any OCR garbage
# up to the end of the line is captured so it can be reported as unparseable.
_AMOUNT = (
    r"[-−]?\(?"
    r"(?:\$\s?[-−]?[0-9A-Za-z][0-9A-Za-z,.]*"
    r"|\d[\d,]*(?:\.\d+)?)"
    r"\)?"
)
_VALUE_LINE = re.compile(rf"^(?P<name>.*?\S)(?P<gap>\s+)(?P<amount>{_AMOUNT})$")
_BARE_VALUE = re.compile(rf"^(?P<amount>{_AMOUNT})$")
_GROUPED_THOUSANDS = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?\)?$")
_ZERO_RUN = re.compile(r"0{2,}")
_PLAIN_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_WHITESPACE = re.compile(r"\s+")
# Dash or colon between an account name and its value
_TRAILING_SEPARATOR = re.compile(r"[\s—–:-]+$")


def parse_currency(raw: str) -> tuple[Decimal, Optional[DiagnosticCode]]:
    """
    Parse a currency string such as "$1,000", "10,000" or "($52.10)".

    Strips '$', whitespace and thousands separators. A leading minus sign or
    surrounding parentheses make the value negative. Commas that do not
    group digits in threes ("1,00", "1.000,00") make the amount unparseable.

    Returns:
        (value, problem) - problem is None for a clean parse. A bare run of
        zeros ("$000") yields 0 with ZERO_BALANCE_ARTIFACT; anything that is
        not a number yields 0 with UNPARSEABLE_AMOUNT.
    """
    text = (raw or "").strip()
    negative = False

    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]
    if text[:1] in ("-", "−"):
        negative = True
        text = text[1:]
    text = text.replace("$", "").strip()
    if text[:1] in ("-", "−"):
        negative = True
        text = text[1:]
    text = _WHITESPACE.sub("", text)

    if _ZERO_RUN.fullmatch(text):
        return Decimal("0"), DiagnosticCode.ZERO_BALANCE_ARTIFACT

    # Commas are only accepted as thousands separators in the usual places
    if "," in text and not _GROUPED_THOUSANDS.fullmatch(text):
        return Decimal("0"), DiagnosticCode.UNPARSEABLE_AMOUNT

    digits = text.replace(",", "")
    if not _PLAIN_NUMBER.fullmatch(digits):
        return Decimal("0"), DiagnosticCode.UNPARSEABLE_AMOUNT

    try:
        value = Decimal(digits)
    except InvalidOperation:
        return Decimal("0"), DiagnosticCode.UNPARSEABLE_AMOUNT

    return (-value if negative else value), None


def header_category(text: str) -> Optional[AccountCategory]:
    """Category for a section header line, or None if it is not a header."""
    key = _WHITESPACE.sub(" ", text.strip().rstrip(":")).lower()
    return SECTION_HEADERS.get(key)


def is_relative_age(text: str) -> bool:
    return bool(_RELATIVE_AGE.match(text.strip()))


class StatementTextParser:
    """
    Line-oriented parser for balance-summary text.

    One instance can parse any number of texts; it holds configuration only.
    """

    def __init__(self, min_column_gap: Optional[int] = None):
        if min_column_gap is None:
            min_column_gap = get_settings().parser.min_column_gap
        self._min_column_gap = min_column_gap

    def _split_value(self, line: str) -> tuple[Optional[str], Optional[str]]:
        """
        Split a line into (name, amount_token).

        Returns (None, token) for a bare value line, (name, token) for an
        account-style line and (None, None) when the line carries no value.
        """
        bare = _BARE_VALUE.match(line)
        if bare:
            return None, bare.group("amount")

        match = _VALUE_LINE.match(line)
        if not match:
            return None, None

        token = match.group("amount")
        has_symbol = "$" in token
        grouped = bool(_GROUPED_THOUSANDS.search(token))
        wide_gap = len(match.group("gap")) >= self._min_column_gap
        if has_symbol or grouped or wide_gap:
            name = _TRAILING_SEPARATOR.sub("", match.group("name"))
            return (name or None), token
        return None, None

    def _amount(
        self,
        token: str,
        line_number: int,
        line: str,
        diagnostics: list[ParseDiagnostic],
        subject: str,
    ) -> Decimal:
        value, problem = parse_currency(token)
        if problem == DiagnosticCode.ZERO_BALANCE_ARTIFACT:
            diagnostics.append(ParseDiagnostic(
                line_number=line_number,
                line=line,
                code=problem,
                message=f"{subject}: '{token}' read as 0; please verify the balance",
                severity="warning",
            ))
        elif problem == DiagnosticCode.UNPARSEABLE_AMOUNT:
            diagnostics.append(ParseDiagnostic(
                line_number=line_number,
                line=line,
                code=problem,
                message=f"{subject}: could not read amount '{token}', using 0",
                severity="error",
            ))
        return value

    def _attach_metadata(self, candidate: AccountCandidate, line: str) -> None:
        """Attach a non-value line to the account line it follows."""
        lowered = line.lower()

        if is_relative_age(line):
            if candidate.last_synced is None:
                candidate.last_synced = line
            else:
                candidate.metadata.append(line)
            return

        if any(lowered.startswith(phrase) for phrase in STATUS_PHRASES):
            candidate.metadata.append(line)
            return

        left, sep, right = line.partition(" - ")
        head = left.strip().lower()
        if any(head.startswith(keyword) for keyword in SUBTYPE_KEYWORDS):
            if candidate.account_subtype is None:
                candidate.account_subtype = line
            else:
                candidate.metadata.append(line)
            return

        if candidate.institution is None:
            candidate.institution = left.strip()
            if sep and candidate.account_subtype is None:
                candidate.account_subtype = right.strip()
            elif sep:
                candidate.metadata.append(right.strip())
            return

        candidate.metadata.append(line)

    def parse(self, text: str) -> ParseResult:
        """
        Parse a text block into candidates, diagnostics and groups.

        Never raises for malformed content.
        """
        result = ParseResult()
        diagnostics = result.diagnostics
        groups = result.groups

        if not text or not text.strip():
            diagnostics.append(ParseDiagnostic(
                code=DiagnosticCode.EMPTY_INPUT,
                message="No text to parse",
                severity="info",
            ))
            return result

        category: Optional[AccountCategory] = None
        awaiting_subtotal: Optional[AccountCategory] = None
        last_candidate: Optional[AccountCandidate] = None

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue

            name, token = self._split_value(line)

            # Section header, with or without its subtotal on the same line
            section = header_category(name if name is not None else line)
            if section is not None:
                category = section
                group = groups.setdefault(section, CategoryGroup(category=section))
                last_candidate = None
                if token is not None:
                    group.stated_total = self._amount(
                        token, line_number, line, diagnostics, "Section total"
                    )
                    awaiting_subtotal = None
                else:
                    awaiting_subtotal = section
                continue

            # Bare value: section subtotal, overall total, or stray number
            if name is None and token is not None:
                if awaiting_subtotal is not None:
                    groups[awaiting_subtotal].stated_total = self._amount(
                        token, line_number, line, diagnostics, "Section total"
                    )
                    awaiting_subtotal = None
                elif category is None and result.stated_net_worth is None and not result.candidates:
                    result.stated_net_worth = self._amount(
                        token, line_number, line, diagnostics, "Net worth"
                    )
                else:
                    diagnostics.append(ParseDiagnostic(
                        line_number=line_number,
                        line=line,
                        code=DiagnosticCode.ORPHAN_VALUE,
                        message=f"Value '{token}' has no account name; skipped",
                        severity="warning",
                    ))
                last_candidate = None
                continue

            awaiting_subtotal = None

            # Account line
            if name is not None:
                balance = self._amount(token, line_number, line, diagnostics, name)
                if category is None:
                    diagnostics.append(ParseDiagnostic(
                        line_number=line_number,
                        line=line,
                        code=DiagnosticCode.UNCATEGORIZED_ACCOUNT,
                        message=f"'{name}' appears before any section header",
                        severity="warning",
                    ))
                candidate = AccountCandidate(
                    name=name[:200],
                    balance=balance,
                    category=category or AccountCategory.UNCATEGORIZED,
                    line_number=line_number,
                    source_line=line,
                )
                result.candidates.append(candidate)
                groups.setdefault(
                    candidate.category,
                    CategoryGroup(category=candidate.category),
                ).candidates.append(candidate)
                last_candidate = candidate
                continue

            # Metadata line
            if last_candidate is not None:
                self._attach_metadata(last_candidate, line)
            else:
                diagnostics.append(ParseDiagnostic(
                    line_number=line_number,
                    line=line,
                    code=DiagnosticCode.UNRECOGNIZED_LINE,
                    message="Line is not a header, account or account detail",
                    severity="info",
                ))

        result.net_worth = compute_net_worth(result.candidates)
        return result


def compute_net_worth(candidates: list[AccountCandidate]) -> Decimal:
    """Assets minus liabilities. Liabilities count as debt whatever their sign."""
    total = Decimal("0")
    for candidate in candidates:
        if candidate.category.is_liability:
            total -= abs(candidate.balance)
        else:
            total += candidate.balance
    return total


def parse_text(text: str, parser: Optional[StatementTextParser] = None) -> ParseResult:
    """Parse statement text with the given (or a default) parser."""
    return (parser or StatementTextParser()).parse(text)
