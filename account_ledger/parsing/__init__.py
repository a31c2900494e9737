"""Statement text parsing package."""

from account_ledger.parsing.parser import (
    SECTION_HEADERS,
    StatementTextParser,
    compute_net_worth,
    header_category,
    is_relative_age,
    parse_currency,
    parse_text,
)

__all__ = [
    "SECTION_HEADERS",
    "StatementTextParser",
    "compute_net_worth",
    "header_category",
    "is_relative_age",
    "parse_currency",
    "parse_text",
]
