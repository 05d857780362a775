from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Set

from statement_parser.models import StatementType

_BANK_COLUMNS_RE = re.compile(
    r"withdrawal.*deposit|deposit.*withdrawal|withdrawals\s+sgd|deposits\s+sgd", re.IGNORECASE
)
_CREDIT_CARD_RE = re.compile(
    r"credit card|visa.*card|mastercard|minimum payment|previous balance|new transactions", re.IGNORECASE
)
_BALANCE_FORWARD_RE = re.compile(r"balance brought forward|balance b\/f", re.IGNORECASE)

_MONTHS = r"JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEPT?|OCT|NOV|DEC|JANUARY|FEBRUARY|MARCH|APRIL|JUNE|JULY|AUGUST|SEPTEMBER|OCTOBER|NOVEMBER|DECEMBER"

_STATEMENT_DATE_RE = re.compile(
    rf"\b(?:statement|bill)\s+date\s*:?\s*\d{{1,2}}\s+(?:{_MONTHS})\s+(\d{{4}})\b", re.IGNORECASE
)
_DMY_RE = re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-](\d{4}|\d{2})\b")
_YMD_RE = re.compile(r"\b((?:19|20)\d{2})[/-]\d{1,2}[/-]\d{1,2}\b")
_MONTH_NAME_RE = re.compile(rf"\b\d{{1,2}}\s+(?:{_MONTHS})\s+((?:19|20)\d{{2}})\b", re.IGNORECASE)


@dataclass(frozen=True)
class StatementTypeSignals:
    has_bank_columns: bool
    has_credit_card_indicators: bool
    is_bank_statement: bool
    is_credit_card: bool

    @property
    def statement_type(self) -> StatementType:
        # Bank columns win over credit-card phrasing in narrative text
        if self.is_bank_statement:
            return StatementType.BANK
        if self.is_credit_card:
            return StatementType.CREDIT_CARD
        return StatementType.UNKNOWN


def classify_statement_type(text: str) -> StatementTypeSignals:
    """Decide bank vs credit-card layout from whole-document text."""
    has_bank_columns = bool(_BANK_COLUMNS_RE.search(text))
    has_cc = bool(_CREDIT_CARD_RE.search(text))
    return StatementTypeSignals(
        has_bank_columns=has_bank_columns,
        has_credit_card_indicators=has_cc,
        is_bank_statement=has_bank_columns or bool(_BALANCE_FORWARD_RE.search(text)),
        is_credit_card=has_cc and not has_bank_columns,
    )


def _coerce_year(raw: str) -> Optional[int]:
    if len(raw) == 4:
        return int(raw)
    if len(raw) == 2:
        return 2000 + int(raw)
    return None


def infer_default_year(text: str, today: Optional[date] = None) -> Optional[int]:
    """
    Find the statement's effective year for dates printed without one.

    An explicit "Statement Date"/"Bill Date" wins outright. Otherwise the
    smallest year among the dates found is used: a December statement that
    mentions a January due date belongs to the earlier year. This is a
    heuristic and can misfire on documents spanning unrelated years.
    Years later than next year are treated as garbage and ignored.
    """
    max_year = (today or date.today()).year + 1

    explicit = _STATEMENT_DATE_RE.search(text)
    if explicit:
        year = int(explicit.group(1))
        if year <= max_year:
            return year

    candidates: Set[int] = set()
    for match in _DMY_RE.finditer(text):
        year = _coerce_year(match.group(1))
        if year is not None:
            candidates.add(year)
    for match in _YMD_RE.finditer(text):
        candidates.add(int(match.group(1)))
    for match in _MONTH_NAME_RE.finditer(text):
        candidates.add(int(match.group(1)))

    candidates = {y for y in candidates if y <= max_year}
    if not candidates:
        return None
    return min(candidates)
