from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from statement_parser import config
from statement_parser.models import ParsedRow, SegmentedRow
from statement_parser.sanitize import sanitize_description

_HAS_DIGIT_RE = re.compile(r"\d")
# a decrease smaller than this is treated as no movement
_WITHDRAWAL_EPSILON = Decimal("-0.001")


def _to_decimal(value: Optional[str]) -> Optional[Decimal]:
    if not value:
        return None
    s = value.replace(",", "").strip()
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def select_withdrawals(rows: Iterable[SegmentedRow]) -> List[ParsedRow]:
    """
    Keep bank rows where money left the account.

    Direction comes only from the running balance: a row is a withdrawal when
    its balance is lower than the previous one. Deposits are dropped, and rows
    without a transaction amount only move the running balance forward.
    """
    previous_balance: Optional[Decimal] = None
    out: List[ParsedRow] = []
    for row in rows:
        current_balance = _to_decimal(row.balance)
        amount = _to_decimal(row.amount)

        if not amount:
            if current_balance is not None:
                previous_balance = current_balance
            continue

        if previous_balance is not None and current_balance is not None:
            if current_balance - previous_balance < _WITHDRAWAL_EPSILON:
                out.append(
                    ParsedRow(
                        date=row.date,
                        description=sanitize_description(row.description),
                        amount=row.amount,
                        balance=row.balance,
                        page=row.page,
                        line_number=row.line_number,
                    )
                )

        if current_balance is not None:
            previous_balance = current_balance
    return out


def filter_credit_card_rows(
    rows: Iterable[SegmentedRow], max_description_length: int = config.MAX_DESCRIPTION_LENGTH
) -> List[ParsedRow]:
    out: List[ParsedRow] = []
    for row in rows:
        description = row.description.strip()
        amount = row.amount.strip()
        if not amount or not _HAS_DIGIT_RE.search(amount):
            continue
        if len(description) > max_description_length:
            continue
        out.append(
            ParsedRow(
                date=row.date,
                description=sanitize_description(row.description),
                amount=row.amount,
                balance="",
                page=row.page,
                line_number=row.line_number,
            )
        )
    return out


def passthrough_rows(rows: Iterable[SegmentedRow]) -> List[ParsedRow]:
    """Rows of an unclassified statement: kept as segmented, descriptions sanitized."""
    return [
        ParsedRow(
            date=row.date,
            description=sanitize_description(row.description),
            amount=row.amount,
            balance=row.balance,
            page=row.page,
            line_number=row.line_number,
        )
        for row in rows
        if row.amount
    ]
