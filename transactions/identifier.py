from __future__ import annotations

import hashlib
import re
from datetime import date as _date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional


class TransactionDataError(ValueError):
    """Row data that cannot be turned into a transaction identifier."""


class InvalidDate(TransactionDataError):
    pass


class CannotNormalizeDate(InvalidDate):
    pass


class InvalidAmount(TransactionDataError):
    pass


_MONTHS = {
    "JAN": 1,
    "FEB": 2,
    "MAR": 3,
    "APR": 4,
    "MAY": 5,
    "JUN": 6,
    "JUL": 7,
    "AUG": 8,
    "SEP": 9,
    "SEPT": 9,
    "OCT": 10,
    "NOV": 11,
    "DEC": 12,
}

_YYYYMMDD_RE = re.compile(r"^\d{8}$")
_ISO_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_DMY_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})$")
_DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3,})\s+(\d{2,4})$")
_DAY_MONTH_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3,})$")
_CENTS = Decimal("0.01")


def _year(raw: str) -> int:
    if len(raw) == 4:
        return int(raw)
    if len(raw) == 2:
        return 2000 + int(raw)
    raise CannotNormalizeDate(f'Invalid year value "{raw}"')


def _month(name: str) -> int:
    upper = name[:4].upper()
    month = _MONTHS.get(upper) or _MONTHS.get(upper[:3])
    if not month:
        raise CannotNormalizeDate(f'Unknown month "{name}"')
    return month


def _format(year: int, month: int, day: int) -> str:
    try:
        d = _date(year, month, day)
    except ValueError as exc:
        raise InvalidDate(f"Invalid calendar date {year}-{month}-{day}") from exc
    return d.strftime("%Y%m%d")


def normalize_date_to_yyyymmdd(value: str, default_year: Optional[int] = None) -> str:
    """
    Normalize a statement date string to YYYYMMDD.

    Supported shapes: YYYYMMDD, YYYY-M-D / YYYY/M/D, D-M-YY(YY) / D/M/YY(YY),
    "D Mon YYYY" and "D Mon" (the last one only with `default_year`).
    Two-digit years are taken as 20yy.
    """
    cleaned = " ".join(value.replace(",", "").split())

    if _YYYYMMDD_RE.match(cleaned):
        return _format(int(cleaned[:4]), int(cleaned[4:6]), int(cleaned[6:]))

    m = _ISO_RE.match(cleaned)
    if m:
        return _format(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DMY_RE.match(cleaned)
    if m:
        return _format(_year(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _DAY_MONTH_YEAR_RE.match(cleaned)
    if m:
        return _format(_year(m.group(3)), _month(m.group(2)), int(m.group(1)))

    m = _DAY_MONTH_RE.match(cleaned)
    if m and default_year:
        return _format(default_year, _month(m.group(2)), int(m.group(1)))

    raise CannotNormalizeDate(f'Cannot normalize date "{value}" to YYYYMMDD format')


def normalize_amount(value: Optional[str], field: str = "amount") -> str:
    """Render an amount string with exactly two decimals ("1,234" -> "1234.00")."""
    cleaned = "".join((value or "").replace(",", "").split())
    if not cleaned:
        raise InvalidAmount(f"{field} is required to generate a transaction identifier")
    try:
        number = Decimal(cleaned)
    except InvalidOperation as exc:
        raise InvalidAmount(f'{field} "{value}" is not a valid number') from exc
    if not number.is_finite():
        raise InvalidAmount(f'{field} "{value}" is not a valid number')
    quantized = number.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if quantized == 0:
        quantized = abs(quantized)
    return f"{quantized:.2f}"


def description_hash(description: str) -> str:
    return hashlib.sha256(description.strip().encode("utf-8")).hexdigest()[:8]


def generate_transaction_identifier(
    date: str,
    amount: str,
    balance: str,
    description: str,
    default_year: Optional[int] = None,
) -> str:
    """
    Build the content-addressed key `YYYYMMDD-<amount>-<balance>-<hash8>`.

    The same normalized date, amount and balance with the same trimmed
    description always yield the same identifier; it is the dedup key
    across uploads.
    """
    normalized_date = normalize_date_to_yyyymmdd(date, default_year=default_year)
    return "-".join(
        [
            normalized_date,
            normalize_amount(amount, "amount"),
            normalize_amount(balance, "balance"),
            description_hash(description),
        ]
    )


def month_bucket(yyyymmdd: str) -> str:
    return f"{yyyymmdd[:4]}-{yyyymmdd[4:6]}"


def to_iso_date(yyyymmdd: str) -> str:
    return f"{yyyymmdd[:4]}-{yyyymmdd[4:6]}-{yyyymmdd[6:8]}"
