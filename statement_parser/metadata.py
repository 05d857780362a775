from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from schemas.statements import StatementMetadata
from statement_parser.models import ParsedTable
from transactions.identifier import TransactionDataError, normalize_date_to_yyyymmdd


def derive_statement_metadata(
    table: ParsedTable,
    default_currency: str = "SGD",
    today: Optional[date] = None,
    bank: Optional[str] = None,
    account_name: Optional[str] = None,
) -> StatementMetadata:
    """
    Statement period from the earliest and latest row dates.

    Dates without a year use the table's inferred year, then the current
    year. When no row date can be normalized the period collapses to today.
    """
    today = today or date.today()
    year = table.inferred_year or today.year
    dates: List[date] = []
    for row in table.rows:
        try:
            dates.append(datetime.strptime(normalize_date_to_yyyymmdd(row.date, default_year=year), "%Y%m%d").date())
        except TransactionDataError:
            continue
    return StatementMetadata(
        period_start=min(dates) if dates else today,
        period_end=max(dates) if dates else today,
        bank=bank,
        account_name=account_name,
        currency=default_currency,
        statement_type_guess=table.statement_type,
    )
