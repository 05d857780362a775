from __future__ import annotations

import uuid
import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class TransactionOut(BaseModel):
    id: uuid.UUID
    transaction_identifier: str
    statement_id: Optional[uuid.UUID] = None
    date: dt.date
    month_bucket: str
    description: str
    amount: Decimal
    balance: Optional[Decimal] = None
    statement_page: Optional[int] = None
    line_number: Optional[int] = None
    status: str = "active"
    created_at: Optional[dt.datetime] = None


class MonthSummary(BaseModel):
    """Spend over committed transactions for one month bucket, or "All"."""

    month: str
    total_spent: Decimal
    transaction_count: int
    statement_count: int
    currency: str
