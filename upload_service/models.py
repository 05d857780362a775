from __future__ import annotations

import uuid
import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from schemas.statements import StatementMetadata
from statement_parser.models import ParsedRow


class DecisionAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class DraftDecision(str, Enum):
    KEEP_EXISTING = "keep_existing"
    ADD_NEW = "add_new"


class TransactionRowIn(BaseModel):
    date: str
    description: str
    amount: str
    balance: Optional[str] = None
    statement_page: Optional[int] = None
    line_number: Optional[int] = None

    @field_validator("amount", "balance", mode="before")
    @classmethod
    def _money_to_str(cls, v):
        if v is None:
            return None
        if isinstance(v, (int, float, Decimal)):
            return str(v)
        s = str(v).strip()
        return s

    @field_validator("balance")
    @classmethod
    def _strip_empty_balance(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v if v else None

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "TransactionRowIn":
        return cls(
            date=row.date,
            description=row.description,
            amount=row.amount,
            balance=row.balance or None,
            statement_page=row.page,
            line_number=row.line_number,
        )


class IngestResult(BaseModel):
    statement_id: uuid.UUID
    is_duplicate: bool
    count: int = 0
    status: str
    skipped: int = 0


class ImportDecision(BaseModel):
    import_id: uuid.UUID
    action: DecisionAction


class CommitRequest(BaseModel):
    decisions: List[ImportDecision] = Field(default_factory=list)


class DraftDecisionRequest(BaseModel):
    action: DecisionAction


class CommitResult(BaseModel):
    success: bool
    statement_id: uuid.UUID
    accepted: int
    rejected: int
    inserted: int


class TransactionSnapshot(BaseModel):
    id: Optional[uuid.UUID] = None
    transaction_identifier: str
    date: dt.date
    description: str
    amount: Decimal
    balance: Optional[Decimal] = None
    statement_page: Optional[int] = None
    line_number: Optional[int] = None


class DuplicatePair(BaseModel):
    import_id: uuid.UUID
    existing: Optional[TransactionSnapshot] = None
    new: TransactionSnapshot
    initial_decision: DraftDecision = DraftDecision.KEEP_EXISTING


class StatementOut(BaseModel):
    id: uuid.UUID
    source_file_name: str
    bank: Optional[str] = None
    account_name: Optional[str] = None
    statement_type: str
    period_start: dt.date
    period_end: dt.date
    currency: str
    status: str
    created_at: Optional[dt.datetime] = None


class ImportReview(BaseModel):
    statement: StatementOut
    new_transactions: List[TransactionSnapshot] = Field(default_factory=list)
    duplicates: List[DuplicatePair] = Field(default_factory=list)


class IngestResponse(BaseModel):
    result: IngestResult
    metadata: StatementMetadata
