from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from statement_parser.models import ParsedTable, StatementType


class StatementMetadata(BaseModel):
    period_start: date
    period_end: date
    bank: Optional[str] = None
    account_name: Optional[str] = None
    currency: str = "SGD"
    statement_type_guess: StatementType = StatementType.UNKNOWN

    @field_validator("bank", "account_name")
    @classmethod
    def _strip_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = v.strip()
        return v2 if v2 else None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.strip().upper() or "SGD"


class ParsedTableOut(BaseModel):
    page: int
    headers: Optional[List[str]] = None
    rows: List[List[str]] = Field(default_factory=list)

    @classmethod
    def from_table(cls, table: ParsedTable) -> "ParsedTableOut":
        return cls(page=table.page, headers=table.headers, rows=[r.as_cells() for r in table.rows])


class ParseResponse(BaseModel):
    tables: List[ParsedTableOut]
    metadata: StatementMetadata
