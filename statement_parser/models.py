from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class StatementType(str, Enum):
    BANK = "bank"
    CREDIT_CARD = "credit_card"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PageText:
    """Plain text of one page as produced by the text-extraction backend."""

    page: int
    text: str


@dataclass(frozen=True)
class ColumnInfo:
    """A header label and the character span it occupies on the header line."""

    name: str
    start_pos: int
    center_pos: float


@dataclass(frozen=True)
class SegmentedRow:
    """
    One logical transaction as cut out of the page text by a segmenter.

    - amount: the transaction amount; empty for balance-only rows
    - withdrawal / deposit: populated only when header column positions were known
    - balance: running balance after the transaction, empty when not printed
    - page / line_number: where the transaction starts (1-indexed)
    """

    date: str
    description: str
    amount: str = ""
    balance: str = ""
    withdrawal: str = ""
    deposit: str = ""
    page: Optional[int] = None
    line_number: Optional[int] = None


@dataclass(frozen=True)
class ParsedRow:
    date: str
    description: str
    amount: str
    balance: str
    identifier: str = ""
    page: Optional[int] = None
    line_number: Optional[int] = None

    def as_cells(self) -> List[str]:
        return [self.date, self.description, self.amount, self.balance, self.identifier]


@dataclass
class ParsedTable:
    """
    Rows extracted from a statement.

    After consolidation there is a single table with page=1, meaning the rows
    span the whole document.
    """

    page: int
    headers: Optional[List[str]]
    rows: List[ParsedRow] = field(default_factory=list)
    inferred_year: Optional[int] = None
    statement_type: StatementType = StatementType.UNKNOWN
