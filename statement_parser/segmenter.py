from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from statement_parser import config
from statement_parser.columns import (
    BALANCE_RE,
    DEPOSIT_RE,
    WITHDRAWAL_RE,
    extract_header_column_positions,
    find_column,
    find_column_for_amount,
)
from statement_parser.line_classifier import LineClassifier, default_classifier, split_cells
from statement_parser.models import ColumnInfo, PageText, SegmentedRow

_AMOUNT = r"\d{1,3}(?:,\d{3})*\.\d{2}"
_COLUMN_AMOUNT_RE = re.compile(rf"\s{{2,}}({_AMOUNT})\s*$")
_END_AMOUNT_RE = re.compile(rf"\b({_AMOUNT})\s*$")
_ONLY_AMOUNT_RE = re.compile(rf"^({_AMOUNT})$")
_TRAILING_AMOUNT_RE = re.compile(rf"\s*\b{_AMOUNT}\s*$")
_LOOSE_AMOUNT_RE = re.compile(r"\d[\d,]*\.\d{2}")
_VALUE_DATE_RE = re.compile(r"^value\s+date", re.IGNORECASE)
_BALANCE_BF_RE = re.compile(r"balance\s*b\/?f", re.IGNORECASE)

CREDIT_CARD_HEADERS = ["Date", "Description", "Amount"]


class SegmenterState(str, Enum):
    IDLE = "idle"
    ACCUMULATING_BLOCK = "accumulating_block"
    ACCUMULATING_TRANSACTION = "accumulating_transaction"


@dataclass
class TransactionBuffer:
    """Lines of one in-flight transaction, starting at a date-leading line."""

    date: str
    line_number: int
    lines: List[str] = field(default_factory=list)
    desc_parts: List[str] = field(default_factory=list)
    # text from lines that may be swept for a lone amount
    sweepable_parts: List[str] = field(default_factory=list)
    amount: str = ""


@dataclass
class BlockBuffer:
    rows: List[SegmentedRow] = field(default_factory=list)
    headers: Optional[List[str]] = None
    columns: Optional[List[ColumnInfo]] = None


@dataclass
class SegmentedBlock:
    page: int
    headers: Optional[List[str]]
    rows: List[SegmentedRow]


def _squash(text: str) -> str:
    return " ".join(text.split())


def extract_column_amount(line: str) -> Optional[str]:
    """
    Rightmost amount sitting in the amount column of a credit card line.

    Prefers an amount separated from the text by a wide gap; otherwise an
    amount at the very end of the line with some text before it.
    """
    match = _COLUMN_AMOUNT_RE.search(line)
    if match:
        return match.group(1)
    match = _END_AMOUNT_RE.search(line)
    if match:
        before = line[: match.start(1)].strip()
        if before:
            return match.group(1)
    return None


class _PageSegmenter:
    def __init__(
        self,
        page: int,
        classifier: LineClassifier = default_classifier,
        min_rows: int = config.MIN_ROWS_FOR_TABLE,
    ) -> None:
        self.page = page
        self.classifier = classifier
        self.min_rows = min_rows
        self.state = SegmenterState.IDLE
        self.block = BlockBuffer()
        self.transaction: Optional[TransactionBuffer] = None
        self.blocks: List[SegmentedBlock] = []

    def run(self, text: str) -> List[SegmentedBlock]:
        for line_number, line in enumerate(text.splitlines(), start=1):
            self.feed(line, line_number)
        self.flush_block()
        return self.blocks

    def feed(self, line: str, line_number: int) -> None:
        raise NotImplementedError

    def parse_transaction(self, txn: TransactionBuffer) -> Optional[SegmentedRow]:
        raise NotImplementedError

    def block_headers(self) -> Optional[List[str]]:
        return self.block.headers

    def start_transaction(self, date: str, line: str, line_number: int) -> TransactionBuffer:
        self.flush_transaction()
        self.transaction = TransactionBuffer(date=date, line_number=line_number, lines=[line])
        self.state = SegmenterState.ACCUMULATING_TRANSACTION
        return self.transaction

    def flush_transaction(self) -> None:
        if self.transaction is not None:
            row = self.parse_transaction(self.transaction)
            if row is not None:
                self.block.rows.append(row)
            self.transaction = None
        self.state = SegmenterState.ACCUMULATING_BLOCK if self.block.rows else SegmenterState.IDLE

    def flush_block(self) -> None:
        self.flush_transaction()
        if len(self.block.rows) >= self.min_rows:
            self.blocks.append(SegmentedBlock(page=self.page, headers=self.block_headers(), rows=self.block.rows))
        self.block = BlockBuffer()
        self.state = SegmenterState.IDLE


class BankPageSegmenter(_PageSegmenter):
    """
    Groups bank statement lines into transactions.

    A date-leading line opens a transaction and every following line is a
    continuation until the next date, summary or boilerplate line. Amounts
    are mapped through header column positions when a header was seen in the
    block, otherwise by the first-amount / last-balance heuristic.
    """

    def feed(self, line: str, line_number: int) -> None:
        trimmed = line.strip()
        c = self.classifier

        if not trimmed:
            # a blank line closes a block only between transactions
            if self.state == SegmenterState.ACCUMULATING_BLOCK and len(self.block.rows) >= self.min_rows:
                self.flush_block()
            return

        if c.is_summary_or_end_line(trimmed):
            self.flush_block()
            return

        if c.is_non_transaction_line(trimmed):
            self.flush_transaction()
            return

        if self.state == SegmenterState.IDLE and c.is_header_line(trimmed):
            self.block.headers = split_cells(trimmed)
            self.block.columns = extract_header_column_positions(line)
            return

        date = c.extract_date(trimmed)
        if date is not None:
            self.start_transaction(date, line, line_number)
        elif self.state == SegmenterState.ACCUMULATING_TRANSACTION and self.transaction is not None:
            self.transaction.lines.append(line)
        # anything else is a stray cell row outside a transaction

    def parse_transaction(self, txn: TransactionBuffer) -> Optional[SegmentedRow]:
        if self.block.columns:
            return self._parse_with_columns(txn, self.block.columns)
        return self._parse_heuristic(txn)

    def _parse_with_columns(self, txn: TransactionBuffer, columns: List[ColumnInfo]) -> Optional[SegmentedRow]:
        withdrawal_idx = find_column(columns, WITHDRAWAL_RE)
        deposit_idx = find_column(columns, DEPOSIT_RE)
        balance_idx = find_column(columns, BALANCE_RE)
        wanted = {idx for idx in (withdrawal_idx, deposit_idx, balance_idx) if idx is not None}

        values = {}
        desc_parts: List[str] = []
        for pos, line in enumerate(txn.lines):
            for match in self.classifier.patterns.amount.finditer(line):
                amount = match.group(0)
                col = find_column_for_amount(match.start() + len(amount) / 2, columns)
                if col in wanted:
                    values[col] = amount
            text_part = self.classifier.strip_amounts(line)
            if pos == 0:
                text_part = text_part.replace(txn.date, "", 1).strip()
                if text_part:
                    desc_parts.append(text_part)
            elif text_part and not _VALUE_DATE_RE.match(text_part):
                desc_parts.append(text_part)

        withdrawal = values.get(withdrawal_idx, "") if withdrawal_idx is not None else ""
        deposit = values.get(deposit_idx, "") if deposit_idx is not None else ""
        balance = values.get(balance_idx, "") if balance_idx is not None else ""
        return SegmentedRow(
            date=txn.date,
            description=_squash(" ".join(desc_parts)),
            amount=withdrawal or deposit,
            balance=balance,
            withdrawal=withdrawal,
            deposit=deposit,
            page=self.page,
            line_number=txn.line_number,
        )

    def _parse_heuristic(self, txn: TransactionBuffer) -> Optional[SegmentedRow]:
        amounts: List[str] = []
        texts: List[str] = []
        for pos, line in enumerate(txn.lines):
            trimmed = line.strip()
            if not trimmed:
                continue
            amounts.extend(self.classifier.find_amounts(trimmed))
            text_only = self.classifier.strip_amounts(trimmed)
            if pos == 0:
                text_only = text_only.replace(txn.date, "", 1).strip()
            if text_only:
                texts.append(text_only)

        if not amounts:
            return None

        description = _squash(" ".join(texts))
        amount = ""
        balance = ""
        if len(amounts) == 1:
            if _BALANCE_BF_RE.search(description):
                balance = amounts[0]
            else:
                amount = amounts[0]
        else:
            amount = amounts[0]
            balance = amounts[-1]
        return SegmentedRow(
            date=txn.date,
            description=description,
            amount=amount,
            balance=balance,
            page=self.page,
            line_number=txn.line_number,
        )


class CreditCardPageSegmenter(_PageSegmenter):
    """
    Groups credit card statement lines into single-amount transactions.

    Continuation lines carrying a foreign-currency keyword are description
    noise: their figures are the original-currency amount, never the billed one.
    """

    def block_headers(self) -> Optional[List[str]]:
        return list(CREDIT_CARD_HEADERS)

    def feed(self, line: str, line_number: int) -> None:
        trimmed = line.strip()
        if not trimmed:
            return
        c = self.classifier

        if c.is_summary_or_end_line(trimmed) or c.is_non_transaction_line(trimmed):
            self.flush_transaction()
            return

        date = c.extract_date(trimmed)
        if date is not None:
            self._open(date, line, line_number)
            return

        txn = self.transaction
        if txn is None:
            return
        txn.lines.append(line)
        is_foreign = bool(c.patterns.foreign_currency.search(trimmed))

        only_amount = _ONLY_AMOUNT_RE.match(trimmed)
        if only_amount and not txn.amount:
            txn.amount = only_amount.group(1)
            return

        if not txn.amount and not is_foreign:
            line_amount = extract_column_amount(line)
            if line_amount:
                txn.amount = line_amount
                text_part = c.strip_amounts(_TRAILING_AMOUNT_RE.sub("", trimmed))
                if text_part:
                    txn.desc_parts.append(text_part)
                    txn.sweepable_parts.append(text_part)
                return

        text_part = c.strip_amounts(trimmed)
        if text_part:
            txn.desc_parts.append(text_part)
            if not is_foreign:
                txn.sweepable_parts.append(text_part)

    def _open(self, date: str, line: str, line_number: int) -> None:
        txn = self.start_transaction(date, line, line_number)
        column_amount = extract_column_amount(line)

        start = line.lower().find(date.lower())
        description = line[start + len(date):].strip() if start >= 0 else line.strip()
        if column_amount:
            idx = description.rfind(column_amount)
            if idx > 0:
                description = description[:idx].strip()
        description = _TRAILING_AMOUNT_RE.sub("", description).strip()

        txn.amount = column_amount or ""
        if description:
            txn.desc_parts.append(description)
            txn.sweepable_parts.append(description)

    def parse_transaction(self, txn: TransactionBuffer) -> Optional[SegmentedRow]:
        description = _squash(" ".join(txn.desc_parts))
        amount = txn.amount
        if not amount:
            # last resort: a single leftover figure in the description text
            leftovers = _LOOSE_AMOUNT_RE.findall(" ".join(txn.sweepable_parts))
            if len(leftovers) == 1:
                amount = leftovers[0]
                description = _squash(description.replace(amount, "", 1))
        if not amount:
            return None
        if not description or self.classifier.is_non_transaction_line(description):
            return None
        return SegmentedRow(
            date=txn.date,
            description=description,
            amount=amount,
            page=self.page,
            line_number=txn.line_number,
        )


def segment_bank_page(page: PageText, classifier: LineClassifier = default_classifier) -> List[SegmentedBlock]:
    return BankPageSegmenter(page.page, classifier).run(page.text)


def segment_credit_card_page(page: PageText, classifier: LineClassifier = default_classifier) -> List[SegmentedBlock]:
    return CreditCardPageSegmenter(page.page, classifier).run(page.text)
