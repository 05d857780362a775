from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Sequence

from statement_parser import config
from statement_parser.classification import classify_statement_type, infer_default_year
from statement_parser.json_logger import get_json_logger
from statement_parser.line_classifier import LineClassifier
from statement_parser.models import PageText, ParsedRow, ParsedTable, SegmentedRow, StatementType
from statement_parser.normalizer import filter_credit_card_rows, passthrough_rows, select_withdrawals
from statement_parser.patterns import DEFAULT_PATTERNS, LinePatterns
from statement_parser.segmenter import BankPageSegmenter, CreditCardPageSegmenter
from statement_parser.text_extraction import extract_page_texts
from transactions.identifier import TransactionDataError, generate_transaction_identifier

logger = get_json_logger(__name__) if config.JSON_EVENTS else logging.getLogger(__name__)

CONSOLIDATED_HEADERS = ["Date", "Description", "Amount", "Balance", "Identifier"]

UNSUPPORTED_MESSAGE = "No tabular data found. We only support text-based, tabular statements right now."


class UnsupportedDocument(Exception):
    """The document has no text layer or no recognizable transaction table."""

    def __init__(self, message: str = UNSUPPORTED_MESSAGE) -> None:
        super().__init__(message)


def append_identifiers(
    rows: Sequence[ParsedRow],
    default_year: Optional[int],
    balance_fallback: str = config.BALANCE_FALLBACK,
) -> List[ParsedRow]:
    """
    Attach a transaction identifier to every row.

    Rows without a printed balance get `balance_fallback`, which is also
    written back so the identifier can be recomputed from the row alone.
    Rows whose date or amount cannot be normalized are logged and skipped.
    """
    year = default_year or date.today().year
    out: List[ParsedRow] = []
    for row in rows:
        balance = row.balance.strip() if row.balance and row.balance.strip() else (balance_fallback or row.amount or "0.00")
        try:
            identifier = generate_transaction_identifier(
                date=row.date,
                amount=row.amount,
                balance=balance,
                description=row.description,
                default_year=year,
            )
        except TransactionDataError as exc:
            logger.warning(
                "row_skipped",
                extra={"extra": {"page": row.page, "line": row.line_number, "date": row.date, "error": str(exc)}},
            )
            continue
        out.append(
            ParsedRow(
                date=row.date,
                description=row.description,
                amount=row.amount,
                balance=balance,
                identifier=identifier,
                page=row.page,
                line_number=row.line_number,
            )
        )
    return out


def extract_tables(page_texts: Sequence[PageText], patterns: LinePatterns = DEFAULT_PATTERNS) -> List[ParsedTable]:
    """
    Turn per-page statement text into one consolidated table of transactions.

    Pipeline: classify statement type -> infer year -> segment each page ->
    normalize (bank: withdrawals only; credit card: single amount) ->
    sanitize -> identifiers. Raises UnsupportedDocument when the text is too
    short to be a text-based statement or when no row survives.
    """
    full_text = "\n".join(p.text for p in page_texts)
    if len(full_text.strip()) < config.MIN_TEXT_LENGTH:
        raise UnsupportedDocument()

    signals = classify_statement_type(full_text)
    statement_type = signals.statement_type
    default_year = infer_default_year(full_text)
    classifier = LineClassifier(patterns)

    segmented: List[SegmentedRow] = []
    for page in page_texts:
        if signals.is_credit_card and not signals.is_bank_statement:
            blocks = CreditCardPageSegmenter(page.page, classifier).run(page.text)
        else:
            blocks = BankPageSegmenter(page.page, classifier).run(page.text)
        for block in blocks:
            segmented.extend(block.rows)

    if not segmented:
        raise UnsupportedDocument()

    if statement_type == StatementType.BANK:
        rows = select_withdrawals(segmented)
    elif statement_type == StatementType.CREDIT_CARD:
        rows = filter_credit_card_rows(segmented)
    else:
        rows = passthrough_rows(segmented)

    rows = append_identifiers(rows, default_year)
    logger.info(
        "tables_extracted",
        extra={
            "extra": {
                "pages": len(page_texts),
                "statement_type": statement_type.value,
                "inferred_year": default_year,
                "segmented_rows": len(segmented),
                "rows": len(rows),
            }
        },
    )
    if not rows:
        raise UnsupportedDocument()

    return [
        ParsedTable(
            page=1,
            headers=list(CONSOLIDATED_HEADERS),
            rows=rows,
            inferred_year=default_year,
            statement_type=statement_type,
        )
    ]


def extract_tables_from_pdf(content: bytes, patterns: LinePatterns = DEFAULT_PATTERNS) -> List[ParsedTable]:
    return extract_tables(extract_page_texts(content), patterns)
