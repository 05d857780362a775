from __future__ import annotations

import hashlib
import logging
import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.models import Statement
from schemas.statements import StatementMetadata
from statement_parser.models import StatementType
from transactions.identifier import (
    TransactionDataError,
    generate_transaction_identifier,
    month_bucket,
    normalize_amount,
    normalize_date_to_yyyymmdd,
)
from upload_service.errors import PersistenceError, guarded_read
from upload_service.lifecycle import Resolution, StatementStatus, transition
from upload_service.models import IngestResult, TransactionRowIn

logger = logging.getLogger(__name__)

_HAS_YEAR_RE = re.compile(r"\d{4}")


def file_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _stored_statement_type(metadata: StatementMetadata) -> str:
    # the statements table only knows bank and credit_card
    if metadata.statement_type_guess == StatementType.CREDIT_CARD:
        return StatementType.CREDIT_CARD.value
    return StatementType.BANK.value


async def find_duplicate(repo, user_id: uuid.UUID, sha: str) -> Optional[Statement]:
    """The user's statement already stored for these exact file bytes, if any."""
    return await guarded_read("look up statement by file hash", repo.get_statement_by_hash(user_id, sha))


def duplicate_result(statement: Statement) -> IngestResult:
    return IngestResult(statement_id=statement.id, is_duplicate=True, status=statement.status)


def stored_metadata(statement: Statement) -> StatementMetadata:
    """Metadata of a stored statement, for answering a repeat upload without parsing it."""
    return StatementMetadata(
        period_start=statement.period_start,
        period_end=statement.period_end,
        bank=statement.bank,
        account_name=statement.account_name,
        currency=statement.currency,
        statement_type_guess=StatementType(statement.statement_type),
    )


def build_import_rows(
    statement_id: uuid.UUID,
    rows: Sequence[TransactionRowIn],
    default_year: int,
    balance_fallback: str = "0.00",
) -> List[Dict[str, object]]:
    """
    Stage parsed rows as pending imports, computing identifier, ISO date and month bucket.

    Dates printed without a year take `default_year` (the statement period's
    start year). Rows whose date or amount cannot be normalized are logged
    and left out.
    """
    out: List[Dict[str, object]] = []
    for row in rows:
        year = None if _HAS_YEAR_RE.search(row.date) else default_year
        balance = row.balance or balance_fallback
        try:
            yyyymmdd = normalize_date_to_yyyymmdd(row.date, default_year=year)
            identifier = generate_transaction_identifier(
                date=row.date,
                amount=row.amount,
                balance=balance,
                description=row.description,
                default_year=year,
            )
            amount = Decimal(normalize_amount(row.amount, "amount"))
            stored_balance = Decimal(normalize_amount(row.balance, "balance")) if row.balance else None
        except TransactionDataError as exc:
            logger.warning("Skipping row %r on page %s line %s: %s", row.date, row.statement_page, row.line_number, exc)
            continue
        out.append(
            {
                "statement_id": statement_id,
                "transaction_identifier": identifier,
                "date": datetime.strptime(yyyymmdd, "%Y%m%d").date(),
                "month_bucket": month_bucket(yyyymmdd),
                "description": row.description,
                "amount": amount,
                "balance": stored_balance,
                "statement_page": row.statement_page,
                "line_number": row.line_number,
                "resolution": Resolution.PENDING.value,
            }
        )
    return out


async def ingest(
    repo,
    file_name: str,
    file_bytes: bytes,
    rows: Sequence[TransactionRowIn],
    metadata: StatementMetadata,
    user_id: uuid.UUID,
) -> IngestResult:
    """
    Store a parsed statement and stage its rows for review.

    Re-uploading byte-identical content for the same user returns the
    existing statement with is_duplicate=True and writes nothing. If staging
    the rows fails, the statement and its imports are removed and
    PersistenceError is raised so the upload can be retried.
    """
    sha = file_sha256(file_bytes)

    existing = await find_duplicate(repo, user_id, sha)
    if existing is not None:
        logger.info("Duplicate upload %s for user %s (statement %s)", file_name, user_id, existing.id)
        return duplicate_result(existing)

    try:
        statement = await repo.create_statement(
            source_file_name=file_name,
            source_file_sha256=sha,
            uploaded_by=user_id,
            period_start=metadata.period_start,
            period_end=metadata.period_end,
            bank=metadata.bank,
            account_name=metadata.account_name,
            currency=metadata.currency,
            statement_type=_stored_statement_type(metadata),
            status=StatementStatus.INGESTING.value,
        )
        await repo.commit()
    except IntegrityError:
        # a concurrent upload of the same file won the race
        await repo.rollback()
        existing = await find_duplicate(repo, user_id, sha)
        if existing is None:
            raise PersistenceError("Failed to create statement")
        return duplicate_result(existing)
    except SQLAlchemyError as exc:
        await repo.rollback()
        logger.error("Failed to create statement for %s: %s", file_name, exc)
        raise PersistenceError(f"Failed to create statement: {exc}") from exc

    statement_id = statement.id
    logger.info("Created statement %s for %s", statement_id, file_name)

    import_rows = build_import_rows(statement_id, rows, default_year=metadata.period_start.year)
    skipped = len(rows) - len(import_rows)

    try:
        if not import_rows:
            status = transition(StatementStatus.INGESTING, StatementStatus.FAILED)
            await repo.set_status(statement_id, status.value)
            await repo.commit()
            logger.warning("Statement %s has no usable rows; marked failed", statement_id)
            return IngestResult(statement_id=statement_id, is_duplicate=False, count=0, status=status.value, skipped=skipped)

        existing_ids = await repo.find_existing_identifiers(user_id, [r["transaction_identifier"] for r in import_rows])
        for r in import_rows:
            r["existing_transaction_id"] = existing_ids.get(r["transaction_identifier"])

        count = await repo.add_imports(import_rows)
        status = transition(StatementStatus.INGESTING, StatementStatus.PARSED)
        await repo.set_status(statement_id, status.value)
        await repo.commit()
    except SQLAlchemyError as exc:
        logger.error("Failed to import transactions for statement %s: %s", statement_id, exc)
        await repo.rollback()
        try:
            await repo.delete_statement(statement_id)
            await repo.commit()
        except SQLAlchemyError as cleanup_exc:
            logger.error("Cleanup of statement %s failed: %s", statement_id, cleanup_exc)
            await repo.rollback()
        raise PersistenceError(f"Failed to import transactions: {exc}") from exc

    logger.info(
        "Staged %s imports for statement %s (%s duplicates, %s skipped)",
        count,
        statement_id,
        sum(1 for r in import_rows if r["existing_transaction_id"]),
        skipped,
    )
    return IngestResult(statement_id=statement_id, is_duplicate=False, count=count, status=status.value, skipped=skipped)
