from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from settings.config import settings
from transactions.models import MonthSummary, TransactionOut
from upload_service.errors import guarded_read

logger = logging.getLogger(__name__)

ALL_MONTHS = "All"


def _transaction_out(txn) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        transaction_identifier=txn.transaction_identifier,
        statement_id=txn.statement_id,
        date=txn.date,
        month_bucket=txn.month_bucket,
        description=txn.description,
        amount=txn.amount,
        balance=txn.balance,
        statement_page=txn.statement_page,
        line_number=txn.line_number,
        status=txn.status,
        created_at=txn.created_at,
    )


class TransactionService:
    """Read side over committed transactions: listing, month buckets and spend summaries."""

    def __init__(self, repo) -> None:
        self.repo = repo

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        month: Optional[str] = None,
        statement_id: Optional[uuid.UUID] = None,
    ) -> List[TransactionOut]:
        """Active transactions, newest first, optionally narrowed to a month bucket and/or statement."""
        txns = await guarded_read(
            "list transactions",
            self.repo.list_transactions(user_id, month=month, statement_id=statement_id),
        )
        return [_transaction_out(t) for t in txns]

    async def list_months(self, user_id: uuid.UUID) -> List[str]:
        return await guarded_read("list months", self.repo.list_months(user_id))

    async def month_summary(
        self,
        user_id: uuid.UUID,
        month: Optional[str] = None,
        statement_id: Optional[uuid.UUID] = None,
    ) -> MonthSummary:
        """
        Spend summary over active transactions.

        Only positive amounts count toward `total_spent`; `transaction_count`
        covers every active row in scope. Without a month the summary spans all
        months and is labelled "All".
        """
        spent, count, statements = await guarded_read(
            "summarize transactions",
            self.repo.summarize_transactions(user_id, month=month, statement_id=statement_id),
        )
        logger.debug("Summary for %s month=%s statement=%s: %s over %s rows", user_id, month, statement_id, spent, count)
        return MonthSummary(
            month=month or ALL_MONTHS,
            total_spent=spent,
            transaction_count=count,
            statement_count=statements,
            currency=settings.DEFAULT_CURRENCY,
        )
