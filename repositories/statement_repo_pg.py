from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Select, case, delete, desc, distinct, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Statement, Transaction, TransactionImport


class StatementRepositoryPg:
    """
    Storage for statements, their staged import rows and committed transactions.

    Methods only flush; the service decides when to commit or roll back so a
    reconciliation commit lands in a single database transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # Statements
    async def get_statement_by_hash(self, user_id: uuid.UUID, sha256: str) -> Optional[Statement]:
        stmt = select(Statement).where(Statement.uploaded_by == user_id, Statement.source_file_sha256 == sha256)
        res = await self._session.execute(stmt)
        return res.scalars().first()

    async def create_statement(self, **fields) -> Statement:
        statement = Statement(**fields)
        self._session.add(statement)
        await self._session.flush()
        await self._session.refresh(statement)
        return statement

    async def get_statement(self, statement_id: uuid.UUID) -> Optional[Statement]:
        return await self._session.get(Statement, statement_id)

    async def list_statements(
        self,
        user_id: uuid.UUID,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 200,
    ) -> List[Statement]:
        stmt: Select[tuple[Statement]] = select(Statement).where(Statement.uploaded_by == user_id)
        if statuses is not None:
            stmt = stmt.where(Statement.status.in_(list(statuses)))
        stmt = stmt.order_by(desc(Statement.created_at)).limit(limit)
        res = await self._session.execute(stmt)
        return list(res.scalars().all())

    async def get_statement_for_update(self, statement_id: uuid.UUID) -> Optional[Statement]:
        """Read a statement and hold its row lock until the transaction ends."""
        stmt = (
            select(Statement)
            .where(Statement.id == statement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        res = await self._session.execute(stmt)
        return res.scalars().first()

    async def set_status(self, statement_id: uuid.UUID, status: str, expected: Optional[str] = None) -> bool:
        """Set the status; with `expected`, only if the row still has that status. True when a row changed."""
        stmt = update(Statement).where(Statement.id == statement_id)
        if expected is not None:
            stmt = stmt.where(Statement.status == expected)
        res = await self._session.execute(stmt.values(status=status))
        return res.rowcount > 0

    async def delete_statement(self, statement_id: uuid.UUID) -> None:
        await self._session.execute(delete(TransactionImport).where(TransactionImport.statement_id == statement_id))
        await self._session.execute(delete(Statement).where(Statement.id == statement_id))

    # Staged imports
    async def add_imports(self, rows: Sequence[Mapping[str, object]]) -> int:
        if not rows:
            return 0
        self._session.add_all([TransactionImport(**row) for row in rows])
        await self._session.flush()
        return len(rows)

    async def list_imports(self, statement_id: uuid.UUID, resolution: Optional[str] = "pending") -> List[TransactionImport]:
        stmt = select(TransactionImport).where(TransactionImport.statement_id == statement_id)
        if resolution is not None:
            stmt = stmt.where(TransactionImport.resolution == resolution)
        stmt = stmt.order_by(TransactionImport.date, TransactionImport.statement_page, TransactionImport.line_number)
        res = await self._session.execute(stmt)
        return list(res.scalars().all())

    async def get_import(self, import_id: uuid.UUID) -> Optional[TransactionImport]:
        return await self._session.get(TransactionImport, import_id)

    async def set_import_notes(self, import_id: uuid.UUID, notes: Optional[str]) -> None:
        await self._session.execute(
            update(TransactionImport).where(TransactionImport.id == import_id).values(notes=notes)
        )

    async def set_import_resolutions(self, resolutions: Mapping[uuid.UUID, str]) -> None:
        for import_id, resolution in resolutions.items():
            await self._session.execute(
                update(TransactionImport).where(TransactionImport.id == import_id).values(resolution=resolution)
            )

    # Transactions
    async def find_existing_identifiers(self, user_id: uuid.UUID, identifiers: Iterable[str]) -> Dict[str, uuid.UUID]:
        ids = list(set(identifiers))
        if not ids:
            return {}
        stmt = select(Transaction.transaction_identifier, Transaction.id).where(
            Transaction.user_id == user_id, Transaction.transaction_identifier.in_(ids)
        )
        res = await self._session.execute(stmt)
        return {identifier: txn_id for identifier, txn_id in res.all()}

    async def get_transactions(self, transaction_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Transaction]:
        ids = list(set(transaction_ids))
        if not ids:
            return {}
        res = await self._session.execute(select(Transaction).where(Transaction.id.in_(ids)))
        return {txn.id: txn for txn in res.scalars().all()}

    async def insert_transactions(self, rows: Sequence[Mapping[str, object]]) -> int:
        """Insert-or-ignore on (user_id, transaction_identifier); returns rows actually inserted."""
        if not rows:
            return 0
        stmt = (
            pg_insert(Transaction)
            .values(list(rows))
            .on_conflict_do_nothing(index_elements=["user_id", "transaction_identifier"])
            .returning(Transaction.id)
        )
        res = await self._session.execute(stmt)
        return len(res.all())

    async def list_transactions(
        self,
        user_id: uuid.UUID,
        month: Optional[str] = None,
        statement_id: Optional[uuid.UUID] = None,
        status: str = "active",
        limit: int = 1000,
    ) -> List[Transaction]:
        stmt: Select[tuple[Transaction]] = select(Transaction).where(
            Transaction.user_id == user_id, Transaction.status == status
        )
        if month is not None:
            stmt = stmt.where(Transaction.month_bucket == month)
        if statement_id is not None:
            stmt = stmt.where(Transaction.statement_id == statement_id)
        stmt = stmt.order_by(desc(Transaction.date), Transaction.statement_page, Transaction.line_number).limit(limit)
        res = await self._session.execute(stmt)
        return list(res.scalars().all())

    async def list_months(self, user_id: uuid.UUID) -> List[str]:
        stmt = (
            select(distinct(Transaction.month_bucket))
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.month_bucket))
        )
        res = await self._session.execute(stmt)
        return list(res.scalars().all())

    async def summarize_transactions(
        self,
        user_id: uuid.UUID,
        month: Optional[str] = None,
        statement_id: Optional[uuid.UUID] = None,
    ) -> Tuple[Decimal, int, int]:
        """(spent, transaction count, statement count) over active transactions; spent sums positive amounts."""
        stmt = select(
            func.coalesce(func.sum(case((Transaction.amount > 0, Transaction.amount), else_=0)), 0),
            func.count(Transaction.id),
            func.count(distinct(Transaction.statement_id)),
        ).where(Transaction.user_id == user_id, Transaction.status == "active")
        if month is not None:
            stmt = stmt.where(Transaction.month_bucket == month)
        if statement_id is not None:
            stmt = stmt.where(Transaction.statement_id == statement_id)
        res = await self._session.execute(stmt)
        spent, count, statements = res.one()
        return Decimal(spent), count, statements

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
