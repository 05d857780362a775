from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from db.models import Statement, Transaction, TransactionImport
from upload_service.errors import InvalidStatusTransition, NotFound, PersistenceError, guarded_read
from upload_service.lifecycle import PENDING_STATUSES, Resolution, StatementStatus, external_status, transition
from upload_service.models import (
    CommitResult,
    DecisionAction,
    DraftDecision,
    DuplicatePair,
    ImportDecision,
    ImportReview,
    StatementOut,
    TransactionSnapshot,
)

logger = logging.getLogger(__name__)

DRAFT_PREFIX = "DRAFT:"


def draft_marker(action: DecisionAction) -> str:
    return f"{DRAFT_PREFIX}{action.value}"


def parse_draft(notes: Optional[str]) -> Optional[DecisionAction]:
    if not notes or not notes.startswith(DRAFT_PREFIX):
        return None
    try:
        return DecisionAction(notes[len(DRAFT_PREFIX):].strip())
    except ValueError:
        return None


def _snapshot(row) -> TransactionSnapshot:
    return TransactionSnapshot(
        id=row.id,
        transaction_identifier=row.transaction_identifier,
        date=row.date,
        description=row.description,
        amount=row.amount,
        balance=row.balance,
        statement_page=row.statement_page,
        line_number=row.line_number,
    )


def _statement_out(statement: Statement, status: Optional[str] = None) -> StatementOut:
    return StatementOut(
        id=statement.id,
        source_file_name=statement.source_file_name,
        bank=statement.bank,
        account_name=statement.account_name,
        statement_type=statement.statement_type,
        period_start=statement.period_start,
        period_end=statement.period_end,
        currency=statement.currency,
        status=status or statement.status,
        created_at=statement.created_at,
    )


def resolve(imp: TransactionImport, explicit: Optional[DecisionAction]) -> Resolution:
    """
    Final resolution of a pending import.

    An explicit decision wins, then a saved draft, then the default: new rows
    are accepted and duplicates rejected (the stored transaction is kept).
    """
    action = explicit or parse_draft(imp.notes)
    if action is None:
        return Resolution.REJECTED if imp.existing_transaction_id else Resolution.ACCEPTED
    return Resolution.ACCEPTED if action == DecisionAction.ACCEPT else Resolution.REJECTED


class ReconciliationService:
    def __init__(self, repo) -> None:
        self.repo = repo

    async def _require_statement(
        self, statement_id: uuid.UUID, user_id: Optional[uuid.UUID] = None, for_update: bool = False
    ) -> Statement:
        load = self.repo.get_statement_for_update if for_update else self.repo.get_statement
        statement = await guarded_read("load statement", load(statement_id))
        if statement is None or (user_id is not None and statement.uploaded_by != user_id):
            raise NotFound(f"Statement {statement_id} not found")
        return statement

    async def list_statements(self, user_id: uuid.UUID) -> List[StatementOut]:
        statements = await guarded_read("list statements", self.repo.list_statements(user_id))
        return [_statement_out(s) for s in statements]

    async def list_pending_statements(self, user_id: uuid.UUID) -> List[StatementOut]:
        statements = await guarded_read(
            "list pending statements",
            self.repo.list_statements(user_id, statuses=[s.value for s in PENDING_STATUSES]),
        )
        return [_statement_out(s, external_status(s.status)) for s in statements]

    async def get_statement(self, statement_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> StatementOut:
        return _statement_out(await self._require_statement(statement_id, user_id))

    async def get_review(self, statement_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> ImportReview:
        statement = await self._require_statement(statement_id, user_id)
        imports = await guarded_read(
            "list imports", self.repo.list_imports(statement_id, resolution=Resolution.PENDING.value)
        )
        existing = await guarded_read(
            "load stored transactions",
            self.repo.get_transactions(imp.existing_transaction_id for imp in imports if imp.existing_transaction_id),
        )

        new_rows: List[TransactionSnapshot] = []
        duplicates: List[DuplicatePair] = []
        for imp in imports:
            if not imp.existing_transaction_id:
                new_rows.append(_snapshot(imp))
                continue
            stored: Optional[Transaction] = existing.get(imp.existing_transaction_id)
            draft = parse_draft(imp.notes)
            duplicates.append(
                DuplicatePair(
                    import_id=imp.id,
                    existing=_snapshot(stored) if stored is not None else None,
                    new=_snapshot(imp),
                    initial_decision=DraftDecision.ADD_NEW if draft == DecisionAction.ACCEPT else DraftDecision.KEEP_EXISTING,
                )
            )
        return ImportReview(
            statement=_statement_out(statement, external_status(statement.status)),
            new_transactions=new_rows,
            duplicates=duplicates,
        )

    async def save_draft_decision(
        self, import_id: uuid.UUID, action: DecisionAction, user_id: Optional[uuid.UUID] = None
    ) -> None:
        """Remember a reviewer's choice without resolving the import."""
        imp = await guarded_read("load import", self.repo.get_import(import_id))
        if imp is None:
            raise NotFound(f"Import {import_id} not found")
        if user_id is not None:
            await self._require_statement(imp.statement_id, user_id)
        try:
            await self.repo.set_import_notes(import_id, draft_marker(action))
            await self.repo.commit()
        except SQLAlchemyError as exc:
            await self.repo.rollback()
            raise PersistenceError(f"Failed to save draft decision: {exc}") from exc

    async def commit(
        self,
        statement_id: uuid.UUID,
        decisions: Iterable[ImportDecision] = (),
        user_id: Optional[uuid.UUID] = None,
    ) -> CommitResult:
        """
        Resolve every pending import of a statement and store the accepted ones.

        Inserts, resolutions and the move to `ingested` happen in one database
        transaction; on failure everything is rolled back and PersistenceError
        is raised. A committed statement cannot be committed again: the row is
        locked and claimed with a conditional status update before any import
        is read, so of two concurrent commits only one gets past the claim.
        """
        statement = await self._require_statement(statement_id, user_id, for_update=True)
        target = transition(statement.status, StatementStatus.INGESTED)

        try:
            claimed = await self.repo.set_status(statement_id, target.value, expected=statement.status)
        except SQLAlchemyError as exc:
            await self.repo.rollback()
            raise PersistenceError(f"Failed to commit statement: {exc}") from exc
        if not claimed:
            # another commit moved the statement after our read; nothing written here
            current = await self._require_statement(statement_id, user_id)
            logger.warning("Statement %s already moved to %s by a concurrent commit", statement_id, current.status)
            raise InvalidStatusTransition(current.status, target.value)

        explicit: Dict[uuid.UUID, DecisionAction] = {d.import_id: d.action for d in decisions}
        try:
            imports = await self.repo.list_imports(statement_id, resolution=Resolution.PENDING.value)
        except SQLAlchemyError as exc:
            await self.repo.rollback()
            raise PersistenceError(f"Failed to commit statement: {exc}") from exc

        resolutions: Dict[uuid.UUID, str] = {}
        to_insert: List[Dict[str, object]] = []
        for imp in imports:
            resolution = resolve(imp, explicit.get(imp.id))
            resolutions[imp.id] = resolution.value
            if resolution == Resolution.ACCEPTED:
                to_insert.append(
                    {
                        "user_id": statement.uploaded_by,
                        "statement_id": statement_id,
                        "transaction_identifier": imp.transaction_identifier,
                        "date": imp.date,
                        "month_bucket": imp.month_bucket,
                        "description": imp.description,
                        "amount": imp.amount,
                        "balance": imp.balance,
                        "statement_page": imp.statement_page,
                        "line_number": imp.line_number,
                        "status": "active",
                    }
                )

        try:
            inserted = await self.repo.insert_transactions(to_insert)
            await self.repo.set_import_resolutions(resolutions)
            await self.repo.commit()
        except SQLAlchemyError as exc:
            logger.error("Commit of statement %s failed: %s", statement_id, exc)
            await self.repo.rollback()
            raise PersistenceError(f"Failed to commit statement: {exc}") from exc

        accepted = len(to_insert)
        logger.info(
            "Committed statement %s: %s accepted (%s inserted), %s rejected",
            statement_id,
            accepted,
            inserted,
            len(resolutions) - accepted,
        )
        return CommitResult(
            success=True,
            statement_id=statement_id,
            accepted=accepted,
            rejected=len(resolutions) - accepted,
            inserted=inserted,
        )

    async def delete_statement(self, statement_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> None:
        """Whole-statement rollback: drops the statement and its staged imports."""
        await self._require_statement(statement_id, user_id)
        try:
            await self.repo.delete_statement(statement_id)
            await self.repo.commit()
        except SQLAlchemyError as exc:
            await self.repo.rollback()
            raise PersistenceError(f"Failed to delete statement: {exc}") from exc
        logger.info("Deleted statement %s", statement_id)
