from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from repositories.statement_repo_pg import StatementRepositoryPg
from settings.deps import get_statement_repo, get_user_id
from transactions.models import MonthSummary, TransactionOut
from transactions.transaction_service import TransactionService
from upload_service.errors import PersistenceError

router = APIRouter(prefix="/transactions", tags=["transactions"])

MONTH_PATTERN = r"^\d{4}-\d{2}$"


@router.get("", response_model=List[TransactionOut])
async def list_transactions(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    statement_id: Optional[uuid.UUID] = Query(default=None),
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await TransactionService(repo).list_transactions(user_id, month=month, statement_id=statement_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/months", response_model=List[str])
async def list_months(
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await TransactionService(repo).list_months(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/summary", response_model=MonthSummary)
async def month_summary(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN),
    statement_id: Optional[uuid.UUID] = Query(default=None),
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await TransactionService(repo).month_summary(user_id, month=month, statement_id=statement_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
