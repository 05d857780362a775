from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from repositories.statement_repo_pg import StatementRepositoryPg
from schemas.statements import ParsedTableOut, ParseResponse
from settings.config import settings
from settings.deps import get_statement_repo, get_user_id
from statement_parser.extract_tables import UnsupportedDocument, extract_tables_from_pdf
from statement_parser.metadata import derive_statement_metadata
from upload_service.errors import InvalidStatusTransition, NotFound, PersistenceError
from upload_service.ingest import duplicate_result, file_sha256, find_duplicate, ingest, stored_metadata
from upload_service.models import (
    CommitRequest,
    CommitResult,
    DraftDecisionRequest,
    ImportReview,
    IngestResponse,
    StatementOut,
    TransactionRowIn,
)
from upload_service.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/statements", tags=["statements"])


async def _read_pdf(file: UploadFile) -> bytes:
    if file is None or file.filename is None or file.filename.strip() == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing file. Please upload a PDF file.")
    if file.content_type not in settings.ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only PDF files are allowed.")
    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Max size is {settings.MAX_UPLOAD_MB} MB.",
        )
    return content


async def _parse(content: bytes):
    try:
        # pdfplumber and the parser are CPU bound
        return await run_in_threadpool(extract_tables_from_pdf, content)
    except UnsupportedDocument as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _service(repo: StatementRepositoryPg) -> ReconciliationService:
    return ReconciliationService(repo)


@router.post("/parse", response_model=ParseResponse)
async def parse_statement(file: UploadFile = File(...), user_id: uuid.UUID = Depends(get_user_id)):
    content = await _read_pdf(file)
    tables = await _parse(content)
    metadata = derive_statement_metadata(tables[0], default_currency=settings.DEFAULT_CURRENCY)
    logger.info("Parsed %s for user %s: %s rows", file.filename, user_id, sum(len(t.rows) for t in tables))
    return ParseResponse(tables=[ParsedTableOut.from_table(t) for t in tables], metadata=metadata)


@router.post("/ingest", response_model=IngestResponse)
async def ingest_statement(
    file: UploadFile = File(...),
    bank: Optional[str] = Form(default=None),
    account_name: Optional[str] = Form(default=None),
    currency: Optional[str] = Form(default=None),
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    content = await _read_pdf(file)
    try:
        existing = await find_duplicate(repo, user_id, file_sha256(content))
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if existing is not None:
        # same bytes already stored for this user, answer without parsing
        logger.info("Duplicate upload %s for user %s (statement %s)", file.filename, user_id, existing.id)
        return IngestResponse(result=duplicate_result(existing), metadata=stored_metadata(existing))

    tables = await _parse(content)
    table = tables[0]
    metadata = derive_statement_metadata(
        table,
        default_currency=currency or settings.DEFAULT_CURRENCY,
        bank=bank,
        account_name=account_name,
    )
    rows = [TransactionRowIn.from_parsed(r) for r in table.rows]
    try:
        result = await ingest(repo, file.filename, content, rows, metadata, user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return IngestResponse(result=result, metadata=metadata)


@router.get("", response_model=List[StatementOut])
async def list_statements(
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await _service(repo).list_statements(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/pending", response_model=List[StatementOut])
async def list_pending_statements(
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await _service(repo).list_pending_statements(user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/{statement_id}/review", response_model=ImportReview)
async def get_review(
    statement_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await _service(repo).get_review(statement_id, user_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.put("/imports/{import_id}/draft", status_code=status.HTTP_204_NO_CONTENT)
async def save_draft_decision(
    import_id: uuid.UUID,
    body: DraftDecisionRequest,
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        await _service(repo).save_draft_decision(import_id, body.action, user_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.post("/{statement_id}/commit", response_model=CommitResult)
async def commit_statement(
    statement_id: uuid.UUID,
    body: CommitRequest,
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        return await _service(repo).commit(statement_id, body.decisions, user_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.delete("/{statement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_statement(
    statement_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    repo: StatementRepositoryPg = Depends(get_statement_repo),
):
    try:
        await _service(repo).delete_statement(statement_id, user_id)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
