from __future__ import annotations

import uuid

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.postgres import get_async_session
from repositories.statement_repo_pg import StatementRepositoryPg


async def get_user_id(x_user_id: str | None = Header(default=None)) -> uuid.UUID:
	"""
	Resolve the caller from the request.
	Authentication happens upstream; we require an `X-User-ID` header carrying a UUID.
	"""
	if not x_user_id:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing X-User-ID header")
	try:
		return uuid.UUID(x_user_id)
	except ValueError:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-ID header")


async def get_statement_repo(session: AsyncSession = Depends(get_async_session)) -> StatementRepositoryPg:
	return StatementRepositoryPg(session)
