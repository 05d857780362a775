from __future__ import annotations

from typing import Awaitable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

T = TypeVar("T")


class StatementServiceError(Exception):
    pass


class PersistenceError(StatementServiceError):
    """Storage failed; the statement was rolled back and the call may be retried."""

    retryable = True


class NotFound(StatementServiceError):
    pass


class InvalidStatusTransition(StatementServiceError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Statement cannot move from {current} to {target}")
        self.current = current
        self.target = target


async def guarded_read(action: str, awaitable: Awaitable[T]) -> T:
    """Await a repository read, reporting database failures as PersistenceError."""
    try:
        return await awaitable
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to {action}: {exc}") from exc
