from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from upload_service.errors import InvalidStatusTransition


class StatementStatus(str, Enum):
    INGESTING = "ingesting"
    PARSED = "parsed"
    INGESTED = "ingested"
    FAILED = "failed"


class Resolution(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Both count as "awaiting review" for callers
PENDING_STATUSES: FrozenSet[StatementStatus] = frozenset({StatementStatus.INGESTING, StatementStatus.PARSED})

REVIEWING = "reviewing"

_ALLOWED: Dict[StatementStatus, FrozenSet[StatementStatus]] = {
    StatementStatus.INGESTING: frozenset({StatementStatus.PARSED, StatementStatus.FAILED}),
    StatementStatus.PARSED: frozenset({StatementStatus.INGESTED}),
    StatementStatus.INGESTED: frozenset(),
    StatementStatus.FAILED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return StatementStatus(target) in _ALLOWED[StatementStatus(current)]


def transition(current: str, target: str) -> StatementStatus:
    if not can_transition(current, target):
        raise InvalidStatusTransition(current, target)
    return StatementStatus(target)


def external_status(status: str) -> str:
    """Status as shown to callers; ingesting/parsed both read as reviewing."""
    if StatementStatus(status) in PENDING_STATUSES:
        return REVIEWING
    return StatementStatus(status).value
