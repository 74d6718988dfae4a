"""Stored-deadline helpers used by transitions and the timeout supervisor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from matchroom.models import Room
from matchroom.models import RoomStatus

JOIN_TIMEOUT_REASON = "no second player joined in time"
CODE_TIMEOUT_REASON = "no room code provided"


class DeadlineKind(str, Enum):
    JOIN = "join"
    CODE = "code"


def due_deadline(room: Room, now: datetime) -> DeadlineKind | None:
    """Return which deadline of ``room`` has passed at ``now``, if any."""
    if room.status is RoomStatus.PENDING:
        if room.join_deadline_at is not None and room.join_deadline_at <= now:
            return DeadlineKind.JOIN
        return None
    if room.status is RoomStatus.LIVE and room.room_code is None:
        if room.code_deadline_at is not None and room.code_deadline_at <= now:
            return DeadlineKind.CODE
    return None


def timeout_reason(kind: DeadlineKind) -> str:
    if kind is DeadlineKind.JOIN:
        return JOIN_TIMEOUT_REASON
    return CODE_TIMEOUT_REASON


def seconds_remaining(deadline: datetime | None, now: datetime) -> int | None:
    if deadline is None:
        return None
    return max(0, int((deadline - now).total_seconds()))


__all__ = [
    "CODE_TIMEOUT_REASON",
    "DeadlineKind",
    "JOIN_TIMEOUT_REASON",
    "due_deadline",
    "seconds_remaining",
    "timeout_reason",
]
