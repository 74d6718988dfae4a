"""Time helpers shared by the room store, the supervisor and API views."""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
from typing import Protocol

# Fixed width so stored timestamps order correctly as plain strings.
DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return utc_now()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def to_db_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


__all__ = [
    "Clock",
    "SystemClock",
    "from_db_timestamp",
    "to_db_timestamp",
    "to_utc_iso",
    "utc_now",
]
