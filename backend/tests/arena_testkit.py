"""Shared constants and helpers for arena service and API tests."""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone

from arena.core.clock import utc_now
from arena.core.tokens import create_access_token
from arena.rooms.service import Actor
from arena.rooms.service import EvidenceUpload

TEST_JWT_SECRET = "arena-test-secret-key-32-bytes-minimum"
T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

CREATOR = Actor(user_id=101)
JOINER = Actor(user_id=202)
OUTSIDER = Actor(user_id=303)
ADMIN = Actor(user_id=9001, role="admin")
STARTING_BALANCE = 1000

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 16
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 16


class FrozenClock:
    """Manually advanced clock for deadline tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def png_upload() -> EvidenceUpload:
    return EvidenceUpload(blob=PNG_BYTES, content_type="image/png")


def bearer(user_id: int, role: str = "player", secret: str = TEST_JWT_SECRET) -> dict[str, str]:
    token = create_access_token(
        user_id=user_id,
        secret=secret,
        now=utc_now(),
        expires_in_seconds=3600,
        role=role,
    )
    return {"Authorization": f"Bearer {token}"}
