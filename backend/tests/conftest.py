"""Shared fixtures for arena service, API and concurrency tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path

import pytest

from arena_testkit import CREATOR
from arena_testkit import JOINER
from arena_testkit import OUTSIDER
from arena_testkit import STARTING_BALANCE
from arena_testkit import TEST_JWT_SECRET
from arena_testkit import FrozenClock

# arena.runtime builds its service graph at import time; point it somewhere harmless.
_IMPORT_DIR = tempfile.mkdtemp(prefix="arena-tests-")
os.environ.setdefault("ARENA_JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("ARENA_SQLITE_PATH", os.path.join(_IMPORT_DIR, "rooms.sqlite3"))
os.environ.setdefault("ARENA_LEDGER_SQLITE_PATH", os.path.join(_IMPORT_DIR, "ledger.sqlite3"))
os.environ.setdefault("ARENA_EVIDENCE_DIR", os.path.join(_IMPORT_DIR, "evidence"))

from fastapi.testclient import TestClient  # noqa: E402

from arena.evidence.store import FileEvidenceStore  # noqa: E402
from arena.ledger.sqlite import SqliteLedger  # noqa: E402
from arena.rooms.service import MatchRoomService  # noqa: E402
from arena.rooms.store import RoomStore  # noqa: E402
from matchroom.models import RoomRules  # noqa: E402


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def ledger(tmp_path: Path) -> SqliteLedger:
    instance = SqliteLedger(str(tmp_path / "ledger.sqlite3"))
    instance.init_schema()
    for actor in (CREATOR, JOINER, OUTSIDER):
        instance.deposit(actor.user_id, STARTING_BALANCE, f"seed:{actor.user_id}")
    return instance


@pytest.fixture
def store(tmp_path: Path) -> RoomStore:
    instance = RoomStore(str(tmp_path / "rooms.sqlite3"))
    instance.init_schema()
    return instance


@pytest.fixture
def evidence_store(tmp_path: Path) -> FileEvidenceStore:
    return FileEvidenceStore(tmp_path / "evidence")


@pytest.fixture
def service(
    store: RoomStore,
    ledger: SqliteLedger,
    evidence_store: FileEvidenceStore,
    clock: FrozenClock,
) -> MatchRoomService:
    return MatchRoomService(
        store=store,
        ledger=ledger,
        evidence=evidence_store,
        rules=RoomRules(service_rate=Decimal("0.025")),
        clock=clock,
    )


@pytest.fixture
def live_room_id(service: MatchRoomService, clock: FrozenClock) -> str:
    """A live 100-coin room between CREATOR and JOINER with code LK12345."""
    room = service.create_room(CREATOR, bet_amount=100, ludo_username="hostplayer")
    clock.advance(10)
    service.join_room(JOINER, room.room_id, ludo_username="guestplayer")
    clock.advance(10)
    service.handle_join_request(CREATOR, room.room_id, user_id=JOINER.user_id, approve=True)
    clock.advance(10)
    service.save_room_code(CREATOR, room.room_id, "LK12345")
    return room.room_id


@pytest.fixture
def api_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Callable[..., TestClient]]:
    """Factory for a TestClient over fresh databases; kwargs become ARENA_* env vars."""
    opened: list[TestClient] = []

    def _new_client(**env: str) -> TestClient:
        monkeypatch.setenv("ARENA_JWT_SECRET", TEST_JWT_SECRET)
        monkeypatch.setenv("ARENA_SQLITE_PATH", str(tmp_path / "api_rooms.sqlite3"))
        monkeypatch.setenv("ARENA_LEDGER_SQLITE_PATH", str(tmp_path / "api_ledger.sqlite3"))
        monkeypatch.setenv("ARENA_EVIDENCE_DIR", str(tmp_path / "api_evidence"))
        monkeypatch.setenv("ARENA_SERVICE_RATE", "0.025")
        monkeypatch.setenv("ARENA_SUPERVISOR_ENABLED", "false")
        for key, value in env.items():
            monkeypatch.setenv(f"ARENA_{key.upper()}", value)

        import arena.main as arena_main
        import arena.runtime as runtime

        client = TestClient(arena_main.app)
        client.__enter__()
        opened.append(client)
        for actor in (CREATOR, JOINER, OUTSIDER):
            runtime.ledger.deposit(actor.user_id, STARTING_BALANCE, f"seed:{actor.user_id}")
        return client

    yield _new_client
    for client in opened:
        client.__exit__(None, None, None)
