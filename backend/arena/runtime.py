"""Process-wide runtime state shared by REST handlers and the supervisor."""

from __future__ import annotations

from arena.core.config import Settings
from arena.core.config import load_settings
from arena.evidence.store import FileEvidenceStore
from arena.ledger.sqlite import SqliteLedger
from arena.rooms.service import MatchRoomService
from arena.rooms.store import RoomStore
from arena.rooms.supervisor import TimeoutSupervisor


def build_service(settings: Settings) -> tuple[MatchRoomService, SqliteLedger]:
    """Wire store, ledger and evidence collaborators; ensure schemas exist."""
    store = RoomStore(settings.arena_sqlite_path)
    store.init_schema()
    ledger = SqliteLedger(settings.arena_ledger_sqlite_path)
    ledger.init_schema()
    service = MatchRoomService(
        store=store,
        ledger=ledger,
        evidence=FileEvidenceStore(settings.arena_evidence_dir),
        rules=settings.room_rules(),
        max_evidence_bytes=settings.arena_max_evidence_bytes,
    )
    return service, ledger


settings = load_settings()
room_service, ledger = build_service(settings)
supervisor = TimeoutSupervisor(room_service, interval_seconds=settings.arena_supervisor_interval_seconds)


def startup() -> None:
    """Reload settings and rebuild the service graph."""
    global settings, room_service, ledger, supervisor
    settings = load_settings()
    room_service, ledger = build_service(settings)
    supervisor = TimeoutSupervisor(room_service, interval_seconds=settings.arena_supervisor_interval_seconds)


__all__ = [
    "Settings",
    "build_service",
    "ledger",
    "room_service",
    "settings",
    "startup",
    "supervisor",
]
