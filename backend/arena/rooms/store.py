"""Durable room store.

Writers go through :meth:`RoomStore.transaction`, which serializes work on a
room twice: a process-local re-entrant lock per room id, and a SQLite
``BEGIN IMMEDIATE`` transaction that also serializes separate processes such
as API workers and the supervisor CLI.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from typing import get_args

from arena.core.clock import from_db_timestamp
from arena.core.clock import to_db_timestamp
from arena.core.clock import utc_now
from arena.core.db import create_sqlite_connection
from arena.rooms.schema import init_room_schema
from matchroom.errors import ClaimNotFound
from matchroom.errors import ConflictError
from matchroom.errors import RoomNotFound
from matchroom.models import Claim
from matchroom.models import ClaimType
from matchroom.models import JoinStatus
from matchroom.models import PlayerSlot
from matchroom.models import Room
from matchroom.models import RoomStatus
from matchroom.models import Winner
from matchroom.settlement import LedgerInstruction
from matchroom.settlement import LedgerOp
from matchroom.transitions import RoomAction
from matchroom.transitions import TransitionEvent

_ROOM_COLUMNS = (
    "room_id",
    "bet_amount",
    "creator_user_id",
    "status",
    "room_code",
    "created_at",
    "game_started_at",
    "game_ended_at",
    "join_deadline_at",
    "code_deadline_at",
    "winner_user_id",
    "amount_won",
    "net_amount",
    "total_prize_pool",
    "service_charge",
    "cancellation_reason",
    "version",
)
_CLAIM_COLUMNS = (
    "claim_id",
    "room_id",
    "user_id",
    "claim_type",
    "ludo_username",
    "evidence_ref",
    "created_at",
    "claim_status",
    "admin_notes",
    "resolver_id",
    "resolved_at",
)


@dataclass(slots=True)
class Page:
    """One page of a listing plus the unpaged total."""

    items: list[Any]
    total: int
    page: int
    limit: int


@dataclass(frozen=True, slots=True)
class StoredEvent:
    room_id: str
    version: int
    kind: str
    actor_id: int | None
    detail: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True, slots=True)
class PendingSettlement:
    """A settling action committed to before any money moves.

    While one exists the room has exactly one possible next state: the
    stored action replayed at ``decided_at`` on version ``base_version``.
    """

    room_id: str
    base_version: int
    action: RoomAction
    decided_at: datetime
    service_rate: Decimal
    instructions: tuple[LedgerInstruction, ...]


_ACTION_TYPES: dict[str, type] = {action_type.__name__: action_type for action_type in get_args(RoomAction)}
_ACTION_ENUM_FIELDS: dict[str, type[Enum]] = {"claim_type": ClaimType, "status": RoomStatus}


def _encode_action(action: RoomAction) -> str:
    values = {}
    for item in fields(action):
        value = getattr(action, item.name)
        values[item.name] = value.value if isinstance(value, Enum) else value
    return json.dumps({"type": type(action).__name__, "fields": values}, sort_keys=True)


def _decode_action(raw: str) -> RoomAction:
    data = json.loads(raw)
    values = {
        name: _ACTION_ENUM_FIELDS[name](value) if name in _ACTION_ENUM_FIELDS else value
        for name, value in data["fields"].items()
    }
    return _ACTION_TYPES[data["type"]](**values)


def _encode_instructions(instructions: tuple[LedgerInstruction, ...]) -> str:
    return json.dumps(
        [
            {"op": item.op.value, "user_id": item.user_id, "amount": item.amount, "key": item.idempotency_key}
            for item in instructions
        ]
    )


def _decode_instructions(raw: str) -> tuple[LedgerInstruction, ...]:
    return tuple(
        LedgerInstruction(op=LedgerOp(item["op"]), user_id=item["user_id"], amount=item["amount"], idempotency_key=item["key"])
        for item in json.loads(raw)
    )


def _pending_from_row(row: sqlite3.Row) -> PendingSettlement:
    return PendingSettlement(
        room_id=row["room_id"],
        base_version=int(row["base_version"]),
        action=_decode_action(row["action"]),
        decided_at=from_db_timestamp(row["decided_at"]),
        service_rate=Decimal(row["service_rate"]),
        instructions=_decode_instructions(row["instructions"]),
    )


_PENDING_SELECT = """
    SELECT room_id, base_version, action, decided_at, service_rate, instructions
    FROM room_pending_settlements
    WHERE room_id = ?
"""


def _ts(value: datetime | None) -> str | None:
    return None if value is None else to_db_timestamp(value)


def _room_row(room: Room) -> dict[str, object]:
    winner = room.winner
    return {
        "room_id": room.room_id,
        "bet_amount": room.bet_amount,
        "creator_user_id": room.creator_user_id,
        "status": room.status.value,
        "room_code": room.room_code,
        "created_at": _ts(room.created_at),
        "game_started_at": _ts(room.game_started_at),
        "game_ended_at": _ts(room.game_ended_at),
        "join_deadline_at": _ts(room.join_deadline_at),
        "code_deadline_at": _ts(room.code_deadline_at),
        "winner_user_id": None if winner is None else winner.user_id,
        "amount_won": None if winner is None else winner.amount_won,
        "net_amount": None if winner is None else winner.net_amount,
        "total_prize_pool": room.total_prize_pool,
        "service_charge": room.service_charge,
        "cancellation_reason": room.cancellation_reason,
        "version": room.version,
    }


def _claim_from_row(row: sqlite3.Row) -> Claim:
    return Claim(
        claim_id=row["claim_id"],
        room_id=row["room_id"],
        user_id=int(row["user_id"]),
        claim_type=row["claim_type"],
        ludo_username=row["ludo_username"],
        created_at=from_db_timestamp(row["created_at"]),
        evidence_ref=row["evidence_ref"],
        claim_status=row["claim_status"],
        admin_notes=row["admin_notes"],
        resolver_id=row["resolver_id"],
        resolved_at=from_db_timestamp(row["resolved_at"]),
    )


def _load_room(conn: sqlite3.Connection, room_id: str) -> Room | None:
    row = conn.execute(
        f"SELECT {', '.join(_ROOM_COLUMNS)} FROM rooms WHERE room_id = ?",
        (room_id,),
    ).fetchone()
    if row is None:
        return None

    players = [
        PlayerSlot(
            user_id=int(player["user_id"]),
            ludo_username=player["ludo_username"],
            joined_at=from_db_timestamp(player["joined_at"]),
            join_status=JoinStatus(player["join_status"]),
        )
        for player in conn.execute(
            """
            SELECT user_id, ludo_username, joined_at, join_status
            FROM room_players
            WHERE room_id = ?
            ORDER BY slot
            """,
            (room_id,),
        )
    ]
    claims = [
        _claim_from_row(claim)
        for claim in conn.execute(
            f"SELECT {', '.join(_CLAIM_COLUMNS)} FROM room_claims WHERE room_id = ? ORDER BY created_at, claim_id",
            (room_id,),
        )
    ]
    cancellation_requests = {
        int(request["user_id"]): from_db_timestamp(request["requested_at"])
        for request in conn.execute(
            """
            SELECT user_id, requested_at
            FROM room_cancellation_requests
            WHERE room_id = ?
            ORDER BY requested_at
            """,
            (room_id,),
        )
    }

    winner = None
    if row["winner_user_id"] is not None:
        winner = Winner(
            user_id=int(row["winner_user_id"]),
            amount_won=int(row["amount_won"]),
            net_amount=int(row["net_amount"]),
        )
    return Room(
        room_id=row["room_id"],
        bet_amount=int(row["bet_amount"]),
        creator_user_id=int(row["creator_user_id"]),
        created_at=from_db_timestamp(row["created_at"]),
        status=RoomStatus(row["status"]),
        players=players,
        room_code=row["room_code"],
        game_started_at=from_db_timestamp(row["game_started_at"]),
        game_ended_at=from_db_timestamp(row["game_ended_at"]),
        join_deadline_at=from_db_timestamp(row["join_deadline_at"]),
        code_deadline_at=from_db_timestamp(row["code_deadline_at"]),
        winner=winner,
        total_prize_pool=row["total_prize_pool"],
        service_charge=row["service_charge"],
        claims=claims,
        cancellation_requests=cancellation_requests,
        cancellation_reason=row["cancellation_reason"],
        version=int(row["version"]),
    )


def _load_rooms(conn: sqlite3.Connection, room_ids: list[str]) -> list[Room]:
    rooms = []
    for room_id in room_ids:
        room = _load_room(conn, room_id)
        if room is not None:
            rooms.append(room)
    return rooms


class RoomTransaction:
    """Read-modify-write access to one room inside an open write transaction."""

    def __init__(self, conn: sqlite3.Connection, room_id: str) -> None:
        self._conn = conn
        self.room_id = room_id

    def load(self) -> Room:
        room = _load_room(self._conn, self.room_id)
        if room is None:
            raise RoomNotFound("room not found", room_id=self.room_id)
        return room

    def exists(self) -> bool:
        row = self._conn.execute("SELECT 1 FROM rooms WHERE room_id = ?", (self.room_id,)).fetchone()
        return row is not None

    def insert(self, room: Room) -> None:
        row = _room_row(room)
        row["updated_at"] = to_db_timestamp(utc_now())
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        self._conn.execute(f"INSERT INTO rooms ({columns}) VALUES ({placeholders})", tuple(row.values()))
        self._write_children(room)

    def save(self, room: Room, *, expected_version: int, settled: bool = False) -> None:
        """Persist ``room`` if the stored version is still ``expected_version``."""
        row = _room_row(room)
        row.pop("room_id")
        row["updated_at"] = to_db_timestamp(utc_now())
        assignments = ", ".join(f"{column} = ?" for column in row)
        params = list(row.values())
        if settled:
            assignments += ", settled_at = COALESCE(settled_at, ?)"
            params.append(row["updated_at"])
        cursor = self._conn.execute(
            f"UPDATE rooms SET {assignments} WHERE room_id = ? AND version = ?",
            (*params, room.room_id, expected_version),
        )
        if cursor.rowcount != 1:
            raise ConflictError(
                "room changed concurrently; refresh and retry",
                room_id=room.room_id,
                expected_version=expected_version,
            )
        self._write_children(room)

    def append_events(self, room_id: str, version: int, events: list[TransitionEvent], now: datetime) -> None:
        created_at = to_db_timestamp(now)
        self._conn.executemany(
            """
            INSERT INTO room_events (room_id, version, kind, actor_id, detail, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (room_id, version, event.kind, event.actor_id, json.dumps(event.detail, sort_keys=True), created_at)
                for event in events
            ],
        )

    def pending_settlement(self) -> PendingSettlement | None:
        row = self._conn.execute(_PENDING_SELECT, (self.room_id,)).fetchone()
        return None if row is None else _pending_from_row(row)

    def record_pending_settlement(self, pending: PendingSettlement) -> None:
        self._conn.execute(
            """
            INSERT INTO room_pending_settlements
                (room_id, base_version, action, decided_at, service_rate, instructions)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                pending.room_id,
                pending.base_version,
                _encode_action(pending.action),
                to_db_timestamp(pending.decided_at),
                str(pending.service_rate),
                _encode_instructions(pending.instructions),
            ),
        )

    def clear_pending_settlement(self) -> None:
        self._conn.execute("DELETE FROM room_pending_settlements WHERE room_id = ?", (self.room_id,))

    def _write_children(self, room: Room) -> None:
        conn = self._conn
        conn.execute("DELETE FROM room_players WHERE room_id = ?", (room.room_id,))
        conn.executemany(
            """
            INSERT INTO room_players (room_id, slot, user_id, ludo_username, joined_at, join_status)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (room.room_id, slot_index, slot.user_id, slot.ludo_username, _ts(slot.joined_at), slot.join_status.value)
                for slot_index, slot in enumerate(room.players)
            ],
        )

        conn.execute("DELETE FROM room_claims WHERE room_id = ?", (room.room_id,))
        conn.executemany(
            f"INSERT INTO room_claims ({', '.join(_CLAIM_COLUMNS)}) VALUES ({', '.join('?' for _ in _CLAIM_COLUMNS)})",
            [
                (
                    claim.claim_id,
                    claim.room_id,
                    claim.user_id,
                    claim.claim_type.value,
                    claim.ludo_username,
                    claim.evidence_ref,
                    _ts(claim.created_at),
                    claim.claim_status.value,
                    claim.admin_notes,
                    claim.resolver_id,
                    _ts(claim.resolved_at),
                )
                for claim in room.claims
            ],
        )

        conn.execute("DELETE FROM room_cancellation_requests WHERE room_id = ?", (room.room_id,))
        conn.executemany(
            "INSERT INTO room_cancellation_requests (room_id, user_id, requested_at) VALUES (?, ?, ?)",
            [(room.room_id, user_id, _ts(requested_at)) for user_id, requested_at in room.cancellation_requests.items()],
        )


class _RoomLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class RoomStore:
    """SQLite room store with per-room write serialization."""

    def __init__(self, sqlite_path: str) -> None:
        self._path = sqlite_path
        self._room_locks: dict[str, _RoomLock] = {}
        self._room_locks_guard = threading.Lock()

    def init_schema(self) -> None:
        init_room_schema(self._path)

    @contextmanager
    def lock_room(self, room_id: str) -> Iterator[None]:
        """Acquire the process-local write lock of one room.

        Entries live only while some thread holds or waits for them, so the
        map stays as small as the number of rooms being written right now.
        """
        with self._room_locks_guard:
            entry = self._room_locks.get(room_id)
            if entry is None:
                entry = self._room_locks[room_id] = _RoomLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._room_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._room_locks[room_id]

    def active_lock_count(self) -> int:
        with self._room_locks_guard:
            return len(self._room_locks)

    @contextmanager
    def transaction(self, room_id: str) -> Iterator[RoomTransaction]:
        """Open a write transaction on one room; commits only if the block returns."""
        with self.lock_room(room_id):
            conn = create_sqlite_connection(self._path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield RoomTransaction(conn, room_id)
                conn.commit()
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        conn = create_sqlite_connection(self._path)
        try:
            yield conn
        finally:
            conn.close()

    def get(self, room_id: str) -> Room:
        with self._reader() as conn:
            room = _load_room(conn, room_id)
        if room is None:
            raise RoomNotFound("room not found", room_id=room_id)
        return room

    def list_rooms(self, *, status: RoomStatus | None = None, page: int = 1, limit: int = 20) -> Page:
        where = ""
        params: list[object] = []
        if status is not None:
            where = "WHERE status = ?"
            params.append(status.value)
        with self._reader() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM rooms {where}", params).fetchone()[0]
            room_ids = [
                row["room_id"]
                for row in conn.execute(
                    f"SELECT room_id FROM rooms {where} ORDER BY created_at DESC, room_id LIMIT ? OFFSET ?",
                    (*params, limit, (page - 1) * limit),
                )
            ]
            rooms = _load_rooms(conn, room_ids)
        return Page(items=rooms, total=int(total), page=page, limit=limit)

    def rooms_for_user(self, user_id: int, *, statuses: tuple[RoomStatus, ...] = ()) -> list[Room]:
        """Rooms where the user holds a slot (approved or awaiting approval)."""
        sql = """
            SELECT r.room_id
            FROM rooms r
            JOIN room_players p ON p.room_id = r.room_id
            WHERE p.user_id = ?
        """
        params: list[object] = [user_id]
        if statuses:
            sql += f" AND r.status IN ({', '.join('?' for _ in statuses)})"
            params.extend(status.value for status in statuses)
        sql += " ORDER BY r.created_at DESC, r.room_id"
        with self._reader() as conn:
            room_ids = [row["room_id"] for row in conn.execute(sql, params)]
            return _load_rooms(conn, room_ids)

    def rooms_with_pending_requests(self, creator_user_id: int) -> list[Room]:
        with self._reader() as conn:
            room_ids = [
                row["room_id"]
                for row in conn.execute(
                    """
                    SELECT DISTINCT r.room_id, r.created_at
                    FROM rooms r
                    JOIN room_players p ON p.room_id = r.room_id
                    WHERE r.creator_user_id = ?
                      AND r.status = 'pending'
                      AND p.join_status = 'pending_approval'
                    ORDER BY r.created_at
                    """,
                    (creator_user_id,),
                )
            ]
            return _load_rooms(conn, room_ids)

    def due_room_ids(self, now: datetime) -> list[str]:
        """Rooms whose stored join or code deadline has passed at ``now``."""
        stamp = to_db_timestamp(now)
        with self._reader() as conn:
            rows = conn.execute(
                """
                SELECT room_id FROM rooms
                WHERE (status = 'pending' AND join_deadline_at IS NOT NULL AND join_deadline_at <= ?)
                   OR (status = 'live' AND room_code IS NULL
                       AND code_deadline_at IS NOT NULL AND code_deadline_at <= ?)
                ORDER BY created_at
                """,
                (stamp, stamp),
            ).fetchall()
        return [row["room_id"] for row in rows]

    def rooms_with_claims(self, *, claim_status: str | None = None, page: int = 1, limit: int = 20) -> Page:
        """Rooms that have claims (optionally in one claim status), newest claim activity first."""
        where = ""
        params: list[object] = []
        if claim_status is not None:
            where = "WHERE claim_status = ?"
            params.append(claim_status)
        with self._reader() as conn:
            total = conn.execute(f"SELECT COUNT(DISTINCT room_id) FROM room_claims {where}", params).fetchone()[0]
            room_ids = [
                row["room_id"]
                for row in conn.execute(
                    f"""
                    SELECT room_id, MAX(created_at) AS last_claim_at
                    FROM room_claims {where}
                    GROUP BY room_id
                    ORDER BY last_claim_at DESC, room_id
                    LIMIT ? OFFSET ?
                    """,
                    (*params, limit, (page - 1) * limit),
                )
            ]
            rooms = _load_rooms(conn, room_ids)
        return Page(items=rooms, total=int(total), page=page, limit=limit)

    def find_claim(self, claim_id: str) -> Claim:
        with self._reader() as conn:
            row = conn.execute(
                f"SELECT {', '.join(_CLAIM_COLUMNS)} FROM room_claims WHERE claim_id = ?",
                (claim_id,),
            ).fetchone()
        if row is None:
            raise ClaimNotFound("claim not found", claim_id=claim_id)
        return _claim_from_row(row)

    def status_counts(self) -> dict[str, int]:
        with self._reader() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS total FROM rooms GROUP BY status").fetchall()
        counts = {status.value: 0 for status in RoomStatus}
        for row in rows:
            counts[row["status"]] = int(row["total"])
        return counts

    def open_dispute_count(self) -> int:
        """Rooms whose two pending claims agree in type (win/win or loss/loss)."""
        with self._reader() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM (
                    SELECT room_id
                    FROM room_claims
                    WHERE claim_status = 'pending'
                    GROUP BY room_id
                    HAVING COUNT(*) = 2 AND COUNT(DISTINCT claim_type) = 1
                )
                """
            ).fetchone()
        return int(row[0])

    def settlement_totals(self) -> dict[str, int]:
        with self._reader() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(service_charge), 0) AS service_charge,
                       COALESCE(SUM(net_amount), 0) AS paid_out
                FROM rooms
                WHERE status = 'finished'
                """
            ).fetchone()
        return {"service_charge": int(row["service_charge"]), "paid_out": int(row["paid_out"])}

    def pending_settlement(self, room_id: str) -> PendingSettlement | None:
        with self._reader() as conn:
            row = conn.execute(_PENDING_SELECT, (room_id,)).fetchone()
        return None if row is None else _pending_from_row(row)

    def pending_settlement_room_ids(self) -> list[str]:
        """Rooms whose settlement was decided but has not completed yet, oldest first."""
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT room_id FROM room_pending_settlements ORDER BY decided_at, room_id"
            ).fetchall()
        return [row["room_id"] for row in rows]

    def events(self, room_id: str) -> list[StoredEvent]:
        with self._reader() as conn:
            rows = conn.execute(
                """
                SELECT room_id, version, kind, actor_id, detail, created_at
                FROM room_events
                WHERE room_id = ?
                ORDER BY id
                """,
                (room_id,),
            ).fetchall()
        return [
            StoredEvent(
                room_id=row["room_id"],
                version=int(row["version"]),
                kind=row["kind"],
                actor_id=row["actor_id"],
                detail=json.loads(row["detail"]),
                created_at=from_db_timestamp(row["created_at"]),
            )
            for row in rows
        ]


__all__ = ["Page", "PendingSettlement", "RoomStore", "RoomTransaction", "StoredEvent"]
