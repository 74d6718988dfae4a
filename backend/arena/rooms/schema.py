"""Schema bootstrap for match room tables."""

from __future__ import annotations

from arena.core.db import create_sqlite_connection

CREATE_ROOM_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rooms (
    room_id TEXT PRIMARY KEY,
    bet_amount INTEGER NOT NULL CHECK (bet_amount > 0),
    creator_user_id INTEGER NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('pending', 'live', 'ended', 'finished', 'cancelled')),
    room_code TEXT NULL,
    created_at TEXT NOT NULL,
    game_started_at TEXT NULL,
    game_ended_at TEXT NULL,
    join_deadline_at TEXT NULL,
    code_deadline_at TEXT NULL,
    winner_user_id INTEGER NULL,
    amount_won INTEGER NULL,
    net_amount INTEGER NULL,
    total_prize_pool INTEGER NULL,
    service_charge INTEGER NULL,
    cancellation_reason TEXT NULL,
    settled_at TEXT NULL,
    version INTEGER NOT NULL CHECK (version >= 1),
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rooms_status_created_at ON rooms(status, created_at);
CREATE INDEX IF NOT EXISTS idx_rooms_join_deadline_at ON rooms(join_deadline_at);
CREATE INDEX IF NOT EXISTS idx_rooms_code_deadline_at ON rooms(code_deadline_at);

CREATE TABLE IF NOT EXISTS room_players (
    room_id TEXT NOT NULL,
    slot INTEGER NOT NULL CHECK (slot IN (0, 1)),
    user_id INTEGER NOT NULL,
    ludo_username TEXT NOT NULL,
    joined_at TEXT NOT NULL,
    join_status TEXT NOT NULL CHECK (join_status IN ('pending_approval', 'approved')),
    PRIMARY KEY (room_id, user_id),
    UNIQUE (room_id, slot),
    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);

CREATE INDEX IF NOT EXISTS idx_room_players_user_id ON room_players(user_id);

CREATE TABLE IF NOT EXISTS room_claims (
    claim_id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL,
    user_id INTEGER NOT NULL,
    claim_type TEXT NOT NULL CHECK (claim_type IN ('win', 'loss')),
    ludo_username TEXT NOT NULL,
    evidence_ref TEXT NULL,
    created_at TEXT NOT NULL,
    claim_status TEXT NOT NULL CHECK (claim_status IN ('pending', 'verified', 'rejected')),
    admin_notes TEXT NULL,
    resolver_id INTEGER NULL,
    resolved_at TEXT NULL,
    UNIQUE (room_id, user_id),
    CHECK (claim_type <> 'win' OR evidence_ref IS NOT NULL),
    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);

CREATE INDEX IF NOT EXISTS idx_room_claims_status ON room_claims(claim_status, created_at);

CREATE TABLE IF NOT EXISTS room_cancellation_requests (
    room_id TEXT NOT NULL,
    user_id INTEGER NOT NULL,
    requested_at TEXT NOT NULL,
    PRIMARY KEY (room_id, user_id),
    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);

CREATE TABLE IF NOT EXISTS room_events (
    id INTEGER PRIMARY KEY,
    room_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    kind TEXT NOT NULL,
    actor_id INTEGER NULL,
    detail TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);

CREATE INDEX IF NOT EXISTS idx_room_events_room_id ON room_events(room_id, id);

CREATE TABLE IF NOT EXISTS room_pending_settlements (
    room_id TEXT PRIMARY KEY,
    base_version INTEGER NOT NULL,
    action TEXT NOT NULL,
    decided_at TEXT NOT NULL,
    service_rate TEXT NOT NULL,
    instructions TEXT NOT NULL,
    FOREIGN KEY (room_id) REFERENCES rooms(room_id)
);
"""


def init_room_schema(sqlite_path: str) -> None:
    """Ensure room tables/indexes exist."""
    conn = create_sqlite_connection(sqlite_path)
    try:
        conn.executescript(CREATE_ROOM_SCHEMA_SQL)
    finally:
        conn.close()
