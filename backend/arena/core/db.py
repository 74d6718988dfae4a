"""SQLite connection helpers for backend persistence."""

from __future__ import annotations

import sqlite3

BUSY_TIMEOUT_MS = 5000


def create_sqlite_connection(path: str) -> sqlite3.Connection:
    """Create a SQLite connection with foreign keys on and explicit transactions.

    ``isolation_level=None`` leaves BEGIN/COMMIT to the caller so writers can
    take the database lock up front with ``BEGIN IMMEDIATE``.
    """
    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_MS / 1000, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    return conn
