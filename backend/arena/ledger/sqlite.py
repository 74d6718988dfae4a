"""SQLite-backed wallet ledger.

The ledger lives in its own database file so its short write transactions
never wait on a room transaction that is holding the room database lock.
"""

from __future__ import annotations

import logging
import sqlite3

from arena.core.clock import to_db_timestamp
from arena.core.clock import utc_now
from arena.core.db import create_sqlite_connection
from arena.ledger.base import LedgerKeyConflict
from arena.ledger.base import LedgerUnavailable
from matchroom.errors import InsufficientBalance
from matchroom.errors import InvalidAmount

logger = logging.getLogger(__name__)

CREATE_LEDGER_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS wallets (
    user_id INTEGER PRIMARY KEY,
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_entries (
    id INTEGER PRIMARY KEY,
    idempotency_key TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL,
    op TEXT NOT NULL CHECK (op IN ('deposit', 'debit', 'credit', 'refund')),
    amount INTEGER NOT NULL CHECK (amount > 0),
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ledger_entries_user_id ON ledger_entries(user_id);
"""


class SqliteLedger:
    """Idempotent wallet ledger; every movement is one row in ``ledger_entries``."""

    def __init__(self, path: str) -> None:
        self._path = path

    def init_schema(self) -> None:
        conn = create_sqlite_connection(self._path)
        try:
            conn.executescript(CREATE_LEDGER_SCHEMA_SQL)
        finally:
            conn.close()

    def deposit(self, user_id: int, amount: int, idempotency_key: str) -> bool:
        """Fund a wallet. Deposit flows live elsewhere; this is the seam they call."""
        return self._apply("deposit", user_id, amount, idempotency_key)

    def debit(self, user_id: int, amount: int, idempotency_key: str) -> bool:
        return self._apply("debit", user_id, amount, idempotency_key)

    def credit(self, user_id: int, amount: int, idempotency_key: str) -> bool:
        return self._apply("credit", user_id, amount, idempotency_key)

    def refund(self, user_id: int, amount: int, idempotency_key: str) -> bool:
        return self._apply("refund", user_id, amount, idempotency_key)

    def balance(self, user_id: int) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT balance FROM wallets WHERE user_id = ?", (user_id,)).fetchone()
            return 0 if row is None else int(row["balance"])
        finally:
            conn.close()

    def entries(self, key_prefix: str = "") -> list[dict[str, object]]:
        """Return ledger rows whose idempotency key starts with ``key_prefix``."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT idempotency_key, user_id, op, amount, created_at
                FROM ledger_entries
                WHERE substr(idempotency_key, 1, ?) = ?
                ORDER BY id
                """,
                (len(key_prefix), key_prefix),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            return create_sqlite_connection(self._path)
        except sqlite3.Error as exc:
            raise LedgerUnavailable(f"cannot open ledger database: {exc}") from exc

    def _apply(self, op: str, user_id: int, amount: int, idempotency_key: str) -> bool:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("ledger amount must be a positive integer", amount=amount)

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            existing = conn.execute(
                "SELECT user_id, op, amount FROM ledger_entries WHERE idempotency_key = ?",
                (idempotency_key,),
            ).fetchone()
            if existing is not None:
                conn.rollback()
                if (int(existing["user_id"]), existing["op"], int(existing["amount"])) != (user_id, op, amount):
                    raise LedgerKeyConflict(f"idempotency key {idempotency_key} reused for a different entry")
                logger.debug("ledger %s %s already applied", op, idempotency_key)
                return False

            row = conn.execute("SELECT balance FROM wallets WHERE user_id = ?", (user_id,)).fetchone()
            balance = 0 if row is None else int(row["balance"])
            delta = -amount if op == "debit" else amount
            if balance + delta < 0:
                conn.rollback()
                raise InsufficientBalance(
                    "insufficient balance",
                    user_id=user_id,
                    balance=balance,
                    required=amount,
                )

            now = to_db_timestamp(utc_now())
            conn.execute(
                """
                INSERT INTO wallets (user_id, balance, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET balance = excluded.balance, updated_at = excluded.updated_at
                """,
                (user_id, balance + delta, now),
            )
            conn.execute(
                """
                INSERT INTO ledger_entries (idempotency_key, user_id, op, amount, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (idempotency_key, user_id, op, amount, now),
            )
            conn.commit()
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.rollback()
            raise LedgerUnavailable(f"ledger write failed: {exc}") from exc
        finally:
            conn.close()

        logger.info("ledger %s user=%s amount=%s key=%s", op, user_id, amount, idempotency_key)
        return True
