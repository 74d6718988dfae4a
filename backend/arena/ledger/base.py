"""Wallet ledger interface consumed by the settlement executor."""

from __future__ import annotations

from typing import Protocol


class Ledger(Protocol):
    """Money movements keyed by idempotency key.

    Repeating a call with a key that was already applied is a no-op and
    returns False.
    """

    def debit(self, user_id: int, amount: int, idempotency_key: str) -> bool: ...

    def credit(self, user_id: int, amount: int, idempotency_key: str) -> bool: ...

    def refund(self, user_id: int, amount: int, idempotency_key: str) -> bool: ...

    def balance(self, user_id: int) -> int: ...


class LedgerUnavailable(RuntimeError):
    """The ledger could not be reached or could not persist an entry."""


class LedgerKeyConflict(RuntimeError):
    """An idempotency key was reused for a different movement."""
