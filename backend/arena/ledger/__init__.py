"""Wallet ledger collaborator."""

from arena.ledger.base import Ledger
from arena.ledger.base import LedgerKeyConflict
from arena.ledger.base import LedgerUnavailable
from arena.ledger.sqlite import SqliteLedger

__all__ = ["Ledger", "LedgerKeyConflict", "LedgerUnavailable", "SqliteLedger"]
