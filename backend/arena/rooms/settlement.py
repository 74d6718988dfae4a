"""Apply ledger instructions produced by room transitions."""

from __future__ import annotations

import logging
import sqlite3

from arena.ledger.base import Ledger
from arena.ledger.base import LedgerKeyConflict
from arena.ledger.base import LedgerUnavailable
from matchroom.errors import SettlementFailure
from matchroom.settlement import LedgerInstruction
from matchroom.settlement import LedgerOp

logger = logging.getLogger(__name__)


class SettlementExecutor:
    """Move money for one transition, in order, through an idempotent ledger.

    Called while the room transaction is still open. If any instruction
    fails, the error propagates and the room change is rolled back; a retry
    replays the same idempotency keys, so instructions that did land are not
    applied twice.
    """

    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger

    def execute(self, room_id: str, instructions: list[LedgerInstruction]) -> int:
        """Apply ``instructions``; returns how many were new to the ledger."""
        applied = 0
        for instruction in instructions:
            try:
                if self._call(instruction):
                    applied += 1
            except (LedgerUnavailable, LedgerKeyConflict, sqlite3.Error, OSError) as exc:
                logger.error(
                    "settlement of room %s failed at %s: %s",
                    room_id,
                    instruction.idempotency_key,
                    exc,
                )
                raise SettlementFailure(
                    "ledger could not apply settlement; retry later",
                    room_id=room_id,
                    idempotency_key=instruction.idempotency_key,
                ) from exc
        if instructions:
            logger.info("room %s: %d/%d ledger instructions applied", room_id, applied, len(instructions))
        return applied

    def _call(self, instruction: LedgerInstruction) -> bool:
        if instruction.op is LedgerOp.DEBIT:
            return self._ledger.debit(instruction.user_id, instruction.amount, instruction.idempotency_key)
        if instruction.op is LedgerOp.CREDIT:
            return self._ledger.credit(instruction.user_id, instruction.amount, instruction.idempotency_key)
        return self._ledger.refund(instruction.user_id, instruction.amount, instruction.idempotency_key)


__all__ = ["SettlementExecutor"]
