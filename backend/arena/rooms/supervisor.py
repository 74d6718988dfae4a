"""Timeout supervisor: cancels rooms whose stored deadlines have passed
and finishes settlements a ledger outage left pending."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime

from arena.rooms.service import MatchRoomService
from matchroom.errors import MatchRoomError

logger = logging.getLogger(__name__)


class TimeoutSupervisor:
    """Stateless sweeper over ``join_deadline_at`` / ``code_deadline_at``.

    Settlements left pending by a ledger outage are retried before deadlines.

    Each due room is expired through the service's guarded entry point, so a
    sweep racing a player action (or another sweeper process) either wins the
    room lock first or finds the room already moved on and does nothing.
    """

    def __init__(self, service: MatchRoomService, *, interval_seconds: float = 5.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._service = service
        self._interval = interval_seconds

    def scan_once(self, now: datetime | None = None) -> list[str]:
        """Finish pending settlements, then expire every due room once.

        Returns the ids of the rooms this sweep cancelled for a missed deadline.
        """
        for room_id in self._service.store.pending_settlement_room_ids():
            try:
                self._service.retry_settlement(room_id)
            except MatchRoomError as exc:
                logger.warning("settling room %s failed again: %s %s", room_id, exc.code, exc.message)
        at = now or self._service.clock.now()
        expired: list[str] = []
        for room_id in self._service.store.due_room_ids(at):
            try:
                if self._service.expire_room(room_id):
                    expired.append(room_id)
            except MatchRoomError as exc:
                # Left for the next sweep; settlement keys make the retry safe.
                logger.warning("expiring room %s failed: %s %s", room_id, exc.code, exc.message)
        if expired:
            logger.info("supervisor expired %d room(s): %s", len(expired), ", ".join(expired))
        return expired

    async def run(self, stop: asyncio.Event) -> None:
        """Sweep every interval until ``stop`` is set."""
        logger.info("timeout supervisor started (interval %.1fs)", self._interval)
        while not stop.is_set():
            try:
                await asyncio.to_thread(self.scan_once)
            except Exception:
                logger.exception("supervisor sweep crashed; retrying next interval")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
        logger.info("timeout supervisor stopped")

    def run_forever(self, stop: threading.Event | None = None) -> None:
        """Blocking loop for running the supervisor as its own process."""
        stop = stop or threading.Event()
        logger.info("timeout supervisor started (interval %.1fs)", self._interval)
        while not stop.is_set():
            self.scan_once()
            stop.wait(self._interval)
        logger.info("timeout supervisor stopped")


__all__ = ["TimeoutSupervisor"]
