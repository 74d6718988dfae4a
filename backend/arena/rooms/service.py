"""Match room service.

Every room mutation, from a player, an admin or the timeout supervisor, runs
through :meth:`MatchRoomService._run`: lock the room, re-read it inside a
write transaction, apply the pure transition function, persist the new state
and its audit events, move money, then commit. Nothing becomes visible unless
all of it succeeded.

A transition that settles the room is first committed as a pending settlement
holding the decided action. Applying it is retried, by the next writer or the
supervisor, until the ledger accepts every instruction; until then the room
cannot take any other outcome.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import replace

from arena.core.clock import Clock
from arena.core.clock import SystemClock
from arena.core.tokens import ROLE_ADMIN
from arena.core.tokens import ROLE_PLAYER
from arena.core.username import UsernameValidationError
from arena.core.username import normalize_and_validate_username
from arena.evidence.store import Evidence
from arena.evidence.store import EvidenceStore
from arena.evidence.store import validate_evidence
from arena.ledger.base import Ledger
from arena.rooms.settlement import SettlementExecutor
from arena.rooms.store import Page
from arena.rooms.store import PendingSettlement
from arena.rooms.store import RoomStore
from arena.rooms.store import RoomTransaction
from arena.rooms.store import StoredEvent
from matchroom.errors import AdminRequired
from matchroom.errors import ClaimNotFound
from matchroom.errors import ConflictError
from matchroom.errors import EvidenceRequired
from matchroom.errors import InsufficientBalance
from matchroom.errors import InvalidIdentifier
from matchroom.errors import NotRoomMember
from matchroom.errors import SettlementFailure
from matchroom.errors import ValidationError
from matchroom.models import ClaimStatus
from matchroom.models import ClaimType
from matchroom.models import Room
from matchroom.models import RoomRules
from matchroom.models import RoomStatus
from matchroom.settlement import settlement_summary
from matchroom.transitions import AdminCancel
from matchroom.transitions import ApproveMutualCancellation
from matchroom.transitions import CancelRoom
from matchroom.transitions import DecideJoin
from matchroom.transitions import DeclareWinner
from matchroom.transitions import ExpireDeadline
from matchroom.transitions import OverrideStatus
from matchroom.transitions import RequestJoin
from matchroom.transitions import RequestMutualCancellation
from matchroom.transitions import ResolveDispute
from matchroom.transitions import RoomAction
from matchroom.transitions import SetRoomCode
from matchroom.transitions import SubmitClaim
from matchroom.transitions import TransitionContext
from matchroom.transitions import TransitionResult
from matchroom.transitions import open_room
from matchroom.transitions import transition

logger = logging.getLogger(__name__)

CANCELLATION_REASONS = ("Not Participated", "Not Playing", "Game Did Not Start", "Other")
MAX_REASON_LENGTH = 200
MAX_ADMIN_NOTES_LENGTH = 1000
MAX_PAGE_LIMIT = 100
DEFAULT_MAX_EVIDENCE_BYTES = 5 * 1024 * 1024

Precheck = Callable[[Room, TransitionResult], None]

# A retried claim arrives with a fresh claim id and upload.
_RETRY_IGNORED_FIELDS = frozenset({"claim_id", "evidence_ref"})


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller as asserted by the access token."""

    user_id: int
    role: str = ROLE_PLAYER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True, slots=True)
class RoomCodeView:
    room_id: str
    available: bool
    room_code: str | None
    creator_user_id: int


@dataclass(frozen=True, slots=True)
class EvidenceUpload:
    blob: bytes
    content_type: str | None


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise AdminRequired("admin role required", user_id=actor.user_id)


def _clean_text(value: str | None, *, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise InvalidIdentifier(f"{field} must be at most {max_length} characters", field=field)
    return text


def _ludo_username(raw: str) -> str:
    try:
        return normalize_and_validate_username(raw)
    except UsernameValidationError as exc:
        raise InvalidIdentifier(str(exc), field="ludo_username") from exc


def _check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be >= 1", page=page)
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be 1-{MAX_PAGE_LIMIT}", limit=limit)


def _same_request(first: RoomAction, second: RoomAction) -> bool:
    if type(first) is not type(second):
        return False
    return all(
        getattr(first, item.name) == getattr(second, item.name)
        for item in fields(first)
        if item.name not in _RETRY_IGNORED_FIELDS
    )


class MatchRoomService:
    """Room lifecycle operations for players, admins and the supervisor."""

    def __init__(
        self,
        *,
        store: RoomStore,
        ledger: Ledger,
        evidence: EvidenceStore,
        rules: RoomRules | None = None,
        clock: Clock | None = None,
        max_evidence_bytes: int = DEFAULT_MAX_EVIDENCE_BYTES,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._evidence = evidence
        self._rules = rules or RoomRules()
        self._clock = clock or SystemClock()
        self._max_evidence_bytes = max_evidence_bytes
        self._settlement = SettlementExecutor(ledger)

    @property
    def store(self) -> RoomStore:
        return self._store

    @property
    def rules(self) -> RoomRules:
        return self._rules

    @property
    def clock(self) -> Clock:
        return self._clock

    def _context(self) -> TransitionContext:
        return TransitionContext(now=self._clock.now(), rules=self._rules)

    @staticmethod
    def _new_room_id() -> str:
        return f"R{secrets.token_hex(6).upper()}"

    @staticmethod
    def _new_claim_id() -> str:
        return f"C{secrets.token_hex(8)}"

    def _persist(self, tx: RoomTransaction, result: TransitionResult, *, expected_version: int | None) -> None:
        room = result.room
        if expected_version is None:
            tx.insert(room)
        else:
            tx.save(room, expected_version=expected_version)
        tx.append_events(room.room_id, room.version, result.events, self._clock.now())
        self._settlement.execute(room.room_id, result.instructions)

    def _run(self, room_id: str, action: RoomAction, *, precheck: Precheck | None = None) -> TransitionResult:
        with self._store.lock_room(room_id):
            completed = self._complete_pending(room_id)
            if completed is not None and _same_request(completed[0], action):
                return completed[1]

            with self._store.transaction(room_id) as tx:
                room = tx.load()
                ctx = self._context()
                result = transition(room, action, ctx)
                if not result.changed:
                    logger.debug("room %s: %s changed nothing", room_id, type(action).__name__)
                    return result
                if precheck is not None:
                    precheck(room, result)
                if not result.settles:
                    self._persist(tx, result, expected_version=room.version)
                else:
                    tx.record_pending_settlement(
                        PendingSettlement(
                            room_id=room_id,
                            base_version=room.version,
                            action=action,
                            decided_at=ctx.now,
                            service_rate=ctx.rules.service_rate,
                            instructions=tuple(result.instructions),
                        )
                    )

            if result.settles:
                completed = self._complete_pending(room_id)
                # None means another process finished the same decision first.
                return result if completed is None else completed[1]
        self._after_commit(room, result)
        return result

    def _complete_pending(self, room_id: str) -> tuple[RoomAction, TransitionResult] | None:
        """Apply a decided settlement: replay its action, move the money, then forget it.

        Until this succeeds the room keeps its pre-settlement state and every
        writer lands here first, so no other outcome can be settled.
        """
        with self._store.transaction(room_id) as tx:
            pending = tx.pending_settlement()
            if pending is None:
                return None
            room = tx.load()
            if room.version != pending.base_version:
                raise ConflictError(
                    "pending settlement does not match the stored room",
                    room_id=room_id,
                    base_version=pending.base_version,
                    version=room.version,
                )
            ctx = TransitionContext(
                now=pending.decided_at,
                rules=replace(self._rules, service_rate=pending.service_rate),
            )
            result = transition(room, pending.action, ctx)
            tx.save(result.room, expected_version=room.version, settled=True)
            tx.append_events(room_id, result.room.version, result.events, self._clock.now())
            try:
                self._settlement.execute(room_id, list(pending.instructions))
            except SettlementFailure as exc:
                exc.detail["settlement_pending"] = True
                raise
            tx.clear_pending_settlement()
        self._after_commit(room, result)
        return pending.action, result

    def _after_commit(self, before: Room, result: TransitionResult) -> None:
        kept = {claim.evidence_ref for claim in result.room.claims}
        for claim in before.claims:
            if claim.evidence_ref and claim.evidence_ref not in kept:
                self._evidence.delete(claim.evidence_ref)
        self._log_result(result)

    def _log_result(self, result: TransitionResult) -> None:
        room = result.room
        previous = result.previous_status.value if result.previous_status else "-"
        logger.info(
            "room %s v%d %s -> %s [%s]",
            room.room_id,
            room.version,
            previous,
            room.status.value,
            ", ".join(event.kind for event in result.events),
        )
        if result.settles:
            logger.info("room %s settled: %s", room.room_id, settlement_summary(room))

    # Join coordinator

    def create_room(self, actor: Actor, *, bet_amount: int, ludo_username: str) -> Room:
        username = _ludo_username(ludo_username)
        result = open_room(
            room_id=self._new_room_id(),
            creator_user_id=actor.user_id,
            ludo_username=username,
            bet_amount=bet_amount,
            ctx=self._context(),
        )
        room = result.room
        with self._store.transaction(room.room_id) as tx:
            if tx.exists():
                raise ConflictError("room id collision; retry", room_id=room.room_id)
            self._persist(tx, result, expected_version=None)
        self._log_result(result)
        return room

    def join_room(self, actor: Actor, room_id: str, *, ludo_username: str) -> Room:
        username = _ludo_username(ludo_username)

        def _require_funds(room: Room, _: TransitionResult) -> None:
            balance = self._ledger.balance(actor.user_id)
            if balance < room.bet_amount:
                raise InsufficientBalance(
                    "insufficient balance to join",
                    room_id=room.room_id,
                    user_id=actor.user_id,
                    balance=balance,
                    required=room.bet_amount,
                )

        action = RequestJoin(user_id=actor.user_id, ludo_username=username)
        return self._run(room_id, action, precheck=_require_funds).room

    def handle_join_request(self, actor: Actor, room_id: str, *, user_id: int, approve: bool) -> Room:
        action = DecideJoin(actor_id=actor.user_id, user_id=user_id, approve=approve)
        return self._run(room_id, action).room

    def save_room_code(self, actor: Actor, room_id: str, code: str) -> Room:
        return self._run(room_id, SetRoomCode(actor_id=actor.user_id, code=code)).room

    def get_room_code(self, actor: Actor, room_id: str) -> RoomCodeView:
        room = self._store.get(room_id)
        if not (actor.is_admin or room.is_player(actor.user_id)):
            raise NotRoomMember("user is not a room player", room_id=room_id, user_id=actor.user_id)
        return RoomCodeView(
            room_id=room.room_id,
            available=room.room_code is not None,
            room_code=room.room_code,
            creator_user_id=room.creator_user_id,
        )

    def cancel_room(self, actor: Actor, room_id: str, reason: str | None = None) -> Room:
        cleaned = _clean_text(reason, field="reason", max_length=MAX_REASON_LENGTH)
        return self._run(room_id, CancelRoom(actor_id=actor.user_id, reason=cleaned)).room

    # Claims

    def submit_claim(
        self,
        actor: Actor,
        room_id: str,
        *,
        claim_type: str,
        ludo_username: str,
        evidence: EvidenceUpload | None = None,
    ) -> Room:
        try:
            kind = ClaimType(claim_type)
        except ValueError as exc:
            raise InvalidIdentifier("claim_type must be win or loss", claim_type=claim_type) from exc
        username = _ludo_username(ludo_username)

        content_type = None
        if evidence is not None:
            content_type = validate_evidence(evidence.blob, evidence.content_type, max_bytes=self._max_evidence_bytes)
        elif kind is ClaimType.WIN:
            raise EvidenceRequired("win claim requires a screenshot", room_id=room_id, user_id=actor.user_id)

        claim_id = self._new_claim_id()
        evidence_ref = None
        if evidence is not None and content_type is not None:
            evidence_ref = self._evidence.put(claim_id, evidence.blob, content_type)

        action = SubmitClaim(
            user_id=actor.user_id,
            claim_id=claim_id,
            claim_type=kind,
            ludo_username=username,
            evidence_ref=evidence_ref,
        )
        try:
            result = self._run(room_id, action)
        except SettlementFailure:
            if evidence_ref is not None and not self._journaled(room_id, evidence_ref):
                self._evidence.delete(evidence_ref)
            raise
        except Exception:
            if evidence_ref is not None:
                self._evidence.delete(evidence_ref)
            raise
        stored = result.room.claim_for(actor.user_id)
        if evidence_ref is not None and (stored is None or stored.evidence_ref != evidence_ref):
            self._evidence.delete(evidence_ref)
        return result.room

    def _journaled(self, room_id: str, evidence_ref: str) -> bool:
        pending = self._store.pending_settlement(room_id)
        return pending is not None and getattr(pending.action, "evidence_ref", None) == evidence_ref

    def request_mutual_cancellation(self, actor: Actor, room_id: str) -> Room:
        return self._run(room_id, RequestMutualCancellation(user_id=actor.user_id)).room

    # Timeout supervisor

    def expire_room(self, room_id: str) -> bool:
        """Cancel ``room_id`` if one of its stored deadlines passed; True if it did."""
        return self._run(room_id, ExpireDeadline()).changed

    def retry_settlement(self, room_id: str) -> Room | None:
        """Finish a settlement that failed part-way; None if nothing was pending."""
        with self._store.lock_room(room_id):
            completed = self._complete_pending(room_id)
        if completed is None:
            return None
        logger.info("room %s: pending settlement completed", room_id)
        return completed[1].room

    # Dispute resolution authority

    def resolve_dispute(
        self,
        actor: Actor,
        room_id: str,
        *,
        winner_user_id: int,
        admin_notes: str | None = None,
    ) -> Room:
        _require_admin(actor)
        notes = _clean_text(admin_notes, field="admin_notes", max_length=MAX_ADMIN_NOTES_LENGTH)
        action = ResolveDispute(admin_id=actor.user_id, winner_user_id=winner_user_id, admin_notes=notes)
        return self._run(room_id, action).room

    def declare_winner(
        self,
        actor: Actor,
        room_id: str,
        *,
        winner_user_id: int,
        admin_notes: str | None = None,
    ) -> Room:
        _require_admin(actor)
        notes = _clean_text(admin_notes, field="admin_notes", max_length=MAX_ADMIN_NOTES_LENGTH)
        action = DeclareWinner(admin_id=actor.user_id, winner_user_id=winner_user_id, admin_notes=notes)
        return self._run(room_id, action).room

    def admin_cancel_room(self, actor: Actor, room_id: str, reason: str | None = None) -> Room:
        _require_admin(actor)
        cleaned = _clean_text(reason, field="reason", max_length=MAX_REASON_LENGTH)
        return self._run(room_id, AdminCancel(admin_id=actor.user_id, reason=cleaned)).room

    def approve_mutual_cancellation(self, actor: Actor, room_id: str) -> Room:
        _require_admin(actor)
        return self._run(room_id, ApproveMutualCancellation(admin_id=actor.user_id)).room

    def update_room_status(self, actor: Actor, room_id: str, status: str) -> Room:
        _require_admin(actor)
        try:
            target = RoomStatus(status)
        except ValueError as exc:
            raise InvalidIdentifier("unknown room status", status=status) from exc
        return self._run(room_id, OverrideStatus(admin_id=actor.user_id, status=target)).room

    def provide_room_code(self, actor: Actor, room_id: str, code: str) -> Room:
        _require_admin(actor)
        return self._run(room_id, SetRoomCode(actor_id=actor.user_id, code=code, by_admin=True)).room

    def list_disputes(
        self,
        actor: Actor,
        *,
        claim_status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        _require_admin(actor)
        _check_page(page, limit)
        if claim_status is not None:
            try:
                claim_status = ClaimStatus(claim_status).value
            except ValueError as exc:
                raise InvalidIdentifier("unknown claim status", claim_status=claim_status) from exc
        return self._store.rooms_with_claims(claim_status=claim_status, page=page, limit=limit)

    def get_evidence(self, actor: Actor, claim_id: str) -> Evidence:
        claim = self._store.find_claim(claim_id)
        if not actor.is_admin and claim.user_id != actor.user_id:
            raise AdminRequired("only the claimant or an admin may view evidence", claim_id=claim_id)
        if claim.evidence_ref is None:
            raise ClaimNotFound("claim has no evidence", claim_id=claim_id)
        try:
            return self._evidence.get(claim.evidence_ref)
        except FileNotFoundError as exc:
            logger.error("evidence %s of claim %s is missing", claim.evidence_ref, claim_id)
            raise ClaimNotFound("evidence file is missing", claim_id=claim_id) from exc

    def room_events(self, actor: Actor, room_id: str) -> list[StoredEvent]:
        _require_admin(actor)
        self._store.get(room_id)
        return self._store.events(room_id)

    def dashboard(self, actor: Actor) -> dict[str, object]:
        _require_admin(actor)
        totals = self._store.settlement_totals()
        return {
            "rooms_by_status": self._store.status_counts(),
            "open_disputes": self._store.open_dispute_count(),
            "service_charge_collected": totals["service_charge"],
            "prizes_paid": totals["paid_out"],
        }

    # Listings

    def list_rooms(self, *, status: str | None = None, page: int = 1, limit: int = 20) -> Page:
        _check_page(page, limit)
        target = None
        if status is not None:
            try:
                target = RoomStatus(status)
            except ValueError as exc:
                raise InvalidIdentifier("unknown room status", status=status) from exc
        return self._store.list_rooms(status=target, page=page, limit=limit)

    def get_room(self, room_id: str) -> Room:
        return self._store.get(room_id)

    def my_rooms(self, actor: Actor, *, status: str | None = None) -> list[Room]:
        statuses: tuple[RoomStatus, ...] = ()
        if status is not None:
            try:
                statuses = (RoomStatus(status),)
            except ValueError as exc:
                raise InvalidIdentifier("unknown room status", status=status) from exc
        return self._store.rooms_for_user(actor.user_id, statuses=statuses)

    def pending_requests(self, actor: Actor) -> list[Room]:
        return self._store.rooms_with_pending_requests(actor.user_id)

    def finished_games(self, actor: Actor) -> list[Room]:
        return self._store.rooms_for_user(actor.user_id, statuses=(RoomStatus.FINISHED, RoomStatus.CANCELLED))

    def check_result(self, actor: Actor, room_id: str) -> Room:
        room = self._store.get(room_id)
        if not (actor.is_admin or room.is_player(actor.user_id)):
            raise NotRoomMember("user is not a room player", room_id=room_id, user_id=actor.user_id)
        return room


__all__ = [
    "CANCELLATION_REASONS",
    "Actor",
    "EvidenceUpload",
    "MatchRoomService",
    "RoomCodeView",
]
