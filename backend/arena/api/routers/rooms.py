"""Player-facing room REST routes.

Clients poll these endpoints; there is no push channel.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi import File
from fastapi import Form
from fastapi import Header
from fastapi import Query
from fastapi import UploadFile
from fastapi.responses import Response

import arena.runtime as runtime
from arena.api.deps import require_current_user
from arena.api.models import CancelRoomRequest
from arena.api.models import CreateRoomRequest
from arena.api.models import JoinDecisionRequest
from arena.api.models import JoinRoomRequest
from arena.api.models import RoomCodeRequest
from arena.api.room_views import cancellation_detail
from arena.api.room_views import page_detail
from arena.api.room_views import result_detail
from arena.api.room_views import room_code_detail
from arena.api.room_views import room_detail
from arena.api.room_views import room_summary
from arena.rooms.service import CANCELLATION_REASONS
from arena.rooms.service import EvidenceUpload
from matchroom.models import Room

router = APIRouter()


def _detail(room: Room, viewer_id: int) -> dict[str, object]:
    return room_detail(room, viewer_id=viewer_id, now=runtime.room_service.clock.now())


@router.get("/api/rooms/rules")
def get_room_rules(authorization: str | None = Header(default=None, alias="Authorization")) -> dict[str, object]:
    """Return the platform rules clients need to render the lobby and forms."""
    require_current_user(authorization)
    rules = runtime.room_service.rules
    return {
        "min_bet_amount": rules.min_bet_amount,
        "service_rate": str(rules.service_rate),
        "join_timeout_seconds": int(rules.join_timeout.total_seconds()),
        "code_timeout_seconds": int(rules.code_timeout.total_seconds()),
        "cancellation_reasons": list(CANCELLATION_REASONS),
    }


@router.get("/api/rooms")
def list_rooms(
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Return one page of lobby room summaries."""
    require_current_user(authorization)
    result = runtime.room_service.list_rooms(status=status, page=page, limit=limit)
    return page_detail(result, [room_summary(room) for room in result.items])


@router.post("/api/rooms")
def create_room(
    payload: CreateRoomRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Create a pending room and commit the creator's wager."""
    actor = require_current_user(authorization)
    room = runtime.room_service.create_room(actor, bet_amount=payload.bet_amount, ludo_username=payload.ludo_username)
    return _detail(room, actor.user_id)


@router.get("/api/rooms/mine")
def my_rooms(
    status: str | None = Query(default=None),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict[str, object]]:
    actor = require_current_user(authorization)
    return [_detail(room, actor.user_id) for room in runtime.room_service.my_rooms(actor, status=status)]


@router.get("/api/rooms/pending-requests")
def pending_requests(authorization: str | None = Header(default=None, alias="Authorization")) -> list[dict[str, object]]:
    """Rooms created by the caller with a join request awaiting a decision."""
    actor = require_current_user(authorization)
    return [_detail(room, actor.user_id) for room in runtime.room_service.pending_requests(actor)]


@router.get("/api/rooms/finished")
def finished_games(authorization: str | None = Header(default=None, alias="Authorization")) -> list[dict[str, object]]:
    actor = require_current_user(authorization)
    return [_detail(room, actor.user_id) for room in runtime.room_service.finished_games(actor)]


@router.get("/api/rooms/{room_id}")
def get_room_detail(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Return one room detail."""
    actor = require_current_user(authorization)
    return _detail(runtime.room_service.get_room(room_id), actor.user_id)


@router.post("/api/rooms/{room_id}/join")
def join_room(
    room_id: str,
    payload: JoinRoomRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Ask the creator for the second slot."""
    actor = require_current_user(authorization)
    room = runtime.room_service.join_room(actor, room_id, ludo_username=payload.ludo_username)
    return _detail(room, actor.user_id)


@router.post("/api/rooms/{room_id}/join-requests/{user_id}")
def handle_join_request(
    room_id: str,
    user_id: int,
    payload: JoinDecisionRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Creator approves (room goes live) or rejects a join request."""
    actor = require_current_user(authorization)
    room = runtime.room_service.handle_join_request(actor, room_id, user_id=user_id, approve=payload.approve)
    return _detail(room, actor.user_id)


@router.put("/api/rooms/{room_id}/code")
def save_room_code(
    room_id: str,
    payload: RoomCodeRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_current_user(authorization)
    room = runtime.room_service.save_room_code(actor, room_id, payload.room_code)
    return _detail(room, actor.user_id)


@router.get("/api/rooms/{room_id}/code")
def get_room_code(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_current_user(authorization)
    return room_code_detail(runtime.room_service.get_room_code(actor, room_id))


@router.post("/api/rooms/{room_id}/claims")
def submit_claim(
    room_id: str,
    claim_type: str = Form(...),
    ludo_username: str = Form(...),
    evidence: UploadFile | None = File(default=None),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Report a win (screenshot required) or a loss."""
    actor = require_current_user(authorization)
    upload = None
    if evidence is not None:
        # One byte past the limit is enough for the size check to reject it.
        blob = evidence.file.read(runtime.settings.arena_max_evidence_bytes + 1)
        upload = EvidenceUpload(blob=blob, content_type=evidence.content_type)
    room = runtime.room_service.submit_claim(
        actor,
        room_id,
        claim_type=claim_type,
        ludo_username=ludo_username,
        evidence=upload,
    )
    return _detail(room, actor.user_id)


@router.get("/api/rooms/{room_id}/result")
def check_result(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_current_user(authorization)
    room = runtime.room_service.check_result(actor, room_id)
    return result_detail(room, user_id=actor.user_id)


@router.post("/api/rooms/{room_id}/mutual-cancellation")
def request_mutual_cancellation(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_current_user(authorization)
    room = runtime.room_service.request_mutual_cancellation(actor, room_id)
    return _detail(room, actor.user_id)


@router.post("/api/rooms/{room_id}/cancel")
def cancel_room(
    room_id: str,
    payload: CancelRoomRequest | None = None,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Creator cancels a room that has no opponent yet."""
    actor = require_current_user(authorization)
    reason = None if payload is None else payload.reason
    room = runtime.room_service.cancel_room(actor, room_id, reason)
    return cancellation_detail(room)


@router.get("/api/claims/{claim_id}/evidence")
def get_claim_evidence(
    claim_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Response:
    """Download a claim screenshot (claimant or admin)."""
    actor = require_current_user(authorization)
    evidence = runtime.room_service.get_evidence(actor, claim_id)
    return Response(content=evidence.blob, media_type=evidence.content_type)
