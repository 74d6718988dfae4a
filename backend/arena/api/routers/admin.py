"""Admin REST routes: dispute resolution, overrides and reporting."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi import Header
from fastapi import Query

import arena.runtime as runtime
from arena.api.deps import require_admin
from arena.api.models import CancelRoomRequest
from arena.api.models import RoomCodeRequest
from arena.api.models import StatusUpdateRequest
from arena.api.models import WinnerDecisionRequest
from arena.api.room_views import cancellation_detail
from arena.api.room_views import dispute_detail
from arena.api.room_views import event_detail
from arena.api.room_views import page_detail
from arena.api.room_views import room_detail
from matchroom.models import Room

router = APIRouter(prefix="/api/admin")


def _detail(room: Room) -> dict[str, object]:
    return room_detail(room, viewer_id=None, now=runtime.room_service.clock.now(), is_admin=True)


@router.get("/dashboard")
def dashboard(authorization: str | None = Header(default=None, alias="Authorization")) -> dict[str, object]:
    actor = require_admin(authorization)
    return runtime.room_service.dashboard(actor)


@router.get("/rooms")
def list_rooms(
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    require_admin(authorization)
    result = runtime.room_service.list_rooms(status=status, page=page, limit=limit)
    return page_detail(result, [_detail(room) for room in result.items])


@router.get("/rooms/{room_id}")
def get_room(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    require_admin(authorization)
    return _detail(runtime.room_service.get_room(room_id))


@router.get("/rooms/{room_id}/events")
def room_events(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> list[dict[str, object]]:
    """Audit trail of every transition applied to the room."""
    actor = require_admin(authorization)
    return [event_detail(event) for event in runtime.room_service.room_events(actor, room_id)]


@router.get("/disputes")
def list_disputes(
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Rooms with claims, filtered by claim status (pending/verified/rejected)."""
    actor = require_admin(authorization)
    result = runtime.room_service.list_disputes(actor, claim_status=status, page=page, limit=limit)
    return page_detail(result, [dispute_detail(room) for room in result.items])


@router.put("/rooms/{room_id}/code")
def provide_room_code(
    room_id: str,
    payload: RoomCodeRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Set the Ludo room code on behalf of the creator."""
    actor = require_admin(authorization)
    return _detail(runtime.room_service.provide_room_code(actor, room_id, payload.room_code))


@router.post("/rooms/{room_id}/resolve-dispute")
def resolve_dispute(
    room_id: str,
    payload: WinnerDecisionRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_admin(authorization)
    room = runtime.room_service.resolve_dispute(
        actor,
        room_id,
        winner_user_id=payload.winner_user_id,
        admin_notes=payload.admin_notes,
    )
    return _detail(room)


@router.post("/rooms/{room_id}/declare-winner")
def declare_winner(
    room_id: str,
    payload: WinnerDecisionRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Finish a live or ended room without requiring claims."""
    actor = require_admin(authorization)
    room = runtime.room_service.declare_winner(
        actor,
        room_id,
        winner_user_id=payload.winner_user_id,
        admin_notes=payload.admin_notes,
    )
    return _detail(room)


@router.post("/rooms/{room_id}/cancel")
def admin_cancel_room(
    room_id: str,
    payload: CancelRoomRequest | None = None,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_admin(authorization)
    reason = None if payload is None else payload.reason
    return cancellation_detail(runtime.room_service.admin_cancel_room(actor, room_id, reason))


@router.post("/rooms/{room_id}/approve-cancellation")
def approve_mutual_cancellation(
    room_id: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    """Force-cancel a room on a single player's cancellation request."""
    actor = require_admin(authorization)
    return cancellation_detail(runtime.room_service.approve_mutual_cancellation(actor, room_id))


@router.put("/rooms/{room_id}/status")
def update_room_status(
    room_id: str,
    payload: StatusUpdateRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, object]:
    actor = require_admin(authorization)
    return _detail(runtime.room_service.update_room_status(actor, room_id, payload.status.value))
