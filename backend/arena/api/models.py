"""Pydantic models for room and admin API request bodies."""

from __future__ import annotations

from pydantic import BaseModel

from matchroom.models import RoomStatus


class CreateRoomRequest(BaseModel):
    """POST /api/rooms request body."""

    bet_amount: int
    ludo_username: str


class JoinRoomRequest(BaseModel):
    """POST /api/rooms/{room_id}/join request body."""

    ludo_username: str


class JoinDecisionRequest(BaseModel):
    """POST /api/rooms/{room_id}/join-requests/{user_id} request body."""

    approve: bool


class RoomCodeRequest(BaseModel):
    """PUT /api/rooms/{room_id}/code request body."""

    room_code: str


class CancelRoomRequest(BaseModel):
    reason: str | None = None


class WinnerDecisionRequest(BaseModel):
    """Admin body for resolve-dispute and declare-winner."""

    winner_user_id: int
    admin_notes: str | None = None


class StatusUpdateRequest(BaseModel):
    status: RoomStatus
