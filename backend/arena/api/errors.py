"""HTTP error mapping helpers for API routes."""

from __future__ import annotations

from typing import Any, NoReturn

from fastapi import HTTPException
from fastapi import Request
from fastapi.responses import JSONResponse

from matchroom.errors import AdminRequired
from matchroom.errors import ClaimNotFound
from matchroom.errors import ConflictError
from matchroom.errors import MatchRoomError
from matchroom.errors import NotRoomMember
from matchroom.errors import RoomNotFound
from matchroom.errors import SettlementFailure
from matchroom.errors import ValidationError

# Most specific classes first; the first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[MatchRoomError], int], ...] = (
    (NotRoomMember, 403),
    (AdminRequired, 403),
    (RoomNotFound, 404),
    (ClaimNotFound, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (SettlementFailure, 503),
)


def api_error(*, code: str, message: str, detail: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a unified API error payload."""
    return {"code": code, "message": message, "detail": detail or {}}


def raise_api_error(
    *,
    status_code: int,
    code: str,
    message: str,
    detail: dict[str, Any] | None = None,
) -> NoReturn:
    raise HTTPException(
        status_code=status_code,
        detail=api_error(code=code, message=message, detail=detail),
    )


def status_for(exc: MatchRoomError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def handle_http_exception(_: Request, exc: HTTPException) -> JSONResponse:
    """Unify HTTP errors to {code,message,detail} payload."""
    if isinstance(exc.detail, dict) and {"code", "message", "detail"} <= set(exc.detail):
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail,
            headers=exc.headers,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=api_error(
            code="HTTP_ERROR",
            message=str(exc.detail),
            detail={},
        ),
        headers=exc.headers,
    )


async def handle_match_room_error(_: Request, exc: MatchRoomError) -> JSONResponse:
    """Map domain errors to their HTTP status with the same payload shape."""
    headers = {"Retry-After": "5"} if isinstance(exc, SettlementFailure) else None
    return JSONResponse(
        status_code=status_for(exc),
        content=api_error(code=exc.code, message=exc.message, detail=exc.detail),
        headers=headers,
    )
