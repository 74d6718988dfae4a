"""Match room domain errors.

Each error carries a stable ``code`` so callers can react to the exact kind
of failure instead of a generic one.
"""

from __future__ import annotations

from typing import Any


class MatchRoomError(Exception):
    """Base class for match-room domain errors."""

    code = "MATCH_ROOM_ERROR"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = detail


class ValidationError(MatchRoomError):
    """Malformed input; rejected before any state is read."""

    code = "VALIDATION_ERROR"


class BelowMinimumBet(ValidationError):
    code = "BELOW_MINIMUM_BET"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class EvidenceRequired(ValidationError):
    """Raised when a win claim carries no evidence."""

    code = "EVIDENCE_REQUIRED"


class InvalidIdentifier(ValidationError):
    code = "INVALID_IDENTIFIER"


class InvalidEvidence(ValidationError):
    """Evidence upload has the wrong type or exceeds the size limit."""

    code = "INVALID_EVIDENCE"


class RoomNotFound(MatchRoomError):
    code = "ROOM_NOT_FOUND"


class ClaimNotFound(MatchRoomError):
    code = "CLAIM_NOT_FOUND"


class ConflictError(MatchRoomError):
    """The room is not in a state that allows the operation; refresh and retry."""

    code = "CONFLICT"


class RoomFull(ConflictError):
    code = "ROOM_FULL"


class RoomNotJoinable(ConflictError):
    code = "ROOM_NOT_JOINABLE"


class AlreadyMember(ConflictError):
    code = "ALREADY_MEMBER"


class NotCreator(ConflictError):
    code = "NOT_CREATOR"


class NotRoomMember(ConflictError):
    code = "NOT_ROOM_MEMBER"


class InvalidSlot(ConflictError):
    code = "INVALID_SLOT"


class AlreadyResolved(ConflictError):
    code = "ALREADY_RESOLVED"


class RoomCodeMissing(ConflictError):
    code = "ROOM_CODE_MISSING"


class NoWinClaim(ConflictError):
    code = "NO_WIN_CLAIM"


class InvalidTransition(ConflictError):
    code = "INVALID_TRANSITION"


class InsufficientBalance(ConflictError):
    code = "INSUFFICIENT_BALANCE"


class AdminRequired(MatchRoomError):
    code = "ADMIN_REQUIRED"


class SettlementFailure(MatchRoomError):
    """The ledger rejected or could not apply a settlement instruction."""

    code = "SETTLEMENT_FAILURE"


__all__ = [
    "AdminRequired",
    "AlreadyMember",
    "AlreadyResolved",
    "BelowMinimumBet",
    "ClaimNotFound",
    "ConflictError",
    "EvidenceRequired",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidEvidence",
    "InvalidIdentifier",
    "InvalidSlot",
    "InvalidTransition",
    "MatchRoomError",
    "NoWinClaim",
    "NotCreator",
    "NotRoomMember",
    "RoomCodeMissing",
    "RoomFull",
    "RoomNotFound",
    "RoomNotJoinable",
    "SettlementFailure",
    "ValidationError",
]
