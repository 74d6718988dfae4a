"""Room store, lifecycle service and timeout supervisor."""

from arena.rooms.service import Actor
from arena.rooms.service import EvidenceUpload
from arena.rooms.service import MatchRoomService
from arena.rooms.service import RoomCodeView
from arena.rooms.store import Page
from arena.rooms.store import RoomStore
from arena.rooms.supervisor import TimeoutSupervisor

__all__ = [
    "Actor",
    "EvidenceUpload",
    "MatchRoomService",
    "Page",
    "RoomCodeView",
    "RoomStore",
    "TimeoutSupervisor",
]
