"""
Liveness, readiness and room metrics.

Rooms live in process memory, so readiness only means the room registry
has been handed over by the app lifespan.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from room import RoomManager

router = APIRouter(tags=["health"])

_room_manager: Optional[RoomManager] = None


def set_health_dependencies(room_manager: Optional[RoomManager] = None) -> None:
    """Point the health routes at the live room registry."""
    global _room_manager
    _room_manager = room_manager


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": _now()}


@router.get("/ready")
async def readiness_check():
    """503 until the room registry is wired."""
    wired = _room_manager is not None
    return JSONResponse(
        {
            "status": "ok" if wired else "degraded",
            "checks": {"room_manager": {"status": "ok" if wired else "not_configured"}},
            "timestamp": _now(),
        },
        status_code=200 if wired else 503,
    )


@router.get("/metrics")
async def metrics():
    """Room, seat, game and scheduled-task counts."""
    data = {"timestamp": _now()}
    if _room_manager is None:
        return data

    rooms = list(_room_manager.rooms.values())
    data["active_rooms"] = len(rooms)
    data["total_players"] = sum(len(room.players) for room in rooms)
    data["games_in_progress"] = sum(room.game.started for room in rooms)
    data["pending_tasks"] = sum(room.game.scheduler.pending for room in rooms)
    return data
