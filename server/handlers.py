"""WebSocket message handlers for the Spiller card game.

Each handler corresponds to a single message type from the client.
Handlers are looked up in the HANDLERS dict by dispatch().

Every handler that touches a room does so while holding the room's
game lock. Request-local failures (GameError) are answered to the
calling socket only; rule violations are handled inside the engine and
reach everyone through the normal broadcasts.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import config
from errors import (
    GAME_IN_PROGRESS,
    NEED_TWO_PLAYERS,
    NO_SUCH_ROOM,
    ONLY_HOST_CAN_START,
    ROOM_FULL,
    GameError,
)
from game import RoomSettings
from models import events
from models.events import EventType
from room import Room, RoomManager

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[Room] = None


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RoomSettingsPayload(_Payload):
    deck_count: int = Field(default=1, alias="deckCount")
    direction: str = "cw"
    sing_window_ms: Optional[int] = Field(default=None, alias="singWindowMs")

    def to_settings(self) -> RoomSettings:
        return RoomSettings.create(
            deck_count=self.deck_count,
            direction=self.direction,
            sing_window_ms=self.sing_window_ms,
        )


class CreateRoomPayload(_Payload):
    player_name: str = Field(default="Player", alias="playerName", min_length=1, max_length=32)
    settings: RoomSettingsPayload = Field(default_factory=RoomSettingsPayload)


class JoinRoomPayload(_Payload):
    room_id: str = Field(alias="roomId", min_length=1)
    player_name: str = Field(default="Player", alias="playerName", min_length=1, max_length=32)


class PlayCardPayload(_Payload):
    card: str = Field(min_length=2, max_length=3)


class SelectSuitPayload(_Payload):
    suit: str = Field(min_length=1)


class ChatPayload(_Payload):
    message: str = Field(default="", max_length=500)


async def _reply(ctx: ConnectionContext, message: dict) -> None:
    await ctx.websocket.send_json(message)


async def _require_room(ctx: ConnectionContext, action: str) -> Optional[Room]:
    if ctx.current_room is None or ctx.current_room.closed:
        ctx.current_room = None
        await _reply(ctx, events.error(NO_SUCH_ROOM, action))
        return None
    return ctx.current_room


async def _leave_current_room(ctx: ConnectionContext, room_manager: RoomManager) -> None:
    """Unseat the connection from the room it is in, if any."""
    room = ctx.current_room
    ctx.current_room = None
    if room and not room.closed:
        async with room.game_lock:
            await room_manager.handle_player_leave(room, ctx.player_id)


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    payload = CreateRoomPayload.model_validate(data)
    await _leave_current_room(ctx, room_manager)

    room = room_manager.create_room(payload.settings.to_settings())
    async with room.game_lock:
        await room.add_player(ctx.player_id, payload.player_name, ctx.websocket)
    ctx.current_room = room

    await _reply(ctx, events.room_created(room.code, ctx.player_id, room.game.snapshot()))


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    payload = JoinRoomPayload.model_validate(data)

    room = room_manager.get_room(payload.room_id)
    if not room:
        await _reply(ctx, events.error(NO_SUCH_ROOM, "join_room"))
        return

    if len(room.players) >= config.MAX_PLAYERS_PER_ROOM:
        await _reply(ctx, events.error(ROOM_FULL, "join_room"))
        return

    if room.game.started:
        await _reply(ctx, events.error(GAME_IN_PROGRESS, "join_room"))
        return

    # One seat per connection; leaving may close the target if it was ours
    await _leave_current_room(ctx, room_manager)
    if room.closed:
        await _reply(ctx, events.error(NO_SUCH_ROOM, "join_room"))
        return

    async with room.game_lock:
        await room.add_player(ctx.player_id, payload.player_name, ctx.websocket)
    ctx.current_room = room

    await _reply(ctx, events.room_joined(room.code, ctx.player_id, room.game.snapshot()))


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, **kw) -> None:
    room = await _require_room(ctx, "start_game")
    if not room:
        return

    error = None
    if room.host_id != ctx.player_id:
        error = ONLY_HOST_CAN_START
    elif len(room.game.turn_order) < 2:
        error = NEED_TWO_PLAYERS

    if error is None:
        async with room.game_lock:
            await room.game.start()

    await _reply(ctx, events.result(EventType.START_RESULT, error, started=room.game.started))


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def handle_play_card(data: dict, ctx: ConnectionContext, **kw) -> None:
    room = await _require_room(ctx, "play_card")
    if not room:
        return
    payload = PlayCardPayload.model_validate(data)
    card = payload.card.upper()
    player_id = ctx.player_id

    async def acknowledge(error: Optional[str]) -> None:
        await room.send_to(player_id, events.result(EventType.PLAY_RESULT, error, card=card))

    try:
        async with room.game_lock:
            await room.game.play_card(player_id, card, acknowledge)
    except GameError as e:
        await _reply(ctx, events.result(EventType.PLAY_RESULT, e.message, card=card))


async def handle_draw_card(data: dict, ctx: ConnectionContext, **kw) -> None:
    room = await _require_room(ctx, "draw_card")
    if not room:
        return

    try:
        async with room.game_lock:
            card = await room.game.draw_card_action(ctx.player_id)
    except GameError as e:
        await _reply(ctx, events.result(EventType.DRAW_RESULT, e.message))
        return

    await _reply(ctx, events.result(EventType.DRAW_RESULT, card=card))


async def _run_action(ctx: ConnectionContext, action: str, operation) -> None:
    room = await _require_room(ctx, action)
    if not room:
        return

    error = None
    try:
        async with room.game_lock:
            await operation(room)
    except GameError as e:
        error = e.message
    await _reply(ctx, events.result(EventType.ACTION_RESULT, error, action=action))


async def handle_select_suit(data: dict, ctx: ConnectionContext, **kw) -> None:
    payload = SelectSuitPayload.model_validate(data)
    await _run_action(ctx, "select_suit", lambda room: room.game.select_suit(ctx.player_id, payload.suit))


async def handle_knock(data: dict, ctx: ConnectionContext, **kw) -> None:
    await _run_action(ctx, "knock", lambda room: room.game.knock(ctx.player_id))


async def handle_sing(data: dict, ctx: ConnectionContext, **kw) -> None:
    await _run_action(ctx, "sing", lambda room: room.game.sing(ctx.player_id))


async def handle_chat(data: dict, ctx: ConnectionContext, **kw) -> None:
    room = await _require_room(ctx, "chat")
    if not room:
        return
    payload = ChatPayload.model_validate(data)

    try:
        async with room.game_lock:
            await room.game.process_chat(ctx.player_id, payload.message)
    except GameError as e:
        await _reply(ctx, events.error(e.message, "chat"))


# ---------------------------------------------------------------------------
# Leave handlers
# ---------------------------------------------------------------------------

async def handle_leave_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    await _leave_current_room(ctx, room_manager)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "draw_card": handle_draw_card,
    "select_suit": handle_select_suit,
    "knock": handle_knock,
    "sing": handle_sing,
    "chat": handle_chat,
    "leave_room": handle_leave_room,
}


async def dispatch(data: dict, ctx: ConnectionContext, **deps) -> None:
    """
    Route one inbound message to its handler.

    Unknown types and malformed payloads are answered with an error to
    the sender only.
    """
    action = data.get("type") if isinstance(data, dict) else None
    handler = HANDLERS.get(action)
    if handler is None:
        await _reply(ctx, events.error("Unknown message type", action))
        return
    try:
        await handler(data, ctx, **deps)
    except ValidationError as e:
        logger.debug(f"Invalid {action} payload: {e}")
        await _reply(ctx, events.error(f"Invalid {action} request", action))
