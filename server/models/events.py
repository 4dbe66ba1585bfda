"""
Outbound message definitions for the Spiller server.

Every message sent to a client is a JSON object with a "type" key. The
factory functions below are the only place message shapes are spelled
out, so the engine, the room and the handlers all agree on them.

Ordering: messages produced by one engine operation are delivered in the
order they were produced, and every public game_state carries a seq that
is strictly greater than the previous one for that room.
"""

import time
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """All outbound message types."""

    # State synchronization
    GAME_STATE = "game_state"
    PRIVATE_STATE = "private_state"

    # Optimistic play protocol
    PLAYED_ATTEMPT = "played_attempt"
    PLAY_ACCEPTED = "play_accepted"
    PLAY_REJECTED = "play_rejected"
    PLAY_RETURN = "play_return"

    # Lifecycle
    GAME_OVER = "game_over"
    ROOM_CLOSED = "room_closed"
    ROOM_CREATED = "room_created"
    ROOM_JOINED = "room_joined"

    # Chat and system announcements
    CHAT = "chat"

    # Acknowledgements
    START_RESULT = "start_result"
    PLAY_RESULT = "play_result"
    DRAW_RESULT = "draw_result"
    ACTION_RESULT = "action_result"
    ERROR = "error"


# =============================================================================
# Message Factory Functions
# =============================================================================


def game_state(
    room_id: str,
    players: list[dict],
    turn_order: list[str],
    current_turn: Optional[str],
    discard_top: Optional[str],
    draw_count: int,
    settings: dict,
    host_id: Optional[str],
    started: bool,
    seq: int,
) -> dict:
    """
    Public room snapshot, identical for every viewer.

    Args:
        players: [{id, name, hand_count}] - never hand contents.
        discard_top: Code of the top discard card, or None.
        seq: Room sequence number, incremented once per snapshot.
    """
    return {
        "type": EventType.GAME_STATE.value,
        "room_id": room_id,
        "players": players,
        "turn_order": turn_order,
        "current_turn": current_turn,
        "discard_top": discard_top,
        "draw_count": draw_count,
        "settings": settings,
        "host_id": host_id,
        "started": started,
        "seq": seq,
    }


def private_state(hand: list[str]) -> dict:
    """A player's own exact hand, duplicates preserved."""
    return {"type": EventType.PRIVATE_STATE.value, "hand": list(hand)}


def played_attempt(player_id: str, card: str) -> dict:
    return {"type": EventType.PLAYED_ATTEMPT.value, "player_id": player_id, "card": card}


def play_accepted(player_id: str, card: str) -> dict:
    return {"type": EventType.PLAY_ACCEPTED.value, "player_id": player_id, "card": card}


def play_rejected(player_id: str, card: str, reason: str) -> dict:
    return {
        "type": EventType.PLAY_REJECTED.value,
        "player_id": player_id,
        "card": card,
        "reason": reason,
    }


def play_return(card: str) -> dict:
    """Instruction to one player to put a rejected card back in their hand."""
    return {"type": EventType.PLAY_RETURN.value, "card": card}


def game_over(winner_id: str) -> dict:
    return {"type": EventType.GAME_OVER.value, "winner_id": winner_id}


def room_closed(reason: str) -> dict:
    return {"type": EventType.ROOM_CLOSED.value, "reason": reason}


def chat(sender: str, message: str, sent_at: Optional[float] = None) -> dict:
    """
    A chat line. System announcements use the SYSTEM sender.

    Args:
        sender: Display name of the author.
        message: The text.
        sent_at: Unix time in milliseconds; defaults to now.
    """
    return {
        "type": EventType.CHAT.value,
        "from": sender,
        "message": message,
        "time": int(sent_at if sent_at is not None else time.time() * 1000),
    }


def room_created(room_id: str, player_id: str, state: dict) -> dict:
    return {
        "type": EventType.ROOM_CREATED.value,
        "room_id": room_id,
        "player_id": player_id,
        "state": state,
    }


def room_joined(room_id: str, player_id: str, state: dict) -> dict:
    return {
        "type": EventType.ROOM_JOINED.value,
        "room_id": room_id,
        "player_id": player_id,
        "state": state,
    }


def result(event_type: EventType, error: Optional[str] = None, **data) -> dict:
    """
    Acknowledgement for a request.

    Args:
        event_type: One of the *_RESULT types.
        error: Error text, or None on success.
        **data: Extra fields (e.g. action name, card).
    """
    return {
        "type": event_type.value,
        "ok": error is None,
        "error": error,
        **data,
    }


def error(message: str, action: Optional[str] = None) -> dict:
    """Request-local error, sent to the caller only."""
    msg = {"type": EventType.ERROR.value, "message": message}
    if action:
        msg["action"] = action
    return msg
