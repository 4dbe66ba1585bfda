"""
Room management for multiplayer Spiller games.

This module handles room creation, player seating, and WebSocket
delivery for game sessions.

A Room contains:
    - A random room id for joining
    - A collection of RoomPlayers (one per connection)
    - A Game instance with the authoritative state
    - The game lock that serializes every mutation of that game

The RoomManager is an explicit registry value owned by the server; there
is no module-level room table.
"""

import asyncio
import logging
import random
import string
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from config import config
from game import Game, RoomSettings
from models import events
from scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass
class RoomPlayer:
    """
    A connection seated in a room (lobby-level representation).

    This is separate from game.Player - RoomPlayer tracks the WebSocket,
    while game.Player tracks the hand.

    Attributes:
        id: Unique player identifier (connection id).
        name: Display name.
        websocket: WebSocket connection (None in tests and after disconnect).
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None


@dataclass
class Room:
    """
    A game room. Implements the game's Transport.

    Attributes:
        code: Room id.
        settings: Settings chosen when the room was created.
        players: Dict mapping player IDs to RoomPlayer objects.
        game_lock: asyncio.Lock for serializing game mutations; scheduled
            game tasks take it too.
        game: The Game instance containing actual game state.
        closed: True once the room has been torn down.
    """

    code: str
    settings: RoomSettings = field(default_factory=RoomSettings.create)
    players: dict[str, RoomPlayer] = field(default_factory=dict)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    game: Game = field(init=False)
    closed: bool = False

    def __post_init__(self) -> None:
        self.game = Game(
            self.code,
            transport=self,
            settings=self.settings,
            scheduler=Scheduler(self.game_lock, name=self.code),
        )

    @property
    def host_id(self) -> Optional[str]:
        return self.game.host_id

    async def add_player(
        self,
        player_id: str,
        name: str,
        websocket: Optional[WebSocket] = None,
    ) -> RoomPlayer:
        """
        Seat a player. The first player to join becomes the host.

        Args:
            player_id: Unique identifier for the player (connection id).
            name: Display name.
            websocket: The player's WebSocket connection.

        Returns:
            The created RoomPlayer object.
        """
        room_player = RoomPlayer(id=player_id, name=name, websocket=websocket)
        self.players[player_id] = room_player
        await self.game.add_player(player_id, name)
        return room_player

    async def remove_player(self, player_id: str) -> Optional[RoomPlayer]:
        """
        Remove a player from the room and the game.

        Returns:
            The removed RoomPlayer, or None if not found.
        """
        if player_id not in self.players:
            return None
        room_player = self.players.pop(player_id)
        await self.game.remove_player(player_id)
        return room_player

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        """Get a player by ID, or None if not found."""
        return self.players.get(player_id)

    def is_empty(self) -> bool:
        """Check if the room has no players."""
        return len(self.players) == 0

    def player_list(self) -> list[dict]:
        """Players for lobby display."""
        return [
            {"id": p.id, "name": p.name, "is_host": p.id == self.host_id}
            for p in self.players.values()
        ]

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connected player in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id, player in list(self.players.items()):
            if player_id != exclude and player.websocket:
                try:
                    await player.websocket.send_json(message)
                except Exception as e:
                    logger.debug(
                        f"Send to {player_id} failed: {e}",
                        extra={"room_code": self.code, "player_id": player_id},
                    )

    async def send_to(self, player_id: str, message: dict) -> None:
        """
        Send a message to a specific player.

        Args:
            player_id: ID of the recipient player.
            message: JSON-serializable message dict.
        """
        player = self.players.get(player_id)
        if player and player.websocket:
            try:
                await player.websocket.send_json(message)
            except Exception as e:
                logger.debug(
                    f"Send to {player_id} failed: {e}",
                    extra={"room_code": self.code, "player_id": player_id},
                )

    async def close(self, reason: str) -> None:
        """
        Tear the room down: cancel every pending game task and tell everyone.

        Safe to call twice.
        """
        if self.closed:
            return
        self.closed = True
        cancelled = self.game.close()
        logger.info(
            f"Room closed ({reason}), {cancelled} pending tasks cancelled",
            extra={"room_code": self.code},
        )
        await self.broadcast(events.room_closed(reason))


class RoomManager:
    """
    Manages all active game rooms.

    Provides room creation with unique ids, lookup, and teardown.
    A single RoomManager instance is owned by the server app.
    """

    def __init__(self, code_length: Optional[int] = None) -> None:
        """Initialize an empty room manager."""
        self.rooms: dict[str, Room] = {}
        self.code_length = code_length or config.ROOM_CODE_LENGTH

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique lowercase base-36 room id."""
        alphabet = string.ascii_lowercase + string.digits
        for _ in range(max_attempts):
            code = "".join(random.choices(alphabet, k=self.code_length))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(self, settings: Optional[RoomSettings] = None) -> Room:
        """
        Create a new room with a unique id.

        Returns:
            The newly created Room.
        """
        code = self._generate_code()
        room = Room(code=code, settings=settings or RoomSettings.create())
        self.rooms[code] = room
        logger.info(f"Room created: {room.settings.to_dict()}", extra={"room_code": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its id (case-insensitive).

        Returns:
            The Room if found, None otherwise.
        """
        return self.rooms.get((code or "").lower())

    def remove_room(self, code: str) -> Optional[Room]:
        """Drop a room from the registry without notifying anyone."""
        return self.rooms.pop(code, None)

    async def close_room(self, code: str, reason: str) -> None:
        """Close a room (cancelling its tasks, notifying players) and forget it."""
        room = self.remove_room(code)
        if room:
            await room.close(reason)

    async def close_all(self, reason: str = "Server shutting down") -> None:
        for code in list(self.rooms):
            await self.close_room(code, reason)

    def find_player_room(self, player_id: str) -> Optional[Room]:
        """
        Find which room a player is in.

        Returns:
            The Room containing the player, or None.
        """
        for room in self.rooms.values():
            if player_id in room.players:
                return room
        return None

    async def handle_player_leave(self, room: Room, player_id: str) -> None:
        """
        Handle a player leaving a room.

        The host leaving closes the room for everyone; anyone else is
        unseated. A room left with nobody in it is destroyed.
        """
        if player_id not in room.players:
            return
        if player_id == room.host_id:
            await self.close_room(room.code, "Host left the room")
            return

        await room.remove_player(player_id)
        if room.is_empty() or not room.game.turn_order:
            await self.close_room(room.code, "Room is empty")
