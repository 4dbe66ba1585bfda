"""Errors returned to the requesting client only."""


class GameError(Exception):
    """
    A request-local failure: the action is refused, nothing is broadcast.

    The message is shown to the caller as-is.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# Messages shared between the engine, the room registry and the handlers
GAME_NOT_STARTED = "Game not started"
GAME_OVER = "Game over"
PLAYER_NOT_FOUND = "Player not found"
CARD_NOT_IN_HAND = "Card not in hand"
NO_SUCH_ROOM = "No such room"
ONLY_HOST_CAN_START = "Only host can start"
NEED_TWO_PLAYERS = "Need at least 2 players to start"
NO_CARDS_TO_DRAW = "No cards to draw"
ROOM_FULL = "Room is full"
GAME_IN_PROGRESS = "Game already in progress"
UNKNOWN_SUIT = "Unknown suit"
