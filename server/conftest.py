"""Shared fixtures for the Spiller server tests."""

import random
from typing import Optional

import pytest

from cards import build_pile
from config import TimingConfig
from game import Game, RoomSettings

# Short enough that scheduler.join() returns quickly
FAST_TIMING = TimingConfig(VALIDATION_DELAY_MS=10, SING_WINDOW_MS=40, SPADE_NAMING_MS=40)


class MockTransport:
    """Collects everything a game sends, in order."""

    def __init__(self):
        self.messages: list[tuple[Optional[str], dict]] = []

    async def broadcast(self, message: dict):
        self.messages.append((None, message))

    async def send_to(self, player_id: str, message: dict):
        self.messages.append((player_id, message))

    def of_type(self, msg_type: str, to: Optional[str] = "any") -> list[dict]:
        return [
            m for dest, m in self.messages
            if m["type"] == msg_type and (to == "any" or dest == to)
        ]

    def chat_lines(self) -> list[str]:
        return [m["message"] for m in self.of_type("chat")]

    def seqs(self) -> list[int]:
        return [m["seq"] for m in self.of_type("game_state")]

    def clear(self):
        self.messages.clear()


def rig_table(game: Game, hands: dict[str, list[str]], top: str) -> None:
    """
    Replace the dealt cards with known hands and discard top.

    Every other card of the game's decks goes to the draw pile, so the
    total card count is unchanged.
    """
    pile = build_pile(game.settings.deck_count)
    for player_id, cards in hands.items():
        for card in cards:
            pile.remove(card)
        game.players[player_id].hand = list(cards)
    pile.remove(top)
    game.discard = [top]
    game.draw = pile


@pytest.fixture
def transport():
    return MockTransport()


@pytest.fixture
def make_game(transport):
    """
    Factory for a game with players seated (ids are lowercase initials).

    Pass rules=[] to run without house rules.
    """

    async def factory(rules=None, players=("Alice", "Bob"), start=True, **settings) -> Game:
        game = Game(
            "room1",
            transport=transport,
            settings=RoomSettings.create(timing=FAST_TIMING, **settings),
            rules=rules,
            timing=FAST_TIMING,
            rng=random.Random(1),
        )
        for name in players:
            await game.add_player(name[0].lower(), name)
        if start:
            await game.start()
        return game

    return factory


@pytest.fixture
def rig():
    return rig_table
