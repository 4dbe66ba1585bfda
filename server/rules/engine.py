"""
Rule engine: pluggable house rules with lifecycle hooks.

A rule is a small class that opts into one or more hooks:

    CHAT            a chat message was received          on_chat(ctx)
    PLAY_VALIDATED  a play passed authoritative checks   on_play_validated(ctx) -> PlayEffects | None
    SING            a player pressed sing                on_sing(ctx)
    KNOCK           a player knocked                     on_knock(ctx)

The engine calls every registered rule that declares a hook, in
registration order, and ORs together the PlayEffects they return.

Rules never touch hands or piles. Everything they can do goes through the
RuleContext, which forwards to the game's own primitives so every card
movement and every obligation timer stays on the engine's single path.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from cards import Card, parse_card
from errors import GameError

if TYPE_CHECKING:
    from game import Game, LastPlay, PlayRecord, RoomSettings


class Hook(Enum):
    """Lifecycle points a rule can attach to."""

    CHAT = "chat"
    PLAY_VALIDATED = "play_validated"
    SING = "sing"
    KNOCK = "knock"


@dataclass
class PlayEffects:
    """
    Effects a rule can request after a validated play.

    Attributes:
        skip_next: Skip the player after the one whose turn comes next.
    """

    skip_next: bool = False

    def merge(self, other: Optional["PlayEffects"]) -> "PlayEffects":
        """OR another rule's effects into this one."""
        if other is not None:
            self.skip_next = self.skip_next or other.skip_next
        return self


_NON_ALPHA = re.compile(r"[^a-z]")


def normalize_text(text: Optional[str]) -> str:
    """Lowercase and strip everything that is not a-z."""
    return _NON_ALPHA.sub("", (text or "").lower())


def text_distance(a: Optional[str], b: Optional[str]) -> int:
    """
    Levenshtein distance between two texts after normalize_text().

    "Have a nice day!" and "have a nice day" are distance 0.
    """
    s, t = normalize_text(a), normalize_text(b)
    if len(s) < len(t):
        s, t = t, s
    previous = list(range(len(t) + 1))
    for i, cs in enumerate(s, start=1):
        current = [i]
        for j, ct in enumerate(t, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (cs != ct),
            ))
        previous = current
    return previous[-1]


class RuleContext:
    """
    Capability facade handed to rule hooks.

    Carries the event being handled (player, card, message) and exposes
    only named operations on the game. Rules must not reach past it.
    """

    __slots__ = ("_game", "player_id", "card", "parsed", "prev_top", "message")

    def __init__(
        self,
        game: "Game",
        player_id: str,
        card: Optional[str] = None,
        prev_top: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self._game = game
        self.player_id = player_id
        self.card = card
        self.parsed: Optional[Card] = parse_card(card) if card else None
        self.prev_top = prev_top
        self.message = message

    # -- read-only views -------------------------------------------------

    @property
    def settings(self) -> "RoomSettings":
        return self._game.settings

    @property
    def last_play(self) -> Optional["LastPlay"]:
        return self._game.last_play

    @property
    def recent_plays(self) -> tuple["PlayRecord", ...]:
        return tuple(self._game.recent_plays)

    @property
    def player_ids(self) -> list[str]:
        return list(self._game.turn_order)

    def player_name(self, player_id: str) -> str:
        return self._game.player_name(player_id)

    def next_player_id(self) -> Optional[str]:
        """Who would play next in the current direction."""
        return self._game.peek_next_player_id()

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def parse_card(code: str) -> Optional[Card]:
        return parse_card(code)

    @staticmethod
    def distance(a: Optional[str], b: Optional[str]) -> int:
        return text_distance(a, b)

    # -- mutations through the engine ------------------------------------

    def penalize(self, player_id: str, reason: str) -> None:
        """Announce a penalty and give the player one card."""
        self._game.penalize(player_id, reason)

    def draw_one(self, player_id: str) -> Optional[str]:
        """Give the player one card; None if both piles are exhausted."""
        try:
            return self._game.draw_one_to_player(player_id)
        except GameError:
            return None

    def draw_many(self, player_id: str, count: int) -> list[str]:
        return self._game.draw_many_to_player(player_id, count)

    def announce(self, message: str) -> None:
        """Post a SYSTEM chat line to the room."""
        self._game.announce(message)

    def reverse_direction(self) -> str:
        return self._game.reverse_direction()

    # -- obligation trackers ---------------------------------------------

    @property
    def evil_pending(self) -> bool:
        return self._game.evil_pending

    @evil_pending.setter
    def evil_pending(self, value: bool) -> None:
        self._game.evil_pending = bool(value)

    def owe_spade(self, player_id: str, card: str) -> None:
        """Require player_id to name card in chat before the deadline."""
        self._game.require_spade_naming(player_id, card)

    def spade_owed(self, player_id: str) -> Optional[str]:
        return self._game.awaiting_spade.get(player_id)

    def clear_spade(self, player_id: str) -> None:
        self._game.clear_spade_naming(player_id)

    @property
    def sing_window_open(self) -> bool:
        return self._game.sing_pending is not None

    def open_sing_window(self) -> bool:
        return self._game.open_sing_window()

    def owes_sing(self, player_id: str) -> bool:
        return self._game.sing_pending is not None and player_id in self._game.sing_pending

    def mark_sung(self, player_id: str) -> None:
        self._game.mark_sung(player_id)


class Rule:
    """
    Base class for house rules.

    Subclasses set id, description and hooks, and override the matching
    on_* methods. Unlisted hooks are never called.
    """

    id: str = ""
    description: str = ""
    hooks: frozenset[Hook] = frozenset()

    def on_chat(self, ctx: RuleContext) -> None:
        pass

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        return None

    def on_sing(self, ctx: RuleContext) -> None:
        pass

    def on_knock(self, ctx: RuleContext) -> None:
        pass

    def __repr__(self) -> str:
        return f"<Rule {self.id}>"


class RuleEngine:
    """Ordered collection of rules bound to one game."""

    def __init__(self, game: "Game", rules: Iterable[Rule] = ()) -> None:
        self.game = game
        self.rules: list[Rule] = []
        for rule in rules:
            self.use(rule)

    def use(self, rule: Rule) -> None:
        """Register a rule after all existing ones."""
        if not isinstance(rule, Rule):
            raise TypeError(f"Expected a Rule, got {type(rule).__name__}")
        self.rules.append(rule)

    def _subscribed(self, hook: Hook) -> list[Rule]:
        return [r for r in self.rules if hook in r.hooks]

    def on_chat(self, player_id: str, message: str) -> None:
        ctx = RuleContext(self.game, player_id, message=message)
        for rule in self._subscribed(Hook.CHAT):
            rule.on_chat(ctx)

    def on_play_validated(self, player_id: str, card: str, prev_top: Optional[str]) -> PlayEffects:
        ctx = RuleContext(self.game, player_id, card=card, prev_top=prev_top)
        effects = PlayEffects()
        for rule in self._subscribed(Hook.PLAY_VALIDATED):
            effects.merge(rule.on_play_validated(ctx))
        return effects

    def on_sing(self, player_id: str) -> None:
        ctx = RuleContext(self.game, player_id)
        for rule in self._subscribed(Hook.SING):
            rule.on_sing(ctx)

    def on_knock(self, player_id: str) -> None:
        ctx = RuleContext(self.game, player_id)
        for rule in self._subscribed(Hook.KNOCK):
            rule.on_knock(ctx)
