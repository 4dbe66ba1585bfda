"""
The default Spiller house rules.

Each rule is independent; order matters only where two rules touch the
same play (three-in-a-row looks at the turn before an ace reverses it).

    beatles-10       10 played: next chat must name a Beatle
    seven-nice-day   7 played: next chat must say "have a nice day"
    evil-7S          7 of spades: chat must contain "evil" until someone says it
    name-spade       spade played: its player must name it within the deadline
    three-in-a-row   three validated plays of one rank: next player draws 3
    skip-5           5 skips the next player
    reverse-ace      ace flips the direction of play
    sing-AS          ace of spades: everyone must sing before the window closes
    curse-penalty    cursing in chat costs a card
"""

from abc import ABC, abstractmethod
from typing import Optional

from cards import Rank, Suit
from constants import (
    BEATLES,
    BEATLE_MAX_DISTANCE,
    CURSE_WORDS,
    EVIL_WORD,
    NICE_DAY_MAX_DISTANCE,
    NICE_DAY_PHRASE,
    PENALTY_BEATLE,
    PENALTY_CURSING,
    PENALTY_EVIL,
    PENALTY_NICE_DAY,
    PENALTY_SPADE,
    THREE_IN_A_ROW_DRAW,
    THREE_IN_A_ROW_LENGTH,
)
from .engine import Hook, PlayEffects, Rule, RuleContext


class NextChatRule(Rule, ABC):
    """
    Checks the first chat message after a play of a given rank.

    Each play is checked at most once: later chats are free until the
    next triggering play.
    """

    hooks = frozenset({Hook.CHAT})
    rank: Optional[Rank] = None
    penalty: str = ""

    def __init__(self) -> None:
        self._answered_play: Optional[int] = None

    def on_chat(self, ctx: RuleContext) -> None:
        last = ctx.last_play
        if last is None or last.number == self._answered_play:
            return
        parsed = ctx.parse_card(last.card)
        if parsed is None or parsed.rank != self.rank:
            return
        self._answered_play = last.number
        if not self.accepts(ctx, ctx.message or ""):
            ctx.penalize(ctx.player_id, self.penalty)

    @abstractmethod
    def accepts(self, ctx: RuleContext, message: str) -> bool:
        """True if message satisfies the obligation."""


class BeatlesOnTen(NextChatRule):
    id = "beatles-10"
    description = "When a 10 is played, the next chat must name a Beatle"
    rank = Rank.TEN
    penalty = PENALTY_BEATLE

    def accepts(self, ctx: RuleContext, message: str) -> bool:
        text = message.lower()
        for name in BEATLES:
            first = name.split()[0]
            if first in text:
                return True
            if ctx.distance(message, name) <= BEATLE_MAX_DISTANCE:
                return True
            if ctx.distance(message, first) <= BEATLE_MAX_DISTANCE:
                return True
        return False


class NiceDayOnSeven(NextChatRule):
    id = "seven-nice-day"
    description = "When a 7 is played, the next chat must say have a nice day"
    rank = Rank.SEVEN
    penalty = PENALTY_NICE_DAY

    def accepts(self, ctx: RuleContext, message: str) -> bool:
        return ctx.distance(message, NICE_DAY_PHRASE) <= NICE_DAY_MAX_DISTANCE


class EvilSevenOfSpades(Rule):
    id = "evil-7S"
    description = "The 7 of spades demands the evil phrase"
    hooks = frozenset({Hook.PLAY_VALIDATED, Hook.CHAT})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        if ctx.parsed and ctx.parsed.rank == Rank.SEVEN and ctx.parsed.suit == Suit.SPADES:
            ctx.evil_pending = True
            ctx.announce("Evil card played, name the evil phrase now")
        return None

    def on_chat(self, ctx: RuleContext) -> None:
        if not ctx.evil_pending:
            return
        if EVIL_WORD in (ctx.message or "").lower():
            ctx.evil_pending = False
        else:
            ctx.penalize(ctx.player_id, PENALTY_EVIL)


class NameYourSpade(Rule):
    id = "name-spade"
    description = "Whoever plays a spade must name it in chat"
    hooks = frozenset({Hook.PLAY_VALIDATED, Hook.CHAT})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        if ctx.parsed and ctx.parsed.suit == Suit.SPADES:
            ctx.owe_spade(ctx.player_id, ctx.card)
        return None

    def on_chat(self, ctx: RuleContext) -> None:
        expected = ctx.spade_owed(ctx.player_id)
        if not expected:
            return
        text = (ctx.message or "").lower()
        if expected.lower() in text or expected[0].lower() in text:
            ctx.clear_spade(ctx.player_id)
        else:
            ctx.penalize(ctx.player_id, PENALTY_SPADE)


class ThreeInARow(Rule):
    id = "three-in-a-row"
    description = "Three plays of the same rank in a row: the next player draws 3"
    hooks = frozenset({Hook.PLAY_VALIDATED})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        plays = ctx.recent_plays
        if len(plays) < THREE_IN_A_ROW_LENGTH:
            return None
        ranks = {p.rank for p in plays[-THREE_IN_A_ROW_LENGTH:]}
        if len(ranks) != 1:
            return None
        target = ctx.next_player_id()
        if target is None:
            return None
        drawn = ctx.draw_many(target, THREE_IN_A_ROW_DRAW)
        ctx.announce(f"{ctx.player_name(target)} was hit by three-in-a-row and drew {len(drawn)}")
        return None


class SkipOnFive(Rule):
    id = "skip-5"
    description = "Playing a 5 skips the next player"
    hooks = frozenset({Hook.PLAY_VALIDATED})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        if ctx.parsed and ctx.parsed.rank == Rank.FIVE:
            return PlayEffects(skip_next=True)
        return None


class ReverseOnAce(Rule):
    id = "reverse-ace"
    description = "An ace reverses the direction of play"
    hooks = frozenset({Hook.PLAY_VALIDATED})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        if ctx.parsed and ctx.parsed.rank == Rank.ACE:
            direction = ctx.reverse_direction()
            ctx.announce(f"Direction reversed to {direction}")
        return None


class SingOnAceOfSpades(Rule):
    id = "sing-AS"
    description = "The ace of spades opens a sing window for every player"
    hooks = frozenset({Hook.PLAY_VALIDATED, Hook.SING})

    def on_play_validated(self, ctx: RuleContext) -> Optional[PlayEffects]:
        if ctx.card == "AS" and not ctx.sing_window_open:
            ctx.open_sing_window()
            ctx.announce("Ace of spades! Everybody sing")
        return None

    def on_sing(self, ctx: RuleContext) -> None:
        if ctx.owes_sing(ctx.player_id):
            ctx.mark_sung(ctx.player_id)


class CursePenalty(Rule):
    id = "curse-penalty"
    description = "Curse words cost a penalty card"
    hooks = frozenset({Hook.CHAT})

    def on_chat(self, ctx: RuleContext) -> None:
        text = (ctx.message or "").lower()
        if any(word in text for word in CURSE_WORDS):
            ctx.penalize(ctx.player_id, PENALTY_CURSING)


def default_rules() -> list[Rule]:
    """Fresh instances of the default rules, in dispatch order."""
    return [
        BeatlesOnTen(),
        NiceDayOnSeven(),
        EvilSevenOfSpades(),
        NameYourSpade(),
        ThreeInARow(),
        SkipOnFive(),
        ReverseOnAce(),
        SingOnAceOfSpades(),
        CursePenalty(),
    ]
