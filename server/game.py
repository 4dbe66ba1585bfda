"""
Authoritative game engine for Spiller.

One Game per room. It owns every hand, both piles, the turn pointer and
the transient obligations created by house rules. Nothing else mutates
them: rules go through RuleContext, handlers call the public operations.

Spiller Rules Summary:
    - Each player is dealt 5 cards; one card opens the discard pile
    - On your turn, play a card matching the top discard by rank or suit,
      or draw one card
    - Empty your hand to win
    - House rules (see rules/default_rules.py) add chat obligations,
      skips, reversals, forced draws and sing windows

Optimistic plays:
    A play is applied and broadcast immediately, then judged after
    VALIDATION_DELAY_MS against the discard top from before the play and
    the turn pointer at judgement time. An illegal play is rolled back
    and costs a penalty card.

Outbound messages are queued while state changes and flushed in order
afterwards, so no observer sees a snapshot taken halfway through an
operation. Public snapshots carry a per-room seq that only goes up.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Optional, Protocol

from cards import Rank, Suit, cards_match, new_shuffled_pile, parse_card, shuffled
from config import GameLimits, TimingConfig, config
from constants import (
    CLOCKWISE,
    COUNTER_CLOCKWISE,
    DIRECTIONS,
    PENALTY_BAD_KNOCK,
    PENALTY_BAD_SUIT_CALL,
    PENALTY_FLAT_NOTE,
    PENALTY_INVALID_PLAY,
    PENALTY_OUT_OF_TURN_DRAW,
    PENALTY_SING,
    PENALTY_SPADE,
    SYSTEM_SENDER,
)
from errors import (
    CARD_NOT_IN_HAND,
    GAME_NOT_STARTED,
    GAME_OVER,
    NO_CARDS_TO_DRAW,
    PLAYER_NOT_FOUND,
    UNKNOWN_SUIT,
    GameError,
)
from models import events
from rules import Rule, RuleEngine, default_rules
from scheduler import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)

PlayCallback = Callable[[Optional[str]], Awaitable[None]]


class Transport(Protocol):
    """Where a game's outbound messages go (implemented by room.Room)."""

    async def broadcast(self, message: dict) -> None: ...

    async def send_to(self, player_id: str, message: dict) -> None: ...


@dataclass(frozen=True)
class RoomSettings:
    """
    Per-room settings chosen by the host.

    Attributes:
        deck_count: Number of 52-card decks in the pile.
        direction: "cw" or "ccw". Aces flip it mid-game.
        sing_window_ms: How long players have to sing after the ace of spades.
    """

    deck_count: int = 1
    direction: str = CLOCKWISE
    sing_window_ms: int = 10000

    @property
    def step(self) -> int:
        """+1 clockwise, -1 counter-clockwise."""
        return 1 if self.direction == CLOCKWISE else -1

    def to_dict(self) -> dict:
        return {
            "deck_count": self.deck_count,
            "direction": self.direction,
            "sing_window_ms": self.sing_window_ms,
        }

    @classmethod
    def create(
        cls,
        deck_count: Optional[int] = None,
        direction: Optional[str] = None,
        sing_window_ms: Optional[int] = None,
        limits: Optional[GameLimits] = None,
        timing: Optional[TimingConfig] = None,
    ) -> "RoomSettings":
        """Build settings from client values, clamped to the configured limits."""
        limits = limits or config.limits
        timing = timing or config.timing
        decks = deck_count if deck_count is not None else limits.MIN_DECKS
        window = sing_window_ms if sing_window_ms and sing_window_ms > 0 else timing.SING_WINDOW_MS
        return cls(
            deck_count=max(limits.MIN_DECKS, min(limits.MAX_DECKS, decks)),
            direction=direction if direction in DIRECTIONS else CLOCKWISE,
            sing_window_ms=window,
        )


@dataclass
class Player:
    """
    A seated player.

    Attributes:
        id: Unique identifier (connection id).
        name: Display name.
        hand: Card codes in the order they were received.
    """

    id: str
    name: str
    hand: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LastPlay:
    """The most recent play, validated or still pending. number is unique per game."""

    player_id: str
    card: str
    number: int


@dataclass(frozen=True)
class PlayRecord:
    """A validated play, kept in Game.recent_plays."""

    player_id: str
    card: str
    rank: Rank
    suit: Suit


@dataclass(frozen=True)
class SuitSelection:
    """The first suit called after a Jack."""

    player_id: str
    suit: Suit
    play_number: int


@dataclass
class PendingPlay:
    """An optimistic play waiting for its verdict."""

    play: LastPlay
    prev_top: Optional[str]
    previous_play: Optional[LastPlay]
    callback: Optional[PlayCallback] = None
    task: Optional[ScheduledTask] = None


class Game:
    """
    Main game state and logic controller for one room.

    Attributes:
        room_id: Room this game belongs to.
        players: Player id -> Player.
        turn_order: Player ids in join order.
        current_turn_index: Index into turn_order of the player to move.
        draw: Draw pile, top is the last element.
        discard: Discard pile, top is the last element.
        settings: Room settings (direction changes during play).
        host_id: The room's host, or None.
        started: True between start() and a win.
        seq: Sequence number of the last public snapshot.
        last_play: Most recent play (set optimistically).
        suit_selection: First suit call after the current Jack.
        sing_pending: Players still owing a sing, or None outside a window.
        evil_pending: Someone must say the evil phrase.
        awaiting_spade: Player id -> spade they owe a naming of.
        recent_plays: Last validated plays, oldest first.
        pending_plays: Play number -> optimistic play not yet judged.
        scheduler: Owner of this room's delayed tasks.
    """

    def __init__(
        self,
        room_id: str,
        transport: Optional[Transport] = None,
        settings: Optional[RoomSettings] = None,
        rules: Optional[list[Rule]] = None,
        scheduler: Optional[Scheduler] = None,
        timing: Optional[TimingConfig] = None,
        limits: Optional[GameLimits] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.room_id = room_id
        self.transport = transport
        self.timing = timing or config.timing
        self.limits = limits or config.limits
        self.settings = settings or RoomSettings.create(timing=self.timing, limits=self.limits)
        self.scheduler = scheduler or Scheduler(name=room_id)
        self.rng = rng
        self.rules = RuleEngine(self, default_rules() if rules is None else rules)

        self.players: dict[str, Player] = {}
        self.turn_order: list[str] = []
        self.current_turn_index = 0
        self.draw: list[str] = []
        self.discard: list[str] = []
        self.host_id: Optional[str] = None
        self.started = False
        self.seq = 0

        self.last_play: Optional[LastPlay] = None
        self.suit_selection: Optional[SuitSelection] = None
        self.sing_pending: Optional[set[str]] = None
        self.evil_pending = False
        self.awaiting_spade: dict[str, str] = {}
        self.recent_plays: deque[PlayRecord] = deque(maxlen=self.limits.RECENT_PLAYS_LIMIT)
        self.pending_plays: dict[int, PendingPlay] = {}

        self._play_counter = 0
        self._spade_timers: dict[str, ScheduledTask] = {}
        self._sing_timer: Optional[ScheduledTask] = None
        self._outbox: list[tuple[Optional[str], dict]] = []

    @property
    def lock(self):
        """The room lock every mutation and scheduled task runs under."""
        return self.scheduler.lock

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_player(self, player_id: str) -> Optional[Player]:
        return self.players.get(player_id)

    def player_name(self, player_id: str) -> str:
        player = self.players.get(player_id)
        return player.name if player else player_id

    def current_player_id(self) -> Optional[str]:
        """The player whose turn it is, or None with nobody seated."""
        if not self.turn_order:
            return None
        return self.turn_order[self.current_turn_index]

    def peek_next_player_id(self) -> Optional[str]:
        """Who would move after the current player in the current direction."""
        if not self.turn_order:
            return None
        idx = (self.current_turn_index + self.settings.step) % len(self.turn_order)
        return self.turn_order[idx]

    def discard_top(self) -> Optional[str]:
        """Get the top card of the discard pile (if any)."""
        if self.discard:
            return self.discard[-1]
        return None

    def card_count(self) -> int:
        """Cards across both piles and every hand."""
        return len(self.draw) + len(self.discard) + sum(len(p.hand) for p in self.players.values())

    def _require_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise GameError(PLAYER_NOT_FOUND)
        return player

    # -------------------------------------------------------------------------
    # Outbound messages
    # -------------------------------------------------------------------------

    def _queue(self, message: dict, to: Optional[str] = None) -> None:
        """Queue a message for the room (to=None) or a single player."""
        self._outbox.append((to, message))

    async def flush(self) -> None:
        """Deliver queued messages in the order they were produced."""
        while self._outbox:
            to, message = self._outbox.pop(0)
            if self.transport is None:
                continue
            if to is None:
                await self.transport.broadcast(message)
            else:
                await self.transport.send_to(to, message)

    def snapshot(self) -> dict:
        """Public room state at the current seq."""
        return events.game_state(
            room_id=self.room_id,
            players=[
                {"id": pid, "name": self.players[pid].name, "hand_count": len(self.players[pid].hand)}
                for pid in self.turn_order
            ],
            turn_order=list(self.turn_order),
            current_turn=self.current_player_id(),
            discard_top=self.discard_top(),
            draw_count=len(self.draw),
            settings=self.settings.to_dict(),
            host_id=self.host_id,
            started=self.started,
            seq=self.seq,
        )

    def sync(self, include_private: bool = True) -> None:
        """
        Queue a public snapshot, and each player's own hand if include_private.

        Every call increments seq exactly once.
        """
        self.seq += 1
        self._queue(self.snapshot())
        if include_private:
            for pid in self.turn_order:
                self._queue(events.private_state(self.players[pid].hand), to=pid)

    def announce(self, message: str) -> None:
        """Queue a SYSTEM chat line."""
        self._queue(events.chat(SYSTEM_SENDER, message))

    def format_penalty(self, player_id: str, reason: str) -> None:
        """Queue the penalty announcement for a player."""
        logger.info(
            f"Penalty for {player_id}: {reason}",
            extra={"room_code": self.room_id, "player_id": player_id},
        )
        self.announce(f"{self.player_name(player_id)} draws a penalty card: {reason}")

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    async def add_player(self, player_id: str, name: str) -> bool:
        """
        Seat a player. The first player becomes host.

        Returns:
            True if added, False if already seated.
        """
        if player_id in self.players:
            return False
        self.players[player_id] = Player(id=player_id, name=name)
        self.turn_order.append(player_id)
        if self.host_id is None:
            self.host_id = player_id
        logger.info(f"{name} joined", extra={"room_code": self.room_id, "player_id": player_id})

        self._queue(events.private_state([]), to=player_id)
        self.sync(include_private=True)
        await self.flush()
        return True

    async def remove_player(self, player_id: str) -> Optional[Player]:
        """
        Unseat a player.

        Their hand goes to the bottom of the draw pile, their obligations
        are dropped, and the turn stays with whoever held it.

        Returns:
            The removed Player, or None if not found.
        """
        player = self.players.pop(player_id, None)
        if player is None:
            return None

        idx = self.turn_order.index(player_id)
        self.turn_order.pop(idx)
        if idx < self.current_turn_index:
            self.current_turn_index -= 1
        if self.current_turn_index >= len(self.turn_order) or self.current_turn_index < 0:
            self.current_turn_index = 0

        self.draw[0:0] = player.hand
        player.hand = []

        if self.host_id == player_id:
            self.host_id = None
        self.clear_spade_naming(player_id)
        if self.sing_pending is not None and player_id in self.sing_pending:
            self.mark_sung(player_id)

        logger.info(f"{player.name} left", extra={"room_code": self.room_id, "player_id": player_id})
        self.sync(include_private=True)
        await self.flush()
        return player

    # -------------------------------------------------------------------------
    # Game Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Shuffle a fresh pile, deal, open the discard pile.

        Returns:
            True if the game started, False if it was already running.
        """
        if self.started:
            return False

        self._reset_obligations()
        for player in self.players.values():
            player.hand = []

        self.draw = new_shuffled_pile(self.settings.deck_count, self.rng)
        self.discard = []
        for _ in range(self.limits.HAND_SIZE):
            for pid in self.turn_order:
                if not self.draw:
                    break
                self.players[pid].hand.append(self.draw.pop())
        if self.draw:
            self.discard.append(self.draw.pop())

        self.current_turn_index = (
            self.turn_order.index(self.host_id) if self.host_id in self.turn_order else 0
        )
        self.started = True
        logger.info(
            f"Game started with {len(self.turn_order)} players, {self.settings.deck_count} deck(s)",
            extra={"room_code": self.room_id},
        )

        self.sync(include_private=True)
        await self.flush()
        return True

    def _reset_obligations(self) -> None:
        self.last_play = None
        self.suit_selection = None
        self.evil_pending = False
        self.recent_plays.clear()
        for pid in list(self.awaiting_spade):
            self.clear_spade_naming(pid)
        if self._sing_timer:
            self._sing_timer.cancel()
            self._sing_timer = None
        self.sing_pending = None

    def close(self) -> int:
        """
        Dispose of the game: cancel every pending task and drop obligations.

        Returns:
            The number of scheduled tasks cancelled.
        """
        cancelled = self.scheduler.cancel_all()
        self.pending_plays.clear()
        self.awaiting_spade.clear()
        self._spade_timers.clear()
        self._sing_timer = None
        self.sing_pending = None
        self._outbox.clear()
        return cancelled

    # -------------------------------------------------------------------------
    # Turn and pile primitives
    # -------------------------------------------------------------------------

    def advance_turn(self) -> None:
        """Move the turn one seat in the current direction."""
        if not self.turn_order:
            return
        self.current_turn_index = (self.current_turn_index + self.settings.step) % len(self.turn_order)

    def reverse_direction(self) -> str:
        """Flip the direction of play. Returns the new direction."""
        direction = COUNTER_CLOCKWISE if self.settings.direction == CLOCKWISE else CLOCKWISE
        self.settings = replace(self.settings, direction=direction)
        return direction

    def reshuffle_if_needed(self) -> None:
        """
        Refill an empty draw pile from the discard pile.

        The discard top stays in place; everything under it is shuffled
        into the draw pile.

        Raises:
            GameError: If there is nothing under the discard top.
        """
        if self.draw:
            return
        if len(self.discard) <= 1:
            raise GameError(NO_CARDS_TO_DRAW)
        top = self.discard[-1]
        self.draw = shuffled(self.discard[:-1], self.rng)
        self.discard = [top]
        logger.debug(f"Reshuffled {len(self.draw)} cards into draw pile", extra={"room_code": self.room_id})

    def draw_one_to_player(self, player_id: str) -> str:
        """
        Move the top draw card into a player's hand.

        Raises:
            GameError: If the player is unknown or no card can be produced.
        """
        player = self._require_player(player_id)
        self.reshuffle_if_needed()
        card = self.draw.pop()
        player.hand.append(card)
        return card

    def draw_many_to_player(self, player_id: str, count: int) -> list[str]:
        """Draw up to count cards, stopping quietly when the piles run dry."""
        drawn = []
        for _ in range(count):
            try:
                drawn.append(self.draw_one_to_player(player_id))
            except GameError:
                break
        return drawn

    def penalize(self, player_id: str, reason: str) -> Optional[str]:
        """
        Announce a penalty and give the player one card.

        Returns:
            The penalty card, or None if none could be drawn.
        """
        if player_id not in self.players:
            return None
        self.format_penalty(player_id, reason)
        try:
            return self.draw_one_to_player(player_id)
        except GameError as e:
            logger.warning(
                f"Penalty draw for {player_id} failed: {e}",
                extra={"room_code": self.room_id, "player_id": player_id},
            )
            return None

    # -------------------------------------------------------------------------
    # Playing a card
    # -------------------------------------------------------------------------

    async def play_card(
        self,
        player_id: str,
        card: str,
        callback: Optional[PlayCallback] = None,
    ) -> ScheduledTask:
        """
        Play a card optimistically and schedule its validation.

        The card leaves the hand and lands on the discard pile at once;
        the verdict arrives through callback (None on success, an error
        string on rejection) after the validation delay.

        Raises:
            GameError: Game not started, unknown player, or card not in hand.
                Nothing is changed in that case.

        Returns:
            The pending validation task.
        """
        if not self.started:
            raise GameError(GAME_NOT_STARTED)
        player = self._require_player(player_id)
        if card not in player.hand:
            raise GameError(CARD_NOT_IN_HAND)

        self._queue(events.played_attempt(player_id, card))

        prev_top = self.discard_top()
        previous_play = self.last_play
        player.hand.remove(card)
        self.discard.append(card)
        self._play_counter += 1
        play = LastPlay(player_id=player_id, card=card, number=self._play_counter)
        self.last_play = play

        self.sync(include_private=False)
        self._queue(events.play_accepted(player_id, card))
        await self.flush()

        pending = PendingPlay(play, prev_top, previous_play, callback)
        self.pending_plays[play.number] = pending

        async def validate() -> None:
            await self._validate_play(pending)

        pending.task = self.scheduler.schedule(
            self.timing.validation_delay,
            validate,
            name=f"validate:{player_id}:{card}",
        )
        return pending.task

    def pending_play_count(self, player_id: str) -> int:
        """Optimistic plays by player_id still waiting for a verdict."""
        return sum(1 for p in self.pending_plays.values() if p.play.player_id == player_id)

    async def _validate_play(self, pending: PendingPlay) -> None:
        """Judge an optimistic play against the turn pointer as it is now."""
        play, prev_top, callback = pending.play, pending.prev_top, pending.callback
        self.pending_plays.pop(play.number, None)

        player = self.players.get(play.player_id)
        if player is None or not self.started:
            error = PLAYER_NOT_FOUND if player is None else GAME_NOT_STARTED
            logger.info(
                f"Dropping validation of {play.card}: {error}",
                extra={"room_code": self.room_id, "player_id": play.player_id},
            )
            if callback:
                await callback(error)
            return

        is_turn_now = self.current_player_id() == play.player_id
        valid_match = prev_top is None or cards_match(play.card, prev_top)

        if not (is_turn_now and valid_match):
            reason = "Not your turn" if not is_turn_now else f"{play.card} does not match {prev_top}"
            self._roll_back(play, pending.previous_play, reason)
            self.sync(include_private=True)
            await self.flush()
            if callback:
                await callback(reason)
            return

        parsed = parse_card(play.card)
        self.recent_plays.append(PlayRecord(play.player_id, play.card, parsed.rank, parsed.suit))
        effects = self.rules.on_play_validated(play.player_id, play.card, prev_top)

        # An empty hand only wins once every card that emptied it has been judged
        aborted: list[PendingPlay] = []
        if not player.hand and self.pending_play_count(play.player_id) == 0:
            aborted = self._declare_winner(play.player_id)
        else:
            self.advance_turn()
            if effects.skip_next:
                skipped = self.current_player_id()
                self.advance_turn()
                self.announce(f"{self.player_name(skipped)} is skipped")

        self.sync(include_private=True)
        await self.flush()
        if callback:
            await callback(None)
        for other in aborted:
            if other.callback:
                await other.callback(GAME_OVER)

    def _roll_back(self, play: LastPlay, previous_play: Optional[LastPlay], reason: str) -> None:
        """Return a rejected card to its player and charge one penalty card."""
        player = self.players[play.player_id]
        if self._take_back(play.card):
            player.hand.append(play.card)
        if self.last_play == play:
            self.last_play = previous_play

        logger.info(
            f"Rejected {play.card}: {reason}",
            extra={"room_code": self.room_id, "player_id": play.player_id},
        )
        self._queue(events.play_rejected(play.player_id, play.card, reason))
        self._queue(events.play_return(play.card), to=play.player_id)
        self.penalize(play.player_id, f"{PENALTY_INVALID_PLAY} ({reason})")

    def _take_back(self, card: str) -> bool:
        """
        Remove one copy of card from the discard pile, searching from the top.

        Falls back to the draw pile if a reshuffle buried it there.
        """
        for idx in range(len(self.discard) - 1, -1, -1):
            if self.discard[idx] == card:
                self.discard.pop(idx)
                return True
        if card in self.draw:
            self.draw.remove(card)
            return True
        logger.warning(f"Rejected card {card} not found in any pile", extra={"room_code": self.room_id})
        return False

    def _declare_winner(self, player_id: str) -> list[PendingPlay]:
        """
        End the game. Plays still awaiting a verdict are cancelled and
        their cards handed back without penalty.

        Returns:
            The aborted plays, whose callbacks the caller still owes.
        """
        aborted = self._abort_pending_plays(GAME_OVER)
        self.started = False
        self._reset_obligations()
        logger.info(f"{self.player_name(player_id)} won", extra={"room_code": self.room_id})
        self._queue(events.game_over(player_id))
        self.announce(f"{self.player_name(player_id)} wins!")
        return aborted

    def _abort_pending_plays(self, reason: str) -> list[PendingPlay]:
        aborted = list(self.pending_plays.values())
        self.pending_plays.clear()
        # Newest first so last_play unwinds to the newest surviving play
        for pending in reversed(aborted):
            if pending.task:
                pending.task.cancel()
            play = pending.play
            player = self.players.get(play.player_id)
            if player is not None and self._take_back(play.card):
                player.hand.append(play.card)
            if self.last_play == play:
                self.last_play = pending.previous_play
            self._queue(events.play_rejected(play.player_id, play.card, reason))
            self._queue(events.play_return(play.card), to=play.player_id)
        return aborted

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------

    async def draw_card_action(self, player_id: str) -> str:
        """
        Draw a card.

        On your turn this is a normal draw and the turn passes. Off turn
        the card is kept and one more is added as a penalty; the turn
        does not move.

        Raises:
            GameError: Game not started, unknown player, or no cards left.

        Returns:
            The card drawn (not counting any penalty card).
        """
        if not self.started:
            raise GameError(GAME_NOT_STARTED)
        self._require_player(player_id)

        card = self.draw_one_to_player(player_id)
        if self.current_player_id() == player_id:
            self.advance_turn()
        else:
            self.penalize(player_id, PENALTY_OUT_OF_TURN_DRAW)

        self.sync(include_private=True)
        await self.flush()
        return card

    # -------------------------------------------------------------------------
    # Suit call / Knock / Sing / Chat
    # -------------------------------------------------------------------------

    def _last_parsed(self):
        return parse_card(self.last_play.card) if self.last_play else None

    async def select_suit(self, player_id: str, suit_name: str) -> None:
        """
        Call a suit after a Jack. The first caller's suit is binding.

        Raises:
            GameError: Unknown player or unrecognised suit.
        """
        self._require_player(player_id)
        suit = Suit.from_name(suit_name)
        if suit is None:
            raise GameError(UNKNOWN_SUIT)

        parsed = self._last_parsed()
        if parsed is None or parsed.rank != Rank.JACK:
            self.penalize(player_id, PENALTY_BAD_SUIT_CALL)
        elif self.suit_selection is None or self.suit_selection.play_number != self.last_play.number:
            self.suit_selection = SuitSelection(player_id, suit, self.last_play.number)
            self.announce(f"{self.player_name(player_id)} called {suit.display_name}")
        else:
            first = self.suit_selection
            self.announce(
                f"{self.player_name(player_id)} called {suit.display_name} "
                f"({self.player_name(first.player_id)} already called {first.suit.display_name})"
            )

        self.sync(include_private=True)
        await self.flush()

    async def knock(self, player_id: str) -> None:
        """Knock. Only the player who just played a non-Jack heart may."""
        self._require_player(player_id)
        parsed = self._last_parsed()
        valid = (
            parsed is not None
            and self.last_play.player_id == player_id
            and parsed.suit == Suit.HEARTS
            and parsed.rank != Rank.JACK
        )
        if valid:
            self.announce(f"{self.player_name(player_id)} knocks")
            self.rules.on_knock(player_id)
        else:
            self.penalize(player_id, PENALTY_BAD_KNOCK)

        self.sync(include_private=True)
        await self.flush()

    async def sing(self, player_id: str) -> None:
        """Sing. Only meaningful while an ace-of-spades sing window is open."""
        self._require_player(player_id)
        window_open = self.sing_pending is not None
        if window_open and self.last_play is not None and self.last_play.card == "AS":
            self.announce(f"{self.player_name(player_id)} sings")
            self.rules.on_sing(player_id)
        else:
            self.penalize(player_id, PENALTY_FLAT_NOTE)

        self.sync(include_private=True)
        await self.flush()

    async def process_chat(self, player_id: str, message: str) -> None:
        """
        Broadcast a chat line, then let every rule inspect it.

        A full sync follows only if a rule moved cards.
        """
        player = self._require_player(player_id)
        self._queue(events.chat(player.name, message))

        before = self.card_positions()
        self.rules.on_chat(player_id, message)
        if self.card_positions() != before:
            self.sync(include_private=True)
        await self.flush()

    def card_positions(self) -> tuple:
        """Pile and hand sizes, for detecting whether anything moved."""
        return (
            len(self.draw),
            len(self.discard),
            tuple(len(self.players[pid].hand) for pid in self.turn_order),
        )

    # -------------------------------------------------------------------------
    # Obligations with deadlines
    # -------------------------------------------------------------------------

    def require_spade_naming(self, player_id: str, card: str) -> None:
        """Start (or restart) a player's deadline to name a spade."""
        self.clear_spade_naming(player_id)
        self.awaiting_spade[player_id] = card

        async def expire() -> None:
            await self._expire_spade_naming(player_id, card)

        self._spade_timers[player_id] = self.scheduler.schedule(
            self.timing.spade_naming_timeout,
            expire,
            name=f"spade:{player_id}",
        )

    def clear_spade_naming(self, player_id: str) -> None:
        """Drop a spade obligation and cancel its deadline."""
        self.awaiting_spade.pop(player_id, None)
        timer = self._spade_timers.pop(player_id, None)
        if timer:
            timer.cancel()

    async def _expire_spade_naming(self, player_id: str, card: str) -> None:
        if self.awaiting_spade.get(player_id) != card:
            return
        self._spade_timers.pop(player_id, None)
        del self.awaiting_spade[player_id]
        self.penalize(player_id, PENALTY_SPADE)
        self.sync(include_private=True)
        await self.flush()

    def open_sing_window(self) -> bool:
        """
        Require every seated player to sing before the window closes.

        Returns:
            False if a window is already open.
        """
        if self.sing_pending is not None:
            return False
        self.sing_pending = set(self.turn_order)
        self._sing_timer = self.scheduler.schedule(
            self.settings.sing_window_ms / 1000,
            self._close_sing_window,
            name="sing-window",
        )
        return True

    def mark_sung(self, player_id: str) -> None:
        """Record a sing; closes the window early once everyone has sung."""
        if self.sing_pending is None:
            return
        self.sing_pending.discard(player_id)
        if not self.sing_pending:
            self.sing_pending = None
            if self._sing_timer:
                self._sing_timer.cancel()
                self._sing_timer = None

    async def _close_sing_window(self) -> None:
        pending = self.sing_pending or set()
        self.sing_pending = None
        self._sing_timer = None
        for pid in self.turn_order:
            if pid in pending:
                self.penalize(pid, PENALTY_SING)
        self.sync(include_private=True)
        await self.flush()
