"""
Tests for the game engine: dealing, optimistic plays, drawing, actions.

Covers:
- Seating and dealing
- Optimistic play followed by authoritative validation
- Rollback and penalty on invalid plays
- Card conservation and snapshot ordering
- Drawing, reshuffling, pile exhaustion
- Suit call, knock, sing, chat

Run with: pytest test_game.py -v
"""

import pytest

from config import GameLimits, TimingConfig
from errors import CARD_NOT_IN_HAND, GAME_NOT_STARTED, NO_CARDS_TO_DRAW, GameError
from game import LastPlay, RoomSettings


class Recorder:
    """Play callback that remembers every verdict."""

    def __init__(self):
        self.results = []

    async def __call__(self, error):
        self.results.append(error)


# =============================================================================
# Settings
# =============================================================================

class TestRoomSettings:

    def test_deck_count_clamped(self):
        limits = GameLimits()
        assert RoomSettings.create(deck_count=0, limits=limits).deck_count == 1
        assert RoomSettings.create(deck_count=100, limits=limits).deck_count == 33

    def test_bad_direction_defaults_to_clockwise(self):
        assert RoomSettings.create(direction="sideways").direction == "cw"
        assert RoomSettings.create(direction="ccw").step == -1

    def test_sing_window_falls_back_to_config(self):
        timing = TimingConfig(SING_WINDOW_MS=1234)
        assert RoomSettings.create(sing_window_ms=None, timing=timing).sing_window_ms == 1234
        assert RoomSettings.create(sing_window_ms=500, timing=timing).sing_window_ms == 500


# =============================================================================
# Seating and dealing
# =============================================================================

class TestSeating:

    @pytest.mark.asyncio
    async def test_first_player_is_host(self, make_game):
        game = await make_game(start=False)
        assert game.host_id == "a"
        assert game.turn_order == ["a", "b"]
        assert not game.started

    @pytest.mark.asyncio
    async def test_adding_twice_is_a_noop(self, make_game):
        game = await make_game(start=False)
        assert await game.add_player("a", "Alice") is False
        assert game.turn_order == ["a", "b"]

    @pytest.mark.asyncio
    async def test_start_deals_hands_and_opens_discard(self, make_game):
        game = await make_game()
        assert game.started
        assert all(len(p.hand) == 5 for p in game.players.values())
        assert len(game.discard) == 1
        assert len(game.draw) == 52 - 10 - 1
        assert game.card_count() == 52
        assert game.current_player_id() == "a"

    @pytest.mark.asyncio
    async def test_start_sends_private_hands(self, make_game, transport):
        game = await make_game()
        last_private_a = transport.of_type("private_state", to="a")[-1]
        assert last_private_a["hand"] == game.players["a"].hand

    @pytest.mark.asyncio
    async def test_public_state_hides_hands(self, make_game):
        game = await make_game()
        state = game.snapshot()
        assert state["players"][0] == {"id": "a", "name": "Alice", "hand_count": 5}
        assert "hand" not in state["players"][0]

    @pytest.mark.asyncio
    async def test_start_twice_is_a_noop(self, make_game):
        game = await make_game()
        hand = list(game.players["a"].hand)
        assert await game.start() is False
        assert game.players["a"].hand == hand

    @pytest.mark.asyncio
    async def test_multi_deck_conservation(self, make_game):
        game = await make_game(deck_count=3, players=("Alice", "Bob", "Cara"))
        assert game.card_count() == 156

    @pytest.mark.asyncio
    async def test_remove_player_returns_hand_to_bottom_of_draw(self, make_game):
        game = await make_game(players=("Alice", "Bob", "Cara"))
        game.advance_turn()
        game.advance_turn()
        assert game.current_player_id() == "c"
        hand = list(game.players["b"].hand)

        await game.remove_player("b")

        assert game.draw[:len(hand)] == hand
        assert game.turn_order == ["a", "c"]
        assert game.current_player_id() == "c"
        assert game.card_count() == 52


# =============================================================================
# Playing cards
# =============================================================================

class TestPlayCard:

    @pytest.mark.asyncio
    async def test_play_before_start_rejected(self, make_game):
        game = await make_game(start=False)
        with pytest.raises(GameError) as exc:
            await game.play_card("a", "5H")
        assert exc.value.message == GAME_NOT_STARTED

    @pytest.mark.asyncio
    async def test_card_not_in_hand_changes_nothing(self, make_game, rig):
        game = await make_game()
        rig(game, {"a": ["2C", "3C"], "b": ["4D"]}, top="5C")
        seq = game.seq
        with pytest.raises(GameError) as exc:
            await game.play_card("a", "KH")
        assert exc.value.message == CARD_NOT_IN_HAND
        assert game.players["a"].hand == ["2C", "3C"]
        assert game.seq == seq

    @pytest.mark.asyncio
    async def test_optimistic_play_is_visible_before_validation(self, make_game, rig, transport):
        game = await make_game(rules=[])
        rig(game, {"a": ["6C", "KD"], "b": ["4D"]}, top="5C")
        transport.clear()

        task = await game.play_card("a", "6C")

        assert not task.done
        assert game.discard_top() == "6C"
        assert game.players["a"].hand == ["KD"]
        types = [m["type"] for _, m in transport.messages]
        assert types == ["played_attempt", "game_state", "play_accepted"]
        await game.scheduler.join()

    @pytest.mark.asyncio
    async def test_five_of_hearts_skips_opponent(self, make_game, rig, transport):
        game = await make_game()
        rig(game, {"a": ["5H", "2C"], "b": ["3D", "4D"]}, top="5C")
        verdict = Recorder()

        await game.play_card("a", "5H", verdict)
        await game.scheduler.join()

        assert verdict.results == [None]
        assert "5H" not in game.players["a"].hand
        assert game.discard_top() == "5H"
        assert game.current_player_id() == "a"
        assert "Bob is skipped" in transport.chat_lines()

    @pytest.mark.asyncio
    async def test_out_of_turn_play_rolled_back_with_penalty(self, make_game, rig, transport):
        game = await make_game()
        rig(game, {"a": ["2C", "3C"], "b": ["5H", "4D"]}, top="5C")
        before = len(game.players["b"].hand)
        verdict = Recorder()

        await game.play_card("b", "5H", verdict)
        await game.scheduler.join()

        hand = game.players["b"].hand
        assert len(hand) == before + 1
        assert "5H" in hand
        assert game.discard_top() == "5C"
        assert game.current_player_id() == "a"
        assert verdict.results == ["Not your turn"]
        assert transport.of_type("play_rejected")[0]["player_id"] == "b"
        assert transport.of_type("play_return", to="b") == [{"type": "play_return", "card": "5H"}]
        assert any(line.startswith("Bob draws a penalty card: Invalid play") for line in transport.chat_lines())
        assert game.card_count() == 52

    @pytest.mark.asyncio
    async def test_non_matching_card_rejected(self, make_game, rig):
        game = await make_game(rules=[])
        rig(game, {"a": ["3D", "2C"], "b": ["4D"]}, top="5C")
        verdict = Recorder()

        await game.play_card("a", "3D", verdict)
        await game.scheduler.join()

        assert verdict.results == ["3D does not match 5C"]
        assert "3D" in game.players["a"].hand
        assert len(game.players["a"].hand) == 3
        assert game.current_player_id() == "a"
        assert game.last_play is None

    @pytest.mark.asyncio
    async def test_interleaved_plays_judged_independently(self, make_game, rig):
        """B plays on A's card before A's play is validated; both stand."""
        game = await make_game(rules=[])
        rig(game, {"a": ["6C", "KD"], "b": ["6H", "QS"]}, top="5C")
        verdict_a, verdict_b = Recorder(), Recorder()

        await game.play_card("a", "6C", verdict_a)
        await game.play_card("b", "6H", verdict_b)
        await game.scheduler.join()

        assert verdict_a.results == [None]
        assert verdict_b.results == [None]
        assert game.discard[-2:] == ["6C", "6H"]
        assert game.current_player_id() == "a"

    @pytest.mark.asyncio
    async def test_playing_last_card_wins(self, make_game, rig, transport):
        game = await make_game(rules=[])
        rig(game, {"a": ["6C"], "b": ["4D"]}, top="5C")

        await game.play_card("a", "6C")
        await game.scheduler.join()

        assert not game.started
        assert transport.of_type("game_over") == [{"type": "game_over", "winner_id": "a"}]

    @pytest.mark.asyncio
    async def test_emptying_hand_with_unjudged_plays_does_not_win(self, make_game, rig, transport):
        """Dumping the whole hand at once: only the first card is legal."""
        game = await make_game(rules=[])
        rig(game, {"a": ["6C", "KD"], "b": ["4D"]}, top="5C")
        first, second = Recorder(), Recorder()

        await game.play_card("a", "6C", first)
        await game.play_card("a", "KD", second)
        assert game.pending_play_count("a") == 2
        await game.scheduler.join()

        assert game.started
        assert transport.of_type("game_over") == []
        assert first.results == [None]
        assert second.results == ["Not your turn"]
        assert "KD" in game.players["a"].hand
        assert len(game.players["a"].hand) == 2
        assert game.discard_top() == "6C"
        assert game.current_player_id() == "b"
        assert game.pending_play_count("a") == 0
        assert game.card_count() == 52

    @pytest.mark.asyncio
    async def test_win_hands_back_other_unjudged_plays(self, make_game, rig, transport):
        game = await make_game(rules=[])
        rig(game, {"a": ["6C"], "b": ["6H", "4D"]}, top="5C")
        winner, other = Recorder(), Recorder()

        await game.play_card("a", "6C", winner)
        await game.play_card("b", "6H", other)
        await game.scheduler.join()

        assert not game.started
        assert winner.results == [None]
        assert other.results == ["Game over"]
        assert sorted(game.players["b"].hand) == ["4D", "6H"]
        assert game.discard_top() == "6C"
        assert game.pending_plays == {}
        assert game.last_play.card == "6C"
        assert transport.of_type("play_return", to="b") == [{"type": "play_return", "card": "6H"}]
        assert game.card_count() == 52

    @pytest.mark.asyncio
    async def test_seq_strictly_increases(self, make_game, rig, transport):
        game = await make_game()
        rig(game, {"a": ["6C", "KD", "2C"], "b": ["6H", "QS"]}, top="5C")

        await game.play_card("b", "6H")
        await game.play_card("a", "6C")
        await game.scheduler.join()
        await game.draw_card_action("b")
        await game.process_chat("a", "oh shit")

        seqs = transport.seqs()
        assert seqs == sorted(set(seqs))
        assert seqs[-1] == game.seq

    @pytest.mark.asyncio
    async def test_close_cancels_pending_validation(self, make_game, rig, transport):
        game = await make_game(rules=[])
        rig(game, {"a": ["6C", "KD"], "b": ["4D"]}, top="5C")
        verdict = Recorder()

        task = await game.play_card("a", "6C", verdict)
        assert game.close() == 1
        await game.scheduler.join()

        assert task.cancelled
        assert verdict.results == []


# =============================================================================
# Drawing
# =============================================================================

class TestDraw:

    @pytest.mark.asyncio
    async def test_draw_on_turn_passes_turn(self, make_game):
        game = await make_game()
        top_of_draw = game.draw[-1]
        card = await game.draw_card_action("a")
        assert card == top_of_draw
        assert len(game.players["a"].hand) == 6
        assert game.current_player_id() == "b"

    @pytest.mark.asyncio
    async def test_draw_off_turn_costs_a_penalty(self, make_game, transport):
        game = await make_game()
        await game.draw_card_action("b")
        assert len(game.players["b"].hand) == 7
        assert game.current_player_id() == "a"
        assert "Bob draws a penalty card: Drawing out of turn" in transport.chat_lines()

    @pytest.mark.asyncio
    async def test_reshuffle_keeps_discard_top(self, make_game):
        game = await make_game()
        game.draw = []
        game.discard = ["2C", "3C", "4C"]
        card = game.draw_one_to_player("a")
        assert card in ("2C", "3C")
        assert game.discard == ["4C"]
        assert len(game.draw) == 1

    @pytest.mark.asyncio
    async def test_exhausted_piles(self, make_game, transport):
        game = await make_game()
        game.draw = []
        game.discard = ["4C"]

        with pytest.raises(GameError) as exc:
            await game.draw_card_action("a")
        assert exc.value.message == NO_CARDS_TO_DRAW
        assert game.draw_many_to_player("a", 3) == []
        assert game.penalize("a", "Testing") is None
        await game.flush()
        assert "Alice draws a penalty card: Testing" in transport.chat_lines()


# =============================================================================
# Suit call / knock / sing / chat
# =============================================================================

class TestActions:

    @pytest.mark.asyncio
    async def test_suit_call_without_jack_penalized(self, make_game, transport):
        game = await make_game()
        await game.select_suit("a", "hearts")
        assert len(game.players["a"].hand) == 6
        assert game.suit_selection is None

    @pytest.mark.asyncio
    async def test_first_suit_call_after_jack_is_binding(self, make_game, transport):
        game = await make_game()
        game.last_play = LastPlay("a", "JH", 1)

        await game.select_suit("b", "spades")
        await game.select_suit("a", "C")

        assert game.suit_selection.player_id == "b"
        assert game.suit_selection.suit.value == "S"
        assert len(game.players["a"].hand) == 5
        assert "Alice called Clubs (Bob already called Spades)" in transport.chat_lines()

    @pytest.mark.asyncio
    async def test_unknown_suit_is_request_error(self, make_game):
        game = await make_game()
        with pytest.raises(GameError):
            await game.select_suit("a", "stars")

    @pytest.mark.asyncio
    async def test_knock_after_own_heart(self, make_game, transport):
        game = await make_game()
        game.last_play = LastPlay("a", "4H", 1)
        await game.knock("a")
        assert len(game.players["a"].hand) == 5
        assert "Alice knocks" in transport.chat_lines()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("knocker,card", [("b", "4H"), ("a", "JH"), ("a", "4S")])
    async def test_bad_knock_penalized(self, make_game, knocker, card):
        game = await make_game()
        game.last_play = LastPlay("a", card, 1)
        await game.knock(knocker)
        assert len(game.players[knocker].hand) == 6

    @pytest.mark.asyncio
    async def test_flat_note(self, make_game, transport):
        game = await make_game()
        await game.sing("b")
        assert len(game.players["b"].hand) == 6
        assert "Bob draws a penalty card: Flat note" in transport.chat_lines()

    @pytest.mark.asyncio
    async def test_sing_without_open_window_is_flat(self, make_game):
        """The ace of spades on top is not enough; the window must be open."""
        game = await make_game(rules=[])
        game.last_play = LastPlay("a", "AS", 1)
        await game.sing("b")
        assert len(game.players["b"].hand) == 6

    @pytest.mark.asyncio
    async def test_chat_is_broadcast_before_rules_run(self, make_game, transport):
        game = await make_game()
        transport.clear()
        await game.process_chat("a", "oh shit")
        chats = transport.of_type("chat")
        assert chats[0]["from"] == "Alice"
        assert chats[0]["message"] == "oh shit"
        assert chats[1]["from"] == "SYSTEM"

    @pytest.mark.asyncio
    async def test_quiet_chat_does_not_sync(self, make_game, transport):
        game = await make_game()
        seq = game.seq
        await game.process_chat("a", "hello there")
        assert game.seq == seq
