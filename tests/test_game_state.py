"""
Tests for src/engine/game_state.py

Covers:
    - GameConfig defaults and validation
    - draw_and_roll(): dice conservation, bust detection, footprint carry-over, resupply
    - play_turn(): opening roll, policy consultation, banking, busting
    - play_game(): round-end rule, reply turn for player 1, ceiling coin flip
"""

from __future__ import annotations

import numpy as np
import pytest

from src.engine.dice import (
    BRAIN,
    BUST_SHOTGUNS,
    GREEN,
    INITIAL_DICE_STATE,
    NUM_DICE_BY_COLOR,
    SHOTGUN,
    DiceState,
)
from src.engine.game_state import (
    DEFAULT_GOAL_SCORE,
    DEFAULT_MAX_SCORE,
    GameConfig,
    GameResult,
    draw_and_roll,
    play_game,
    play_turn,
)


def never_roll(mover, score, opp, turn_total, dice):
    return False


def roll_until(target):
    def policy(mover, score, opp, turn_total, dice):
        return turn_total < target

    return policy


# ─── GameConfig ───────────────────────────────────────────────────────────────


class TestGameConfig:
    def test_defaults(self):
        config = GameConfig()
        assert config.goal_score == DEFAULT_GOAL_SCORE == 13
        assert config.max_score == DEFAULT_MAX_SCORE == 26
        assert config.table_size == 27

    def test_goal_below_one_raises(self):
        with pytest.raises(ValueError, match="goal_score"):
            GameConfig(goal_score=0, max_score=5)

    def test_ceiling_below_goal_raises(self):
        with pytest.raises(ValueError, match="max_score"):
            GameConfig(goal_score=13, max_score=12)

    def test_ceiling_equal_to_goal_allowed(self):
        assert GameConfig(goal_score=4, max_score=4).table_size == 5

    def test_frozen(self):
        config = GameConfig()
        with pytest.raises(AttributeError):
            config.goal_score = 5


# ─── draw_and_roll ────────────────────────────────────────────────────────────


def _conserved(dice: DiceState) -> bool:
    for color, total in enumerate(NUM_DICE_BY_COLOR):
        if dice.shotguns[color] + dice.footprints[color] + dice.supply[color] > total:
            return False
    return True


class TestDrawAndRoll:
    def test_rolls_three_dice(self):
        rng = np.random.default_rng(0)
        for _ in range(200):
            roll = draw_and_roll(INITIAL_DICE_STATE, rng)
            assert len(roll.faces) == 3

    def test_brains_match_faces(self):
        rng = np.random.default_rng(1)
        for _ in range(200):
            roll = draw_and_roll(INITIAL_DICE_STATE, rng)
            if not roll.busted:
                assert roll.brains == sum(1 for _, face in roll.faces if face == BRAIN)
                assert sum(roll.dice.brains) == roll.brains

    def test_dice_conserved(self):
        rng = np.random.default_rng(2)
        dice = INITIAL_DICE_STATE
        for _ in range(500):
            roll = draw_and_roll(dice, rng)
            if roll.busted:
                dice = INITIAL_DICE_STATE
                continue
            assert _conserved(roll.dice)
            assert roll.dice.num_shotguns < BUST_SHOTGUNS
            dice = roll.dice

    def test_bust_only_with_three_shotguns(self):
        rng = np.random.default_rng(3)
        for _ in range(500):
            roll = draw_and_roll(INITIAL_DICE_STATE, rng)
            shotguns = sum(1 for _, face in roll.faces if face == SHOTGUN)
            assert roll.busted == (shotguns >= BUST_SHOTGUNS)
            if roll.busted:
                assert roll.brains == 0

    def test_footprints_rerolled(self):
        dice = DiceState(0, 0, 0, 3, 0, 0, 3, 4, 3)
        rng = np.random.default_rng(4)
        for _ in range(50):
            roll = draw_and_roll(dice, rng)
            assert [color for color, _ in roll.faces] == [GREEN, GREEN, GREEN]
            if not roll.busted:
                assert roll.dice.supply == (3, 4, 3)

    def test_resupply_never_fails(self):
        dice = DiceState(0, 0, 0, 1, 0, 0, 0, 1, 0)
        rng = np.random.default_rng(5)
        for _ in range(200):
            roll = draw_and_roll(dice, rng)
            # footprint first, then the last supply die, then one fresh draw
            colors = [color for color, _ in roll.faces]
            assert len(colors) == 3
            assert colors[:2] == [0, 1]
            if not roll.busted:
                assert _conserved(roll.dice)


# ─── play_turn ────────────────────────────────────────────────────────────────


class TestPlayTurn:
    def test_turn_opens_with_a_roll(self):
        rng = np.random.default_rng(0)
        for _ in range(50):
            turn = play_turn(never_roll, 0, 0, 0, rng)
            assert turn.n_rolls == 1
            assert 0 <= turn.banked <= 3
            if turn.busted:
                assert turn.banked == 0

    def test_policy_sees_arguments(self):
        seen = []

        def recording(mover, score, opp, turn_total, dice):
            seen.append((mover, score, opp, turn_total, dice))
            return False

        rng = np.random.default_rng(0)
        turn = play_turn(recording, 1, 7, 9, rng)
        while turn.busted:
            turn = play_turn(recording, 1, 7, 9, rng)
        mover, score, opp, turn_total, dice = seen[-1]
        assert (mover, score, opp) == (1, 7, 9)
        assert turn_total == turn.banked
        assert dice != INITIAL_DICE_STATE
        assert sum(dice.brains) == turn_total

    def test_roll_until_reaches_target_or_busts(self):
        rng = np.random.default_rng(7)
        for _ in range(100):
            turn = play_turn(roll_until(4), 0, 0, 0, rng)
            assert turn.busted or turn.banked >= 4

    def test_verbose_output(self, capsys):
        play_turn(never_roll, 0, 0, 0, np.random.default_rng(8), verbose=True)
        out = capsys.readouterr().out
        assert "Player 0 rolls" in out


# ─── play_game ────────────────────────────────────────────────────────────────


class TestPlayGame:
    CONFIG = GameConfig(goal_score=5, max_score=10)

    def test_winner_leads_at_goal(self):
        rng = np.random.default_rng(9)
        for _ in range(100):
            result = play_game(roll_until(3), roll_until(2), self.CONFIG, rng)
            winner_score = result.scores[result.winner]
            loser_score = result.scores[1 - result.winner]
            if not result.coin_flip:
                assert winner_score >= self.CONFIG.goal_score
                assert winner_score > loser_score

    def test_every_round_has_two_turns(self):
        result = play_game(roll_until(3), roll_until(3), self.CONFIG, np.random.default_rng(10))
        assert len(result.turns) == 2 * result.n_rounds
        assert result.n_rounds >= 1

    def test_player_one_gets_reply_turn(self):
        """Player 0 reaching the goal does not end the game before player 1 moves."""
        rng = np.random.default_rng(11)
        for _ in range(50):
            result = play_game(roll_until(5), never_roll, self.CONFIG, rng)
            assert len(result.turns) % 2 == 0
            assert result.turns[-1].n_rolls == 1

    def test_players_who_never_push_still_finish(self):
        rng = np.random.default_rng(15)
        for _ in range(20):
            result = play_game(never_roll, never_roll, GameConfig(3, 6), rng)
            assert max(result.scores) >= 3
            assert all(turn.n_rolls == 1 for turn in result.turns)

    def test_reproducible_with_seed(self):
        a = play_game(roll_until(3), roll_until(4), self.CONFIG, np.random.default_rng(12))
        b = play_game(roll_until(3), roll_until(4), self.CONFIG, np.random.default_rng(12))
        assert (a.winner, a.scores, a.n_rounds) == (b.winner, b.scores, b.n_rounds)

    def test_ceiling_tie_is_coin_flip(self):
        config = GameConfig(goal_score=1, max_score=1)
        rng = np.random.default_rng(13)
        results = [play_game(roll_until(1), roll_until(1), config, rng) for _ in range(300)]
        flips = [r for r in results if r.coin_flip]
        assert flips
        for result in flips:
            assert result.scores[0] == result.scores[1] >= 1
        assert {r.winner for r in flips} == {0, 1}

    def test_verbose_prints_rounds(self, capsys):
        play_game(roll_until(3), roll_until(3), self.CONFIG, np.random.default_rng(14), verbose=True)
        assert "Round 1:" in capsys.readouterr().out

    def test_str(self):
        result = GameResult(winner=1, scores=(13, 15), n_rounds=6)
        assert str(result) == "Player 1 wins 13-15 after 6 rounds"
        flipped = GameResult(winner=0, scores=(26, 26), n_rounds=9, coin_flip=True)
        assert str(flipped).endswith("(coin flip)")
