"""
Tests for src/solvers/policy_evaluation.py

Covers:
    - tabulate_policy(): table shape, unstored cells, argument order
    - evaluate_policies(): optimal self-play reproduces the solved value
    - Optimal play never loses ground to a fixed heuristic
    - Win-rate bookkeeping (first / second / average)
    - Agreement with Monte Carlo play under the same rules
"""

from __future__ import annotations

import numpy as np
import pytest

from src.analysis.simulator import compare_policies, make_hold_at_policy, make_optimal_policy
from src.engine.dice import INITIAL_DICE_STATE
from src.engine.game_state import GameConfig
from src.solvers.policy_evaluation import EvaluationResult, evaluate_policies, tabulate_policy
from src.solvers.value_iteration import initial_win_probability, solve
from tests.conftest import TEST_EPSILON

EVAL_CONFIG = GameConfig(goal_score=2, max_score=3)
MC_CONFIG = GameConfig(goal_score=2, max_score=7)


def hold_when_winning(threshold):
    """Roll while the turn total is below ``threshold``; player 1 holds once holding wins."""

    def policy(mover, score, opp, turn_total, dice):
        banked = score + turn_total
        if mover == 1 and banked >= MC_CONFIG.goal_score and banked > opp:
            return False
        return turn_total < threshold

    return policy


@pytest.fixture(scope="module")
def eval_solution(space, kernel):
    return solve(space, kernel, EVAL_CONFIG, epsilon=TEST_EPSILON)


@pytest.fixture(scope="module")
def self_play(eval_solution, space, kernel):
    optimal = make_optimal_policy(eval_solution)
    return evaluate_policies(optimal, optimal, space, kernel, EVAL_CONFIG, epsilon=TEST_EPSILON)


@pytest.fixture(scope="module")
def optimal_vs_hold(eval_solution, space, kernel):
    return evaluate_policies(
        make_optimal_policy(eval_solution),
        make_hold_at_policy(1),
        space,
        kernel,
        EVAL_CONFIG,
        epsilon=TEST_EPSILON,
    )


# ─── tabulate_policy ──────────────────────────────────────────────────────────


class TestTabulatePolicy:
    def test_shape(self, space):
        table = tabulate_policy(make_hold_at_policy(2), space, EVAL_CONFIG)
        size = EVAL_CONFIG.table_size
        assert table.shape == (2, size, size, size, space.size)
        assert table.dtype == np.bool_

    def test_hold_at_values(self, space):
        table = tabulate_policy(make_hold_at_policy(2), space, EVAL_CONFIG)
        assert table[0, 0, 0, 0].all()
        assert table[1, 1, 2, 1].all()
        assert not table[0, 0, 1, 2].any()

    def test_unstored_cells_stay_false(self, space):
        always = lambda mover, score, opp, turn_total, dice: True  # noqa: E731
        table = tabulate_policy(always, space, EVAL_CONFIG)
        # score 2 leaves room for turn totals 0..1 under a ceiling of 3
        assert table[0, 2, 0, :2].all()
        assert not table[0, 2, 0, 2:].any()

    def test_argument_order(self, space):
        calls = []

        def recording(mover, score, opp, turn_total, dice):
            calls.append((mover, score, opp, turn_total, dice))
            return False

        tabulate_policy(recording, space, GameConfig(goal_score=1, max_score=1))
        assert calls[0] == (0, 0, 0, 0, space.state(0))
        assert (1, 0, 1, 1, INITIAL_DICE_STATE) in calls


# ─── evaluate_policies ────────────────────────────────────────────────────────


class TestSelfPlay:
    def test_converged(self, self_play):
        assert self_play.converged
        assert self_play.max_change <= TEST_EPSILON

    def test_matches_solved_value(self, self_play, eval_solution):
        assert self_play.a_first_win_rate == pytest.approx(
            initial_win_probability(eval_solution), abs=1e-8
        )

    def test_tables_match_solved_tables(self, self_play, eval_solution):
        assert np.allclose(self_play.value_a, eval_solution.p_win, atol=1e-8)
        assert np.allclose(self_play.value_b, eval_solution.p_win, atol=1e-8)

    def test_average_is_half(self, self_play):
        assert self_play.a_average_win_rate == pytest.approx(0.5)
        assert self_play.b_average_win_rate == pytest.approx(0.5)


class TestOptimalVersusHeuristic:
    def test_optimal_first_beats_solved_value(self, optimal_vs_hold, eval_solution):
        baseline = initial_win_probability(eval_solution)
        assert optimal_vs_hold.a_first_win_rate >= baseline - 1e-9
        assert optimal_vs_hold.b_first_win_rate <= baseline + 1e-9

    def test_optimal_average_at_least_half(self, optimal_vs_hold):
        assert optimal_vs_hold.a_average_win_rate >= 0.5 - 1e-9

    def test_rates_sum(self, optimal_vs_hold):
        result = optimal_vs_hold
        assert result.a_second_win_rate + result.b_first_win_rate == pytest.approx(1.0)
        assert result.a_average_win_rate + result.b_average_win_rate == pytest.approx(1.0)

    def test_str(self, optimal_vs_hold):
        text = str(optimal_vs_hold)
        assert "Policy A first player win rate" in text
        assert "Average win rate difference" in text


class TestEvaluationArguments:
    def test_max_sweeps(self, space, kernel):
        policy = make_hold_at_policy(1)
        result = evaluate_policies(
            policy, policy, space, kernel, GameConfig(1, 2), epsilon=1e-12, max_sweeps=1
        )
        assert isinstance(result, EvaluationResult)
        assert result.n_sweeps == 1
        assert not result.converged

    def test_invalid_epsilon(self, space, kernel):
        policy = make_hold_at_policy(1)
        with pytest.raises(ValueError, match="epsilon"):
            evaluate_policies(policy, policy, space, kernel, GameConfig(1, 2), epsilon=0.0)


# ─── Monte Carlo agreement ────────────────────────────────────────────────────


class TestMonteCarloAgreement:
    def test_heuristics_match_simulation(self, space, kernel):
        policy_a = hold_when_winning(1)
        policy_b = hold_when_winning(3)
        exact = evaluate_policies(policy_a, policy_b, space, kernel, MC_CONFIG, epsilon=1e-10)
        simulated = compare_policies(policy_a, policy_b, n_games=4_000, config=MC_CONFIG, seed=3)
        assert simulated.win_rate_a == pytest.approx(exact.a_average_win_rate, abs=0.035)
