"""
Tests for src/solvers/reachability.py

Covers:
    - compute_reachability(): start cell, closure under the allowed actions,
      game-over cells left unexpanded, clamped storage
    - reachable_states_at_tie(): ordering, roll_only filter, range errors
"""

from __future__ import annotations

import numpy as np
import pytest

from src.engine.transitions import BUST, transitions_from
from src.solvers.reachability import compute_reachability, reachable_states_at_tie
from src.solvers.value_iteration import clamp_state


@pytest.fixture(scope="module")
def reach_p0(small_solution):
    return compute_reachability(small_solution, 0)


@pytest.fixture(scope="module")
def reach_p1(small_solution):
    return compute_reachability(small_solution, 1)


def _successors(solution, cell, optimal_player):
    """Cells the traversal must visit from ``cell``, clamped like the tables."""
    mover, score, opp, turn_total, d = cell
    config = solution.config
    initial = solution.space.initial_index
    free = mover != optimal_player
    rolls = bool(solution.should_roll[cell])

    def clamped(p, i, j, b, dice):
        i, j, b = clamp_state(config, p, i, j, b)
        return (p, i, j, b, dice)

    found = []
    if free or rolls:
        for _, nxt, delta in transitions_from(solution.kernel, d):
            if nxt == BUST:
                found.append(clamped(1 - mover, opp, score, 0, initial))
            else:
                found.append(clamped(mover, score, opp, turn_total + delta, nxt))
    if free or not rolls:
        found.append(clamped(1 - mover, opp, score + turn_total, 0, initial))
    return found


def _game_over(solution, cell):
    mover, score, opp, turn_total, d = cell
    goal, m = solution.config.goal_score, solution.config.max_score
    return (
        mover == 0
        and d == solution.space.initial_index
        and turn_total == 0
        and (score >= goal or opp >= goal)
        and (score != opp or score == m)
    )


class TestComputeReachability:
    def test_shape(self, small_solution, reach_p0):
        assert reach_p0.shape == small_solution.should_roll.shape
        assert reach_p0.dtype == np.bool_

    def test_start_reachable(self, small_solution, reach_p0, reach_p1):
        start = (0, 0, 0, 0, small_solution.space.initial_index)
        assert reach_p0[start]
        assert reach_p1[start]

    def test_partial_coverage(self, reach_p0):
        assert 0 < reach_p0.sum() < reach_p0.size

    def test_only_stored_cells(self, small_solution, reach_p0):
        m = small_solution.config.max_score
        for score in range(m + 1):
            assert not reach_p0[:, score, :, m - score + 1 :, :].any()

    def test_game_over_cells_not_expanded(self, small_solution, reach_p0):
        """Player 0 never plays on from a round that already ended the game."""
        initial = small_solution.space.initial_index
        # 3-1 at the start of a round ends the game for goal 3
        assert reach_p0[0, 3, 1, 0, initial]
        assert not reach_p0[0, 3, 1, 1:, :].any()
        others = np.delete(reach_p0[0, 3, 1, 0, :], initial)
        assert not others.any()

    @pytest.mark.parametrize("optimal_player", [0, 1])
    def test_closed_under_allowed_actions(self, small_solution, reach_p0, reach_p1, optimal_player):
        reachable = (reach_p0, reach_p1)[optimal_player]
        cells = np.argwhere(reachable)
        rng = np.random.default_rng(optimal_player)
        for row in rng.choice(len(cells), size=300, replace=False):
            cell = tuple(int(x) for x in cells[row])
            if _game_over(small_solution, cell):
                continue
            for successor in _successors(small_solution, cell, optimal_player):
                assert reachable[successor], (cell, successor)

    def test_depends_on_optimal_player(self, reach_p0, reach_p1):
        assert not np.array_equal(reach_p0, reach_p1)

    def test_invalid_player(self, small_solution):
        with pytest.raises(ValueError, match="optimal_player"):
            compute_reachability(small_solution, 2)


class TestReachableStatesAtTie:
    def test_start_row(self, small_solution, reach_p0, reach_p1):
        rows = reachable_states_at_tie(small_solution, (reach_p0, reach_p1), 0)
        assert (True, 0, 0, small_solution.space.initial_index) in rows

    def test_ordering(self, small_solution, reach_p0, reach_p1):
        rows = reachable_states_at_tie(small_solution, (reach_p0, reach_p1), 1)
        keys = [(mover, turn_total, d) for _, mover, turn_total, d in rows]
        assert keys == sorted(keys)

    def test_rows_match_tables(self, small_solution, reach_p0, reach_p1):
        tables = (reach_p0, reach_p1)
        for roll, mover, turn_total, d in reachable_states_at_tie(small_solution, tables, 2):
            assert tables[mover][mover, 2, 2, turn_total, d]
            assert roll == bool(small_solution.should_roll[mover, 2, 2, turn_total, d])

    def test_roll_only(self, small_solution, reach_p0, reach_p1):
        tables = (reach_p0, reach_p1)
        everything = reachable_states_at_tie(small_solution, tables, 1)
        rolling = reachable_states_at_tie(small_solution, tables, 1, roll_only=True)
        assert rolling == [row for row in everything if row[0]]

    @pytest.mark.parametrize("tie_score", [-1, 7])
    def test_tie_score_out_of_range(self, small_solution, reach_p0, reach_p1, tie_score):
        with pytest.raises(ValueError, match="tie_score"):
            reachable_states_at_tie(small_solution, (reach_p0, reach_p1), tie_score)
