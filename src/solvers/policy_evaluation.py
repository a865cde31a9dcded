"""
Exact head-to-head evaluation of two fixed policies.

Both policies are tabulated once over every (mover, score, opponent score,
turn total, dice index) cell. Two value tables are then iterated together in
the optimal solver's sweep order:

    value_a[p, ...]  P(policy A wins | A is about to act as player p, B opposes)
    value_b[p, ...]  P(policy B wins | B is about to act as player p, A opposes)

A's hold and bust outcomes hand the turn to B, so they read value_b (and
vice versa). Terminal checks and ceiling clamping are shared with the
optimal solver.
"""

from __future__ import annotations

from dataclasses import dataclass

import numba
import numpy as np

from src.engine.game_state import DEFAULT_EPSILON, GameConfig, Policy
from src.engine.state_space import DiceStateSpace
from src.engine.transitions import TransitionKernel
from src.solvers.value_iteration import (
    _lookup,
    _roll_value,
    allocate_tables,
    check_iteration_args,
    terminal_value,
)


@dataclass
class EvaluationResult:
    """Output of evaluate_policies().

    Attributes:
        value_a:    float64[2, M+1, M+1, M+1, N] — policy A's win probability.
        value_b:    float64[2, M+1, M+1, M+1, N] — policy B's win probability.
        config:     Goal and ceiling.
        initial_index: Dice index of the start-of-turn state.
        n_sweeps:   Sweeps performed.
        max_change: Largest change in the final sweep.
        converged:  True if max_change <= epsilon.
    """

    value_a: np.ndarray
    value_b: np.ndarray
    config: GameConfig
    initial_index: int
    n_sweeps: int
    max_change: float
    converged: bool

    @property
    def a_first_win_rate(self) -> float:
        return float(self.value_a[0, 0, 0, 0, self.initial_index])

    @property
    def b_first_win_rate(self) -> float:
        return float(self.value_b[0, 0, 0, 0, self.initial_index])

    @property
    def a_second_win_rate(self) -> float:
        return 1.0 - self.b_first_win_rate

    @property
    def b_second_win_rate(self) -> float:
        return 1.0 - self.a_first_win_rate

    @property
    def a_average_win_rate(self) -> float:
        """Win rate of A when it moves first in half of the games."""
        return (self.a_first_win_rate + self.a_second_win_rate) / 2.0

    @property
    def b_average_win_rate(self) -> float:
        return (self.b_first_win_rate + self.b_second_win_rate) / 2.0

    def __str__(self) -> str:
        return (
            f"Policy A first player win rate:  {self.a_first_win_rate:.6f}\n"
            f"Policy B first player win rate:  {self.b_first_win_rate:.6f}\n"
            f"Policy A second player win rate: {self.a_second_win_rate:.6f}\n"
            f"Policy B second player win rate: {self.b_second_win_rate:.6f}\n"
            f"Policy A average win rate:       {self.a_average_win_rate:.6f}\n"
            f"Policy B average win rate:       {self.b_average_win_rate:.6f}\n"
            f"Average win rate difference (B − A): "
            f"{self.b_average_win_rate - self.a_average_win_rate:+.6f}"
        )


# ─── Policy tabulation ────────────────────────────────────────────────────────


def tabulate_policy(policy: Policy, space: DiceStateSpace, config: GameConfig) -> np.ndarray:
    """Query ``policy`` once for every stored table cell.

    Cells with turn total above max_score − score are left False (they are
    never read; lookups clamp into the stored range).

    Returns:
        bool[2, M+1, M+1, M+1, N] action table (True = roll).
    """
    should_roll, _ = allocate_tables(config, space.size)
    states = space.states()
    for mover in range(2):
        for score in range(config.max_score + 1):
            for opp in range(config.max_score + 1):
                for turn_total in range(config.max_score - score + 1):
                    cells = should_roll[mover, score, opp, turn_total]
                    for d, dice in enumerate(states):
                        cells[d] = policy(mover, score, opp, turn_total, dice)
    return should_roll


# ─── Numba sweep ──────────────────────────────────────────────────────────────


@numba.njit(cache=True)
def _evaluation_sweep(
    value_a,  # float64[2, M+1, M+1, M+1, N]  — updated in-place
    value_b,  # float64[2, M+1, M+1, M+1, N]  — updated in-place
    roll_a,  # bool[2, M+1, M+1, M+1, N]
    roll_b,  # bool[2, M+1, M+1, M+1, N]
    offsets,
    frequencies,
    next_index,
    delta,
    total,
    initial,
    goal,
    max_score,
):
    """One in-place sweep over both value tables; returns the largest change."""
    n_dice = value_a.shape[4]
    max_change = 0.0
    for score_sum in range(2 * max_score, -1, -1):
        low = max(0, score_sum - max_score)
        high = min(max_score, score_sum)
        for score in range(high, low - 1, -1):
            opp = score_sum - score
            for turn_total in range(max_score - score, -1, -1):
                for mover in range(2):
                    boundary = terminal_value(mover, score, opp, turn_total, goal, max_score)
                    if boundary >= 0.0:
                        for d in range(n_dice):
                            change_a = abs(boundary - value_a[mover, score, opp, turn_total, d])
                            change_b = abs(boundary - value_b[mover, score, opp, turn_total, d])
                            if change_a > max_change:
                                max_change = change_a
                            if change_b > max_change:
                                max_change = change_b
                            value_a[mover, score, opp, turn_total, d] = boundary
                            value_b[mover, score, opp, turn_total, d] = boundary
                        continue

                    banked = score + turn_total
                    hold_a = 1.0 - _lookup(value_b, 1 - mover, opp, banked, 0, initial, goal, max_score)
                    hold_b = 1.0 - _lookup(value_a, 1 - mover, opp, banked, 0, initial, goal, max_score)
                    for d in range(n_dice):
                        if roll_a[mover, score, opp, turn_total, d]:
                            new_a = _roll_value(
                                value_a, value_b, mover, score, opp, turn_total, d,
                                offsets, frequencies, next_index, delta, total,
                                initial, goal, max_score,
                            )
                        else:
                            new_a = hold_a
                        change = abs(new_a - value_a[mover, score, opp, turn_total, d])
                        if change > max_change:
                            max_change = change
                        value_a[mover, score, opp, turn_total, d] = new_a

                        if roll_b[mover, score, opp, turn_total, d]:
                            new_b = _roll_value(
                                value_b, value_a, mover, score, opp, turn_total, d,
                                offsets, frequencies, next_index, delta, total,
                                initial, goal, max_score,
                            )
                        else:
                            new_b = hold_b
                        change = abs(new_b - value_b[mover, score, opp, turn_total, d])
                        if change > max_change:
                            max_change = change
                        value_b[mover, score, opp, turn_total, d] = new_b
    return max_change


# ─── Evaluation ───────────────────────────────────────────────────────────────


def evaluate_policies(
    policy_a: Policy,
    policy_b: Policy,
    space: DiceStateSpace,
    kernel: TransitionKernel,
    config: GameConfig = GameConfig(),
    epsilon: float = DEFAULT_EPSILON,
    max_sweeps: int | None = None,
    verbose: bool = False,
) -> EvaluationResult:
    """Compute exact win rates of two fixed policies against each other.

    Args:
        policy_a:   First policy (table A).
        policy_b:   Second policy (table B).
        space:      Dice-state universe.
        kernel:     Roll transitions over ``space``.
        config:     Goal and ceiling.
        epsilon:    Convergence threshold on the max per-sweep change.
        max_sweeps: Optional sweep limit (result flagged unconverged).
        verbose:    Print the max change after every sweep.

    Returns:
        EvaluationResult with both value tables and first/second/average
        win rates.

    Raises:
        ValueError: If the stopping parameters are invalid.
    """
    check_iteration_args(epsilon, max_sweeps)
    roll_a = tabulate_policy(policy_a, space, config)
    roll_b = tabulate_policy(policy_b, space, config)
    _, value_a = allocate_tables(config, space.size)
    _, value_b = allocate_tables(config, space.size)

    total = float(kernel.total)
    n_sweeps = 0
    converged = False
    while True:
        max_change = _evaluation_sweep(
            value_a,
            value_b,
            roll_a,
            roll_b,
            kernel.offsets,
            kernel.frequencies,
            kernel.next_index,
            kernel.delta,
            total,
            space.initial_index,
            config.goal_score,
            config.max_score,
        )
        n_sweeps += 1
        if verbose:
            print(f"Sweep {n_sweeps}: max change {max_change:.3e}")
        if max_change <= epsilon:
            converged = True
            break
        if max_sweeps is not None and n_sweeps >= max_sweeps:
            break

    return EvaluationResult(
        value_a=value_a,
        value_b=value_b,
        config=config,
        initial_index=space.initial_index,
        n_sweeps=n_sweeps,
        max_change=float(max_change),
        converged=converged,
    )
