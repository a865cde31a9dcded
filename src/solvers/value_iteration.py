"""
Gauss–Seidel value iteration for optimal two-player Zombie Dice.

Joint state: (mover, mover_score, opponent_score, turn_total, dice_index).
Tables are dense numpy arrays of shape (2, M+1, M+1, M+1, N) where M is the
score ceiling and N the size of the dice-state universe; turn totals above
M − mover_score are never stored (lookups clamp them).

Each table cell holds the probability that the player about to act wins,
assuming both players play optimally from there on:

    V_roll = Σ_k (freq_k / total) · [bust ⇒ 1 − V(1−p, opp, cur, 0, init)
                                      else  V(p, cur, opp, tt + δ_k, next_k)]
    V_hold = 1 − V(1−p, opp, cur + tt, 0, init)
    V      = max(V_roll, V_hold), roll iff V_roll > V_hold

Player 0 opens every round, so only player 0's turn start can conclude a
round; player 1 wins outright as soon as holding would put them ahead at or
above the goal. Both scores at the ceiling is scored as a 0.5 draw.

Sweeps run from the highest combined score down, updating in place, until
the largest change in a sweep is at most epsilon.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import numba
import numpy as np

from src.engine.dice import DiceState
from src.engine.game_state import DEFAULT_EPSILON, GameConfig
from src.engine.state_space import DiceStateSpace, build_state_space, index_of_state
from src.engine.transitions import TransitionKernel, build_transition_kernel

NOT_TERMINAL: float = -1.0
"""Sentinel returned by terminal_value for cells that need a table lookup."""


# ─── Result type ──────────────────────────────────────────────────────────────


@dataclass
class Solution:
    """Output of the value-iteration solver.

    Attributes:
        should_roll: bool[2, M+1, M+1, M+1, N] — optimal action (True = roll).
        p_win:       float64[2, M+1, M+1, M+1, N] — mover's win probability.
        config:      Goal and ceiling the tables were solved for.
        epsilon:     Convergence threshold used.
        n_sweeps:    Sweeps performed.
        max_change:  Largest absolute change in the final sweep.
        converged:   True if max_change <= epsilon (False when max_sweeps hit).
        space:       Dice-state universe the last axis is indexed by.
        kernel:      Transition kernel the tables were solved with.
    """

    should_roll: np.ndarray
    p_win: np.ndarray
    config: GameConfig
    epsilon: float
    n_sweeps: int
    max_change: float
    converged: bool
    space: DiceStateSpace
    kernel: TransitionKernel

    def __str__(self) -> str:
        status = "converged" if self.converged else "NOT converged"
        return (
            f"goal={self.config.goal_score} max={self.config.max_score} | "
            f"{self.n_sweeps} sweeps, max change {self.max_change:.3e} ({status}) | "
            f"P(first player wins) = {initial_win_probability(self):.6f}"
        )


# ─── Numba kernels ────────────────────────────────────────────────────────────


@numba.njit(cache=True)
def terminal_value(mover, score, opp, turn_total, goal, max_score):
    """Win probability of a boundary cell, or NOT_TERMINAL.

    Arguments must already be clamped to the ceiling. Checks short-circuit in
    this order:
        1. p0, score < goal <= opp                      → 0.0
        2. p0, score >= goal, score > opp, tt == 0      → 1.0
        3. p0, opp >= goal, score < opp, tt == 0        → 0.0
        4. p1, score + tt >= goal, score + tt > opp     → 1.0
        5. score == opp == max_score                    → 0.5
    """
    if mover == 0:
        if score < goal and opp >= goal:
            return 0.0
        if turn_total == 0:
            if score >= goal and score > opp:
                return 1.0
            if opp >= goal and score < opp:
                return 0.0
    else:
        banked = score + turn_total
        if banked >= goal and banked > opp:
            return 1.0
    if score == max_score and opp == max_score:
        return 0.5
    return -1.0


@numba.njit(cache=True)
def _lookup(table, mover, score, opp, turn_total, dice, goal, max_score):
    """Clamp, apply the terminal checks, then read ``table``."""
    if score > max_score:
        score = max_score
    if opp > max_score:
        opp = max_score
    if turn_total > max_score - score:
        turn_total = max_score - score
    value = terminal_value(mover, score, opp, turn_total, goal, max_score)
    if value >= 0.0:
        return value
    return table[mover, score, opp, turn_total, dice]


@numba.njit(cache=True)
def _roll_value(
    own,  # float64[2, M+1, M+1, M+1, N]  — mover's table
    other,  # float64[2, M+1, M+1, M+1, N]  — table of whoever moves next turn
    mover,
    score,
    opp,
    turn_total,
    dice,
    offsets,
    frequencies,
    next_index,
    delta,
    total,
    initial,
    goal,
    max_score,
):
    """Expected win probability of rolling once, clamped to 1.0."""
    bust_value = 1.0 - _lookup(other, 1 - mover, opp, score, 0, initial, goal, max_score)
    value = 0.0
    for k in range(offsets[dice], offsets[dice + 1]):
        weight = frequencies[k] / total
        nxt = next_index[k]
        if nxt < 0:
            value += weight * bust_value
        else:
            value += weight * _lookup(
                own, mover, score, opp, turn_total + delta[k], nxt, goal, max_score
            )
    if value > 1.0:
        value = 1.0
    return value


@numba.njit(cache=True)
def _optimal_sweep(
    p_win,  # float64[2, M+1, M+1, M+1, N]  — updated in-place
    should_roll,  # bool[2, M+1, M+1, M+1, N]     — updated in-place
    offsets,
    frequencies,
    next_index,
    delta,
    total,
    initial,
    goal,
    max_score,
):
    """One in-place sweep; returns the largest absolute change."""
    n_dice = p_win.shape[4]
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
                            change = abs(boundary - p_win[mover, score, opp, turn_total, d])
                            if change > max_change:
                                max_change = change
                            p_win[mover, score, opp, turn_total, d] = boundary
                            should_roll[mover, score, opp, turn_total, d] = False
                        continue

                    hold = 1.0 - _lookup(
                        p_win, 1 - mover, opp, score + turn_total, 0, initial, goal, max_score
                    )
                    for d in range(n_dice):
                        roll = _roll_value(
                            p_win, p_win, mover, score, opp, turn_total, d,
                            offsets, frequencies, next_index, delta, total,
                            initial, goal, max_score,
                        )
                        if roll > hold:
                            value = roll
                            should_roll[mover, score, opp, turn_total, d] = True
                        else:
                            value = hold
                            should_roll[mover, score, opp, turn_total, d] = False
                        change = abs(value - p_win[mover, score, opp, turn_total, d])
                        if change > max_change:
                            max_change = change
                        p_win[mover, score, opp, turn_total, d] = value
    return max_change


# ─── Solver ───────────────────────────────────────────────────────────────────


def allocate_tables(config: GameConfig, num_states: int) -> tuple[np.ndarray, np.ndarray]:
    """Zero-initialised (should_roll, p_win) tables for ``config``."""
    size = config.table_size
    shape = (2, size, size, size, num_states)
    return np.zeros(shape, dtype=np.bool_), np.zeros(shape, dtype=np.float64)


def check_iteration_args(epsilon: float, max_sweeps: int | None) -> None:
    """Validate the stopping parameters shared by the iterative solvers.

    Raises:
        ValueError: If epsilon is not positive or max_sweeps is below 1.
    """
    if not epsilon > 0.0:
        raise ValueError(f"epsilon must be positive, got {epsilon}.")
    if max_sweeps is not None and max_sweeps < 1:
        raise ValueError(f"max_sweeps must be at least 1, got {max_sweeps}.")


def solve(
    space: DiceStateSpace,
    kernel: TransitionKernel,
    config: GameConfig = GameConfig(),
    epsilon: float = DEFAULT_EPSILON,
    max_sweeps: int | None = None,
    verbose: bool = False,
) -> Solution:
    """Run value iteration and return the optimal policy and win probabilities.

    Args:
        space:      Dice-state universe from build_state_space().
        kernel:     Roll transitions from build_transition_kernel(space).
        config:     Goal and ceiling.
        epsilon:    Stop once a sweep changes no cell by more than this.
        max_sweeps: Optional sweep limit. When reached first, the returned
                    Solution has ``converged=False``. None runs until
                    convergence.
        verbose:    Print the max change after every sweep.

    Returns:
        Solution holding both tables and run metadata.

    Raises:
        ValueError: If the kernel does not match the space, or the stopping
                    parameters are invalid.

    Examples:
        >>> space = build_state_space()
        >>> kernel = build_transition_kernel(space)
        >>> sol = solve(space, kernel, GameConfig(goal_score=2, max_score=4), epsilon=1e-9)
        >>> sol.converged
        True
    """
    check_iteration_args(epsilon, max_sweeps)
    if kernel.num_states != space.size:
        raise ValueError(
            f"Kernel covers {kernel.num_states} dice states, space has {space.size}."
        )

    should_roll, p_win = allocate_tables(config, space.size)
    total = float(kernel.total)
    n_sweeps = 0
    max_change = float("inf")
    converged = False

    while True:
        max_change = _optimal_sweep(
            p_win,
            should_roll,
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

    return Solution(
        should_roll=should_roll,
        p_win=p_win,
        config=config,
        epsilon=epsilon,
        n_sweeps=n_sweeps,
        max_change=float(max_change),
        converged=converged,
        space=space,
        kernel=kernel,
    )


# ─── Accessors ────────────────────────────────────────────────────────────────


def clamp_state(
    config: GameConfig,
    mover: int,
    score: int,
    opp: int,
    turn_total: int,
) -> tuple[int, int, int]:
    """Clamp scores to the ceiling and the turn total to ceiling − score.

    Raises:
        ValueError: If mover is not 0/1 or any count is negative.

    Examples:
        >>> clamp_state(GameConfig(13, 26), 0, 30, 5, 9)
        (26, 5, 0)
    """
    if mover not in (0, 1):
        raise ValueError(f"mover must be 0 or 1, got {mover}.")
    if score < 0 or opp < 0 or turn_total < 0:
        raise ValueError(f"Scores and turn total must be non-negative: {score}, {opp}, {turn_total}.")
    score = min(score, config.max_score)
    opp = min(opp, config.max_score)
    turn_total = min(turn_total, config.max_score - score)
    return score, opp, turn_total


def _dice_index(solution: Solution, dice: DiceState | int) -> int:
    # a plain tuple of the nine counters indexes like the DiceState it spells
    if isinstance(dice, tuple):
        return index_of_state(solution.space, dice)
    if not isinstance(dice, (int, np.integer)):
        raise ValueError(f"Dice must be a DiceState or a dense index, got {dice!r}.")
    if not 0 <= dice < solution.space.size:
        raise ValueError(f"Dice index {dice} is outside 0..{solution.space.size - 1}.")
    return int(dice)


def win_probability(
    solution: Solution,
    mover: int,
    score: int,
    opp: int,
    turn_total: int,
    dice: DiceState | int,
) -> float:
    """Optimal win probability of the player about to act.

    Args:
        solution:   Solution from solve().
        mover:      0 = first player, 1 = second player.
        score:      Mover's banked score.
        opp:        Opponent's banked score.
        turn_total: Brains rolled so far this turn.
        dice:       DiceState, or a dense dice index.

    Raises:
        ValueError: For an unknown dice state or an invalid mover/score.
    """
    d = _dice_index(solution, dice)
    config = solution.config
    score, opp, turn_total = clamp_state(config, mover, score, opp, turn_total)
    value = terminal_value(mover, score, opp, turn_total, config.goal_score, config.max_score)
    if value >= 0.0:
        return float(value)
    return float(solution.p_win[mover, score, opp, turn_total, d])


def will_roll(
    solution: Solution,
    mover: int,
    score: int,
    opp: int,
    turn_total: int,
    dice: DiceState | int,
) -> bool:
    """Optimal action (True = roll) after clamping to the ceiling.

    Raises:
        ValueError: For an unknown dice state or an invalid mover/score.
    """
    d = _dice_index(solution, dice)
    score, opp, turn_total = clamp_state(solution.config, mover, score, opp, turn_total)
    return bool(solution.should_roll[mover, score, opp, turn_total, d])


def initial_win_probability(solution: Solution) -> float:
    """First player's win probability at the start of the game."""
    return float(solution.p_win[0, 0, 0, 0, solution.space.initial_index])


# ─── Persistence ──────────────────────────────────────────────────────────────


def solution_filename(config: GameConfig, epsilon: float = DEFAULT_EPSILON) -> str:
    """Canonical file name for a solved table.

    Examples:
        >>> solution_filename(GameConfig(13, 26), 1e-14)
        'zd_solution_goal13_max26_eps1e-14.npz'
    """
    return f"zd_solution_goal{config.goal_score}_max{config.max_score}_eps{epsilon:.0e}.npz"


def save_solution(solution: Solution, path: str | os.PathLike) -> None:
    """Write both tables and run metadata to a compressed .npz file."""
    np.savez_compressed(
        path,
        should_roll=solution.should_roll,
        p_win=solution.p_win,
        goal_score=solution.config.goal_score,
        max_score=solution.config.max_score,
        epsilon=solution.epsilon,
        n_sweeps=solution.n_sweeps,
        max_change=solution.max_change,
        converged=solution.converged,
    )


def load_solution(
    path: str | os.PathLike,
    space: DiceStateSpace,
    kernel: TransitionKernel,
    config: GameConfig | None = None,
) -> Solution:
    """Read a Solution written by save_solution().

    Args:
        path:   File to read.
        space:  Universe the tables must be indexed by.
        kernel: Kernel to attach to the loaded Solution.
        config: If given, the stored goal/ceiling must match it.

    Raises:
        ValueError: If the stored config differs from ``config`` or the table
                    shapes do not match the config and universe.
    """
    with np.load(path) as data:
        stored = GameConfig(int(data["goal_score"]), int(data["max_score"]))
        if config is not None and stored != config:
            raise ValueError(f"{path} was solved for {stored}, expected {config}.")
        size = stored.table_size
        expected_shape = (2, size, size, size, space.size)
        for name in ("should_roll", "p_win"):
            if data[name].shape != expected_shape:
                raise ValueError(
                    f"{path}: {name} has shape {data[name].shape}, expected {expected_shape}."
                )
        return Solution(
            should_roll=data["should_roll"].astype(np.bool_),
            p_win=data["p_win"].astype(np.float64),
            config=stored,
            epsilon=float(data["epsilon"]),
            n_sweeps=int(data["n_sweeps"]),
            max_change=float(data["max_change"]),
            converged=bool(data["converged"]),
            space=space,
            kernel=kernel,
        )


def load_or_solve(
    space: DiceStateSpace,
    kernel: TransitionKernel,
    config: GameConfig = GameConfig(),
    epsilon: float = DEFAULT_EPSILON,
    directory: str | os.PathLike = ".",
    verbose: bool = False,
) -> Solution:
    """Load the cached table for (config, epsilon) or solve and cache it."""
    path = os.path.join(directory, solution_filename(config, epsilon))
    if os.path.exists(path):
        if verbose:
            print(f"Loading {path}")
        return load_solution(path, space, kernel, config)
    solution = solve(space, kernel, config, epsilon, verbose=verbose)
    save_solution(solution, path)
    if verbose:
        print(f"Saved {path}")
    return solution


# ─── __main__ ─────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print("Building dice-state space...")
    space = build_state_space()
    print(f"  {space.size:,} dice states")
    print("Building transition kernel...")
    kernel = build_transition_kernel(space)
    print(f"  {kernel.num_entries:,} transitions, common total {kernel.total:,}")
    solution = load_or_solve(space, kernel, GameConfig(), DEFAULT_EPSILON, verbose=True)
    print(solution)
