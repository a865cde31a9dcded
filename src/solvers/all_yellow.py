"""
Solver for All Yellow Zombie Dice, a reduced two-player variant.

Rules: every roll uses the same 3 yellow dice (2 brain / 2 shotgun /
2 footprint sides each), so the dice state collapses to the number of
shotguns rolled this turn (0–2; 3 or more busts). Rounds, holding and the
end-of-game test are as in the full game.

State key: (p, i, j, b, s) — mover, mover score, opponent score, turn total,
shotguns this turn. Tables are plain dicts keyed by that tuple; the state
space is small enough that the full dense layout of the main solver is not
needed.

Sweep order: mover, shotguns descending, combined score descending, mover
score descending, turn total descending; in place until the largest change
is at most epsilon.
"""

from __future__ import annotations

import csv
import os
from dataclasses import dataclass
from typing import Callable

import numpy as np

from src.engine.dice import BUST_SHOTGUNS, DIE_SIDES, HAND_SIZE, YELLOW
from src.engine.game_state import DEFAULT_EPSILON, DEFAULT_GOAL_SCORE, GameConfig
from src.engine.transitions import color_face_outcomes
from src.solvers.value_iteration import check_iteration_args, terminal_value

DEFAULT_ALL_YELLOW_CONFIG: GameConfig = GameConfig(DEFAULT_GOAL_SCORE, 3 * DEFAULT_GOAL_SCORE)
"""Goal 13 with a ceiling of 39."""

MAX_SHOTGUNS: int = BUST_SHOTGUNS - 1

# (p, i, j, b, s)
StateKey = tuple[int, int, int, int, int]

# policy(p, i, j, b, s) -> True to roll
AllYellowPolicy = Callable[[int, int, int, int, int], bool]

_terminal = terminal_value.py_func


def yellow_roll_probabilities() -> list[tuple[float, int, int]]:
    """Distribution of one roll of the 3 yellow dice.

    Returns:
        List of (probability, brains, shotguns).

    Examples:
        >>> round(sum(p for p, _, _ in yellow_roll_probabilities()), 12)
        1.0
    """
    total = DIE_SIDES**HAND_SIZE
    return [
        (weight / total, brains, shotguns)
        for weight, brains, shotguns, _ in color_face_outcomes(YELLOW, HAND_SIZE)
    ]


@dataclass
class AllYellowSolution:
    """Output of solve_all_yellow().

    Attributes:
        should_roll: {(p, i, j, b, s): roll?} for every stored cell.
        p_win:       {(p, i, j, b, s): mover's win probability}.
        config:      Goal and ceiling.
        epsilon:     Convergence threshold used.
        n_sweeps:    Sweeps performed.
        max_change:  Largest change in the final sweep.
        converged:   True if max_change <= epsilon.
    """

    should_roll: dict[StateKey, bool]
    p_win: dict[StateKey, float]
    config: GameConfig
    epsilon: float
    n_sweeps: int
    max_change: float
    converged: bool


# ─── Table helpers ────────────────────────────────────────────────────────────


def _clamp(config: GameConfig, i: int, j: int, b: int) -> tuple[int, int, int]:
    i = min(i, config.max_score)
    j = min(j, config.max_score)
    b = min(b, config.max_score - i)
    return i, j, b


def _lookup(values: dict[StateKey, float], config: GameConfig, p: int, i: int, j: int, b: int, s: int) -> float:
    i, j, b = _clamp(config, i, j, b)
    value = _terminal(p, i, j, b, config.goal_score, config.max_score)
    if value >= 0.0:
        return value
    return values[(p, i, j, b, s)]


def _sweep_keys(config: GameConfig) -> list[StateKey]:
    """Every stored cell in sweep order."""
    m = config.max_score
    keys = []
    for p in range(2):
        for s in range(MAX_SHOTGUNS, -1, -1):
            for score_sum in range(2 * m, -1, -1):
                for i in range(min(m, score_sum), max(0, score_sum - m) - 1, -1):
                    j = score_sum - i
                    for b in range(m - i, -1, -1):
                        keys.append((p, i, j, b, s))
    return keys


def _boundary_value(config: GameConfig, p: int, i: int, j: int, b: int) -> float | None:
    """Value of a cell the sweep pins without computing roll or hold."""
    goal = config.goal_score
    if (i >= goal and j < i) or (p == 1 and i + b >= goal and i + b > j):
        return 1.0
    if p == 0 and j >= goal and i < j:
        return 0.0
    return None


# ─── Solver ───────────────────────────────────────────────────────────────────


def solve_all_yellow(
    config: GameConfig = DEFAULT_ALL_YELLOW_CONFIG,
    epsilon: float = DEFAULT_EPSILON,
    max_sweeps: int | None = None,
    verbose: bool = False,
) -> AllYellowSolution:
    """Run value iteration on the All Yellow variant.

    Args:
        config:     Goal and ceiling (default goal 13, ceiling 39).
        epsilon:    Convergence threshold on the max per-sweep change.
        max_sweeps: Optional sweep limit (result flagged unconverged).
        verbose:    Print the max change after every sweep.

    Returns:
        AllYellowSolution with composite-key tables.

    Raises:
        ValueError: If the stopping parameters are invalid.
    """
    check_iteration_args(epsilon, max_sweeps)
    outcomes = yellow_roll_probabilities()
    keys = _sweep_keys(config)
    p_win = {key: 0.0 for key in keys}
    should_roll = {key: False for key in keys}

    n_sweeps = 0
    converged = False
    while True:
        max_change = 0.0
        for key in keys:
            p, i, j, b, s = key
            boundary = _boundary_value(config, p, i, j, b)
            if boundary is not None:
                new_value = boundary
                rolls = False
            else:
                bust_value = 1.0 - _lookup(p_win, config, 1 - p, j, i, 0, 0)
                roll_value = 0.0
                for prob, brains, shotguns in outcomes:
                    if s + shotguns > MAX_SHOTGUNS:
                        roll_value += prob * bust_value
                    else:
                        roll_value += prob * _lookup(p_win, config, p, i, j, b + brains, s + shotguns)
                hold_value = 1.0 - _lookup(p_win, config, 1 - p, j, i + b, 0, 0)
                rolls = roll_value > hold_value
                new_value = roll_value if rolls else hold_value
            change = abs(new_value - p_win[key])
            if change > max_change:
                max_change = change
            p_win[key] = new_value
            should_roll[key] = rolls

        n_sweeps += 1
        if verbose:
            print(f"Sweep {n_sweeps}: max change {max_change:.3e}")
        if max_change <= epsilon:
            converged = True
            break
        if max_sweeps is not None and n_sweeps >= max_sweeps:
            break

    return AllYellowSolution(
        should_roll=should_roll,
        p_win=p_win,
        config=config,
        epsilon=epsilon,
        n_sweeps=n_sweeps,
        max_change=max_change,
        converged=converged,
    )


# ─── Accessors ────────────────────────────────────────────────────────────────


def all_yellow_win_probability(solution: AllYellowSolution, p: int, i: int, j: int, b: int, s: int) -> float:
    """Win probability of the mover, with clamping and terminal checks."""
    if not 0 <= s <= MAX_SHOTGUNS:
        raise ValueError(f"Shotgun count must be within 0..{MAX_SHOTGUNS}, got {s}.")
    return _lookup(solution.p_win, solution.config, p, i, j, b, s)


def all_yellow_will_roll(solution: AllYellowSolution, p: int, i: int, j: int, b: int, s: int) -> bool:
    """Optimal action after clamping to the ceiling."""
    if not 0 <= s <= MAX_SHOTGUNS:
        raise ValueError(f"Shotgun count must be within 0..{MAX_SHOTGUNS}, got {s}.")
    i, j, b = _clamp(solution.config, i, j, b)
    return solution.should_roll[(p, i, j, b, s)]


def make_all_yellow_optimal_policy(solution: AllYellowSolution) -> AllYellowPolicy:
    def _policy(p: int, i: int, j: int, b: int, s: int) -> bool:
        return all_yellow_will_roll(solution, p, i, j, b, s)

    return _policy


# ─── Analysis ─────────────────────────────────────────────────────────────────


def roll_inclusion_violations(solution: AllYellowSolution) -> list[StateKey]:
    """Cells where the policy rolls with s shotguns but holds with s − 1.

    Returns:
        Keys (p, i, j, b, s) that break the nesting of roll regions; empty
        when every roll region contains the next one.
    """
    m = solution.config.max_score
    violations = []
    for p in range(2):
        for i in range(m + 1):
            for j in range(m + 1):
                for b in range(m - i + 1):
                    for s in range(1, MAX_SHOTGUNS + 1):
                        if solution.should_roll[(p, i, j, b, s)] and not solution.should_roll[(p, i, j, b, s - 1)]:
                            violations.append((p, i, j, b, s))
    return violations


def check_roll_inclusion(solution: AllYellowSolution) -> bool:
    """True if rolling with more shotguns implies rolling with fewer."""
    return not roll_inclusion_violations(solution)


def compute_all_yellow_reachability(
    solution: AllYellowSolution,
    start: StateKey = (0, 0, 0, 0, 0),
) -> set[StateKey]:
    """States reachable from ``start`` when both players play optimally.

    Start-of-round cells (p = 0, b = 0, s = 0) where someone has reached the
    goal with a unique lead, or both sit at the ceiling, are not expanded.
    """
    config = solution.config
    goal, m = config.goal_score, config.max_score
    outcomes = yellow_roll_probabilities()
    reachable: set[StateKey] = set()
    stack = [start]
    while stack:
        p, i, j, b, s = stack.pop()
        i, j, b = _clamp(config, i, j, b)
        key = (p, i, j, b, s)
        if key in reachable:
            continue
        reachable.add(key)
        if p == 0 and b == 0 and s == 0 and (i >= goal or j >= goal) and (i != j or i == m):
            continue
        if solution.should_roll[key]:
            stack.append((1 - p, j, i, 0, 0))
            for _, brains, shotguns in outcomes:
                if s + shotguns <= MAX_SHOTGUNS:
                    stack.append((p, i, j, b + brains, s + shotguns))
        else:
            stack.append((1 - p, j, i + b, 0, 0))
    return reachable


def all_yellow_min_hold_values(solution: AllYellowSolution) -> np.ndarray:
    """Smallest turn total at which the policy holds, per (p, s, i, j).

    Scans b upward from 0 while the policy rolls, capped at max_score − 1.

    Returns:
        int64[2, MAX_SHOTGUNS + 1, M, M] indexed [p, s, i, j].
    """
    m = solution.config.max_score
    result = np.zeros((2, MAX_SHOTGUNS + 1, m, m), dtype=np.int64)
    for p in range(2):
        for s in range(MAX_SHOTGUNS + 1):
            for i in range(m):
                for j in range(m):
                    b = 0
                    while b + 1 < m and solution.should_roll.get((p, i, j, b, s), False):
                        b += 1
                    result[p, s, i, j] = b
    return result


def export_all_yellow_csv(
    solution: AllYellowSolution,
    path: str | os.PathLike,
    reachable: set[StateKey] | None = None,
) -> None:
    """Write every cell as p,i,j,b,s,roll,pWin,reachable rows."""
    if reachable is None:
        reachable = compute_all_yellow_reachability(solution)
    m = solution.config.max_score
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["p", "i", "j", "b", "s", "roll", "pWin", "reachable"])
        for p in range(2):
            for i in range(m + 1):
                for j in range(m + 1):
                    for b in range(m - i + 1):
                        for s in range(MAX_SHOTGUNS + 1):
                            key = (p, i, j, b, s)
                            writer.writerow([
                                p, i, j, b, s,
                                int(solution.should_roll[key]),
                                f"{all_yellow_win_probability(solution, *key):.6f}",
                                int(key in reachable),
                            ])


# ─── __main__ ─────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print(f"Solving All Yellow Zombie Dice, epsilon = {DEFAULT_EPSILON:.1e} ...")
    sol = solve_all_yellow()
    print(f"Solved in {sol.n_sweeps} sweeps.")
    print(f"pWin(0, 0, 0, 0, 0) = {all_yellow_win_probability(sol, 0, 0, 0, 0, 0)}")
    print(f"Roll regions nested by shotgun count: {check_roll_inclusion(sol)}")
    reachable = compute_all_yellow_reachability(sol)
    print(f"Reachable states: {len(reachable):,}")
    out = f"AYZD-optimal-maxscore{sol.config.max_score}.csv"
    export_all_yellow_csv(sol, out, reachable)
    print(f"Wrote {out}")
