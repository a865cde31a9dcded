"""Text reports for the Zombie Dice solvers.

Public functions format solver output into plain-text tables:

    print_solution_summary(solution)          — sweeps, convergence, start value
    print_dice_state(space, index)            — S/F/C/B rows by color
    print_transitions(space, kernel, index)   — roll distribution of one state
    min_hold_values(solution, dice)           — hold thresholds per (p, i, j)
    print_min_hold_values(table, title)       — comma-separated threshold grid
    print_turn_start_win_probabilities(sol)   — p_win at turn start per (i, j)
    export_reachable_states_csv(...)          — reachable cells at a tied score
"""

from __future__ import annotations

import csv
import os

import numpy as np

from src.engine.dice import NUM_COLORS, DiceState, decode_dice_state
from src.engine.state_space import DiceStateSpace
from src.engine.transitions import BUST, TransitionKernel, transitions_from
from src.solvers.reachability import reachable_states_at_tie
from src.solvers.value_iteration import Solution, _dice_index, initial_win_probability

REACHABLE_CSV_HEADER: list[str] = [
    "action", "current_optimal_player", "current_score", "opponent_score", "turn_total",
    "sg", "sy", "sr", "fg", "fy", "fr", "cg", "cy", "cr",
]


# ─── Solution and dice-state tables ───────────────────────────────────────────


def print_solution_summary(solution: Solution) -> None:
    """Print solver metadata and the first player's starting win probability."""
    config = solution.config
    print("=" * 56)
    print("Zombie Dice Optimal Play")
    print("=" * 56)
    print(f"  Goal score:      {config.goal_score}")
    print(f"  Score ceiling:   {config.max_score}")
    print(f"  Dice states:     {solution.space.size:,}")
    print(f"  Epsilon:         {solution.epsilon:.0e}")
    print(f"  Sweeps:          {solution.n_sweeps}")
    print(f"  Final change:    {solution.max_change:.3e}")
    print(f"  Converged:       {'yes' if solution.converged else 'no'}")
    print(f"  P(first wins):   {initial_win_probability(solution):.6f}")
    print()


def print_dice_state(space: DiceStateSpace, index: int) -> None:
    """Print shotgun / footprint / supply / brain counts per color.

    Args:
        space: Dice-state universe.
        index: Dense dice index, or BUST.
    """
    if index == BUST:
        print("SHOTGUN_BUSTED")
        return
    code = int(space.codes[index])
    state = decode_dice_state(code)
    print(f"Dice State Index: {index}, Dice State: {code}")
    print(f"  {'':>1}  {'G':>3}  {'Y':>3}  {'R':>3}  {'TOTAL':>5}")
    for label, counts in (
        ("S", state.shotguns),
        ("F", state.footprints),
        ("C", state.supply),
        ("B", state.brains),
    ):
        cells = "  ".join(f"{counts[c]:>3}" for c in range(NUM_COLORS))
        print(f"  {label:>1}  {cells}  {sum(counts):>5}")


def print_transitions(space: DiceStateSpace, kernel: TransitionKernel, index: int) -> None:
    """Print every roll outcome from one dice state, bust entry first."""
    entries = transitions_from(kernel, index)
    start = int(kernel.offsets[index])
    print(f"Transitions for dice state index {index} ({space.state(index)}):")
    print(f"Total frequency: {kernel.total:,}  Entries: {len(entries)}")
    for k, (prob, nxt, delta) in enumerate(entries):
        freq = int(kernel.frequencies[start + k])
        print(f"Transition {k}: Frequency={freq}, P={prob:.6f}, Change to Turn Total={delta}")
        print_dice_state(space, nxt)


# ─── Score grids ──────────────────────────────────────────────────────────────


def min_hold_values(solution: Solution, dice: DiceState | int) -> np.ndarray:
    """Smallest turn total at which the solved policy holds in ``dice``.

    For each (p, i, j), scans the turn total upward from 0 while the policy
    rolls, capped at max_score − 1.

    Returns:
        int64[2, M, M] indexed [p, i, j].
    """
    d = _dice_index(solution, dice)
    m = solution.config.max_score
    result = np.zeros((2, m, m), dtype=np.int64)
    for p in range(2):
        for i in range(m):
            for j in range(m):
                b = 0
                while b + 1 < m and solution.should_roll[p, i, j, b, d]:
                    b += 1
                result[p, i, j] = b
    return result


def print_min_hold_values(table: np.ndarray, title: str = "p0") -> None:
    """Print a [i, j] grid of hold thresholds as comma-separated rows."""
    rows, cols = table.shape
    print(f"\n{title}:")
    print("i\\j," + "".join(f"{j:>4}," for j in range(cols)))
    for i in range(rows):
        print(f"{i:>4}," + "".join(f"{int(table[i, j]):>4}," for j in range(cols)))


def print_turn_start_win_probabilities(solution: Solution) -> None:
    """Print p_win at the start of a turn (turn total 0, initial dice)."""
    m = solution.config.max_score
    init = solution.space.initial_index
    print("\nTurn start win probabilities:")
    for p in range(2):
        print(f"\nPlayer {p}")
        print(" i\\j" + "".join(f"{j:>5}" for j in range(m)))
        for i in range(m):
            row = "".join(f" {solution.p_win[p, i, j, 0, init]:4.2f}" for j in range(m))
            print(f"{i:>4}{row}")


# ─── CSV export ───────────────────────────────────────────────────────────────


def export_reachable_states_csv(
    solution: Solution,
    reachable_by_player: tuple[np.ndarray, np.ndarray],
    tie_score: int,
    path: str | os.PathLike,
    roll_only: bool = False,
) -> int:
    """Write the reachable cells at a tied score, one dice state per row.

    Args:
        solution:            Solution the reachability tables came from.
        reachable_by_player: (reachable with player 0 optimal, with player 1 optimal).
        tie_score:           Score both players hold.
        path:                Output CSV file.
        roll_only:           Write only cells where the solved action is roll.

    Returns:
        Number of data rows written.
    """
    rows = reachable_states_at_tie(solution, reachable_by_player, tie_score, roll_only)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(REACHABLE_CSV_HEADER)
        for rolls, mover, turn_total, d in rows:
            state = solution.space.state(d)
            writer.writerow(
                ["roll" if rolls else "hold", mover, tie_score, tie_score, turn_total, *state]
            )
    return len(rows)


# ─── Entry point ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import sys

    from src.engine.dice import INITIAL_DICE_STATE
    from src.engine.game_state import GameConfig
    from src.engine.state_space import build_state_space
    from src.engine.transitions import build_transition_kernel
    from src.solvers.reachability import compute_reachability
    from src.solvers.value_iteration import load_or_solve

    goal = int(sys.argv[1]) if len(sys.argv) > 1 else 13
    config = GameConfig(goal, 2 * goal)
    space = build_state_space()
    kernel = build_transition_kernel(space)
    solution = load_or_solve(space, kernel, config, verbose=True)

    print_solution_summary(solution)
    print_transitions(space, kernel, space.initial_index)
    holds = min_hold_values(solution, INITIAL_DICE_STATE)
    print("\nMinimum hold values at the start of a turn:")
    for p in range(2):
        print_min_hold_values(holds[p], f"p{p}")
    print_turn_start_win_probabilities(solution)

    reachable = (compute_reachability(solution, 0), compute_reachability(solution, 1))
    tie = min(goal + 7, config.max_score)
    out = f"zd_reachable_tie{tie}.csv"
    n_rows = export_reachable_states_csv(solution, reachable, tie, out)
    print(f"\nWrote {n_rows:,} reachable states at {tie}-{tie} to {out}")
