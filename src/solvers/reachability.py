"""
Reachable joint states when one player follows the solved policy.

Starting from the game start (player 0, scores 0-0, turn total 0, initial
dice), a state is reachable if some sequence of dice outcomes leads to it
while ``optimal_player`` always takes the solved action and the other player
may take either action. Turn totals and scores are clamped to the ceiling
exactly as in the solver.

A start-of-round state (player 0, initial dice, turn total 0) where a player
has reached the goal with a unique lead, or where both players sit at the
ceiling, ends the game and is not expanded.

Explicit work-list traversal over flat cell numbers in a numba kernel; a
flat cell is ((((mover·S + score)·S + opp)·S + turn_total)·N + dice) with
S = max_score + 1.
"""

from __future__ import annotations

import numba
import numpy as np

from src.solvers.value_iteration import Solution


@numba.njit(cache=True)
def _flat(mover, score, opp, turn_total, dice, size, n_dice, max_score):
    if score > max_score:
        score = max_score
    if opp > max_score:
        opp = max_score
    if turn_total > max_score - score:
        turn_total = max_score - score
    return (((mover * size + score) * size + opp) * size + turn_total) * n_dice + dice


@numba.njit(cache=True)
def _reach(
    reachable,  # bool[2 · S³ · N]  — flat, updated in-place
    should_roll,  # bool[2 · S³ · N]  — flat solved action table
    offsets,
    next_index,
    delta,
    initial,
    optimal_player,
    goal,
    max_score,
    n_dice,
):
    """Mark every reachable flat cell; returns the number marked."""
    size = max_score + 1
    stack = [_flat(0, 0, 0, 0, initial, size, n_dice, max_score)]
    count = 0
    while len(stack) > 0:
        cell = stack.pop()
        if reachable[cell]:
            continue
        reachable[cell] = True
        count += 1

        dice = cell % n_dice
        rest = cell // n_dice
        turn_total = rest % size
        rest //= size
        opp = rest % size
        rest //= size
        score = rest % size
        mover = rest // size

        if (
            mover == 0
            and dice == initial
            and turn_total == 0
            and (score >= goal or opp >= goal)
            and (score != opp or score == max_score)
        ):
            continue

        free = mover != optimal_player
        rolls = should_roll[cell]
        if free or rolls:
            for k in range(offsets[dice], offsets[dice + 1]):
                nxt = next_index[k]
                if nxt < 0:
                    stack.append(_flat(1 - mover, opp, score, 0, initial, size, n_dice, max_score))
                else:
                    stack.append(
                        _flat(mover, score, opp, turn_total + delta[k], nxt, size, n_dice, max_score)
                    )
        if free or not rolls:
            stack.append(
                _flat(1 - mover, opp, score + turn_total, 0, initial, size, n_dice, max_score)
            )
    return count


def compute_reachability(solution: Solution, optimal_player: int) -> np.ndarray:
    """Reachable cells when ``optimal_player`` plays the solved policy.

    Args:
        solution:       Solution from solve().
        optimal_player: 0 or 1 — the player restricted to the solved action.

    Returns:
        bool[2, M+1, M+1, M+1, N] table, True where the state is reachable.

    Raises:
        ValueError: If optimal_player is not 0 or 1.
    """
    if optimal_player not in (0, 1):
        raise ValueError(f"optimal_player must be 0 or 1, got {optimal_player}.")
    shape = solution.should_roll.shape
    reachable = np.zeros(shape, dtype=np.bool_).reshape(-1)
    kernel = solution.kernel
    _reach(
        reachable,
        np.ascontiguousarray(solution.should_roll).reshape(-1),
        kernel.offsets,
        kernel.next_index,
        kernel.delta,
        solution.space.initial_index,
        optimal_player,
        solution.config.goal_score,
        solution.config.max_score,
        solution.space.size,
    )
    return reachable.reshape(shape)


def reachable_states_at_tie(
    solution: Solution,
    reachable_by_player: tuple[np.ndarray, np.ndarray],
    tie_score: int,
    roll_only: bool = False,
) -> list[tuple[bool, int, int, int]]:
    """List reachable cells at a tied score for the player who is optimal there.

    Mover 0's cells are taken from the traversal with player 0 optimal, mover
    1's from the traversal with player 1 optimal.

    Args:
        solution:            Solution the traversals were run on.
        reachable_by_player: (compute_reachability(sol, 0), compute_reachability(sol, 1)).
        tie_score:           Score both players hold.
        roll_only:           Keep only cells where the solved action is roll.

    Returns:
        List of (roll, mover, turn_total, dice_index), ordered by mover,
        turn total, dice index.

    Raises:
        ValueError: If tie_score is outside 0..max_score.
    """
    max_score = solution.config.max_score
    if not 0 <= tie_score <= max_score:
        raise ValueError(f"tie_score must be within 0..{max_score}, got {tie_score}.")
    rows = []
    for mover in range(2):
        table = reachable_by_player[mover]
        for turn_total in range(max_score - tie_score + 1):
            for d in np.flatnonzero(table[mover, tie_score, tie_score, turn_total]):
                rolls = bool(solution.should_roll[mover, tie_score, tie_score, turn_total, d])
                if rolls or not roll_only:
                    rows.append((rolls, mover, turn_total, int(d)))
    return rows
