"""
Monte Carlo simulator and policy factories for Zombie Dice.

Plays complete games with the physical dice rules (draw_and_roll) to
cross-check the exact solvers and to compare policies head to head.

Policies (all match the Policy signature in src.engine.game_state):
    make_optimal_policy(solution)   — solved action table
    make_minh_policy(goal)          — hand-authored heuristic using the dice
                                      state (red dice left in reserve)
    make_shotgun_count_policy(goal) — same heuristic, shotgun count only
    make_hold_at_policy(n)          — roll until the turn total reaches n

compare_policies() alternates the first player between the two policies and
reports A's win rate with a Wilson 95% interval (scipy.stats.binomtest).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy import stats

from src.engine.dice import RED, DiceState
from src.engine.game_state import (
    DEFAULT_GOAL_SCORE,
    GameConfig,
    GameResult,
    Policy,
    play_game,
)
from src.solvers.value_iteration import Solution, will_roll

# ─── Heuristic thresholds ─────────────────────────────────────────────────────

_CHASE_OPPONENT_SCORE: int = 8
"""With one shotgun, opponent scores from here on switch to a score-target rule."""

_CHASE_MARGIN: int = 3
"""Lead over the opponent targeted by the one-shotgun score-target rule."""

_ONE_SHOTGUN_TURN_TOTAL: int = 4
_TWO_SHOTGUN_TURN_TOTAL: int = 1
_LOW_RED_TURN_TOTAL: int = 3
"""Two-shotgun turn-total target when at most one red die is left to draw."""

_LOW_RED_RESERVE: int = 1


# ─── Result type ──────────────────────────────────────────────────────────────


@dataclass
class SimulationResult:
    """Aggregate statistics from compare_policies().

    Attributes:
        n_games:        Games simulated.
        wins_a:         Games won by policy A.
        wins_b:         Games won by policy B.
        a_first_games:  Games in which A moved first.
        a_first_wins:   Wins by A when moving first.
        a_second_wins:  Wins by A when moving second.
        coin_flips:     Games settled by the ceiling tie-break.
        win_rate_a:     wins_a / n_games.
        ci_95_low:      Lower Wilson 95% bound for win_rate_a.
        ci_95_high:     Upper Wilson 95% bound for win_rate_a.
    """

    n_games: int
    wins_a: int
    wins_b: int
    a_first_games: int
    a_first_wins: int
    a_second_wins: int
    coin_flips: int
    win_rate_a: float
    ci_95_low: float
    ci_95_high: float

    def __str__(self) -> str:
        return (
            f"Games: {self.n_games:,} | "
            f"A wins: {self.wins_a:,} ({self.win_rate_a:.4f}) | "
            f"95% CI: [{self.ci_95_low:.4f}, {self.ci_95_high:.4f}] | "
            f"A first/second: {self.a_first_wins:,}/{self.a_second_wins:,}"
        )


# ─── Policy factories ─────────────────────────────────────────────────────────


def make_optimal_policy(solution: Solution) -> Policy:
    """Policy that reads the solved action table (scores clamped to the ceiling)."""

    def _policy(mover: int, score: int, opp: int, turn_total: int, dice: DiceState) -> bool:
        return will_roll(solution, mover, score, opp, turn_total, dice)

    return _policy


def minh_shotgun_rule(
    goal: int,
    mover: int,
    score: int,
    opp: int,
    turn_total: int,
    shotguns: int,
) -> bool:
    """Minh's roll rule from the shotgun count alone.

    - Second player behind a goal-reaching opponent: roll.
    - No shotguns: roll.
    - One shotgun: against an opponent at 8+, roll until the banked score
      would reach max(goal, opp + 3); otherwise roll while turn total < 4.
    - Two shotguns: roll only with an empty turn total.

    Examples:
        >>> minh_shotgun_rule(13, 0, 0, 0, 5, 0)
        True
        >>> minh_shotgun_rule(13, 0, 0, 0, 4, 1)
        False
    """
    banked = score + turn_total
    if mover == 1 and opp >= goal and banked < opp:
        return True
    if shotguns == 0:
        return True
    if shotguns == 1:
        if opp >= _CHASE_OPPONENT_SCORE:
            return banked < max(goal, opp + _CHASE_MARGIN)
        return turn_total < _ONE_SHOTGUN_TURN_TOTAL
    return turn_total < _TWO_SHOTGUN_TURN_TOTAL


def make_shotgun_count_policy(goal: int = DEFAULT_GOAL_SCORE) -> Policy:
    """Minh's heuristic applied to the total shotgun count only."""

    def _policy(mover: int, score: int, opp: int, turn_total: int, dice: DiceState) -> bool:
        return minh_shotgun_rule(goal, mover, score, opp, turn_total, dice.num_shotguns)

    return _policy


def make_minh_policy(goal: int = DEFAULT_GOAL_SCORE) -> Policy:
    """Minh's full-state heuristic.

    As make_shotgun_count_policy(), except that with two shotguns and at most
    one red die left to roll (red footprints plus red supply), the turn is
    pushed until the turn total reaches 3.
    """

    def _policy(mover: int, score: int, opp: int, turn_total: int, dice: DiceState) -> bool:
        shotguns = dice.num_shotguns
        banked = score + turn_total
        if shotguns >= 2 and not (mover == 1 and opp >= goal and banked < opp):
            red_in_reserve = dice.footprints[RED] + dice.supply[RED]
            if red_in_reserve <= _LOW_RED_RESERVE:
                return turn_total < _LOW_RED_TURN_TOTAL
        return minh_shotgun_rule(goal, mover, score, opp, turn_total, shotguns)

    return _policy


def make_hold_at_policy(turn_total: int) -> Policy:
    """Roll until the turn total reaches ``turn_total``, then hold.

    Raises:
        ValueError: If turn_total < 1 (the policy would hold on every decision).
    """
    if turn_total < 1:
        raise ValueError(f"Hold-at threshold must be at least 1, got {turn_total}.")
    threshold = turn_total

    def _policy(mover: int, score: int, opp: int, turn_total: int, dice: DiceState) -> bool:
        return turn_total < threshold

    return _policy


# ─── Simulation ───────────────────────────────────────────────────────────────


def simulate_games(
    policy_0: Policy,
    policy_1: Policy,
    n_games: int = 10_000,
    config: GameConfig = GameConfig(),
    seed: int | None = 42,
    verbose: bool = False,
) -> list[GameResult]:
    """Play ``n_games`` games with fixed seats.

    Args:
        policy_0: First player's policy.
        policy_1: Second player's policy.
        n_games:  Number of games.
        config:   Goal and ceiling.
        seed:     Seed for numpy's default_rng. None for a non-deterministic run.
        verbose:  Narrate every roll.

    Returns:
        One GameResult per game.
    """
    rng = np.random.default_rng(seed)
    return [play_game(policy_0, policy_1, config, rng, verbose) for _ in range(n_games)]


def compare_policies(
    policy_a: Policy,
    policy_b: Policy,
    n_games: int = 10_000,
    config: GameConfig = GameConfig(),
    seed: int | None = 42,
) -> SimulationResult:
    """Play A against B, alternating who moves first.

    A moves first in even-numbered games and second in odd-numbered ones, so
    each policy moves first in half of the games (A gets the extra one when
    n_games is odd).

    Raises:
        ValueError: If n_games < 1.
    """
    if n_games < 1:
        raise ValueError(f"n_games must be at least 1, got {n_games}.")
    rng = np.random.default_rng(seed)
    a_first_games = a_first_wins = a_second_wins = coin_flips = 0

    for game in range(n_games):
        a_first = game % 2 == 0
        if a_first:
            result = play_game(policy_a, policy_b, config, rng)
            a_first_games += 1
            a_first_wins += int(result.winner == 0)
        else:
            result = play_game(policy_b, policy_a, config, rng)
            a_second_wins += int(result.winner == 1)
        coin_flips += int(result.coin_flip)

    wins_a = a_first_wins + a_second_wins
    interval = stats.binomtest(wins_a, n_games).proportion_ci(confidence_level=0.95, method="wilson")
    return SimulationResult(
        n_games=n_games,
        wins_a=wins_a,
        wins_b=n_games - wins_a,
        a_first_games=a_first_games,
        a_first_wins=a_first_wins,
        a_second_wins=a_second_wins,
        coin_flips=coin_flips,
        win_rate_a=wins_a / n_games,
        ci_95_low=float(interval.low),
        ci_95_high=float(interval.high),
    )


# ─── __main__ ─────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print("Zombie Dice Monte Carlo — sample game\n")
    play_game(make_minh_policy(), make_hold_at_policy(6), rng=np.random.default_rng(1), verbose=True)
    print("\nMinh (full state) vs Minh (shotgun count), 20,000 games")
    print(compare_policies(make_minh_policy(), make_shotgun_count_policy(), n_games=20_000))
    print("\nMinh (full state) vs hold at 6, 20,000 games")
    print(compare_policies(make_minh_policy(), make_hold_at_policy(6), n_games=20_000))
