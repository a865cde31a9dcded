"""
Game configuration, the policy interface, and full-game simulation.

Implements the two-player Zombie Dice flow:
    ROUND: player 0 turn → player 1 turn → round-end check

A turn opens with a ROLL (refill hand to 3, roll, set brains/shotguns aside)
and repeats it until the mover holds (turn total banked) or busts (3+
shotguns, turn scores 0).
A game ends when a round concludes with a unique leader at or above the goal.
Tied leaders at or above the goal play another round.

Key modelling choices shared with the solvers:
    - Player 0 always moves first in a round, so player 1 gets a reply turn
      after player 0 reaches the goal.
    - Both scores at the ceiling (max_score) with a tie is settled by a coin
      flip, mirroring the 0.5 draw value the solver assigns to that cell.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, NamedTuple

import numpy as np

from .dice import (
    BRAIN,
    BUST_SHOTGUNS,
    COLOR_NAMES,
    DIE_FACES,
    DIE_SIDES,
    FACE_NAMES,
    HAND_SIZE,
    INITIAL_DICE_STATE,
    NUM_COLORS,
    NUM_DICE_BY_COLOR,
    SHOTGUN,
    DiceState,
)

DEFAULT_GOAL_SCORE: int = 13
"""Brains needed to trigger the end of the game."""

DEFAULT_MAX_SCORE: int = 26
"""Score ceiling of the solver tables; larger scores are clamped to it."""

DEFAULT_EPSILON: float = 1e-14
"""Value-iteration convergence threshold on the max per-sweep change."""


# ─── Configuration ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GameConfig:
    """Per-run game parameters.

    Attributes:
        goal_score: Score that ends the game once a round finishes with a
                    unique leader at or above it.
        max_score:  Ceiling for scores and turn totals in the solver tables.

    Raises:
        ValueError: If goal_score < 1 or max_score < goal_score.
    """

    goal_score: int = DEFAULT_GOAL_SCORE
    max_score: int = DEFAULT_MAX_SCORE

    def __post_init__(self) -> None:
        if self.goal_score < 1:
            raise ValueError(f"goal_score must be at least 1, got {self.goal_score}.")
        if self.max_score < self.goal_score:
            raise ValueError(
                f"max_score ({self.max_score}) must be >= goal_score ({self.goal_score})."
            )

    @property
    def table_size(self) -> int:
        """Number of score / turn-total rows in a solver table (max_score + 1)."""
        return self.max_score + 1


# ─── Policy interface ─────────────────────────────────────────────────────────

# policy(mover, mover_score, opponent_score, turn_total, dice) -> True to roll
Policy = Callable[[int, int, int, int, DiceState], bool]


# ─── Result types ─────────────────────────────────────────────────────────────


class RollResult(NamedTuple):
    """Outcome of one physical roll.

    Attributes:
        dice:   Dice state after the roll, or None if the roll busted.
        brains: Brains rolled (0 on a bust).
        faces:  (color, face) for each die in the hand, in draw order.
    """

    dice: DiceState | None
    brains: int
    faces: tuple[tuple[int, int], ...]

    @property
    def busted(self) -> bool:
        return self.dice is None


@dataclass
class TurnResult:
    """Result of one complete turn."""

    banked: int       # Brains added to the mover's score (0 on a bust)
    busted: bool
    n_rolls: int


@dataclass
class GameResult:
    """Result of a completed game.

    Attributes:
        winner:    0 (first player) or 1 (second player).
        scores:    Final (player 0, player 1) scores.
        n_rounds:  Rounds played.
        coin_flip: True if the game was decided by the ceiling tie-break.
        turns:     Per-turn results in play order.
    """

    winner: int
    scores: tuple[int, int]
    n_rounds: int
    coin_flip: bool = False
    turns: list[TurnResult] = field(default_factory=list)

    def __str__(self) -> str:
        suffix = " (coin flip)" if self.coin_flip else ""
        return (
            f"Player {self.winner} wins {self.scores[0]}-{self.scores[1]} "
            f"after {self.n_rounds} rounds{suffix}"
        )


# ─── Physical roll ────────────────────────────────────────────────────────────


def draw_and_roll(dice: DiceState, rng: np.random.Generator) -> RollResult:
    """Refill the hand from the supply and roll it once.

    Footprints stay in the hand. Missing dice are drawn uniformly without
    replacement from the supply; if the supply is too small, it is drawn out
    completely and the brains set aside this turn go back into the supply
    before the rest of the hand is drawn.

    Args:
        dice: Current non-bust dice state.
        rng:  NumPy random generator.

    Returns:
        RollResult with the next dice state (None on bust).

    Raises:
        RuntimeError: If the hand cannot be completed even after resupply.
    """
    hand: list[int] = [c for c in range(NUM_COLORS) for _ in range(dice.footprints[c])]
    supply = list(dice.supply)
    num_drawing = HAND_SIZE - len(hand)

    if num_drawing > sum(supply):
        for color in range(NUM_COLORS):
            hand.extend([color] * supply[color])
        num_drawing -= sum(supply)
        supply = [
            NUM_DICE_BY_COLOR[c] - dice.shotguns[c] - hand.count(c) for c in range(NUM_COLORS)
        ]
        if num_drawing > sum(supply):
            raise RuntimeError(f"Supply cannot complete the hand after resupply ({dice}).")

    pool = np.array([c for c in range(NUM_COLORS) for _ in range(supply[c])], dtype=np.int64)
    picks = rng.choice(len(pool), size=num_drawing, replace=False) if num_drawing else []
    for pick in picks:
        color = int(pool[pick])
        hand.append(color)
        supply[color] -= 1

    shotguns = list(dice.shotguns)
    footprints = [0] * NUM_COLORS
    brains = 0
    faces = []
    for color in hand:
        face = DIE_FACES[color][int(rng.integers(DIE_SIDES))]
        faces.append((color, face))
        if face == BRAIN:
            brains += 1
        elif face == SHOTGUN:
            shotguns[color] += 1
        else:
            footprints[color] += 1

    if sum(shotguns) >= BUST_SHOTGUNS:
        return RollResult(dice=None, brains=0, faces=tuple(faces))
    next_dice = DiceState.from_locations(tuple(shotguns), tuple(footprints), tuple(supply))
    return RollResult(dice=next_dice, brains=brains, faces=tuple(faces))


def _describe_faces(faces: tuple[tuple[int, int], ...]) -> str:
    return ", ".join(f"{COLOR_NAMES[c]} {FACE_NAMES[f]}" for c, f in faces)


# ─── Turn and game ────────────────────────────────────────────────────────────


def play_turn(
    policy: Policy,
    mover: int,
    mover_score: int,
    opponent_score: int,
    rng: np.random.Generator,
    verbose: bool = False,
) -> TurnResult:
    """Play one turn for ``mover`` under ``policy``.

    Every turn opens with a roll; the policy is consulted after each roll
    that does not bust.

    Returns:
        TurnResult with the brains banked (0 on bust).
    """
    dice = INITIAL_DICE_STATE
    turn_total = 0
    n_rolls = 0
    while True:
        roll = draw_and_roll(dice, rng)
        n_rolls += 1
        if verbose:
            print(f"  Player {mover} rolls: {_describe_faces(roll.faces)}")
        if roll.busted:
            if verbose:
                print(f"  Player {mover} busts, losing {turn_total} brains")
            return TurnResult(banked=0, busted=True, n_rolls=n_rolls)
        dice = roll.dice
        turn_total += roll.brains
        if verbose:
            print(f"    turn total {turn_total}, dice [{dice}]")
        if not policy(mover, mover_score, opponent_score, turn_total, dice):
            break
    if verbose:
        print(f"  Player {mover} holds, banking {turn_total} brains")
    return TurnResult(banked=turn_total, busted=False, n_rolls=n_rolls)


def play_game(
    policy_0: Policy,
    policy_1: Policy,
    config: GameConfig = GameConfig(),
    rng: np.random.Generator | None = None,
    verbose: bool = False,
) -> GameResult:
    """Simulate a complete game between two policies.

    Args:
        policy_0: Policy of the first player (moves first in every round).
        policy_1: Policy of the second player.
        config:   Goal and ceiling; the ceiling only matters for the tie-break.
        rng:      NumPy random generator. None for a fresh unseeded generator.
        verbose:  Print every roll and the score after each round.

    Returns:
        GameResult naming the winner and the final scores.
    """
    if rng is None:
        rng = np.random.default_rng()
    policies = (policy_0, policy_1)
    scores = [0, 0]
    turns: list[TurnResult] = []
    n_rounds = 0

    while True:
        n_rounds += 1
        for mover in (0, 1):
            turn = play_turn(policies[mover], mover, scores[mover], scores[1 - mover], rng, verbose)
            scores[mover] += turn.banked
            turns.append(turn)
        if verbose:
            print(f"Round {n_rounds}: {scores[0]}-{scores[1]}")

        leader_score = max(scores)
        if leader_score < config.goal_score:
            continue
        if scores[0] != scores[1]:
            winner = 0 if scores[0] > scores[1] else 1
            return GameResult(winner, (scores[0], scores[1]), n_rounds, turns=turns)
        if leader_score >= config.max_score:
            # the solver clamps scores past the ceiling and values that tie at 0.5,
            # so it matches this coin flip only in expectation
            winner = int(rng.integers(2))
            return GameResult(winner, (scores[0], scores[1]), n_rounds, coin_flip=True, turns=turns)
