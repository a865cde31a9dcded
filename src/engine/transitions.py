"""
Roll transition kernel over the dice-state universe.

For every dice state the kernel stores the exact distribution of one roll
action: refill the hand to HAND_SIZE dice (footprints first, then random
draws from the supply), roll, set brains and shotguns aside, keep footprints.

Each entry is an integer frequency over a common denominator, a destination
index (or BUST), and the number of brains rolled (the turn-total delta). All
bust outcomes of a state collapse into one entry with delta 0.

Flat CSR layout so the numba solver kernels can read it directly:

    offsets[i] .. offsets[i + 1]   entries for origin index i
    frequencies[k]                 integer weight of entry k
    next_index[k]                  destination dice index, or BUST (-1)
    delta[k]                       brains added to the turn total

Resupply rule: when the supply cannot complete the hand, the whole supply is
drawn first and every brain set aside this turn goes back into the supply
before the remaining dice are drawn.
"""

from __future__ import annotations

import functools
import itertools
import math
from dataclasses import dataclass

import numpy as np

from .dice import (
    BUST_SHOTGUNS,
    DIE_SIDE_FREQUENCIES,
    DIE_SIDES,
    HAND_SIZE,
    NUM_COLORS,
    NUM_DICE_BY_COLOR,
    DiceState,
    encode_dice_state,
)
from .state_space import DiceStateSpace

BUST: int = -1
"""Destination marker for a roll that brings the turn's shotguns to BUST_SHOTGUNS."""

ROLL_OUTCOMES: int = DIE_SIDES**HAND_SIZE
"""Equally likely side combinations for one hand (6³ = 216)."""

# Color triple (green, yellow, red).
ColorCounts = tuple[int, int, int]


@dataclass(frozen=True)
class TransitionKernel:
    """Roll distribution for every dice-state index (CSR arrays).

    Attributes:
        offsets:     int64[N + 1] — entry range per origin index.
        frequencies: int64[T] — entry weights; every origin sums to ``total``.
        next_index:  int64[T] — destination index or BUST.
        delta:       int64[T] — brains rolled (0 for the bust entry).
        total:       Common denominator of all frequencies.
    """

    offsets: np.ndarray
    frequencies: np.ndarray
    next_index: np.ndarray
    delta: np.ndarray
    total: int

    @property
    def num_states(self) -> int:
        return len(self.offsets) - 1

    @property
    def num_entries(self) -> int:
        return len(self.frequencies)


# ─── Roll outcome enumeration ─────────────────────────────────────────────────


@functools.cache
def color_face_outcomes(color: int, num_dice: int) -> tuple[tuple[int, int, int, int], ...]:
    """Face-count outcomes for ``num_dice`` dice of one color.

    Returns:
        Tuple of (weight, brains, shotguns, footprints). Weights count the
        physical side combinations and sum to DIE_SIDES ** num_dice.

    Examples:
        >>> sum(w for w, *_ in color_face_outcomes(0, 2))
        36
    """
    brain_sides, shotgun_sides, footprint_sides = DIE_SIDE_FREQUENCIES[color]
    outcomes = []
    for brains in range(num_dice + 1):
        for shotguns in range(num_dice - brains + 1):
            footprints = num_dice - brains - shotguns
            arrangements = math.comb(num_dice, brains) * math.comb(num_dice - brains, shotguns)
            weight = (
                arrangements
                * brain_sides**brains
                * shotgun_sides**shotguns
                * footprint_sides**footprints
            )
            outcomes.append((weight, brains, shotguns, footprints))
    return tuple(outcomes)


@functools.cache
def _hand_outcomes(hand: ColorCounts) -> tuple[tuple[int, ColorCounts, ColorCounts, int], ...]:
    """Grouped roll outcomes for a hand holding ``hand[c]`` dice of color c.

    Returns:
        Tuple of (weight, shotguns_by_color, footprints_by_color, brains).
        Weights sum to DIE_SIDES ** sum(hand).
    """
    per_color = [color_face_outcomes(color, hand[color]) for color in range(NUM_COLORS)]
    outcomes = []
    for combo in itertools.product(*per_color):
        weight = math.prod(entry[0] for entry in combo)
        brains = sum(entry[1] for entry in combo)
        shotguns = tuple(entry[2] for entry in combo)
        footprints = tuple(entry[3] for entry in combo)
        outcomes.append((weight, shotguns, footprints, brains))
    return tuple(outcomes)


def _draw_splits(num_drawing: int, supply: ColorCounts) -> list[ColorCounts]:
    """All per-color draw counts that take ``num_drawing`` dice from ``supply``."""
    splits = []
    for green in range(min(num_drawing, supply[0]) + 1):
        for yellow in range(min(num_drawing - green, supply[1]) + 1):
            red = num_drawing - green - yellow
            if red <= supply[2]:
                splits.append((green, yellow, red))
    return splits


def prepare_hand(state: DiceState) -> tuple[ColorCounts, ColorCounts, int]:
    """Apply the footprint carry-over and resupply rule before a draw.

    Args:
        state: Dice state before the roll.

    Returns:
        (hand, supply, num_drawing): dice already in hand per color, the
        supply to draw from per color, and how many dice must be drawn.

    Raises:
        RuntimeError: If the supply cannot complete the hand even after the
                      brains are returned to it.

    Examples:
        >>> prepare_hand(DiceState(0, 0, 0, 1, 0, 0, 0, 1, 0))
        ((1, 1, 0), (5, 3, 3), 1)
    """
    hand = list(state.footprints)
    supply = list(state.supply)
    num_drawing = HAND_SIZE - sum(hand)
    if num_drawing > sum(supply):
        for color in range(NUM_COLORS):
            hand[color] += supply[color]
            num_drawing -= supply[color]
        # Everything not shot and not in hand goes back into the cup.
        supply = [
            NUM_DICE_BY_COLOR[color] - state.shotguns[color] - hand[color]
            for color in range(NUM_COLORS)
        ]
        if num_drawing > sum(supply):
            raise RuntimeError(
                f"Supply cannot complete the hand after resupply for dice state ({state})."
            )
    return tuple(hand), tuple(supply), num_drawing


def roll_distribution(state: DiceState) -> tuple[dict[tuple[int, int], int], int]:
    """Exact outcome distribution of one roll from ``state``.

    Enumerates every color split of the draw (binomial weights, dice of one
    color are interchangeable) combined with every grouped face outcome of
    the resulting hand.

    Args:
        state: Non-bust dice state before rolling.

    Returns:
        (distribution, total): ``distribution`` maps (next_code or BUST,
        brains rolled) to an integer frequency; ``total`` is the frequency
        sum, always ``C(supply, num_drawing) * ROLL_OUTCOMES``.

    Raises:
        RuntimeError: If the accumulated frequencies do not add up to the
                      expected total.
    """
    hand, supply, num_drawing = prepare_hand(state)
    shotguns = state.shotguns
    distribution: dict[tuple[int, int], int] = {}
    total = 0

    for drawn in _draw_splits(num_drawing, supply):
        draw_weight = math.prod(math.comb(supply[c], drawn[c]) for c in range(NUM_COLORS))
        rolled = tuple(hand[c] + drawn[c] for c in range(NUM_COLORS))
        remaining = tuple(supply[c] - drawn[c] for c in range(NUM_COLORS))

        for weight, new_shotguns, footprints, brains in _hand_outcomes(rolled):
            frequency = draw_weight * weight
            total += frequency
            all_shotguns = tuple(shotguns[c] + new_shotguns[c] for c in range(NUM_COLORS))
            if sum(all_shotguns) >= BUST_SHOTGUNS:
                key = (BUST, 0)
            else:
                next_state = DiceState.from_locations(all_shotguns, footprints, remaining)
                key = (encode_dice_state(next_state), brains)
            distribution[key] = distribution.get(key, 0) + frequency

    expected = math.comb(sum(supply), num_drawing) * ROLL_OUTCOMES
    if total != expected:
        raise RuntimeError(
            f"Roll frequencies for ({state}) sum to {total}, expected {expected}."
        )
    return distribution, total


# ─── Kernel construction ──────────────────────────────────────────────────────


def build_transition_kernel(space: DiceStateSpace) -> TransitionKernel:
    """Precompute the roll distribution of every state in ``space``.

    Per-state frequencies are rescaled by an exact integer factor so that
    every origin sums to the same denominator (the LCM of the raw totals).

    Args:
        space: Dice-state universe from :func:`build_state_space`.

    Returns:
        TransitionKernel over ``space`` indices.

    Raises:
        RuntimeError: If a destination falls outside the universe or a state's
                      rescaled frequencies do not sum to the common total.
    """
    per_state: list[list[tuple[int, int, int]]] = []
    raw_totals: list[int] = []

    for index in range(space.size):
        distribution, raw_total = roll_distribution(space.state(index))
        entries = []
        for (code, delta), frequency in sorted(distribution.items()):
            if code == BUST:
                next_index = BUST
            elif code in space.index_of:
                next_index = space.index_of[code]
            else:
                raise RuntimeError(
                    f"Roll from index {index} reaches code {code} outside the state space."
                )
            entries.append((frequency, next_index, delta))
        per_state.append(entries)
        raw_totals.append(raw_total)

    common_total = math.lcm(*raw_totals)
    num_entries = sum(len(entries) for entries in per_state)
    offsets = np.zeros(space.size + 1, dtype=np.int64)
    frequencies = np.zeros(num_entries, dtype=np.int64)
    next_index = np.zeros(num_entries, dtype=np.int64)
    delta = np.zeros(num_entries, dtype=np.int64)

    k = 0
    for index, (entries, raw_total) in enumerate(zip(per_state, raw_totals)):
        scale = common_total // raw_total
        offsets[index] = k
        for frequency, nxt, brains in entries:
            frequencies[k] = frequency * scale
            next_index[k] = nxt
            delta[k] = brains
            k += 1
    offsets[space.size] = k

    sums = np.add.reduceat(frequencies, offsets[:-1])
    bad = np.flatnonzero(sums != common_total)
    if len(bad):
        raise RuntimeError(
            f"Transition frequencies for index {int(bad[0])} sum to {int(sums[bad[0]])}, "
            f"expected {common_total}."
        )

    return TransitionKernel(
        offsets=offsets,
        frequencies=frequencies,
        next_index=next_index,
        delta=delta,
        total=common_total,
    )


def transitions_from(kernel: TransitionKernel, index: int) -> list[tuple[float, int, int]]:
    """List (probability, next index or BUST, brains) entries for one origin."""
    start, end = kernel.offsets[index], kernel.offsets[index + 1]
    return [
        (
            float(kernel.frequencies[k]) / kernel.total,
            int(kernel.next_index[k]),
            int(kernel.delta[k]),
        )
        for k in range(start, end)
    ]


def bust_probability(kernel: TransitionKernel, index: int) -> float:
    """Probability that one roll from ``index`` busts."""
    return sum(p for p, nxt, _ in transitions_from(kernel, index) if nxt == BUST)
