"""
Enumeration of every valid dice configuration.

The universe is built once with :func:`build_state_space` and then passed
explicitly to the transition-kernel builder and the solvers. Each valid
configuration gets a dense index (its position in the sorted list of codes);
solver tables are keyed by that index, never by the raw code.

Validity (per color c, with totals from NUM_DICE_BY_COLOR):
    - total shotguns across colors < BUST_SHOTGUNS
    - total footprints across colors <= HAND_SIZE
    - shotguns_c + footprints_c + supply_c <= total_c
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .dice import (
    BUST_SHOTGUNS,
    HAND_SIZE,
    INITIAL_DICE_STATE,
    NUM_DICE_BY_COLOR,
    DiceState,
    decode_dice_state,
    encode_dice_state,
)

NUM_DICE_STATES: int = 10820
"""Size of the universe for the standard 6/4/3 dice."""


@dataclass(frozen=True)
class DiceStateSpace:
    """Sorted, densely indexed universe of non-bust dice configurations.

    Attributes:
        codes:         int64[N] — dice-state code for each index, ascending.
        index_of:      {code: index} reverse map.
        initial_index: Index of INITIAL_DICE_STATE (all dice in supply).
    """

    codes: np.ndarray
    index_of: dict[int, int]
    initial_index: int

    @property
    def size(self) -> int:
        return len(self.codes)

    def state(self, index: int) -> DiceState:
        """Decode the dice state stored at ``index``."""
        return decode_dice_state(int(self.codes[index]))

    def states(self) -> list[DiceState]:
        """Decode every state in index order."""
        return [decode_dice_state(int(code)) for code in self.codes]


def enumerate_dice_states() -> list[DiceState]:
    """List every valid dice configuration in nested-range order.

    Shotguns vary slowest (green, yellow, red), then footprints, then supply.
    The supply of each color ranges over whatever that color has left after
    its shotguns and footprints.
    """
    green_total, yellow_total, red_total = NUM_DICE_BY_COLOR
    states: list[DiceState] = []
    for sg in range(BUST_SHOTGUNS):
        for sy in range(BUST_SHOTGUNS - sg):
            for sr in range(BUST_SHOTGUNS - sg - sy):
                green_left = green_total - sg
                yellow_left = yellow_total - sy
                red_left = red_total - sr
                for fg in range(min(HAND_SIZE, green_left) + 1):
                    for fy in range(min(HAND_SIZE - fg, yellow_left) + 1):
                        for fr in range(min(HAND_SIZE - fg - fy, red_left) + 1):
                            for cg in range(green_left - fg + 1):
                                for cy in range(yellow_left - fy + 1):
                                    for cr in range(red_left - fr + 1):
                                        states.append(DiceState(sg, sy, sr, fg, fy, fr, cg, cy, cr))
    return states


def build_state_space() -> DiceStateSpace:
    """Encode, sort and index every valid dice configuration.

    Returns:
        DiceStateSpace with NUM_DICE_STATES entries for the standard dice.

    Examples:
        >>> space = build_state_space()
        >>> space.size
        10820
        >>> space.state(space.initial_index) == INITIAL_DICE_STATE
        True
    """
    codes = sorted({encode_dice_state(state) for state in enumerate_dice_states()})
    index_of = {code: index for index, code in enumerate(codes)}
    return DiceStateSpace(
        codes=np.array(codes, dtype=np.int64),
        index_of=index_of,
        initial_index=index_of[encode_dice_state(INITIAL_DICE_STATE)],
    )


def index_of_state(space: DiceStateSpace, state: DiceState) -> int:
    """Return the dense index of ``state``.

    Raises:
        ValueError: If the state is not a member of the universe (for example
                    a bust configuration or one with too many dice of a color).
    """
    code = encode_dice_state(state)
    try:
        return space.index_of[code]
    except KeyError:
        raise ValueError(f"Dice state ({state}) is not a valid non-bust configuration.") from None
