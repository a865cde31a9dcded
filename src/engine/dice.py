"""
Dice constants, the dice-configuration state, and its bit-packed encoding.

Zombie Dice uses 13 six-sided dice in three colors:

    Color   Dice  Brain  Shotgun  Footprint
    green     6     3       1         2
    yellow    4     2       2         2
    red       3     1       3         2

A dice configuration records, per color, how many dice are set aside as
shotguns, how many footprints are waiting to be re-rolled, and how many are
still in the supply (cup). Brains set aside are implicit:
brains = total − shotguns − footprints − supply.

Integer encoding (20 bits, most significant field first):
    shotgun G, Y, R   -> 2 bits each
    footprint G, Y, R -> 2 bits each
    supply G, Y       -> 3 bits each
    supply R          -> 2 bits
"""

from __future__ import annotations

from typing import NamedTuple

# ─── Colors and faces ─────────────────────────────────────────────────────────

GREEN: int = 0
YELLOW: int = 1
RED: int = 2
NUM_COLORS: int = 3
COLOR_NAMES: list[str] = ["green", "yellow", "red"]

BRAIN: int = 0
SHOTGUN: int = 1
FOOTPRINT: int = 2
FACE_NAMES: list[str] = ["brain", "shotgun", "footprint"]

NUM_DICE_BY_COLOR: tuple[int, int, int] = (6, 4, 3)
"""Number of dice of each color (green, yellow, red)."""

NUM_DICE: int = sum(NUM_DICE_BY_COLOR)
"""Total number of dice in the game (13)."""

DIE_SIDE_FREQUENCIES: tuple[tuple[int, int, int], ...] = (
    (3, 1, 2),  # green
    (2, 2, 2),  # yellow
    (1, 3, 2),  # red
)
"""Number of sides showing (brain, shotgun, footprint), indexed by color."""

DIE_SIDES: int = 6

DIE_FACES: tuple[tuple[int, ...], ...] = tuple(
    tuple(face for face, count in enumerate(freqs) for _ in range(count))
    for freqs in DIE_SIDE_FREQUENCIES
)
"""Face on each physical side, indexed by [color][side]. Used for random rolls."""

HAND_SIZE: int = 3
"""Number of dice rolled on every roll action."""

BUST_SHOTGUNS: int = 3
"""Shotguns set aside in one turn that end the turn with no score."""

MAX_SHOTGUNS_PER_COLOR: int = BUST_SHOTGUNS - 1
MAX_FOOTPRINTS_PER_COLOR: int = HAND_SIZE


# ─── Dice state ───────────────────────────────────────────────────────────────


class DiceState(NamedTuple):
    """Location of every die during a turn (brains are implicit).

    Attributes:
        shotgun_green:    Green dice set aside showing a shotgun (0–2).
        shotgun_yellow:   Yellow dice set aside showing a shotgun (0–2).
        shotgun_red:      Red dice set aside showing a shotgun (0–2).
        footprint_green:  Green footprints waiting to be re-rolled (0–3).
        footprint_yellow: Yellow footprints waiting to be re-rolled (0–3).
        footprint_red:    Red footprints waiting to be re-rolled (0–3).
        supply_green:     Green dice in the supply (0–6).
        supply_yellow:    Yellow dice in the supply (0–4).
        supply_red:       Red dice in the supply (0–3).

    Example:
        >>> INITIAL_DICE_STATE.supply
        (6, 4, 3)
        >>> INITIAL_DICE_STATE.brains
        (0, 0, 0)
    """

    shotgun_green: int
    shotgun_yellow: int
    shotgun_red: int
    footprint_green: int
    footprint_yellow: int
    footprint_red: int
    supply_green: int
    supply_yellow: int
    supply_red: int

    @classmethod
    def from_locations(
        cls,
        shotguns: tuple[int, int, int],
        footprints: tuple[int, int, int],
        supply: tuple[int, int, int],
    ) -> DiceState:
        """Build a state from per-color (green, yellow, red) location counts."""
        return cls(*shotguns, *footprints, *supply)

    @property
    def shotguns(self) -> tuple[int, int, int]:
        return (self.shotgun_green, self.shotgun_yellow, self.shotgun_red)

    @property
    def footprints(self) -> tuple[int, int, int]:
        return (self.footprint_green, self.footprint_yellow, self.footprint_red)

    @property
    def supply(self) -> tuple[int, int, int]:
        return (self.supply_green, self.supply_yellow, self.supply_red)

    @property
    def brains(self) -> tuple[int, int, int]:
        """Dice set aside as brains, inferred per color."""
        return tuple(
            NUM_DICE_BY_COLOR[c] - self.shotguns[c] - self.footprints[c] - self.supply[c]
            for c in range(NUM_COLORS)
        )

    @property
    def num_shotguns(self) -> int:
        return self.shotgun_green + self.shotgun_yellow + self.shotgun_red

    @property
    def num_footprints(self) -> int:
        return self.footprint_green + self.footprint_yellow + self.footprint_red

    @property
    def num_supply(self) -> int:
        return self.supply_green + self.supply_yellow + self.supply_red

    def __str__(self) -> str:
        return (
            f"sg{self.shotgun_green} sy{self.shotgun_yellow} sr{self.shotgun_red} "
            f"fg{self.footprint_green} fy{self.footprint_yellow} fr{self.footprint_red} "
            f"cg{self.supply_green} cy{self.supply_yellow} cr{self.supply_red}"
        )


INITIAL_DICE_STATE: DiceState = DiceState.from_locations((0, 0, 0), (0, 0, 0), NUM_DICE_BY_COLOR)
"""Start of every turn: all dice in the supply."""


# ─── Bit packing ──────────────────────────────────────────────────────────────

FIELD_WIDTHS: tuple[int, ...] = (2, 2, 2, 2, 2, 2, 3, 3, 2)
"""Bit width of each DiceState field, in field order."""

FIELD_MAXIMA: tuple[int, ...] = (
    MAX_SHOTGUNS_PER_COLOR,
    MAX_SHOTGUNS_PER_COLOR,
    MAX_SHOTGUNS_PER_COLOR,
    MAX_FOOTPRINTS_PER_COLOR,
    MAX_FOOTPRINTS_PER_COLOR,
    MAX_FOOTPRINTS_PER_COLOR,
    *NUM_DICE_BY_COLOR,
)
"""Largest legal value of each DiceState field."""

CODE_BITS: int = sum(FIELD_WIDTHS)


def encode_dice_state(state: DiceState) -> int:
    """Pack a dice state into its 20-bit integer code.

    Args:
        state: Dice state whose counters are within FIELD_MAXIMA.

    Returns:
        Non-negative integer code.

    Raises:
        ValueError: If any counter is negative or above its field maximum.

    Examples:
        >>> encode_dice_state(DiceState(0, 0, 0, 0, 0, 0, 0, 0, 1))
        1
        >>> decode_dice_state(encode_dice_state(INITIAL_DICE_STATE)) == INITIAL_DICE_STATE
        True
    """
    if len(state) != len(FIELD_WIDTHS):
        raise ValueError(f"Dice state must have {len(FIELD_WIDTHS)} counters, got {len(state)}.")
    code = 0
    for name, value, width, maximum in zip(DiceState._fields, state, FIELD_WIDTHS, FIELD_MAXIMA):
        if not 0 <= value <= maximum:
            raise ValueError(f"{name}={value} is outside 0..{maximum}.")
        code = (code << width) | value
    return code


def decode_dice_state(code: int) -> DiceState:
    """Unpack a 20-bit integer code into a dice state.

    Raises:
        ValueError: If the code is negative, wider than CODE_BITS, or holds a
                    counter above its field maximum.
    """
    if not 0 <= code < (1 << CODE_BITS):
        raise ValueError(f"Dice state code {code} is outside the {CODE_BITS}-bit range.")
    values = []
    for width in reversed(FIELD_WIDTHS):
        values.append(code & ((1 << width) - 1))
        code >>= width
    values.reverse()
    for name, value, maximum in zip(DiceState._fields, values, FIELD_MAXIMA):
        if value > maximum:
            raise ValueError(f"Decoded {name}={value} is outside 0..{maximum}.")
    return DiceState(*values)
