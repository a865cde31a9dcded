"""Roll-region heat maps for the Zombie Dice solver.

Two public data-builder functions return NumPy matrices that can be used
programmatically or passed to the plot helpers:

    build_roll_region_data(solution, mover, turn_total, dice)   — binary roll/hold
    build_win_probability_data(solution, mover, turn_total, dice) — p_win

Two public plot functions render matplotlib figures:

    plot_roll_regions(solution, turn_totals, ...)   — 1×k panels, one per turn total
    plot_dice_state_comparison(solution, dice, ...) — 1×k panels, one per dice state

Matrix convention (both builders):
    Shape  : (M+1, M+1) — rows = mover score i, cols = opponent score j
    Values : 1.0 = ROLL, 0.0 = HOLD (binary); P(win) in [0,1] (probability)
             np.nan = game already decided, or turn total above M − i
"""

from __future__ import annotations

import matplotlib
import matplotlib.axes
import matplotlib.colors
import matplotlib.figure
import matplotlib.image
import matplotlib.pyplot as plt
import numpy as np

from src.engine.dice import INITIAL_DICE_STATE, DiceState
from src.solvers.value_iteration import Solution, _dice_index, terminal_value

# ─── Constants ────────────────────────────────────────────────────────────────

_NAN_COLOR: str = "#cccccc"
_TICK_STEP: int = 2


# ─── Colormaps ────────────────────────────────────────────────────────────────


def _make_binary_cmap() -> matplotlib.colors.ListedColormap:
    """Red=HOLD (0), Green=ROLL (1), grey=decided (NaN)."""
    cmap = matplotlib.colors.ListedColormap(["#d62728", "#2ca02c"])
    cmap.set_bad(color=_NAN_COLOR)
    return cmap


def _make_continuous_cmap() -> matplotlib.colors.Colormap:
    """RdYlGn gradient: red=P(win)=0, green=P(win)=1, grey=decided (NaN)."""
    cmap = matplotlib.colormaps["RdYlGn"].copy()
    cmap.set_bad(color=_NAN_COLOR)
    return cmap


_BINARY_CMAP: matplotlib.colors.Colormap = _make_binary_cmap()
_CONTINUOUS_CMAP: matplotlib.colors.Colormap = _make_continuous_cmap()


# ─── Data builders ────────────────────────────────────────────────────────────


def _score_grid(
    solution: Solution,
    table: np.ndarray,
    mover: int,
    turn_total: int,
    dice: DiceState | int,
) -> np.ndarray:
    d = _dice_index(solution, dice)
    goal = solution.config.goal_score
    m = solution.config.max_score
    data = np.full((m + 1, m + 1), np.nan)
    for i in range(m + 1):
        if turn_total > m - i:
            continue
        for j in range(m + 1):
            if terminal_value(mover, i, j, turn_total, goal, m) >= 0.0:
                continue
            data[i, j] = float(table[mover, i, j, turn_total, d])
    return data


def build_roll_region_data(
    solution: Solution,
    mover: int = 0,
    turn_total: int = 0,
    dice: DiceState | int = INITIAL_DICE_STATE,
) -> np.ndarray:
    """Return the (M+1, M+1) roll/hold matrix for one turn total and dice state.

    Args:
        solution:   Solution from solve().
        mover:      0 = first player, 1 = second player.
        turn_total: Brains rolled so far this turn.
        dice:       DiceState or dense dice index.

    Returns:
        float64 matrix: 1.0 = roll, 0.0 = hold, NaN = decided/unstored.
    """
    return _score_grid(solution, solution.should_roll, mover, turn_total, dice)


def build_win_probability_data(
    solution: Solution,
    mover: int = 0,
    turn_total: int = 0,
    dice: DiceState | int = INITIAL_DICE_STATE,
) -> np.ndarray:
    """Return the (M+1, M+1) win-probability matrix (same layout as above)."""
    return _score_grid(solution, solution.p_win, mover, turn_total, dice)


# ─── Rendering helper ─────────────────────────────────────────────────────────


def _render_panel(
    ax: matplotlib.axes.Axes,
    data: np.ndarray,
    binary: bool,
    goal: int,
) -> matplotlib.image.AxesImage:
    """Render one heat-map panel onto *ax* and return the AxesImage.

    Sets ticks and marks the goal score on both axes. The caller is
    responsible for setting the title.
    """
    cmap = _BINARY_CMAP if binary else _CONTINUOUS_CMAP
    masked = np.ma.masked_invalid(data)
    im = ax.imshow(masked, cmap=cmap, vmin=0.0, vmax=1.0, origin="lower", aspect="equal")

    ticks = range(0, data.shape[0], _TICK_STEP)
    ax.set_xticks(ticks)
    ax.set_yticks(ticks)
    ax.tick_params(labelsize=8)
    ax.axvline(goal - 0.5, color="black", linewidth=0.8, linestyle="--")
    ax.axhline(goal - 0.5, color="black", linewidth=0.8, linestyle="--")
    ax.set_xlabel("Opponent score", fontsize=9)
    ax.set_ylabel("Mover score", fontsize=9)
    return im


def _finish(fig: matplotlib.figure.Figure, show: bool, save_path: str | None) -> None:
    plt.tight_layout()
    if save_path is not None:
        fig.savefig(save_path, bbox_inches="tight", dpi=120)
    if show:
        plt.show()


# ─── Public plot functions ────────────────────────────────────────────────────


def plot_roll_regions(
    solution: Solution,
    turn_totals: tuple[int, ...] = (0, 2, 4, 6),
    *,
    mover: int = 0,
    dice: DiceState | int = INITIAL_DICE_STATE,
    binary: bool = True,
    show: bool = True,
    save_path: str | None = None,
) -> matplotlib.figure.Figure:
    """Plot one panel per turn total for a fixed dice state.

    Args:
        solution:    Solution from solve().
        turn_totals: Turn totals to plot, one panel each.
        mover:       0 = first player, 1 = second player.
        dice:        DiceState or dense dice index.
        binary:      True  → red/green roll/hold map.
                     False → continuous win-probability map with colorbar.
        show:        If True, call plt.show() after rendering.
        save_path:   If not None, save the figure to this path before showing.

    Returns:
        matplotlib.figure.Figure.
    """
    builder = build_roll_region_data if binary else build_win_probability_data
    n = len(turn_totals)
    fig, axes = plt.subplots(1, n, figsize=(4 * n, 4.4), squeeze=False)
    label = "Roll regions" if binary else "Win probability"
    fig.suptitle(f"{label}, player {mover}, dice [{_describe(solution, dice)}]", fontsize=12)

    for ax, turn_total in zip(axes[0], turn_totals):
        data = builder(solution, mover, turn_total, dice)
        im = _render_panel(ax, data, binary, solution.config.goal_score)
        ax.set_title(f"Turn total {turn_total}", fontsize=10)
        if not binary:
            plt.colorbar(im, ax=ax, label="P(win)", fraction=0.046, pad=0.04)

    _finish(fig, show, save_path)
    return fig


def plot_dice_state_comparison(
    solution: Solution,
    dice_states: list[DiceState],
    *,
    mover: int = 0,
    turn_total: int = 0,
    show: bool = True,
    save_path: str | None = None,
) -> matplotlib.figure.Figure:
    """Side-by-side roll regions for several dice states at one turn total.

    Useful for seeing how the roll region shrinks as shotguns accumulate.
    """
    n = len(dice_states)
    fig, axes = plt.subplots(1, n, figsize=(4 * n, 4.4), squeeze=False)
    fig.suptitle(f"Roll regions, player {mover}, turn total {turn_total}", fontsize=12)
    for ax, dice in zip(axes[0], dice_states):
        data = build_roll_region_data(solution, mover, turn_total, dice)
        _render_panel(ax, data, True, solution.config.goal_score)
        ax.set_title(str(dice), fontsize=8)
    _finish(fig, show, save_path)
    return fig


def _describe(solution: Solution, dice: DiceState | int) -> str:
    if isinstance(dice, tuple):
        return str(DiceState(*dice))
    return str(solution.space.state(int(dice)))


# ─── Entry point ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    matplotlib.use("Agg")

    from src.engine.game_state import GameConfig
    from src.engine.state_space import build_state_space
    from src.engine.transitions import build_transition_kernel
    from src.solvers.value_iteration import load_or_solve

    space = build_state_space()
    kernel = build_transition_kernel(space)
    solution = load_or_solve(space, kernel, GameConfig(), verbose=True)

    plot_roll_regions(solution, show=False, save_path="roll_regions_p0.png")
    plot_roll_regions(solution, mover=1, show=False, save_path="roll_regions_p1.png")
    plot_dice_state_comparison(
        solution,
        [
            INITIAL_DICE_STATE,
            DiceState(1, 0, 0, 0, 0, 0, 5, 4, 3),
            DiceState(1, 1, 0, 0, 0, 0, 5, 3, 3),
        ],
        turn_total=2,
        show=False,
        save_path="roll_regions_shotguns.png",
    )
    print("Saved roll_regions_p0.png, roll_regions_p1.png, roll_regions_shotguns.png")
