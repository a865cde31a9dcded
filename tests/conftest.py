"""
Shared pytest fixtures for Zombie Dice solver tests.

The dice-state universe and transition kernel are the same for every goal,
so they are built once per session. Solved tables use small goals and
ceilings so value iteration finishes in seconds.
"""

from __future__ import annotations

import pytest

from src.engine.game_state import GameConfig
from src.engine.state_space import DiceStateSpace, build_state_space
from src.engine.transitions import TransitionKernel, build_transition_kernel
from src.solvers.value_iteration import Solution, solve

SMALL_CONFIG = GameConfig(goal_score=3, max_score=6)
TINY_CONFIG = GameConfig(goal_score=2, max_score=4)
TEST_EPSILON = 1e-10


@pytest.fixture(scope="session")
def space() -> DiceStateSpace:
    return build_state_space()


@pytest.fixture(scope="session")
def kernel(space: DiceStateSpace) -> TransitionKernel:
    return build_transition_kernel(space)


@pytest.fixture(scope="session")
def small_solution(space: DiceStateSpace, kernel: TransitionKernel) -> Solution:
    """Optimal tables for goal 3, ceiling 6."""
    return solve(space, kernel, SMALL_CONFIG, epsilon=TEST_EPSILON)


@pytest.fixture(scope="session")
def tiny_solution(space: DiceStateSpace, kernel: TransitionKernel) -> Solution:
    """Optimal tables for goal 2, ceiling 4."""
    return solve(space, kernel, TINY_CONFIG, epsilon=TEST_EPSILON)
