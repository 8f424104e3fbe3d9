"""
agent.py - The NeuroGrid learning engine.

A single stateful object that owns the grid, the agent's position, the
tabular action-values and the hyperparameters, and is driven one step at a
time by an external caller:

    action = agent.select_action()      # epsilon-greedy policy
    result = agent.apply_action(action) # transition + reward + Q update

This file exposes:
    - HyperParameters: learning / exploration settings
    - RewardScheme: reward per destination cell kind
    - StepResult: outcome of one step
    - QLearningAgent: the engine
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace, fields
from typing import NamedTuple, Optional, Tuple

import numpy as np

from .gridworld import Action, CellType, Grid, MOVES
from .utils import set_seed, epsilon_greedy_action

logger = logging.getLogger(__name__)

NUM_ACTIONS = len(Action)


@dataclass
class HyperParameters:
    """
    Hyperparameters of the tabular learner.

    Parameters
    ----------
    alpha : float
        Learning rate in (0, 1].
    gamma : float
        Discount factor in [0, 1].
    epsilon : float
        Exploration rate in [0, 1]; decays once per finished episode.
    epsilon_decay : float
        Multiplicative decay factor in (0, 1].
    min_epsilon : float
        Floor below which epsilon is no longer decayed.

    Notes
    -----
    Ranges are not enforced. Out-of-range values make learning worse but
    never raise.
    """
    alpha: float = 0.1
    gamma: float = 0.9
    epsilon: float = 1.0
    epsilon_decay: float = 0.995
    min_epsilon: float = 0.01

    def merged(self, **partial: float) -> "HyperParameters":
        """Return a copy with the given fields replaced."""
        return replace(self, **partial)


@dataclass(frozen=True)
class RewardScheme:
    goal_reward: float = 100.0
    hazard_penalty: float = -100.0
    wall_penalty: float = -5.0
    step_penalty: float = -1.0


class StepResult(NamedTuple):
    reward: float
    done: bool
    won: bool


_PARAM_NAMES = frozenset(f.name for f in fields(HyperParameters))


class QLearningAgent:
    """
    Tabular Q-learning agent in a deterministic grid world.

    The action-value table is a dense array of shape (height, width, 4)
    indexed as ``[y, x, action]``; it starts at zero and is wiped whenever
    the grid is replaced. Actions are encoded as 0=Up, 1=Right, 2=Down,
    3=Left.

    Parameters
    ----------
    grid : Grid
        Initial layout.
    params : HyperParameters or None
        Initial hyperparameters (defaults if None). The agent keeps its own
        copy.
    rewards : RewardScheme or None
        Reward per destination cell kind.
    rng : np.random.Generator or None
        Random source for exploration and tie-breaking.
    seed : int or None
        Used to create a generator when `rng` is not given.
    zero_terminal_bootstrap : bool
        If True, transitions into a goal or hazard bootstrap from 0 instead
        of the stored values of the terminal cell.
    """

    def __init__(self, grid: Grid,
                 params: Optional[HyperParameters] = None,
                 rewards: Optional[RewardScheme] = None,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None,
                 zero_terminal_bootstrap: bool = False) -> None:
        self._params: HyperParameters = replace(params) if params is not None else HyperParameters()
        self.rewards: RewardScheme = rewards if rewards is not None else RewardScheme()
        self.rng: np.random.Generator = rng if rng is not None else set_seed(seed)
        self.zero_terminal_bootstrap = zero_terminal_bootstrap

        self._grid: Grid = grid
        self._start: Tuple[int, int] = grid.find_start()
        self._pos: Tuple[int, int] = self._start
        self._q: np.ndarray = self._zero_table(grid)

    # --------------------------------------------------------
    # Read-only views
    # --------------------------------------------------------

    @property
    def grid(self) -> Grid:
        return self._grid

    @property
    def position(self) -> Tuple[int, int]:
        return self._pos

    @property
    def start(self) -> Tuple[int, int]:
        return self._start

    @property
    def params(self) -> HyperParameters:
        """A copy of the current hyperparameters."""
        return replace(self._params)

    @property
    def epsilon(self) -> float:
        return self._params.epsilon

    @property
    def q_table(self) -> np.ndarray:
        """Read-only view of the (height, width, 4) action-value table."""
        view = self._q.view()
        view.flags.writeable = False
        return view

    def action_values(self, x: int, y: int) -> np.ndarray:
        """
        Snapshot of the four action-values stored for cell (x, y).

        Returns
        -------
        np.ndarray of shape (4,)
            Values for Up, Right, Down, Left. All zero for a cell the agent
            never updated.
        """
        return self._q[y, x].copy()

    # --------------------------------------------------------
    # Policy
    # --------------------------------------------------------

    def select_action(self) -> Action:
        """
        Epsilon-greedy action for the current cell.

        With probability epsilon a uniformly random action; otherwise one of
        the actions attaining the maximum value, chosen uniformly among ties.
        Stored state is not modified.
        """
        x, y = self._pos
        return Action(epsilon_greedy_action(self._q[y, x], self._params.epsilon, self.rng))

    # --------------------------------------------------------
    # Environment + learning
    # --------------------------------------------------------

    def simulate(self, pos: Tuple[int, int], action: Action
                 ) -> Tuple[Tuple[int, int], float, bool, bool]:
        """
        Pure transition and reward from `pos`, without learning.

        The move is clamped to the grid. A wall destination leaves the
        position unchanged but is still what the reward is computed from.

        Returns
        -------
        next_pos : tuple[int, int]
        reward : float
        done : bool
            True iff the destination is a goal or a hazard.
        won : bool
            True iff the destination is a goal.
        """
        x, y = pos
        dx, dy = MOVES[Action(action)]
        nx, ny = x + dx, y + dy
        if not self._grid.in_bounds(nx, ny):
            nx, ny = x, y

        cell = self._grid.cell(nx, ny)
        if cell is CellType.GOAL:
            return (nx, ny), self.rewards.goal_reward, True, True
        if cell is CellType.HAZARD:
            return (nx, ny), self.rewards.hazard_penalty, True, False
        if cell is CellType.WALL:
            return pos, self.rewards.wall_penalty, False, False
        return (nx, ny), self.rewards.step_penalty, False, False

    def apply_action(self, action: Action) -> StepResult:
        """
        Apply `action` from the current cell and learn from it.

        Q(s, a) <- Q(s, a) + alpha * (r + gamma * max_a' Q(s', a') - Q(s, a))

        The update happens on every step, wall bumps and terminal moves
        included. For a terminal s' the bootstrap reads that cell's stored
        values unless `zero_terminal_bootstrap` is set.

        Returns
        -------
        StepResult
            (reward, done, won)
        """
        a = int(action)
        x, y = self._pos
        (nx, ny), reward, done, won = self.simulate(self._pos, Action(a))

        if done and self.zero_terminal_bootstrap:
            next_max = 0.0
        else:
            next_max = float(np.max(self._q[ny, nx]))

        p = self._params
        current = self._q[y, x, a]
        self._q[y, x, a] = current + p.alpha * (reward + p.gamma * next_max - current)

        self._pos = (nx, ny)
        return StepResult(reward, done, won)

    def step(self) -> Tuple[Action, StepResult]:
        """One tick: select an action and apply it."""
        action = self.select_action()
        return action, self.apply_action(action)

    # --------------------------------------------------------
    # Episode / configuration control
    # --------------------------------------------------------

    def decay_exploration(self) -> None:
        """
        Decay epsilon once; meant to be called after each finished episode.
        No-op once epsilon is at or below `min_epsilon`.
        """
        p = self._params
        if p.epsilon > p.min_epsilon:
            p.epsilon *= p.epsilon_decay

    def reset_position(self) -> None:
        self._pos = self._start

    def replace_grid(self, grid: Grid) -> None:
        """
        Swap in a new layout: re-locate the start, move the agent there and
        zero every action-value. Hyperparameters are kept.
        """
        self._grid = grid
        self._start = grid.find_start()
        self._pos = self._start
        self._q = self._zero_table(grid)
        logger.info("Grid replaced (%dx%d), start at %s", grid.width, grid.height, self._start)

    def update_hyperparameters(self, **partial: float) -> None:
        """
        Merge a partial set of hyperparameters into the current ones.

        Values are taken as given. Unknown names raise TypeError.
        """
        unknown = set(partial) - _PARAM_NAMES
        if unknown:
            raise TypeError(f"Unknown hyperparameter(s): {', '.join(sorted(unknown))}")
        self._params = self._params.merged(**partial)

    @staticmethod
    def _zero_table(grid: Grid) -> np.ndarray:
        return np.zeros((grid.height, grid.width, NUM_ACTIONS), dtype=float)
