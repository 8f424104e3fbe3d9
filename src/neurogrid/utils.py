"""
utils.py - Small, reusable helpers around the NeuroGrid agent.

Includes:
- Seeding and RNG utilities
- Epsilon-greedy action selection (with uniform tie-breaking)
- Episode history records for charts and analysis
- Value / greedy-policy grids and greedy rollouts
- Simple moving-average & plotting for learning curves
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt

from .gridworld import CellType, MOVES, Action

if TYPE_CHECKING:
    from .agent import QLearningAgent


# -----------------------------
# Reproducibility / RNG
# -----------------------------

def set_seed(seed: Optional[int] = None) -> np.random.Generator:
    """
    Create a NumPy Generator seeded with `seed`.

    Parameters
    ----------
    seed : int or None
        If None, uses unpredictable entropy; else deterministic.

    Returns
    -------
    np.random.Generator
    """
    return np.random.default_rng(seed)


# -----------------------------
# Action selection
# -----------------------------

def argmax_random_tie_break(x: np.ndarray, rng: np.random.Generator) -> int:
    """
    Argmax with uniform tie-breaking.

    Parameters
    ----------
    x : np.ndarray shape (A,)
    rng : np.random.Generator

    Returns
    -------
    int
        Index of the chosen maximum. NaN entries are ignored; an all-NaN
        vector counts as fully tied.
    """
    x = np.asarray(x, dtype=float)
    if np.all(np.isnan(x)):
        return int(rng.integers(len(x)))
    ties = np.flatnonzero(x == np.nanmax(x))
    return int(rng.choice(ties))


def epsilon_greedy_action(q_values: np.ndarray, epsilon: float,
                          rng: np.random.Generator) -> int:
    """
    Choose action using epsilon-greedy.

    Parameters
    ----------
    q_values : np.ndarray
        Action-value vector of one cell, shape (A,).
    epsilon : float
        Exploration probability in [0, 1].
    rng : np.random.Generator

    Returns
    -------
    int
        Chosen action.
    """
    if rng.random() < epsilon:
        return int(rng.integers(len(q_values)))
    return argmax_random_tie_break(q_values, rng)


# -----------------------------
# Episode history
# -----------------------------

@dataclass(frozen=True)
class EpisodeRecord:
    """
    Summary of one finished episode.
    """
    episode: int
    reward: float
    steps: int
    won: bool = False
    epsilon: float = 0.0


@dataclass
class EpisodeLog:
    """
    Ordered, ever-growing log of finished episodes.

    Charts only look at the most recent entries (`window`), the analysis
    collaborator at a shorter tail (`recent`); the full log is kept.
    """
    records: List[EpisodeRecord] = field(default_factory=list)

    def append(self, record: EpisodeRecord) -> None:
        self.records.append(record)

    def clear(self) -> None:
        self.records.clear()

    def window(self, size: int = 50) -> List[EpisodeRecord]:
        return self.records[-size:] if size > 0 else []

    def recent(self, size: int = 20) -> List[EpisodeRecord]:
        return self.window(size)

    def win_rate(self, size: int = 50) -> float:
        """Fraction of won episodes among the last `size`; 0.0 when empty."""
        tail = self.window(size)
        if not tail:
            return 0.0
        return sum(r.won for r in tail) / len(tail)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


def rolling(x, k: int = 25) -> np.ndarray:
    """
    Rolling average:
    - uses 'valid' convolution
    - pads the front with the first smoothed value.

    This keeps the length equal to len(x).
    """
    x = np.asarray(x, dtype=float)
    if len(x) == 0:
        return np.array([])
    k = max(1, min(k, len(x)))
    y = np.convolve(x, np.ones(k)/k, mode="valid")
    pad = np.full(k-1, y[0])
    return np.concatenate([pad, y])


# -----------------------------
# Value / policy helpers
# -----------------------------

def value_grid(agent: "QLearningAgent") -> np.ndarray:
    """
    Map V(x, y) = max_a Q(x, y, a) onto a (height x width) grid.
    """
    return np.max(agent.q_table, axis=2)


def greedy_policy_grid(agent: "QLearningAgent") -> np.ndarray:
    """
    Greedy arrow per cell, as drawn by the visualization.

    Returns an int array of shape (height, width) holding the first maximizing
    action, or -1 for walls and cells whose values are all still zero.
    """
    grid = agent.grid
    q = agent.q_table
    pi = np.argmax(q, axis=2)
    untouched = np.all(q == 0.0, axis=2)
    pi[untouched] = -1
    for x, y in grid.positions_of(CellType.WALL):
        pi[y, x] = -1
    return pi


def greedy_rollout(agent: "QLearningAgent", max_steps: int = 200,
                   rng: Optional[np.random.Generator] = None
                   ) -> Tuple[float, List[Tuple[int, int]], bool]:
    """
    Roll out one greedy episode from the start cell without learning.

    The agent's table, parameters and position are left untouched; the
    transition and reward rules are the agent's own.

    Returns
    -------
    G : float
        Cumulative return.
    path : List[tuple[int, int]]
        Visited (x, y) cells, start included.
    won : bool
        True iff the rollout ended on a goal.
    """
    rng = rng if rng is not None else set_seed(0)
    pos = agent.start
    path = [pos]
    G = 0.0
    for _ in range(max_steps):
        a = argmax_random_tie_break(agent.action_values(*pos), rng)
        pos, r, done, won = agent.simulate(pos, Action(a))
        G += r
        path.append(pos)
        if done:
            return G, path, won
    return G, path, False


def evaluate_greedy(agent: "QLearningAgent", episodes: int = 5,
                    max_steps: int = 200,
                    seed: Optional[int] = 123) -> Tuple[float, float]:
    """
    Evaluate the greedy policy of `agent`.

    Returns
    -------
    mean_return : float
    success_rate : float
        Fraction of rollouts that reached a goal.
    """
    rng = set_seed(seed)
    returns = []
    wins = []
    for _ in range(episodes):
        G, _path, won = greedy_rollout(agent, max_steps=max_steps, rng=rng)
        returns.append(G)
        wins.append(won)
    return float(np.mean(returns)), float(np.mean(wins))


# -----------------------------
# Plotting
# -----------------------------

def plot_learning_curve(log: EpisodeLog, window: int = 50, smooth: int = 5,
                        title: str = "Learning Curve") -> None:
    """
    Plot reward and steps for the most recent `window` episodes.
    """
    tail = log.window(window)
    episodes = [r.episode for r in tail]
    rewards = np.asarray([r.reward for r in tail], dtype=float)
    steps = np.asarray([r.steps for r in tail], dtype=float)

    fig, ax = plt.subplots(figsize=(7.5, 4))
    ax.plot(episodes, rewards, alpha=0.35, label="Reward (raw)")
    ax.plot(episodes, rolling(rewards, smooth), linewidth=2.0, label=f"Reward (MA{smooth})")
    ax.set_xlabel("Episode")
    ax.set_ylabel("Reward")

    ax2 = ax.twinx()
    ax2.plot(episodes, steps, color="#a855f7", alpha=0.6, label="Steps")
    ax2.set_ylabel("Steps")

    ax.set_title(title)
    ax.legend(loc="upper left")
    plt.tight_layout()
    plt.show()


def plot_value_and_policy(agent: "QLearningAgent",
                          title: str = "Value & Policy (Top-Left Origin)") -> None:
    """
    Visualize the value function as a heatmap + greedy policy arrows.

    Walls, terminal cells and untouched cells get no arrow.
    """
    grid = agent.grid
    H, W = grid.height, grid.width
    Vg = value_grid(agent)
    pi = greedy_policy_grid(agent)

    plt.figure(figsize=(6.6, 6.6))
    plt.imshow(Vg, origin='upper', cmap='RdYlGn')
    plt.colorbar(label="V(s) = maxₐ Q(s,a)")
    plt.title(title)
    plt.xticks(range(W))
    plt.yticks(range(H))

    X, Y, U, V = [], [], [], []
    for y in range(H):
        for x in range(W):
            if pi[y, x] < 0 or grid.is_terminal(x, y):
                continue
            dx, dy = MOVES[Action(int(pi[y, x]))]
            X.append(x)
            Y.append(y)
            U.append(dx * 0.4)
            V.append(dy * 0.4)

    if X:
        plt.quiver(X, Y, U, V, scale=1, angles='xy', scale_units='xy', width=0.004)
    plt.grid(False)
    plt.tight_layout()
    plt.show()
