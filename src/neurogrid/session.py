"""
session.py - Driving the agent tick by tick and keeping the episode history.

The engine in `agent.py` knows nothing about episodes beyond "this step
ended one". A TrainingSession is the caller side of that contract, the role
the UI timer loop plays in the interactive app:

- tick(): one step, plus episode bookkeeping when it ends
- run_episode() / train(): batch loops with truncation, logs and snapshots
- reset() / replace_grid() / generate_map(): state-clearing operations
- analyze(): advisory commentary on the history
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

import numpy as np

from .agent import HyperParameters, QLearningAgent, RewardScheme, StepResult
from .gridworld import Grid, default_grid
from .services import FALLBACK_ANALYSIS, MapSource, PerformanceAnalyst
from .utils import EpisodeLog, EpisodeRecord, evaluate_greedy, set_seed

logger = logging.getLogger(__name__)


@dataclass
class LogConfig:
    """
    Configuration for training-time snapshots.

    Parameters
    ----------
    snapshot_every : int
        Take a snapshot every `snapshot_every` training episodes.
        Snapshots are also taken on the first and last episodes.
    eval_episodes : int
        Number of greedy evaluation rollouts per snapshot.
    max_eval_steps : int
        Safety cap for each evaluation rollout.
    seed : int or None
        RNG seed for evaluation tie-breaking.
    """
    snapshot_every: int = 40
    eval_episodes: int = 5
    max_eval_steps: int = 200
    seed: Optional[int] = 0


class TrainingSession:
    """
    Owns one agent and the history of its finished episodes.

    Parameters
    ----------
    grid : Grid or None
        Starting layout; `default_grid()` when None.
    params : HyperParameters or None
        Initial hyperparameters, restored by `reset()`.
    rewards : RewardScheme or None
        Passed to the agent.
    map_source : MapSource or None
        Collaborator for `generate_map`.
    analyst : PerformanceAnalyst or None
        Collaborator for `analyze`.
    seed : int or None
        Seeds both the default grid and the agent.
    """

    def __init__(self, grid: Optional[Grid] = None,
                 params: Optional[HyperParameters] = None,
                 rewards: Optional[RewardScheme] = None,
                 map_source: Optional[MapSource] = None,
                 analyst: Optional[PerformanceAnalyst] = None,
                 seed: Optional[int] = None) -> None:
        self.rng: np.random.Generator = set_seed(seed)
        self.initial_params: HyperParameters = replace(params) if params is not None else HyperParameters()
        self.rewards = rewards
        self.map_source = map_source
        self.analyst = analyst

        self.history = EpisodeLog()
        self.agent = self._new_agent(grid if grid is not None else default_grid(self.rng))
        self._episode_reward = 0.0
        self._episode_steps = 0

    def _new_agent(self, grid: Grid) -> QLearningAgent:
        return QLearningAgent(grid, self.initial_params, rewards=self.rewards, rng=self.rng)

    # --------------------------------------------------------
    # Read-only state
    # --------------------------------------------------------

    @property
    def grid(self) -> Grid:
        return self.agent.grid

    @property
    def episode_count(self) -> int:
        return len(self.history)

    @property
    def episode_reward(self) -> float:
        """Reward accumulated so far in the running episode."""
        return self._episode_reward

    @property
    def episode_steps(self) -> int:
        return self._episode_steps

    # --------------------------------------------------------
    # Stepping
    # --------------------------------------------------------

    def tick(self) -> StepResult:
        """
        Advance the simulation by one step.

        On a terminal step the episode is recorded, epsilon decays once and
        the agent goes back to the start cell.
        """
        _action, result = self.agent.step()
        self._episode_reward += result.reward
        self._episode_steps += 1
        if result.done:
            self._finish_episode(won=result.won)
        return result

    def _finish_episode(self, won: bool) -> EpisodeRecord:
        record = EpisodeRecord(
            episode=self.episode_count + 1,
            reward=self._episode_reward,
            steps=self._episode_steps,
            won=won,
            epsilon=self.agent.epsilon,
        )
        self.history.append(record)
        logger.debug("Episode %d: reward=%.1f steps=%d won=%s",
                     record.episode, record.reward, record.steps, record.won)

        self.agent.decay_exploration()
        self.agent.reset_position()
        self._episode_reward = 0.0
        self._episode_steps = 0
        return record

    def run_episode(self, max_steps: int = 1000) -> EpisodeRecord:
        """
        Tick until the running episode ends or `max_steps` more steps pass.

        A truncated episode is recorded as lost and still decays epsilon.
        """
        for _ in range(max_steps):
            result = self.tick()
            if result.done:
                return self.history.records[-1]
        logger.debug("Episode truncated after %d steps", self._episode_steps)
        return self._finish_episode(won=False)

    def train(self, episodes: int, max_steps: int = 1000,
              logcfg: Optional[LogConfig] = None) -> Dict[str, Any]:
        """
        Run `episodes` episodes and collect learning statistics.

        Returns
        -------
        logs : dict
            Dictionary with keys:
              - "returns": np.ndarray of episode rewards
              - "steps":   np.ndarray of episode lengths
              - "snapshots": list of dicts with:
                    {
                      "episode": int,
                      "avg_return": float (mean greedy return),
                      "success_rate": float (greedy rollouts reaching a goal),
                      "Q": np.ndarray copy of the table at snapshot time
                    }
        """
        logcfg = logcfg if logcfg is not None else LogConfig()
        returns: List[float] = []
        steps: List[int] = []
        snapshots: List[Dict[str, Any]] = []

        for ep in range(episodes):
            record = self.run_episode(max_steps=max_steps)
            returns.append(record.reward)
            steps.append(record.steps)

            take = (
                (ep == 0) or
                ((ep + 1) % logcfg.snapshot_every == 0) or
                (ep == episodes - 1)
            )
            if take:
                avg_return, success = evaluate_greedy(
                    self.agent,
                    episodes=logcfg.eval_episodes,
                    max_steps=logcfg.max_eval_steps,
                    seed=logcfg.seed,
                )
                snapshots.append({
                    "episode": record.episode,
                    "avg_return": avg_return,
                    "success_rate": success,
                    "Q": np.array(self.agent.q_table),
                })

        logger.info("Trained %d episodes: win rate %.2f over the last 50, epsilon %.3f",
                    episodes, self.history.win_rate(50), self.agent.epsilon)
        return {
            "returns": np.array(returns),
            "steps": np.array(steps),
            "snapshots": snapshots,
        }

    # --------------------------------------------------------
    # Control
    # --------------------------------------------------------

    def update_hyperparameters(self, **partial: float) -> None:
        self.agent.update_hyperparameters(**partial)

    def reset(self) -> None:
        """
        Start over on the current grid: fresh agent with the initial
        hyperparameters, empty history.
        """
        self.agent = self._new_agent(self.agent.grid)
        self._clear_history()

    def replace_grid(self, grid: Grid) -> None:
        """
        Load a new layout. The table is wiped, epsilon goes back to its
        initial value and the history is cleared.
        """
        self.agent.replace_grid(grid)
        self.agent.update_hyperparameters(epsilon=self.initial_params.epsilon)
        self._clear_history()

    def _clear_history(self) -> None:
        self.history.clear()
        self._episode_reward = 0.0
        self._episode_steps = 0

    def generate_map(self, description: str) -> bool:
        """
        Ask the map source for a new layout.

        Returns
        -------
        bool
            True if a grid was loaded; on failure the current grid stays.
        """
        if self.map_source is None:
            logger.warning("No map source configured; keeping the current grid")
            return False
        grid = self.map_source.generate_grid(description)
        if grid is None:
            logger.warning("Map generation failed; keeping the current grid")
            return False
        self.replace_grid(grid)
        return True

    def analyze(self) -> str:
        """Commentary on the recent history; never raises."""
        if self.analyst is None:
            return FALLBACK_ANALYSIS
        return self.analyst.summarize(self.history, self.agent.params)
