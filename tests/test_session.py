"""
tests/test_session.py

Tests for TrainingSession, the caller-side driver of the engine.

These tests verify:
- per-tick episode bookkeeping (history, epsilon decay, position reset)
- truncation of runaway episodes
- the batch training loop and its log/snapshot structure
- reset / grid replacement semantics
- map generation and analysis through collaborators
"""

import numpy as np
import pytest

from neurogrid.agent import HyperParameters
from neurogrid.gridworld import Grid
from neurogrid.services import FALLBACK_ANALYSIS
from neurogrid.session import LogConfig, TrainingSession


# ---------------------------------------------------------------------
# Fixtures & fakes
# ---------------------------------------------------------------------

@pytest.fixture
def tiny_grid():
    """
    3x3 open grid.

        S . .
        . . .
        . . G
    """
    return Grid.empty(3, 3, start=(0, 0), goal=(2, 2))


@pytest.fixture
def tiny_params():
    return HyperParameters(alpha=0.5, gamma=0.9, epsilon=0.5,
                           epsilon_decay=0.9, min_epsilon=0.05)


class FakeMapSource:
    def __init__(self, grid):
        self.grid = grid
        self.descriptions = []

    def generate_grid(self, description):
        self.descriptions.append(description)
        return self.grid


class FakeAnalyst:
    def __init__(self):
        self.calls = []

    def summarize(self, history, params):
        self.calls.append((list(history), params))
        return f"{len(history)} episodes at epsilon {params.epsilon:.2f}"


# ---------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------

def test_default_session_uses_starter_map():
    session = TrainingSession(seed=0)
    assert (session.grid.width, session.grid.height) == (10, 10)
    assert session.agent.position == (0, 0)
    assert session.episode_count == 0


# ---------------------------------------------------------------------
# Ticking
# ---------------------------------------------------------------------

def test_tick_accumulates_until_episode_ends(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)

    total, steps = 0.0, 0
    while True:
        result = session.tick()
        total += result.reward
        steps += 1
        if result.done:
            break
        assert session.episode_steps == steps
        assert session.episode_reward == total

    assert session.episode_count == 1
    record = session.history.records[0]
    assert record.episode == 1
    assert record.reward == total
    assert record.steps == steps
    assert record.won is True
    assert record.epsilon == 0.5

    # bookkeeping after the terminal tick
    assert session.agent.epsilon == pytest.approx(0.45)
    assert session.agent.position == (0, 0)
    assert session.episode_reward == 0.0
    assert session.episode_steps == 0


def test_run_episode_records_hazard_loss():
    grid = Grid.from_rows(["SH"])
    session = TrainingSession(grid, HyperParameters(epsilon=0.0), seed=0)

    # every move except RIGHT bumps the boundary; RIGHT ends in the hazard
    record = session.run_episode(max_steps=500)

    assert record.won is False
    assert record.reward <= -100.0
    assert session.episode_count == 1


def test_run_episode_truncates_and_still_decays():
    grid = Grid.from_rows(["SEE"])
    params = HyperParameters(epsilon=1.0, epsilon_decay=0.5, min_epsilon=0.0)
    session = TrainingSession(grid, params, seed=0)

    record = session.run_episode(max_steps=10)

    assert record.steps == 10
    assert record.reward == -10.0
    assert record.won is False
    assert session.agent.epsilon == 0.5
    assert session.agent.position == (0, 0)


# ---------------------------------------------------------------------
# Batch training
# ---------------------------------------------------------------------

def test_train_returns_logs_and_snapshots(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)
    logcfg = LogConfig(snapshot_every=4, eval_episodes=2, max_eval_steps=20, seed=0)

    logs = session.train(10, max_steps=100, logcfg=logcfg)

    assert set(logs) == {"returns", "steps", "snapshots"}
    assert len(logs["returns"]) == 10
    assert len(logs["steps"]) == 10
    assert [s["episode"] for s in logs["snapshots"]] == [1, 4, 8, 10]
    for snap in logs["snapshots"]:
        assert snap["Q"].shape == (3, 3, 4)
        assert 0.0 <= snap["success_rate"] <= 1.0
    assert session.episode_count == 10


def test_snapshots_are_copies(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)
    logs = session.train(3, max_steps=100, logcfg=LogConfig(snapshot_every=1))
    first = logs["snapshots"][0]["Q"].copy()
    session.train(5, max_steps=100)
    assert np.array_equal(logs["snapshots"][0]["Q"], first)


def test_training_learns_the_goal(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)
    logs = session.train(100, max_steps=200, logcfg=LogConfig(snapshot_every=50))

    assert logs["snapshots"][-1]["success_rate"] == 1.0
    assert session.history.win_rate(50) == 1.0


# ---------------------------------------------------------------------
# Reset & grid replacement
# ---------------------------------------------------------------------

def test_reset_restores_initial_state(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)
    session.train(5, max_steps=100)
    session.update_hyperparameters(alpha=0.9)
    for _ in range(3):
        session.tick()

    session.reset()

    assert session.episode_count == 0
    assert session.episode_steps == 0
    assert session.agent.params == tiny_params
    assert np.all(session.agent.q_table == 0.0)
    assert session.grid is tiny_grid


def test_replace_grid_restores_epsilon_and_clears_history(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, seed=0)
    session.train(5, max_steps=100)
    session.update_hyperparameters(alpha=0.2)
    assert session.agent.epsilon < tiny_params.epsilon

    new_grid = Grid.from_rows(["EEG", "SEE"])
    session.replace_grid(new_grid)

    assert session.grid is new_grid
    assert session.agent.position == (0, 1)
    assert session.agent.epsilon == tiny_params.epsilon
    assert session.agent.params.alpha == 0.2
    assert session.episode_count == 0
    assert np.all(session.agent.q_table == 0.0)


# ---------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------

def test_generate_map_loads_new_grid(tiny_grid, tiny_params):
    new_grid = Grid.from_rows(["SEG"])
    source = FakeMapSource(new_grid)
    session = TrainingSession(tiny_grid, tiny_params, map_source=source, seed=0)

    assert session.generate_map("a short corridor") is True
    assert source.descriptions == ["a short corridor"]
    assert session.grid is new_grid


def test_generate_map_failure_keeps_grid(tiny_grid, tiny_params):
    session = TrainingSession(tiny_grid, tiny_params, map_source=FakeMapSource(None), seed=0)
    session.train(3, max_steps=100)
    table = session.agent.q_table.copy()

    assert session.generate_map("anything") is False
    assert session.grid is tiny_grid
    assert session.episode_count == 3
    assert np.array_equal(session.agent.q_table, table)


def test_generate_map_without_source(tiny_grid):
    session = TrainingSession(tiny_grid, seed=0)
    assert session.generate_map("anything") is False
    assert session.grid is tiny_grid


def test_analyze_passes_history_and_params(tiny_grid, tiny_params):
    analyst = FakeAnalyst()
    session = TrainingSession(tiny_grid, tiny_params, analyst=analyst, seed=0)
    session.train(4, max_steps=100)

    text = session.analyze()

    history, params = analyst.calls[0]
    assert len(history) == 4
    assert params.epsilon == session.agent.epsilon
    assert text.startswith("4 episodes")


def test_analyze_without_analyst_returns_fallback(tiny_grid):
    session = TrainingSession(tiny_grid, seed=0)
    assert session.analyze() == FALLBACK_ANALYSIS
