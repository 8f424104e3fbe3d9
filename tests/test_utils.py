"""
tests/test_utils.py

Unit tests for utility functions in `neurogrid.utils`.

These utilities support:
- RNG seeding
- action-selection helpers (ε-greedy, tie-breaking)
- episode history records and windows
- simple smoothing for returns/steps
- value / policy grids and greedy evaluation
- matplotlib plots of the learning curve and the policy
"""

import numpy as np
import pytest

from neurogrid.agent import HyperParameters, QLearningAgent
from neurogrid.gridworld import Action, Grid
from neurogrid.utils import (
    set_seed, argmax_random_tie_break, epsilon_greedy_action,
    EpisodeRecord, EpisodeLog, rolling, value_grid, greedy_policy_grid,
    greedy_rollout, evaluate_greedy, plot_learning_curve, plot_value_and_policy,
)


# =====================================================================
# Fixtures
# =====================================================================

@pytest.fixture
def trained_agent():
    """
    Agent trained on a corridor with a wall pocket and a hazard.

        S . . .
        . W W .
        . H . G
    """
    grid = Grid.from_rows(["SEEE", "EWWE", "EHEG"])
    agent = QLearningAgent(grid, HyperParameters(alpha=0.5, gamma=0.9, epsilon=0.3), seed=3)
    for _ in range(300):
        for _ in range(200):
            _a, result = agent.step()
            if result.done:
                break
        agent.decay_exploration()
        agent.reset_position()
    return agent


def make_log(n, won_every=2):
    log = EpisodeLog()
    for i in range(n):
        log.append(EpisodeRecord(episode=i + 1, reward=float(i), steps=10 + i,
                                 won=(i % won_every == 0), epsilon=0.5))
    return log


# =====================================================================
# RNG SEEDING
# =====================================================================

def test_set_seed_reproducible():
    g1 = set_seed(123)
    g2 = set_seed(123)
    assert g1.integers(1000) == g2.integers(1000)


def test_set_seed_different():
    g1 = set_seed(1)
    g2 = set_seed(2)
    assert g1.integers(1000) != g2.integers(1000)


# =====================================================================
# ACTION SELECTION
# =====================================================================

def test_argmax_random_tie_break_two_ties():
    """
    argmax_random_tie_break should choose uniformly among tied maxima.
    """
    rng = set_seed(0)
    x = np.array([1.0, 3.0, 3.0, 0.0])

    seen = {argmax_random_tie_break(x, rng) for _ in range(100)}
    assert seen == {1, 2}


def test_argmax_random_tie_break_all_zero():
    rng = set_seed(0)
    seen = {argmax_random_tie_break(np.zeros(4), rng) for _ in range(200)}
    assert seen == {0, 1, 2, 3}


def test_argmax_random_tie_break_ignores_nan():
    rng = set_seed(0)
    x = np.array([np.nan, -np.inf, 2.0, np.nan])
    assert all(argmax_random_tie_break(x, rng) == 2 for _ in range(20))


def test_argmax_random_tie_break_all_nan_is_a_full_tie():
    rng = set_seed(0)
    x = np.full(4, np.nan)
    seen = {argmax_random_tie_break(x, rng) for _ in range(200)}
    assert seen == {0, 1, 2, 3}


def test_epsilon_greedy_action_zero_epsilon_is_greedy():
    rng = set_seed(0)
    q = np.array([0.0, 1.0, -1.0, 0.5])
    assert all(epsilon_greedy_action(q, 0.0, rng) == 1 for _ in range(20))


def test_epsilon_greedy_action_full_exploration_covers_all():
    rng = set_seed(0)
    q = np.array([0.0, 1.0, -1.0, 0.5])
    samples = {epsilon_greedy_action(q, 1.0, rng) for _ in range(200)}
    assert samples == {0, 1, 2, 3}


# =====================================================================
# EPISODE HISTORY
# =====================================================================

def test_episode_log_append_and_views():
    log = make_log(60)

    assert len(log) == 60
    assert [r.episode for r in log.window(50)] == list(range(11, 61))
    assert [r.episode for r in log.recent(20)] == list(range(41, 61))


def test_episode_log_window_larger_than_log():
    log = make_log(3)
    assert len(log.window(50)) == 3
    assert log.window(0) == []


def test_episode_log_win_rate():
    assert make_log(0).win_rate() == 0.0
    assert make_log(10, won_every=2).win_rate(10) == pytest.approx(0.5)
    assert make_log(4, won_every=1).win_rate() == 1.0


def test_episode_log_clear():
    log = make_log(5)
    log.clear()
    assert len(log) == 0


# =====================================================================
# SMOOTHING
# =====================================================================

def test_rolling():
    x = [1, 2, 3, 4]
    r = rolling(x, 2)
    assert len(r) == len(x)
    assert pytest.approx(r[-1], rel=1e-5) == 3.5  # (3+4)/2


def test_rolling_empty():
    assert rolling([], 5).size == 0


# =====================================================================
# VALUE / POLICY HELPERS
# =====================================================================

def test_value_grid_dimensions_and_values():
    agent = QLearningAgent(Grid.from_rows(["SEG", "EEE"]),
                           HyperParameters(alpha=1.0, gamma=0.0), seed=0)
    agent.apply_action(Action.RIGHT)

    V = value_grid(agent)
    assert V.shape == (2, 3)
    assert V[0, 0] == 0.0          # three untouched actions at 0
    assert np.all(V[1] == 0.0)


def test_greedy_policy_grid_marks_untouched_and_walls():
    agent = QLearningAgent(Grid.from_rows(["SWG"]),
                           HyperParameters(alpha=1.0, gamma=0.0), seed=0)
    agent.apply_action(Action.UP)
    agent.apply_action(Action.LEFT)
    agent.apply_action(Action.DOWN)

    pi = greedy_policy_grid(agent)
    assert pi.shape == (1, 3)
    assert pi[0, 0] == int(Action.RIGHT)
    assert pi[0, 1] == -1   # wall
    assert pi[0, 2] == -1   # never updated


def test_greedy_rollout_follows_learned_path(trained_agent):
    G, path, won = greedy_rollout(trained_agent, max_steps=50)

    assert won is True
    assert path[0] == (0, 0)
    assert path[-1] == (3, 2)
    assert len(path) - 1 == 5
    assert G == pytest.approx(4 * -1.0 + 100.0)


def test_greedy_rollout_does_not_touch_agent(trained_agent):
    trained_agent.apply_action(Action.RIGHT)
    table = trained_agent.q_table.copy()
    pos = trained_agent.position

    greedy_rollout(trained_agent)

    assert trained_agent.position == pos
    assert np.array_equal(trained_agent.q_table, table)


def test_greedy_rollout_truncates_without_goal():
    agent = QLearningAgent(Grid.from_rows(["SEE"]), seed=0)
    G, path, won = greedy_rollout(agent, max_steps=7)
    assert won is False
    assert len(path) == 8
    assert G == -7.0


def test_evaluate_greedy(trained_agent):
    mean_return, success = evaluate_greedy(trained_agent, episodes=3, max_steps=50)
    assert isinstance(mean_return, float)
    assert success == 1.0
    assert mean_return == pytest.approx(96.0)


# =====================================================================
# PLOTTING
# =====================================================================

def test_plot_learning_curve_runs():
    plot_learning_curve(make_log(80))


def test_plot_value_and_policy_runs(trained_agent):
    plot_value_and_policy(trained_agent)
