"""
Package init - expose a clean, minimal API for end users.

Usage
-----
from neurogrid import Grid, QLearningAgent, HyperParameters
from neurogrid import TrainingSession
from neurogrid import utils    # Optional: evaluation, plots, etc.
"""

from .gridworld import Action, CellType, Grid, default_grid
from .agent import HyperParameters, QLearningAgent, RewardScheme, StepResult
from .session import LogConfig, TrainingSession

# Expose utils as a module so users can do: from neurogrid import utils
from . import utils

__all__ = [
    "Action",
    "CellType",
    "Grid",
    "default_grid",
    "HyperParameters",
    "QLearningAgent",
    "RewardScheme",
    "StepResult",
    "LogConfig",
    "TrainingSession",
    "utils",
]

__version__ = "0.1.0"
