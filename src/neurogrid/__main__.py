"""
Headless command line driver: train an agent and report how it did.

    python -m neurogrid --episodes 500 --seed 0 --plot
    python -m neurogrid --describe "a maze with a treasure room ringed by fire" --analyze
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .agent import HyperParameters
from .gridworld import Grid
from .services import GeminiAnalyst, GeminiMapSource, GeminiSettings
from .session import LogConfig, TrainingSession
from .utils import greedy_rollout, plot_learning_curve, plot_value_and_policy


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neurogrid",
        description="Tabular Q-learning in a configurable grid world",
    )
    parser.add_argument("--episodes", "-n", type=int, default=500,
                        help="Number of training episodes")
    parser.add_argument("--max-steps", type=int, default=1000,
                        help="Maximum number of steps per episode")
    parser.add_argument("--alpha", type=float, default=0.1, help="Learning rate")
    parser.add_argument("--gamma", type=float, default=0.9, help="Discount factor")
    parser.add_argument("--epsilon", type=float, default=1.0, help="Initial exploration rate")
    parser.add_argument("--epsilon-decay", type=float, default=0.995,
                        help="Per-episode multiplicative epsilon decay")
    parser.add_argument("--min-epsilon", type=float, default=0.01,
                        help="Floor for epsilon decay")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--map", type=Path, default=None,
                        help="Layout file with one row of E/W/S/G/H codes per line")
    parser.add_argument("--describe", type=str, default=None,
                        help="Generate the map from this description (needs GEMINI_API_KEY)")
    parser.add_argument("--analyze", action="store_true",
                        help="Ask for commentary on the training run")
    parser.add_argument("--plot", action="store_true",
                        help="Show learning curve and value/policy plots")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def load_layout(path: Path) -> Grid:
    rows = [line.strip() for line in path.read_text().splitlines() if line.strip()]
    return Grid.from_rows(rows)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    params = HyperParameters(
        alpha=args.alpha,
        gamma=args.gamma,
        epsilon=args.epsilon,
        epsilon_decay=args.epsilon_decay,
        min_epsilon=args.min_epsilon,
    )
    grid = None
    if args.map is not None:
        try:
            grid = load_layout(args.map)
        except (OSError, ValueError) as exc:
            print(f"Cannot load map {args.map}: {exc}", file=sys.stderr)
            return 2

    settings = GeminiSettings.from_env()
    session = TrainingSession(
        grid=grid,
        params=params,
        map_source=GeminiMapSource(settings),
        analyst=GeminiAnalyst(settings),
        seed=args.seed,
    )

    if args.describe and not session.generate_map(args.describe):
        print("Map generation failed; using the current map.", file=sys.stderr)

    print(session.grid)
    print()

    session.train(args.episodes, max_steps=args.max_steps, logcfg=LogConfig())
    _ret, path, won = greedy_rollout(session.agent, max_steps=args.max_steps)

    print(f"Episodes:        {session.episode_count}")
    print(f"Win rate (50):   {session.history.win_rate(50):.2f}")
    print(f"Final epsilon:   {session.agent.epsilon:.3f}")
    if won:
        print(f"Greedy path:     {len(path) - 1} steps to the goal")
    else:
        print("Greedy path:     does not reach a goal")

    if args.analyze:
        print()
        print(session.analyze())

    if args.plot:
        plot_learning_curve(session.history)
        plot_value_and_policy(session.agent)
        session.grid.render(agent=session.agent.position, path=path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
