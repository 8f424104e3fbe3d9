"""
services.py - Generative-text collaborators.

The engine never talks to a provider. It is handed a grid, and the session
asks two narrow collaborators for help:

- MapSource.generate_grid(description) -> Grid | None
- PerformanceAnalyst.summarize(history, params) -> str

Gemini-backed implementations live here, built on the `google-genai` SDK.
Both swallow provider failures at their boundary: a failed map is `None`,
a failed analysis is a fixed fallback sentence.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from google import genai
from google.genai import types

from .agent import HyperParameters
from .gridworld import CellType, Grid
from .utils import EpisodeLog, EpisodeRecord

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
FALLBACK_ANALYSIS = "AI core link interrupted. Unable to analyze data."
EMPTY_ANALYSIS = "Analysis unavailable."


class MapFormatError(ValueError):
    """A generated layout payload could not be turned into a usable grid."""


class MapSource(Protocol):
    def generate_grid(self, description: str) -> Optional[Grid]:
        ...


class PerformanceAnalyst(Protocol):
    def summarize(self, history: Iterable[EpisodeRecord], params: HyperParameters) -> str:
        ...


@dataclass(frozen=True)
class GeminiSettings:
    """
    Configuration for the Gemini collaborators.

    Parameters
    ----------
    api_key : str or None
        Credential; without one every call fails fast.
    model : str
        Model name.
    grid_size : int
        Side length required of generated maps.
    history_window : int
        Number of most recent episodes sent for analysis.
    language : str
        Language the analysis is written in.
    """
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    grid_size: int = 10
    history_window: int = 20
    language: str = "English"

    @classmethod
    def from_env(cls) -> "GeminiSettings":
        """Read GEMINI_API_KEY (or API_KEY) and NEUROGRID_MODEL."""
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            model=os.environ.get("NEUROGRID_MODEL", DEFAULT_MODEL),
        )


def parse_layout(payload: str, size: int = 10) -> Grid:
    """
    Turn a JSON layout payload into a Grid.

    The payload is ``{"width": ..., "height": ..., "layout": ["SEEW...", ...]}``
    with one-character cell codes; unknown characters become empty cells.

    Parameters
    ----------
    payload : str
        Raw JSON text.
    size : int
        Required width and height.

    Returns
    -------
    Grid

    Raises
    ------
    MapFormatError
        Malformed JSON, wrong size, not exactly one start, or no goal.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MapFormatError(f"Layout is not valid JSON: {exc}") from exc

    layout = data.get("layout") if isinstance(data, dict) else None
    if not isinstance(layout, list) or not all(isinstance(row, str) for row in layout):
        raise MapFormatError("Layout must be a list of strings")
    if len(layout) != size or any(len(row) != size for row in layout):
        raise MapFormatError(f"Layout must be {size}x{size}")

    grid = Grid.from_rows(layout)
    starts = grid.positions_of(CellType.START)
    if len(starts) != 1:
        raise MapFormatError(f"Layout must have exactly one start, found {len(starts)}")
    if not grid.positions_of(CellType.GOAL):
        raise MapFormatError("Layout has no goal")
    return grid


def _make_client(settings: GeminiSettings) -> genai.Client:
    if not settings.api_key:
        raise RuntimeError("No Gemini API key configured (set GEMINI_API_KEY)")
    return genai.Client(api_key=settings.api_key)


class GeminiMapSource:
    """
    Map source that asks Gemini for a layout matching a free-text description.

    Parameters
    ----------
    settings : GeminiSettings or None
        Defaults to `GeminiSettings.from_env()`.
    client : object or None
        A `genai.Client` (or anything with ``models.generate_content``);
        created from the settings on first use when None.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None, client: Any = None) -> None:
        self.settings = settings if settings is not None else GeminiSettings.from_env()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = _make_client(self.settings)
        return self._client

    def build_prompt(self, description: str) -> str:
        n = self.settings.grid_size
        return (
            f"Generate a 2D grid layout for a reinforcement learning game.\n"
            f"The grid should be {n}x{n}.\n"
            "Characters:\n"
            "- 'E': Empty Space\n"
            "- 'W': Wall (Obstacle)\n"
            "- 'S': Start Position (Must have exactly one)\n"
            "- 'G': Goal/Treasure (Must have exactly one)\n"
            "- 'H': Hazard/Fire (Negative reward)\n\n"
            f"User Description: {description}\n\n"
            "Ensure there is a valid path from Start to Goal.\n"
            "Return ONLY the JSON object."
        )

    def generate_grid(self, description: str) -> Optional[Grid]:
        """
        Ask for a layout; None on any failure.
        """
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "width": types.Schema(type=types.Type.INTEGER),
                    "height": types.Schema(type=types.Type.INTEGER),
                    "layout": types.Schema(
                        type=types.Type.ARRAY,
                        items=types.Schema(type=types.Type.STRING),
                    ),
                },
            ),
        )
        try:
            response = self.client.models.generate_content(
                model=self.settings.model,
                contents=self.build_prompt(description),
                config=config,
            )
        except Exception:
            logger.exception("Failed to generate map")
            return None

        if not response.text:
            logger.warning("Map generation returned an empty response")
            return None
        try:
            return parse_layout(response.text, size=self.settings.grid_size)
        except MapFormatError as exc:
            logger.warning("Rejected generated map: %s", exc)
            return None


class GeminiAnalyst:
    """
    Advisory commentary on recent training performance.

    Parameters
    ----------
    settings : GeminiSettings or None
        Defaults to `GeminiSettings.from_env()`.
    client : object or None
        As for `GeminiMapSource`.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None, client: Any = None) -> None:
        self.settings = settings if settings is not None else GeminiSettings.from_env()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = _make_client(self.settings)
        return self._client

    def build_prompt(self, history: Iterable[EpisodeRecord], params: HyperParameters) -> str:
        n = self.settings.history_window
        log = history if isinstance(history, EpisodeLog) else EpisodeLog(list(history))
        recent = [
            {"episode": r.episode, "totalReward": r.reward, "steps": r.steps}
            for r in log.recent(n)
        ]
        return (
            "Analyze the performance of a Q-Learning agent.\n\n"
            "Current Parameters:\n"
            f"Alpha (Learning Rate): {params.alpha}\n"
            f"Gamma (Discount): {params.gamma}\n"
            f"Epsilon (Exploration): {params.epsilon}\n\n"
            f"Recent Performance (Last {n} episodes):\n"
            f"{json.dumps(recent)}\n\n"
            "Provide a brief, encouraging, and tactical analysis (max 100 words) "
            f"in {self.settings.language}.\n"
            "Is the agent learning? Is it stuck? Should the user adjust parameters "
            "(e.g., lower epsilon to exploit more, or higher gamma to care more "
            "about future rewards)?\n"
            "Talk like a sci-fi AI researcher."
        )

    def summarize(self, history: Iterable[EpisodeRecord], params: HyperParameters) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.settings.model,
                contents=self.build_prompt(history, params),
            )
        except Exception:
            logger.exception("Analysis failed")
            return FALLBACK_ANALYSIS
        return response.text or EMPTY_ANALYSIS
