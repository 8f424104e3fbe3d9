"""
Grid layout for the NeuroGrid sandbox.

- Static cell layout (empty, walls, start, goal, hazards)
- One-character text codes for loading / dumping layouts
- Coordinates are (x, y) with (0, 0) at the top-left cell; y grows downwards.

This file exposes:
    - CellType: the five cell kinds
    - Action: the four movement directions
    - Grid: the immutable layout
    - default_grid: the 10x10 starter map
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.colors import ListedColormap, BoundaryNorm


class CellType(str, Enum):
    EMPTY = "EMPTY"
    WALL = "WALL"
    START = "START"
    GOAL = "GOAL"
    HAZARD = "HAZARD"


class Action(IntEnum):
    UP = 0
    RIGHT = 1
    DOWN = 2
    LEFT = 3


# Movement deltas as (dx, dy) for 0=Up, 1=Right, 2=Down, 3=Left
MOVES: Dict[Action, Tuple[int, int]] = {
    Action.UP: (0, -1),
    Action.RIGHT: (1, 0),
    Action.DOWN: (0, 1),
    Action.LEFT: (-1, 0),
}

CELL_CODES: Dict[str, CellType] = {
    "E": CellType.EMPTY,
    "W": CellType.WALL,
    "S": CellType.START,
    "G": CellType.GOAL,
    "H": CellType.HAZARD,
}
_CODE_FOR: Dict[CellType, str] = {cell: code for code, cell in CELL_CODES.items()}


@dataclass(frozen=True)
class Grid:
    """
    Grid
    ----
    Immutable rectangular layout of cells.

    Parameters
    ----------
    width : int
        Number of columns.
    height : int
        Number of rows.
    cells : tuple[tuple[CellType, ...], ...]
        Row-major layout, `cells[y][x]`.

    Raises
    ------
    ValueError
        If the size is not positive or the rows do not match it.
    """
    width: int
    height: int
    cells: Tuple[Tuple[CellType, ...], ...]

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Grid size must be positive, got {self.width}x{self.height}")
        if len(self.cells) != self.height:
            raise ValueError(f"Expected {self.height} rows, got {len(self.cells)}")
        for y, row in enumerate(self.cells):
            if len(row) != self.width:
                raise ValueError(f"Row {y} has {len(row)} cells, expected {self.width}")

    # --------------------------------------------------------
    # Constructors
    # --------------------------------------------------------

    @classmethod
    def from_cells(cls, rows: Sequence[Sequence[CellType]]) -> "Grid":
        """Build a grid from nested rows of CellType."""
        cells = tuple(tuple(CellType(c) for c in row) for row in rows)
        width = len(cells[0]) if cells else 0
        return cls(width=width, height=len(cells), cells=cells)

    @classmethod
    def from_rows(cls, rows: Iterable[str]) -> "Grid":
        """
        Parse a layout written as strings of one-character codes.

        Codes are E (empty), W (wall), S (start), G (goal) and H (hazard).
        Any other character is read as an empty cell.

        Parameters
        ----------
        rows : Iterable[str]
            One string per row, top row first.

        Returns
        -------
        Grid
        """
        parsed = [
            [CELL_CODES.get(ch.upper(), CellType.EMPTY) for ch in row]
            for row in rows
        ]
        return cls.from_cells(parsed)

    @classmethod
    def empty(cls, width: int, height: int,
              start: Tuple[int, int] = (0, 0),
              goal: Optional[Tuple[int, int]] = None) -> "Grid":
        """
        An open grid with a start cell and, optionally, a goal cell.
        """
        rows = [[CellType.EMPTY] * width for _ in range(height)]
        sx, sy = start
        rows[sy][sx] = CellType.START
        if goal is not None:
            gx, gy = goal
            rows[gy][gx] = CellType.GOAL
        return cls.from_cells(rows)

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    def cell(self, x: int, y: int) -> CellType:
        return self.cells[y][x]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def find_start(self) -> Tuple[int, int]:
        """
        Locate the start cell.

        Returns
        -------
        tuple[int, int]
            The first START cell in row-major order, or (0, 0) when the
            layout has none.
        """
        for y, row in enumerate(self.cells):
            for x, cell in enumerate(row):
                if cell is CellType.START:
                    return (x, y)
        return (0, 0)

    def positions_of(self, kind: CellType) -> Tuple[Tuple[int, int], ...]:
        """All (x, y) coordinates holding `kind`, row-major."""
        return tuple(
            (x, y)
            for y, row in enumerate(self.cells)
            for x, cell in enumerate(row)
            if cell is kind
        )

    def is_terminal(self, x: int, y: int) -> bool:
        return self.cells[y][x] in (CellType.GOAL, CellType.HAZARD)

    def to_rows(self) -> Tuple[str, ...]:
        """Dump the layout back to one-character codes."""
        return tuple("".join(_CODE_FOR[c] for c in row) for row in self.cells)

    def __str__(self) -> str:
        return "\n".join(self.to_rows())

    # ---------------------------------------------------------------------
    # Rendering (matplotlib)
    # ---------------------------------------------------------------------

    def render(self, agent: Optional[Tuple[int, int]] = None,
               path: Optional[Iterable[Tuple[int, int]]] = None,
               title: str = "NeuroGrid") -> None:
        """
        Render the layout with matplotlib.

        Parameters
        ----------
        agent : tuple[int, int] or None
            Agent position (x, y) to mark.
        path : Iterable[tuple[int, int]] or None
            Optional sequence of (x, y) cells drawn through cell centers.
        title : str
            Figure title.
        """
        codes = {
            CellType.EMPTY: 0, CellType.WALL: 1, CellType.HAZARD: 2,
            CellType.GOAL: 3, CellType.START: 4,
        }
        layout = np.array([[codes[c] for c in row] for row in self.cells])

        colors = [
            '#0f172a',  # 0 empty
            '#475569',  # 1 walls
            '#ef9a9a',  # 2 hazards
            '#66bb6a',  # 3 goal
            '#4fc3f7',  # 4 start
        ]
        cmap = ListedColormap(colors)
        norm = BoundaryNorm([0, 1, 2, 3, 4, 5], cmap.N)

        fig, ax = plt.subplots(figsize=(6.5, 6.5))
        ax.imshow(layout, cmap=cmap, norm=norm, origin='upper',
                  extent=[0, self.width, self.height, 0], interpolation="none")

        ax.set_xticks(np.arange(0, self.width + 1, 1))
        ax.set_yticks(np.arange(0, self.height + 1, 1))
        ax.grid(True, color='k', linewidth=0.4, alpha=0.3)
        ax.tick_params(labelbottom=False, labelleft=False, length=0)
        ax.set_aspect('equal')

        if path is not None:
            path = list(path)
            if len(path) > 1:
                xs, ys = zip(*path)
                ax.plot(np.asarray(xs, dtype=float) + 0.5,
                        np.asarray(ys, dtype=float) + 0.5,
                        linewidth=3.0, color='#22d3ee', label='Greedy path', zorder=4)

        if agent is not None:
            px, py = agent
            ax.scatter(px + 0.5, py + 0.5, s=220, marker='o',
                       facecolors='#06b6d4', edgecolors='black', label='Agent', zorder=6)

        ax.set_title(title, fontsize=16, pad=10)
        if ax.get_legend_handles_labels()[0]:
            ax.legend(loc='upper left', bbox_to_anchor=(1.02, 1), frameon=True)
        plt.tight_layout()
        plt.show()


def default_grid(rng: Optional[np.random.Generator] = None,
                 size: int = 10,
                 hazard_chance: float = 0.1) -> Grid:
    """
    The 10x10 starter map.

    Start at the top-left, goal at the bottom-right, a fixed hazard at (4, 4)
    and a wall at (5, 5), plus hazards scattered with probability
    `hazard_chance` over the remaining cells.

    Parameters
    ----------
    rng : np.random.Generator or None
        Source for the scattered hazards; a fresh unseeded generator if None.
    size : int
        Side length (the fixed cells assume at least 6).
    hazard_chance : float
        Probability of a random hazard on each free cell.
    """
    rng = rng if rng is not None else np.random.default_rng()
    last = size - 1
    rows = []
    for y in range(size):
        row = []
        for x in range(size):
            if (x, y) == (0, 0):
                row.append(CellType.START)
            elif (x, y) == (last, last):
                row.append(CellType.GOAL)
            elif (x, y) == (4, 4):
                row.append(CellType.HAZARD)
            elif (x, y) == (5, 5):
                row.append(CellType.WALL)
            elif rng.random() < hazard_chance:
                row.append(CellType.HAZARD)
            else:
                row.append(CellType.EMPTY)
        rows.append(row)
    return Grid.from_cells(rows)
