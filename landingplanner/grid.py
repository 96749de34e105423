"""Square height grid centred on the vehicle, with per-cell statistics."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

import numpy as np


class Grid:
    """Per-cell mean height, variance, point counter, semantics and landability."""

    def __init__(self, grid_size: float = 10.0, cell_size: float = 1.0) -> None:
        self.grid_size = 0.0
        self.cell_size = 1.0
        self.center = np.zeros(2)
        self.resize(grid_size, cell_size)

    @property
    def row_col_size(self) -> int:
        return self.mean.shape[0]

    def resize(self, grid_size, cell_size):
        """Change the grid dimensions; all cell data is cleared."""
        if cell_size <= 0:
            raise ValueError("cell size must be positive")
        self.grid_size = float(grid_size)
        self.cell_size = float(cell_size)
        n = max(int(round(self.grid_size / self.cell_size)), 0)
        self.mean = np.zeros((n, n))
        self.variance = np.zeros((n, n))
        self.counter = np.zeros((n, n), dtype=int)
        self.semantics = np.zeros((n, n), dtype=int)
        self.land = np.zeros((n, n), dtype=int)

    def reset(self):
        """Clear all cell data, keeping the dimensions."""
        for array in (self.mean, self.variance, self.counter, self.semantics, self.land):
            array.fill(0)

    def set_filter_limits(self, position):
        """Centre the grid on the xy part of ``position``."""
        self.center = np.asarray(position, dtype=float)[:2].copy()

    def grid_limits(self):
        """Return the (min, max) xy corners of the grid."""
        half = self.grid_size / 2.0
        return self.center - half, self.center + half

    def combine(self, other, alpha):
        """Low-pass filter mean and variance with ``other``: ``alpha`` weighs this grid."""
        if other.mean.shape != self.mean.shape:
            raise ValueError("cannot combine grids of different sizes")
        self.mean = alpha * self.mean + (1.0 - alpha) * other.mean
        self.variance = alpha * self.variance + (1.0 - alpha) * other.variance

    def copy(self):
        return copy.deepcopy(self)


@dataclass
class GridMessage:
    """Serialised grid as exchanged between nodes."""

    seq: int = 0
    grid_size: float = 0.0
    cell_size: float = 1.0
    mean: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    std_dev: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    counter: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=int))
    land: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), dtype=int))
    curr_pos_index: tuple = (0.0, 0.0)