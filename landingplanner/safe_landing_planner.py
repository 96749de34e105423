"""Decides, cell by cell, where the ground below the vehicle is safe to land on."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from landingplanner.grid import Grid, GridMessage


@dataclass
class PlannerConfig:
    """Tunable parameters of the planner."""

    n_points_threshold: int = 25
    std_dev_threshold: float = 0.1
    smoothing_size: int = 1
    mean_diff_thr: float = 0.15
    max_n_mean_diff_cells: int = 1
    grid_size: float = 10.0
    cell_size: float = 0.5
    alpha: float = 0.2
    timeout_critical: float = 0.5
    timeout_termination: float = 1.0
    min_n_land_cells: int = 6
    use_semantics: bool = False
    terrain_class: int = 0


class CloudPoint(NamedTuple):
    x: float
    y: float
    z: float
    intensity: float = 0.0


def compute_online_mean_variance(prev_mean, prev_variance, new_value, seq):
    """Update a running (mean, variance) pair with the ``seq``-th value (Welford)."""
    mean = (prev_mean * (seq - 1) + new_value) / seq
    delta = new_value - prev_mean
    delta2 = new_value - mean
    prev_m2 = prev_variance * (seq - 1) if seq - 1 >= 0 else 0.0
    m2 = prev_m2 + delta * delta2
    variance = m2 / seq if seq > 0 else math.nan
    return mean, variance


class SafeLandingPlanner:
    """Bins a point cloud into a grid and marks landable cells."""

    def __init__(self, config: PlannerConfig | None = None, play_rosbag: bool = False) -> None:
        self.config = config or PlannerConfig()
        self.play_rosbag = play_rosbag
        self.grid = Grid(self.config.grid_size, self.config.cell_size)
        self.previous_grid = Grid(self.config.grid_size, self.config.cell_size)
        self.n_lines_padding = self.config.smoothing_size
        self.size_update = True
        self.position = np.zeros(3)
        self.cloud: list[CloudPoint] = []
        self.raw_grid = GridMessage()
        self.visualization_cloud: list[tuple[float, float, float, float]] = []
        self.grid_seq = 0
        self.pos_index = (0, 0)

    def run(self):
        """One planning cycle."""
        if self.size_update:
            self.grid.resize(self.config.grid_size, self.config.cell_size)
            self.previous_grid.resize(self.config.grid_size, self.config.cell_size)
            self.n_lines_padding = self.config.smoothing_size
            self.size_update = False
        if self.play_rosbag:
            self.process_raw_grid()
        else:
            self.process_pointcloud()
        self.grid.combine(self.previous_grid, self.config.alpha)
        self.evaluate_landing()

    def process_pointcloud(self):
        self.previous_grid, self.grid = self.grid, self.previous_grid
        self.grid.set_filter_limits(self.position)
        self.grid_seq += 1
        self.grid.reset()
        self.visualization_cloud = []
        for point in self.cloud:
            if any(math.isnan(v) for v in (point.x, point.y, point.z)):
                continue
            if not self.is_inside_grid(point.x, point.y):
                continue
            i, j = self.compute_grid_indexes(point.x, point.y)
            self.grid.counter[i, j] += 1
            mean, variance = compute_online_mean_variance(
                self.grid.mean[i, j], self.grid.variance[i, j], point.z, float(self.grid.counter[i, j])
            )
            self.grid.mean[i, j] = mean
            self.grid.semantics[i, j] = int(point.intensity)
            self.grid.variance[i, j] = variance
            self.visualization_cloud.append((point.x, point.y, point.z, variance))

    def process_raw_grid(self):
        msg = self.raw_grid
        self.grid_seq = msg.seq
        self.previous_grid, self.grid = self.grid, self.previous_grid
        self.grid.reset()
        self.grid.set_filter_limits(self.position)
        if self.grid.grid_size != msg.grid_size or self.grid.cell_size != msg.cell_size:
            self.grid.resize(msg.grid_size, msg.cell_size)
        rows, cols = np.asarray(msg.mean).shape
        self.grid.mean[:rows, :cols] = msg.mean
        self.grid.variance[:rows, :cols] = np.asarray(msg.std_dev, dtype=float) ** 2
        self.grid.counter[:rows, :cols] = msg.counter

    def evaluate_landing(self):
        """Mark each cell as landable or not and apply neighbourhood smoothing."""
        cfg = self.config
        grid = self.grid
        with np.errstate(invalid="ignore"):
            std_dev = np.sqrt(grid.variance)
            ok = (grid.counter >= cfg.n_points_threshold) & ~(std_dev > cfg.std_dev_threshold)
        if cfg.use_semantics:
            ok &= grid.semantics == cfg.terrain_class
        grid.land = ok.astype(int)

        pad = self.n_lines_padding
        n = grid.row_col_size
        if pad > 0 and n > 0:
            land_padded = np.pad(grid.land, pad)
            mean_padded = np.pad(grid.mean, pad)
            center = mean_padded[pad : pad + n, pad : pad + n]
            land_acc = np.zeros((n, n), dtype=int)
            mean_acc = np.zeros((n, n), dtype=int)
            for k in range(-pad, pad + 1):
                for t in range(-pad, pad + 1):
                    rows = slice(pad + k, pad + k + n)
                    cols = slice(pad + t, pad + t + n)
                    land_acc += land_padded[rows, cols]
                    with np.errstate(invalid="ignore"):
                        mean_acc += np.abs(center - mean_padded[rows, cols]) > cfg.mean_diff_thr
            grid.land = ((land_acc > cfg.min_n_land_cells) & (mean_acc <= cfg.max_n_mean_diff_cells)).astype(int)
        self.pos_index = self.compute_grid_indexes(self.position[0], self.position[1])

    def set_pose(self, position, orientation):
        self.position = np.asarray(position, dtype=float)

    def is_inside_grid(self, x, y):
        lo, hi = self.grid.grid_limits()
        return lo[0] < x < hi[0] and lo[1] < y < hi[1]

    def compute_grid_indexes(self, x, y):
        lo, _ = self.grid.grid_limits()
        cell = self.grid.cell_size
        return int(math.floor((x - lo[0]) / cell)), int(math.floor((y - lo[1]) / cell))

    def set_params(self, config):
        """Apply a new configuration; grid geometry changes take effect on the next run."""
        self.config = config
        self.size_update = (
            self.grid.grid_size != config.grid_size
            or self.grid.cell_size != config.cell_size
            or self.n_lines_padding != config.smoothing_size
        )