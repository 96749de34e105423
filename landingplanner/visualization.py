"""Marker generation for inspecting the landing grid."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

FRAME_ID = "local_origin"

TOPIC_POINTCLOUD = "/grid_pointcloud"
TOPIC_PATH = "/path_actual"
TOPIC_GRID = "/grid"
TOPIC_MEAN_STD_DEV = "/grid_mean_std_dev"
TOPIC_COUNTER = "/grid_counter"

COUNTER_MAX_VALUE = 400.0
HUE_RANGE_MAX = 360.0
HUE_RANGE_MIN = 0.0


@dataclass
class Marker:
    """A visualisation primitive placed in the local frame."""

    id: int = 0
    type: str = "CUBE"
    frame_id: str = FRAME_ID
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (0.0, 0.0, 0.0)
    color: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    points: list = field(default_factory=list)


def _ieee_div(numerator: float, denominator: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.divide(np.float64(numerator), np.float64(denominator)))


def _sqrt(value: float) -> float:
    with np.errstate(invalid="ignore"):
        return float(np.sqrt(np.float64(value)))


def hsv_to_rgb(h, s, v):
    """Convert hue (degrees), saturation and value to an (r, g, b) tuple."""
    chroma = v * s
    h_prime = math.fmod(h / 60.0, 6) if math.isfinite(h) else math.nan
    x = chroma * (1 - abs(math.fmod(h_prime, 2) - 1)) if math.isfinite(h_prime) else math.nan
    m = v - chroma

    if 0 <= h_prime < 1:
        rgb = (chroma, x, 0.0)
    elif 1 <= h_prime < 2:
        rgb = (x, chroma, 0.0)
    elif 2 <= h_prime < 3:
        rgb = (0.0, chroma, x)
    elif 3 <= h_prime < 4:
        rgb = (0.0, x, chroma)
    elif 4 <= h_prime < 5:
        rgb = (x, 0.0, chroma)
    elif 5 <= h_prime < 6:
        rgb = (chroma, 0.0, x)
    else:
        rgb = (0.0, 0.0, 0.0)
    return tuple(c + m for c in rgb)


def _cell_center(grid, i: int, j: int, grid_min) -> tuple[float, float]:
    cell = grid.cell_size
    return (i * cell + float(grid_min[0]) + cell / 2.0, j * cell + float(grid_min[1]) + cell / 2.0)


def _cell_marker(grid, marker_id: int, i: int, j: int, grid_min, z: float, color, scale_z: float = 0.1) -> Marker:
    x, y = _cell_center(grid, i, j, grid_min)
    return Marker(
        id=marker_id,
        type="CUBE",
        position=(x, y, z),
        scale=(grid.cell_size, grid.cell_size, scale_z),
        color=(*color, 0.5),
    )


class SafeLandingPlannerVisualization:
    """Builds marker arrays for the grid state and optionally publishes them."""

    def __init__(self, publish: Callable[[str, object], None] | None = None) -> None:
        self.publish = publish or (lambda topic, message: None)
        self.path_length = 0

    def mean_std_dev_markers(self, grid, std_dev_threshold):
        """Cells at mean height, coloured by standard deviation; black above the threshold."""
        grid_min, _ = grid.grid_limits()
        markers = []
        n = grid.row_col_size
        marker_id = 0
        for i in range(n):
            for j in range(n):
                std_dev = _sqrt(grid.variance[i, j])
                h = (
                    _ieee_div((HUE_RANGE_MAX - HUE_RANGE_MIN) * (std_dev - 0.0), std_dev_threshold - 0.0)
                    + HUE_RANGE_MIN
                )
                color = hsv_to_rgb(h, 1.0, 1.0)
                if std_dev > std_dev_threshold:
                    color = (0.0, 0.0, 0.0)
                markers.append(_cell_marker(grid, marker_id, i, j, grid_min, float(grid.mean[i, j]), color))
                marker_id += 1
        return markers

    def counter_markers(self, grid, n_points_threshold):
        """Flat cells coloured by the number of points that fell into them."""
        grid_min, _ = grid.grid_limits()
        markers = []
        n = grid.row_col_size
        marker_id = 0
        for i in range(n):
            for j in range(n):
                h = (
                    _ieee_div(
                        (HUE_RANGE_MAX - HUE_RANGE_MIN) * (float(grid.counter[i, j]) - n_points_threshold),
                        COUNTER_MAX_VALUE - n_points_threshold,
                    )
                    + HUE_RANGE_MIN
                )
                color = hsv_to_rgb(h, 1.0, 1.0)
                markers.append(_cell_marker(grid, marker_id, i, j, grid_min, 0.0, color))
                marker_id += 1
        return markers

    def grid_markers(self, grid, smoothing_size):
        """Flat cells, green where landing is possible and red elsewhere; the centre patch is tall."""
        grid_min, _ = grid.grid_limits()
        offset = grid.land.shape[0] // 2
        markers = []
        n = grid.row_col_size
        marker_id = 0
        for i in range(n):
            for j in range(n):
                color = (0.0, 1.0, 0.0) if grid.land[i, j] else (1.0, 0.0, 0.0)
                in_center = (
                    offset - smoothing_size <= i < offset + smoothing_size
                    and offset - smoothing_size <= j < offset + smoothing_size
                )
                scale_z = 0.8 if in_center else 0.1
                markers.append(_cell_marker(grid, marker_id, i, j, grid_min, 0.0, color, scale_z))
                marker_id += 1
        return markers

    def path_marker(self, pos, last_pos):
        """A line segment from the previous to the current position; each call gets a new id."""
        marker = Marker(
            id=self.path_length,
            type="LINE_STRIP",
            scale=(0.03, 0.0, 0.0),
            color=(0.0, 1.0, 0.0, 1.0),
            points=[tuple(float(c) for c in last_pos), tuple(float(c) for c in pos)],
        )
        self.path_length += 1
        return marker

    def visualize(self, planner, pos, last_pos, config):
        """Publish all visualisations of ``planner`` and return them keyed by topic."""
        grid = planner.grid
        outputs = {
            TOPIC_POINTCLOUD: list(planner.visualization_cloud),
            TOPIC_GRID: self.grid_markers(grid, planner.config.smoothing_size),
            TOPIC_MEAN_STD_DEV: self.mean_std_dev_markers(grid, float(config.std_dev_threshold)),
            TOPIC_COUNTER: self.counter_markers(grid, float(config.n_points_threshold)),
            TOPIC_PATH: self.path_marker(pos, last_pos),
        }
        for topic, message in outputs.items():
            self.publish(topic, message)
        return outputs