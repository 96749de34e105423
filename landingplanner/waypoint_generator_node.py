"""Connects the landing waypoint generator to vehicle state, grid and trajectory messages."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from landingplanner.grid import GridMessage
from landingplanner.visualization import FRAME_ID, Marker
from landingplanner.waypoint_generator import WaypointGenerator

logger = logging.getLogger(__name__)

TOPIC_TRAJECTORY = "/mavros/trajectory/generated"
TOPIC_LAND_HYSTERESIS = "/land_hysteresis"
TOPIC_GOAL = "/goal_position"

MAV_CMD_NAV_LAND = 21
MODE_AUTO_LAND = "AUTO.LAND"
MODE_AUTO_MISSION = "AUTO.MISSION"
TRAJECTORY_WAYPOINTS = 0
N_TRAJECTORY_POINTS = 5

# The hysteresis kernel is placed around this fixed cell of the grid.
_KERNEL_CENTER = 20


def _nan3() -> np.ndarray:
    return np.full(3, np.nan)


@dataclass
class PositionTarget:
    """One point of a trajectory: position, velocity, acceleration and heading."""

    position: np.ndarray = field(default_factory=_nan3)
    velocity: np.ndarray = field(default_factory=_nan3)
    acceleration_or_force: np.ndarray = field(default_factory=_nan3)
    yaw: float = math.nan
    yaw_rate: float = math.nan

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float)
        self.velocity = np.asarray(self.velocity, dtype=float)
        self.acceleration_or_force = np.asarray(self.acceleration_or_force, dtype=float)


@dataclass
class TrajectorySetpoint:
    """A waypoint trajectory with up to five points, of which only the valid ones are used."""

    points: list[PositionTarget] = field(
        default_factory=lambda: [PositionTarget() for _ in range(N_TRAJECTORY_POINTS)]
    )
    point_valid: tuple[bool, ...] = (False,) * N_TRAJECTORY_POINTS
    time_horizon: tuple[float, ...] = (math.nan,) * N_TRAJECTORY_POINTS
    type: int = TRAJECTORY_WAYPOINTS
    frame_id: str = FRAME_ID
    stamp: float = 0.0


def unused_position_target():
    """A trajectory point with every field unset (NaN)."""
    return PositionTarget()


def _yaw_from_quaternion(orientation) -> float:
    w, x, y, z = (float(v) for v in orientation)
    return math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))


class WaypointGeneratorNode:
    """Feeds messages into a :class:`WaypointGenerator` and publishes its setpoints."""

    def __init__(
        self,
        publish: Callable[[str, object], None] | None = None,
        generator: WaypointGenerator | None = None,
    ) -> None:
        self.publish = publish or (lambda topic, message: None)
        self.generator = generator if generator is not None else WaypointGenerator()
        self.generator.publish_trajectory_setpoints = self.publish_trajectory_setpoints
        self.goal_visualization = _nan3()
        self.grid_received = False
        self._goal_marker_id = 0

    def on_config(self, config):
        """Apply tuning parameters; a new smoothing size rebuilds the mask on the next cycle."""
        gen = self.generator
        gen.beta = float(config.beta)
        gen.can_land_thr = float(config.can_land_thr)
        gen.loiter_height = float(config.loiter_height)
        gen.smoothing_land_cell = int(config.smoothing_land_cell)
        gen.vertical_range_error = float(config.vertical_range_error)
        gen.spiral_width = float(config.spiral_width)
        if gen.mask.shape[0] != gen.smoothing_land_cell * 2 + 1:
            gen.update_smoothing_size = True

    def on_pose(self, position, orientation):
        """Update the vehicle position and heading; ``orientation`` is (w, x, y, z)."""
        self.generator.position = np.asarray(position, dtype=float)
        self.generator.yaw = _yaw_from_quaternion(orientation)
        logger.info("[WGN] Current position %s", self.generator.position)

    def on_trajectory(self, point_1, point_2, point_valid, command):
        """Take a new goal from the flight controller's desired trajectory."""
        gen = self.generator
        with np.errstate(invalid="ignore"):
            moved = float(np.linalg.norm(point_2.position - self.goal_visualization)) > 0.01
        update = moved or bool(np.isnan(np.asarray(gen.goal, dtype=float)[:2]).any())

        if update and point_valid[0]:
            gen.goal = np.array(point_1.position, dtype=float)
            gen.velocity_setpoint = np.array(point_1.velocity, dtype=float)
            gen.is_land_waypoint = command[1] == MAV_CMD_NAV_LAND
            logger.info("[WGN] Set new goal from FCU %s", gen.goal)
        if point_valid[1]:
            self.goal_visualization = np.array(point_2.position, dtype=float)
            gen.yaw_setpoint = point_2.yaw
            gen.yaw_speed_setpoint = point_2.yaw_rate

    def on_state(self, mode, armed):
        """React to the flight mode and arming state of the vehicle."""
        gen = self.generator
        if mode == MODE_AUTO_LAND:
            gen.is_land_waypoint = True
        elif mode == MODE_AUTO_MISSION:
            pass  # set from the mission item type
        else:
            gen.is_land_waypoint = False
            gen.trigger_reset = True

        if not armed:
            gen.is_land_waypoint = False
            gen.trigger_reset = True

    def on_grid(self, msg: GridMessage):
        """Load a serialised grid produced by the safe landing planner."""
        gen = self.generator
        grid = gen.grid_slp
        gen.grid_slp_seq = msg.seq
        if grid.grid_size != msg.grid_size or grid.cell_size != msg.cell_size:
            grid.resize(msg.grid_size, msg.cell_size)

        mean = np.asarray(msg.mean, dtype=float)
        land = np.asarray(msg.land)
        rows, cols = mean.shape
        grid.mean[:rows, :cols] = mean
        grid.land[:rows, :cols] = land[:rows, :cols]

        gen.pos_index = (int(msg.curr_pos_index[0]), int(msg.curr_pos_index[1]))
        grid.set_filter_limits(gen.position)
        self.grid_received = True

    def publish_trajectory_setpoints(self, pos_sp, vel_sp, yaw_sp, yaw_speed_sp):
        """Publish a single-point trajectory; it is valid when an xy position or velocity is set."""
        first = PositionTarget(
            position=np.array(pos_sp, dtype=float),
            velocity=np.array(vel_sp, dtype=float),
            yaw=yaw_sp,
            yaw_rate=yaw_speed_sp,
        )
        points = [first] + [unused_position_target() for _ in range(N_TRAJECTORY_POINTS - 1)]

        xy_pos_valid = bool(np.isfinite(first.position[:2]).all())
        xy_vel_valid = bool(np.isfinite(first.velocity[:2]).all())
        # The z component does not take part in the validity decision.
        valid = xy_pos_valid or xy_vel_valid
        setpoint = TrajectorySetpoint(
            points=points,
            point_valid=(valid,) + (False,) * (N_TRAJECTORY_POINTS - 1),
        )
        self.publish(TOPIC_TRAJECTORY, setpoint)
        return setpoint

    def landing_area_markers(self):
        """Cells of the central landing patch, green where the hysteresis allows landing."""
        gen = self.generator
        grid = gen.grid_slp
        cell_size = grid.cell_size
        grid_min, _ = grid.grid_limits()
        offset = grid.land.shape[0] // 2
        slc = gen.smoothing_land_cell

        kernel = np.zeros(gen.can_land_hysteresis_matrix.shape, dtype=int)
        start = _KERNEL_CENTER - slc
        h, w = gen.mask.shape
        if start < 0 or start + h > kernel.shape[0] or start + w > kernel.shape[1]:
            raise IndexError("landing kernel lies outside the grid")
        kernel[start : start + h, start : start + w] = gen.mask

        result = gen.can_land_hysteresis_result * kernel

        markers = []
        marker_id = 0
        for k in range(offset - slc, offset + slc + 1):
            for l in range(offset - slc, offset + slc + 1):
                color = (0.0, 1.0, 0.0, 0.5) if result[k, l] else (1.0, 0.0, 0.0, 0.5)
                markers.append(
                    Marker(
                        id=marker_id,
                        type="CUBE",
                        position=(
                            float(grid_min[0]) + cell_size * k,
                            float(grid_min[1]) + cell_size * l,
                            1.0,
                        ),
                        scale=(cell_size, cell_size, 0.1),
                        color=color,
                    )
                )
                marker_id += 1
        self.publish(TOPIC_LAND_HYSTERESIS, markers)
        return markers

    def goal_marker(self):
        """A sphere at the current goal; each call gets a new id."""
        goal = self.generator.goal
        marker = Marker(
            id=self._goal_marker_id,
            type="SPHERE",
            position=tuple(float(c) for c in goal),
            scale=(0.5, 0.5, 0.5),
            color=(1.0, 1.0, 0.0, 1.0),
        )
        self._goal_marker_id += 1
        self.publish(TOPIC_GOAL, marker)
        return marker

    def step(self):
        """Run one cycle if a new grid has arrived; returns whether it ran."""
        if not self.grid_received:
            return False
        self.generator.calculate_waypoint()
        self.landing_area_markers()
        self.goal_marker()
        self.grid_received = False
        return True