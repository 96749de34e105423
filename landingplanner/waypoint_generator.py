"""State machine that guides the vehicle to a landable patch and lands it."""

from __future__ import annotations

import logging
import math
from enum import Enum, auto
from typing import Callable

import numpy as np

from landingplanner.grid import Grid

logger = logging.getLogger(__name__)

EXPLORATION_PATTERN: tuple[tuple[int, int], ...] = (
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
    (0, -1),
    (1, -1),
)

SetpointCallback = Callable[[np.ndarray, np.ndarray, float, float], None]


class SLPState(Enum):
    GOTO = auto()
    ALTITUDE_CHANGE = auto()
    LOITER = auto()
    LAND = auto()
    EVALUATE_GRID = auto()
    GOTO_LAND = auto()


class Transition(Enum):
    REPEAT = auto()
    NEXT1 = auto()
    NEXT2 = auto()
    NEXT3 = auto()
    ERROR = auto()


_STATE_NAMES = {
    SLPState.GOTO: "GOTO",
    SLPState.ALTITUDE_CHANGE: "ALTITUDE CHANGE",
    SLPState.LOITER: "LOITER",
    SLPState.LAND: "LAND",
    SLPState.EVALUATE_GRID: "EVALUATE_GRID",
    SLPState.GOTO_LAND: "GOTO_LAND",
}

_TRANSITIONS = {
    (SLPState.GOTO, Transition.NEXT1): SLPState.ALTITUDE_CHANGE,
    (SLPState.ALTITUDE_CHANGE, Transition.NEXT1): SLPState.LOITER,
    (SLPState.LOITER, Transition.NEXT1): SLPState.EVALUATE_GRID,
    (SLPState.EVALUATE_GRID, Transition.NEXT1): SLPState.GOTO,
    (SLPState.EVALUATE_GRID, Transition.NEXT2): SLPState.GOTO_LAND,
    (SLPState.GOTO_LAND, Transition.NEXT1): SLPState.LAND,
}

_ERROR_STATE = SLPState.GOTO


def state_name(state):
    """Human readable name of a state."""
    return _STATE_NAMES.get(state, "unknown")


def next_yaw(position, goal):
    """Heading (rad) from ``position`` towards ``goal`` in the xy plane."""
    dx = float(goal[0]) - float(position[0])
    dy = float(goal[1]) - float(position[1])
    return math.atan2(dy, dx)


def _nan3() -> np.ndarray:
    return np.full(3, np.nan)


class WaypointGenerator:
    """Drives the landing sequence from the grid produced by the safe landing planner."""

    def __init__(
        self,
        publish_trajectory_setpoints: SetpointCallback | None = None,
        grid: Grid | None = None,
    ) -> None:
        self.publish_trajectory_setpoints = publish_trajectory_setpoints
        self.last_setpoint: tuple[np.ndarray, np.ndarray, float, float] | None = None
        self.grid_slp = grid if grid is not None else Grid()
        self.state = SLPState.GOTO
        self.prev_slp_state = SLPState.GOTO
        self.state_changed = False
        self.trigger_reset = False
        self.verbose = False
        self.simulation = False

        # parameters
        self.beta = 0.9
        self.can_land_thr = 0.4
        self.loiter_height = 4.0
        self.smoothing_land_cell = 2
        self.vertical_range_error = 1.0
        self.spiral_width = 2.0
        self.stride = 1
        self.land_speed = 0.7
        self.exploration_pattern = list(EXPLORATION_PATTERN)
        self.update_smoothing_size = False

        # vehicle and goal
        self.position = np.zeros(3)
        self.yaw = 0.0
        self.goal = _nan3()
        self.velocity_setpoint = _nan3()
        self.yaw_setpoint = math.nan
        self.yaw_speed_setpoint = math.nan
        self.is_land_waypoint = False
        self.grid_slp_seq = 0
        self.pos_index = (0, 0)

        # internal
        self.loiter_position = _nan3()
        self.loiter_yaw = math.nan
        self.exploration_anchor = _nan3()
        self.exploration_is_active = False
        self.n_explored_pattern = -1
        self.factor_exploration = 1.0
        self.landing_radius = 2.0
        self.decision_taken = False
        self.can_land = True
        self.start_seq_landing_decision = 0
        self.altitude_landing_area_percentile = math.nan
        self.can_land_hysteresis_matrix = np.zeros((0, 0))
        self.can_land_hysteresis_result = np.zeros((0, 0), dtype=int)
        self.mask = np.zeros((0, 0), dtype=int)
        self._initialize_mask()

    def _initialize_mask(self) -> None:
        slc = self.smoothing_land_cell
        size = 2 * slc + 1
        idx = np.arange(size) - slc
        self.mask = (np.hypot(idx[:, None], idx[None, :]) < slc + 0.5).astype(int)

    def _publish(self, pos_sp, vel_sp, yaw_sp, yaw_speed_sp) -> None:
        self.last_setpoint = (
            np.array(pos_sp, dtype=float),
            np.array(vel_sp, dtype=float),
            float(yaw_sp),
            float(yaw_speed_sp),
        )
        if self.publish_trajectory_setpoints is None:
            logger.error("publish_trajectory_setpoints not set in WaypointGenerator")
            return
        self.publish_trajectory_setpoints(pos_sp, vel_sp, yaw_sp, yaw_speed_sp)

    def calculate_waypoint(self):
        """Run one cycle of the landing state machine."""
        self.update_slp_state()
        self.iterate_once()
        if self.state != self.prev_slp_state and self.verbose:
            logger.info("[WGN] Update to %s state", state_name(self.state))

    def update_slp_state(self):
        """Refresh the mask and hysteresis buffers; reset the decision when not landing."""
        size = 2 * self.smoothing_land_cell + 1
        if self.update_smoothing_size or self.mask.shape[0] != size:
            self._initialize_mask()
            self.update_smoothing_size = False

        land = self.grid_slp.land
        if land.shape[0] != self.can_land_hysteresis_matrix.shape[0]:
            self.can_land_hysteresis_matrix = np.zeros(land.shape)
            self.can_land_hysteresis_result = np.zeros(land.shape, dtype=int)

        if not self.is_land_waypoint:
            self.decision_taken = False
            self.can_land = True
            self.can_land_hysteresis_matrix.fill(0.0)
            self.exploration_is_active = False
            self.n_explored_pattern = -1
            self.factor_exploration = 1.0
            self.landing_radius = 2.0
            logger.info("[WGN] Not a land waypoint")

    def choose_next_state(self, current_state, transition):
        """State reached from ``current_state`` by ``transition``; unmapped ones lead to GOTO."""
        self.prev_slp_state = current_state
        self.state_changed = True
        return _TRANSITIONS.get((current_state, transition), _ERROR_STATE)

    def run_current_state(self):
        """Execute the current state and return the requested transition."""
        if self.trigger_reset:
            self.trigger_reset = False
            return Transition.ERROR
        handlers = {
            SLPState.GOTO: self._run_goto,
            SLPState.ALTITUDE_CHANGE: self._run_altitude_change,
            SLPState.LOITER: self._run_loiter,
            SLPState.LAND: self._run_land,
            SLPState.EVALUATE_GRID: self._run_evaluate_grid,
            SLPState.GOTO_LAND: self._run_goto_land,
        }
        transition = handlers[self.state]()
        self.state_changed = False
        return transition

    def iterate_once(self):
        transition = self.run_current_state()
        if transition is not Transition.REPEAT:
            self.state = self.choose_next_state(self.state, transition)

    def _run_goto(self) -> Transition:
        if self.exploration_is_active:
            self.landing_radius = 0.5
            self.yaw_setpoint = next_yaw(self.position, self.goal)

        self._publish(self.goal, self.velocity_setpoint, self.yaw_setpoint, self.yaw_speed_setpoint)
        if self.verbose:
            logger.info("[WGN] goTo %s - %s", self.goal, self.velocity_setpoint)

        self.altitude_landing_area_percentile = self.landing_area_height_percentile(80.0)
        self.can_land_hysteresis_matrix.fill(0.0)

        within = self.within_landing_radius()
        if within and self.is_land_waypoint and not self.decision_taken:
            return Transition.NEXT1

        if within and self.is_land_waypoint and self.decision_taken and not self.can_land:
            if not self.exploration_is_active:
                self.exploration_anchor = np.array(self.loiter_position, dtype=float)
                self.exploration_is_active = True
            self.n_explored_pattern += 1
            if self.n_explored_pattern == len(self.exploration_pattern):
                self.n_explored_pattern = 0
                self.factor_exploration += 1.0
            offset = (
                self.spiral_width
                * self.factor_exploration
                * 2.0
                * float(self.smoothing_land_cell)
                * self.grid_slp.cell_size
            )
            px, py = self.exploration_pattern[self.n_explored_pattern]
            anchor = self.exploration_anchor
            self.goal = np.array([anchor[0] + offset * px, anchor[1] + offset * py, anchor[2]], dtype=float)
            self.velocity_setpoint = _nan3()
            self.decision_taken = False
            return Transition.REPEAT

        return Transition.REPEAT

    def _run_goto_land(self) -> Transition:
        yaw = next_yaw(self.position, self.goal)
        self._publish(self.goal, self.velocity_setpoint, yaw, self.yaw_speed_setpoint)
        if self.verbose:
            logger.info("[WGN] goToLand %s - %s yaw %f", self.goal, self.velocity_setpoint, yaw)
        if self.within_landing_radius():
            return Transition.NEXT1
        return Transition.REPEAT

    def _run_altitude_change(self) -> Transition:
        if self.state_changed:
            self.loiter_yaw = self.yaw
        self.goal = np.array(self.goal, dtype=float)
        self.goal[2] = math.nan
        self.altitude_landing_area_percentile = self.landing_area_height_percentile(80.0)
        height = abs(self.position[2] - self.altitude_landing_area_percentile)
        direction = 1.0 if (height - self.loiter_height) < 0.0 else -1.0
        self.velocity_setpoint = np.array(self.velocity_setpoint, dtype=float)
        self.velocity_setpoint[2] = direction * self.land_speed
        self._publish(self.goal, self.velocity_setpoint, self.loiter_yaw, self.yaw_speed_setpoint)
        if self.verbose:
            logger.info("[WGN] altitudeChange %s - %s", self.goal, self.velocity_setpoint)

        if self.in_vertical_range():
            self.start_seq_landing_decision = self.grid_slp_seq
            return Transition.NEXT1
        return Transition.REPEAT

    def _run_loiter(self) -> Transition:
        if self.state_changed:
            self.loiter_position = np.array(self.position, dtype=float)
            self.goal = self.loiter_position.copy()
        self._publish(self.loiter_position, _nan3(), self.loiter_yaw, math.nan)
        if self.verbose:
            logger.info("[WGN] Loiter %s yaw %f", self.loiter_position, self.loiter_yaw)

        if abs(self.grid_slp_seq - self.start_seq_landing_decision) <= 20:
            land = self.grid_slp.land.astype(float)
            self.can_land_hysteresis_matrix = (
                self.beta * self.can_land_hysteresis_matrix + (1.0 - self.beta) * land
            )
            return Transition.REPEAT

        matrix = self.can_land_hysteresis_matrix
        matrix = np.where(matrix <= self.can_land_thr, 0.0, matrix)
        matrix = np.where(matrix > self.can_land_thr, 1.0, matrix)
        self.can_land_hysteresis_matrix = matrix
        self.can_land_hysteresis_result = np.nan_to_num(matrix).astype(int)
        return Transition.NEXT1

    def _run_land(self) -> Transition:
        if self.state_changed:
            self.loiter_position = np.array(self.position, dtype=float)
            self.loiter_yaw = self.yaw
        self.loiter_position = np.array(self.loiter_position, dtype=float)
        self.loiter_position[2] = math.nan
        vel_sp = _nan3()
        vel_sp[2] = -self.land_speed
        self._publish(self.loiter_position, vel_sp, self.loiter_yaw, math.nan)
        if self.verbose:
            logger.info("[WGN] Land %s - %s yaw %f", self.loiter_position, vel_sp, self.loiter_yaw)
        if self.simulation:
            self.velocity_setpoint = vel_sp
        return Transition.REPEAT

    def _run_evaluate_grid(self) -> Transition:
        if self.verbose:
            logger.info("[WGN] runEvaluateGrid %s yaw %f", self.loiter_position, self.loiter_yaw)
        self._publish(self.loiter_position, _nan3(), self.loiter_yaw, math.nan)

        self.landing_radius = 0.5
        rows, cols = self.grid_slp.land.shape
        slc = self.smoothing_land_cell
        center = (rows // 2, cols // 2)

        self.can_land = self.evaluate_patch((center[0] - slc, center[1] - slc))
        if self.can_land:
            self.decision_taken = True
            return Transition.NEXT2

        n_iterations = int((1 + int((rows - (2 * slc + 1)) / self.stride)) / 2)
        cell = self.grid_slp.cell_size
        for i in range(1, n_iterations):
            for px, py in self.exploration_pattern:
                offset = (center[0] + px * i * self.stride - slc, center[1] + py * i * self.stride - slc)
                self.can_land = self.evaluate_patch(offset)
                if self.can_land:
                    self.decision_taken = True
                    self.goal = np.array(
                        [
                            self.position[0] + (offset[0] + slc - rows // 2) * cell,
                            self.position[1] + (offset[1] + slc - cols // 2) * cell,
                            self.position[2],
                        ],
                        dtype=float,
                    )
                    self.velocity_setpoint = np.array(self.velocity_setpoint, dtype=float)
                    self.velocity_setpoint[2] = math.nan
                    if self.verbose:
                        logger.info("[WGN] Found landing area in grid at %s", self.goal)
                    return Transition.NEXT2
        self.decision_taken = True
        return Transition.NEXT1

    def evaluate_patch(self, left_upper_corner):
        """Whether every cell under the mask at ``left_upper_corner`` is landable."""
        r, c = int(left_upper_corner[0]), int(left_upper_corner[1])
        h, w = self.mask.shape
        result = self.can_land_hysteresis_result
        if r < 0 or c < 0 or r + h > result.shape[0] or c + w > result.shape[1]:
            raise IndexError("patch lies outside the grid")
        block = result[r : r + h, c : c + w]
        return int((block * self.mask).sum()) == int(self.mask.sum())

    def within_landing_radius(self):
        distance = float(np.linalg.norm(np.asarray(self.goal[:2], dtype=float) - self.position[:2]))
        return distance < self.landing_radius

    def in_vertical_range(self):
        height = abs(self.position[2] - self.altitude_landing_area_percentile)
        return abs(height - self.loiter_height) < self.vertical_range_error

    def landing_area_height_percentile(self, percentile):
        """Height at ``percentile`` of the mean heights in the central landing patch."""
        slc = self.smoothing_land_cell
        center = self.grid_slp.land.shape[0] // 2
        lo, hi = center - slc, center + slc + 1
        if lo < 0 or hi > self.grid_slp.mean.shape[0] or hi > self.grid_slp.mean.shape[1]:
            raise IndexError("landing patch lies outside the grid")
        values = np.sort(np.asarray(self.grid_slp.mean[lo:hi, lo:hi], dtype=float).ravel())
        index = int(math.floor(percentile / 100.0 * values.size + 0.5))
        if not 0 <= index < values.size:
            raise IndexError("percentile out of range")
        return float(values[index])