"""Constant-jerk trajectory simulation towards a velocity setpoint."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

import numpy as np

_FLT_EPSILON = 1.1920929e-07


def _nan_vector() -> np.ndarray:
    return np.full(3, np.nan)


def _normalized(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        return vector / norm
    return np.array(vector, dtype=float)


def norm_clamp(vector, max_norm):
    """Return ``vector`` scaled down so that its norm does not exceed ``max_norm``."""
    vec = np.asarray(vector, dtype=float)
    norm = float(np.linalg.norm(vec))
    if norm > max_norm:
        return vec / norm * max_norm
    return vec.copy()


def _xy_norm_z_clamp(value: np.ndarray, max_xy_norm: float, min_z: float, max_z: float) -> np.ndarray:
    result = np.empty(3)
    result[:2] = norm_clamp(value[:2], max_xy_norm)
    result[2] = min(max_z, max(min_z, float(value[2])))
    return result


@dataclass
class SimulationLimits:
    """Kinematic limits of the simulated vehicle."""

    max_z_velocity: float = math.nan
    min_z_velocity: float = math.nan
    max_xy_velocity_norm: float = math.nan
    max_acceleration_norm: float = math.nan
    max_jerk_norm: float = math.nan


@dataclass
class SimulationState:
    """Kinematic state of the vehicle at one point in time."""

    time: float = math.nan
    position: np.ndarray = field(default_factory=_nan_vector)
    velocity: np.ndarray = field(default_factory=_nan_vector)
    acceleration: np.ndarray = field(default_factory=_nan_vector)

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float)
        self.velocity = np.asarray(self.velocity, dtype=float)
        self.acceleration = np.asarray(self.acceleration, dtype=float)


def simulate_step_constant_jerk(state, jerk, step_time):
    """Advance ``state`` by ``step_time`` under constant ``jerk``."""
    jerk = np.asarray(jerk, dtype=float)
    t2 = step_time * step_time
    t3 = t2 * step_time
    return SimulationState(
        time=state.time + step_time,
        position=state.position + step_time * state.velocity + 0.5 * t2 * state.acceleration + (1.0 / 6.0) * t3 * jerk,
        velocity=state.velocity + state.acceleration * step_time + 0.5 * t2 * jerk,
        acceleration=state.acceleration + step_time * jerk,
    )


def jerk_for_velocity_setpoint(p_constant, d_constant, max_jerk_norm, desired_velocity, state):
    """PD jerk command towards ``desired_velocity`` with zero desired acceleration."""
    accel_diff = -state.acceleration
    velocity_diff = np.asarray(desired_velocity, dtype=float) - state.velocity
    return norm_clamp(velocity_diff * p_constant + accel_diff * d_constant, max_jerk_norm)


class TrajectorySimulator:
    """Simulates a jerk-limited trajectory from a start state towards a goal direction."""

    def __init__(self, config: SimulationLimits, start: SimulationState, step_time: float = 0.1) -> None:
        self.config = config
        self.start = start
        self.step_time = step_time

    def generate_trajectory(self, goal_direction, simulation_duration):
        """Return the list of simulated states covering ``simulation_duration``."""
        cfg = self.config
        num_steps = int(math.ceil(simulation_duration / self.step_time))
        if num_steps <= 0:
            return []

        with np.errstate(invalid="ignore", divide="ignore"):
            unit_goal = _normalized(np.asarray(goal_direction, dtype=float))
            z_limit = cfg.max_z_velocity if unit_goal[2] > 0 else cfg.min_z_velocity
            desired_velocity = _xy_norm_z_clamp(
                unit_goal * math.hypot(cfg.max_xy_velocity_norm, z_limit),
                cfg.max_xy_velocity_norm,
                cfg.min_z_velocity,
                cfg.max_z_velocity,
            )
            max_accel_norm = min(2.0 * math.sqrt(cfg.max_jerk_norm), cfg.max_acceleration_norm)
            desired_norm = float(np.linalg.norm(desired_velocity))
            if desired_norm > 0.0:
                p_constant = (
                    (math.sqrt(max_accel_norm**2 + cfg.max_jerk_norm * desired_norm) - max_accel_norm)
                    / desired_norm
                    * 10.0
                )
            else:
                p_constant = math.nan
            d_constant = 2.0 * math.sqrt(p_constant) if p_constant >= 0 else math.nan

            timepoints = []
            run_state = self.start
            for _ in range(num_steps):
                single_step_time = self.step_time
                damped_jerk = jerk_for_velocity_setpoint(
                    p_constant, d_constant, cfg.max_jerk_norm, desired_velocity, run_state
                )
                requested_accel = run_state.acceleration + single_step_time * damped_jerk
                jerk = damped_jerk
                if float(requested_accel @ requested_accel) > max_accel_norm**2:
                    single_step_time = (max_accel_norm - float(np.linalg.norm(run_state.acceleration))) / float(
                        np.linalg.norm(damped_jerk)
                    )
                    if single_step_time <= _FLT_EPSILON or single_step_time > self.step_time:
                        jerk = np.zeros(3)
                        single_step_time = self.step_time
                run_state = simulate_step_constant_jerk(run_state, jerk, single_step_time)
                timepoints.append(replace(run_state))
        return timepoints