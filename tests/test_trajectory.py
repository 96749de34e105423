import numpy as np
import pytest

from landingplanner.trajectory import (
    SimulationLimits,
    SimulationState,
    TrajectorySimulator,
    jerk_for_velocity_setpoint,
    norm_clamp,
    simulate_step_constant_jerk,
)


def _normalized(v):
    n = np.linalg.norm(v)
    return v / n if n > 0 else v


def _jerks(start, steps):
    last = start
    for step in steps:
        dt = step.time - last.time
        yield step, (step.acceleration - last.acceleration) / dt
        last = step


def _check_limits(config, start, steps):
    eps = 1e-5
    for step, jerk in _jerks(start, steps):
        assert np.linalg.norm(jerk) <= config.max_jerk_norm + eps
        assert np.linalg.norm(step.acceleration) <= config.max_acceleration_norm + eps
        assert np.linalg.norm(step.velocity[:2]) <= config.max_xy_velocity_norm + eps


def _check_goal_direction(goal_dir, start, steps):
    for step, jerk in _jerks(start, steps):
        vel_dir_error = _normalized(step.velocity) - _normalized(goal_dir)
        if vel_dir_error @ _normalized(step.acceleration) > 0:
            assert jerk @ vel_dir_error <= 1e-6


def _config(max_accel):
    return SimulationLimits(
        max_z_velocity=1.0,
        min_z_velocity=-0.5,
        max_xy_velocity_norm=3.0,
        max_acceleration_norm=max_accel,
        max_jerk_norm=20.0,
    )


def test_norm_clamp_works_with_zeros():
    clamped = norm_clamp(np.zeros(3), 0)
    assert np.linalg.norm(clamped) == 0.0
    assert not np.isnan(clamped).any()


def test_norm_clamp_passes_short_vectors():
    short_vec = np.array([0.5, 0.6, 0.7])
    assert np.linalg.norm(short_vec - norm_clamp(short_vec, 5.0)) == 0.0


def test_norm_clamp_clamps_long_vectors():
    long_vec = np.array([5.0, 6.0, 7.0])
    clamped = norm_clamp(long_vec, 5.0)
    assert np.linalg.norm(clamped) == pytest.approx(5.0)
    assert _normalized(clamped) @ _normalized(long_vec) == pytest.approx(1.0)


def test_gives_empty_list_with_no_steps():
    sim = TrajectorySimulator(SimulationLimits(), SimulationState())
    assert sim.generate_trajectory(np.zeros(3), 0) == []


def test_gives_constant_vel_when_vel_correct():
    state = SimulationState(0.0, np.zeros(3), np.array([3.0, 0.0, 0.0]), np.zeros(3))
    config = _config(3.0)
    steps = TrajectorySimulator(config, state).generate_trajectory(np.array([1.0, 0.0, 0.0]), 10)
    assert steps
    for step in steps:
        assert np.linalg.norm(state.velocity - step.velocity) < 1e-5
        assert np.linalg.norm(step.acceleration) < 1e-5
    _check_limits(config, state, steps)
    assert steps[-1].time == pytest.approx(10.0, abs=1e-6)


@pytest.mark.parametrize(
    "velocity, goal_dir, start_time",
    [
        ([-3.0, 0.0, 0.0], [1.0, 0.0, 0.0], 0.0),
        ([3.0, 0.0, 0.0], [0.0, 1.0, 0.0], 8.0),
    ],
)
def test_accelerates_to_constant_vel(velocity, goal_dir, start_time):
    state = SimulationState(start_time, np.zeros(3), np.array(velocity), np.zeros(3))
    config = _config(4.0)
    goal = np.array(goal_dir)
    steps = TrajectorySimulator(config, state).generate_trajectory(goal, 10)
    _check_goal_direction(goal, state, steps)
    _check_limits(config, state, steps)
    last = steps[-1]
    assert np.linalg.norm(_normalized(last.velocity) - _normalized(goal)) < 1e-5
    assert np.linalg.norm(last.acceleration) < 1e-5
    assert last.time > start_time + 9.0


def test_simulate_step_with_zero_jerk_is_constant_acceleration():
    state = SimulationState(1.0, np.zeros(3), np.array([1.0, 0.0, 0.0]), np.array([0.0, 2.0, 0.0]))
    nxt = simulate_step_constant_jerk(state, np.zeros(3), 1.0)
    assert nxt.time == pytest.approx(2.0)
    assert np.allclose(nxt.position, [1.0, 1.0, 0.0])
    assert np.allclose(nxt.velocity, [1.0, 2.0, 0.0])
    assert np.allclose(nxt.acceleration, [0.0, 2.0, 0.0])


def test_jerk_is_clamped_to_limit():
    state = SimulationState(0.0, np.zeros(3), np.zeros(3), np.zeros(3))
    jerk = jerk_for_velocity_setpoint(100.0, 20.0, 5.0, np.array([10.0, 0.0, 0.0]), state)
    assert np.linalg.norm(jerk) == pytest.approx(5.0)
    assert jerk[0] > 0