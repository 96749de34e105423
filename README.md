# landingplanner

Tools for finding a safe place to land a multicopter and for steering it there.

## What is in the package

- **Landing grid** (`landingplanner.grid`, `landingplanner.safe_landing_planner`).
  `Grid` is a square grid centred on the vehicle's xy position holding, per cell,
  the mean height, the height variance, a point counter, a semantic class and a
  landable flag. `SafeLandingPlanner` bins `CloudPoint`s into the grid using a
  running mean and variance (`compute_online_mean_variance`), low-pass filters
  mean and variance against the previous grid (`PlannerConfig.alpha`), marks a
  cell landable when it has at least `n_points_threshold` points and a standard
  deviation no larger than `std_dev_threshold` (and, with `use_semantics`, the
  class `terrain_class`), then smooths the decision over a neighbourhood of
  `smoothing_size` cells using `min_n_land_cells`, `mean_diff_thr` and
  `max_n_mean_diff_cells`. With `play_rosbag=True` the planner loads a recorded
  `GridMessage` from `raw_grid` instead of a cloud.
- **Planner node** (`landingplanner.planner_node`). `SafeLandingPlannerNode`
  accepts pose (`on_pose`), cloud (`on_cloud`), recorded grid (`on_raw_grid`)
  and configuration (`on_config`) updates. Each call to `step(now)` runs the
  planner if new data has arrived, publishes the visualisation markers and the
  serialised grid (`serial_grid`), and keeps a companion-process status
  (`MavState`): `CRITICAL` or `FLIGHT_TERMINATION` when the planner has not run
  for longer than the configured timeouts (`check_failsafe`).
- **Landing waypoint generator** (`landingplanner.waypoint_generator`). A state
  machine over `SLPState` (`GOTO`, `ALTITUDE_CHANGE`, `LOITER`, `EVALUATE_GRID`,
  `GOTO_LAND`, `LAND`): it flies to the land waypoint, climbs or descends to
  `loiter_height` above the 80th-percentile height of the central patch,
  accumulates the landable flags with hysteresis for about 20 grid updates,
  searches the grid outward for a patch whose mask is fully landable, explores
  in a widening eight-direction pattern when none is found, and finally
  descends at `land_speed`. Setpoints go to the `publish_trajectory_setpoints`
  callback and are also kept in `last_setpoint`.
- **Waypoint generator node** (`landingplanner.waypoint_generator_node`).
  `WaypointGeneratorNode` feeds trajectory (`on_trajectory`), flight mode and
  arming (`on_state`), pose (`on_pose`, orientation as `(w, x, y, z)`), grid
  (`on_grid`) and configuration (`on_config`) updates into the generator. Its
  `step()` runs one cycle once a new grid has arrived and publishes a
  `TrajectorySetpoint` of five `PositionTarget`s (only the first ever valid),
  the landing-area markers and a goal marker.
- **Trajectory simulation** (`landingplanner.trajectory`).
  `TrajectorySimulator.generate_trajectory` produces a list of
  `SimulationState`s that accelerate towards a goal direction under a PD jerk
  command, respecting the jerk, acceleration and velocity bounds in
  `SimulationLimits`. `norm_clamp`, `simulate_step_constant_jerk` and
  `jerk_for_velocity_setpoint` are available on their own.
- **Visualisation** (`landingplanner.visualization`).
  `SafeLandingPlannerVisualization` builds plain `Marker` records: cubes per
  cell coloured by landability, by standard deviation (`hsv_to_rgb` hue scale)
  or by point count, and a line strip for the travelled path.

## What the package does not do

- It carries no messaging layer. Every node sends its output through a
  `publish(topic, message)` callable you pass in; by default output is dropped.
  Topic names are provided as module constants (`TOPIC_*`).
- It does not transform point clouds between frames. `on_cloud` expects points
  already in the local frame and only drops points containing NaN.
- It runs no timers or threads of its own and has no command-line program. The
  caller drives the nodes by calling `step`.
- `WaypointGeneratorNode.landing_area_markers` places its kernel around the
  fixed grid cell 20 and raises `IndexError` for grids too small for that.

## Installation

```
pip install .
```

The only runtime dependency is numpy. Python 3.10 or newer is required.

## Example: simulating a trajectory

```python
import numpy as np
from landingplanner.trajectory import SimulationLimits, SimulationState, TrajectorySimulator

limits = SimulationLimits(
    max_z_velocity=1.0,
    min_z_velocity=-0.5,
    max_xy_velocity_norm=3.0,
    max_acceleration_norm=4.0,
    max_jerk_norm=20.0,
)
start = SimulationState(
    time=0.0,
    position=np.zeros(3),
    velocity=np.array([-3.0, 0.0, 0.0]),
    acceleration=np.zeros(3),
)
sim = TrajectorySimulator(limits, start)
steps = sim.generate_trajectory(np.array([1.0, 0.0, 0.0]), 10.0)
print(steps[-1].velocity)
```

## Example: evaluating a landing grid

```python
import numpy as np
from landingplanner.safe_landing_planner import CloudPoint, PlannerConfig, SafeLandingPlanner

planner = SafeLandingPlanner()
planner.set_params(PlannerConfig())
planner.set_pose(np.array([0.0, 0.0, 5.0]), None)
planner.cloud = [CloudPoint(x, y, 0.0) for x in np.linspace(-2, 2, 40) for y in np.linspace(-2, 2, 40)]
planner.run()
print(planner.grid.land)
```

## Running the tests

```
pip install .[test]
pytest
```