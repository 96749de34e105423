import numpy as np
import pytest

from landingplanner.grid import GridMessage
from landingplanner.safe_landing_planner import (
    CloudPoint,
    PlannerConfig,
    SafeLandingPlanner,
    compute_online_mean_variance,
)


def _config(**kw):
    base = dict(
        n_points_threshold=3,
        std_dev_threshold=0.1,
        smoothing_size=0,
        mean_diff_thr=0.5,
        max_n_mean_diff_cells=0,
        grid_size=4.0,
        cell_size=1.0,
        alpha=1.0,
        min_n_land_cells=3,
    )
    base.update(kw)
    return PlannerConfig(**base)


def _flat_cloud(heights=None, per_cell=4):
    heights = heights or {}
    pts = []
    for i in range(4):
        for j in range(4):
            z = heights.get((i, j), 0.0)
            for k in range(per_cell):
                pts.append(CloudPoint(-1.5 + i + 0.1 * k, -1.5 + j + 0.1 * k, z))
    return pts


def test_online_mean_variance_matches_batch():
    values = [1.0, 4.0, 2.5, -3.0, 7.0]
    mean, var = 0.0, 0.0
    for seq, v in enumerate(values, start=1):
        mean, var = compute_online_mean_variance(mean, var, v, float(seq))
    assert mean == pytest.approx(np.mean(values))
    assert var == pytest.approx(np.var(values))


def test_flat_cloud_is_landable():
    planner = SafeLandingPlanner(_config())
    planner.cloud = _flat_cloud()
    planner.run()
    assert planner.grid.land.all()
    assert (planner.grid.counter == 4).all()


def test_sparse_and_rough_cells_are_not_landable():
    planner = SafeLandingPlanner(_config())
    cloud = [p for p in _flat_cloud() if not (-1.5 <= p.x < -0.5 and -1.5 <= p.y < -0.5)]
    cloud.append(CloudPoint(-1.4, -1.4, 0.0))
    cloud += [CloudPoint(1.2, 1.2, 0.0), CloudPoint(1.3, 1.3, 2.0)]
    planner.cloud = cloud
    planner.run()
    assert planner.grid.land[0, 0] == 0
    assert planner.grid.land[3, 3] == 0
    assert planner.grid.land[1, 2] == 1


def test_nan_and_outside_points_ignored():
    planner = SafeLandingPlanner(_config())
    planner.cloud = [CloudPoint(float("nan"), 0.0, 0.0), CloudPoint(10.0, 0.0, 0.0)]
    planner.run()
    assert planner.grid.counter.sum() == 0


def test_smoothing_rejects_step_neighbourhood():
    planner = SafeLandingPlanner(_config(smoothing_size=1))
    planner.cloud = _flat_cloud(heights={(0, 0): 1.0})
    planner.run()
    assert planner.grid.land[0, 0] == 0
    assert planner.grid.land[1, 1] == 0
    assert planner.grid.land[3, 3] == 1


def test_grid_indexes_and_inside():
    planner = SafeLandingPlanner(_config())
    planner.run()
    assert planner.is_inside_grid(0.0, 0.0)
    assert not planner.is_inside_grid(2.0, 0.0)
    assert planner.compute_grid_indexes(-1.9, 1.9) == (0, 3)
    assert planner.pos_index == (2, 2)


def test_set_pose_moves_grid():
    planner = SafeLandingPlanner(_config())
    planner.set_pose(np.array([10.0, 10.0, 0.0]), None)
    planner.cloud = [CloudPoint(10.2, 10.2, 0.0)]
    planner.run()
    assert planner.grid.counter.sum() == 1


def test_raw_grid_is_loaded():
    planner = SafeLandingPlanner(_config(), play_rosbag=True)
    planner.raw_grid = GridMessage(
        seq=7,
        grid_size=4.0,
        cell_size=1.0,
        mean=np.zeros((4, 4)),
        std_dev=np.full((4, 4), 0.5),
        counter=np.full((4, 4), 9),
    )
    planner.run()
    assert planner.grid_seq == 7
    assert np.allclose(planner.grid.variance, 0.25)
    assert not planner.grid.land.any()


def test_set_params_triggers_resize():
    planner = SafeLandingPlanner(_config())
    planner.run()
    planner.set_params(_config(cell_size=0.5))
    assert planner.size_update
    planner.run()
    assert planner.grid.row_col_size == 8
    assert not planner.size_update