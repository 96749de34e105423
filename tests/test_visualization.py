import pytest

from landingplanner.grid import Grid
from landingplanner.safe_landing_planner import PlannerConfig, SafeLandingPlanner
from landingplanner.visualization import (
    TOPIC_COUNTER,
    TOPIC_GRID,
    TOPIC_MEAN_STD_DEV,
    TOPIC_PATH,
    TOPIC_POINTCLOUD,
    SafeLandingPlannerVisualization,
    hsv_to_rgb,
)


@pytest.mark.parametrize(
    "h, expected",
    [(0.0, (1.0, 0.0, 0.0)), (120.0, (0.0, 1.0, 0.0)), (240.0, (0.0, 0.0, 1.0))],
)
def test_hsv_primary_colors(h, expected):
    assert hsv_to_rgb(h, 1.0, 1.0) == pytest.approx(expected)


def test_hsv_zero_saturation_is_grey():
    assert hsv_to_rgb(200.0, 0.0, 0.5) == pytest.approx((0.5, 0.5, 0.5))


def test_hsv_negative_hue_is_black():
    assert hsv_to_rgb(-60.0, 1.0, 1.0) == (0.0, 0.0, 0.0)


def test_hsv_wraps_full_circle():
    assert hsv_to_rgb(360.0 + 120.0, 1.0, 1.0) == pytest.approx(hsv_to_rgb(120.0, 1.0, 1.0))


def _grid(size=2.0, cell=1.0):
    grid = Grid(size, cell)
    grid.set_filter_limits((0.0, 0.0, 0.0))
    return grid


def test_mean_std_dev_markers_positions_and_colors():
    grid = _grid()
    grid.mean[0, 1] = 3.5
    grid.variance[1, 1] = 4.0
    vis = SafeLandingPlannerVisualization()
    markers = vis.mean_std_dev_markers(grid, 1.0)
    assert [m.id for m in markers] == [0, 1, 2, 3]
    assert markers[1].position == pytest.approx((-0.5, 0.5, 3.5))
    assert markers[3].color[:3] == (0.0, 0.0, 0.0)
    assert markers[0].color[:3] == pytest.approx((1.0, 0.0, 0.0))
    assert all(m.scale == (1.0, 1.0, 0.1) for m in markers)


def test_counter_markers_at_threshold_are_red():
    grid = _grid()
    grid.counter[:, :] = 25
    markers = SafeLandingPlannerVisualization().counter_markers(grid, 25.0)
    assert len(markers) == 4
    assert all(m.color[:3] == pytest.approx((1.0, 0.0, 0.0)) for m in markers)
    assert all(m.position[2] == 0.0 for m in markers)


def test_grid_markers_land_colors_and_center_patch():
    grid = _grid(4.0, 1.0)
    grid.land[2, 2] = 1
    markers = SafeLandingPlannerVisualization().grid_markers(grid, 1)
    by_index = {(i, j): markers[i * 4 + j] for i in range(4) for j in range(4)}
    assert by_index[(2, 2)].color[:3] == (0.0, 1.0, 0.0)
    assert by_index[(0, 0)].color[:3] == (1.0, 0.0, 0.0)
    tall = {key for key, m in by_index.items() if m.scale[2] == 0.8}
    assert tall == {(1, 1), (1, 2), (2, 1), (2, 2)}


def test_path_marker_ids_increase():
    vis = SafeLandingPlannerVisualization()
    first = vis.path_marker((1.0, 2.0, 3.0), (0.0, 0.0, 0.0))
    second = vis.path_marker((2.0, 2.0, 3.0), (1.0, 2.0, 3.0))
    assert (first.id, second.id) == (0, 1)
    assert first.points == [(0.0, 0.0, 0.0), (1.0, 2.0, 3.0)]
    assert first.type == "LINE_STRIP"


def test_visualize_publishes_every_topic():
    published = {}
    vis = SafeLandingPlannerVisualization(publish=lambda topic, msg: published.__setitem__(topic, msg))
    config = PlannerConfig(grid_size=2.0, cell_size=1.0)
    planner = SafeLandingPlanner(config)
    planner.run()
    outputs = vis.visualize(planner, (0.0, 0.0, 1.0), (0.0, 0.0, 0.0), config)
    assert set(published) == {TOPIC_POINTCLOUD, TOPIC_GRID, TOPIC_MEAN_STD_DEV, TOPIC_COUNTER, TOPIC_PATH}
    assert published is not outputs and published.keys() == outputs.keys()
    assert len(outputs[TOPIC_GRID]) == planner.grid.row_col_size**2


def test_mean_std_dev_zero_threshold_gives_black_cells():
    grid = _grid()
    markers = SafeLandingPlannerVisualization().mean_std_dev_markers(grid, 0.0)
    assert len(markers) == 4
    for marker in markers:
        assert marker.color[:3] == pytest.approx((0.0, 0.0, 0.0))