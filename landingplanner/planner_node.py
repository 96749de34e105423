"""Runs the safe landing planner on incoming data and reports system status."""

from __future__ import annotations

import math
import threading
from enum import IntEnum
from typing import Callable

import numpy as np

from landingplanner.grid import GridMessage
from landingplanner.safe_landing_planner import CloudPoint, PlannerConfig, SafeLandingPlanner
from landingplanner.visualization import SafeLandingPlannerVisualization

TOPIC_STATUS = "/mavros/companion_process/status"
TOPIC_GRID = "/grid_slp"
AVOIDANCE_COMPONENT_ID = 196
STATUS_PERIOD = 0.2


class MavState(IntEnum):
    UNINIT = 0
    BOOT = 1
    CALIBRATING = 2
    STANDBY = 3
    ACTIVE = 4
    CRITICAL = 5
    EMERGENCY = 6
    POWEROFF = 7
    FLIGHT_TERMINATION = 8


class SafeLandingPlannerNode:
    """Feeds pose, cloud and configuration into the planner and publishes its grid."""

    def __init__(
        self,
        planner: SafeLandingPlanner | None = None,
        publish: Callable[[str, object], None] | None = None,
        start_time: float = 0.0,
        play_rosbag: bool = False,
    ) -> None:
        self.publish = publish or (lambda topic, message: None)
        self.planner = planner or SafeLandingPlanner(play_rosbag=play_rosbag)
        if play_rosbag:
            self.planner.play_rosbag = True
        self.visualizer = SafeLandingPlannerVisualization(publish=self.publish)
        self.config = self.planner.config
        self.status = MavState.UNINIT
        self.position = np.zeros(3)
        self.orientation = np.array([1.0, 0.0, 0.0, 0.0])
        self.previous_position = np.zeros(3)
        self.previous_orientation = self.orientation.copy()
        self.position_received = False
        self.cloud_transformed = False
        self.start_time = start_time
        self.last_algo_time = 0.0
        self.status_sent_time = 0.0
        self.grid_seq = 0
        self._waiting_since: float | None = None
        self._lock = threading.Lock()

    def on_config(self, config: PlannerConfig):
        self.config = config
        self.planner.set_params(config)

    def on_pose(self, position, orientation):
        self.previous_position = self.position
        self.previous_orientation = self.orientation
        self.position = np.asarray(position, dtype=float)
        self.orientation = np.asarray(orientation, dtype=float)
        self.position_received = True

    def on_cloud(self, cloud):
        """Accept a cloud already in the local frame; points holding NaN are dropped."""
        points = [
            p if isinstance(p, CloudPoint) else CloudPoint(*p)
            for p in cloud
        ]
        points = [p for p in points if not any(math.isnan(v) for v in (p.x, p.y, p.z))]
        with self._lock:
            self.planner.cloud = points
            self.cloud_transformed = True

    def on_raw_grid(self, msg: GridMessage):
        with self._lock:
            self.planner.raw_grid = msg
            self.cloud_transformed = True

    def check_failsafe(self, since_last_algo, since_start):
        termination = self.planner.config.timeout_termination
        critical = self.planner.config.timeout_critical
        if since_last_algo > termination and since_start > termination:
            self.status = MavState.FLIGHT_TERMINATION
        elif since_last_algo > critical and since_start > critical:
            self.status = MavState.CRITICAL

    def _publish_status(self, now: float) -> None:
        self.publish(
            TOPIC_STATUS,
            {"state": self.status, "component": AVOIDANCE_COMPONENT_ID, "stamp": now},
        )
        self.status_sent_time = now

    def serial_grid(self):
        """Serialise the planner's previous grid; each call gets the next sequence number."""
        grid = self.planner.previous_grid
        with np.errstate(invalid="ignore"):
            std_dev = np.sqrt(grid.variance)
        pos_index = self.planner.pos_index
        msg = GridMessage(
            seq=self.grid_seq,
            grid_size=grid.grid_size,
            cell_size=grid.cell_size,
            mean=grid.mean.copy(),
            std_dev=std_dev,
            counter=grid.counter.copy(),
            land=grid.land.copy(),
            curr_pos_index=(float(pos_index[0]), float(pos_index[1])),
        )
        self.grid_seq += 1
        return msg

    def step(self, now):
        """One command-loop cycle at time ``now``; returns whether the planner ran."""
        self.status = MavState.ACTIVE
        if not self.cloud_transformed:
            if self._waiting_since is None:
                self._waiting_since = now
            elif now - self._waiting_since > self.planner.config.timeout_termination:
                self.status = MavState.FLIGHT_TERMINATION
                self._publish_status(now)
            return False
        self._waiting_since = None

        self.check_failsafe(now - self.last_algo_time, now - self.start_time)
        self.planner.set_pose(self.position, self.orientation)
        with self._lock:
            self.planner.run()
            self.cloud_transformed = False

        self.visualizer.visualize(self.planner, self.position, self.previous_position, self.config)
        self.publish(TOPIC_GRID, self.serial_grid())
        self.last_algo_time = now

        if now - self.status_sent_time > STATUS_PERIOD:
            self._publish_status(now)
        return True