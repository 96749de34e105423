"""Safe landing area detection, landing waypoint generation and trajectory simulation."""

__version__ = "0.1.0"

__all__ = [
    "grid",
    "planner_node",
    "safe_landing_planner",
    "trajectory",
    "visualization",
    "waypoint_generator",
    "waypoint_generator_node",
]