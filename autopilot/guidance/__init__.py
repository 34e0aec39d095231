"""Guidance algorithms for the kite.

Guidance computes where the kite should fly next based on its current
state and the active path.

Available algorithms:
    PathFollower: Pure-pursuit lookahead along a waypoint path
    circle_path, figure_eight_path: Crosswind paths on the tether sphere
"""

from autopilot.guidance.path_following import PathFollower, PathTarget
from autopilot.guidance.paths import (
    circle_path,
    direction_from_angles,
    figure_eight_path,
)

__all__ = [
    "PathFollower",
    "PathTarget",
    "circle_path",
    "figure_eight_path",
    "direction_from_angles",
]
