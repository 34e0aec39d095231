"""Crosswind flight paths on the tether sphere.

Paths are waypoint arrays lying on a sphere of radius `radius` centered on
the ground anchor, so a kite following them keeps the tether taut. The path
center is given by its elevation above the horizon and its azimuth (the
downwind direction, measured from world +x toward +y).

Example:
    >>> from autopilot.guidance import circle_path, figure_eight_path
    >>>
    >>> loop = circle_path(radius=73.0, elevation=np.radians(35.0), laps=3)
    >>> eight = figure_eight_path(radius=73.0, lobe_radius=np.radians(18.0))
"""

import numpy as np
from numpy.typing import NDArray


def direction_from_angles(azimuth: float, elevation: float) -> NDArray[np.float64]:
    """Unit vector at `azimuth` [rad] and `elevation` [rad] above the horizon."""
    return np.array([
        np.cos(elevation) * np.cos(azimuth),
        np.cos(elevation) * np.sin(azimuth),
        np.sin(elevation),
    ])


def _sample_angles(num_points: int, laps: int) -> NDArray[np.float64]:
    if num_points < 3:
        raise ValueError(f"Need at least 3 points per lap, got {num_points}")
    if laps < 1:
        raise ValueError(f"Need at least one lap, got {laps}")
    return np.arange(num_points * laps) * (2.0 * np.pi / num_points)


def circle_path(
    radius: float,
    elevation: float = np.radians(35.0),
    azimuth: float = 0.0,
    path_radius: float = np.radians(20.0),
    num_points: int = 64,
    laps: int = 1,
    anchor: NDArray[np.float64] | None = None,
) -> NDArray[np.float64]:
    """Circular loop on the tether sphere.

    Args:
        radius: Sphere radius (tether length) [m]
        elevation: Elevation of the loop center [rad]
        azimuth: Azimuth of the loop center [rad]
        path_radius: Angular radius of the loop [rad]
        num_points: Waypoints per lap
        laps: Number of times the loop is repeated
        anchor: Sphere center [m], default origin

    Returns:
        Waypoints, shape (num_points * laps, 3) [m]
    """
    if anchor is None:
        anchor = np.zeros(3)
    theta = _sample_angles(num_points, laps)

    center = direction_from_angles(azimuth, elevation)
    # Horizontal and "up the sphere" axes perpendicular to the center direction
    side = np.array([-np.sin(azimuth), np.cos(azimuth), 0.0])
    up = np.cross(center, side)

    directions = (
        np.cos(path_radius) * center
        + np.sin(path_radius) * (np.cos(theta)[:, None] * side + np.sin(theta)[:, None] * up)
    )
    return anchor + radius * directions


def figure_eight_path(
    radius: float,
    elevation: float = np.radians(35.0),
    azimuth: float = 0.0,
    lobe_radius: float = np.radians(20.0),
    num_points: int = 96,
    laps: int = 1,
    anchor: NDArray[np.float64] | None = None,
) -> NDArray[np.float64]:
    """Figure-eight of two circular lobes on the tether sphere.

    The lobes sit to either side of the crossing point and touch there with
    a common tangent, so the turn radius is the same all around the figure.
    Each lap flies down through the crossing, around the lobe on the +side,
    down through the crossing again and around the other lobe in the
    opposite sense.

    Args:
        radius: Sphere radius (tether length) [m]
        elevation: Elevation of the crossing point [rad]
        azimuth: Azimuth of the crossing point [rad]
        lobe_radius: Angular radius of each lobe [rad]
        num_points: Waypoints per lap
        laps: Number of times the figure is repeated
        anchor: Sphere center [m], default origin

    Returns:
        Waypoints, shape (num_points * laps, 3) [m]
    """
    if anchor is None:
        anchor = np.zeros(3)
    theta = _sample_angles(num_points, laps)

    crossing = direction_from_angles(azimuth, elevation)
    side = np.array([-np.sin(azimuth), np.cos(azimuth), 0.0])
    up = np.cross(crossing, side)

    # Second half of each lap is the first half mirrored across the crossing
    phase = np.mod(theta, 2.0 * np.pi)
    first = phase < np.pi
    phi = np.pi + 2.0 * np.where(first, phase, phase - np.pi)
    mirror = np.where(first, 1.0, -1.0)[:, None]

    c, s = np.cos(lobe_radius), np.sin(lobe_radius)
    lobe_center = c * crossing + mirror * s * side
    lobe_side = -s * crossing + mirror * c * side

    directions = c * lobe_center + s * (
        np.cos(phi)[:, None] * lobe_side + np.sin(phi)[:, None] * up
    )
    return anchor + radius * directions
