"""Pure-pursuit path following.

The follower keeps a forward search index into a waypoint polyline. Every
call it advances the index past segments the kite has already flown beyond,
never backward, and returns a target point a fixed arc length ahead of the
kite's closest point on the path.

    look_ahead = look_ahead_ratio * max_look_ahead
    target     = point at arc length (s_closest + look_ahead), clamped to the end

This is flight software - designed to run on the vehicle.

Example:
    >>> from autopilot.guidance import PathFollower, figure_eight_path
    >>>
    >>> follower = PathFollower(figure_eight_path(radius=73.0), look_ahead_ratio=0.3)
    >>> target = follower.update(kite.state.position, speed=20.0)
    >>> cost = follower.get_cost(kite.state.position)
"""

from typing import NamedTuple

import numpy as np
from numpy.typing import NDArray

from kitesim.errors import ConfigurationError

# =============================================================================
# Guidance Output
# =============================================================================


class PathTarget(NamedTuple):
    """Output from the path follower.

    Attributes:
        point: Pursuit target point in world frame [m]
        speed: Desired speed along the path [m/s]
        index: Current segment index into the path
    """
    point: NDArray[np.float64]
    speed: float
    index: int


# =============================================================================
# Path Follower
# =============================================================================


class PathFollower:
    """Lookahead target generation along an immutable waypoint path.

    Attributes:
        path: Waypoints, shape (M, 3), M >= 2 [m]
        look_ahead_ratio: Fraction of `max_look_ahead` to look ahead, in [0, 1]
        max_look_ahead: Lookahead distance at ratio 1 [m]
        index: Current segment index, non-decreasing, at most M - 2
    """

    def __init__(
        self,
        path: NDArray[np.float64],
        look_ahead_ratio: float = 0.5,
        max_look_ahead: float = 50.0,
    ) -> None:
        path = np.array(path, dtype=np.float64)
        if path.ndim != 2 or path.shape[1] != 3 or len(path) < 2:
            raise ConfigurationError(f"Path must have shape (M >= 2, 3), got {path.shape}")
        segments = np.diff(path, axis=0)
        lengths = np.linalg.norm(segments, axis=1)
        if np.any(lengths < 1e-9):
            raise ConfigurationError("Consecutive path waypoints must be distinct")
        if max_look_ahead < 0:
            raise ConfigurationError(f"Max look-ahead must be non-negative, got {max_look_ahead}")

        path.setflags(write=False)
        self.path = path
        self.look_ahead_ratio = look_ahead_ratio
        self.max_look_ahead = max_look_ahead
        self.index = 0

        self._segments = segments
        self._lengths = lengths
        self._arc = np.concatenate([[0.0], np.cumsum(lengths)])

    @property
    def max_index(self) -> int:
        """Largest segment index (M - 2)."""
        return len(self.path) - 2

    @property
    def total_length(self) -> float:
        """Arc length of the whole path [m]."""
        return float(self._arc[-1])

    @property
    def look_ahead(self) -> float:
        """Current lookahead distance [m]."""
        return float(np.clip(self.look_ahead_ratio, 0.0, 1.0)) * self.max_look_ahead

    def _projection(self, position: NDArray[np.float64], index: int) -> float:
        """Unclamped projection parameter of `position` on segment `index`."""
        seg = self._segments[index]
        return float(np.dot(position - self.path[index], seg) / np.dot(seg, seg))

    def point_at(self, arc_length: float) -> NDArray[np.float64]:
        """Point at `arc_length` along the path, clamped to its ends [m]."""
        s = float(np.clip(arc_length, 0.0, self.total_length))
        i = int(np.searchsorted(self._arc, s, side="right")) - 1
        i = min(max(i, 0), self.max_index)
        t = (s - self._arc[i]) / self._lengths[i]
        return self.path[i] + t * self._segments[i]

    def update(self, position: NDArray[np.float64], speed: float) -> PathTarget:
        """Advance the search index and compute the pursuit target.

        Args:
            position: Current kite position [m]
            speed: Desired speed to pass through to the position controller [m/s]

        Returns:
            PathTarget with the lookahead point, speed and current index
        """
        look_ahead = self.look_ahead

        # Arc position of the closest point on the current segment
        t = self._projection(position, self.index)
        s_closest = self._arc[self.index] + min(max(t, 0.0), 1.0) * self._lengths[self.index]

        # Move past segments already flown, within the lookahead window
        while (
            self.index < self.max_index
            and t > 1.0
            and self._arc[self.index + 1] <= s_closest + look_ahead
        ):
            self.index += 1
            t = self._projection(position, self.index)

        s = self._arc[self.index] + min(max(t, 0.0), 1.0) * self._lengths[self.index]
        return PathTarget(
            point=self.point_at(s + look_ahead),
            speed=speed,
            index=self.index,
        )

    def get_cost(self, position: NDArray[np.float64]) -> float:
        """Perpendicular distance from `position` to the path polyline [m]."""
        offsets = position - self.path[:-1]
        t = np.einsum("ij,ij->i", offsets, self._segments) / self._lengths**2
        t = np.clip(t, 0.0, 1.0)
        closest = self.path[:-1] + t[:, None] * self._segments
        return float(np.min(np.linalg.norm(position - closest, axis=1)))

    def set_index(self, index: int) -> None:
        """Restore the search index (e.g. from a snapshot)."""
        if not 0 <= index <= self.max_index:
            raise ValueError(f"Path index {index} outside [0, {self.max_index}]")
        self.index = index

    def reset(self) -> None:
        """Restart from the first segment."""
        self.index = 0
