"""Segmented tether model.

The tether is a chain of lumped point masses joined by spring-damper
segments that can pull but never push. The line runs from a fixed ground
anchor to a junction point, where two short bridle segments split off to
the kite's two attachment points.

Point layout (N points):
    anchor (fixed, not stored) - 0 - 1 - ... - (N-3) = junction
    junction - (N-2)   first bridle end, pinned to attachment point 0
    junction - (N-1)   second bridle end, pinned to attachment point 1

Per segment:
    T = k * (L - L0) + c * (dv . u)     if L > L0, clamped to T >= 0
    T = 0                               if slack
    F_drag = -0.5 * rho * Cd * d * L * |v_n| * v_n   (cross-flow on a cylinder)

Drag is split half to each segment end. Points 0..N-3 are integrated with
semi-implicit Euler; the bridle ends are overwritten by the kite every
sub-step.

Example:
    >>> from kitesim.tether import Tether, TetherProperties
    >>>
    >>> tether = Tether.from_kite(TetherProperties(), kite.get_attachment_points_state())
    >>> tether.update_tether_position_and_forces(dt)
    >>> f1, f2 = tether.kite_tether_forces()
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from numba import njit
from numpy.typing import NDArray

from kitesim.dynamics.state import AttachmentPointState
from kitesim.environment.atmosphere import Atmosphere
from kitesim.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Segments shorter than this carry no tension
MIN_SEGMENT_LENGTH: float = 1e-6

# =============================================================================
# Tether Properties
# =============================================================================


@beartype
@dataclass
class TetherProperties:
    """Tether geometry and material.

    Attributes:
        num_points: Number of tether points N, including both bridle ends
        total_length: Unstretched length from anchor to attachment points [m]
        bridle_length: Unstretched length of each bridle segment [m]
        linear_density: Mass per unit length [kg/m]
        stiffness: Segment spring constant [N/m]
        damping: Segment damping coefficient [N*s/m]
        diameter: Line diameter for drag [m]
        drag_coefficient: Cross-flow drag coefficient of the line
        anchor: Ground anchor position in world frame [m]
    """
    num_points: int = 12
    total_length: float = 73.0
    bridle_length: float = 3.0
    linear_density: float = 0.02
    stiffness: float = 5000.0
    damping: float = 5.0
    diameter: float = 0.003
    drag_coefficient: float = 1.1
    anchor: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        """Reject non-physical tether configurations."""
        self.anchor = np.asarray(self.anchor, dtype=np.float64)

        if self.num_points < 3:
            raise ConfigurationError(
                f"Tether needs at least 3 points (junction + 2 bridle ends), got {self.num_points}"
            )
        if not self.total_length > 0:
            raise ConfigurationError(f"Total length must be positive, got {self.total_length}")
        if not self.bridle_length > 0:
            raise ConfigurationError(f"Bridle length must be positive, got {self.bridle_length}")
        if self.bridle_length >= self.total_length:
            raise ConfigurationError(
                f"Bridle length {self.bridle_length} must be shorter than "
                f"total length {self.total_length}"
            )
        if not self.linear_density > 0:
            raise ConfigurationError(
                f"Linear density must be positive, got {self.linear_density}"
            )
        if self.stiffness < 0:
            raise ConfigurationError(f"Stiffness must be non-negative, got {self.stiffness}")
        if self.damping < 0:
            raise ConfigurationError(f"Damping must be non-negative, got {self.damping}")
        if self.diameter < 0 or self.drag_coefficient < 0:
            raise ConfigurationError("Diameter and drag coefficient must be non-negative")
        if self.anchor.shape != (3,):
            raise ConfigurationError(f"Anchor must be shape (3,), got {self.anchor.shape}")

    @property
    def main_segment_length(self) -> float:
        """Rest length of each main-line segment [m]."""
        return (self.total_length - self.bridle_length) / (self.num_points - 2)

    @property
    def num_segments(self) -> int:
        """Main-line segments (N-2) plus two bridles."""
        return self.num_points


# =============================================================================
# Numba-Optimized Segment Kernel
# =============================================================================


@njit(cache=True, fastmath=True)
def _accumulate_segment_forces(
    pos: NDArray[np.float64],
    vel: NDArray[np.float64],
    seg_a: NDArray[np.int64],
    seg_b: NDArray[np.int64],
    rest: NDArray[np.float64],
    stiffness: float,
    damping: float,
    drag_factor: float,
    wind_x: float, wind_y: float, wind_z: float,
    forces: NDArray[np.float64],
    tensions: NDArray[np.float64],
    min_length: float,
) -> int:
    """Add tension and drag of every segment to its two end points.

    `pos` and `vel` include the anchor at row 0. Returns the number of
    degenerate (near zero length) segments.
    """
    degenerate = 0
    for s in range(seg_a.shape[0]):
        a = seg_a[s]
        b = seg_b[s]

        dx = pos[b, 0] - pos[a, 0]
        dy = pos[b, 1] - pos[a, 1]
        dz = pos[b, 2] - pos[a, 2]
        length = np.sqrt(dx*dx + dy*dy + dz*dz)

        if length < min_length:
            tensions[s] = 0.0
            degenerate += 1
            continue

        ux = dx / length
        uy = dy / length
        uz = dz / length

        # Spring-damper tension, unilateral
        tension = 0.0
        if length > rest[s]:
            dvx = vel[b, 0] - vel[a, 0]
            dvy = vel[b, 1] - vel[a, 1]
            dvz = vel[b, 2] - vel[a, 2]
            tension = stiffness * (length - rest[s]) + damping * (dvx*ux + dvy*uy + dvz*uz)
            if tension < 0.0:
                tension = 0.0
        tensions[s] = tension

        forces[a, 0] += tension * ux
        forces[a, 1] += tension * uy
        forces[a, 2] += tension * uz
        forces[b, 0] -= tension * ux
        forces[b, 1] -= tension * uy
        forces[b, 2] -= tension * uz

        # Cross-flow drag on the segment, from its mean air-relative velocity
        vax = 0.5 * (vel[a, 0] + vel[b, 0]) - wind_x
        vay = 0.5 * (vel[a, 1] + vel[b, 1]) - wind_y
        vaz = 0.5 * (vel[a, 2] + vel[b, 2]) - wind_z
        along = vax*ux + vay*uy + vaz*uz
        vnx = vax - along * ux
        vny = vay - along * uy
        vnz = vaz - along * uz
        vn = np.sqrt(vnx*vnx + vny*vny + vnz*vnz)

        half_drag = -0.5 * drag_factor * length * vn
        forces[a, 0] += half_drag * vnx
        forces[a, 1] += half_drag * vny
        forces[a, 2] += half_drag * vnz
        forces[b, 0] += half_drag * vnx
        forces[b, 1] += half_drag * vny
        forces[b, 2] += half_drag * vnz

    return degenerate


@njit(cache=True, fastmath=True)
def _integrate_points(
    positions: NDArray[np.float64],
    velocities: NDArray[np.float64],
    forces: NDArray[np.float64],
    masses: NDArray[np.float64],
    count: int,
    dt: float,
) -> None:
    """Semi-implicit Euler for the first `count` points, in place."""
    for i in range(count):
        inv_m = 1.0 / masses[i]
        for j in range(3):
            velocities[i, j] += forces[i, j] * inv_m * dt
            positions[i, j] += velocities[i, j] * dt


# =============================================================================
# Tether
# =============================================================================


@beartype
class Tether:
    """Lumped-mass tether with two bridle ends pinned to the kite.

    Attributes:
        properties: Tether configuration
        environment: Gravity, density and wind
        positions: Point positions, shape (N, 3) [m]
        velocities: Point velocities, shape (N, 3) [m/s]
        masses: Lumped point masses, shape (N,) [kg]
        degenerate_segments: Count of segment evaluations skipped as near zero length
    """

    def __init__(
        self,
        properties: TetherProperties,
        positions: NDArray[np.float64],
        velocities: NDArray[np.float64] | None = None,
        environment: Atmosphere | None = None,
    ) -> None:
        n = properties.num_points
        self.properties = properties
        self.environment = environment or Atmosphere()

        self.positions = np.array(positions, dtype=np.float64)
        if velocities is None:
            velocities = np.zeros((n, 3))
        self.velocities = np.array(velocities, dtype=np.float64)
        if self.positions.shape != (n, 3) or self.velocities.shape != (n, 3):
            raise ConfigurationError(
                f"Tether arrays must be shape ({n}, 3), got "
                f"{self.positions.shape} and {self.velocities.shape}"
            )

        # Segment endpoints index the anchor-extended arrays (anchor = row 0)
        junction = n - 2
        self._seg_a = np.array(list(range(n - 2)) + [junction, junction], dtype=np.int64)
        self._seg_b = np.array(list(range(1, n - 1)) + [n - 1, n], dtype=np.int64)
        self._rest = np.concatenate([
            np.full(n - 2, properties.main_segment_length),
            np.full(2, properties.bridle_length),
        ])

        # Half of each segment's mass goes to each end
        extended_masses = np.zeros(n + 1)
        segment_masses = properties.linear_density * self._rest
        np.add.at(extended_masses, self._seg_a, 0.5 * segment_masses)
        np.add.at(extended_masses, self._seg_b, 0.5 * segment_masses)
        self.masses = extended_masses[1:]

        self.degenerate_segments = 0
        self._tensions = np.zeros(len(self._rest))
        self._forces = self._compute_forces()

    @classmethod
    def from_kite(
        cls,
        properties: TetherProperties,
        attachment_points: AttachmentPointState,
        environment: Atmosphere | None = None,
        angular_velocity: NDArray[np.float64] | None = None,
    ) -> "Tether":
        """Create a straight tether ending at the kite.

        The junction sits on the line from the attachment midpoint toward
        the anchor, one bridle length from each attachment point (as far as
        the attachment separation allows). Main-line points are spaced
        evenly between anchor and junction. The main line is motionless, or
        turns rigidly about the anchor at `angular_velocity` [rad/s, world
        frame] when given.
        """
        n = properties.num_points
        anchor = properties.anchor
        ends = attachment_points.positions
        midpoint = attachment_points.midpoint

        to_anchor = anchor - midpoint
        distance = np.linalg.norm(to_anchor)
        direction = to_anchor / distance if distance > MIN_SEGMENT_LENGTH else np.zeros(3)
        half_span = 0.5 * np.linalg.norm(ends[0] - ends[1])
        reach = math.sqrt(max(properties.bridle_length**2 - half_span**2, 0.0))
        junction = midpoint + reach * direction

        fractions = np.arange(1, n - 1) / (n - 2)
        main = anchor + fractions[:, None] * (junction - anchor)

        positions = np.vstack([main, ends])
        if angular_velocity is None:
            main_velocities = np.zeros((n - 2, 3))
        else:
            main_velocities = np.cross(angular_velocity, main - anchor)
        velocities = np.vstack([main_velocities, attachment_points.velocities])
        return cls(properties, positions, velocities, environment)

    @property
    def junction_index(self) -> int:
        """Index of the point where the two bridles meet."""
        return self.properties.num_points - 3

    # -------------------------------------------------------------------------
    # Force evaluation
    # -------------------------------------------------------------------------

    def _compute_forces(self) -> NDArray[np.float64]:
        """Tension, drag and gravity on every point at the current state."""
        props = self.properties
        env = self.environment
        n = props.num_points

        ext_pos = np.vstack([props.anchor, self.positions])
        ext_vel = np.vstack([np.zeros(3), self.velocities])
        forces = np.zeros((n + 1, 3))

        altitude = float(np.mean(self.positions[:, 2]))
        drag_factor = 0.5 * env.density_at(altitude) * props.drag_coefficient * props.diameter

        degenerate = _accumulate_segment_forces(
            ext_pos, ext_vel, self._seg_a, self._seg_b, self._rest,
            props.stiffness, props.damping, drag_factor,
            env.wind[0], env.wind[1], env.wind[2],
            forces, self._tensions, MIN_SEGMENT_LENGTH,
        )
        if degenerate:
            self.degenerate_segments += degenerate
            logger.debug("Tether skipped %d near-zero-length segments", degenerate)

        return forces[1:] + self.masses[:, None] * env.gravity_vector

    @beartype
    def update_tether_position_and_forces(self, dt: float) -> None:
        """Advance the free tether points by one sub-step.

        Forces are evaluated with the bridle ends where the kite last left
        them; the bridle ends themselves are not moved here.
        """
        self._forces = self._compute_forces()
        _integrate_points(
            self.positions, self.velocities, self._forces, self.masses,
            self.properties.num_points - 2, dt,
        )

    def kite_tether_forces(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """World-frame force the tether exerts on each attachment point [N]."""
        return self._forces[-2].copy(), self._forces[-1].copy()

    def get_kite_tether_mass(self) -> float:
        """Tether mass carried by the kite at its attachment points [kg]."""
        return float(self.masses[-2] + self.masses[-1])

    @beartype
    def update_kite_tether_state(self, attachment_points: AttachmentPointState) -> None:
        """Pin the bridle ends to the kite's attachment points."""
        self.positions[-2:] = attachment_points.positions
        self.velocities[-2:] = attachment_points.velocities

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def segment_tensions(self) -> NDArray[np.float64]:
        """Tension of every segment at the last force evaluation [N].

        Order: main line from the anchor outward, then the two bridles.
        """
        return self._tensions.copy()

    def segment_lengths(self) -> NDArray[np.float64]:
        """Current length of every segment [m]."""
        ext_pos = np.vstack([self.properties.anchor, self.positions])
        return np.linalg.norm(ext_pos[self._seg_b] - ext_pos[self._seg_a], axis=1)

    def energy(self) -> float:
        """Kinetic + gravitational + elastic energy of the tether [J]."""
        kinetic = 0.5 * np.sum(self.masses * np.sum(self.velocities**2, axis=1))
        potential = np.sum(self.masses * self.environment.gravity * self.positions[:, 2])
        stretch = np.maximum(self.segment_lengths() - self._rest, 0.0)
        elastic = 0.5 * self.properties.stiffness * np.sum(stretch**2)
        return float(kinetic + potential + elastic)

    def max_stable_dt(self) -> float:
        """Largest sub-step for which explicit integration stays stable [s].

        Uses a Gershgorin bound on the highest spring frequency of the free
        points: omega_max^2 <= max_i 2 * sum(k) / m_i.
        """
        props = self.properties
        n = props.num_points
        attached = np.zeros(n + 1)
        np.add.at(attached, self._seg_a, 1.0)
        np.add.at(attached, self._seg_b, 1.0)
        free = slice(1, n - 1)
        omega_sq = np.max(2.0 * props.stiffness * attached[free] / self.masses[: n - 2])
        if not omega_sq > 0:
            return math.inf
        # Damping shortens the bound for semi-implicit Euler
        zeta_term = props.damping * np.max(attached[free] / self.masses[: n - 2])
        return float(2.0 / (math.sqrt(omega_sq) + zeta_term))

    @beartype
    def stable_substep_limit(self, frame_dt: float) -> int:
        """Minimum number of sub-steps per frame of `frame_dt` seconds."""
        return max(1, math.ceil(frame_dt / self.max_stable_dt()))

    # -------------------------------------------------------------------------
    # State transfer
    # -------------------------------------------------------------------------

    def get_state(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Copies of (positions, velocities)."""
        return self.positions.copy(), self.velocities.copy()

    @beartype
    def set_state(
        self,
        positions: NDArray[np.float64],
        velocities: NDArray[np.float64],
    ) -> None:
        """Overwrite all point positions and velocities."""
        n = self.properties.num_points
        if positions.shape != (n, 3) or velocities.shape != (n, 3):
            raise ValueError(
                f"Tether arrays must be shape ({n}, 3), got "
                f"{positions.shape} and {velocities.shape}"
            )
        self.positions = positions.astype(np.float64, copy=True)
        self.velocities = velocities.astype(np.float64, copy=True)
        self._forces = self._compute_forces()
