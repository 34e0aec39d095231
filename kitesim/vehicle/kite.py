"""Kite rigid body.

Combines aerodynamic, thrust, gravity and tether loads into an updated pose
and rates every sub-step, and exposes the kinematics of the two tether
attachment points to the tether engine.

The kite does not hold a reference to the tether. The tether's force on the
attachment points and its added mass are passed in explicitly, and the
resulting attachment-point state is handed back through
`get_attachment_points_state()`.

Example:
    >>> from kitesim.vehicle import Kite, KiteProperties
    >>> from kitesim.dynamics import KiteState
    >>>
    >>> kite = Kite(KiteProperties(), KiteState.at_rest(np.array([70.0, 0.0, 0.0])))
    >>> kite.update_kite_position_and_forces(
    ...     dt, tether.kite_tether_forces(), tether.get_kite_tether_mass(), moment,
    ... )
    >>> tether.update_kite_tether_state(kite.get_attachment_points_state())
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from kitesim.dynamics.rigid_body import euler_rotational_dynamics, semi_implicit_step
from kitesim.dynamics.state import (
    AttachmentPointState,
    KiteState,
    axis_angle_quaternion,
    normalize_quaternion,
    quaternion_multiply,
)
from kitesim.environment.atmosphere import Atmosphere
from kitesim.errors import ConfigurationError
from kitesim.vehicle.aerodynamics import (
    SurfaceProperties,
    aerodynamic_loads,
    default_kite_surfaces,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Kite Properties
# =============================================================================


@beartype
@dataclass
class KiteProperties:
    """Mass, geometry and actuator limits of the kite.

    Attributes:
        mass: Kite mass [kg]
        inertia: 3x3 inertia tensor in body frame [kg*m^2]
        surfaces: Aerodynamic surfaces
        attachment_points: Body-frame tether attachment offsets, shape (2, 3) [m]
        max_thrust: Upper thrust limit [N]
        max_deflection: Rudder/elevator deflection limit [rad]
    """
    mass: float = 2.0
    inertia: NDArray[np.float64] = field(
        default_factory=lambda: np.diag([0.3, 0.2, 0.45])
    )
    surfaces: list[SurfaceProperties] = field(default_factory=default_kite_surfaces)
    attachment_points: NDArray[np.float64] = field(
        default_factory=lambda: np.array([
            [0.0, 0.5, -0.05],
            [0.0, -0.5, -0.05],
        ])
    )
    max_thrust: float = 40.0
    max_deflection: float = float(np.radians(30.0))

    def __post_init__(self) -> None:
        """Reject non-physical configurations."""
        self.inertia = np.asarray(self.inertia, dtype=np.float64)
        self.attachment_points = np.asarray(self.attachment_points, dtype=np.float64)

        if not self.mass > 0:
            raise ConfigurationError(f"Kite mass must be positive, got {self.mass}")
        if self.inertia.shape != (3, 3):
            raise ConfigurationError(f"Inertia must be shape (3, 3), got {self.inertia.shape}")
        if not np.all(np.linalg.eigvalsh(0.5 * (self.inertia + self.inertia.T)) > 0):
            raise ConfigurationError("Inertia tensor must be positive definite")
        if self.attachment_points.shape != (2, 3):
            raise ConfigurationError(
                f"Attachment points must be shape (2, 3), got {self.attachment_points.shape}"
            )
        if self.max_thrust < 0:
            raise ConfigurationError(f"Max thrust must be non-negative, got {self.max_thrust}")
        if self.max_deflection < 0:
            raise ConfigurationError(
                f"Max deflection must be non-negative, got {self.max_deflection}"
            )

    @property
    def attachment_half_span(self) -> float:
        """Half the distance between the two attachment points [m]."""
        return float(0.5 * np.linalg.norm(
            self.attachment_points[0] - self.attachment_points[1]
        ))


# =============================================================================
# Kite Body
# =============================================================================


@beartype
class Kite:
    """Rigid-body kite integrated with semi-implicit Euler.

    Attributes:
        properties: Kite configuration
        state: Current pose, rates and actuator positions
        environment: Gravity, density and wind
        rejected_moments: Count of non-finite commanded moments replaced by zero
    """

    def __init__(
        self,
        properties: KiteProperties,
        state: KiteState,
        environment: Atmosphere | None = None,
    ) -> None:
        self.properties = properties
        self.state = state.copy()
        self.environment = environment or Atmosphere()
        self.rejected_moments = 0

        # Loads from the most recent step, for telemetry
        self.aero_force = np.zeros(3)
        self.aero_moment = np.zeros(3)

    @property
    def airspeed(self) -> float:
        """Speed relative to the air [m/s]."""
        return float(np.linalg.norm(
            self.environment.air_relative_velocity(self.state.velocity)
        ))

    @beartype
    def update_kite_position_and_forces(
        self,
        dt: float,
        tether_forces: tuple[NDArray[np.float64], NDArray[np.float64]],
        tether_added_mass: float,
        commanded_moment: NDArray[np.float64],
    ) -> None:
        """Advance the kite by one sub-step.

        Args:
            dt: Time step [s]
            tether_forces: World-frame forces on the two attachment points [N]
            tether_added_mass: Tether inertia lumped at the kite [kg]
            commanded_moment: Control moment from the autopilot, body frame [N*m]
        """
        state = self.state
        props = self.properties
        env = self.environment

        if not np.all(np.isfinite(commanded_moment)):
            self.rejected_moments += 1
            logger.debug("Kite rejected non-finite commanded moment: %s", commanded_moment)
            commanded_moment = np.zeros(3)

        dcm = state.dcm_body_to_world
        air_velocity_body = dcm.T @ env.air_relative_velocity(state.velocity)

        aero_force, aero_moment = aerodynamic_loads(
            props.surfaces,
            air_velocity_body,
            state.angular_velocity,
            state.rudder,
            state.elevator,
            env.density_at(state.altitude),
        )
        self.aero_force = aero_force
        self.aero_moment = aero_moment

        thrust_body = np.array([state.thrust, 0.0, 0.0])

        # Tether loads act at the attachment offsets
        tether_force = tether_forces[0] + tether_forces[1]
        tether_moment = np.zeros(3)
        for offset, force in zip(props.attachment_points, tether_forces):
            tether_moment += np.cross(offset, dcm.T @ force)

        force_world = (
            dcm @ (aero_force + thrust_body)
            + tether_force
            + props.mass * env.gravity_vector
        )
        moment_body = commanded_moment + aero_moment + tether_moment

        acceleration = force_world / (props.mass + tether_added_mass)
        angular_acceleration = euler_rotational_dynamics(
            state.angular_velocity, moment_body, props.inertia,
        )

        position, velocity, quaternion, angular_velocity = semi_implicit_step(
            state, acceleration, angular_acceleration, dt,
        )
        state.position = position
        state.velocity = velocity
        state.quaternion = quaternion
        state.angular_velocity = angular_velocity

    def get_attachment_points_state(self) -> AttachmentPointState:
        """World-frame position and velocity of both attachment points."""
        state = self.state
        dcm = state.dcm_body_to_world
        offsets = self.properties.attachment_points

        positions = state.position + offsets @ dcm.T
        rotational = np.cross(state.angular_velocity, offsets)
        velocities = state.velocity + rotational @ dcm.T

        return AttachmentPointState(positions=positions, velocities=velocities)

    # -------------------------------------------------------------------------
    # Actuators
    # -------------------------------------------------------------------------

    @beartype
    def adjust_thrust_by(self, delta: float) -> None:
        """Change thrust by `delta` [N], clamped to [0, max_thrust]."""
        self.state.thrust = float(np.clip(
            self.state.thrust + delta, 0.0, self.properties.max_thrust
        ))

    @beartype
    def adjust_rudder_by(self, delta: float) -> None:
        """Change rudder deflection by `delta` [rad], clamped to the limit."""
        limit = self.properties.max_deflection
        self.state.rudder = float(np.clip(self.state.rudder + delta, -limit, limit))

    @beartype
    def adjust_elevator_by(self, delta: float) -> None:
        """Change elevator deflection by `delta` [rad], clamped to the limit."""
        limit = self.properties.max_deflection
        self.state.elevator = float(np.clip(self.state.elevator + delta, -limit, limit))

    @beartype
    def rotate_about_vertical(self, angle: float) -> None:
        """Rotate the whole kite about its body Z axis (ground handling)."""
        rotation = axis_angle_quaternion(np.array([0.0, 0.0, 1.0]), angle)
        self.state.quaternion = normalize_quaternion(
            quaternion_multiply(self.state.quaternion, rotation)
        )

    # -------------------------------------------------------------------------
    # State transfer
    # -------------------------------------------------------------------------

    def get_state(self) -> KiteState:
        """Get a copy of the current kite state."""
        return self.state.copy()

    @beartype
    def set_state(self, state: KiteState) -> None:
        """Overwrite pose and rates. Thrust and surface angles are kept."""
        self.state.position = state.position.copy()
        self.state.velocity = state.velocity.copy()
        self.state.quaternion = state.quaternion.copy()
        self.state.angular_velocity = state.angular_velocity.copy()
