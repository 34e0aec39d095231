"""Position control for the kite.

Position controllers sit between guidance and the attitude loop: they turn
a target point into an `AttitudeSetpoint` for the active attitude
controller.

- FixedWingPositionController: lateral-acceleration steering on the tether
  sphere. The acceleration toward the target sets how far the lift vector
  is rolled, and the attitude follows the air-relative velocity at the trim
  angle of attack.
- VTOLPositionController: PID on position error giving a desired
  acceleration. The thrust axis (body x) is aligned with the
  gravity-compensated acceleration, and the part of it the current thrust
  axis can deliver sets a thrust target.

Example:
    >>> from autopilot.control import FixedWingPositionController
    >>>
    >>> steering = FixedWingPositionController()
    >>> setpoint = steering.compute(
    ...     kite.state, target.point, anchor, air_velocity,
    ...     lift_acceleration=50.0, gravity_vector=np.array([0.0, 0.0, -9.81]),
    ...     dt=0.0015,
    ... )
    >>> moment = attitude_controller.compute(setpoint, kite.state, dt=0.0015)
"""

import math
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from autopilot.control.attitude import AttitudeSetpoint
from kitesim.dynamics.state import KiteState, quaternion_from_axes, quaternion_to_dcm
from kitesim.vehicle.aerodynamics import TRIM_ALPHA


def wing_attitude(
    air_velocity: NDArray[np.float64],
    radial: NDArray[np.float64],
    roll: float,
    alpha: float,
) -> NDArray[np.float64]:
    """Attitude flying into `air_velocity` at angle of attack `alpha`.

    With zero `roll` the wing normal lies in the plane of the air velocity
    and the tether direction `radial`, on the side away from the anchor.
    A positive `roll` turns the normal toward the kite's left.

    Args:
        air_velocity: Velocity relative to the air, world frame [m/s]
        radial: Unit vector from the anchor to the kite
        roll: Roll of the wing normal about the air velocity [rad]
        alpha: Nose-up angle between the chord and the air velocity [rad]

    Returns:
        Attitude quaternion [q0, q1, q2, q3]
    """
    level = quaternion_to_dcm(quaternion_from_axes(air_velocity, radial))
    forward, left, normal = level[:, 0], level[:, 1], level[:, 2]

    normal = math.cos(roll) * normal + math.sin(roll) * left
    body_x = math.cos(alpha) * forward + math.sin(alpha) * normal
    body_z = -math.sin(alpha) * forward + math.cos(alpha) * normal
    return quaternion_from_axes(body_x, body_z)


# =============================================================================
# Fixed-Wing Steering
# =============================================================================


@dataclass
class FixedWingPositionController:
    """Lateral-acceleration steering toward a target point on the tether sphere.

    The kite is held on a sphere around the anchor, so steering happens in
    the plane tangent to it. With V the tangential ground speed, L the
    distance to the target and eta the angle between the velocity and the
    line to the target, both projected on the tangent plane:

        a_cmd = 2 * V^2 * sin(eta) / L

    A target behind the kite gets the full-deflection demand toward its
    side. Lift supplies a_cmd less the sideways share of gravity, which sets
    the roll of the lift vector out of the radial plane:

        sin(psi) = (a_cmd - g . e_lat) / a_lift

    The rate feedforward is the turn rate of the velocity vector while
    following the sphere and turning at a_cmd.

    Attributes:
        trim_alpha: Wing angle of attack the attitude is built around [rad]
        max_roll: Largest roll of the lift vector out of the radial plane [rad]
        min_speed: Speed floor for the guidance terms [m/s]
        min_distance: Floor on the guidance distance L [m]
        max_rate: Rate feedforward limit [rad/s]
        rate_limit: Slew limit on the rate feedforward [rad/s^2]
    """
    trim_alpha: float = TRIM_ALPHA
    max_roll: float = np.radians(55.0)
    min_speed: float = 2.0
    min_distance: float = 1.0
    max_rate: float = np.radians(90.0)
    rate_limit: float = np.radians(720.0)

    _last_rates: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(3), init=False, repr=False
    )
    _acceleration: float = field(default=0.0, init=False, repr=False)

    @property
    def lateral_acceleration(self) -> float:
        """Most recent a_cmd, positive to the kite's left [m/s^2]."""
        return self._acceleration

    def compute(
        self,
        state: KiteState,
        target: NDArray[np.float64],
        anchor: NDArray[np.float64],
        air_velocity: NDArray[np.float64],
        lift_acceleration: float,
        gravity_vector: NDArray[np.float64],
        dt: float,
    ) -> AttitudeSetpoint:
        """Attitude setpoint with rate feedforward steering toward `target`.

        Args:
            state: Current kite state
            target: Target point in world frame [m]
            anchor: Center of the tether sphere [m]
            air_velocity: Kite velocity relative to the air [m/s]
            lift_acceleration: Acceleration the wing lift can give at the
                current airspeed and trim angle of attack [m/s^2]
            gravity_vector: Gravity acceleration [m/s^2]
            dt: Time step for rate limiting [s]
        """
        offset = state.position - anchor
        radius = float(np.linalg.norm(offset))
        if radius < 1e-6:
            return AttitudeSetpoint(rates=self._last_rates.copy())
        radial = offset / radius

        velocity = state.velocity - np.dot(state.velocity, radial) * radial
        speed = float(np.linalg.norm(velocity))
        if speed > 1e-6:
            along = velocity / speed
        else:
            nose = state.forward - np.dot(state.forward, radial) * radial
            norm = float(np.linalg.norm(nose))
            if norm < 1e-6:
                return AttitudeSetpoint(rates=self._last_rates.copy())
            along = nose / norm
        speed = max(speed, self.min_speed)
        lateral = np.cross(radial, along)

        to_target = target - state.position
        distance = max(float(np.linalg.norm(to_target)), self.min_distance)
        sin_eta = float(np.dot(to_target, lateral))
        cos_eta = float(np.dot(to_target, along))
        norm = math.hypot(sin_eta, cos_eta)
        if norm > 1e-9:
            sin_eta, cos_eta = sin_eta / norm, cos_eta / norm
        else:
            sin_eta, cos_eta = 0.0, 1.0
        if cos_eta < 0:
            sin_eta = 1.0 if sin_eta >= 0 else -1.0

        accel = 2.0 * speed**2 * sin_eta / distance
        self._acceleration = accel

        limit = math.sin(self.max_roll)
        needed = accel - float(np.dot(gravity_vector, lateral))
        sin_roll = float(np.clip(needed / max(lift_acceleration, 1e-6), -limit, limit))

        heading = air_velocity if np.linalg.norm(air_velocity) > 1e-6 else along
        attitude = wing_attitude(heading, radial, math.asin(sin_roll), self.trim_alpha)

        # Velocity turn rate: around the sphere plus the commanded turn
        turn = accel * lateral - speed**2 / radius * radial
        rates = state.dcm_world_to_body @ (np.cross(along, turn) / speed)
        rates = np.clip(rates, -self.max_rate, self.max_rate)

        # Rate limiting
        if dt > 0:
            max_delta = self.rate_limit * dt
            rates = self._last_rates + np.clip(rates - self._last_rates, -max_delta, max_delta)

        self._last_rates = rates
        return AttitudeSetpoint(rates=rates.copy(), attitude=attitude)

    def reset(self) -> None:
        """Reset controller state."""
        self._last_rates = np.zeros(3)
        self._acceleration = 0.0


# =============================================================================
# VTOL Hover
# =============================================================================


@dataclass
class VTOLPositionController:
    """Hover position hold through thrust-axis pointing.

    The acceleration demand is limited vertical component first: a climb or
    a stop of a descent keeps its full share of `max_acceleration`, and the
    horizontal demand gets what is left.

    Attributes:
        kp: Position error gain [1/s^2]
        ki: Integral gain [1/s^3]
        kd: Velocity error gain [1/s]
        integral_limit: Bound on each integrated position error component [m*s]
        max_tilt: Largest angle between thrust axis and vertical [rad]
        max_acceleration: Limit on the commanded acceleration magnitude [m/s^2]
    """
    kp: float = 1.2
    ki: float = 0.2
    kd: float = 1.8
    integral_limit: float = 20.0
    max_tilt: float = np.radians(35.0)
    max_acceleration: float = 8.0

    _integral: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(3), init=False, repr=False
    )

    def compute(
        self,
        state: KiteState,
        target: NDArray[np.float64],
        mass: float,
        gravity: float,
        heading: NDArray[np.float64],
        dt: float,
        target_velocity: NDArray[np.float64] | None = None,
    ) -> tuple[AttitudeSetpoint, float]:
        """Attitude setpoint and thrust target holding `target`.

        The thrust target is the commanded force along the current thrust
        axis, so a kite still pointing away from the demand is not driven
        further along its nose.

        Args:
            state: Current kite state
            target: Hover point in world frame [m]
            mass: Mass the thrust must carry [kg]
            gravity: Gravity magnitude [m/s^2]
            heading: World direction the wing normal (body z) should face
            dt: Time step [s]
            target_velocity: Desired velocity at the hover point [m/s]

        Returns:
            Tuple of (attitude setpoint, thrust target [N])
        """
        if target_velocity is None:
            target_velocity = np.zeros(3)

        error = target - state.position
        if dt > 0:
            self._integral = np.clip(
                self._integral + error * dt, -self.integral_limit, self.integral_limit
            )

        accel = (
            self.kp * error
            + self.ki * self._integral
            + self.kd * (target_velocity - state.velocity)
        )

        # Vertical first, horizontal gets the remainder
        limit = self.max_acceleration
        accel[2] = min(max(accel[2], -limit), limit)
        room = math.sqrt(max(limit**2 - accel[2] ** 2, 0.0))
        horizontal = np.linalg.norm(accel[:2])
        if horizontal > room:
            accel[:2] *= room / horizontal

        # Gravity compensation, keeping some upward thrust
        command = accel + np.array([0.0, 0.0, gravity])
        command[2] = max(command[2], 0.2 * gravity)

        # Tilt limit
        horizontal = np.linalg.norm(command[:2])
        max_horizontal = command[2] * np.tan(self.max_tilt)
        if horizontal > max_horizontal:
            command[:2] *= max_horizontal / horizontal

        thrust = float(mass * max(np.dot(command, state.forward), 0.0))
        attitude = quaternion_from_axes(command, heading)
        return AttitudeSetpoint(attitude=attitude), thrust

    def reset(self) -> None:
        """Reset integrated position error."""
        self._integral = np.zeros(3)
