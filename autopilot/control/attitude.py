"""Attitude control for the kite.

Two controller variants share one interface (`AttitudeControl`): each turns
an `AttitudeSetpoint` into a body-frame moment through per-axis rate PID
loops. Both turn the quaternion error into rate demands on all three axes
and add any rate feedforward carried by the setpoint:

- FixedWingAttitudeController: tuned for forward flight, where the tail
  surfaces add stiffness and damping and the rate feedforward comes from
  guidance.
- VTOLAttitudeController: tuned for hover and transition, with softer rate
  loops and more moment authority.

Body axes are x forward, y left, z up, so a positive pitch rate lowers the
nose and a positive yaw rate turns the nose left.

This is flight software - designed to run on the vehicle.

Example:
    >>> from autopilot.control import AttitudeSetpoint, FixedWingAttitudeController
    >>>
    >>> controller = FixedWingAttitudeController()
    >>> setpoint = AttitudeSetpoint(attitude=hold_quaternion)
    >>> moment = controller.compute(setpoint, kite.state, dt=0.0015)
"""

from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from kitesim.dynamics.state import KiteState, quaternion_conjugate, quaternion_multiply
from kitesim.gnc.control.pid import PIDController, PIDGains

# =============================================================================
# Setpoint and Interface
# =============================================================================


@dataclass
class AttitudeSetpoint:
    """Target for the attitude loop.

    Attributes:
        rates: Body rate demand [p, q, r] [rad/s], used as feedforward when
            an attitude is also given
        attitude: Target attitude quaternion [q0, q1, q2, q3]
    """
    rates: NDArray[np.float64] | None = None
    attitude: NDArray[np.float64] | None = None


class AttitudeControl(Protocol):
    """Attitude/rate controller capability selected by the flight mode."""

    def compute(
        self,
        setpoint: AttitudeSetpoint,
        state: KiteState,
        dt: float,
    ) -> NDArray[np.float64]: ...

    def reset(self) -> None: ...


def attitude_error(state: KiteState, target: NDArray[np.float64]) -> NDArray[np.float64]:
    """Small-angle rotation vector from current to target attitude, body frame [rad]."""
    q_error = quaternion_multiply(quaternion_conjugate(state.quaternion), target)

    # Ensure short path (positive scalar part)
    if q_error[0] < 0:
        q_error = -q_error

    return 2.0 * q_error[1:4]


# =============================================================================
# Rate Loops
# =============================================================================


@dataclass
class RateLoops:
    """Three rate PID loops sharing limits.

    The gains objects are held by reference, so changing e.g.
    `roll_rate.kp` takes effect on the next call.
    """
    roll_rate: PIDGains
    pitch_rate: PIDGains
    yaw_rate: PIDGains
    integral_limit: float = 0.5
    max_moment: float = 5.0

    _roll: PIDController = field(init=False, repr=False)
    _pitch: PIDController = field(init=False, repr=False)
    _yaw: PIDController = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._roll = PIDController(gains=self.roll_rate, integral_limit=self.integral_limit)
        self._pitch = PIDController(gains=self.pitch_rate, integral_limit=self.integral_limit)
        self._yaw = PIDController(gains=self.yaw_rate, integral_limit=self.integral_limit)

    @property
    def controllers(self) -> tuple[PIDController, PIDController, PIDController]:
        return self._roll, self._pitch, self._yaw

    @property
    def rejected_inputs(self) -> int:
        return sum(pid.rejected_inputs for pid in self.controllers)

    def compute(
        self,
        rates: NDArray[np.float64],
        omega: NDArray[np.float64],
        dt: float,
    ) -> NDArray[np.float64]:
        """Moment driving body rates `omega` toward `rates` [N*m]."""
        moment = np.array([
            pid.compute(
                float(rates[i] - omega[i]),
                feedforward_input=float(rates[i]),
                dt=dt,
            )
            for i, pid in enumerate(self.controllers)
        ])
        return np.clip(moment, -self.max_moment, self.max_moment)

    def reset(self) -> None:
        for pid in self.controllers:
            pid.reset()


# =============================================================================
# Fixed-Wing Attitude Controller
# =============================================================================


@dataclass
class FixedWingAttitudeController:
    """Three-axis attitude hold over rate PIDs, tuned for forward flight.

    Attributes:
        roll_rate: Roll rate loop gains (live-tunable)
        pitch_rate: Pitch rate loop gains
        yaw_rate: Yaw rate loop gains
        attitude_gain: Attitude error to rate demand per axis [1/s]
        max_rate: Rate demand limit [rad/s]
        max_moment: Moment limit per axis [N*m]
        integral_limit: Bound on each rate loop integral [rad]
    """
    roll_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=2.5, ki=0.5, kd=0.02, kff=0.5)
    )
    pitch_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=2.0, ki=0.5, kd=0.0, kff=0.5)
    )
    yaw_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=2.0, ki=0.5, kd=0.0, kff=0.3)
    )
    attitude_gain: NDArray[np.float64] = field(
        default_factory=lambda: np.array([8.0, 6.0, 6.0])
    )
    max_rate: float = np.radians(120.0)
    max_moment: float = 10.0
    integral_limit: float = 4.0

    _loops: RateLoops = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._loops = RateLoops(
            self.roll_rate, self.pitch_rate, self.yaw_rate,
            integral_limit=self.integral_limit, max_moment=self.max_moment,
        )

    @property
    def rate_loops(self) -> RateLoops:
        return self._loops

    def compute(
        self,
        setpoint: AttitudeSetpoint,
        state: KiteState,
        dt: float,
    ) -> NDArray[np.float64]:
        """Compute the commanded moment in body frame [N*m].

        Args:
            setpoint: Rate and/or attitude target
            state: Current kite state
            dt: Time step [s]
        """
        rates = np.zeros(3) if setpoint.rates is None else np.array(setpoint.rates, dtype=np.float64)

        if setpoint.attitude is not None:
            rates += self.attitude_gain * attitude_error(state, setpoint.attitude)

        rates = np.clip(rates, -self.max_rate, self.max_rate)
        return self._loops.compute(rates, state.angular_velocity, dt)

    def reset(self) -> None:
        """Reset all rate loop memory."""
        self._loops.reset()


# =============================================================================
# VTOL Attitude Controller
# =============================================================================


@dataclass
class VTOLAttitudeController(FixedWingAttitudeController):
    """The same attitude loop with the hover tuning.

    Without airflow over the tail there is no aerodynamic damping, so the
    rate loops are softer, derivative action is added and the moment limit
    is higher to turn the kite nose-up out of forward flight.
    """
    roll_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=1.5, ki=0.2, kd=0.05)
    )
    pitch_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=1.5, ki=0.2, kd=0.05)
    )
    yaw_rate: PIDGains = field(
        default_factory=lambda: PIDGains(kp=1.0, ki=0.1, kd=0.02)
    )
    attitude_gain: NDArray[np.float64] = field(
        default_factory=lambda: np.array([6.0, 6.0, 3.0])
    )
    max_rate: float = np.radians(90.0)
    max_moment: float = 12.0
    integral_limit: float = 0.5
