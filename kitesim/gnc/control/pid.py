"""PID controller implementation.

Provides the feedback-law primitive used by every control loop:
- Parallel form with a feedforward term
- Integral clamping for anti-windup
- Externally supplied or finite-difference derivative
- Fail-soft rejection of non-finite inputs

Gains live in a separate mutable `PIDGains` object that the controller holds
by reference, so a tuning surface can change them between calls without
touching controller memory.

Example:
    >>> from kitesim.gnc.control import PIDController, PIDGains
    >>>
    >>> gains = PIDGains(kp=2.0, ki=0.1, kd=0.02, kff=0.5)
    >>> ctrl = PIDController(gains=gains, integral_limit=1.0)
    >>>
    >>> error = target_roll_rate - actual_roll_rate
    >>> moment = ctrl.compute(error, feedforward_input=target_roll_rate, dt=0.0015)
    >>>
    >>> gains.kp = 4.0  # takes effect on the next compute()
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from beartype import beartype

logger = logging.getLogger(__name__)

# =============================================================================
# PID Gains
# =============================================================================


@beartype
@dataclass
class PIDGains:
    """PID controller gains.

    Attributes:
        kp: Proportional gain
        ki: Integral gain
        kd: Derivative gain
        kff: Feedforward gain
    """
    kp: float = 1.0
    ki: float = 0.0
    kd: float = 0.0
    kff: float = 0.0


# =============================================================================
# PID Controller
# =============================================================================


@beartype
@dataclass
class PIDController:
    """General-purpose PID controller with feedforward.

    Implements the parallel form:
        u = kp * e + ki * integral(e) + kd * de/dt + kff * ff

    Attributes:
        gains: Gains object, shared with any tuning surface
        integral_limit: Symmetric bound on the accumulated integral
        rejected_inputs: Number of non-finite inputs replaced by zero
    """
    gains: PIDGains = field(default_factory=PIDGains)
    integral_limit: float = 1.0

    # Internal state
    integral: float = field(default=0.0, init=False)
    prev_error: float | None = field(default=None, init=False)
    rejected_inputs: int = field(default=0, init=False)

    @classmethod
    def from_gains(
        cls,
        kp: float = 1.0,
        ki: float = 0.0,
        kd: float = 0.0,
        kff: float = 0.0,
        integral_limit: float = 1.0,
    ) -> "PIDController":
        """Create controller with its own gains object."""
        return cls(
            gains=PIDGains(kp=kp, ki=ki, kd=kd, kff=kff),
            integral_limit=integral_limit,
        )

    @beartype
    def reset(self) -> None:
        """Reset controller memory (integral and previous error)."""
        self.integral = 0.0
        self.prev_error = None

    def _finite_or_zero(self, value: float, name: str) -> float:
        if math.isfinite(value):
            return value
        self.rejected_inputs += 1
        logger.debug("PID rejected non-finite %s input: %r", name, value)
        return 0.0

    @beartype
    def compute(
        self,
        error: float,
        derivative_input: float | None = None,
        feedforward_input: float = 0.0,
        dt: float = 0.0,
    ) -> float:
        """Compute PID control output.

        Args:
            error: Current error (setpoint - measurement)
            derivative_input: Rate of change of the error. When None, a
                finite difference against the previous error is used.
            feedforward_input: Signal multiplied by the feedforward gain
            dt: Time step [s]

        Returns:
            Control output
        """
        if not dt > 0:
            return 0.0

        error = self._finite_or_zero(error, "error")
        feedforward_input = self._finite_or_zero(feedforward_input, "feedforward")

        # Integral with anti-windup
        self.integral += error * dt
        self.integral = float(
            np.clip(self.integral, -self.integral_limit, self.integral_limit)
        )

        if derivative_input is None:
            if self.prev_error is None:
                derivative = 0.0
            else:
                derivative = (error - self.prev_error) / dt
        else:
            derivative = self._finite_or_zero(derivative_input, "derivative")

        self.prev_error = error

        g = self.gains
        return float(
            g.kp * error
            + g.ki * self.integral
            + g.kd * derivative
            + g.kff * feedforward_input
        )
