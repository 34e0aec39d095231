"""Rigid body equations of motion and semi-implicit Euler stepping.

The kite body is integrated with the same explicit, fixed-step scheme as
the tether so that the two can be coupled sub-step by sub-step:

- Newton's second law for translational motion: F = m * a
- Euler's equations for rotational motion: M = I * alpha + omega x (I * omega)
- Quaternion kinematics for attitude propagation

Velocities are advanced first and the new velocities are used to advance
position and attitude (symplectic / semi-implicit Euler). The quaternion is
renormalized after every step.

Example:
    >>> from kitesim.dynamics import semi_implicit_step
    >>>
    >>> pos, vel, q, omega = semi_implicit_step(
    ...     state, acceleration, angular_acceleration, dt=0.0015,
    ... )
"""

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from kitesim.dynamics.state import KiteState, normalize_quaternion

# =============================================================================
# Rigid Body Dynamics
# =============================================================================


@beartype
def quaternion_derivative(
    q: NDArray[np.float64],
    omega: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Compute quaternion time derivative from angular velocity.

    Args:
        q: Current quaternion [q0, q1, q2, q3]
        omega: Angular velocity in body frame [p, q, r] [rad/s]

    Returns:
        Quaternion derivative dq/dt
    """
    p, qb, r = omega  # Using qb to avoid confusion with quaternion q

    # Quaternion kinematics matrix
    omega_matrix = np.array([
        [0.0, -p, -qb, -r],
        [p, 0.0, r, -qb],
        [qb, -r, 0.0, p],
        [r, qb, -p, 0.0],
    ])

    return 0.5 * omega_matrix @ q


@beartype
def euler_rotational_dynamics(
    omega: NDArray[np.float64],
    moment: NDArray[np.float64],
    inertia: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Compute angular acceleration from Euler's equations.

    Euler's equations: I * omega_dot = M - omega x (I * omega)

    Args:
        omega: Angular velocity in body frame [p, q, r] [rad/s]
        moment: Applied moment in body frame [Mx, My, Mz] [N*m]
        inertia: 3x3 inertia tensor [kg*m^2]

    Returns:
        Angular acceleration [p_dot, q_dot, r_dot] [rad/s^2]
    """
    I_omega = inertia @ omega
    gyroscopic = np.cross(omega, I_omega)

    return np.linalg.solve(inertia, moment - gyroscopic)


# =============================================================================
# Integration
# =============================================================================


@beartype
def semi_implicit_step(
    state: KiteState,
    acceleration: NDArray[np.float64],
    angular_acceleration: NDArray[np.float64],
    dt: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Advance pose and rates by one semi-implicit Euler step.

    Args:
        state: Current kite state
        acceleration: Linear acceleration in world frame [m/s^2]
        angular_acceleration: Angular acceleration in body frame [rad/s^2]
        dt: Time step [s]

    Returns:
        Tuple of (position, velocity, quaternion, angular_velocity) at t + dt
    """
    velocity = state.velocity + acceleration * dt
    position = state.position + velocity * dt

    angular_velocity = state.angular_velocity + angular_acceleration * dt
    q_dot = quaternion_derivative(state.quaternion, angular_velocity)
    quaternion = normalize_quaternion(state.quaternion + q_dot * dt)

    return position, velocity, quaternion, angular_velocity
