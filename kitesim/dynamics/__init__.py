"""Dynamics module for the kite rigid body.

This module provides the state representation, quaternion utilities and the
semi-implicit Euler step used by the kite body.

Example:
    >>> from kitesim.dynamics import KiteState, semi_implicit_step
    >>> import numpy as np
    >>>
    >>> state = KiteState.at_rest(np.array([70.0, 0.0, 10.0]))
    >>> acc = np.array([0.0, 0.0, -9.81])
    >>> pos, vel, q, omega = semi_implicit_step(state, acc, np.zeros(3), 0.0015)
"""

from kitesim.dynamics.rigid_body import (
    euler_rotational_dynamics,
    quaternion_derivative,
    semi_implicit_step,
)
from kitesim.dynamics.state import (
    AttachmentPointState,
    KiteState,
    axis_angle_quaternion,
    dcm_to_quaternion,
    normalize_quaternion,
    quaternion_conjugate,
    quaternion_from_axes,
    quaternion_multiply,
    quaternion_to_dcm,
)

__all__ = [
    # State
    "KiteState",
    "AttachmentPointState",
    # Quaternion utilities
    "quaternion_to_dcm",
    "dcm_to_quaternion",
    "quaternion_from_axes",
    "axis_angle_quaternion",
    "quaternion_multiply",
    "quaternion_conjugate",
    "normalize_quaternion",
    # Rigid body dynamics
    "quaternion_derivative",
    "euler_rotational_dynamics",
    "semi_implicit_step",
]
