"""Kite state representation and quaternion utilities.

The kite state contains:
- Position (3): [x, y, z] in world frame (z up)
- Velocity (3): [vx, vy, vz] in world frame
- Quaternion (4): [q0, q1, q2, q3] attitude (scalar-first)
- Angular velocity (3): [p, q, r] body rates in body frame
- Control surfaces: rudder and elevator deflection [rad]
- Thrust (1): propeller thrust along body X [N], never negative

Coordinate frames:
- World: x, y horizontal, z up, origin at the tether ground anchor
- Body: X forward (thrust axis), Y left (along the span), Z up (wing normal)

Quaternion convention:
- Scalar-first: q = [q0, q1, q2, q3] where q0 is the scalar part
- Rotates body-frame vectors into the world frame: v_world = R(q) @ v_body
- Kinematics: dq/dt = 0.5 * q ⊗ [0, omega_body]
"""

from dataclasses import dataclass

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

# =============================================================================
# Quaternion Utilities
# =============================================================================


@beartype
def normalize_quaternion(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalize a quaternion to unit length."""
    norm = np.linalg.norm(q)
    if not norm > 1e-10:
        return np.array([1.0, 0.0, 0.0, 0.0])
    return q / norm


@beartype
def quaternion_multiply(q1: NDArray[np.float64], q2: NDArray[np.float64]) -> NDArray[np.float64]:
    """Multiply two quaternions (Hamilton product).

    Args:
        q1: First quaternion [q0, q1, q2, q3]
        q2: Second quaternion [q0, q1, q2, q3]

    Returns:
        Product quaternion q1 * q2
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2

    return np.array([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
    ])


@beartype
def quaternion_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Compute quaternion conjugate (inverse for unit quaternions)."""
    return np.array([q[0], -q[1], -q[2], -q[3]])


@beartype
def axis_angle_quaternion(axis: NDArray[np.float64], angle: float) -> NDArray[np.float64]:
    """Quaternion for a rotation of `angle` [rad] about unit `axis`."""
    half = 0.5 * angle
    return np.concatenate([[np.cos(half)], np.sin(half) * axis])


@beartype
def quaternion_to_dcm(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to Direction Cosine Matrix (DCM).

    Args:
        q: Kite attitude quaternion [q0, q1, q2, q3]

    Returns:
        3x3 DCM whose columns are the body axes expressed in world frame
        (transforms body-frame vectors into world frame)
    """
    q = normalize_quaternion(q)
    q0, q1, q2, q3 = q

    return np.array([
        [1 - 2*(q2**2 + q3**2), 2*(q1*q2 - q0*q3), 2*(q1*q3 + q0*q2)],
        [2*(q1*q2 + q0*q3), 1 - 2*(q1**2 + q3**2), 2*(q2*q3 - q0*q1)],
        [2*(q1*q3 - q0*q2), 2*(q2*q3 + q0*q1), 1 - 2*(q1**2 + q2**2)],
    ])


@beartype
def dcm_to_quaternion(dcm: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert Direction Cosine Matrix to quaternion.

    Inverse of `quaternion_to_dcm`. Uses Shepperd's method for numerical
    stability.
    """
    trace = np.trace(dcm)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q0 = 0.25 / s
        q1 = (dcm[2, 1] - dcm[1, 2]) * s
        q2 = (dcm[0, 2] - dcm[2, 0]) * s
        q3 = (dcm[1, 0] - dcm[0, 1]) * s
    elif dcm[0, 0] > dcm[1, 1] and dcm[0, 0] > dcm[2, 2]:
        s = 2.0 * np.sqrt(1.0 + dcm[0, 0] - dcm[1, 1] - dcm[2, 2])
        q0 = (dcm[2, 1] - dcm[1, 2]) / s
        q1 = 0.25 * s
        q2 = (dcm[0, 1] + dcm[1, 0]) / s
        q3 = (dcm[0, 2] + dcm[2, 0]) / s
    elif dcm[1, 1] > dcm[2, 2]:
        s = 2.0 * np.sqrt(1.0 + dcm[1, 1] - dcm[0, 0] - dcm[2, 2])
        q0 = (dcm[0, 2] - dcm[2, 0]) / s
        q1 = (dcm[0, 1] + dcm[1, 0]) / s
        q2 = 0.25 * s
        q3 = (dcm[1, 2] + dcm[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + dcm[2, 2] - dcm[0, 0] - dcm[1, 1])
        q0 = (dcm[1, 0] - dcm[0, 1]) / s
        q1 = (dcm[0, 2] + dcm[2, 0]) / s
        q2 = (dcm[1, 2] + dcm[2, 1]) / s
        q3 = 0.25 * s

    q = np.array([q0, q1, q2, q3])
    return normalize_quaternion(q)


@beartype
def quaternion_from_axes(
    forward: NDArray[np.float64],
    up_hint: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Attitude whose body X points along `forward`, body Z toward `up_hint`.

    `up_hint` only needs a component perpendicular to `forward`; a parallel
    hint falls back to world Z (or world X when `forward` is vertical).
    """
    body_x = forward / np.linalg.norm(forward)
    body_z = up_hint - np.dot(up_hint, body_x) * body_x
    if np.linalg.norm(body_z) < 1e-6:
        fallback = np.array([0.0, 0.0, 1.0])
        if abs(body_x[2]) > 0.99:
            fallback = np.array([1.0, 0.0, 0.0])
        body_z = fallback - np.dot(fallback, body_x) * body_x
    body_z = body_z / np.linalg.norm(body_z)
    body_y = np.cross(body_z, body_x)
    return dcm_to_quaternion(np.column_stack([body_x, body_y, body_z]))


# =============================================================================
# State Classes
# =============================================================================


@beartype
@dataclass
class KiteState:
    """Rigid-body state of the kite plus its actuator positions.

    Attributes:
        position: [x, y, z] position in world frame [m]
        velocity: [vx, vy, vz] velocity in world frame [m/s]
        quaternion: [q0, q1, q2, q3] attitude quaternion (scalar-first)
        angular_velocity: [p, q, r] body angular rates [rad/s]
        rudder: Rudder deflection [rad] (positive yaws the nose right)
        elevator: Elevator deflection [rad] (positive pitches the nose up)
        thrust: Propeller thrust along body X [N]
    """
    position: NDArray[np.float64]
    velocity: NDArray[np.float64]
    quaternion: NDArray[np.float64]
    angular_velocity: NDArray[np.float64]
    rudder: float = 0.0
    elevator: float = 0.0
    thrust: float = 0.0

    def __post_init__(self) -> None:
        """Validate and normalize state."""
        self.position = np.asarray(self.position, dtype=np.float64)
        self.velocity = np.asarray(self.velocity, dtype=np.float64)
        self.quaternion = normalize_quaternion(np.asarray(self.quaternion, dtype=np.float64))
        self.angular_velocity = np.asarray(self.angular_velocity, dtype=np.float64)

        if self.position.shape != (3,):
            raise ValueError(f"Position must be shape (3,), got {self.position.shape}")
        if self.velocity.shape != (3,):
            raise ValueError(f"Velocity must be shape (3,), got {self.velocity.shape}")
        if self.quaternion.shape != (4,):
            raise ValueError(f"Quaternion must be shape (4,), got {self.quaternion.shape}")
        if self.angular_velocity.shape != (3,):
            raise ValueError(f"Angular velocity must be shape (3,), got {self.angular_velocity.shape}")

    @classmethod
    def at_rest(
        cls,
        position: NDArray[np.float64],
        quaternion: NDArray[np.float64] | None = None,
    ) -> "KiteState":
        """Create a motionless state at `position`."""
        if quaternion is None:
            quaternion = np.array([1.0, 0.0, 0.0, 0.0])
        return cls(
            position=np.array(position, dtype=np.float64),
            velocity=np.zeros(3),
            quaternion=np.array(quaternion, dtype=np.float64),
            angular_velocity=np.zeros(3),
        )

    def copy(self) -> "KiteState":
        """Create a copy of this state."""
        return KiteState(
            position=self.position.copy(),
            velocity=self.velocity.copy(),
            quaternion=self.quaternion.copy(),
            angular_velocity=self.angular_velocity.copy(),
            rudder=self.rudder,
            elevator=self.elevator,
            thrust=self.thrust,
        )

    @property
    def dcm_body_to_world(self) -> NDArray[np.float64]:
        """Get DCM that transforms vectors from body to world frame."""
        return quaternion_to_dcm(self.quaternion)

    @property
    def dcm_world_to_body(self) -> NDArray[np.float64]:
        """Get DCM that transforms vectors from world to body frame."""
        return quaternion_to_dcm(self.quaternion).T

    @property
    def forward(self) -> NDArray[np.float64]:
        """Body X axis in world frame."""
        return self.dcm_body_to_world[:, 0]

    @property
    def altitude(self) -> float:
        """Height above the anchor plane [m]."""
        return float(self.position[2])

    @property
    def speed(self) -> float:
        """Get ground speed magnitude [m/s]."""
        return float(np.linalg.norm(self.velocity))

    @property
    def bank_angle(self) -> float:
        """Bank angle [rad], positive with the right wing down."""
        dcm = self.dcm_body_to_world
        return float(np.arctan2(dcm[2, 1], dcm[2, 2]))

    @property
    def pitch_angle(self) -> float:
        """Nose elevation above the horizon [rad]."""
        return float(np.arcsin(np.clip(self.dcm_body_to_world[2, 0], -1.0, 1.0)))

    @property
    def heading(self) -> float:
        """Direction of the nose in the horizontal plane [rad]."""
        dcm = self.dcm_body_to_world
        return float(np.arctan2(dcm[1, 0], dcm[0, 0]))

    def velocity_body(self) -> NDArray[np.float64]:
        """Get velocity in body frame [m/s]."""
        return self.dcm_world_to_body @ self.velocity


@beartype
@dataclass
class AttachmentPointState:
    """World-frame kinematics of the kite's two tether attachment points.

    Produced by the kite body after each integration step and handed to
    the tether engine, which pins its bridle ends to these values.

    Attributes:
        positions: Attachment point positions, shape (2, 3) [m]
        velocities: Attachment point velocities, shape (2, 3) [m/s]
    """
    positions: NDArray[np.float64]
    velocities: NDArray[np.float64]

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64)
        self.velocities = np.asarray(self.velocities, dtype=np.float64)
        if self.positions.shape != (2, 3) or self.velocities.shape != (2, 3):
            raise ValueError(
                "Attachment points must be shape (2, 3), got "
                f"{self.positions.shape} and {self.velocities.shape}"
            )

    @property
    def midpoint(self) -> NDArray[np.float64]:
        """Point halfway between the two attachment points [m]."""
        return 0.5 * (self.positions[0] + self.positions[1])
