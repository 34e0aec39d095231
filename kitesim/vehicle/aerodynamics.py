"""Aerodynamic surface models for the kite.

Each lifting surface (wing panel, elevator, rudder) is a flat plate with a
body-frame position and normal. Forces are computed from the local
air-relative velocity at the surface, so rotation rates produce damping
moments and surface offsets produce static stability without separate
stability derivatives.

Coefficient model (flat plate, smooth through stall):
    CL = cl_alpha * sin(alpha) * cos(alpha)
    CD = cd0 + cd_max * sin(alpha)^2

Example:
    >>> from kitesim.vehicle import default_kite_surfaces, aerodynamic_loads
    >>>
    >>> surfaces = default_kite_surfaces()
    >>> force, moment = aerodynamic_loads(
    ...     surfaces, air_velocity_body, angular_velocity,
    ...     rudder=0.0, elevator=0.05, density=1.225,
    ... )
"""

from dataclasses import dataclass
from typing import Literal

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from kitesim.errors import ConfigurationError

SurfaceControl = Literal["none", "rudder", "elevator"]

# Wing angle of attack the default tail trims to [rad]
TRIM_ALPHA = 0.2

# =============================================================================
# Surface Definition
# =============================================================================


@beartype
@dataclass
class SurfaceProperties:
    """Flat-plate lifting surface attached to the kite body.

    Attributes:
        name: Surface label
        area: Planform area [m^2]
        position: Aerodynamic center in body frame [m]
        normal: Unit normal in body frame at zero deflection
        hinge_axis: Body axis the deflection rotates the normal about
        control: Which deflection angle drives this surface
        cl_alpha: Lift curve slope near zero angle of attack [1/rad]
        cd0: Zero-lift drag coefficient
        cd_max: Drag coefficient added at 90 degrees angle of attack
        incidence: Fixed rigging angle about the hinge axis, added to the
            deflection [rad]
    """
    name: str
    area: float
    position: NDArray[np.float64]
    normal: NDArray[np.float64]
    hinge_axis: NDArray[np.float64] | None = None
    control: SurfaceControl = "none"
    cl_alpha: float = 4.5
    cd0: float = 0.02
    cd_max: float = 1.28
    incidence: float = 0.0

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64)
        self.normal = np.asarray(self.normal, dtype=np.float64)
        if self.area <= 0:
            raise ConfigurationError(f"Surface '{self.name}' area must be positive")
        if self.position.shape != (3,) or self.normal.shape != (3,):
            raise ConfigurationError(f"Surface '{self.name}' vectors must be shape (3,)")
        norm = np.linalg.norm(self.normal)
        if norm < 1e-9:
            raise ConfigurationError(f"Surface '{self.name}' normal must be non-zero")
        self.normal = self.normal / norm
        if self.control != "none" or self.incidence != 0.0:
            if self.hinge_axis is None:
                raise ConfigurationError(
                    f"Surface '{self.name}' needs a hinge axis to deflect or be rigged"
                )
            self.hinge_axis = np.asarray(self.hinge_axis, dtype=np.float64)
            self.hinge_axis = self.hinge_axis / np.linalg.norm(self.hinge_axis)

    @beartype
    def deflected_normal(self, deflection: float) -> NDArray[np.float64]:
        """Surface normal rotated by incidence plus `deflection` [rad] about the hinge axis."""
        angle = self.incidence + deflection
        if self.hinge_axis is None or angle == 0.0:
            return self.normal
        k = self.hinge_axis
        v = self.normal
        c, s = np.cos(angle), np.sin(angle)
        # Rodrigues rotation
        return v * c + np.cross(k, v) * s + k * np.dot(k, v) * (1 - c)


# =============================================================================
# Force Model
# =============================================================================


@beartype
def plate_coefficients(
    sin_alpha: float,
    cl_alpha: float,
    cd0: float,
    cd_max: float,
) -> tuple[float, float]:
    """Lift and drag coefficients of a flat plate.

    Args:
        sin_alpha: Sine of the angle of attack
        cl_alpha: Lift curve slope [1/rad]
        cd0: Zero-lift drag coefficient
        cd_max: Drag rise at 90 degrees

    Returns:
        Tuple of (CL, CD)
    """
    cos_alpha = np.sqrt(max(0.0, 1.0 - sin_alpha**2))
    CL = cl_alpha * sin_alpha * cos_alpha
    CD = cd0 + cd_max * sin_alpha**2
    return float(CL), float(CD)


@beartype
def surface_force(
    surface: SurfaceProperties,
    normal: NDArray[np.float64],
    air_velocity: NDArray[np.float64],
    density: float,
) -> NDArray[np.float64]:
    """Aerodynamic force on one surface in body frame.

    Args:
        surface: Surface definition
        normal: Current (deflected) surface normal in body frame
        air_velocity: Velocity of the surface relative to the air, body frame [m/s]
        density: Air density [kg/m^3]

    Returns:
        Force vector in body frame [N]
    """
    speed = np.linalg.norm(air_velocity)
    if speed < 1e-6:
        return np.zeros(3)

    # Direction the air moves past the surface
    flow = -air_velocity / speed
    sin_alpha = float(np.clip(np.dot(normal, flow), -1.0, 1.0))
    CL, CD = plate_coefficients(sin_alpha, surface.cl_alpha, surface.cd0, surface.cd_max)

    q = 0.5 * density * speed**2

    # Lift acts perpendicular to the flow, on the normal's side
    lift_direction = normal - sin_alpha * flow
    lift_norm = np.linalg.norm(lift_direction)
    if lift_norm > 1e-9:
        lift = CL * lift_direction / lift_norm
    else:
        lift = np.zeros(3)

    return q * surface.area * (lift + CD * flow)


@beartype
def aerodynamic_loads(
    surfaces: list[SurfaceProperties],
    air_velocity_body: NDArray[np.float64],
    angular_velocity: NDArray[np.float64],
    rudder: float,
    elevator: float,
    density: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Total aerodynamic force and moment about the CG in body frame.

    Args:
        surfaces: Surfaces making up the kite
        air_velocity_body: CG velocity relative to the air, body frame [m/s]
        angular_velocity: Body rates [rad/s]
        rudder: Rudder deflection [rad]
        elevator: Elevator deflection [rad]
        density: Air density [kg/m^3]

    Returns:
        Tuple of (force [N], moment [N*m]) in body frame
    """
    force = np.zeros(3)
    moment = np.zeros(3)
    deflections = {"none": 0.0, "rudder": rudder, "elevator": elevator}

    for surface in surfaces:
        local_velocity = air_velocity_body + np.cross(angular_velocity, surface.position)
        normal = surface.deflected_normal(deflections[surface.control])
        f = surface_force(surface, normal, local_velocity, density)
        force += f
        moment += np.cross(surface.position, f)

    return force, moment


# =============================================================================
# Default Configuration
# =============================================================================


def default_kite_surfaces() -> list[SurfaceProperties]:
    """Surfaces of the default kite: split main wing plus T-tail.

    The wing is split into two panels so roll rate produces a restoring
    moment from the differential angle of attack. The elevator is rigged
    trailing edge up so the kite trims near `TRIM_ALPHA` with the surfaces
    centered.
    """
    return [
        SurfaceProperties(
            name="wing_left",
            area=0.25,
            position=np.array([0.0, 0.45, 0.0]),
            normal=np.array([0.0, 0.0, 1.0]),
        ),
        SurfaceProperties(
            name="wing_right",
            area=0.25,
            position=np.array([0.0, -0.45, 0.0]),
            normal=np.array([0.0, 0.0, 1.0]),
        ),
        SurfaceProperties(
            name="elevator",
            area=0.06,
            position=np.array([-0.8, 0.0, 0.0]),
            normal=np.array([0.0, 0.0, 1.0]),
            hinge_axis=np.array([0.0, 1.0, 0.0]),
            control="elevator",
            cl_alpha=3.5,
            incidence=TRIM_ALPHA,
        ),
        SurfaceProperties(
            name="rudder",
            area=0.04,
            position=np.array([-0.8, 0.0, 0.1]),
            normal=np.array([0.0, 1.0, 0.0]),
            hinge_axis=np.array([0.0, 0.0, 1.0]),
            control="rudder",
            cl_alpha=3.5,
        ),
    ]
