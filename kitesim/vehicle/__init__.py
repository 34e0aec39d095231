"""Kite vehicle: aerodynamic surfaces and rigid body.

Example:
    >>> from kitesim.vehicle import Kite, KiteProperties
    >>> from kitesim.dynamics import KiteState
    >>>
    >>> kite = Kite(KiteProperties(), KiteState.at_rest(np.array([70.0, 0.0, 0.0])))
    >>> kite.adjust_thrust_by(5.0)
    >>> points = kite.get_attachment_points_state()
"""

from kitesim.vehicle.aerodynamics import (
    SurfaceProperties,
    aerodynamic_loads,
    default_kite_surfaces,
    plate_coefficients,
    surface_force,
)
from kitesim.vehicle.kite import Kite, KiteProperties

__all__ = [
    # Aerodynamics
    "SurfaceProperties",
    "aerodynamic_loads",
    "default_kite_surfaces",
    "plate_coefficients",
    "surface_force",
    # Kite
    "Kite",
    "KiteProperties",
]
