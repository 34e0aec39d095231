"""Ambient environment for the kite simulation.

Flat-Earth model with constant gravity along -z, an exponential density
profile and a uniform wind vector.

Example:
    >>> from kitesim.environment import Atmosphere
    >>>
    >>> env = Atmosphere(wind=np.array([6.0, 0.0, 0.0]))
    >>> rho = env.density_at(50.0)  # kg/m^3
    >>> v_air = env.air_relative_velocity(kite_velocity)
"""

from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from kitesim.errors import ConfigurationError

# =============================================================================
# Constants
# =============================================================================

G0: float = 9.80665  # Standard gravity [m/s^2]
RHO_SEA_LEVEL: float = 1.225  # ISA sea-level density [kg/m^3]
SCALE_HEIGHT: float = 8500.0  # Density scale height [m]


# =============================================================================
# Atmosphere
# =============================================================================


@beartype
@dataclass
class Atmosphere:
    """Gravity, air density and wind seen by the kite and tether.

    Attributes:
        gravity: Gravitational acceleration magnitude [m/s^2]
        sea_level_density: Air density at z = 0 [kg/m^3]
        wind: Uniform wind velocity in world frame [m/s]
        constant_density: If True, ignore altitude when computing density
    """
    gravity: float = G0
    sea_level_density: float = RHO_SEA_LEVEL
    wind: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    constant_density: bool = True

    def __post_init__(self) -> None:
        self.wind = np.asarray(self.wind, dtype=np.float64)
        if self.wind.shape != (3,):
            raise ConfigurationError(f"Wind must be shape (3,), got {self.wind.shape}")
        if self.gravity < 0:
            raise ConfigurationError(f"Gravity must be non-negative, got {self.gravity}")
        if self.sea_level_density < 0:
            raise ConfigurationError(
                f"Air density must be non-negative, got {self.sea_level_density}"
            )

    @property
    def gravity_vector(self) -> NDArray[np.float64]:
        """Gravity acceleration in world frame [m/s^2]."""
        return np.array([0.0, 0.0, -self.gravity])

    @beartype
    def density_at(self, altitude: float) -> float:
        """Air density at altitude [kg/m^3]."""
        if self.constant_density:
            return self.sea_level_density
        return float(self.sea_level_density * np.exp(-max(altitude, 0.0) / SCALE_HEIGHT))

    @beartype
    def air_relative_velocity(self, velocity: NDArray[np.float64]) -> NDArray[np.float64]:
        """Velocity of a body relative to the surrounding air [m/s]."""
        return velocity - self.wind

    @classmethod
    def vacuum(cls) -> "Atmosphere":
        """Zero gravity, zero density environment (for isolated tests)."""
        return cls(gravity=0.0, sea_level_density=0.0)
