"""Environment models for the kite simulation.

Example:
    >>> from kitesim.environment import Atmosphere, G0
    >>>
    >>> env = Atmosphere(wind=np.array([5.0, 0.0, 0.0]))
    >>> g = env.gravity_vector
"""

from kitesim.environment.atmosphere import (
    G0,
    RHO_SEA_LEVEL,
    Atmosphere,
)

__all__ = [
    "G0",
    "RHO_SEA_LEVEL",
    "Atmosphere",
]
