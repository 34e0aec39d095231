"""Kitesim - Tethered kite flight dynamics.

This package is the physics "plant": a rigid-body kite with flat-plate
aerodynamic surfaces, a lumped-mass tether with a two-line bridle, and the
frame loop that couples them to a flight controller. Flight software lives
in the separate `autopilot` package.

Example:
    >>> from kitesim import KiteSimulation
    >>>
    >>> sim = KiteSimulation.at_tether_end()
    >>> for _ in range(60):
    ...     sim.update(1.0 / 60.0)
    >>> print(sim.kite.state.position)
"""

__version__ = "0.1.0"

from kitesim.dynamics import AttachmentPointState, KiteState
from kitesim.environment import Atmosphere
from kitesim.errors import ConfigurationError, KiteSimError, SnapshotValidationError
from kitesim.gnc import PIDController, PIDGains
from kitesim.simulation import (
    CostAccumulator,
    KiteSimulation,
    SimConfig,
    SimulationResult,
)
from kitesim.tether import Tether, TetherProperties
from kitesim.vehicle import Kite, KiteProperties

__all__ = [
    "__version__",
    # Errors
    "KiteSimError",
    "ConfigurationError",
    "SnapshotValidationError",
    # State
    "KiteState",
    "AttachmentPointState",
    "Atmosphere",
    # Components
    "Kite",
    "KiteProperties",
    "Tether",
    "TetherProperties",
    "PIDController",
    "PIDGains",
    # Simulation
    "KiteSimulation",
    "SimConfig",
    "SimulationResult",
    "CostAccumulator",
]
