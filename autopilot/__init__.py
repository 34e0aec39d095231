"""Autopilot package - flight software for the tethered kite.

This package contains guidance and control algorithms that command the
kite. They are developed and tested against the plant in kitesim/.

Architecture:
    The simulation (kitesim/) provides the "plant" - kite body, tether and
    environment. The autopilot provides the flight mode controller and the
    guidance/control chain beneath it.

    Per sub-step:
        fmc.update(dt)                   # Guidance + position control
        moment = fmc.get_moment(dt)      # Attitude control
        kite.update_kite_position_and_forces(..., moment)

Subpackages:
    guidance: Path following and crosswind paths
    control: Attitude and position control

Example:
    >>> from autopilot import FlightMode, build_default_simulation
    >>>
    >>> sim = build_default_simulation(mode=FlightMode.VTOL_HOVER)
    >>> for _ in range(600):
    ...     sim.update(1.0 / 60.0)
"""

from autopilot.flight_mode import FlightControlConfig, FlightMode, FlightModeController
from autopilot.scenario import (
    build_default_simulation,
    launch_on_path,
    place_kite,
    restore_snapshot,
)

__all__ = [
    "FlightMode",
    "FlightControlConfig",
    "FlightModeController",
    "build_default_simulation",
    "launch_on_path",
    "place_kite",
    "restore_snapshot",
]
