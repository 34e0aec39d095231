"""Control primitives for the kite autopilot.

Provides the PID controller shared by every attitude and rate loop.
"""

from kitesim.gnc.control.pid import (
    PIDController,
    PIDGains,
)

__all__ = [
    "PIDController",
    "PIDGains",
]
