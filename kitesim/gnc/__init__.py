"""GNC primitives shared by the plant and the autopilot.

Example:
    >>> from kitesim.gnc import PIDController, PIDGains
    >>>
    >>> roll_rate = PIDController(gains=PIDGains(kp=2.0, kff=0.5))
"""

from kitesim.gnc.control import (
    PIDController,
    PIDGains,
)

__all__ = [
    "PIDController",
    "PIDGains",
]
