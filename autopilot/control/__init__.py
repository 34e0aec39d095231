"""Control algorithms for the kite.

Provides the attitude controllers (fixed-wing and VTOL variants) and the
position controllers that feed them.
"""

from autopilot.control.attitude import (
    AttitudeControl,
    AttitudeSetpoint,
    FixedWingAttitudeController,
    RateLoops,
    VTOLAttitudeController,
    attitude_error,
)
from autopilot.control.position import (
    FixedWingPositionController,
    VTOLPositionController,
    wing_attitude,
)

__all__ = [
    "AttitudeControl",
    "AttitudeSetpoint",
    "FixedWingAttitudeController",
    "VTOLAttitudeController",
    "RateLoops",
    "attitude_error",
    "FixedWingPositionController",
    "VTOLPositionController",
    "wing_attitude",
]
