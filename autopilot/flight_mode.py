"""Flight mode controller.

Top-level state machine of the autopilot. It selects which controller chain
produces the commanded moment, manages thrust once per frame and applies the
automatic envelope transitions.

Modes and the manual toggle order:

    MANUAL -> STABILIZE -> PATH_FOLLOW -> VTOL_HOVER -> MANUAL

VTOL_TRANSITION is only entered automatically; toggling from it returns to
MANUAL. Automatic transitions, evaluated once per frame:

    PATH_FOLLOW     -> VTOL_HOVER       airspeed < stall_airspeed or altitude < min_altitude
    VTOL_HOVER      -> VTOL_TRANSITION  auto_transition and altitude >= transition_altitude
    VTOL_TRANSITION -> PATH_FOLLOW      airspeed >= transition_airspeed
    VTOL_TRANSITION -> VTOL_HOVER       altitude < min_altitude

Controller chains per mode:

    MANUAL           no moment (pilot drives the surfaces)
    STABILIZE        fixed-wing attitude hold on the attitude captured at entry
    PATH_FOLLOW      path follower -> lateral-acceleration steering -> fixed-wing attitude
    VTOL_HOVER       hover position hold -> VTOL attitude
    VTOL_TRANSITION  path follower -> thrust axis toward target -> VTOL attitude

Thrust is managed in PATH_FOLLOW (airspeed hold) and in the VTOL modes
(hover thrust target). MANUAL and STABILIZE leave the throttle to the pilot.

This is flight software - designed to run on the vehicle.

Example:
    >>> from autopilot import FlightModeController, FlightMode
    >>>
    >>> fmc = FlightModeController(kite, path)
    >>> fmc.set_mode(FlightMode.PATH_FOLLOW)
    >>> fmc.update(dt)
    >>> moment = fmc.get_moment(dt)
"""

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from autopilot.control.attitude import (
    AttitudeControl,
    AttitudeSetpoint,
    FixedWingAttitudeController,
    VTOLAttitudeController,
)
from autopilot.control.position import FixedWingPositionController, VTOLPositionController
from autopilot.guidance.path_following import PathFollower, PathTarget
from autopilot.guidance.paths import direction_from_angles
from kitesim.dynamics.state import quaternion_from_axes
from kitesim.errors import ConfigurationError, SnapshotValidationError
from kitesim.vehicle.aerodynamics import plate_coefficients
from kitesim.vehicle.kite import Kite

logger = logging.getLogger(__name__)


class FlightMode(IntEnum):
    """Autopilot flight modes."""
    MANUAL = 0
    STABILIZE = 1
    PATH_FOLLOW = 2
    VTOL_HOVER = 3
    VTOL_TRANSITION = 4


TOGGLE_ORDER: dict[FlightMode, FlightMode] = {
    FlightMode.MANUAL: FlightMode.STABILIZE,
    FlightMode.STABILIZE: FlightMode.PATH_FOLLOW,
    FlightMode.PATH_FOLLOW: FlightMode.VTOL_HOVER,
    FlightMode.VTOL_HOVER: FlightMode.MANUAL,
    FlightMode.VTOL_TRANSITION: FlightMode.MANUAL,
}

FIXED_WING_MODES = (FlightMode.STABILIZE, FlightMode.PATH_FOLLOW)
VTOL_MODES = (FlightMode.VTOL_HOVER, FlightMode.VTOL_TRANSITION)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class FlightControlConfig:
    """Flight envelope, thrust management and guidance settings.

    Attributes:
        velocity_setpoint: Target airspeed in path following [m/s] (live-tunable)
        stall_airspeed: Below this, path following hands over to hover [m/s]
        transition_airspeed: Airspeed completing the transition to path following [m/s]
        min_altitude: Lowest altitude allowed for path following [m]
        transition_altitude: Hover altitude that starts the transition [m]
        hover_altitude: Lowest altitude of a captured hover point [m], above
            `transition_altitude` so a hover climbs into the transition
        auto_transition: Whether hover climbs automatically into transition
        thrust_rate: Thrust slew bound in path following [N/s]
        vtol_thrust_rate: Thrust slew bound in the VTOL modes [N/s]
        speed_gain: Thrust change per unit airspeed error [N*s/m]
        transition_thrust: Thrust target during transition, fraction of max
        anchor: Tether ground anchor position [m]
    """
    velocity_setpoint: float = 20.0
    stall_airspeed: float = 8.0
    transition_airspeed: float = 15.0
    min_altitude: float = 5.0
    transition_altitude: float = 30.0
    hover_altitude: float = 35.0
    auto_transition: bool = True
    thrust_rate: float = 20.0
    vtol_thrust_rate: float = 60.0
    speed_gain: float = 2.0
    transition_thrust: float = 0.8
    anchor: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        if self.thrust_rate < 0 or self.vtol_thrust_rate < 0:
            raise ConfigurationError(
                f"Thrust rates must be non-negative, got {self.thrust_rate} and {self.vtol_thrust_rate}"
            )
        if not 0.0 <= self.transition_thrust <= 1.0:
            raise ConfigurationError(
                f"Transition thrust fraction must be in [0, 1], got {self.transition_thrust}"
            )
        if self.transition_airspeed < self.stall_airspeed:
            raise ConfigurationError("Transition airspeed must not be below stall airspeed")


# =============================================================================
# Flight Mode Controller
# =============================================================================


@dataclass
class FlightModeController:
    """Mode machine owning the guidance and control chain for one kite.

    Attributes:
        kite: Kite whose state is read and whose thrust is managed
        path_follower: Path guidance
        config: Envelope and thrust settings
        fixed_wing: Attitude controller for STABILIZE and PATH_FOLLOW
        vtol: Attitude controller for the VTOL modes
        pursuit: Fixed-wing steering toward the path target
        hover: VTOL position controller
        mode: Current flight mode
    """
    kite: Kite
    path_follower: PathFollower
    config: FlightControlConfig = field(default_factory=FlightControlConfig)
    fixed_wing: FixedWingAttitudeController = field(default_factory=FixedWingAttitudeController)
    vtol: VTOLAttitudeController = field(default_factory=VTOLAttitudeController)
    pursuit: FixedWingPositionController = field(default_factory=FixedWingPositionController)
    hover: VTOLPositionController = field(default_factory=VTOLPositionController)
    mode: FlightMode = FlightMode.MANUAL

    # Internal state
    _setpoint: AttitudeSetpoint | None = field(default=None, init=False, repr=False)
    _target: PathTarget | None = field(default=None, init=False, repr=False)
    _hold_attitude: NDArray[np.float64] | None = field(default=None, init=False, repr=False)
    _hover_point: NDArray[np.float64] | None = field(default=None, init=False, repr=False)
    _thrust_target: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        self.mode = FlightMode(self.mode)
        self._enter(self.mode)

    @classmethod
    def for_path(
        cls,
        kite: Kite,
        path: NDArray[np.float64],
        look_ahead_ratio: float = 0.5,
        max_look_ahead: float = 50.0,
        config: FlightControlConfig | None = None,
    ) -> "FlightModeController":
        """Create a controller following `path`."""
        return cls(
            kite=kite,
            path_follower=PathFollower(path, look_ahead_ratio, max_look_ahead),
            config=config or FlightControlConfig(),
        )

    @property
    def attitude_controller(self) -> AttitudeControl | None:
        """Attitude controller driving the current mode (None in MANUAL)."""
        if self.mode in FIXED_WING_MODES:
            return self.fixed_wing
        if self.mode in VTOL_MODES:
            return self.vtol
        return None

    @property
    def target(self) -> PathTarget | None:
        """Most recent path target."""
        return self._target

    @property
    def hover_point(self) -> NDArray[np.float64] | None:
        return self._hover_point

    # -------------------------------------------------------------------------
    # Mode transitions
    # -------------------------------------------------------------------------

    def toggle_mode(self) -> FlightMode:
        """Switch to the next mode in the toggle order."""
        self.set_mode(TOGGLE_ORDER[self.mode])
        return self.mode

    def set_mode(self, mode: FlightMode | str | int) -> None:
        """Enter `mode`, resetting that mode's controller memory."""
        if isinstance(mode, str):
            mode = FlightMode[mode]
        mode = FlightMode(mode)

        previous = self.mode
        self.mode = mode
        self._enter(mode)
        if previous != mode:
            logger.info("Flight mode %s -> %s", previous.name, mode.name)

    def _enter(self, mode: FlightMode) -> None:
        state = self.kite.state
        self._setpoint = None

        if mode == FlightMode.STABILIZE:
            self.fixed_wing.reset()
            self._hold_attitude = state.quaternion.copy()
        elif mode == FlightMode.PATH_FOLLOW:
            self.fixed_wing.reset()
            self.pursuit.reset()
        elif mode == FlightMode.VTOL_HOVER:
            self.vtol.reset()
            self.hover.reset()
            self._hover_point = self._capture_hover_point()
        elif mode == FlightMode.VTOL_TRANSITION:
            self.vtol.reset()

    def _capture_hover_point(self) -> NDArray[np.float64]:
        """Current position raised to at least `hover_altitude`, on the tether sphere."""
        offset = self.kite.state.position - self.config.anchor
        radius = float(np.linalg.norm(offset))
        if radius < 1e-6:
            return self.config.anchor + np.array([0.0, 0.0, self.config.hover_altitude])

        azimuth = math.atan2(offset[1], offset[0])
        elevation = math.asin(max(-1.0, min(1.0, offset[2] / radius)))
        floor = math.asin(min(1.0, self.config.hover_altitude / radius))
        return self.config.anchor + radius * direction_from_angles(
            azimuth, max(elevation, floor)
        )

    def auto_adjust_mode(self) -> None:
        """Apply the automatic envelope transitions (once per frame)."""
        cfg = self.config
        airspeed = self.kite.airspeed
        altitude = self.kite.state.altitude

        if self.mode == FlightMode.PATH_FOLLOW:
            if airspeed < cfg.stall_airspeed or altitude < cfg.min_altitude:
                logger.warning(
                    "Leaving path following (airspeed %.1f m/s, altitude %.1f m)",
                    airspeed, altitude,
                )
                self.set_mode(FlightMode.VTOL_HOVER)
        elif self.mode == FlightMode.VTOL_HOVER:
            if cfg.auto_transition and altitude >= cfg.transition_altitude:
                self.set_mode(FlightMode.VTOL_TRANSITION)
        elif self.mode == FlightMode.VTOL_TRANSITION:
            if altitude < cfg.min_altitude:
                logger.warning("Transition aborted at altitude %.1f m", altitude)
                self.set_mode(FlightMode.VTOL_HOVER)
            elif airspeed >= cfg.transition_airspeed:
                self.set_mode(FlightMode.PATH_FOLLOW)

    # -------------------------------------------------------------------------
    # Per sub-step
    # -------------------------------------------------------------------------

    def update(self, dt: float) -> None:
        """Run guidance and position control for the current mode."""
        state = self.kite.state
        mode = self.mode

        if mode in (FlightMode.PATH_FOLLOW, FlightMode.VTOL_TRANSITION):
            self._target = self.path_follower.update(
                state.position, self.config.velocity_setpoint
            )

        if mode == FlightMode.MANUAL:
            self._setpoint = None
        elif mode == FlightMode.STABILIZE:
            self._setpoint = AttitudeSetpoint(attitude=self._hold_attitude)
        elif mode == FlightMode.PATH_FOLLOW:
            self._setpoint = self.pursuit.compute(
                state,
                self._target.point,
                anchor=self.config.anchor,
                air_velocity=self.kite.environment.air_relative_velocity(state.velocity),
                lift_acceleration=self.lift_acceleration(),
                gravity_vector=self.kite.environment.gravity_vector,
                dt=dt,
            )
        elif mode == FlightMode.VTOL_HOVER:
            self._setpoint, self._thrust_target = self.hover.compute(
                state,
                self._hover_point,
                mass=self.kite.properties.mass,
                gravity=self.kite.environment.gravity,
                heading=self._radial_direction(),
                dt=dt,
            )
        elif mode == FlightMode.VTOL_TRANSITION:
            forward = self._target.point - state.position
            if np.linalg.norm(forward) < 1e-6:
                forward = state.forward
            self._setpoint = AttitudeSetpoint(
                attitude=quaternion_from_axes(forward, self._radial_direction())
            )
            self._thrust_target = self.config.transition_thrust * self.kite.properties.max_thrust

    def get_moment(self, dt: float) -> NDArray[np.float64]:
        """Commanded body moment for this sub-step [N*m]."""
        controller = self.attitude_controller
        if controller is None or self._setpoint is None:
            return np.zeros(3)
        return controller.compute(self._setpoint, self.kite.state, dt)

    def lift_acceleration(self) -> float:
        """Acceleration the wing gives at trim angle of attack and current airspeed [m/s^2]."""
        kite = self.kite
        sin_alpha = math.sin(self.pursuit.trim_alpha)
        lift_area = sum(
            surface.area * plate_coefficients(
                sin_alpha, surface.cl_alpha, surface.cd0, surface.cd_max
            )[0]
            for surface in kite.properties.surfaces
            if surface.control == "none"
        )
        pressure = 0.5 * kite.environment.density_at(kite.state.altitude) * kite.airspeed**2
        return pressure * lift_area / kite.properties.mass

    def _radial_direction(self) -> NDArray[np.float64]:
        """Unit vector from the anchor to the kite."""
        offset = self.kite.state.position - self.config.anchor
        distance = np.linalg.norm(offset)
        if distance < 1e-6:
            return np.array([1.0, 0.0, 0.0])
        return offset / distance

    # -------------------------------------------------------------------------
    # Per frame
    # -------------------------------------------------------------------------

    def adjust_thrust(self, dt: float) -> None:
        """Move thrust toward the mode's target, rate-bounded (once per frame)."""
        if not dt > 0:
            return

        thrust = self.kite.state.thrust
        if self.mode == FlightMode.PATH_FOLLOW:
            error = self.config.velocity_setpoint - self.kite.airspeed
            target = thrust + self.config.speed_gain * error
            rate = self.config.thrust_rate
        elif self.mode in VTOL_MODES:
            target = self._thrust_target
            rate = self.config.vtol_thrust_rate
        else:
            return
        target = min(max(target, 0.0), self.kite.properties.max_thrust)

        max_delta = rate * dt
        delta = min(max(target - thrust, -max_delta), max_delta)
        self.kite.adjust_thrust_by(float(delta))

    def tracking_cost(self, position: NDArray[np.float64]) -> float:
        """Distance from the path, sampled once per frame [m]."""
        return self.path_follower.get_cost(position)

    # -------------------------------------------------------------------------
    # Tuning and diagnostics
    # -------------------------------------------------------------------------

    def tunable_fields(self) -> dict[str, tuple[Any, str]]:
        """Live-tunable parameters as (holder, attribute) pairs."""
        roll = self.fixed_wing.roll_rate
        return {
            "velocity_setpoint": (self.config, "velocity_setpoint"),
            "roll_rate.kp": (roll, "kp"),
            "roll_rate.ki": (roll, "ki"),
            "roll_rate.kd": (roll, "kd"),
            "roll_rate.kff": (roll, "kff"),
            "look_ahead_ratio": (self.path_follower, "look_ahead_ratio"),
        }

    def diagnostics(self) -> dict[str, int]:
        return {
            "rejected_pid_inputs": (
                self.fixed_wing.rate_loops.rejected_inputs
                + self.vtol.rate_loops.rejected_inputs
            ),
        }

    # -------------------------------------------------------------------------
    # State transfer
    # -------------------------------------------------------------------------

    def get_state(self) -> dict[str, Any]:
        """Persistent controller state: the path follower index."""
        return {"pf": {"index": self.path_follower.index}}

    def validate_state(self, state: Any) -> None:
        """Check a state record without applying it.

        Raises:
            SnapshotValidationError: If the record is malformed or the index
                is outside the path
        """
        if not isinstance(state, dict) or not isinstance(state.get("pf"), dict):
            raise SnapshotValidationError("fmc must contain a 'pf' object")
        index = state["pf"].get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            raise SnapshotValidationError(f"fmc.pf.index must be an integer, got {index!r}")
        if not 0 <= index <= self.path_follower.max_index:
            raise SnapshotValidationError(
                f"fmc.pf.index {index} outside [0, {self.path_follower.max_index}]"
            )

    def set_state(self, state: dict[str, Any]) -> None:
        """Apply a state record produced by `get_state`."""
        self.validate_state(state)
        self.path_follower.set_index(state["pf"]["index"])
