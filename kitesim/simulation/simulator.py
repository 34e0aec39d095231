"""Frame-driven kite flight simulation.

The caller owns the real-time clock and calls `update(elapsed)` once per
frame. Each frame is clamped to `max_frame_dt` and split into a fixed number
of sub-steps. Every sub-step runs in this order:

    1. tether.update_tether_position_and_forces(dt)   (bridle ends from the
       previous sub-step)
    2. controller.update(dt); moment = controller.get_moment(dt)
    3. kite.update_kite_position_and_forces(dt, tether forces, tether mass,
       moment)
    4. tether.update_kite_tether_state(kite attachment points)

Once per frame the controller adjusts thrust and may change flight mode, and
the tracking cost of the frame is accumulated.

Example:
    >>> from kitesim.simulation import KiteSimulation
    >>>
    >>> sim = KiteSimulation.at_tether_end(controller_factory=my_controller)
    >>> for _ in range(600):
    ...     sim.update(1.0 / 60.0)
    >>> print(sim.cost.mean())
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Protocol

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from kitesim.dynamics.state import KiteState, quaternion_from_axes
from kitesim.environment.atmosphere import Atmosphere
from kitesim.errors import ConfigurationError
from kitesim.simulation.snapshot import export_snapshot, import_snapshot
from kitesim.tether.tether import Tether, TetherProperties
from kitesim.vehicle.kite import Kite, KiteProperties

logger = logging.getLogger(__name__)

# Live-tunable parameters and their allowed ranges
TUNABLE_RANGES: dict[str, tuple[float, float]] = {
    "velocity_setpoint": (10.0, 35.0),
    "roll_rate.kp": (0.0, 30.0),
    "roll_rate.ki": (0.0, 1.0),
    "roll_rate.kd": (0.0, 1.0),
    "roll_rate.kff": (-2.0, 2.0),
    "look_ahead_ratio": (0.0, 1.0),
}

# =============================================================================
# Configuration
# =============================================================================


@beartype
@dataclass
class SimConfig:
    """Simulation loop configuration.

    Attributes:
        substeps: Integration sub-steps per frame
        max_frame_dt: Upper bound on the elapsed time of one frame [s]
        record_history: Whether to keep a per-frame flight log
        history_length: Most recent frames kept in the flight log
    """
    substeps: int = 20
    max_frame_dt: float = 0.03
    record_history: bool = True
    history_length: int = 18000

    def __post_init__(self) -> None:
        if self.substeps < 1:
            raise ConfigurationError(f"Sub-step count must be at least 1, got {self.substeps}")
        if not self.max_frame_dt > 0:
            raise ConfigurationError(
                f"Maximum frame time must be positive, got {self.max_frame_dt}"
            )
        if self.history_length < 1:
            raise ConfigurationError(
                f"History length must be at least 1, got {self.history_length}"
            )


@beartype
@dataclass
class PilotConfig:
    """Rate bounds applied to pilot commands.

    Attributes:
        surface_rate: Rudder/elevator slew rate [rad/s]
        thrust_rate: Thrust slew rate [N/s]
        ground_yaw_rate: Ground-handling yaw rate [rad/s]
    """
    surface_rate: float = math.pi
    thrust_rate: float = 20.0
    ground_yaw_rate: float = math.pi / 4

    def __post_init__(self) -> None:
        if self.surface_rate < 0 or self.thrust_rate < 0 or self.ground_yaw_rate < 0:
            raise ConfigurationError("Pilot rates must be non-negative")


@beartype
@dataclass
class PilotInput:
    """Held pilot command axes, each -1, 0 or +1.

    Attributes:
        rudder: Rudder direction
        elevator: Elevator direction
        thrust: Thrust direction
        ground_yaw: Ground-handling rotation direction
    """
    rudder: int = 0
    elevator: int = 0
    thrust: int = 0
    ground_yaw: int = 0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for name in ("rudder", "elevator", "thrust", "ground_yaw"):
            if getattr(self, name) not in (-1, 0, 1):
                raise ValueError(f"Pilot axis '{name}' must be -1, 0 or 1")

    def clear(self) -> None:
        self.rudder = self.elevator = self.thrust = self.ground_yaw = 0


# =============================================================================
# Cost Accumulator
# =============================================================================


@dataclass
class CostAccumulator:
    """Running mean of per-frame tracking error samples."""
    total: float = 0.0
    count: int = 0

    def add(self, sample: float) -> None:
        if not math.isfinite(sample):
            logger.debug("Cost accumulator skipped non-finite sample: %r", sample)
            return
        self.total += sample
        self.count += 1

    def mean(self) -> float:
        """Arithmetic mean of the samples, 0.0 when empty."""
        if self.count == 0:
            return 0.0
        return self.total / self.count

    def reset(self) -> None:
        self.total = 0.0
        self.count = 0


# =============================================================================
# Controller Interface
# =============================================================================


class FlightController(Protocol):
    """What the frame loop needs from a flight controller."""

    mode: Any

    def update(self, dt: float) -> None: ...

    def get_moment(self, dt: float) -> NDArray[np.float64]: ...

    def adjust_thrust(self, dt: float) -> None: ...

    def auto_adjust_mode(self) -> None: ...

    def toggle_mode(self) -> Any: ...

    def set_mode(self, mode: Any) -> None: ...

    def tracking_cost(self, position: NDArray[np.float64]) -> float: ...

    def tunable_fields(self) -> dict[str, tuple[Any, str]]: ...

    def diagnostics(self) -> dict[str, int]: ...

    def get_state(self) -> dict[str, Any]: ...

    def validate_state(self, state: Any) -> None: ...

    def set_state(self, state: dict[str, Any]) -> None: ...


class ManualController:
    """Pass-through controller: no moment, no thrust management.

    Used when the plant is flown only through `PilotInput`.
    """

    mode = "MANUAL"

    def update(self, dt: float) -> None:
        pass

    def get_moment(self, dt: float) -> NDArray[np.float64]:
        return np.zeros(3)

    def adjust_thrust(self, dt: float) -> None:
        pass

    def auto_adjust_mode(self) -> None:
        pass

    def toggle_mode(self) -> str:
        return self.mode

    def set_mode(self, mode: Any) -> None:
        pass

    def tracking_cost(self, position: NDArray[np.float64]) -> float:
        return 0.0

    def tunable_fields(self) -> dict[str, tuple[Any, str]]:
        return {}

    def diagnostics(self) -> dict[str, int]:
        return {}

    def get_state(self) -> dict[str, Any]:
        return {"pf": {"index": 0}}

    def validate_state(self, state: Any) -> None:
        pass

    def set_state(self, state: dict[str, Any]) -> None:
        pass


# =============================================================================
# Flight Log
# =============================================================================


class FrameRecord(NamedTuple):
    """Kite state at the end of one frame."""
    time: float
    position: NDArray[np.float64]
    velocity: NDArray[np.float64]
    quaternion: NDArray[np.float64]
    thrust: float
    airspeed: float
    max_tension: float
    mode: str
    cost: float


# =============================================================================
# Simulation
# =============================================================================


class KiteSimulation:
    """Couples kite, tether and flight controller in a frame loop.

    Attributes:
        kite: Kite body
        tether: Tether engine
        controller: Active flight controller
        config: Loop configuration
        pilot: Held pilot command axes
        pilot_config: Pilot rate bounds
        cost: Tracking cost accumulator
        paused: When True, `update` does nothing
        time: Simulated time [s]
    """

    def __init__(
        self,
        kite: Kite,
        tether: Tether,
        controller: FlightController | None = None,
        config: SimConfig | None = None,
        pilot_config: PilotConfig | None = None,
    ) -> None:
        self.kite = kite
        self.tether = tether
        self.controller = controller if controller is not None else ManualController()
        self.config = config or SimConfig()
        self.pilot = PilotInput()
        self.pilot_config = pilot_config or PilotConfig()
        self.cost = CostAccumulator()
        self.paused = False
        self.time = 0.0
        self.frames = 0
        self._history: deque[FrameRecord] = deque(maxlen=self.config.history_length)

        limit = tether.stable_substep_limit(self.config.max_frame_dt)
        if limit > self.config.substeps:
            logger.warning(
                "%d sub-steps per frame is below the tether stability limit of %d",
                self.config.substeps, limit,
            )

    @classmethod
    def at_tether_end(
        cls,
        kite_properties: KiteProperties | None = None,
        tether_properties: TetherProperties | None = None,
        environment: Atmosphere | None = None,
        controller_factory: Callable[[Kite], FlightController] | None = None,
        config: SimConfig | None = None,
    ) -> "KiteSimulation":
        """Create a simulation with the kite at the end of a straight tether.

        The tether runs along world +x from the anchor. The kite stands on
        its tail (nose up, wing normal facing away from the anchor) with its
        attachment midpoint positioned so the main line is at rest length.

        Args:
            kite_properties: Kite configuration
            tether_properties: Tether configuration
            environment: Shared environment for kite and tether
            controller_factory: Builds the flight controller for the kite
            config: Loop configuration
        """
        kite_properties = kite_properties or KiteProperties()
        tether_properties = tether_properties or TetherProperties()
        environment = environment or Atmosphere()

        quaternion = quaternion_from_axes(
            np.array([0.0, 0.0, 1.0]), np.array([1.0, 0.0, 0.0])
        )
        dcm = KiteState.at_rest(np.zeros(3), quaternion).dcm_body_to_world

        half_span = kite_properties.attachment_half_span
        bridle = tether_properties.bridle_length
        reach = math.sqrt(max(bridle**2 - half_span**2, 0.0))
        main_length = tether_properties.total_length - bridle
        midpoint = tether_properties.anchor + np.array([main_length + reach, 0.0, 0.0])
        offset = dcm @ kite_properties.attachment_points.mean(axis=0)

        kite = Kite(
            kite_properties,
            KiteState.at_rest(midpoint - offset, quaternion),
            environment,
        )
        tether = Tether.from_kite(
            tether_properties, kite.get_attachment_points_state(), environment,
        )
        controller = controller_factory(kite) if controller_factory else None
        return cls(kite, tether, controller, config)

    # -------------------------------------------------------------------------
    # Frame loop
    # -------------------------------------------------------------------------

    @beartype
    def update(self, elapsed: float | int) -> None:
        """Advance the simulation by one frame of `elapsed` seconds."""
        if self.paused:
            return

        dt = min(float(elapsed), self.config.max_frame_dt)
        if not dt > 0:
            return

        self._apply_pilot(dt)

        h = dt / self.config.substeps
        kite, tether, controller = self.kite, self.tether, self.controller
        for _ in range(self.config.substeps):
            tether.update_tether_position_and_forces(h)
            controller.update(h)
            moment = controller.get_moment(h)
            kite.update_kite_position_and_forces(
                h,
                tether.kite_tether_forces(),
                tether.get_kite_tether_mass(),
                moment,
            )
            tether.update_kite_tether_state(kite.get_attachment_points_state())

        controller.adjust_thrust(dt)
        controller.auto_adjust_mode()

        sample = controller.tracking_cost(kite.state.position)
        self.cost.add(sample)

        self.time += dt
        self.frames += 1
        if self.config.record_history:
            self._record(sample)

    def _apply_pilot(self, dt: float) -> None:
        pilot = self.pilot
        rates = self.pilot_config
        pilot.validate()
        if pilot.rudder:
            self.kite.adjust_rudder_by(pilot.rudder * rates.surface_rate * dt)
        if pilot.elevator:
            self.kite.adjust_elevator_by(pilot.elevator * rates.surface_rate * dt)
        if pilot.thrust:
            self.kite.adjust_thrust_by(pilot.thrust * rates.thrust_rate * dt)
        if pilot.ground_yaw:
            self.kite.rotate_about_vertical(pilot.ground_yaw * rates.ground_yaw_rate * dt)

    def _record(self, sample: float) -> None:
        state = self.kite.state
        mode = getattr(self.controller.mode, "name", str(self.controller.mode))
        self._history.append(FrameRecord(
            time=self.time,
            position=state.position.copy(),
            velocity=state.velocity.copy(),
            quaternion=state.quaternion.copy(),
            thrust=state.thrust,
            airspeed=self.kite.airspeed,
            max_tension=float(np.max(self.tether.segment_tensions())),
            mode=mode,
            cost=sample,
        ))

    # -------------------------------------------------------------------------
    # Command surface
    # -------------------------------------------------------------------------

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        self.paused = not self.paused
        return self.paused

    def toggle_mode(self) -> Any:
        """Cycle the controller to its next flight mode."""
        return self.controller.toggle_mode()

    def export_state(self) -> dict[str, Any]:
        """Snapshot of kite, tether and path-follower state."""
        return export_snapshot(self.kite, self.tether, self.controller)

    def import_state(self, snapshot: dict[str, Any], mode: Any = None) -> None:
        """Load a snapshot, then enter `mode` (or re-enter the current mode).

        Re-entering a mode resets controller memory, so control starts fresh
        from the imported state.
        """
        import_snapshot(snapshot, self.kite, self.tether, self.controller)
        self.controller.set_mode(self.controller.mode if mode is None else mode)

    @beartype
    def set_tunable(self, name: str, value: float) -> float:
        """Set a live-tunable parameter, clipped to its range.

        Returns:
            The value actually applied

        Raises:
            KeyError: If `name` is not a tunable parameter of this controller
        """
        low, high = TUNABLE_RANGES[name]
        fields = self.controller.tunable_fields()
        if name not in fields:
            raise KeyError(name)
        holder, attribute = fields[name]
        applied = float(np.clip(value, low, high))
        setattr(holder, attribute, applied)
        return applied

    def get_tunable(self, name: str) -> float:
        holder, attribute = self.controller.tunable_fields()[name]
        return float(getattr(holder, attribute))

    def diagnostics(self) -> dict[str, int]:
        """Counters of numeric degeneracies handled during the run."""
        counters = {
            "degenerate_segments": self.tether.degenerate_segments,
            "rejected_moments": self.kite.rejected_moments,
        }
        counters.update(self.controller.diagnostics())
        return counters

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def get_history(self) -> list[FrameRecord]:
        """Get recorded per-frame history, oldest first."""
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()


# =============================================================================
# Results and Analysis
# =============================================================================


@dataclass
class SimulationResult:
    """Per-frame flight log of a completed run."""
    records: list[FrameRecord] = field(default_factory=list)

    @classmethod
    def from_simulation(cls, sim: KiteSimulation) -> "SimulationResult":
        return cls(records=sim.get_history())

    @property
    def time(self) -> NDArray[np.float64]:
        """Time array [s]."""
        return np.array([r.time for r in self.records])

    @property
    def position(self) -> NDArray[np.float64]:
        """Position history [m], shape (N, 3)."""
        return np.array([r.position for r in self.records]).reshape(-1, 3)

    @property
    def velocity(self) -> NDArray[np.float64]:
        """Velocity history [m/s], shape (N, 3)."""
        return np.array([r.velocity for r in self.records]).reshape(-1, 3)

    @property
    def airspeed(self) -> NDArray[np.float64]:
        return np.array([r.airspeed for r in self.records])

    def to_dataframe(self):
        """Convert to Polars DataFrame."""
        import polars as pl

        return pl.DataFrame({
            "time": self.time,
            "x": self.position[:, 0],
            "y": self.position[:, 1],
            "z": self.position[:, 2],
            "vx": self.velocity[:, 0],
            "vy": self.velocity[:, 1],
            "vz": self.velocity[:, 2],
            "airspeed": self.airspeed,
            "thrust": np.array([r.thrust for r in self.records]),
            "max_tension": np.array([r.max_tension for r in self.records]),
            "mode": [r.mode for r in self.records],
            "cost": np.array([r.cost for r in self.records]),
        })
