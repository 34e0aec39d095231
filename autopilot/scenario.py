"""Default flight scenario.

Wires a kite, tether and flight mode controller into a `KiteSimulation`,
with the kite standing on its tail at the end of a straight tether along
world +x and a crosswind path on the tether sphere. `launch_on_path` puts
the kite straight into crosswind flight instead.

Example:
    >>> from autopilot.scenario import build_default_simulation, launch_on_path
    >>>
    >>> sim = build_default_simulation(path="circle")
    >>> launch_on_path(sim, index=0)
    >>> for _ in range(600):
    ...     sim.update(1.0 / 60.0)
"""

import logging
from typing import Any, Literal

import numpy as np
from numpy.typing import NDArray

from autopilot.control.position import wing_attitude
from autopilot.flight_mode import FlightControlConfig, FlightMode, FlightModeController
from autopilot.guidance.paths import circle_path, figure_eight_path
from kitesim.dynamics.state import KiteState, quaternion_to_dcm
from kitesim.environment.atmosphere import Atmosphere
from kitesim.simulation.simulator import KiteSimulation, SimConfig
from kitesim.tether.tether import Tether, TetherProperties
from kitesim.vehicle.kite import KiteProperties

logger = logging.getLogger(__name__)

PathKind = Literal["figure_eight", "circle"]


def default_path(
    tether_properties: TetherProperties,
    kind: PathKind = "figure_eight",
    laps: int = 3,
) -> NDArray[np.float64]:
    """Crosswind path at tether length around the anchor."""
    radius = tether_properties.total_length
    anchor = tether_properties.anchor
    if kind == "circle":
        return circle_path(radius, laps=laps, anchor=anchor)
    if kind == "figure_eight":
        return figure_eight_path(radius, laps=laps, anchor=anchor)
    raise ValueError(f"Unknown path kind: {kind}")


def build_default_simulation(
    path: PathKind = "figure_eight",
    wind: NDArray[np.float64] | None = None,
    mode: FlightMode = FlightMode.MANUAL,
    laps: int = 3,
    look_ahead_ratio: float = 0.5,
    kite_properties: KiteProperties | None = None,
    tether_properties: TetherProperties | None = None,
    flight_config: FlightControlConfig | None = None,
    sim_config: SimConfig | None = None,
) -> KiteSimulation:
    """Create the default kite simulation.

    Args:
        path: Crosswind path shape
        wind: Uniform wind velocity [m/s], default calm
        mode: Initial flight mode
        laps: Number of path laps
        look_ahead_ratio: Path follower lookahead ratio
        kite_properties: Kite configuration
        tether_properties: Tether configuration
        flight_config: Autopilot envelope and thrust settings
        sim_config: Frame loop settings
    """
    tether_properties = tether_properties or TetherProperties()
    environment = Atmosphere(wind=np.zeros(3) if wind is None else np.asarray(wind, dtype=np.float64))
    waypoints = default_path(tether_properties, path, laps)

    if flight_config is None:
        flight_config = FlightControlConfig(anchor=tether_properties.anchor.copy())

    def make_controller(kite):
        return FlightModeController.for_path(
            kite, waypoints, look_ahead_ratio=look_ahead_ratio, config=flight_config,
        )

    sim = KiteSimulation.at_tether_end(
        kite_properties=kite_properties,
        tether_properties=tether_properties,
        environment=environment,
        controller_factory=make_controller,
        config=sim_config,
    )
    sim.controller.set_mode(mode)
    logger.info("Built %s scenario with %d waypoints", path, len(waypoints))
    return sim


def restore_snapshot(
    sim: KiteSimulation,
    snapshot: dict[str, Any],
    mode: FlightMode = FlightMode.PATH_FOLLOW,
) -> None:
    """Import a snapshot and resume in `mode` (path following by default)."""
    sim.import_state(snapshot, mode=mode)


def place_kite(sim: KiteSimulation, state: KiteState) -> None:
    """Move the kite to `state` and straighten the tether behind it.

    The main line runs straight from the anchor to the bridle junction and
    turns rigidly about the anchor with the kite's motion across the tether
    sphere. Thrust and surface angles are kept.
    """
    sim.kite.set_state(state)

    offset = state.position - sim.tether.properties.anchor
    omega = np.cross(offset, state.velocity) / np.dot(offset, offset)
    tether = Tether.from_kite(
        sim.tether.properties,
        sim.kite.get_attachment_points_state(),
        sim.tether.environment,
        angular_velocity=omega,
    )
    sim.tether.set_state(*tether.get_state())


def launch_on_path(
    sim: KiteSimulation,
    index: int = 0,
    speed: float | None = None,
    thrust: float | None = None,
    mode: FlightMode = FlightMode.PATH_FOLLOW,
) -> None:
    """Start the kite in crosswind flight at waypoint `index` of the path.

    The kite moves along the path at `speed` (default the velocity setpoint)
    in trimmed flight with its wing normal facing away from the anchor, and
    the controller resumes from `index` in `mode`.

    Args:
        sim: Simulation built by `build_default_simulation`
        index: Waypoint to start at
        speed: Ground speed along the path [m/s]
        thrust: Starting thrust [N], default half of the maximum
        mode: Flight mode to fly in
    """
    controller = sim.controller
    follower = controller.path_follower
    if not 0 <= index <= follower.max_index:
        raise ValueError(f"Path index {index} outside [0, {follower.max_index}]")

    point = follower.path[index]
    radial = point - sim.tether.properties.anchor
    radial = radial / np.linalg.norm(radial)
    if index < follower.max_index:
        tangent = follower.path[index + 1] - point
    else:
        tangent = point - follower.path[index - 1]
    tangent = tangent - np.dot(tangent, radial) * radial
    tangent = tangent / np.linalg.norm(tangent)

    if speed is None:
        speed = controller.config.velocity_setpoint
    velocity = speed * tangent
    quaternion = wing_attitude(
        sim.kite.environment.air_relative_velocity(velocity),
        radial,
        0.0,
        controller.pursuit.trim_alpha,
    )
    # Turning with the sphere
    omega = np.cross(radial, velocity) / np.linalg.norm(point - sim.tether.properties.anchor)

    place_kite(sim, KiteState(
        position=point.copy(),
        velocity=velocity,
        quaternion=quaternion,
        angular_velocity=quaternion_to_dcm(quaternion).T @ omega,
    ))

    kite = sim.kite
    if thrust is None:
        thrust = 0.5 * kite.properties.max_thrust
    kite.adjust_thrust_by(float(thrust - kite.state.thrust))

    controller.set_mode(mode)
    follower.set_index(index)
    sim.cost.reset()
    logger.info("Launched on path at waypoint %d, %.1f m/s", index, speed)
