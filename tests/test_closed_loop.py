"""Closed-loop flight tests.

Each test flies the default kite and tether for a few seconds of simulated
time through the full autopilot chain and checks the outcome of the flight
rather than single controller outputs.
"""

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from autopilot import FlightControlConfig, FlightMode, build_default_simulation, launch_on_path, place_kite
from autopilot.guidance.paths import direction_from_angles
from kitesim.dynamics.state import KiteState, quaternion_from_axes

FRAME_DT = 1.0 / 60.0


def fly(sim, frames: int) -> None:
    for _ in range(frames):
        sim.update(FRAME_DT)


def attitude_angle(q, reference) -> float:
    """Rotation angle between two attitudes [rad]."""
    dot = min(abs(float(np.dot(q, reference))), 1.0)
    return 2.0 * math.acos(dot)


# =============================================================================
# Launch
# =============================================================================


class TestLaunch:
    """Test placing the kite in crosswind flight."""

    def test_launch_on_path(self):
        sim = build_default_simulation(path="circle")
        launch_on_path(sim, index=10)

        controller = sim.controller
        assert controller.mode == FlightMode.PATH_FOLLOW
        assert controller.path_follower.index == 10
        assert_allclose(sim.kite.state.position, controller.path_follower.path[10])
        assert_allclose(controller.tracking_cost(sim.kite.state.position), 0.0, atol=1e-9)
        assert_allclose(sim.kite.state.thrust, 0.5 * sim.kite.properties.max_thrust)
        assert_allclose(sim.kite.airspeed, controller.config.velocity_setpoint)
        assert sim.cost.count == 0

    def test_tether_straight_and_turning(self):
        """The main line lies along the anchor-to-junction line and moves across it."""
        sim = build_default_simulation(path="circle")
        launch_on_path(sim, index=10)

        positions, velocities = sim.tether.get_state()
        anchor = sim.tether.properties.anchor
        junction = positions[sim.tether.junction_index] - anchor
        direction = junction / np.linalg.norm(junction)

        for position, velocity in zip(positions[1:sim.tether.junction_index], velocities[1:]):
            offset = position - anchor
            assert_allclose(np.cross(offset, direction), np.zeros(3), atol=1e-8)
            assert_allclose(np.dot(velocity, offset), 0.0, atol=1e-6)

    def test_last_waypoint(self):
        sim = build_default_simulation(path="circle")
        last = sim.controller.path_follower.max_index
        launch_on_path(sim, index=last)
        assert sim.controller.path_follower.index == last

    def test_index_outside_path(self):
        sim = build_default_simulation(path="circle")
        with pytest.raises(ValueError, match="outside"):
            launch_on_path(sim, index=sim.controller.path_follower.max_index + 1)


# =============================================================================
# Path Following
# =============================================================================


class TestPathFollowing:
    """Test that a kite launched on the path stays close to it."""

    def test_circle_calm(self):
        sim = build_default_simulation(path="circle")
        launch_on_path(sim)

        fly(sim, 360)

        assert sim.controller.mode == FlightMode.PATH_FOLLOW
        assert sim.cost.count == 360
        assert sim.cost.mean() < 8.0
        assert max(record.cost for record in sim.get_history()) < 20.0

    def test_figure_eight_in_wind(self):
        sim = build_default_simulation(path="figure_eight", wind=np.array([5.0, 0.0, 0.0]))
        launch_on_path(sim)

        fly(sim, 360)

        assert sim.controller.mode == FlightMode.PATH_FOLLOW
        assert sim.cost.mean() < 10.0
        assert max(record.cost for record in sim.get_history()) < 25.0

    def test_progresses_along_path(self):
        sim = build_default_simulation(path="circle")
        launch_on_path(sim)

        fly(sim, 180)

        # About 60 m flown at 20 m/s
        assert sim.controller.path_follower.index > 10


# =============================================================================
# Stabilize
# =============================================================================


class TestStabilize:
    """Test attitude hold with the pilot's throttle in a crosswind."""

    def test_holds_attitude_in_crosswind(self):
        sim = build_default_simulation(wind=np.array([0.0, 6.0, 0.0]))
        sim.kite.adjust_thrust_by(26.0)
        sim.toggle_mode()
        assert sim.controller.mode == FlightMode.STABILIZE
        hold = sim.kite.state.quaternion.copy()

        fly(sim, 210)

        errors = [attitude_angle(record.quaternion, hold) for record in sim.get_history()]
        assert max(errors) < np.radians(15.0)
        assert_allclose(sim.kite.state.thrust, 26.0)


# =============================================================================
# Hover Recovery
# =============================================================================


class TestHoverRecovery:
    """Test that the hover fallback stops a diving kite."""

    def test_dive_arrested(self):
        sim = build_default_simulation(flight_config=FlightControlConfig(auto_transition=False))
        radial = direction_from_angles(0.0, np.radians(35.0))
        down = np.array([np.sin(np.radians(35.0)), 0.0, -np.cos(np.radians(35.0))])
        place_kite(sim, KiteState(
            position=73.0 * radial,
            velocity=10.0 * down,
            quaternion=quaternion_from_axes(down, radial),
            angular_velocity=np.zeros(3),
        ))
        sim.kite.adjust_thrust_by(20.0)
        sim.controller.set_mode(FlightMode.VTOL_HOVER)

        fly(sim, 480)

        history = sim.get_history()
        assert sim.controller.mode == FlightMode.VTOL_HOVER
        assert min(record.position[2] for record in history) > 10.0
        assert history[-1].velocity[2] > -1.0
