"""Unit tests for the frame-driven KiteSimulation.

Tests the frame loop contract: sub-step ordering, frame clamping, pause,
pilot commands, live tuning and the flight log.
"""

import logging
import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from autopilot import FlightMode, build_default_simulation
from kitesim.errors import ConfigurationError
from kitesim.simulation import (
    CostAccumulator,
    KiteSimulation,
    ManualController,
    PilotInput,
    SimConfig,
    SimulationResult,
)


class RecordingController(ManualController):
    """Manual controller that logs the calls made by the frame loop."""

    def __init__(self, log: list[str]) -> None:
        self.log = log

    def update(self, dt):
        self.log.append("update")

    def get_moment(self, dt):
        self.log.append("moment")
        return np.zeros(3)

    def adjust_thrust(self, dt):
        self.log.append("thrust")

    def auto_adjust_mode(self):
        self.log.append("auto")

    def tracking_cost(self, position):
        self.log.append("cost")
        return 1.5


# =============================================================================
# Configuration and Initialization
# =============================================================================


class TestSimulationInit:
    """Test configuration and initial placement."""

    @pytest.mark.parametrize("kwargs", [
        {"substeps": 0},
        {"max_frame_dt": 0.0},
        {"history_length": 0},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            SimConfig(**kwargs)

    def test_pilot_axis_range(self):
        with pytest.raises(ValueError, match="rudder"):
            PilotInput(rudder=2)

    def test_kite_at_tether_end(self):
        """Kite stands nose up at the end of an unstretched tether."""
        sim = KiteSimulation.at_tether_end()
        props = sim.tether.properties

        aps = sim.kite.get_attachment_points_state()
        reach = math.sqrt(props.bridle_length**2 - 0.5**2)
        expected_midpoint = props.total_length - props.bridle_length + reach

        assert_allclose(aps.midpoint, [expected_midpoint, 0.0, 0.0], atol=1e-9)
        assert_allclose(sim.kite.state.forward, [0.0, 0.0, 1.0], atol=1e-12)
        assert_allclose(sim.tether.positions[-2:], aps.positions)
        assert_allclose(sim.tether.segment_tensions(), 0.0, atol=1e-6)
        assert isinstance(sim.controller, ManualController)

    def test_default_substeps_within_stability_limit(self, caplog):
        with caplog.at_level(logging.WARNING, logger="kitesim.simulation.simulator"):
            KiteSimulation.at_tether_end()
        assert "stability limit" not in caplog.text

    def test_too_few_substeps_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="kitesim.simulation.simulator"):
            KiteSimulation.at_tether_end(config=SimConfig(substeps=1))
        assert "stability limit" in caplog.text


# =============================================================================
# Frame Loop
# =============================================================================


class TestFrameLoop:
    """Test the per-frame contract."""

    def test_substep_order(self):
        """Tether, controller, kite, hand-off per sub-step; per-frame work last."""
        log = []
        sim = KiteSimulation.at_tether_end(
            controller_factory=lambda kite: RecordingController(log),
            config=SimConfig(substeps=2),
        )

        def wrap(method, name):
            def wrapper(*args):
                log.append(name)
                return method(*args)
            return wrapper

        sim.tether.update_tether_position_and_forces = wrap(
            sim.tether.update_tether_position_and_forces, "tether")
        sim.kite.update_kite_position_and_forces = wrap(
            sim.kite.update_kite_position_and_forces, "kite")
        sim.tether.update_kite_tether_state = wrap(
            sim.tether.update_kite_tether_state, "handoff")

        sim.update(0.02)

        substep = ["tether", "update", "moment", "kite", "handoff"]
        assert log == substep * 2 + ["thrust", "auto", "cost"]
        assert sim.cost.count == 1
        assert sim.cost.mean() == 1.5

    def test_bridle_ends_follow_kite(self):
        sim = KiteSimulation.at_tether_end()
        sim.update(0.016)

        aps = sim.kite.get_attachment_points_state()
        assert np.array_equal(sim.tether.positions[-2:], aps.positions)
        assert np.array_equal(sim.tether.velocities[-2:], aps.velocities)

    def test_frame_clamped(self):
        sim = KiteSimulation.at_tether_end()
        sim.update(1.0)

        assert_allclose(sim.time, 0.03)
        assert sim.frames == 1

    def test_integer_elapsed_accepted(self):
        sim = KiteSimulation.at_tether_end()
        sim.update(1)

        assert_allclose(sim.time, 0.03)
        assert sim.frames == 1

    def test_non_positive_elapsed_ignored(self):
        sim = KiteSimulation.at_tether_end()
        position = sim.kite.state.position.copy()

        sim.update(0.0)
        sim.update(-0.5)

        assert sim.time == 0.0
        assert sim.cost.count == 0
        assert np.array_equal(sim.kite.state.position, position)

    def test_pause(self):
        """Paused frames change neither state nor cost."""
        sim = KiteSimulation.at_tether_end()
        sim.update(0.016)
        position = sim.kite.state.position.copy()
        tether_positions = sim.tether.positions.copy()
        count = sim.cost.count

        assert sim.toggle_pause() is True
        for _ in range(5):
            sim.update(0.016)

        assert np.array_equal(sim.kite.state.position, position)
        assert np.array_equal(sim.tether.positions, tether_positions)
        assert sim.cost.count == count

        assert sim.toggle_pause() is False
        sim.update(0.016)
        assert sim.cost.count == count + 1

    def test_kite_falls_without_thrust(self):
        sim = KiteSimulation.at_tether_end()
        for _ in range(10):
            sim.update(0.02)
        assert sim.kite.state.velocity[2] < 0


# =============================================================================
# Pilot Commands
# =============================================================================


class TestPilot:
    """Test held pilot command axes."""

    def test_thrust_rate(self):
        sim = KiteSimulation.at_tether_end()
        sim.pilot.thrust = 1
        sim.update(0.03)
        assert_allclose(sim.kite.state.thrust, 20.0 * 0.03)

    def test_surface_rates(self):
        sim = KiteSimulation.at_tether_end()
        sim.pilot.rudder = 1
        sim.pilot.elevator = -1
        sim.update(0.03)

        assert_allclose(sim.kite.state.rudder, math.pi * 0.03)
        assert_allclose(sim.kite.state.elevator, -math.pi * 0.03)

    def test_clear(self):
        sim = KiteSimulation.at_tether_end()
        sim.pilot.thrust = 1
        sim.pilot.clear()
        sim.update(0.03)
        assert sim.kite.state.thrust == 0.0

    def test_invalid_axis_rejected(self):
        sim = KiteSimulation.at_tether_end()
        sim.pilot.thrust = 5
        with pytest.raises(ValueError):
            sim.update(0.03)


# =============================================================================
# Cost
# =============================================================================


class TestCostAccumulator:
    """Test the running mean."""

    def test_empty_mean(self):
        assert CostAccumulator().mean() == 0.0

    def test_mean_and_reset(self):
        cost = CostAccumulator()
        for sample in (1.0, 2.0, 6.0):
            cost.add(sample)

        assert cost.count == 3
        assert_allclose(cost.mean(), 3.0)

        cost.reset()
        assert cost.count == 0
        assert cost.mean() == 0.0

    def test_non_finite_skipped(self):
        cost = CostAccumulator()
        cost.add(2.0)
        cost.add(math.nan)
        cost.add(math.inf)

        assert cost.count == 1
        assert cost.mean() == 2.0


# =============================================================================
# Autopilot Integration
# =============================================================================


class TestAutopilotSimulation:
    """Test the default scenario with the flight mode controller."""

    def test_toggle_mode(self):
        sim = build_default_simulation()
        assert sim.toggle_mode() == FlightMode.STABILIZE
        assert sim.controller.mode == FlightMode.STABILIZE

    def test_set_tunable_clipped(self):
        sim = build_default_simulation()

        assert sim.set_tunable("velocity_setpoint", 50.0) == 35.0
        assert sim.controller.config.velocity_setpoint == 35.0
        assert sim.get_tunable("velocity_setpoint") == 35.0

        assert sim.set_tunable("roll_rate.ki", -1.0) == 0.0
        assert sim.set_tunable("look_ahead_ratio", 0.25) == 0.25
        assert sim.controller.path_follower.look_ahead_ratio == 0.25

    def test_set_tunable_reaches_pid(self):
        sim = build_default_simulation()
        sim.set_tunable("roll_rate.kp", 7.5)

        roll_pid = sim.controller.fixed_wing.rate_loops.controllers[0]
        assert roll_pid.gains.kp == 7.5

    def test_unknown_tunable(self):
        with pytest.raises(KeyError):
            build_default_simulation().set_tunable("pitch_rate.kp", 1.0)
        with pytest.raises(KeyError):
            KiteSimulation.at_tether_end().set_tunable("velocity_setpoint", 20.0)

    def test_hover_run_stays_finite(self):
        sim = build_default_simulation(mode=FlightMode.VTOL_HOVER)
        for _ in range(60):
            sim.update(1.0 / 60.0)

        state = sim.kite.state
        assert np.all(np.isfinite(state.position))
        assert np.all(np.isfinite(sim.tether.positions))
        assert_allclose(np.linalg.norm(state.quaternion), 1.0, atol=1e-12)
        assert sim.kite.state.thrust > 0
        assert sim.cost.count == 60
        assert math.isfinite(sim.cost.mean())
        assert set(sim.diagnostics()) == {
            "degenerate_segments", "rejected_moments", "rejected_pid_inputs",
        }

    def test_flight_log(self):
        sim = build_default_simulation(mode=FlightMode.VTOL_HOVER)
        for _ in range(20):
            sim.update(1.0 / 60.0)

        result = SimulationResult.from_simulation(sim)
        assert len(result.records) == 20
        assert np.all(np.diff(result.time) > 0)
        assert result.position.shape == (20, 3)
        assert result.records[-1].mode in ("VTOL_HOVER", "VTOL_TRANSITION")

        df = result.to_dataframe()
        assert df.shape == (20, 12)
        assert "max_tension" in df.columns

        sim.clear_history()
        assert sim.get_history() == []

    def test_history_disabled(self):
        sim = build_default_simulation(sim_config=SimConfig(record_history=False))
        sim.update(0.016)
        assert sim.get_history() == []

    def test_history_bounded(self):
        """The flight log keeps only the most recent frames."""
        sim = build_default_simulation(
            mode=FlightMode.VTOL_HOVER, sim_config=SimConfig(history_length=5),
        )
        for _ in range(12):
            sim.update(1.0 / 60.0)

        history = sim.get_history()
        assert len(history) == 5
        assert_allclose(history[-1].time, sim.time)
        assert_allclose(history[0].time, 8.0 / 60.0)
