"""Unit tests for the segmented tether.

These tests verify the tension law, mass lumping and the energy behaviour
of the explicit integrator.
"""

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from kitesim.dynamics.state import AttachmentPointState
from kitesim.environment.atmosphere import Atmosphere
from kitesim.errors import ConfigurationError
from kitesim.tether.tether import Tether, TetherProperties


def stretched_bridle_tether(end_x: float = 22.0, junction_x: float = 11.0) -> Tether:
    """Three-point tether along +x: 10 m main line, two 10 m bridles."""
    props = TetherProperties(
        num_points=3,
        total_length=20.0,
        bridle_length=10.0,
        linear_density=0.1,
        stiffness=100.0,
        damping=1.0,
        diameter=0.0,
    )
    positions = np.array([
        [junction_x, 0.0, 0.0],
        [end_x, 0.0, 0.0],
        [end_x, 0.0, 0.0],
    ])
    return Tether(props, positions, environment=Atmosphere.vacuum())


# =============================================================================
# Configuration
# =============================================================================


class TestTetherProperties:
    """Test tether configuration validation."""

    def test_segment_length(self):
        props = TetherProperties()
        assert_allclose(props.main_segment_length, (73.0 - 3.0) / 10)
        assert props.num_segments == 12

    def test_too_few_points(self):
        with pytest.raises(ConfigurationError, match="at least 3"):
            TetherProperties(num_points=2)

    def test_bridle_longer_than_tether(self):
        with pytest.raises(ConfigurationError, match="shorter"):
            TetherProperties(total_length=5.0, bridle_length=5.0)

    def test_negative_stiffness(self):
        with pytest.raises(ConfigurationError, match="Stiffness"):
            TetherProperties(stiffness=-1.0)

    def test_wrong_array_shape(self):
        with pytest.raises(ConfigurationError):
            Tether(TetherProperties(num_points=4), np.zeros((3, 3)))


# =============================================================================
# Construction
# =============================================================================


class TestTetherConstruction:
    """Test initial placement and mass lumping."""

    def test_mass_lumping(self):
        """Half of each segment's mass goes to each end; the anchor half is dropped."""
        props = TetherProperties()
        tether = Tether.from_kite(
            props,
            AttachmentPointState(
                positions=np.array([[73.0, 0.5, 0.0], [73.0, -0.5, 0.0]]),
                velocities=np.zeros((2, 3)),
            ),
        )

        anchor_half = 0.5 * props.linear_density * props.main_segment_length
        total = props.linear_density * (props.total_length - props.bridle_length + 2 * props.bridle_length)
        assert_allclose(np.sum(tether.masses) + anchor_half, total)
        assert_allclose(tether.get_kite_tether_mass(), props.linear_density * props.bridle_length)

    def test_from_kite_geometry(self):
        props = TetherProperties(num_points=6, total_length=20.0, bridle_length=2.0)
        ends = np.array([[20.0, 1.0, 0.0], [20.0, -1.0, 0.0]])
        tether = Tether.from_kite(
            props, AttachmentPointState(positions=ends, velocities=np.zeros((2, 3)))
        )

        junction = tether.positions[tether.junction_index]
        assert_allclose(tether.positions[-2:], ends)
        assert_allclose(np.linalg.norm(ends - junction, axis=1), [2.0, 2.0])
        assert_allclose(junction, [20.0 - math.sqrt(3.0), 0.0, 0.0])

        # Main-line points evenly spaced from anchor to junction
        main = np.vstack([props.anchor, tether.positions[: tether.junction_index + 1]])
        spacing = np.linalg.norm(np.diff(main, axis=0), axis=1)
        assert_allclose(spacing, spacing[0])

    def test_from_kite_rotating(self):
        """With an angular velocity the main line turns rigidly about the anchor."""
        props = TetherProperties(num_points=6, total_length=20.0, bridle_length=2.0)
        ends = np.array([[20.0, 1.0, 0.0], [20.0, -1.0, 0.0]])
        omega = np.array([0.0, 0.0, 0.5])
        tether = Tether.from_kite(
            props,
            AttachmentPointState(positions=ends, velocities=np.zeros((2, 3))),
            angular_velocity=omega,
        )

        main = tether.positions[: tether.junction_index + 1]
        velocities = tether.velocities[: tether.junction_index + 1]
        assert_allclose(velocities[:, 1], 0.5 * main[:, 0])
        assert_allclose(velocities[:, [0, 2]], 0.0, atol=1e-12)
        assert_allclose(tether.velocities[-2:], np.zeros((2, 3)))

    def test_rest_configuration_has_no_tension(self):
        tether = stretched_bridle_tether(end_x=20.0, junction_x=10.0)
        assert_allclose(tether.segment_tensions(), np.zeros(3), atol=1e-9)
        assert_allclose(tether.kite_tether_forces(), np.zeros((2, 3)), atol=1e-9)


# =============================================================================
# Tension Law
# =============================================================================


class TestTetherTension:
    """Test the unilateral spring-damper segments."""

    def test_stretched_segment_initial_tension(self):
        """A bridle stretched to 1.1x rest length pulls with k * 0.1 * L0."""
        tether = stretched_bridle_tether()

        f1, f2 = tether.kite_tether_forces()

        assert_allclose(f1, [-10.0, 0.0, 0.0])
        assert_allclose(f2, [-10.0, 0.0, 0.0])
        assert_allclose(tether.segment_tensions(), [10.0, 10.0, 10.0])

    def test_stretched_segment_settles(self):
        """Released stretch oscillates with decreasing amplitude and settles."""
        tether = stretched_bridle_tether()
        equilibrium = 34.0 / 3.0  # 100 (x - 10) = 2 * 100 (22 - x - 10)

        deviations = []
        for _ in range(20000):
            tether.update_tether_position_and_forces(0.001)
            deviations.append(abs(tether.positions[0, 0] - equilibrium))

        early = max(deviations[:1000])
        late = max(deviations[-1000:])
        assert late < 0.1 * early
        assert_allclose(tether.positions[0], [equilibrium, 0.0, 0.0], atol=1e-4)

    def test_slack_segment_no_tension(self):
        """Segments shorter than rest length push nothing."""
        tether = stretched_bridle_tether(end_x=15.0)

        tensions = tether.segment_tensions()
        assert_allclose(tensions[1:], [0.0, 0.0])
        assert_allclose(tensions[0], 100.0)
        assert_allclose(tether.kite_tether_forces(), np.zeros((2, 3)))

    def test_degenerate_segment_skipped(self):
        """Zero-length bridles contribute nothing and are counted."""
        tether = stretched_bridle_tether(end_x=11.0, junction_x=11.0)

        assert tether.degenerate_segments == 2
        tether.update_tether_position_and_forces(0.001)

        assert tether.degenerate_segments == 4
        assert np.all(np.isfinite(tether.positions))
        assert np.all(np.isfinite(tether.segment_tensions()))

    def test_tension_never_negative_while_compressing(self):
        """Fast closing speed cannot produce a pushing segment."""
        tether = stretched_bridle_tether(end_x=20.5, junction_x=10.0)
        tether.velocities[0] = np.array([80.0, 0.0, 0.0])
        tether.set_state(tether.positions, tether.velocities)

        assert np.all(tether.segment_tensions() >= 0.0)


# =============================================================================
# Kite Interface
# =============================================================================


class TestTetherKiteInterface:
    """Test the hand-off with the kite body."""

    def test_update_pins_bridle_ends(self):
        tether = stretched_bridle_tether()
        aps = AttachmentPointState(
            positions=np.array([[23.0, 1.0, 0.0], [23.0, -1.0, 0.0]]),
            velocities=np.array([[1.0, 0.0, 0.0], [1.0, 0.0, 0.0]]),
        )

        tether.update_kite_tether_state(aps)

        assert_allclose(tether.positions[-2:], aps.positions)
        assert_allclose(tether.velocities[-2:], aps.velocities)

    def test_step_does_not_move_bridle_ends(self):
        tether = stretched_bridle_tether()
        tether.velocities[-2:] = 5.0
        ends = tether.positions[-2:].copy()

        tether.update_tether_position_and_forces(0.001)

        assert_allclose(tether.positions[-2:], ends)

    def test_set_state_shape_check(self):
        tether = stretched_bridle_tether()
        with pytest.raises(ValueError, match="shape"):
            tether.set_state(np.zeros((2, 3)), np.zeros((2, 3)))

    def test_get_state_is_copy(self):
        tether = stretched_bridle_tether()
        positions, _ = tether.get_state()
        positions[0, 0] = -1.0
        assert tether.positions[0, 0] == 11.0


# =============================================================================
# Energy and Stability
# =============================================================================


class TestTetherEnergy:
    """Test dissipation and sub-step stability limits."""

    def test_energy_non_increasing(self):
        """With damping and drag, total energy never grows beyond numerical noise."""
        props = TetherProperties(
            num_points=8,
            total_length=10.0,
            bridle_length=1.0,
            linear_density=0.05,
            stiffness=2000.0,
            damping=5.0,
            diameter=0.1,
        )
        aps = AttachmentPointState(
            positions=np.array([[10.0, 0.3, 0.0], [10.0, -0.3, 0.0]]),
            velocities=np.zeros((2, 3)),
        )
        tether = Tether.from_kite(props, aps, Atmosphere())
        assert tether.stable_substep_limit(0.03) <= 0.03 / 5e-4

        scale = float(np.sum(tether.masses)) * tether.environment.gravity * props.total_length
        energies = [tether.energy()]
        kinetic = []
        for step in range(1, 40001):
            tether.update_tether_position_and_forces(5e-4)
            if step % 100 == 0:
                energies.append(tether.energy())
                kinetic.append(
                    0.5 * float(np.sum(tether.masses * np.sum(tether.velocities**2, axis=1)))
                )
                assert np.all(tether.segment_tensions() >= 0.0)

        increases = np.diff(energies)
        assert np.max(increases) < 2e-3 * scale
        assert energies[-1] < energies[0] - 0.1
        assert max(kinetic[-40:]) < 0.25 * max(kinetic)

    def test_default_substeps_sufficient(self):
        """Default tether is stable with 20 sub-steps per 30 ms frame."""
        tether = Tether.from_kite(
            TetherProperties(),
            AttachmentPointState(
                positions=np.array([[73.0, 0.5, 0.0], [73.0, -0.5, 0.0]]),
                velocities=np.zeros((2, 3)),
            ),
        )
        limit = tether.stable_substep_limit(0.03)
        assert 1 <= limit <= 20

    def test_stiff_tether_needs_more_substeps(self):
        tether = Tether.from_kite(
            TetherProperties(stiffness=5.0e5),
            AttachmentPointState(
                positions=np.array([[73.0, 0.5, 0.0], [73.0, -0.5, 0.0]]),
                velocities=np.zeros((2, 3)),
            ),
        )
        assert tether.stable_substep_limit(0.03) > 20
