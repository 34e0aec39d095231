"""Unit tests for the kite body and its aerodynamic surfaces."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from kitesim.dynamics.state import KiteState, axis_angle_quaternion
from kitesim.environment.atmosphere import Atmosphere
from kitesim.errors import ConfigurationError
from kitesim.vehicle.aerodynamics import (
    TRIM_ALPHA,
    SurfaceProperties,
    aerodynamic_loads,
    default_kite_surfaces,
    plate_coefficients,
    surface_force,
)
from kitesim.vehicle.kite import Kite, KiteProperties

NO_TETHER = (np.zeros(3), np.zeros(3))


def make_kite(position=(0.0, 0.0, 50.0), environment=None) -> Kite:
    return Kite(
        KiteProperties(),
        KiteState.at_rest(np.array(position)),
        environment or Atmosphere.vacuum(),
    )


# =============================================================================
# Configuration
# =============================================================================


class TestKiteProperties:
    """Test kite configuration validation."""

    def test_defaults_valid(self):
        props = KiteProperties()
        assert props.mass > 0
        assert_allclose(props.attachment_half_span, 0.5)

    def test_non_positive_mass(self):
        with pytest.raises(ConfigurationError, match="mass"):
            KiteProperties(mass=0.0)

    def test_inertia_not_positive_definite(self):
        with pytest.raises(ConfigurationError, match="positive definite"):
            KiteProperties(inertia=np.diag([0.3, -0.2, 0.45]))

    def test_attachment_shape(self):
        with pytest.raises(ConfigurationError, match="Attachment"):
            KiteProperties(attachment_points=np.zeros((3, 3)))

    def test_surface_needs_hinge(self):
        with pytest.raises(ConfigurationError, match="hinge"):
            SurfaceProperties(
                name="flap",
                area=0.1,
                position=np.zeros(3),
                normal=np.array([0.0, 0.0, 1.0]),
                control="elevator",
            )

    def test_rigged_surface_needs_hinge(self):
        with pytest.raises(ConfigurationError, match="hinge"):
            SurfaceProperties(
                name="stabilizer",
                area=0.1,
                position=np.zeros(3),
                normal=np.array([0.0, 0.0, 1.0]),
                incidence=0.1,
            )


# =============================================================================
# Aerodynamics
# =============================================================================


class TestAerodynamics:
    """Test flat-plate surface loads and control sign conventions."""

    def test_plate_coefficients_zero_alpha(self):
        CL, CD = plate_coefficients(0.0, 4.5, 0.02, 1.28)
        assert CL == 0.0
        assert_allclose(CD, 0.02)

    def test_no_airspeed_no_force(self):
        surface = default_kite_surfaces()[0]
        force = surface_force(surface, surface.normal, np.zeros(3), 1.225)
        assert_allclose(force, np.zeros(3))

    def test_wing_lift_and_drag(self):
        """Flying forward and sinking slightly gives lift up and drag back."""
        surface = default_kite_surfaces()[0]
        force = surface_force(surface, surface.normal, np.array([20.0, 0.0, -2.0]), 1.225)

        assert force[2] > 0
        assert force[0] < 0

    def test_elevator_pitch_convention(self):
        """Positive elevator pitches the nose up (negative body y moment)."""
        surfaces = default_kite_surfaces()
        airflow = np.array([20.0, 0.0, 0.0])

        _, up = aerodynamic_loads(surfaces, airflow, np.zeros(3), 0.0, 0.1, 1.225)
        _, neutral = aerodynamic_loads(surfaces, airflow, np.zeros(3), 0.0, 0.0, 1.225)
        _, down = aerodynamic_loads(surfaces, airflow, np.zeros(3), 0.0, -0.1, 1.225)

        assert up[1] < neutral[1] < down[1]

    def test_elevator_rigged_for_trim(self):
        """Flying at the trim angle of attack, the tail leaves almost no pitch moment."""
        surfaces = default_kite_surfaces()
        alpha = TRIM_ALPHA
        trimmed = 20.0 * np.array([np.cos(alpha), 0.0, -np.sin(alpha)])

        _, at_trim = aerodynamic_loads(surfaces, trimmed, np.zeros(3), 0.0, 0.0, 1.225)
        _, level = aerodynamic_loads(surfaces, np.array([20.0, 0.0, 0.0]), np.zeros(3), 0.0, 0.0, 1.225)

        assert abs(at_trim[1]) < 0.2
        # Below trim the tail pitches the nose up
        assert level[1] < -1.0

    def test_rudder_yaw_convention(self):
        """Positive rudder yaws the nose right (negative body z moment)."""
        surfaces = default_kite_surfaces()
        airflow = np.array([20.0, 0.0, 0.0])

        _, right = aerodynamic_loads(surfaces, airflow, np.zeros(3), 0.1, 0.0, 1.225)
        _, neutral = aerodynamic_loads(surfaces, airflow, np.zeros(3), 0.0, 0.0, 1.225)

        assert_allclose(neutral[2], 0.0, atol=1e-12)
        assert right[2] < 0

    def test_roll_damping(self):
        """Rolling right produces a moment opposing the roll."""
        _, moment = aerodynamic_loads(
            default_kite_surfaces(),
            np.array([20.0, 0.0, 0.0]),
            np.array([1.0, 0.0, 0.0]),
            0.0, 0.0, 1.225,
        )
        assert moment[0] < 0


# =============================================================================
# Integration
# =============================================================================


class TestKiteStep:
    """Test sub-step integration of the kite body."""

    def test_free_fall(self):
        kite = make_kite(environment=Atmosphere(sea_level_density=0.0))
        kite.update_kite_position_and_forces(0.1, NO_TETHER, 0.0, np.zeros(3))

        assert_allclose(kite.state.velocity, [0.0, 0.0, -0.980665])

    def test_tether_added_mass(self):
        """Tether pull accelerates kite plus carried tether mass."""
        kite = make_kite()
        pull = (np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0]))

        kite.update_kite_position_and_forces(0.1, pull, 2.0, np.zeros(3))

        # 2 N over 2 kg kite + 2 kg tether
        assert_allclose(kite.state.velocity, [0.05, 0.0, 0.0])

    def test_tether_pull_off_center_makes_moment(self):
        """Pulling one attachment point turns the kite."""
        kite = make_kite()
        pull = (np.array([-10.0, 0.0, 0.0]), np.zeros(3))

        kite.update_kite_position_and_forces(0.01, pull, 0.0, np.zeros(3))

        # Left attachment point (+y) pulled aft yaws the nose left
        assert kite.state.angular_velocity[2] > 0

    def test_quaternion_norm_preserved(self):
        """Long tumbling integration keeps a unit quaternion."""
        kite = make_kite()
        kite.state.angular_velocity = np.array([1.0, 2.0, 3.0])

        for _ in range(2000):
            kite.update_kite_position_and_forces(0.001, NO_TETHER, 0.0, np.zeros(3))

        assert_allclose(np.linalg.norm(kite.state.quaternion), 1.0, atol=1e-12)

    def test_non_finite_moment_rejected(self):
        kite = make_kite()
        kite.update_kite_position_and_forces(
            0.01, NO_TETHER, 0.0, np.array([np.nan, 0.0, 0.0])
        )

        assert kite.rejected_moments == 1
        assert np.all(np.isfinite(kite.state.angular_velocity))
        assert_allclose(kite.state.angular_velocity, np.zeros(3))

    def test_attachment_points_kinematics(self):
        kite = make_kite(position=(1.0, 2.0, 3.0))
        kite.state.velocity = np.array([4.0, 0.0, 0.0])
        kite.state.angular_velocity = np.array([0.0, 0.0, 1.0])

        aps = kite.get_attachment_points_state()

        assert_allclose(aps.positions, [[1.0, 2.5, 2.95], [1.0, 1.5, 2.95]])
        # v + omega x r
        assert_allclose(aps.velocities, [[3.5, 0.0, 0.0], [4.5, 0.0, 0.0]])

    def test_attachment_points_rotated(self):
        kite = make_kite(position=(0.0, 0.0, 0.0))
        kite.state.quaternion = axis_angle_quaternion(np.array([0.0, 0.0, 1.0]), np.pi / 2)

        aps = kite.get_attachment_points_state()

        assert_allclose(aps.positions, [[-0.5, 0.0, -0.05], [0.5, 0.0, -0.05]], atol=1e-12)


# =============================================================================
# Actuators
# =============================================================================


class TestKiteActuators:
    """Test clamped actuator adjustments."""

    def test_thrust_clamped(self):
        kite = make_kite()
        kite.adjust_thrust_by(-5.0)
        assert kite.state.thrust == 0.0

        kite.adjust_thrust_by(1000.0)
        assert kite.state.thrust == kite.properties.max_thrust

    def test_surfaces_clamped(self):
        kite = make_kite()
        limit = kite.properties.max_deflection

        kite.adjust_rudder_by(10.0)
        kite.adjust_elevator_by(-10.0)

        assert kite.state.rudder == limit
        assert kite.state.elevator == -limit

    def test_rotate_about_vertical(self):
        kite = make_kite()
        kite.rotate_about_vertical(np.pi / 2)
        assert_allclose(kite.state.forward, [0.0, 1.0, 0.0], atol=1e-12)

    def test_set_state_keeps_actuators(self):
        kite = make_kite()
        kite.adjust_thrust_by(5.0)
        kite.adjust_rudder_by(0.1)

        kite.set_state(KiteState.at_rest(np.array([9.0, 9.0, 9.0])))

        assert_allclose(kite.state.position, [9.0, 9.0, 9.0])
        assert kite.state.thrust == 5.0
        assert kite.state.rudder == 0.1

    def test_get_state_is_copy(self):
        kite = make_kite()
        snapshot = kite.get_state()
        snapshot.position[0] = 123.0
        assert kite.state.position[0] == 0.0
