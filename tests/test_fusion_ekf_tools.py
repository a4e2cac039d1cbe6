"""
Tests for Fusion-EKF tools: polar model, Jacobian, motion matrices, metrics
============================================================================
pytest tests/test_fusion_ekf_tools.py -v
"""

import warnings

import numpy as np
import pytest
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fusion_ekf import (
    DegenerateStateError, calculate_jacobian, cartesian_to_polar,
    compute_nees, compute_nis, compute_rmse, make_process_noise,
    make_transition_matrix, nis_bounds, normalize_angle, polar_to_cartesian,
)


def numerical_jacobian(x, eps=1e-6):
    J = np.zeros((3, 4))
    for i in range(4):
        dx = np.zeros(4)
        dx[i] = eps
        J[:, i] = (cartesian_to_polar(x + dx) - cartesian_to_polar(x - dx)) / (2 * eps)
    return J


# ===== ANGLES / COORDINATES =====

class TestNormalizeAngle:
    def test_in_range_unchanged(self):
        assert normalize_angle(0.0) == pytest.approx(0.0)
        assert normalize_angle(1.0) == pytest.approx(1.0)
        assert normalize_angle(-1.0) == pytest.approx(-1.0)

    def test_wraps_large_negative(self):
        # -3.0 observed vs 3.0 predicted
        assert normalize_angle(-3.0 - 3.0) == pytest.approx(2 * np.pi - 6.0, abs=1e-12)

    def test_wraps_large_positive(self):
        # 3.0 observed vs -3.0 predicted
        assert normalize_angle(3.0 - (-3.0)) == pytest.approx(-0.2832, abs=1e-4)

    def test_pi_maps_to_pi(self):
        assert normalize_angle(np.pi) == pytest.approx(np.pi)
        assert normalize_angle(-np.pi) == pytest.approx(np.pi)

    def test_three_halves_pi(self):
        assert normalize_angle(1.5 * np.pi) == pytest.approx(-0.5 * np.pi)
        assert normalize_angle(-1.5 * np.pi) == pytest.approx(0.5 * np.pi)

    @pytest.mark.parametrize("angle", np.linspace(-20.0, 20.0, 41))
    def test_result_in_half_open_interval(self, angle):
        wrapped = normalize_angle(angle)
        assert -np.pi < wrapped <= np.pi
        assert np.sin(wrapped) == pytest.approx(np.sin(angle), abs=1e-9)
        assert np.cos(wrapped) == pytest.approx(np.cos(angle), abs=1e-9)


class TestPolarConversions:
    def test_polar_to_cartesian_on_axis(self):
        np.testing.assert_allclose(polar_to_cartesian(5.0, 0.0, 2.0), [5.0, 0.0, 2.0, 0.0])

    def test_polar_to_cartesian_quarter_turn(self):
        np.testing.assert_allclose(polar_to_cartesian(2.0, np.pi / 2, 1.0),
                                   [0.0, 2.0, 0.0, 1.0], atol=1e-12)

    def test_cartesian_to_polar(self):
        rho, phi, rho_dot = cartesian_to_polar(np.array([3.0, 4.0, 1.0, 2.0]))
        assert rho == pytest.approx(5.0)
        assert phi == pytest.approx(np.arctan2(4.0, 3.0))
        assert rho_dot == pytest.approx((3.0 * 1.0 + 4.0 * 2.0) / 5.0)

    def test_radial_motion_inverts(self):
        x = polar_to_cartesian(7.0, -2.5, -1.5)
        np.testing.assert_allclose(cartesian_to_polar(x), [7.0, -2.5, -1.5])

    def test_cartesian_to_polar_near_origin_raises(self):
        with pytest.raises(DegenerateStateError):
            cartesian_to_polar(np.array([1e-7, 1e-7, 1.0, 1.0]))


# ===== JACOBIAN =====

class TestJacobian:
    def test_shape(self):
        assert calculate_jacobian(np.array([1.0, 2.0, 3.0, 4.0])).shape == (3, 4)

    def test_unit_state(self):
        Hj = calculate_jacobian(np.array([1.0, 1.0, 1.0, 1.0]))
        r = 1.0 / np.sqrt(2.0)
        np.testing.assert_allclose(Hj[0], [r, r, 0.0, 0.0])
        np.testing.assert_allclose(Hj[1], [-0.5, 0.5, 0.0, 0.0])
        np.testing.assert_allclose(Hj[2], [0.0, 0.0, r, r], atol=1e-12)

    def test_closed_form(self):
        Hj = calculate_jacobian(np.array([3.0, 4.0, 1.0, 2.0]))
        expected = np.array([
            [0.6, 0.8, 0.0, 0.0],
            [-0.16, 0.12, 0.0, 0.0],
            [-0.064, 0.048, 0.6, 0.8],
        ])
        np.testing.assert_allclose(Hj, expected, atol=1e-12)

    @pytest.mark.parametrize("x", [
        [3.0, 4.0, 1.0, 2.0],
        [-7.0, 2.0, 0.5, -3.0],
        [0.5, -12.0, -4.0, 1.0],
    ])
    def test_matches_finite_differences(self, x):
        x = np.array(x)
        np.testing.assert_allclose(calculate_jacobian(x), numerical_jacobian(x), atol=1e-6)

    def test_near_origin_raises(self):
        with pytest.raises(DegenerateStateError) as exc_info:
            calculate_jacobian(np.array([1e-7, 1e-7, 1.0, 1.0]))
        assert exc_info.value.range_sq == pytest.approx(2e-14)

    def test_near_origin_is_arithmetic_error(self):
        with pytest.raises(ArithmeticError):
            calculate_jacobian(np.zeros(4))

    def test_near_origin_warns_when_asked(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            with pytest.raises(DegenerateStateError):
                calculate_jacobian(np.zeros(4), warn=True)
        assert any(issubclass(w.category, RuntimeWarning) for w in caught)

    def test_custom_threshold(self):
        x = np.array([0.01, 0.0, 0.0, 0.0])
        calculate_jacobian(x, min_range_sq=1e-6)
        with pytest.raises(DegenerateStateError):
            calculate_jacobian(x, min_range_sq=1e-3)

    def test_bad_shape_raises(self):
        with pytest.raises(ValueError):
            calculate_jacobian(np.array([1.0, 2.0, 3.0]))


# ===== MOTION MODEL =====

class TestMotionModel:
    def test_transition_matrix(self):
        F = make_transition_matrix(0.1)
        expected = np.eye(4)
        expected[0, 2] = expected[1, 3] = 0.1
        np.testing.assert_array_equal(F, expected)

    def test_transition_zero_dt_is_identity(self):
        np.testing.assert_array_equal(make_transition_matrix(0.0), np.eye(4))

    def test_process_noise_values(self):
        Q = make_process_noise(0.1, 9.0, 9.0)
        assert Q[0, 0] == pytest.approx(0.1 ** 4 / 4 * 9.0)
        assert Q[0, 2] == pytest.approx(0.1 ** 3 / 2 * 9.0)
        assert Q[2, 2] == pytest.approx(0.1 ** 2 * 9.0)
        assert Q[0, 1] == 0.0
        assert Q[0, 3] == 0.0

    def test_process_noise_axes_independent(self):
        Q = make_process_noise(1.0, 4.0, 16.0)
        assert Q[0, 0] == pytest.approx(1.0)
        assert Q[1, 1] == pytest.approx(4.0)
        assert Q[3, 3] == pytest.approx(16.0)

    def test_process_noise_symmetric_psd(self):
        Q = make_process_noise(0.37, 9.0, 5.0)
        np.testing.assert_allclose(Q, Q.T)
        assert np.all(np.linalg.eigvalsh(Q) >= -1e-12)

    def test_process_noise_zero_dt(self):
        np.testing.assert_array_equal(make_process_noise(0.0, 9.0, 9.0), np.zeros((4, 4)))


# ===== METRICS =====

class TestMetrics:
    def test_rmse_constant_offset(self):
        gt = [np.array([i, 2.0 * i, 1.0, -1.0]) for i in range(10)]
        est = [g + np.array([0.1, -0.2, 0.3, 0.0]) for g in gt]
        np.testing.assert_allclose(compute_rmse(est, gt), [0.1, 0.2, 0.3, 0.0], atol=1e-12)

    def test_rmse_empty_raises(self):
        with pytest.raises(ValueError):
            compute_rmse([], [])

    def test_rmse_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            compute_rmse([np.zeros(4)], [np.zeros(4), np.zeros(4)])

    def test_rmse_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            compute_rmse([np.zeros(4)], [np.zeros(3)])

    def test_nis(self):
        assert compute_nis(np.array([1.0, 2.0]), np.diag([1.0, 4.0])) == pytest.approx(2.0)

    def test_nis_singular_is_inf(self):
        assert compute_nis(np.array([1.0, 2.0]), np.zeros((2, 2))) == float('inf')

    def test_nees(self):
        P = np.diag([1.0, 1.0, 4.0, 4.0])
        assert compute_nees(np.array([1.0, 0.0, 2.0, 0.0]), np.zeros(4), P) == pytest.approx(2.0)

    def test_nis_bounds(self):
        lo, hi = nis_bounds(2, 0.95)
        assert lo == pytest.approx(0.0506, rel=1e-2)
        assert hi == pytest.approx(7.378, rel=1e-3)
        lo3, hi3 = nis_bounds(3, 0.95)
        assert hi3 > hi
