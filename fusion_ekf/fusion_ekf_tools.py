"""
Fusion-EKF Tools
================

Polar observation model, its Jacobian, constant-velocity motion matrices and
the consistency / accuracy statistics used to evaluate a run.

State vector throughout: x = [px, py, vx, vy]
"""

import warnings
from typing import Sequence, Tuple

import numpy as np
from scipy.stats import chi2

from .fusion_ekf_config import MIN_RANGE, MIN_RANGE_SQ, STATE_DIM
from .fusion_ekf_errors import DegenerateStateError


# =============================================================================
# ANGLES / COORDINATES
# =============================================================================

def normalize_angle(angle: float) -> float:
    """Wrap angle into (-π, π]."""
    wrapped = np.pi - (np.pi - angle) % (2 * np.pi)
    return float(wrapped)


def polar_to_cartesian(rho: float, phi: float, rho_dot: float) -> np.ndarray:
    """
    Convert a polar observation to a Cartesian state.

    Range-rate is decomposed along the bearing, so the velocity is the
    radial component only (tangential motion is unobservable from one scan).

    Returns:
        [px, py, vx, vy]
    """
    c, s = np.cos(phi), np.sin(phi)
    return np.array([rho * c, rho * s, rho_dot * c, rho_dot * s])


def cartesian_to_polar(x: np.ndarray, min_range: float = MIN_RANGE) -> np.ndarray:
    """
    Nonlinear observation model h(x) of the polar sensor.

    Args:
        x: State [px, py, vx, vy]
        min_range: Smallest range for which ρ̇ is defined

    Returns:
        [ρ, φ, ρ̇]

    Raises:
        DegenerateStateError: ρ < min_range
    """
    px, py, vx, vy = x
    rho = np.hypot(px, py)
    if rho < min_range:
        raise DegenerateStateError(
            f"Predicted range {rho:.3g} below {min_range:.3g}", range_sq=rho * rho)

    phi = np.arctan2(py, px)
    rho_dot = (px * vx + py * vy) / rho
    return np.array([rho, phi, rho_dot])


# =============================================================================
# JACOBIAN
# =============================================================================

def calculate_jacobian(x: np.ndarray, min_range_sq: float = MIN_RANGE_SQ,
                       warn: bool = False) -> np.ndarray:
    """
    Jacobian Hj = ∂h/∂x of the polar observation model, evaluated at x.

    With c1 = px² + py², c2 = √c1, c3 = c1·c2:

        [  px/c2,                 py/c2,                 0,      0     ]
        [ -py/c1,                 px/c1,                 0,      0     ]
        [  py(vx·py−vy·px)/c3,    px(vy·px−vx·py)/c3,    px/c2,  py/c2 ]

    Args:
        x: State [px, py, vx, vy]
        min_range_sq: Smallest c1 for which the Jacobian is evaluated
        warn: Also emit a RuntimeWarning when the state is degenerate

    Returns:
        3×4 Jacobian matrix

    Raises:
        DegenerateStateError: c1 < min_range_sq
    """
    x = np.asarray(x, dtype=float)
    if x.shape != (STATE_DIM,):
        raise ValueError(f"State must have shape ({STATE_DIM},), got {x.shape}")

    px, py, vx, vy = x
    c1 = px * px + py * py
    if c1 < min_range_sq:
        message = f"Jacobian undefined: px²+py² = {c1:.3g} below {min_range_sq:.3g}"
        if warn:
            warnings.warn(message, RuntimeWarning, stacklevel=2)
        raise DegenerateStateError(message, range_sq=c1)

    c2 = np.sqrt(c1)
    c3 = c1 * c2

    Hj = np.zeros((3, STATE_DIM))
    # ∂ρ/∂(px, py)
    Hj[0, 0] = px / c2
    Hj[0, 1] = py / c2
    # ∂φ/∂(px, py)
    Hj[1, 0] = -py / c1
    Hj[1, 1] = px / c1
    # ∂ρ̇/∂(px, py, vx, vy)
    Hj[2, 0] = py * (vx * py - vy * px) / c3
    Hj[2, 1] = px * (vy * px - vx * py) / c3
    Hj[2, 2] = px / c2
    Hj[2, 3] = py / c2
    return Hj


# =============================================================================
# MOTION MODEL
# =============================================================================

def make_transition_matrix(dt: float) -> np.ndarray:
    """Constant-velocity transition matrix F(dt)."""
    F = np.eye(STATE_DIM)
    F[0, 2] = dt
    F[1, 3] = dt
    return F


def make_process_noise(dt: float, noise_ax: float, noise_ay: float) -> np.ndarray:
    """Process noise Q(dt) for white acceleration with intensities (ax, ay)."""
    dt2 = dt * dt
    dt3 = dt2 * dt
    dt4 = dt3 * dt

    return np.array([
        [dt4 / 4 * noise_ax, 0.0, dt3 / 2 * noise_ax, 0.0],
        [0.0, dt4 / 4 * noise_ay, 0.0, dt3 / 2 * noise_ay],
        [dt3 / 2 * noise_ax, 0.0, dt2 * noise_ax, 0.0],
        [0.0, dt3 / 2 * noise_ay, 0.0, dt2 * noise_ay],
    ])


# =============================================================================
# METRICS
# =============================================================================

def compute_rmse(estimations: Sequence[np.ndarray],
                 ground_truth: Sequence[np.ndarray]) -> np.ndarray:
    """Per-component root-mean-square error over a run.

    Raises:
        ValueError: empty input or mismatched lengths/shapes
    """
    if len(estimations) == 0:
        raise ValueError("No estimations to evaluate")
    if len(estimations) != len(ground_truth):
        raise ValueError(
            f"Got {len(estimations)} estimations but {len(ground_truth)} truths")

    est = np.asarray(estimations, dtype=float)
    gt = np.asarray(ground_truth, dtype=float)
    if est.shape != gt.shape:
        raise ValueError(f"Shape mismatch: {est.shape} vs {gt.shape}")

    return np.sqrt(np.mean((est - gt) ** 2, axis=0))


def compute_nis(innovation: np.ndarray, S: np.ndarray) -> float:
    """Normalized Innovation Squared, yᵀ S⁻¹ y.

    For a consistent filter E[NIS] = dim(z).
    """
    try:
        return float(innovation @ np.linalg.solve(S, innovation))
    except np.linalg.LinAlgError:
        return float('inf')


def compute_nees(x_true: np.ndarray, x_est: np.ndarray, P: np.ndarray) -> float:
    """Normalized Estimation Error Squared, (x−x̂)ᵀ P⁻¹ (x−x̂)."""
    dx = np.asarray(x_true, dtype=float) - np.asarray(x_est, dtype=float)
    try:
        return float(dx @ np.linalg.solve(P, dx))
    except np.linalg.LinAlgError:
        return float('inf')


def nis_bounds(dim_z: int, confidence: float = 0.95) -> Tuple[float, float]:
    """Two-sided χ² acceptance interval for a single NIS sample."""
    alpha = 1.0 - confidence
    return (float(chi2.ppf(alpha / 2, df=dim_z)),
            float(chi2.ppf(1 - alpha / 2, df=dim_z)))
