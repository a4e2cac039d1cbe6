#!/usr/bin/env python3
"""
═══════════════════════════════════════════════════════════════════════════════
Fusion-EKF State Estimator
═══════════════════════════════════════════════════════════════════════════════

Kalman filter over a 2-D constant-velocity state with two correction paths:

- update()      linear observation z = H·x + v          (Cartesian sensor)
- update_ekf()  nonlinear z = h(x) + v, linearised by Hj (polar sensor)

The transition, process-noise, observation and observation-noise matrices are
supplied per call by the owner of the filter; the filter itself only keeps
x and P.

Recursion:
    Predict:    x ← F·x
                P ← F·P·Fᵀ + Q
    Correct:    y = z − h(x)          (h(x) = H·x for the linear path)
                S = H·P·Hᵀ + R
                K = P·Hᵀ·S⁻¹
                x ← x + K·y
                P ← (I − K·H)·P·(I − K·H)ᵀ + K·R·Kᵀ
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.linalg import cho_factor, cho_solve

from .fusion_ekf_config import (
    CARTESIAN_DIM, MAX_CONDITION_NUMBER, MIN_RANGE, POLAR_DIM, STATE_DIM,
)
from .fusion_ekf_errors import SingularMatrixError
from .fusion_ekf_tools import cartesian_to_polar, normalize_angle

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """Innovation statistics of one correction."""
    innovation: np.ndarray
    S: np.ndarray
    nis: float


class KalmanFilter:
    """
    State estimator for x = [px, py, vx, vy].

    x and P are only changed by initialize(), predict(), update() and
    update_ekf(). The accessors return copies.

    A correction that cannot be completed (singular S, degenerate polar
    geometry) raises before x or P are touched.
    """

    def __init__(self, max_condition_number: float = MAX_CONDITION_NUMBER,
                 min_range: float = MIN_RANGE):
        self.dim_x = STATE_DIM
        self.max_condition_number = max_condition_number
        self.min_range = min_range

        self._x: Optional[np.ndarray] = None
        self._P: Optional[np.ndarray] = None

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._x is not None

    @property
    def x(self) -> np.ndarray:
        self._require_initialized()
        return self._x.copy()

    @property
    def P(self) -> np.ndarray:
        self._require_initialized()
        return self._P.copy()

    def get_state(self) -> np.ndarray:
        """Get current state estimate."""
        return self.x

    def get_position(self) -> np.ndarray:
        """Get position [px, py]."""
        return self.x[:2]

    def get_velocity(self) -> np.ndarray:
        """Get velocity [vx, vy]."""
        return self.x[2:]

    def get_covariance(self) -> np.ndarray:
        """Get state covariance."""
        return self.P

    def _require_initialized(self):
        if self._x is None:
            raise RuntimeError("Filter not initialized. Call initialize() first.")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self, x0: np.ndarray, P0: np.ndarray) -> None:
        """
        Set the state and covariance prior.

        Args:
            x0: Initial state [px, py, vx, vy]
            P0: Initial covariance (4×4)
        """
        x0 = _as_shape(x0, (self.dim_x,), "x0")
        P0 = _as_shape(P0, (self.dim_x, self.dim_x), "P0")
        self._x = x0
        self._P = 0.5 * (P0 + P0.T)

    def clear(self) -> None:
        """Drop the estimate; the filter must be re-initialized."""
        self._x = None
        self._P = None

    # -------------------------------------------------------------------------
    # Time update
    # -------------------------------------------------------------------------

    def predict(self, F: np.ndarray, Q: np.ndarray) -> None:
        """
        Propagate the estimate with transition F and process noise Q.

        Args:
            F: State transition matrix (4×4) for the elapsed interval
            Q: Process noise covariance (4×4) for the same interval
        """
        self._require_initialized()
        F = _as_shape(F, (self.dim_x, self.dim_x), "F")
        Q = _as_shape(Q, (self.dim_x, self.dim_x), "Q")

        self._x = F @ self._x
        P = F @ self._P @ F.T + Q
        self._P = 0.5 * (P + P.T)

    # -------------------------------------------------------------------------
    # Measurement updates
    # -------------------------------------------------------------------------

    def update(self, z: np.ndarray, H: np.ndarray, R: np.ndarray) -> UpdateResult:
        """
        Linear correction, z = H·x + v.

        Args:
            z: Observation [x, y]
            H: Observation matrix (2×4)
            R: Observation noise covariance (2×2)

        Returns:
            UpdateResult with innovation, S and NIS

        Raises:
            SingularMatrixError: S cannot be inverted reliably
        """
        self._require_initialized()
        z = _as_shape(z, (CARTESIAN_DIM,), "z")
        H = _as_shape(H, (CARTESIAN_DIM, self.dim_x), "H")
        R = _as_shape(R, (CARTESIAN_DIM, CARTESIAN_DIM), "R")

        y = z - H @ self._x
        return self._correct(y, H, R)

    def update_ekf(self, z: np.ndarray, Hj: np.ndarray, R: np.ndarray) -> UpdateResult:
        """
        Linearised correction for a polar observation [ρ, φ, ρ̇].

        The predicted observation uses the full nonlinear model h(x), not
        Hj·x; Hj only propagates the covariance. The bearing innovation is
        wrapped into (−π, π].

        Args:
            z: Observation [ρ, φ, ρ̇]
            Hj: Jacobian of h at the current state (3×4)
            R: Observation noise covariance (3×3)

        Returns:
            UpdateResult with innovation, S and NIS

        Raises:
            DegenerateStateError: predicted range below min_range
            SingularMatrixError: S cannot be inverted reliably
        """
        self._require_initialized()
        z = _as_shape(z, (POLAR_DIM,), "z")
        Hj = _as_shape(Hj, (POLAR_DIM, self.dim_x), "Hj")
        R = _as_shape(R, (POLAR_DIM, POLAR_DIM), "R")

        z_pred = cartesian_to_polar(self._x, self.min_range)
        y = z - z_pred
        y[1] = normalize_angle(y[1])
        return self._correct(y, Hj, R)

    def _correct(self, y: np.ndarray, H: np.ndarray, R: np.ndarray) -> UpdateResult:
        """Shared correction algebra. Nothing is written until S is accepted."""
        P = self._P
        PHt = P @ H.T
        S = H @ PHt + R
        S = 0.5 * (S + S.T)

        if not np.all(np.isfinite(S)):
            raise SingularMatrixError("Innovation covariance contains NaN or inf")

        cond = np.linalg.cond(S)
        if not np.isfinite(cond) or cond > self.max_condition_number:
            raise SingularMatrixError(
                f"Innovation covariance ill-conditioned (cond={cond:.3g})",
                condition_number=cond)

        try:
            S_factor = cho_factor(S)
        except np.linalg.LinAlgError as exc:
            raise SingularMatrixError(
                f"Innovation covariance not positive definite: {exc}",
                condition_number=cond) from exc

        # K = P·Hᵀ·S⁻¹, solved as (S⁻¹·H·P)ᵀ with S symmetric
        K = cho_solve(S_factor, PHt.T).T
        nis = float(y @ cho_solve(S_factor, y))

        x_new = self._x + K @ y
        I_KH = np.eye(self.dim_x) - K @ H
        P_new = I_KH @ P @ I_KH.T + K @ R @ K.T

        self._x = x_new
        self._P = 0.5 * (P_new + P_new.T)

        logger.debug("correction dim_z=%d nis=%.3f cond(S)=%.3g", len(y), nis, cond)
        return UpdateResult(innovation=y, S=S, nis=nis)


def _as_shape(value, shape, name: str) -> np.ndarray:
    """Copy to a float array and check its shape."""
    arr = np.array(value, dtype=float)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    return arr
