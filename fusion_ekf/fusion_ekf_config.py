"""
Fusion-EKF configuration
========================

Fixed noise models and numerical thresholds handed to :class:`FusionEKF`
at construction. Nothing in here changes while the filter is running.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from .fusion_ekf_errors import ConfigurationError


# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULT NOISE MODEL
# ═══════════════════════════════════════════════════════════════════════════════
CARTESIAN_NOISE_DIAG = (0.0225, 0.0225)          # [x, y] (m²)
POLAR_NOISE_DIAG = (0.09, 0.0009, 0.09)          # [ρ (m²), φ (rad²), ρ̇ (m²/s²)]
NOISE_AX = 9.0                                    # acceleration noise intensity, x
NOISE_AY = 9.0                                    # acceleration noise intensity, y
INITIAL_COVARIANCE_DIAG = (1.0, 1.0, 1000.0, 1000.0)

# ═══════════════════════════════════════════════════════════════════════════════
# TIMING / NUMERICS
# ═══════════════════════════════════════════════════════════════════════════════
TIMESTAMP_SCALE = 1e-6        # timestamps arrive in microseconds
MIN_RANGE_SQ = 1e-4           # px² + py² below this -> Jacobian undefined
MIN_RANGE = 1e-4              # predicted ρ below this -> range-rate undefined
MAX_CONDITION_NUMBER = 1e12   # cond(S) above this -> treated as singular

STATE_DIM = 4
CARTESIAN_DIM = 2
POLAR_DIM = 3


@dataclass
class FusionConfig:
    """Noise model and thresholds for a Cartesian/polar fusion filter.

    Attributes:
        R_cartesian: Observation noise of the Cartesian sensor (2×2)
        R_polar: Observation noise of the polar sensor (3×3)
        noise_ax: Process noise intensity along x (m²/s⁴)
        noise_ay: Process noise intensity along y (m²/s⁴)
        initial_covariance: Prior P set on the first measurement (4×4)
        timestamp_scale: Multiplier converting timestamp units to seconds
        min_range_sq: Degenerate threshold on px² + py² for the Jacobian
        min_range: Degenerate threshold on predicted range in the EKF update
        max_condition_number: Largest acceptable condition number of S
        warn_on_degenerate: Also emit a RuntimeWarning when the polar Jacobian
            is undefined (the correction is skipped either way)
    """
    R_cartesian: np.ndarray = field(
        default_factory=lambda: np.diag(CARTESIAN_NOISE_DIAG))
    R_polar: np.ndarray = field(
        default_factory=lambda: np.diag(POLAR_NOISE_DIAG))
    noise_ax: float = NOISE_AX
    noise_ay: float = NOISE_AY
    initial_covariance: np.ndarray = field(
        default_factory=lambda: np.diag(INITIAL_COVARIANCE_DIAG))
    timestamp_scale: float = TIMESTAMP_SCALE
    min_range_sq: float = MIN_RANGE_SQ
    min_range: float = MIN_RANGE
    max_condition_number: float = MAX_CONDITION_NUMBER
    warn_on_degenerate: bool = False

    def __post_init__(self):
        self.R_cartesian = np.array(self.R_cartesian, dtype=float)
        self.R_polar = np.array(self.R_polar, dtype=float)
        self.initial_covariance = np.array(self.initial_covariance, dtype=float)
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any matrix or threshold is unusable."""
        _check_covariance("R_cartesian", self.R_cartesian, CARTESIAN_DIM)
        _check_covariance("R_polar", self.R_polar, POLAR_DIM)
        _check_covariance("initial_covariance", self.initial_covariance, STATE_DIM)

        for name in ("noise_ax", "noise_ay"):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ConfigurationError(f"{name} must be finite and >= 0, got {value}")

        for name in ("timestamp_scale", "min_range_sq", "min_range",
                     "max_condition_number"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be finite and > 0, got {value}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FusionConfig':
        """Build a config from plain values (e.g. a parsed YAML/JSON document).

        Matrices may be given as nested lists or as a flat list, which is
        read as the diagonal.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")

        kwargs = {}
        for key, value in data.items():
            if key in ("R_cartesian", "R_polar", "initial_covariance"):
                arr = np.array(value, dtype=float)
                kwargs[key] = np.diag(arr) if arr.ndim == 1 else arr
            elif key == "warn_on_degenerate":
                kwargs[key] = bool(value)
            else:
                kwargs[key] = float(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-value view of the config, inverse of from_dict."""
        return {
            "R_cartesian": self.R_cartesian.tolist(),
            "R_polar": self.R_polar.tolist(),
            "noise_ax": self.noise_ax,
            "noise_ay": self.noise_ay,
            "initial_covariance": self.initial_covariance.tolist(),
            "timestamp_scale": self.timestamp_scale,
            "min_range_sq": self.min_range_sq,
            "min_range": self.min_range,
            "max_condition_number": self.max_condition_number,
            "warn_on_degenerate": self.warn_on_degenerate,
        }


def _check_covariance(name: str, M: np.ndarray, dim: int) -> None:
    if M.shape != (dim, dim):
        raise ConfigurationError(f"{name} must be {dim}x{dim}, got {M.shape}")
    if not np.all(np.isfinite(M)):
        raise ConfigurationError(f"{name} contains NaN or infinite values")
    if not np.allclose(M, M.T):
        raise ConfigurationError(f"{name} must be symmetric")
    try:
        np.linalg.cholesky(M)
    except np.linalg.LinAlgError:
        raise ConfigurationError(f"{name} must be positive definite") from None
