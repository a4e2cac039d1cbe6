"""
Fusion-EKF error taxonomy
=========================

All errors raised by the estimator derive from :class:`FusionError`, and each
also derives from the builtin family a caller would naturally catch
(``ValueError`` for bad input, ``LinAlgError`` for numerical failures,
``ArithmeticError`` for undefined geometry).
"""

import numpy as np


class FusionError(Exception):
    """Base class for every error raised by fusion_ekf."""


class ConfigurationError(FusionError, ValueError):
    """Noise matrices or thresholds in a FusionConfig are unusable."""


class MalformedMeasurementError(FusionError, ValueError):
    """Measurement rejected before touching the estimate.

    Wrong observation length for the sensor type, non-finite values,
    or a timestamp earlier than the previous one.
    """


class SingularMatrixError(FusionError, np.linalg.LinAlgError):
    """Innovation covariance is singular or too ill-conditioned to invert."""

    def __init__(self, message: str, condition_number: float = float('inf')):
        super().__init__(message)
        self.condition_number = condition_number


class DegenerateStateError(FusionError, ArithmeticError):
    """State is too close to the polar sensor origin for the polar model."""

    def __init__(self, message: str, range_sq: float = 0.0):
        super().__init__(message)
        self.range_sq = range_sq
