"""Fusion-EKF: Cartesian + polar sensor fusion with an extended Kalman filter.

One target, 2-D constant-velocity state [px, py, vx, vy]. Cartesian position
reports take the linear Kalman update; range/bearing/range-rate reports take
the Jacobian-linearised update.

Quick Start::

    from fusion_ekf import FusionEKF, SensorMeasurement, SensorType
    fusion = FusionEKF()
    for meas in measurements:
        fusion.process_measurement(meas)
        x, P = fusion.state, fusion.covariance
"""

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

from .fusion_ekf_errors import (
    FusionError,
    ConfigurationError,
    MalformedMeasurementError,
    SingularMatrixError,
    DegenerateStateError,
)
from .fusion_ekf_config import FusionConfig
from .fusion_ekf_measurement import (
    SensorType,
    SensorMeasurement,
    make_cartesian_measurement,
    make_polar_measurement,
)
from .fusion_ekf_tools import (
    normalize_angle,
    polar_to_cartesian,
    cartesian_to_polar,
    calculate_jacobian,
    make_transition_matrix,
    make_process_noise,
    compute_rmse,
    compute_nis,
    compute_nees,
    nis_bounds,
)
from .fusion_ekf_filter import KalmanFilter, UpdateResult
from .fusion_ekf_controller import (
    FusionEKF,
    CycleStatus,
    CycleResult,
    SensorStats,
    H_CARTESIAN,
)
from .fusion_ekf_datasets import ScenarioSample, SyntheticScenarioGenerator

__all__ = [
    "__version__",
    # Errors
    "FusionError", "ConfigurationError", "MalformedMeasurementError",
    "SingularMatrixError", "DegenerateStateError",
    # Config / measurements
    "FusionConfig", "SensorType", "SensorMeasurement",
    "make_cartesian_measurement", "make_polar_measurement",
    # Tools
    "normalize_angle", "polar_to_cartesian", "cartesian_to_polar",
    "calculate_jacobian", "make_transition_matrix", "make_process_noise",
    "compute_rmse", "compute_nis", "compute_nees", "nis_bounds",
    # Estimator / controller
    "KalmanFilter", "UpdateResult",
    "FusionEKF", "CycleStatus", "CycleResult", "SensorStats", "H_CARTESIAN",
    # Datasets
    "ScenarioSample", "SyntheticScenarioGenerator",
]
