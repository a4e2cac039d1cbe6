"""
Fusion-EKF Controller
=====================
Sequences asynchronous Cartesian and polar measurements through one
KalmanFilter.

  Uninitialized ──first measurement──▶ Tracking
      x from the measurement, P from the configured prior, no predict/correct

  Tracking, every later measurement:
      dt = (t − t_prev) · timestamp_scale
      F(dt), Q(dt) ─▶ predict
      CARTESIAN ─▶ update(z, H, R_cartesian)
      POLAR     ─▶ Hj(x_pred) ─▶ update_ekf(z, Hj, R_polar)

A correction that fails numerically (singular S, state at the polar sensor
origin) is skipped for that cycle only; the predicted estimate stands and the
next measurement is processed normally. Malformed measurements raise before
anything changes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np

from .fusion_ekf_config import FusionConfig
from .fusion_ekf_errors import DegenerateStateError, SingularMatrixError
from .fusion_ekf_filter import KalmanFilter, UpdateResult
from .fusion_ekf_measurement import SensorMeasurement, SensorType
from .fusion_ekf_tools import (
    calculate_jacobian, make_process_noise, make_transition_matrix,
    polar_to_cartesian,
)

logger = logging.getLogger(__name__)

# Position-only observation of [px, py, vx, vy]
H_CARTESIAN = np.array([
    [1.0, 0.0, 0.0, 0.0],
    [0.0, 1.0, 0.0, 0.0],
])


class CycleStatus(Enum):
    """Outcome of one process_measurement() call."""
    INITIALIZED = "initialized"        # first measurement, state seeded
    UPDATED = "updated"                # predict + correction
    PREDICTED_ONLY = "predicted_only"  # predict done, correction skipped


@dataclass
class CycleResult:
    """What happened to one measurement.

    Attributes:
        status: Which steps were applied
        sensor_type: Sensor of the processed measurement
        dt: Elapsed time since the previous measurement (s), 0 on init
        nis: Normalized innovation squared of the correction, if any
        reason: Why the correction was skipped ("singular" / "degenerate")
    """
    status: CycleStatus
    sensor_type: SensorType
    dt: float = 0.0
    nis: Optional[float] = None
    reason: Optional[str] = None


@dataclass
class SensorStats:
    """Running per-sensor counters.

    ``processed`` includes the seeding measurement; ``corrected`` counts only
    the cycles that produced a NIS sample.
    """
    processed: int = 0
    corrected: int = 0
    skipped: int = 0
    last_nis: Optional[float] = None
    nis_sum: float = 0.0

    @property
    def nis_avg(self) -> float:
        return self.nis_sum / self.corrected if self.corrected > 0 else 0.0


class FusionEKF:
    """
    Cartesian/polar sensor fusion controller.

    Usage:
        fusion = FusionEKF()
        for meas in measurements:
            fusion.process_measurement(meas)
            x, P = fusion.state, fusion.covariance

    Not thread-safe: one process_measurement() call must finish before the
    next starts. Callers feeding it from several producers hold their own
    lock around each call.
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config if config is not None else FusionConfig()

        self._ekf = KalmanFilter(
            max_condition_number=self.config.max_condition_number,
            min_range=self.config.min_range,
        )
        self._F = make_transition_matrix(1.0)
        self._Q = np.zeros((4, 4))
        self._previous_timestamp: Optional[float] = None
        self.stats: Dict[SensorType, SensorStats] = {
            stype: SensorStats() for stype in SensorType
        }

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._ekf.is_initialized

    @property
    def state(self) -> np.ndarray:
        """Current estimate [px, py, vx, vy] (copy)."""
        return self._ekf.x

    @property
    def covariance(self) -> np.ndarray:
        """Current 4×4 covariance (copy)."""
        return self._ekf.P

    @property
    def previous_timestamp(self) -> Optional[float]:
        return self._previous_timestamp

    def reset(self) -> None:
        """Return to the uninitialized state; the next measurement re-seeds."""
        self._ekf.clear()
        self._F = make_transition_matrix(1.0)
        self._Q = np.zeros((4, 4))
        self._previous_timestamp = None
        for stype in SensorType:
            self.stats[stype] = SensorStats()
        logger.debug("fusion reset")

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process_measurement(self, measurement: SensorMeasurement) -> CycleResult:
        """
        Run one initialize or predict+correct cycle.

        Args:
            measurement: Next measurement, timestamps non-decreasing

        Returns:
            CycleResult describing the applied steps

        Raises:
            MalformedMeasurementError: measurement rejected, state untouched
        """
        z = measurement.validate(self._previous_timestamp)
        timestamp = float(measurement.timestamp)
        stype = measurement.sensor_type

        if not self.is_initialized:
            return self._initialize(measurement, z)

        dt = (timestamp - self._previous_timestamp) * self.config.timestamp_scale
        self._previous_timestamp = timestamp

        self._F[0, 2] = dt
        self._F[1, 3] = dt
        self._Q = make_process_noise(dt, self.config.noise_ax, self.config.noise_ay)
        self._ekf.predict(self._F, self._Q)

        stats = self.stats[stype]
        stats.processed += 1

        try:
            result = self._correct(stype, z)
        except SingularMatrixError as exc:
            return self._skip(stype, dt, "singular", exc)
        except DegenerateStateError as exc:
            return self._skip(stype, dt, "degenerate", exc)

        stats.corrected += 1
        stats.last_nis = result.nis
        stats.nis_sum += result.nis
        logger.debug("%s update dt=%.6f nis=%.3f", stype.name, dt, result.nis)
        return CycleResult(CycleStatus.UPDATED, stype, dt=dt, nis=result.nis)

    def _initialize(self, measurement: SensorMeasurement, z: np.ndarray) -> CycleResult:
        stype = measurement.sensor_type
        if stype is SensorType.POLAR:
            x0 = polar_to_cartesian(z[0], z[1], z[2])
        elif stype is SensorType.CARTESIAN:
            x0 = np.array([z[0], z[1], 0.0, 0.0])
        else:
            raise ValueError(f"Unknown sensor type: {stype}")

        self._ekf.initialize(x0, self.config.initial_covariance)
        self._F = make_transition_matrix(1.0)
        self._previous_timestamp = float(measurement.timestamp)
        self.stats[stype].processed += 1

        logger.debug("initialized from %s at t=%s: x=%s", stype.name,
                     measurement.timestamp, x0)
        return CycleResult(CycleStatus.INITIALIZED, stype)

    def _correct(self, stype: SensorType, z: np.ndarray) -> UpdateResult:
        if stype is SensorType.POLAR:
            Hj = calculate_jacobian(self._ekf.x, self.config.min_range_sq,
                                    warn=self.config.warn_on_degenerate)
            return self._ekf.update_ekf(z, Hj, self.config.R_polar)
        if stype is SensorType.CARTESIAN:
            return self._ekf.update(z, H_CARTESIAN, self.config.R_cartesian)
        raise ValueError(f"Unknown sensor type: {stype}")

    def _skip(self, stype: SensorType, dt: float, reason: str,
              exc: Exception) -> CycleResult:
        self.stats[stype].skipped += 1
        logger.warning("%s correction skipped (%s): %s", stype.name, reason, exc)
        return CycleResult(CycleStatus.PREDICTED_ONLY, stype, dt=dt, reason=reason)

    def __repr__(self) -> str:
        if not self.is_initialized:
            return "FusionEKF(uninitialized)"
        px, py, vx, vy = self._ekf.x
        return (f"FusionEKF(t={self._previous_timestamp}, "
                f"pos=({px:.3f}, {py:.3f}), vel=({vx:.3f}, {vy:.3f}))")
