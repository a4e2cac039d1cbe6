"""
Measurement records consumed by the fusion filter.

    CARTESIAN : [x, y]              position, same frame as the state
    POLAR     : [ρ, φ, ρ̇]           range, bearing (rad), range-rate
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .fusion_ekf_config import CARTESIAN_DIM, POLAR_DIM
from .fusion_ekf_errors import MalformedMeasurementError


class SensorType(Enum):
    """Sensor modalities understood by FusionEKF."""
    CARTESIAN = "cartesian"   # [x, y]
    POLAR = "polar"           # [ρ, φ, ρ̇]

    @property
    def dim_z(self) -> int:
        if self is SensorType.CARTESIAN:
            return CARTESIAN_DIM
        if self is SensorType.POLAR:
            return POLAR_DIM
        raise ValueError(f"Unknown sensor type: {self}")


@dataclass(frozen=True)
class SensorMeasurement:
    """A single timestamped observation.

    Attributes:
        sensor_type: Which modality produced the observation
        timestamp: Acquisition time, non-decreasing across a sequence
            (microseconds unless FusionConfig.timestamp_scale says otherwise)
        z: Raw observation vector, length 2 (CARTESIAN) or 3 (POLAR)
    """
    sensor_type: SensorType
    timestamp: float
    z: np.ndarray

    def validate(self, previous_timestamp: Optional[float] = None) -> np.ndarray:
        """Check the record and return ``z`` as a float array.

        Raises:
            MalformedMeasurementError: bad sensor type, wrong length,
                non-finite values, or a timestamp earlier than
                ``previous_timestamp``.
        """
        if not isinstance(self.sensor_type, SensorType):
            raise MalformedMeasurementError(
                f"Unknown sensor type: {self.sensor_type!r}")

        try:
            z = np.asarray(self.z, dtype=float).reshape(-1)
        except (TypeError, ValueError) as exc:
            raise MalformedMeasurementError(f"Observation is not numeric: {exc}") from exc

        expected = self.sensor_type.dim_z
        if z.shape != (expected,):
            raise MalformedMeasurementError(
                f"{self.sensor_type.name} observation must have {expected} "
                f"components, got {z.size}")
        if not np.all(np.isfinite(z)):
            raise MalformedMeasurementError(
                f"{self.sensor_type.name} observation contains NaN or inf: {z}")

        try:
            timestamp = float(self.timestamp)
        except (TypeError, ValueError) as exc:
            raise MalformedMeasurementError(
                f"Invalid timestamp: {self.timestamp!r}") from exc
        if not np.isfinite(timestamp):
            raise MalformedMeasurementError(f"Invalid timestamp: {self.timestamp!r}")
        if previous_timestamp is not None and timestamp < float(previous_timestamp):
            raise MalformedMeasurementError(
                f"Timestamp {self.timestamp} precedes previous {previous_timestamp}")

        if self.sensor_type is SensorType.POLAR and z[0] < 0:
            raise MalformedMeasurementError(f"Negative range: {z[0]}")

        return z


def make_cartesian_measurement(timestamp: float, x: float, y: float) -> SensorMeasurement:
    """Convenience constructor for a Cartesian position report."""
    return SensorMeasurement(SensorType.CARTESIAN, timestamp, np.array([x, y], dtype=float))


def make_polar_measurement(timestamp: float, rho: float, phi: float,
                           rho_dot: float) -> SensorMeasurement:
    """Convenience constructor for a range/bearing/range-rate report."""
    return SensorMeasurement(SensorType.POLAR, timestamp,
                             np.array([rho, phi, rho_dot], dtype=float))
