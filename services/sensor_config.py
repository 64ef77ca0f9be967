"""Static per-sensor comparison settings and the platform/hub sensor id mapping."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from services.errors import ConfigurationError


DEFAULT_SAMPLING_INTERVAL_MS = 20
AWAIT_DATA_TIMEOUT_CONTINUOUS_MS = 5000
AWAIT_DATA_TIMEOUT_ON_CHANGE_MS = 1000


class SensorType(str, Enum):
    accelerometer = "accelerometer"
    gyroscope = "gyroscope"
    magnetic_field = "magnetic_field"
    pressure = "pressure"
    light = "light"
    proximity = "proximity"
    step_counter = "step_counter"


class ComparisonPolicy(str, Enum):
    numeric_tolerance = "numeric_tolerance"
    near_far_threshold = "near_far_threshold"


@dataclass(frozen=True)
class SensorTypeConfig:
    """How datapoints of one sensor type are checked against each other."""

    expected_values_length: int
    error_margin: float
    comparison_policy: ComparisonPolicy = ComparisonPolicy.numeric_tolerance
    continuous: bool = True

    def __post_init__(self) -> None:
        if self.expected_values_length < 1:
            raise ConfigurationError(
                f"expected_values_length must be >= 1, got {self.expected_values_length}"
            )
        if self.error_margin < 0:
            raise ConfigurationError(f"error_margin must be >= 0, got {self.error_margin}")


SENSOR_CONFIGS: Mapping[SensorType, SensorTypeConfig] = MappingProxyType(
    {
        SensorType.accelerometer: SensorTypeConfig(3, 0.01),
        SensorType.gyroscope: SensorTypeConfig(3, 0.01),
        SensorType.magnetic_field: SensorTypeConfig(3, 0.05),
        SensorType.pressure: SensorTypeConfig(1, 0.05),
        SensorType.light: SensorTypeConfig(1, 0.07, continuous=False),
        SensorType.proximity: SensorTypeConfig(
            1, 0.01, ComparisonPolicy.near_far_threshold, continuous=False
        ),
        SensorType.step_counter: SensorTypeConfig(1, 0.0, continuous=False),
    }
)


def resolve_sensor_type(sensor_type: SensorType | str) -> SensorType:
    try:
        return SensorType(sensor_type)
    except ValueError:
        raise ConfigurationError(f"Sensor type {sensor_type!r} is not recognized") from None


def get_sensor_config(sensor_type: SensorType | str) -> SensorTypeConfig:
    resolved = resolve_sensor_type(sensor_type)
    try:
        return SENSOR_CONFIGS[resolved]
    except KeyError:
        raise ConfigurationError(f"Sensor type {resolved.value!r} has no configuration") from None


class SensorTypeMap:
    """Bijective mapping between platform (reference) and hub (device) sensor type ids."""

    def __init__(self, entries: Iterable[Tuple[SensorType, int, int]]) -> None:
        self._to_device: Dict[int, int] = {}
        self._to_reference: Dict[int, int] = {}
        self._by_reference: Dict[int, SensorType] = {}
        for sensor_type, reference_id, device_id in entries:
            if reference_id in self._to_device:
                raise ConfigurationError(f"Duplicate reference sensor id {reference_id}")
            if device_id in self._to_reference:
                raise ConfigurationError(f"Duplicate device sensor id {device_id}")
            if sensor_type in self._by_reference.values():
                raise ConfigurationError(f"Duplicate sensor type {sensor_type.value!r}")
            self._to_device[reference_id] = device_id
            self._to_reference[device_id] = reference_id
            self._by_reference[reference_id] = sensor_type

    def to_device(self, reference_id: int) -> int:
        try:
            return self._to_device[reference_id]
        except KeyError:
            raise ConfigurationError(f"Reference sensor id {reference_id} is not mapped") from None

    def to_reference(self, device_id: int) -> int:
        try:
            return self._to_reference[device_id]
        except KeyError:
            raise ConfigurationError(f"Device sensor id {device_id} is not mapped") from None

    def sensor_type_for_reference_id(self, reference_id: int) -> SensorType:
        try:
            return self._by_reference[reference_id]
        except KeyError:
            raise ConfigurationError(f"Reference sensor id {reference_id} is not mapped") from None

    def sensor_type_for_device_id(self, device_id: int) -> SensorType:
        return self._by_reference[self.to_reference(device_id)]

    def ids_for(self, sensor_type: SensorType) -> Tuple[int, int]:
        for reference_id, mapped in self._by_reference.items():
            if mapped is sensor_type:
                return reference_id, self._to_device[reference_id]
        raise ConfigurationError(f"Sensor type {sensor_type.value!r} is not mapped")

    def __len__(self) -> int:
        return len(self._to_device)


# (sensor, platform TYPE_* id, hub CHRE_SENSOR_TYPE_* id)
SENSOR_TYPE_MAP = SensorTypeMap(
    [
        (SensorType.accelerometer, 1, 1),
        (SensorType.gyroscope, 4, 6),
        (SensorType.magnetic_field, 2, 8),
        (SensorType.pressure, 6, 10),
        (SensorType.light, 5, 12),
        (SensorType.proximity, 8, 13),
        (SensorType.step_counter, 19, 24),
    ]
)


def sampling_interval_ms(min_delay_us: int, max_delay_us: Optional[int] = None) -> int:
    """Clamp the default sampling interval to what the sensor supports.

    A ``max_delay_us`` of zero or ``None`` means the sensor reports no upper bound.
    """
    interval = max(DEFAULT_SAMPLING_INTERVAL_MS, min_delay_us // 1000)
    if max_delay_us:
        interval = min(interval, max_delay_us // 1000)
    return interval


def await_data_timeout_ms(config: SensorTypeConfig) -> int:
    if config.continuous:
        return AWAIT_DATA_TIMEOUT_CONTINUOUS_MS
    return AWAIT_DATA_TIMEOUT_ON_CHANGE_MS
