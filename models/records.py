"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Tuple


class SourceTag(str, Enum):
    """Origin of a datapoint."""

    reference = "reference"
    device_under_test = "device_under_test"


@dataclass(slots=True, frozen=True)
class Datapoint:
    """A single timestamped sensor sample from one source."""

    timestamp: int
    values: Tuple[float, ...]
    source: SourceTag

    @classmethod
    def build(cls, timestamp: int, values: Iterable[float], source: SourceTag) -> "Datapoint":
        return cls(timestamp=int(timestamp), values=tuple(float(v) for v in values), source=source)

    def __str__(self) -> str:
        rendered = ", ".join(f"{value:g}" for value in self.values)
        return f"{self.source.value}@{self.timestamp}ns [{rendered}]"


@dataclass(slots=True, frozen=True)
class AlignedPair:
    """Reference and device-under-test datapoints matched by timestamp."""

    index: int
    reference: Datapoint
    device: Datapoint

    @property
    def skew_ns(self) -> int:
        return abs(self.reference.timestamp - self.device.timestamp)
