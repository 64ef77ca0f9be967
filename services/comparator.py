"""Per-pair similarity checks between aligned reference and device datapoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from models.records import AlignedPair, Datapoint
from services.errors import ComparisonMismatch
from services.sensor_config import ComparisonPolicy, SensorTypeConfig

logger = logging.getLogger(__name__)

FAR_DISTANCE_THRESHOLD_CM = 5.0


@dataclass(frozen=True)
class Mismatch:
    index: int
    reference: Datapoint
    device: Datapoint

    def describe(self) -> str:
        return (
            f"Datapoints differ on index {self.index}\n"
            f"reference -> {self.reference}\n"
            f"device -> {self.device}"
        )


@dataclass(frozen=True)
class ComparisonSummary:
    pair_count: int
    mismatches: Tuple[Mismatch, ...] = field(default_factory=tuple)

    @property
    def passed(self) -> bool:
        return not self.mismatches


class Comparator:
    """Evaluates aligned pairs against a sensor type's comparison policy."""

    def __init__(self, far_distance_cm: float = FAR_DISTANCE_THRESHOLD_CM) -> None:
        self.far_distance_cm = far_distance_cm

    def is_similar(
        self,
        pair: AlignedPair,
        config: SensorTypeConfig,
        sensor_max_range: Optional[float] = None,
    ) -> bool:
        reference = pair.reference.values
        device = pair.device.values
        if len(reference) != len(device):
            raise AssertionError(
                f"Pair {pair.index} has {len(reference)} reference values "
                f"but {len(device)} device values"
            )

        if config.comparison_policy is ComparisonPolicy.near_far_threshold:
            threshold = self.far_distance_cm
            if sensor_max_range is not None:
                threshold = min(sensor_max_range, threshold)
            for ref_value, dev_value in zip(reference, device):
                # The device reports 0 for near and anything else for far.
                device_near = dev_value == 0.0
                reference_near = ref_value < threshold
                if device_near != reference_near:
                    return False
            return True

        # Both sources report single precision; compare at that precision.
        diff = np.abs(np.asarray(reference, dtype=np.float32) - np.asarray(device, dtype=np.float32))
        return bool(np.all(diff <= np.float32(config.error_margin)))

    def compare(
        self,
        pairs: Sequence[AlignedPair],
        config: SensorTypeConfig,
        sensor_max_range: Optional[float] = None,
    ) -> ComparisonSummary:
        mismatches: List[Mismatch] = []
        for pair in pairs:
            if not self.is_similar(pair, config, sensor_max_range):
                mismatches.append(
                    Mismatch(index=pair.index, reference=pair.reference, device=pair.device)
                )
        return ComparisonSummary(pair_count=len(pairs), mismatches=tuple(mismatches))

    def assert_similar(
        self,
        pairs: Sequence[AlignedPair],
        config: SensorTypeConfig,
        sensor_max_range: Optional[float] = None,
    ) -> ComparisonSummary:
        summary = self.compare(pairs, config, sensor_max_range)
        if summary.passed:
            return summary

        self.dump_pairs(pairs)
        raise mismatch_error(summary)

    @staticmethod
    def dump_pairs(pairs: Sequence[AlignedPair]) -> None:
        """Log the whole aligned sequence for post-mortem inspection."""
        for pair in pairs:
            logger.debug("reference[%d]: %s", pair.index, pair.reference)
            logger.debug("device[%d]: %s", pair.index, pair.device)


def mismatch_error(summary: ComparisonSummary) -> ComparisonMismatch:
    first = summary.mismatches[0]
    logger.warning(
        "Aligned datapoints are not similar",
        extra={"mismatch_count": len(summary.mismatches), "index": first.index},
    )
    return ComparisonMismatch(first.describe(), summary.mismatches)
