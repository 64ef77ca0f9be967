"""Timestamp alignment of reference and device-under-test datapoint streams."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from models.records import AlignedPair, Datapoint
from services.errors import AlignmentFailure, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignmentResult:
    """Matched pairs plus the sizes of the raw inputs they came from."""

    pairs: Tuple[AlignedPair, ...]
    reference_count: int
    device_count: int

    @property
    def match_ratio(self) -> float:
        """Paired samples over the shorter input; diagnostic only."""
        shorter = min(self.reference_count, self.device_count)
        if not shorter:
            return 0.0
        return len(self.pairs) / shorter

    def __len__(self) -> int:
        return len(self.pairs)


class Aligner:
    """Greedy two-pointer merge of two ascending timestamp sequences.

    A pair is emitted when the timestamps differ by strictly less than
    ``max_skew_ns``. Otherwise the earlier sample has no partner and is
    dropped. Inputs are never mutated.
    """

    def align(
        self,
        reference: Sequence[Datapoint],
        device: Sequence[Datapoint],
        max_skew_ns: int,
    ) -> AlignmentResult:
        if max_skew_ns <= 0:
            raise ConfigurationError(f"max_skew_ns must be positive, got {max_skew_ns}")

        pairs: List[AlignedPair] = []
        i = 0
        j = 0
        while i < len(reference) and j < len(device):
            ref_dp = reference[i]
            dev_dp = device[j]
            if abs(ref_dp.timestamp - dev_dp.timestamp) < max_skew_ns:
                pairs.append(AlignedPair(index=len(pairs), reference=ref_dp, device=dev_dp))
                i += 1
                j += 1
            elif ref_dp.timestamp < dev_dp.timestamp:
                i += 1
            else:
                j += 1

        result = AlignmentResult(
            pairs=tuple(pairs),
            reference_count=len(reference),
            device_count=len(device),
        )

        if not pairs:
            self._dump(reference, device)
            raise AlignmentFailure(
                "Did not find matching timestamps to align reference and device datapoints "
                f"({len(reference)} reference, {len(device)} device, max skew {max_skew_ns}ns)"
            )

        logger.info(
            "Aligned datapoints",
            extra={"aligned_count": len(pairs), "match_ratio": result.match_ratio},
        )
        return result

    @staticmethod
    def _dump(reference: Sequence[Datapoint], device: Sequence[Datapoint]) -> None:
        for index, datapoint in enumerate(reference):
            logger.debug("reference[%d] = %s", index, datapoint)
        for index, datapoint in enumerate(device):
            logger.debug("device[%d] = %s", index, datapoint)
