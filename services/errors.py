"""Failure taxonomy for cross-validation runs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence, Tuple

if TYPE_CHECKING:
    from services.comparator import Mismatch


class CrossValidationError(Exception):
    """Base class for run-level failures."""

    kind = "error"


class ConfigurationError(CrossValidationError):
    """Unknown sensor type or a datapoint with the wrong number of values."""

    kind = "configuration"


class AlignmentFailure(CrossValidationError):
    """No reference and device timestamps could be matched."""

    kind = "alignment"


class NoDataCollected(AlignmentFailure):
    """A collection window closed with no samples on one side."""

    kind = "no_data"


class ComparisonMismatch(CrossValidationError):
    """One or more aligned pairs fell outside tolerance."""

    kind = "mismatch"

    def __init__(self, message: str, mismatches: Sequence["Mismatch"]) -> None:
        super().__init__(message)
        self.mismatches: Tuple["Mismatch", ...] = tuple(mismatches)


class DegenerateMetric(CrossValidationError):
    """A sample block that cannot produce a meaningful signal metric."""

    kind = "degenerate_metric"
