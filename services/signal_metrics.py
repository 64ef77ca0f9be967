"""Signal-quality metrics over blocks of signed 16-bit PCM samples."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from services.errors import DegenerateMetric

MAX_SIGNED_SHORT = 32767.0

SampleBlock = Union[Sequence[int], np.ndarray]


@dataclass(frozen=True)
class SignalMetrics:
    rms_linear: float
    rms_db: float
    peak_dbfs: float


@dataclass(frozen=True)
class AudioThresholds:
    dc_offset_limit: int = 15
    rms_target_db: float = 22.0
    peak_target_dbfs: float = 19.5
    tolerance_db: float = 3.0


@dataclass(frozen=True)
class AudioCheck:
    name: str
    measured: float
    expected: str
    passed: bool


@dataclass(frozen=True)
class AudioQualityReport:
    sample_count: int
    dc_offset: int
    metrics: SignalMetrics
    checks: Tuple[AudioCheck, ...]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)


def decode_pcm16(raw: bytes) -> np.ndarray:
    """Decode little-endian signed 16-bit PCM bytes."""
    if len(raw) % 2:
        raise DegenerateMetric(f"PCM16 payload has an odd byte count ({len(raw)})")
    return np.frombuffer(raw, dtype="<i2")


def _as_samples(samples: SampleBlock) -> np.ndarray:
    # Widen so that abs(-32768) and large sums do not overflow.
    block = np.asarray(samples, dtype=np.int64)
    if block.ndim != 1:
        block = block.reshape(-1)
    if block.size == 0:
        raise DegenerateMetric("Sample block is empty")
    return block


def dc_offset(samples: SampleBlock) -> int:
    """Integer mean of the raw samples, truncated toward zero."""
    block = _as_samples(samples)
    total = int(block.sum())
    count = int(block.size)
    mean = abs(total) // count
    return mean if total >= 0 else -mean


def compute_signal_metrics(samples: SampleBlock) -> SignalMetrics:
    block = _as_samples(samples)
    scaled = block / MAX_SIGNED_SHORT
    rms_linear = math.sqrt(float(np.sum(scaled * scaled)) / block.size)
    if rms_linear == 0.0:
        raise DegenerateMetric("RMS of a silent block has no decibel value")
    peak = int(np.max(np.abs(block)))
    return SignalMetrics(
        rms_linear=rms_linear,
        rms_db=20.0 * math.log10(abs(rms_linear)),
        peak_dbfs=20.0 * math.log10(peak / MAX_SIGNED_SHORT),
    )


def _within(value: float, target: float, tolerance: float) -> bool:
    return abs(value - target) <= tolerance


def evaluate_audio_quality(
    samples: SampleBlock,
    thresholds: AudioThresholds = AudioThresholds(),
) -> AudioQualityReport:
    block = _as_samples(samples)
    offset = dc_offset(block)
    metrics = compute_signal_metrics(block)

    rms_db = abs(metrics.rms_db)
    peak_db = abs(metrics.peak_dbfs)
    tolerance = thresholds.tolerance_db
    checks = (
        AudioCheck(
            name="dc_offset",
            measured=float(offset),
            expected=f"< {thresholds.dc_offset_limit}",
            passed=offset < thresholds.dc_offset_limit,
        ),
        AudioCheck(
            name="rms_db",
            measured=rms_db,
            expected=f"{thresholds.rms_target_db} +/- {tolerance}",
            passed=_within(rms_db, thresholds.rms_target_db, tolerance),
        ),
        AudioCheck(
            name="peak_dbfs",
            measured=peak_db,
            expected=f"{thresholds.peak_target_dbfs} +/- {tolerance}",
            passed=_within(peak_db, thresholds.peak_target_dbfs, tolerance),
        ),
    )
    return AudioQualityReport(
        sample_count=int(block.size),
        dc_offset=offset,
        metrics=metrics,
        checks=checks,
    )
