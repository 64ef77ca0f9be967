"""Unit tests for timestamp alignment."""

from __future__ import annotations

import random

import pytest

from models.records import Datapoint, SourceTag
from services.aligner import Aligner
from services.errors import AlignmentFailure, ConfigurationError

MAX_SKEW_NS = 4_000_000


def _reference(timestamp: int, value: float = 0.0) -> Datapoint:
    return Datapoint.build(timestamp, [value], SourceTag.reference)


def _device(timestamp: int, value: float = 0.0) -> Datapoint:
    return Datapoint.build(timestamp, [value], SourceTag.device_under_test)


def test_align_pairs_matching_timestamps_and_drops_orphans() -> None:
    reference = [_reference(ts) for ts in (0, 20_000_000, 40_000_000, 60_000_000)]
    device = [_device(ts) for ts in (1_000_000, 41_500_000, 50_000_000, 59_000_000)]

    result = Aligner().align(reference, device, MAX_SKEW_NS)

    assert [(p.reference.timestamp, p.device.timestamp) for p in result.pairs] == [
        (0, 1_000_000),
        (40_000_000, 41_500_000),
        (60_000_000, 59_000_000),
    ]
    assert [p.index for p in result.pairs] == [0, 1, 2]
    assert result.reference_count == 4
    assert result.device_count == 4
    assert result.match_ratio == pytest.approx(0.75)


def test_skew_bound_is_strict() -> None:
    reference = [_reference(0), _reference(100_000_000)]
    device = [_device(MAX_SKEW_NS), _device(100_000_000 + MAX_SKEW_NS - 1)]

    result = Aligner().align(reference, device, MAX_SKEW_NS)

    assert len(result) == 1
    assert result.pairs[0].reference.timestamp == 100_000_000


def test_disjoint_ranges_raise_alignment_failure() -> None:
    reference = [_reference(ts) for ts in range(0, 100_000_000, 20_000_000)]
    device = [_device(ts) for ts in range(10_000_000_000, 10_100_000_000, 20_000_000)]

    with pytest.raises(AlignmentFailure, match="Did not find matching timestamps"):
        Aligner().align(reference, device, MAX_SKEW_NS)


def test_empty_input_raises_alignment_failure() -> None:
    with pytest.raises(AlignmentFailure):
        Aligner().align([], [_device(0)], MAX_SKEW_NS)


def test_non_positive_skew_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        Aligner().align([_reference(0)], [_device(0)], 0)


def test_inputs_are_not_mutated() -> None:
    reference = [_reference(0), _reference(20_000_000)]
    device = [_device(20_500_000), _device(50_000_000)]
    reference_before = list(reference)
    device_before = list(device)

    result = Aligner().align(reference, device, MAX_SKEW_NS)

    assert [(p.reference.timestamp, p.device.timestamp) for p in result.pairs] == [
        (20_000_000, 20_500_000)
    ]
    assert reference == reference_before
    assert device == device_before


def _random_streams(seed: int) -> tuple[list[Datapoint], list[Datapoint]]:
    rng = random.Random(seed)
    reference: list[Datapoint] = []
    device: list[Datapoint] = []
    timestamp = rng.randrange(0, 1_000_000)
    for _ in range(200):
        timestamp += rng.randrange(15_000_000, 30_000_000)
        if rng.random() < 0.9:
            reference.append(_reference(timestamp))
        if rng.random() < 0.9:
            device.append(_device(timestamp + rng.randrange(-6_000_000, 6_000_000)))
    return reference, device


@pytest.mark.parametrize("seed", [1, 7, 42, 1234])
def test_randomized_streams_respect_skew_bound_and_order(seed: int) -> None:
    reference, device = _random_streams(seed)

    result = Aligner().align(reference, device, MAX_SKEW_NS)

    assert len(result) > 0
    assert all(pair.skew_ns < MAX_SKEW_NS for pair in result.pairs)
    reference_ts = [pair.reference.timestamp for pair in result.pairs]
    device_ts = [pair.device.timestamp for pair in result.pairs]
    assert reference_ts == sorted(reference_ts)
    assert device_ts == sorted(device_ts)
    assert 0.0 < result.match_ratio <= 1.0


def test_alignment_is_deterministic() -> None:
    reference, device = _random_streams(99)
    aligner = Aligner()

    first = aligner.align(reference, device, MAX_SKEW_NS)
    second = aligner.align(reference, device, MAX_SKEW_NS)

    assert first == second
