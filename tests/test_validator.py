from __future__ import annotations

from typing import Iterator

import pytest

from app.schemas import RunStatus, ValidationRequest
from datastore.report_store import ReportStore
from services.aligner import Aligner
from services.collector import SampleCollector
from services.comparator import Comparator
from services.errors import AlignmentFailure, ComparisonMismatch, ConfigurationError
from services.validator import CrossValidationService


@pytest.fixture()
def validator() -> Iterator[CrossValidationService]:
    service = CrossValidationService(
        store=ReportStore(name="test"),
        aligner=Aligner(),
        comparator=Comparator(),
        workers=1,
    )
    yield service
    service.shutdown()


def _stream(start: int, count: int, values: list[float], step: int = 20_000_000) -> list[dict]:
    return [{"timestamp": start + i * step, "values": values} for i in range(count)]


def _request(**overrides) -> ValidationRequest:
    payload = {
        "sensor_type": "accelerometer",
        "reference": _stream(0, 10, [0.0, 0.0, 9.81]),
        "device": _stream(1_000_000, 10, [0.0, 0.005, 9.815]),
    }
    payload.update(overrides)
    return ValidationRequest.model_validate(payload)


def _await(service: CrossValidationService, run_id: str) -> None:
    with service._futures_lock:
        future = service._futures.get(run_id)
    if future is not None:
        future.result(timeout=5)


def test_run_validation_passes_for_similar_streams(validator: CrossValidationService) -> None:
    outcome = validator.run_validation(_request())

    assert outcome.passed
    assert len(outcome.alignment) == 10
    assert outcome.alignment.match_ratio == pytest.approx(1.0)


def test_run_validation_raises_on_mismatch(validator: CrossValidationService) -> None:
    device = _stream(1_000_000, 10, [0.0, 0.0, 9.81])
    device[4]["values"] = [0.5, 0.0, 9.81]

    with pytest.raises(ComparisonMismatch, match="differ on index 4"):
        validator.run_validation(_request(device=device))


def test_disjoint_capture_is_an_alignment_failure(validator: CrossValidationService) -> None:
    with pytest.raises(AlignmentFailure):
        validator.evaluate(_request(device=_stream(5_000_000_000, 10, [0.0, 0.0, 9.81])))


def test_request_skew_overrides_default(validator: CrossValidationService) -> None:
    device = _stream(6_000_000, 10, [0.0, 0.0, 9.81])

    with pytest.raises(AlignmentFailure):
        validator.evaluate(_request(device=device))
    assert validator.evaluate(_request(device=device, max_skew_ns=8_000_000)).passed


def test_device_sensor_id_must_match(validator: CrossValidationService) -> None:
    assert validator.evaluate(_request(device_sensor_type_id=1)).passed

    with pytest.raises(ConfigurationError, match="Incorrect sensor type"):
        validator.evaluate(_request(device_sensor_type_id=6))


def test_backwards_timestamps_are_rejected(validator: CrossValidationService) -> None:
    reference = _stream(0, 3, [0.0, 0.0, 9.81])
    reference.reverse()

    with pytest.raises(ConfigurationError, match="go backwards"):
        validator.evaluate(_request(reference=reference))


def test_build_report_for_proximity_mismatch(validator: CrossValidationService) -> None:
    request = _request(
        sensor_type="proximity",
        reference=_stream(0, 4, [2.0]),
        device=[
            {"timestamp": 0, "values": [0.0]},
            {"timestamp": 20_000_000, "values": [5.0]},
            {"timestamp": 40_000_000, "values": [0.0]},
            {"timestamp": 60_000_000, "values": [5.0]},
        ],
        sensor_max_range=10.0,
    )

    report = validator.build_report(request, run_id="prox")

    assert report.run_id == "prox"
    assert report.status is RunStatus.failed
    assert report.aligned_count == 4
    assert [m.index for m in report.mismatches] == [1, 3]
    assert report.error is not None
    assert report.error.kind == "mismatch"
    assert report.finished_at is not None
    assert isinstance(report.processing_ms, int)


def test_build_report_records_configuration_errors(validator: CrossValidationService) -> None:
    request = _request(device=_stream(0, 3, [1.0]))

    report = validator.build_report(request)

    assert report.status is RunStatus.failed
    assert report.error is not None
    assert report.error.kind == "configuration"
    assert "values length 1" in report.error.reason
    assert report.mismatches == []


def test_build_report_records_missing_data(validator: CrossValidationService) -> None:
    report = validator.build_report(_request(device=[]))

    assert report.status is RunStatus.failed
    assert report.error is not None
    assert report.error.kind == "no_data"


def test_enqueue_run_stores_final_report(validator: CrossValidationService) -> None:
    run_id = validator.enqueue_run(_request())
    _await(validator, run_id)

    report = validator.fetch_report(run_id)
    assert report.status is RunStatus.passed
    assert report.aligned_count == 10
    assert report.reference_count == 10
    assert report.device_count == 10
    assert report.error is None


def test_fetch_missing_report_raises_key_error(validator: CrossValidationService) -> None:
    with pytest.raises(KeyError):
        validator.fetch_report("missing")


def test_replayed_capture_closes_without_waiting_for_timeout(
    validator: CrossValidationService, monkeypatch
) -> None:
    closes: list[tuple[float | None, bool]] = []
    real_close = SampleCollector.close

    def recording_close(self, timeout_s=None):
        completed = real_close(self, timeout_s)
        closes.append((timeout_s, completed))
        return completed

    monkeypatch.setattr(SampleCollector, "close", recording_close)

    validator.run_validation(_request())

    assert closes[0] == (5.0, True)
