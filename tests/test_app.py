import struct
import time
import uuid
from typing import Dict, Iterator

import numpy as np
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.report_store import ReportStore
from services.aligner import Aligner
from services.comparator import Comparator
from services.validator import CrossValidationService, build_default_validator


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    validators: Dict[int, CrossValidationService] = {}

    def build_test_validator(workers: int | None = None) -> CrossValidationService:
        worker_count = workers or 1
        validator = validators.get(worker_count)
        if validator is None:
            validator = CrossValidationService(
                store=ReportStore(name="test", persistence_path=tmp_path / "reports.json"),
                aligner=Aligner(),
                comparator=Comparator(),
                workers=worker_count,
            )
            validators[worker_count] = validator
        return validator

    def cache_clear() -> None:
        while validators:
            _, validator = validators.popitem()
            validator.shutdown()

    build_test_validator.cache_clear = cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_validator", build_test_validator)
    monkeypatch.setattr("app.api.build_default_validator", build_test_validator)

    app = create_app()
    with TestClient(app) as client:
        yield client

    cache_clear()


def test_lifespan_shuts_down_validator_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("REPORT_STORE_PATH", str(tmp_path / "reports.json"))
    from datastore.report_store import build_default_store
    from settings import get_settings

    get_settings.cache_clear()
    build_default_store.cache_clear()
    app = create_app()

    try:
        with TestClient(app):
            validator_during = build_default_validator()
            assert validator_during.executor._shutdown is False

        validator_after = build_default_validator()
        try:
            assert validator_after is not validator_during
            assert validator_after.executor._shutdown is False
        finally:
            validator_after.shutdown()
            build_default_validator.cache_clear()
    finally:
        build_default_store.cache_clear()
        get_settings.cache_clear()


def _poll_for_completion(client: TestClient, run_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    last_payload: dict | None = None
    while time.monotonic() < deadline:
        response = client.get(f"/validations/{run_id}")
        assert response.status_code == 200
        payload = response.json()
        last_payload = payload
        if payload["status"] not in {"pending", "running"}:
            return payload
        time.sleep(0.05)
    pytest.fail(f"Validation run {run_id} did not complete: {last_payload}")


def _capture(device_values: list[float]) -> dict:
    return {
        "sensor_type": "pressure",
        "reference": [{"timestamp": i * 40_000_000, "values": [1013.25]} for i in range(5)],
        "device": [
            {"timestamp": i * 40_000_000 + 2_000_000, "values": device_values} for i in range(5)
        ],
    }


def test_submit_and_poll_passing_run(api_client: TestClient) -> None:
    response = api_client.post("/validations", json=_capture([1013.27]))

    assert response.status_code == 202
    payload = response.json()
    assert set(payload.keys()) == {"run_id"}

    result = _poll_for_completion(api_client, payload["run_id"])

    assert result["status"] == "passed"
    assert result["sensor_type"] == "pressure"
    assert result["aligned_count"] == 5
    assert result["match_ratio"] == pytest.approx(1.0)
    assert result["mismatches"] == []
    assert result["error"] is None
    assert isinstance(result["processing_ms"], int)


def test_submit_and_poll_failing_run(api_client: TestClient) -> None:
    response = api_client.post("/validations", json=_capture([1014.0]))
    result = _poll_for_completion(api_client, response.json()["run_id"])

    assert result["status"] == "failed"
    assert len(result["mismatches"]) == 5
    assert result["error"]["kind"] == "mismatch"


def test_unknown_sensor_type_is_unprocessable(api_client: TestClient) -> None:
    capture = _capture([1013.25])
    capture["sensor_type"] = "barometer"

    response = api_client.post("/validations", json=capture)

    assert response.status_code == 422


def test_list_validations_filters_by_status(api_client: TestClient) -> None:
    passing = api_client.post("/validations", json=_capture([1013.27])).json()["run_id"]
    failing = api_client.post("/validations", json=_capture([1014.0])).json()["run_id"]
    _poll_for_completion(api_client, passing)
    _poll_for_completion(api_client, failing)

    everything = api_client.get("/validations").json()["runs"]
    failed = api_client.get("/validations", params={"status": "failed"}).json()["runs"]
    other_sensor = api_client.get("/validations", params={"sensor_type": "light"}).json()["runs"]

    assert {run["run_id"] for run in everything} == {passing, failing}
    assert [run["run_id"] for run in failed] == [failing]
    assert failed[0]["mismatch_count"] == 5
    assert other_sensor == []


def test_list_validations_rejects_unknown_status(api_client: TestClient) -> None:
    response = api_client.get("/validations", params={"status": "exploded"})

    assert response.status_code == 422


def test_get_missing_run_returns_not_found(api_client: TestClient) -> None:
    missing_id = str(uuid.uuid4())
    response = api_client.get(f"/validations/{missing_id}")

    assert response.status_code == 404
    assert missing_id in response.json()["detail"]


def test_audio_metrics(api_client: TestClient) -> None:
    samples = np.round(3471 * np.sin(2 * np.pi * np.arange(1000) / 100)).astype("<i2")

    response = api_client.post(
        "/audio/metrics",
        files={"file": ("capture.bin", samples.tobytes(), "application/octet-stream")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["sample_count"] == 1000
    assert body["passed"] is True
    assert body["peak_dbfs"] == pytest.approx(-19.5, abs=0.01)
    assert [check["name"] for check in body["checks"]] == ["dc_offset", "rms_db", "peak_dbfs"]


def test_audio_metrics_rejects_silence(api_client: TestClient) -> None:
    response = api_client.post(
        "/audio/metrics",
        files={"file": ("silence.bin", struct.pack("<4h", 0, 0, 0, 0), "application/octet-stream")},
    )

    assert response.status_code == 400
    assert "silent" in response.json()["detail"]


def test_audio_metrics_rejects_empty_upload(api_client: TestClient) -> None:
    response = api_client.post(
        "/audio/metrics",
        files={"file": ("empty.bin", b"", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Uploaded sample block is empty."


def test_sensor_types_listing(api_client: TestClient) -> None:
    response = api_client.get("/sensor-types")

    assert response.status_code == 200
    listing = response.json()["sensor_types"]
    assert listing["proximity"]["comparison_policy"] == "near_far_threshold"
    assert listing["proximity"]["device_sensor_id"] == 13
    assert listing["accelerometer"]["expected_values_length"] == 3


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
