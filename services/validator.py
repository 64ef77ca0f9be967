"""Orchestration of cross-validation runs: collect, align, compare, report."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from app.schemas import (
    MismatchRecord,
    RunError,
    RunStatus,
    ValidationReport,
    ValidationRequest,
)
from datastore.report_store import ReportStore, build_default_store
from models.records import Datapoint, SourceTag
from services.aligner import Aligner, AlignmentResult
from services.collector import CollectedSnapshot, SampleCollector
from services.comparator import Comparator, ComparisonSummary, Mismatch, mismatch_error
from services.errors import ConfigurationError, CrossValidationError
from services.sensor_config import (
    SENSOR_TYPE_MAP,
    SensorType,
    SensorTypeConfig,
    await_data_timeout_ms,
    get_sensor_config,
)
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOutcome:
    sensor_type: SensorType
    snapshot: CollectedSnapshot
    alignment: AlignmentResult
    comparison: ComparisonSummary

    @property
    def passed(self) -> bool:
        return self.comparison.passed

    def raise_for_mismatch(self) -> None:
        if not self.comparison.passed:
            raise mismatch_error(self.comparison)


class CrossValidationService:
    """Runs validations synchronously or on a background worker pool."""

    def __init__(
        self,
        store: ReportStore,
        aligner: Aligner,
        comparator: Comparator,
        workers: int = 4,
        max_skew_ns: int = 4_000_000,
        queue_size: int = 1024,
    ) -> None:
        self.store = store
        self.aligner = aligner
        self.comparator = comparator
        self.max_skew_ns = max_skew_ns
        self.queue_size = queue_size
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def evaluate(self, request: ValidationRequest) -> ValidationOutcome:
        """Collect, align and compare one request. Mismatches are returned, not raised."""
        sensor_type = request.sensor_type
        config = get_sensor_config(sensor_type)
        if request.device_sensor_type_id is not None:
            reported = SENSOR_TYPE_MAP.sensor_type_for_device_id(request.device_sensor_type_id)
            if reported is not sensor_type:
                raise ConfigurationError(
                    f"Incorrect sensor type {reported.value!r} when expecting {sensor_type.value!r}"
                )

        snapshot = self._collect(sensor_type, config, request)
        _ensure_monotonic(snapshot.reference, SourceTag.reference)
        _ensure_monotonic(snapshot.device, SourceTag.device_under_test)

        max_skew_ns = request.max_skew_ns or self.max_skew_ns
        alignment = self.aligner.align(snapshot.reference, snapshot.device, max_skew_ns)
        comparison = self.comparator.compare(alignment.pairs, config, request.sensor_max_range)
        if not comparison.passed:
            self.comparator.dump_pairs(alignment.pairs)
        return ValidationOutcome(
            sensor_type=sensor_type,
            snapshot=snapshot,
            alignment=alignment,
            comparison=comparison,
        )

    def run_validation(self, request: ValidationRequest) -> ValidationOutcome:
        """Like :meth:`evaluate` but a mismatch raises :class:`ComparisonMismatch`."""
        outcome = self.evaluate(request)
        outcome.raise_for_mismatch()
        return outcome

    def build_report(
        self,
        request: ValidationRequest,
        run_id: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
    ) -> ValidationReport:
        """Evaluate a request and describe the result, failures included."""
        run_id = run_id or str(uuid4())
        submitted_at = submitted_at or datetime.now(timezone.utc)
        start_time = time.perf_counter()
        report = ValidationReport(
            run_id=run_id,
            sensor_type=request.sensor_type,
            status=RunStatus.failed,
            submitted_at=submitted_at,
            reference_count=len(request.reference),
            device_count=len(request.device),
        )

        try:
            outcome = self.evaluate(request)
        except CrossValidationError as exc:
            report.error = RunError(kind=exc.kind, reason=str(exc))
        except Exception as exc:  # pragma: no cover - defensive catch-all
            logger.exception("Validation run crashed", extra={"run_id": run_id})
            report.error = RunError(kind="internal", reason=str(exc))
        else:
            report.aligned_count = len(outcome.alignment)
            report.match_ratio = outcome.alignment.match_ratio
            report.mismatches = _mismatch_records(outcome.comparison.mismatches)
            if outcome.passed:
                report.status = RunStatus.passed
            else:
                first = outcome.comparison.mismatches[0]
                report.error = RunError(kind="mismatch", reason=first.describe())

        report.finished_at = datetime.now(timezone.utc)
        report.processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Validation run finished",
            extra={
                "run_id": run_id,
                "sensor_type": request.sensor_type.value,
                "status": report.status.value,
                "processing_ms": report.processing_ms,
                "aligned_count": report.aligned_count,
                "mismatch_count": len(report.mismatches),
                "reason": report.error.reason if report.error else None,
            },
        )
        return report

    def enqueue_run(self, request: ValidationRequest) -> str:
        """Record a pending run and evaluate it in the background."""
        run_id = str(uuid4())
        submitted_at = datetime.now(timezone.utc)
        self.store.put_report(
            ValidationReport(
                run_id=run_id,
                sensor_type=request.sensor_type,
                status=RunStatus.pending,
                submitted_at=submitted_at,
                reference_count=len(request.reference),
                device_count=len(request.device),
            )
        )

        future = self.executor.submit(
            self._process_run, run_id=run_id, request=request, submitted_at=submitted_at
        )
        with self._futures_lock:
            self._futures[run_id] = future
        future.add_done_callback(lambda _f, rid=run_id: self._clear_future(rid))
        return run_id

    def fetch_report(self, run_id: str) -> ValidationReport:
        report = self.store.get_report(run_id)
        if report is None:
            raise KeyError(f"Validation run {run_id!r} not found.")
        return report

    def list_reports(
        self,
        status: Optional[RunStatus] = None,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None,
    ) -> List[ValidationReport]:
        return self.store.scan(status=status, sensor_type=sensor_type, limit=limit)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, run_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(run_id, None)

    def _process_run(
        self, run_id: str, request: ValidationRequest, submitted_at: datetime
    ) -> None:
        running = self.fetch_report(run_id)
        running.status = RunStatus.running
        self.store.put_report(running)
        self.store.put_report(self.build_report(request, run_id=run_id, submitted_at=submitted_at))

    def _collect(
        self, sensor_type: SensorType, config: SensorTypeConfig, request: ValidationRequest
    ) -> CollectedSnapshot:
        collector = SampleCollector(sensor_type, config, queue_size=self.queue_size)
        with collector:
            for datapoint in _to_datapoints(request.reference, SourceTag.reference):
                collector.submit(datapoint)
            for datapoint in _to_datapoints(request.device, SourceTag.device_under_test):
                collector.submit(datapoint)
            # A replayed capture is fully submitted here, so the latch is already set and
            # the sensor's await timeout only bounds the wait when producers are live.
            collector.mark_complete()
            collector.close(await_data_timeout_ms(config) / 1000)
        return collector.snapshot()


def _to_datapoints(payloads: Iterable, source: SourceTag) -> List[Datapoint]:
    return [Datapoint.build(item.timestamp, item.values, source) for item in payloads]


def _ensure_monotonic(datapoints: Sequence[Datapoint], source: SourceTag) -> None:
    for index in range(1, len(datapoints)):
        if datapoints[index].timestamp < datapoints[index - 1].timestamp:
            raise ConfigurationError(
                f"{source.value} timestamps go backwards at index {index}"
            )


def _mismatch_records(mismatches: Sequence[Mismatch]) -> List[MismatchRecord]:
    return [
        MismatchRecord(
            index=mismatch.index,
            reference_timestamp=mismatch.reference.timestamp,
            reference_values=list(mismatch.reference.values),
            device_timestamp=mismatch.device.timestamp,
            device_values=list(mismatch.device.values),
        )
        for mismatch in mismatches
    ]


@lru_cache
def build_default_validator(workers: Optional[int] = None) -> CrossValidationService:
    """Factory that wires the validator from settings."""
    settings = get_settings()
    return CrossValidationService(
        store=build_default_store(),
        aligner=Aligner(),
        comparator=Comparator(far_distance_cm=settings.proximity_far_distance_cm),
        workers=workers or settings.validator_workers,
        max_skew_ns=settings.max_timestamp_diff_ns,
        queue_size=settings.collector_queue_size,
    )
