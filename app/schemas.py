"""Pydantic schemas for the HTTP API layer and stored reports."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from services.sensor_config import ComparisonPolicy, SensorType
from services.signal_metrics import AudioQualityReport


class RunStatus(str, Enum):
    """Validation run lifecycle states exposed via the API."""

    pending = "pending"
    running = "running"
    passed = "passed"
    failed = "failed"


class DatapointPayload(BaseModel):
    timestamp: int = Field(..., description="Sample time in nanoseconds.")
    values: List[float] = Field(..., min_length=1)


class ValidationRequest(BaseModel):
    """A captured pair of streams to cross-validate."""

    sensor_type: SensorType
    reference: List[DatapointPayload] = Field(default_factory=list)
    device: List[DatapointPayload] = Field(default_factory=list)
    max_skew_ns: Optional[int] = Field(default=None, gt=0)
    sensor_max_range: Optional[float] = Field(
        default=None, gt=0, description="Reference sensor maximum range (proximity only)."
    )
    device_sensor_type_id: Optional[int] = Field(
        default=None, description="Hub sensor type id the device stream was reported with."
    )


class RunAccepted(BaseModel):
    run_id: str = Field(..., description="Generated identifier for the validation run.")


class MismatchRecord(BaseModel):
    index: int = Field(..., ge=0)
    reference_timestamp: int
    reference_values: List[float]
    device_timestamp: int
    device_values: List[float]


class RunError(BaseModel):
    kind: str
    reason: str


class ValidationReport(BaseModel):
    """Full record of one validation run."""

    run_id: str
    sensor_type: SensorType
    status: RunStatus
    submitted_at: datetime
    finished_at: Optional[datetime] = None
    processing_ms: Optional[int] = None
    reference_count: int = Field(default=0, ge=0)
    device_count: int = Field(default=0, ge=0)
    aligned_count: int = Field(default=0, ge=0)
    match_ratio: Optional[float] = None
    mismatches: List[MismatchRecord] = Field(default_factory=list)
    error: Optional[RunError] = None


class ValidationSummary(BaseModel):
    run_id: str
    sensor_type: SensorType
    status: RunStatus
    submitted_at: datetime
    aligned_count: int
    mismatch_count: int

    @classmethod
    def from_report(cls, report: ValidationReport) -> "ValidationSummary":
        return cls(
            run_id=report.run_id,
            sensor_type=report.sensor_type,
            status=report.status,
            submitted_at=report.submitted_at,
            aligned_count=report.aligned_count,
            mismatch_count=len(report.mismatches),
        )


class ValidationListing(BaseModel):
    runs: List[ValidationSummary] = Field(default_factory=list)


class AudioCheckResult(BaseModel):
    name: str
    measured: float
    expected: str
    passed: bool


class AudioReport(BaseModel):
    sample_count: int = Field(..., ge=1)
    dc_offset: int
    rms_linear: float
    rms_db: float
    peak_dbfs: float
    passed: bool
    checks: List[AudioCheckResult] = Field(default_factory=list)

    @classmethod
    def from_quality_report(cls, report: AudioQualityReport) -> "AudioReport":
        return cls(
            sample_count=report.sample_count,
            dc_offset=report.dc_offset,
            rms_linear=report.metrics.rms_linear,
            rms_db=report.metrics.rms_db,
            peak_dbfs=report.metrics.peak_dbfs,
            passed=report.passed,
            checks=[
                AudioCheckResult(
                    name=check.name,
                    measured=check.measured,
                    expected=check.expected,
                    passed=check.passed,
                )
                for check in report.checks
            ],
        )


class SensorTypeInfo(BaseModel):
    sensor_type: SensorType
    expected_values_length: int
    error_margin: float
    comparison_policy: ComparisonPolicy
    continuous: bool
    reference_sensor_id: int
    device_sensor_id: int


class SensorTypeListing(BaseModel):
    sensor_types: Dict[str, SensorTypeInfo]
