"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.schemas import (
    AudioReport,
    RunAccepted,
    RunStatus,
    SensorTypeInfo,
    SensorTypeListing,
    ValidationListing,
    ValidationReport,
    ValidationRequest,
    ValidationSummary,
)
from services.errors import DegenerateMetric
from services.sensor_config import SENSOR_CONFIGS, SENSOR_TYPE_MAP, SensorType
from services.signal_metrics import decode_pcm16, evaluate_audio_quality
from services.validator import CrossValidationService, build_default_validator

router = APIRouter()


def get_validator() -> CrossValidationService:
    return build_default_validator()


@router.post(
    "/validations",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RunAccepted,
    summary="Submit a reference/device capture for asynchronous cross-validation.",
)
async def submit_validation(
    request: ValidationRequest,
    validator: CrossValidationService = Depends(get_validator),
) -> RunAccepted:
    return RunAccepted(run_id=validator.enqueue_run(request))


@router.get(
    "/validations",
    response_model=ValidationListing,
    summary="List validation runs, newest first, optionally filtered.",
)
async def list_validations(
    status_filter: Optional[RunStatus] = Query(default=None, alias="status"),
    sensor_type: Optional[SensorType] = None,
    limit: int = Query(default=50, ge=1, le=500),
    validator: CrossValidationService = Depends(get_validator),
) -> ValidationListing:
    reports = validator.list_reports(status=status_filter, sensor_type=sensor_type, limit=limit)
    return ValidationListing(runs=[ValidationSummary.from_report(report) for report in reports])


@router.get(
    "/validations/{run_id}",
    response_model=ValidationReport,
    summary="Fetch the report of a validation run.",
)
async def get_validation(
    run_id: str,
    validator: CrossValidationService = Depends(get_validator),
) -> ValidationReport:
    try:
        return validator.fetch_report(run_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc.args[0]),
        ) from exc


@router.post(
    "/audio/metrics",
    response_model=AudioReport,
    summary="Evaluate a block of little-endian 16-bit PCM samples.",
)
async def audio_metrics(
    file: UploadFile = File(..., description="Raw little-endian signed 16-bit PCM samples."),
) -> AudioReport:
    try:
        raw = await file.read()
        if not raw:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Uploaded sample block is empty.",
            )
        report = evaluate_audio_quality(decode_pcm16(raw))
    except DegenerateMetric as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    finally:
        await file.close()

    return AudioReport.from_quality_report(report)


@router.get(
    "/sensor-types",
    response_model=SensorTypeListing,
    summary="List supported sensor types with their comparison settings.",
)
async def list_sensor_types() -> SensorTypeListing:
    listing = {}
    for sensor_type, config in SENSOR_CONFIGS.items():
        reference_id, device_id = SENSOR_TYPE_MAP.ids_for(sensor_type)
        listing[sensor_type.value] = SensorTypeInfo(
            sensor_type=sensor_type,
            expected_values_length=config.expected_values_length,
            error_margin=config.error_margin,
            comparison_policy=config.comparison_policy,
            continuous=config.continuous,
            reference_sensor_id=reference_id,
            device_sensor_id=device_id,
        )
    return SensorTypeListing(sensor_types=listing)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
