from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.schemas import RunStatus, ValidationReport
from services.sensor_config import SensorType
from settings import get_settings

logger = logging.getLogger(__name__)


class ReportStore:
    """Validation reports keyed by run id, optionally mirrored to a JSON file.

    The file is rewritten through a sibling temp file so a crash mid-write
    leaves the previous contents in place.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._reports: Dict[str, ValidationReport] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_report(self, report: ValidationReport) -> None:
        with self._lock:
            self._reports[report.run_id] = report.model_copy(deep=True)
            self._persist()

    def get_report(self, run_id: str) -> Optional[ValidationReport]:
        with self._lock:
            report = self._reports.get(run_id)
            return None if report is None else report.model_copy(deep=True)

    def scan(
        self,
        status: Optional[RunStatus] = None,
        sensor_type: Optional[SensorType] = None,
        limit: Optional[int] = None,
    ) -> List[ValidationReport]:
        """Reports matching the given filters, newest submission first."""
        with self._lock:
            matches = [
                report
                for report in self._reports.values()
                if (status is None or report.status == status)
                and (sensor_type is None or report.sensor_type == sensor_type)
            ]
            matches.sort(key=lambda report: report.submitted_at, reverse=True)
            if limit is not None:
                matches = matches[:limit]
            return [report.model_copy(deep=True) for report in matches]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            run_id: report.model_dump(mode="json") for run_id, report in self._reports.items()
        }
        staging = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        staging.write_text(json.dumps(payload, indent=2, sort_keys=True))
        staging.replace(self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text() or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Ignoring unreadable report store %s: %s", self.persistence_path, exc
            )
            return

        for run_id, payload in data.items():
            try:
                self._reports[run_id] = ValidationReport.model_validate(payload)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed stored report",
                    extra={"run_id": run_id, "reason": exc.errors()[0]["msg"]},
                )
        logger.info("Loaded %d stored reports from %s", len(self._reports), self.persistence_path)


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReportStore:
    settings = get_settings()
    store_name = settings.store_name if name is None else name
    store_path = settings.store_persistence_path if path is None else path
    return ReportStore(name=store_name, persistence_path=Path(store_path) if store_path else None)
