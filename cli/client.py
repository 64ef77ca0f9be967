from __future__ import annotations

import time
from typing import Any, Dict

import httpx
import typer

from app.schemas import ValidationRequest
from cli.config import CLIConfig

_IN_FLIGHT_STATUSES = {"pending", "running"}


class ApiClient:
    """Minimal HTTP client for the cross-validation service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def submit_validation(self, request: ValidationRequest) -> str:
        try:
            response = self._client.post("/validations", json=request.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        run_id = response.json().get("run_id")
        if not isinstance(run_id, str):
            raise typer.BadParameter("Unexpected response payload when submitting a capture.")
        return run_id

    def get_result(self, run_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/validations/{run_id}")
            if response.status_code == 404:
                raise typer.BadParameter(f"Validation run {run_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def poll_result(self, run_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.get_result(run_id)
            if last_payload.get("status") not in _IN_FLIGHT_STATUSES:
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for validation run {run_id}. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            detail = exc.response.json().get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
