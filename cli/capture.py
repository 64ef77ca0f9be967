"""Loading capture files for the CLI."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from app.schemas import ValidationRequest


def load_capture(path: Path) -> ValidationRequest:
    """Parse a JSON capture (sensor type plus both datapoint streams)."""
    try:
        return ValidationRequest.model_validate_json(path.read_bytes())
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
        raise typer.BadParameter(
            f"{path} is not a valid capture ({exc.error_count()} error(s); "
            f"first at {location}: {first.get('msg')})"
        ) from exc
