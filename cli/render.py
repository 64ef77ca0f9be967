from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_report(payload: Dict[str, Any]) -> None:
    echo_heading("Validation Report")
    echo_key_values(
        [
            ("run_id", payload.get("run_id")),
            ("sensor_type", payload.get("sensor_type")),
            ("status", payload.get("status")),
            ("submitted_at", payload.get("submitted_at")),
            ("finished_at", payload.get("finished_at")),
            ("processing_ms", payload.get("processing_ms")),
        ]
    )

    typer.echo()
    echo_heading("Alignment")
    ratio = payload.get("match_ratio")
    echo_key_values(
        [
            ("reference_count", payload.get("reference_count")),
            ("device_count", payload.get("device_count")),
            ("aligned_count", payload.get("aligned_count")),
            ("match_ratio", f"{ratio:.3f}" if isinstance(ratio, (int, float)) else ratio),
        ]
    )

    mismatches = payload.get("mismatches") or []
    typer.echo()
    echo_heading("Mismatches")
    if mismatches:
        for mismatch in mismatches:
            typer.echo(
                f"  - [{mismatch.get('index')}] "
                f"reference@{mismatch.get('reference_timestamp')} {mismatch.get('reference_values')} "
                f"device@{mismatch.get('device_timestamp')} {mismatch.get('device_values')}"
            )
    else:
        typer.echo("No mismatches recorded.")

    error = payload.get("error")
    if error:
        typer.echo()
        echo_heading("Failure")
        typer.secho(f"{error.get('kind')}: {error.get('reason')}", fg=typer.colors.RED)


def render_audio_report(payload: Dict[str, Any]) -> None:
    echo_heading("Audio Quality")
    echo_key_values(
        [
            ("sample_count", payload.get("sample_count")),
            ("dc_offset", payload.get("dc_offset")),
            ("rms_linear", payload.get("rms_linear")),
            ("rms_db", payload.get("rms_db")),
            ("peak_dbfs", payload.get("peak_dbfs")),
        ]
    )

    typer.echo()
    echo_heading("Checks")
    for check in payload.get("checks") or []:
        verdict = "pass" if check.get("passed") else "FAIL"
        typer.echo(
            f"  - {check.get('name')}: {check.get('measured'):.3f} "
            f"(expected {check.get('expected')}) {verdict}"
        )
