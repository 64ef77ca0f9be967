from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from app.schemas import AudioReport, RunStatus
from cli.capture import load_capture
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_audio_report, render_report
from datastore.report_store import ReportStore
from logging_config import configure_logging
from services.aligner import Aligner
from services.comparator import Comparator
from services.errors import DegenerateMetric
from services.signal_metrics import decode_pcm16, evaluate_audio_quality
from services.validator import CrossValidationService
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Cross-validate reference and device-under-test sensor captures.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _local_validator() -> CrossValidationService:
    settings = get_settings()
    return CrossValidationService(
        store=ReportStore(name="cli"),
        aligner=Aligner(),
        comparator=Comparator(far_distance_cm=settings.proximity_far_distance_cm),
        workers=1,
        max_skew_ns=settings.max_timestamp_diff_ns,
        queue_size=settings.collector_queue_size,
    )


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Validation service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for completion.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling for results.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every datapoint of failed runs.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
        verbose=verbose,
    )
    configure_logging(config.log_level)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("validate")
def validate_command(
    capture: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to a JSON capture."),
) -> None:
    """Cross-validate a capture locally."""
    request = load_capture(capture)
    validator = _local_validator()
    try:
        report = validator.build_report(request)
    finally:
        validator.shutdown()

    render_report(report.model_dump(mode="json"))
    if report.status is not RunStatus.passed:
        raise typer.Exit(code=1)


@app.command("audio")
def audio_command(
    samples: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Raw little-endian 16-bit PCM samples."
    ),
) -> None:
    """Evaluate DC offset, RMS and peak level of a captured sample block."""
    try:
        report = evaluate_audio_quality(decode_pcm16(samples.read_bytes()))
    except DegenerateMetric as exc:
        typer.secho(f"Cannot evaluate {samples}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    render_audio_report(AudioReport.from_quality_report(report).model_dump(mode="json"))
    if not report.passed:
        raise typer.Exit(code=1)


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    capture: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to a JSON capture."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the run to finish and display the report.",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override timeout while waiting.",
    ),
) -> None:
    """Submit a capture to the validation service."""
    state = _get_state(ctx)
    request = load_capture(capture)
    typer.echo(f"Submitting {capture} to {state.config.base_url} ...")
    run_id = state.client.submit_validation(request)
    typer.secho(f"Run accepted. run_id={run_id}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    poll_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Waiting for the run (interval={interval}s, timeout={poll_timeout}s)...")
    result = state.client.poll_result(run_id, interval=interval, timeout=poll_timeout)
    typer.echo()
    render_report(result)
    if result.get("status") != RunStatus.passed.value:
        raise typer.Exit(code=1)


@app.command("result")
def result_command(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Identifier returned from the submit command."),
) -> None:
    """Fetch the report of a validation run."""
    state = _get_state(ctx)
    render_report(state.client.get_result(run_id))
