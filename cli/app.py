from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import echo_heading, echo_key_values, render_reading, render_rows, render_statistics


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the sensor telemetry engine.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_START_OPTION = typer.Option(None, "--start", "-s", help="Start of the period (ISO-8601).")
_END_OPTION = typer.Option(None, "--end", "-e", help="End of the period (ISO-8601); defaults to now.")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent stored reading."""
    state = _get_state(ctx)
    render_reading(state.client.latest())


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    start: Optional[datetime] = _START_OPTION,
    end: Optional[datetime] = _END_OPTION,
) -> None:
    """List readings in a period (default: last 24 hours)."""
    state = _get_state(ctx)
    payload = state.client.readings(start, end)
    render_rows("Readings", payload, "readings", ("timestamp", "temperature", "humidity"))


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    start: Optional[datetime] = _START_OPTION,
    end: Optional[datetime] = _END_OPTION,
) -> None:
    """List alert episodes in a period (default: last 7 days)."""
    state = _get_state(ctx)
    payload = state.client.alerts(start, end)
    render_rows(
        "Alert Episodes",
        payload,
        "alerts",
        ("start", "end", "peak_temperature", "duration", "resolved"),
    )


@app.command("cooling")
def cooling_command(
    ctx: typer.Context,
    start: Optional[datetime] = _START_OPTION,
    end: Optional[datetime] = _END_OPTION,
) -> None:
    """List cooling episodes in a period (default: last 7 days)."""
    state = _get_state(ctx)
    payload = state.client.cooling(start, end)
    render_rows(
        "Cooling Episodes",
        payload,
        "events",
        ("activated_at", "deactivated_at", "trigger_type", "duration"),
    )


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    start: Optional[datetime] = _START_OPTION,
    end: Optional[datetime] = _END_OPTION,
) -> None:
    """Show derived statistics for a period (default: last 7 days)."""
    state = _get_state(ctx)
    render_statistics(state.client.statistics(start, end))


@app.command("rollups")
def rollups_command(
    ctx: typer.Context,
    granularity: str = typer.Argument("hourly", help="Either 'hourly' or 'daily'."),
    start: Optional[datetime] = _START_OPTION,
    end: Optional[datetime] = _END_OPTION,
) -> None:
    """List stored hourly or daily rollups."""
    state = _get_state(ctx)
    payload = state.client.rollups(granularity, start, end)
    columns = ["date", "avg_temperature", "min_temperature", "max_temperature", "readings_count"]
    if granularity == "hourly":
        columns.insert(1, "hour")
    else:
        columns.extend(["alerts_count", "cooling_events_count"])
    render_rows(f"{granularity.capitalize()} Rollups", payload, "aggregates", columns)


@app.command("aggregate")
def aggregate_command(
    now: Optional[datetime] = typer.Option(
        None,
        "--now",
        help="Reference time for the run (defaults to the current time).",
    ),
) -> None:
    """Run one rollup pass directly against the configured database."""
    # Imported lazily so query commands never open the database.
    from services.scheduler import build_default_scheduler

    report = build_default_scheduler().run_once(now)
    echo_heading("Aggregation Run")
    echo_key_values(
        [
            ("hourly_date", report.hourly_date),
            ("daily_date", report.daily_date),
            ("written", ", ".join(report.written) or "-"),
            ("already_present", len(report.skipped_existing)),
            ("empty", len(report.empty)),
            ("failed", ", ".join(report.failed) or "-"),
        ]
    )
    if report.failed:
        raise typer.Exit(code=1)
