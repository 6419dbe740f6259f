from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from app.schemas import Destination, ExportFormat, ScheduleFrequency
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_connection, render_history, render_job, render_schedules


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor export service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
schedules_app = typer.Typer(help="Manage recurring export definitions.")
app.add_typer(schedules_app, name="schedules")
connections_app = typer.Typer(help="Check upstream credentials without running an export.")
app.add_typer(connections_app, name="connections")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Export API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for completion.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling for a job.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("export")
def export_command(
    ctx: typer.Context,
    sensor_ids: List[str] = typer.Argument(..., help="PurpleAir sensor ids to export."),
    start: datetime = typer.Option(..., "--start", formats=["%Y-%m-%d"], help="First day (inclusive)."),
    end: datetime = typer.Option(..., "--end", formats=["%Y-%m-%d"], help="Last day (inclusive)."),
    export_format: ExportFormat = typer.Option(ExportFormat.csv, "--format", help="File format for downloads."),
    destination: Destination = typer.Option(Destination.download, "--destination", help="Delivery target."),
    calibration: Optional[float] = typer.Option(None, "--calibration", help="Calibration factor."),
    purpleair_key: Optional[str] = typer.Option(
        None, "--purpleair-key", envvar="PURPLEAIR_API_KEY", help="PurpleAir read key."
    ),
    eagle_io_key: Optional[str] = typer.Option(
        None, "--eagle-io-key", envvar="EAGLE_IO_API_KEY", help="Eagle.io API key."
    ),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait for the job to finish and display the result.",
    ),
) -> None:
    """Queue an export job."""
    state = _get_state(ctx)
    payload: Dict[str, Any] = {
        "start_date": start.date().isoformat(),
        "end_date": end.date().isoformat(),
        "sensor_ids": sensor_ids,
        "format": export_format.value,
        "destination": destination.value,
        "credentials": {
            "purpleair_api_key": purpleair_key,
            "eagle_io_api_key": eagle_io_key,
        },
    }
    if calibration is not None:
        payload["calibration_factor"] = calibration

    job = state.client.create_export(payload)
    typer.secho(f"Export queued. job_id={job['id']}", fg=typer.colors.GREEN)

    if not wait:
        return

    interval = state.config.poll_interval
    poll_timeout = state.config.poll_timeout
    typer.echo(f"Waiting for export (interval={interval}s, timeout={poll_timeout}s)...")
    result = state.client.poll_job(job["id"], interval=interval, timeout=poll_timeout)
    typer.echo()
    render_job(result)
    if result.get("status") == "failed":
        raise typer.Exit(code=1)


@app.command("job")
def job_command(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Identifier returned from the export command."),
) -> None:
    """Show the status and result of an export job."""
    state = _get_state(ctx)
    render_job(state.client.get_job(job_id))


@app.command("download")
def download_command(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Completed export job identifier."),
    output: Path = typer.Option(..., "--output", "-o", dir_okay=False, help="Where to write the file."),
) -> None:
    """Save the file produced by a completed export."""
    state = _get_state(ctx)
    data = state.client.download_file(job_id)
    output.write_bytes(data)
    typer.secho(f"Wrote {len(data)} bytes to {output}", fg=typer.colors.GREEN)


@app.command("history")
def history_command(ctx: typer.Context) -> None:
    """List finished exports, most recent first."""
    state = _get_state(ctx)
    render_history(state.client.list_history())


@schedules_app.command("list")
def schedules_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    render_schedules(state.client.list_schedules())


@schedules_app.command("create")
def schedules_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Schedule name."),
    sensor_ids: List[str] = typer.Option(..., "--sensor", "-s", help="Sensor id; repeat for several."),
    frequency: ScheduleFrequency = typer.Option(ScheduleFrequency.daily, "--frequency"),
    time_of_day: str = typer.Option("09:00", "--time", help="Time of day as HH:MM."),
    export_format: ExportFormat = typer.Option(ExportFormat.csv, "--format"),
    destination: Destination = typer.Option(Destination.telemetry_platform, "--destination"),
    credentials_ref: Optional[str] = typer.Option(None, "--credentials-ref"),
) -> None:
    """Store a recurring export definition."""
    state = _get_state(ctx)
    schedule = state.client.create_schedule(
        {
            "name": name,
            "frequency": frequency.value,
            "time_of_day": time_of_day,
            "sensor_ids": sensor_ids,
            "format": export_format.value,
            "destination": destination.value,
            "credentials_ref": credentials_ref,
        }
    )
    typer.secho(f"Schedule created. schedule_id={schedule['id']}", fg=typer.colors.GREEN)


@schedules_app.command("delete")
def schedules_delete(
    ctx: typer.Context,
    schedule_id: str = typer.Argument(..., help="Schedule identifier."),
) -> None:
    state = _get_state(ctx)
    state.client.delete_schedule(schedule_id)
    typer.echo(f"Schedule {schedule_id} deleted.")


def _report_connection(state: CLIState, service: str, payload: Dict[str, Any]) -> None:
    result = state.client.check_connection(service, payload)
    render_connection(result)
    if not result.get("success"):
        raise typer.Exit(code=1)


@connections_app.command("purpleair")
def connections_purpleair(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor to read with the key."),
    api_key: Optional[str] = typer.Option(
        None, "--key", envvar="PURPLEAIR_API_KEY", help="PurpleAir read key."
    ),
) -> None:
    """Check a PurpleAir read key."""
    _report_connection(_get_state(ctx), "purpleair", {"api_key": api_key, "sensor_id": sensor_id})


@connections_app.command("eagle-io")
def connections_eagle_io(
    ctx: typer.Context,
    api_key: Optional[str] = typer.Option(
        None, "--key", envvar="EAGLE_IO_API_KEY", help="Eagle.io API key."
    ),
    api_url: Optional[str] = typer.Option(None, "--url", help="Eagle.io base URL."),
) -> None:
    """Check an Eagle.io API key."""
    _report_connection(_get_state(ctx), "eagle-io", {"api_key": api_key, "api_url": api_url})


@connections_app.command("aqs")
def connections_aqs(
    ctx: typer.Context,
    email: Optional[str] = typer.Option(None, "--email", help="AQS account email."),
    api_key: Optional[str] = typer.Option(None, "--key", envvar="AQS_API_KEY", help="AQS API key."),
    api_url: Optional[str] = typer.Option(None, "--url", help="AQS data API base URL."),
) -> None:
    """Check EPA AQS credentials."""
    _report_connection(
        _get_state(ctx), "aqs", {"api_key": api_key, "email": email, "api_url": api_url}
    )
