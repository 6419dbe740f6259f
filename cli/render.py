from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_job(payload: Dict[str, Any]) -> None:
    echo_heading("Export Job")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("name", payload.get("name")),
            ("status", payload.get("status")),
            ("format", payload.get("format")),
            ("destination", payload.get("destination")),
            ("created_at", payload.get("created_at")),
            ("finished_at", payload.get("finished_at")),
        ]
    )

    typer.echo()
    result = payload.get("result") or {}
    if result:
        echo_heading("Result")
        echo_key_values(
            [
                ("record_count", result.get("record_count")),
                ("output_size", result.get("output_size")),
                ("filename", result.get("filename")),
            ]
        )
    elif payload.get("error"):
        typer.secho(f"Error: {payload['error']}", fg=typer.colors.RED)
    else:
        typer.echo("No result yet.")


def render_history(records: List[Dict[str, Any]]) -> None:
    echo_heading("Export History")
    if not records:
        typer.echo("No exports recorded.")
        return
    for record in records:
        line = (
            f"  - {record.get('timestamp')} {record.get('destination')} "
            f"[{record.get('job_type')}] {record.get('status')} "
            f"records={record.get('record_count')} duration_ms={record.get('duration_ms')}"
        )
        if record.get("error"):
            line += f" error={record['error']}"
        typer.echo(line)


def render_schedules(schedules: List[Dict[str, Any]]) -> None:
    echo_heading("Scheduled Exports")
    if not schedules:
        typer.echo("No schedules defined.")
        return
    for schedule in schedules:
        typer.echo(
            f"  - {schedule.get('id')} {schedule.get('name')}: "
            f"{schedule.get('frequency')} at {schedule.get('time_of_day')} "
            f"-> {schedule.get('destination')}"
        )


def render_connection(payload: Dict[str, Any]) -> None:
    colour = typer.colors.GREEN if payload.get("success") else typer.colors.RED
    typer.secho(f"{payload.get('service')}: {payload.get('message')}", fg=colour)
