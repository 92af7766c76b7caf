from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    if not payload:
        typer.echo("No readings in the retention window.")
        return
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("deviceId", payload.get("deviceId")),
            ("temperature", payload.get("temperature")),
            ("humidity", payload.get("humidity")),
            ("timestamp", payload.get("timestamp")),
        ]
    )


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"Recent Readings ({len(readings)})")
    if not readings:
        typer.echo("No readings in the retention window.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp')} {reading.get('deviceId')}: "
            f"{reading.get('temperature')} C, {reading.get('humidity')} %"
        )
