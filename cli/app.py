from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Optional

import httpx
import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_reading, render_readings

SEND_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.5


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for sending and inspecting sensor readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


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
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:3000).",
    ),
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        "-k",
        help="Shared ingestion secret (defaults to API_KEY env).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, api_key=api_key)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    temperature: float = typer.Option(..., "--temperature", "-t", help="Temperature in Celsius."),
    humidity: float = typer.Option(..., "--humidity", "-H", help="Relative humidity in percent."),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Device identifier."),
) -> None:
    """Send a single reading."""
    state = _get_state(ctx)
    reading_id = state.client.send_reading(temperature, humidity, device_id=device)
    typer.secho(f"Reading stored. id={reading_id}", fg=typer.colors.GREEN)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent reading."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest())


@app.command("recent")
def recent_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of readings (max 500)."),
) -> None:
    """List recent readings, oldest first."""
    state = _get_state(ctx)
    render_readings(state.client.get_recent(limit))


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(10, "--count", "-c", min=1, help="Readings to send."),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between readings (defaults to CLI_SIMULATE_INTERVAL env or 5).",
    ),
    device: str = typer.Option("sim-1", "--device", "-d", help="Device identifier."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for repeatable runs."),
) -> None:
    """Emulate a device posting a random walk of readings."""
    state = _get_state(ctx)
    delay = interval if interval is not None else state.config.simulate_interval
    rng = random.Random(seed)
    temperature, humidity = 24.0, 55.0
    failures = 0

    for index in range(count):
        temperature = round(temperature + rng.uniform(-0.5, 0.5), 1)
        humidity = round(min(100.0, max(0.0, humidity + rng.uniform(-1.0, 1.0))), 1)
        reading_id = _send_with_retry(state.client, temperature, humidity, device)
        if reading_id is None:
            failures += 1
            typer.secho(
                f"[{index + 1}/{count}] giving up after {SEND_ATTEMPTS} attempts",
                fg=typer.colors.RED,
                err=True,
            )
        else:
            typer.echo(f"[{index + 1}/{count}] {temperature} C {humidity} % id={reading_id}")
        if index + 1 < count:
            time.sleep(delay)

    if failures:
        raise typer.Exit(code=1)


def _send_with_retry(
    client: ApiClient, temperature: float, humidity: float, device: str
) -> Optional[str]:
    for attempt in range(1, SEND_ATTEMPTS + 1):
        try:
            return client.send_reading(temperature, humidity, device_id=device)
        except httpx.TransportError as exc:
            typer.secho(f"attempt {attempt} failed: {exc}", fg=typer.colors.YELLOW, err=True)
            if attempt < SEND_ATTEMPTS:
                time.sleep(RETRY_DELAY_SECONDS)
    return None
