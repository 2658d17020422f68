from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_bundle, render_history, render_reading


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor stream monitor service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8080).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent accepted reading."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest())


@app.command("history")
def history_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=1, help="Only show the most recent N readings."
    ),
) -> None:
    """List retained readings, oldest first."""
    state = _get_state(ctx)
    render_history(state.client.get_history(limit=limit))


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    temperature: float = typer.Option(..., "--temperature", help="Degrees Celsius."),
    humidity: float = typer.Option(..., "--humidity", help="Relative humidity, percent."),
    sound: float = typer.Option(..., "--sound", help="Ambient sound level."),
    heart_rate: float = typer.Option(..., "--heart-rate", help="Beats per minute."),
) -> None:
    """Submit one reading for validation and ingestion."""
    state = _get_state(ctx)
    payload = state.client.ingest(
        {
            "temperature": temperature,
            "humidity": humidity,
            "sound": sound,
            "heart_rate": heart_rate,
        }
    )
    typer.secho(
        f"Reading accepted. reading_id={payload.get('reading_id')}",
        fg=typer.colors.GREEN,
    )


@app.command("observations")
def observations_command(
    ctx: typer.Context,
    count: int = typer.Option(1, "--count", "-c", min=1, max=100, help="Recent readings to encode."),
) -> None:
    """Fetch recent readings as a FHIR observation bundle."""
    state = _get_state(ctx)
    render_bundle(state.client.get_observations(count))
