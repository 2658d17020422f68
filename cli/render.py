from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("timestamp", payload.get("timestamp")),
            ("temperature", payload.get("temperature")),
            ("humidity", payload.get("humidity")),
            ("sound", payload.get("sound")),
            ("heart_rate", payload.get("heart_rate")),
        ]
    )


def render_history(payload: Dict[str, Any]) -> None:
    readings = payload.get("data") or []
    echo_heading(f"History ({payload.get('total', len(readings))} of {payload.get('capacity')})")
    if not readings:
        typer.echo("No readings retained.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp')}: "
            f"T={reading.get('temperature')} H={reading.get('humidity')} "
            f"S={reading.get('sound')} HR={reading.get('heart_rate')}"
        )


def render_bundle(payload: Dict[str, Any]) -> None:
    echo_heading("Observation Bundle")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("timestamp", payload.get("timestamp")),
            ("total", payload.get("total")),
        ]
    )
    for entry in payload.get("entry") or []:
        resource = entry.get("resource") or {}
        coding = ((resource.get("code") or {}).get("coding") or [{}])[0]
        quantity = resource.get("valueQuantity") or {}
        typer.echo(
            f"  - {coding.get('code')} {coding.get('display')}: "
            f"{quantity.get('value')} {quantity.get('unit')}"
        )
