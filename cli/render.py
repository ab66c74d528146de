from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _echo_period(payload: Dict[str, Any]) -> None:
    period = payload.get("period") or {}
    echo_key_values([("start", period.get("start")), ("end", period.get("end"))])


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    echo_key_values(
        [
            ("timestamp", payload.get("timestamp")),
            ("temperature", payload.get("temperature")),
            ("humidity", payload.get("humidity")),
        ]
    )


def render_rows(title: str, payload: Dict[str, Any], key: str, columns: Sequence[str]) -> None:
    """Render a list payload such as ``{"period": ..., key: [...]}`` one row per line."""
    echo_heading(title)
    _echo_period(payload)
    rows = payload.get(key) or []
    typer.echo()
    if not rows:
        typer.echo("No rows in period.")
        return
    typer.echo(" | ".join(columns))
    for row in rows:
        typer.echo(" | ".join(str(row.get(column)) for column in columns))
    typer.echo(f"({len(rows)} rows)")


def render_statistics(payload: Dict[str, Any]) -> None:
    echo_heading("Statistics")
    _echo_period(payload)

    sections = ("temperature", "humidity", "alerts", "cooling", "threshold")
    for section in sections:
        values = payload.get(section) or {}
        typer.echo()
        echo_heading(section.capitalize())
        echo_key_values(values.items())
