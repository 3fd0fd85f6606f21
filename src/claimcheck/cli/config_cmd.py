"""CLI command for showing the effective configuration.

Usage:
    claimcheck config
    claimcheck config --format json
"""

from __future__ import annotations

from typing import Any

import orjson
import typer

from claimcheck.config import ClientConfiguration, get_configuration

app = typer.Typer(help="Show the effective configuration")

_SECRET_MARKERS = ("connection_string", "customer_provided_key")


def _mask(data: dict[str, Any]) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = _mask(value)
        elif value and any(marker in key for marker in _SECRET_MARKERS):
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def masked_configuration(config: ClientConfiguration) -> dict[str, Any]:
    """Dump the configuration as JSON-safe data with secrets hidden."""
    return _mask(config.model_dump(mode="json"))


@app.callback(invoke_without_command=True)
def show(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Print configuration loaded from the environment and .env file."""
    data = masked_configuration(get_configuration())

    if output_format == "json":
        typer.echo(
            orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS).decode()
        )
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title="claimcheck configuration")
    table.add_column("Setting")
    table.add_column("Value")

    for key, value in sorted(data.items()):
        if isinstance(value, dict):
            for sub_key, sub_value in sorted(value.items()):
                table.add_row(f"{key}.{sub_key}", str(sub_value))
        else:
            table.add_row(key, str(value))

    Console().print(table)
