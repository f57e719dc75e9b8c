"""Command line interface for inspecting configuration and sending requests.

Commands:
- ``config show``: effective settings per host (table or JSON)
- ``config validate``: load a config file and report errors
- ``send URL``: issue one request through the assembled pipeline

Example:
    http-clients config show -c http-clients.yaml
    http-clients send https://api.example.com/users -c http-clients.yaml
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from .assembler import build_http_client
from .config_loader import PipelineConfig, load_pipeline_config
from .errors import ConfigurationError
from .logging_utils import setup_logging

app = typer.Typer(
    name="http-clients",
    help="Composable HTTP client pipeline",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration inspection and validation", no_args_is_help=True)
app.add_typer(config_app, name="config")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Config file path (YAML/JSON)")


def _load(config_file: Optional[Path]) -> PipelineConfig:
    try:
        return load_pipeline_config(config_file)
    except ConfigurationError as e:
        typer.secho(f"Error loading config: {e}", fg="red", err=True)
        raise typer.Exit(1)


def _settings_rows(config: PipelineConfig) -> List[Dict[str, Any]]:
    rows = []
    for host, settings in config.config_manager.entries():
        fields = settings.model_dump(mode="json", exclude={"enabled"})
        rows.append(
            {
                "host": host or "*",
                "kind": settings.kind,
                "enabled": settings.enabled,
                "settings": fields,
            }
        )
    return rows


@config_app.command("show")
def config_show(
    config_file: Optional[Path] = CONFIG_OPTION,
    format_output: str = typer.Option(
        "table", "--format", "-f", help="Output format: table or json"
    ),
) -> None:
    """Display the effective per-host settings after file → env precedence."""

    config = _load(config_file)
    rows = _settings_rows(config)
    if format_output == "json":
        output = {
            "order": list(config.order),
            "storage": config.storage.model_dump(mode="json"),
            "entries": rows,
        }
        typer.echo(json.dumps(output, indent=2))
        return

    console = Console()
    table = Table(title="HTTP client pipeline - Effective Configuration")
    table.add_column("Host", style="cyan")
    table.add_column("Middleware", style="magenta")
    table.add_column("Enabled", style="green")
    table.add_column("Settings", style="yellow")
    for row in rows:
        table.add_row(
            row["host"],
            row["kind"],
            "yes" if row["enabled"] else "no",
            json.dumps(row["settings"], sort_keys=True),
        )
    console.print(table)
    console.print(f"Order (outermost first): {', '.join(config.order)}")


@config_app.command("validate")
def config_validate(
    config_file: Path = typer.Option(..., "--config", "-c", help="Config file path to validate"),
) -> None:
    """Validate a configuration file. Exit code 0 if valid, 1 if invalid."""

    try:
        config = load_pipeline_config(config_file)
    except ConfigurationError as e:
        typer.secho("Config validation failed:", fg="red", err=True)
        typer.secho(f"   {e}", fg="red", err=True)
        raise typer.Exit(1)
    typer.secho("Config is valid", fg="green")
    typer.echo(f"   Hosts: {len(config.config_manager.hosts())}")
    typer.echo(f"   Order: {', '.join(config.order)}")


def _parse_headers(values: List[str]) -> List[tuple]:
    headers = []
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(
                f"Expected 'Name: value', got {value!r}", param_hint="--header"
            )
        headers.append((name.strip(), content.strip()))
    return headers


@app.command()
def send(
    url: str = typer.Argument(..., help="Absolute URL to request"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    header: List[str] = typer.Option([], "--header", "-H", help="Request header 'Name: value'"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body"),
    config_file: Optional[Path] = CONFIG_OPTION,
    show_body: bool = typer.Option(False, "--body", "-b", help="Print the response body"),
) -> None:
    """Send one request through the configured pipeline and print the outcome."""

    config = _load(config_file)
    setup_logging(config.logging)
    headers = _parse_headers(header)
    try:
        with build_http_client(config) as client:
            response = client.request(
                method.upper(),
                url,
                headers=headers,
                content=data.encode("utf-8") if data is not None else None,
            )
    except ConfigurationError as e:
        typer.secho(f"Error building pipeline: {e}", fg="red", err=True)
        raise typer.Exit(1)
    except httpx.HTTPError as e:
        typer.secho(f"Request failed: {type(e).__name__}: {e}", fg="red", err=True)
        raise typer.Exit(2)

    from_cache = " (cache)" if response.extensions.get("from_cache") else ""
    typer.echo(f"{response.status_code} {response.reason_phrase}{from_cache}")
    for name, value in response.headers.multi_items():
        typer.echo(f"{name}: {value}")
    if show_body:
        typer.echo("")
        typer.echo(response.text)


def main() -> None:
    app()


__all__ = ["app", "config_app", "main"]
