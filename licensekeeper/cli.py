"""
Command-line interface for licensekeeper.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

import licensekeeper
from licensekeeper.client.infrastructure.config_loader import ConfigLoader
from licensekeeper.client.infrastructure.state_store import JsonFileStateStore


@click.group()
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where license state is stored (default: from LICENSEKEEPER_STATE_FILE "
    "env or ~/.licensekeeper/state.json)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with license settings",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (default: from LICENSEKEEPER_LOG_LEVEL env or INFO)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    state_file: Path | None,
    config_file: Path | None,
    log_level: str | None,
) -> None:
    """Manage the license of this installation"""
    level = getattr(logging, log_level.upper()) if log_level else None
    loader = ConfigLoader(
        config_file=config_file, state_file_path=state_file, log_level=level
    )
    try:
        config = loader.load()
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    # Commands are one-shot: no startup validation thread
    client = licensekeeper.init(config, JsonFileStateStore(loader.state_file_path))
    ctx.call_on_close(lambda: licensekeeper.dispose(client))
    ctx.obj = client


@cli.command()
@click.argument("license_key")
@click.pass_obj
def activate(client: licensekeeper.LicenseClient, license_key: str) -> None:
    """Activate a license key"""
    result = client.activate_license(license_key)
    if not result.success:
        raise click.ClickException(result.message)
    click.echo(result.message)


@cli.command()
@click.pass_obj
def deactivate(client: licensekeeper.LicenseClient) -> None:
    """Deactivate the current license"""
    result = client.deactivate_license()
    if not result.success:
        raise click.ClickException(result.message)
    click.echo(result.message)


@cli.command()
@click.option("--force", is_flag=True, help="Ignore the validation rate limit")
@click.pass_obj
def validate(client: licensekeeper.LicenseClient, force: bool) -> None:  # noqa: FBT001
    """Re-validate the stored license"""
    if client.validate_license(force=force):
        click.echo("License is valid")
        return
    state = client.get_license_state()
    raise click.ClickException(state.reason or "No valid license")


@cli.command()
@click.pass_obj
def status(client: licensekeeper.LicenseClient) -> None:
    """Show the current license state as JSON"""
    state = client.get_license_state()
    click.echo(
        json.dumps(state.model_dump(mode="json", exclude={"validation_errors"}), indent=2)
    )


@cli.command()
@click.pass_obj
def errors(client: licensekeeper.LicenseClient) -> None:
    """Show recorded errors"""
    entries = client.get_errors()
    if not entries:
        click.echo("No errors recorded")
        return
    for entry in entries:
        click.echo(f"{entry.timestamp.isoformat()} {entry.code}: {entry.message}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8765, type=int, help="Port to bind to")
@click.pass_obj
def serve(client: licensekeeper.LicenseClient, host: str, port: int) -> None:
    """Serve the license commands over local HTTP"""
    import uvicorn  # noqa: PLC0415

    from licensekeeper.api.routes import create_app  # noqa: PLC0415

    client.start()
    uvicorn.run(create_app(client), host=host, port=port)


if __name__ == "__main__":
    cli()
