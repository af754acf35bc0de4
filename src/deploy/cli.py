from __future__ import annotations

import json
from typing import Optional

import click

from common.env import getenv
from common.log import configure_logging
from probe.traffic import TrafficProbe
from state.models import SlotAssignment
from state.store import LoadStatus

from .handler import ENV_LOG_LEVEL, RunConfig, build_store, run_once


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to $LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]) -> None:
    """Blue-green slot rotation."""
    configure_logging(log_level or getenv(ENV_LOG_LEVEL, "INFO"))


@cli.command()
@click.argument("version", type=int)
@click.option("--backend", type=click.Choice(["ssm", "s3", "memory"]), default=None, help="Override $STATE_BACKEND")
@click.option("--dry-run", is_flag=True, help="Compute and print the rotation without saving it")
def deploy(version: int, backend: Optional[str], dry_run: bool) -> None:
    """Rotate to VERSION and persist the new state."""
    # RotationError is a RuntimeError, as are configuration errors
    try:
        config = RunConfig.from_env()
        if backend:
            config.backend = backend
        result = run_once(version, config=config, dry_run=dry_run)
    except RuntimeError as ex:
        raise click.ClickException(str(ex)) from ex
    _echo_json(result)


@cli.command()
@click.option("--backend", type=click.Choice(["ssm", "s3", "memory"]), default=None, help="Override $STATE_BACKEND")
def show(backend: Optional[str]) -> None:
    """Print the stored rotation state and slot assignment."""
    try:
        config = RunConfig.from_env()
        store = build_store(backend or config.backend, timeout=config.timeout)
        result = store.get()
    except RuntimeError as ex:
        raise click.ClickException(str(ex)) from ex
    if result.status is not LoadStatus.FOUND or result.state is None:
        click.echo("No rotation state stored")
        return
    _echo_json(
        {
            "state": result.state.model_dump(by_alias=True, mode="json"),
            "assignment": SlotAssignment.from_state(result.state).as_dict(),
            "token": result.token,
        }
    )


@cli.command()
@click.argument("host")
@click.option("--count", type=int, default=None, help="Stop after this many requests")
@click.option("--interval", type=float, default=1.0, show_default=True, help="Seconds between requests")
def probe(host: str, count: Optional[int], interval: float) -> None:
    """Poll HOST and tally which service:version answers."""
    with TrafficProbe(host, interval=interval) as tp:
        try:
            tp.run(count, emit=click.echo)
        except KeyboardInterrupt:
            click.echo(tp.report())


if __name__ == "__main__":  # pragma: no cover
    cli()
