"""latticeflow command-line interface."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from typing import Any

import click

from latticeflow import __version__


@click.group()
@click.version_option(__version__, prog_name="latticeflow")
def cli() -> None:
    """Reconcile Gateway API intent onto a managed application network."""


@cli.command()
def run() -> None:
    """Start the controllers and the health server."""
    from latticeflow.app import main

    asyncio.run(main())


@cli.command("hash")
@click.argument("file", type=click.File("r"))
def hash_(file: Any) -> None:
    """Print the content-addressed id of the JSON document in FILE ('-' for stdin)."""
    from latticeflow.stack import id_from_hash

    try:
        doc = json.load(file)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{file.name}: invalid JSON: {exc}") from exc
    click.echo(id_from_hash(doc))


@cli.command("config")
def show_config() -> None:
    """Print the configuration resolved from LATTICEFLOW_* variables."""
    from latticeflow.config import load_config

    try:
        cfg = load_config()
    except ValueError as exc:
        click.echo(f"error: {exc}", err=True)
        sys.exit(2)
    click.echo(json.dumps(dataclasses.asdict(cfg), indent=2, sort_keys=True))
