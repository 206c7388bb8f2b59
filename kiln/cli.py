"""Command-line interface for Kiln.

This module defines the CLI commands using Click framework.

Commands:
- init: Write a default kiln.yaml into the current directory.
- build: Build the site described by kiln.yaml.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__
from .config import DEFAULT_CONFIG_FILE, DEFAULT_PROFILE, load_config, write_default_config
from .errors import ConfigError
from .log import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="kiln")
def cli():
    """Kiln static site asset pipeline."""


@cli.command()
def init():
    """Write a default kiln.yaml."""
    try:
        config_path = write_default_config(Path.cwd())
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(f"Created {config_path.name}")


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the configuration file",
)
@click.option("--profile", default=DEFAULT_PROFILE, show_default=True, help="Profile to build")
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=None, help="Worker threads per pass")
@click.option("--no-clean", is_flag=True, help="Keep existing files in the target directory")
@click.option("--verbose", "-v", count=True, help="Log more (-v for progress, -vv for debug)")
def build(config_path: Path, profile: str, jobs: int | None, no_clean: bool, verbose: int):
    """Build the site into the target directory."""
    setup_logging(_verbosity_level(verbose))
    from .build import build_site

    try:
        site = load_config(config_path).resolve(profile)
        result = build_site(site, jobs=jobs, clean_output=not no_clean)
    except ConfigError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)
        raise SystemExit(1) from None

    for error in result.errors:
        click.echo(click.style(f"  File: {error.source_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {error.message}", fg="white"), err=True)
    click.echo(
        f"Built {result.succeeded} assets into {result.output_dir} ({result.failed} errors)"
    )
    if result.errors:
        raise SystemExit(1)


def _verbosity_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def main():
    """Entry point for the CLI."""
    cli()
