"""Manifest command - print the rendered Kubernetes objects."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from relctl.backends.kubectl import render_manifest
from relctl.cli.context import build_context
from relctl.core.config import DEFAULT_CONFIG_NAME


def manifest(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_NAME), "--config", "-c", help="Path to relctl.toml"
    ),
) -> None:
    """Print the Deployment and Service that `run` would apply, as JSON."""
    ctx = build_context(config)
    typer.echo(json.dumps(render_manifest(ctx.config.manifest()), indent=2))
