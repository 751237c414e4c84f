"""Run command - execute the release pipeline."""

from __future__ import annotations

import math
from pathlib import Path

import typer

from relctl.backends import build_backends
from relctl.cli.context import build_context
from relctl.core.config import DEFAULT_CONFIG_NAME
from relctl.core.errors import ErrorCode, exit_code_for
from relctl.core.result import Err
from relctl.output.errors import print_run_summary
from relctl.output.progress import ConsoleListener
from relctl.output.report import write_run_report
from relctl.pipeline.controller import PipelineConfig, ReleaseController
from relctl.pipeline.model import Outcome


def run(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_NAME), "--config", "-c", help="Path to relctl.toml"
    ),
    ref: str | None = typer.Option(
        None, "--ref", help="Source ref to release (overrides source.ref)", show_default=False
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Rollout timeout in seconds (overrides rollout.timeout_seconds)",
        show_default=False,
    ),
    report: Path | None = typer.Option(
        None, "--report", help="Write the run's audit trail as JSON", show_default=False
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show output of every stage"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print commands without running them"),
) -> None:
    """Build, test, publish and deploy; roll back if the deploy fails."""
    ctx = build_context(config)
    cfg = ctx.config

    if timeout is not None and (not math.isfinite(timeout) or timeout <= 0):
        ctx.console.error("--timeout must be a finite number > 0")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    pipeline = PipelineConfig(
        source_ref=ref or cfg.source.ref,
        registry_tag=cfg.image.registry_tag,
        manifest=cfg.manifest(),
        backends=build_backends(
            cfg, workdir=ctx.workdir, console=ctx.console, dry_run=dry_run
        ),
        rollout_timeout=timeout if timeout is not None else cfg.rollout.timeout_seconds,
        poll_interval=cfg.rollout.poll_interval_seconds,
    )

    controller = ReleaseController(listener=ConsoleListener(ctx.console, verbose=verbose))
    pipeline_run = controller.run(pipeline)

    print_run_summary(pipeline_run, ctx.console)

    if report is not None:
        written = write_run_report(pipeline_run, report)
        if isinstance(written, Err):
            ctx.console.warning(written.error)
        else:
            ctx.console.print(f"report: {written.value}")

    outcome = pipeline_run.outcome or Outcome.FAILED
    code = exit_code_for(outcome)
    if not code.is_success:
        raise typer.Exit(code=int(code))
