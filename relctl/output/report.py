"""JSON audit reports of pipeline runs."""

from __future__ import annotations

import json
from pathlib import Path

from relctl.core.result import Err, Ok, Result
from relctl.pipeline.model import PipelineRun

__all__ = ["render_run_report", "write_run_report"]


def render_run_report(run: PipelineRun) -> str:
    return json.dumps(run.to_dict(), indent=2) + "\n"


def write_run_report(run: PipelineRun, path: Path) -> Result[Path, str]:
    """Write the run's audit trail as JSON, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_run_report(run), encoding="utf-8")
    except OSError as e:
        return Err(f"cannot write report {path}: {e}")
    return Ok(path)
