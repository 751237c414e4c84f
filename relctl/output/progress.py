"""Console reporting of pipeline progress."""

from __future__ import annotations

from dataclasses import dataclass

from relctl.pipeline.model import PipelineRun, Stage, StageResult

from .console import ConsoleProtocol, Style
from .errors import describe_error

__all__ = ["ConsoleListener"]


@dataclass(frozen=True, slots=True)
class ConsoleListener:
    """RunListener that prints each stage as it starts and ends.

    Args:
        console: Output target
        verbose: Also print the captured output of successful stages
    """

    console: ConsoleProtocol
    verbose: bool = False

    def stage_started(self, run: PipelineRun, stage: Stage) -> None:
        self.console.header(f"[{run.id}] {stage}")

    def stage_finished(self, run: PipelineRun, result: StageResult) -> None:
        if result.ok:
            first_line = result.output.splitlines()[0] if result.output else ""
            self.console.success(f"{result.stage} ({result.duration_seconds:.1f}s) {first_line}")
            if self.verbose and result.output:
                self.console.print(result.output, Style.DIM)
            return

        if result.error is not None:
            self.console.error(f"{result.stage}: {describe_error(result.error)}")
        else:
            self.console.error(f"{result.stage} failed")
        if result.output:
            self.console.print(result.output, Style.DIM)

    def run_finished(self, run: PipelineRun) -> None:
        pass
