"""Error presentation.

Centralized formatting of stage errors and outcome summaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relctl.pipeline.errors import (
    ApplyError,
    BuildError,
    CheckoutError,
    PublishError,
    RolloutFailedError,
    RolloutTimeoutError,
    StageError,
    TestError,
    UndoError,
)
from relctl.pipeline.model import Outcome, PipelineRun

from .console import Style

if TYPE_CHECKING:
    from .console import ConsoleProtocol

__all__ = ["describe_error", "print_run_summary"]


def describe_error(error: StageError) -> str:
    """One-line description of a stage error."""
    match error:
        case TestError(message=message, passed=passed, failed=failed) if passed or failed:
            return f"{message} ({passed} passed, {failed} failed)"
        case ApplyError(message=message, revision=revision) if revision is not None:
            return f"{message} (partially applied as {revision})"
        case RolloutTimeoutError(message=message, cancelled=True):
            return message
        case RolloutTimeoutError(message=message, last_status=status) if status is not None:
            return f"{message}; last seen {status}"
        case UndoError(message=message, revision=revision) if revision is not None:
            return f"{message} [{revision}]"
        case (
            CheckoutError(message=message)
            | BuildError(message=message)
            | TestError(message=message)
            | PublishError(message=message)
            | ApplyError(message=message)
            | RolloutTimeoutError(message=message)
            | RolloutFailedError(message=message)
            | UndoError(message=message)
        ):
            return message


def print_run_summary(run: PipelineRun, console: ConsoleProtocol) -> None:
    """Print the outcome and the ordered stage trail of a finished run."""
    console.header(f"run {run.id}: {run.outcome}")
    for result in run.stage_results:
        mark = "ok" if result.ok else "FAILED"
        style = Style.DEFAULT if result.ok else Style.ERROR
        console.print(f"  {result.stage:<14} {mark:<7} {result.duration_seconds:.1f}s", style)

    if run.manifest_revision is not None:
        console.print(f"revision: {run.manifest_revision}", Style.DIM)

    match run.outcome:
        case Outcome.SUCCEEDED:
            console.success("release deployed")
        case Outcome.ROLLED_BACK:
            if run.failure is not None:
                console.error(f"{run.failure.stage}: {describe_error(run.failure)}")
            console.warning(f"rolled back {run.manifest_revision}")
        case Outcome.FAILED:
            if run.failure is not None:
                console.error(f"{run.failure.stage}: {describe_error(run.failure)}")
            if run.rollback_error is not None:
                console.error(f"rollback: {describe_error(run.rollback_error)}")
                console.print(
                    "hint: the cluster may be left in a partially deployed state", Style.DIM
                )
        case None:
            console.warning("run did not finish")
