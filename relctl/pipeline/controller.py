"""Release controller: the pipeline state machine.

Runs Checkout -> Build -> Test -> Publish -> Apply -> AwaitRollout strictly
in order. Each stage is one handler producing a `Result`; the first `Err`
ends the forward path. Failures before Apply end the run as FAILED. Failures
from Apply onward go through the single compensation path, which undoes the
applied revision at most once and ends the run as ROLLED_BACK (or FAILED if
the undo is impossible or fails itself).

Usage:
    controller = ReleaseController()
    run = controller.run(PipelineConfig(
        source_ref="main",
        registry_tag="registry.example.com/app:1.4.0",
        manifest=manifest,
        backends=backends,
    ))
    print(run.outcome, [r.stage for r in run.stage_results])
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from relctl.core.result import Err, Ok, Result
from relctl.pipeline.backends import Backends
from relctl.pipeline.errors import (
    RolloutTimeoutError,
    StageError,
    TestError,
    UndoError,
)
from relctl.pipeline.model import (
    PIPELINE_STAGES,
    DeploymentManifest,
    ImageRef,
    Outcome,
    PipelineRun,
    RolloutStatus,
    SourceTree,
    Stage,
    StageResult,
    StageStatus,
)

__all__ = [
    "NullListener",
    "PipelineConfig",
    "ReleaseController",
    "RunListener",
]

DEFAULT_ROLLOUT_TIMEOUT_SECONDS = 300.0
DEFAULT_POLL_INTERVAL_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Everything one run needs.

    `stages` must be a non-empty prefix of PIPELINE_STAGES. A run may stop
    after Test or Publish (CI-only), but never right after Apply: an applied
    change is always watched.
    """

    source_ref: str
    registry_tag: str
    manifest: DeploymentManifest
    backends: Backends
    stages: tuple[Stage, ...] = PIPELINE_STAGES
    rollout_timeout: float = DEFAULT_ROLLOUT_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        n = len(self.stages)
        if n == 0 or tuple(self.stages) != PIPELINE_STAGES[:n]:
            expected = ", ".join(str(s) for s in PIPELINE_STAGES)
            raise ValueError(f"stages must be a prefix of: {expected}")
        if self.stages[-1] == Stage.APPLY:
            raise ValueError("apply must be followed by await-rollout")
        if not math.isfinite(self.rollout_timeout) or self.rollout_timeout <= 0:
            raise ValueError(f"rollout_timeout must be finite and > 0, got {self.rollout_timeout}")
        if not math.isfinite(self.poll_interval) or self.poll_interval < 0:
            raise ValueError(f"poll_interval must be finite and >= 0, got {self.poll_interval}")


class RunListener(Protocol):
    """Observer for run progress (the controller itself prints nothing)."""

    def stage_started(self, run: PipelineRun, stage: Stage) -> None: ...

    def stage_finished(self, run: PipelineRun, result: StageResult) -> None: ...

    def run_finished(self, run: PipelineRun) -> None: ...


class NullListener:
    def stage_started(self, run: PipelineRun, stage: Stage) -> None:
        pass

    def stage_finished(self, run: PipelineRun, result: StageResult) -> None:
        pass

    def run_finished(self, run: PipelineRun) -> None:
        pass


@dataclass(slots=True)
class _RunContext:
    """Values handed from one stage to the next within a single run."""

    run: PipelineRun
    config: PipelineConfig
    cancel: threading.Event | None
    source: SourceTree | None = None
    image: ImageRef | None = None
    tested: bool = False
    revision: str | None = None
    rollback: Result[str, StageError] | None = None

    @property
    def backends(self) -> Backends:
        return self.config.backends

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


StageHandler = Callable[[_RunContext], Result[str, StageError]]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_run_id() -> str:
    return f"run-{uuid4().hex[:12]}"


class ReleaseController:
    """Sequences pipeline stages and enforces rollback on deploy failure.

    The controller holds no per-run state, so one instance can serve
    concurrent runs from several threads.

    Args:
        clock: Wall-clock source for stage timestamps
        monotonic: Clock used for the rollout deadline
        sleep: Pause between rollout polls when no cancel event is given
        listener: Progress observer
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        listener: RunListener | None = None,
    ) -> None:
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._listener: RunListener = listener or NullListener()
        self._handlers: Mapping[Stage, StageHandler] = {
            Stage.CHECKOUT: self._checkout,
            Stage.BUILD: self._build,
            Stage.TEST: self._test,
            Stage.PUBLISH: self._publish,
            Stage.APPLY: self._apply,
            Stage.AWAIT_ROLLOUT: self._await_rollout,
        }

    def run(
        self,
        config: PipelineConfig,
        *,
        cancel: threading.Event | None = None,
    ) -> PipelineRun:
        """Execute one complete pipeline run.

        Always returns a new, finished PipelineRun. Backend failures never
        escape as exceptions; they are recorded in the run.
        """
        run = PipelineRun(id=new_run_id(), started_at=self._clock())
        ctx = _RunContext(run=run, config=config, cancel=cancel)

        failure: StageError | None = None
        with self._compensation(ctx):
            for stage in config.stages:
                outcome = self._execute(ctx, stage, self._handlers[stage])
                if isinstance(outcome, Err):
                    failure = outcome.error
                    break

        if failure is None:
            run.finish(Outcome.SUCCEEDED, at=self._clock())
        elif failure.stage.is_deploying:
            self._finish_compensated(ctx, failure)
        else:
            run.finish(Outcome.FAILED, at=self._clock(), failure=failure)

        self._listener.run_finished(run)
        return run

    # -- bookkeeping ---------------------------------------------------------

    def _execute(
        self,
        ctx: _RunContext,
        stage: Stage,
        handler: StageHandler,
    ) -> Result[str, StageError]:
        self._listener.stage_started(ctx.run, stage)
        started = self._clock()
        try:
            outcome = handler(ctx)
        except BaseException as exc:
            self._record(
                ctx,
                StageResult(
                    stage=stage,
                    status=StageStatus.FAILURE,
                    output=_interrupted(exc),
                    started_at=started,
                    ended_at=self._clock(),
                ),
            )
            raise
        ended = self._clock()

        match outcome:
            case Ok(output):
                result = StageResult(
                    stage=stage,
                    status=StageStatus.SUCCESS,
                    output=output,
                    started_at=started,
                    ended_at=ended,
                )
            case Err(error):
                result = StageResult(
                    stage=stage,
                    status=StageStatus.FAILURE,
                    output=error.output,
                    started_at=started,
                    ended_at=ended,
                    error=error,
                )

        self._record(ctx, result)
        return outcome

    def _record(self, ctx: _RunContext, result: StageResult) -> None:
        ctx.run.record(result)
        self._listener.stage_finished(ctx.run, result)

    # -- compensation --------------------------------------------------------

    @contextmanager
    def _compensation(self, ctx: _RunContext) -> Iterator[None]:
        """Undo an applied revision if the forward path is interrupted.

        Covers exits that are not stage failures (KeyboardInterrupt, a
        backend raising). The run is finished before the exception
        propagates.
        """
        try:
            yield
        except BaseException:
            run = ctx.run
            if ctx.revision is None:
                run.finish(Outcome.FAILED, at=self._clock())
            else:
                match self._rollback(ctx):
                    case Ok(_):
                        run.finish(Outcome.ROLLED_BACK, at=self._clock())
                    case Err(undo_error):
                        run.finish(
                            Outcome.FAILED,
                            at=self._clock(),
                            rollback_error=_as_undo_error(undo_error, ctx.revision),
                        )
            self._listener.run_finished(run)
            raise

    def _rollback(self, ctx: _RunContext) -> Result[str, StageError]:
        """Run the Rollback stage once; later calls return the first result."""
        if ctx.rollback is None:
            ctx.rollback = self._execute(ctx, Stage.ROLLBACK, self._undo)
        return ctx.rollback

    def _finish_compensated(self, ctx: _RunContext, failure: StageError) -> None:
        run = ctx.run
        if ctx.revision is None:
            run.finish(
                Outcome.FAILED,
                at=self._clock(),
                failure=failure,
                rollback_error=UndoError(
                    message="rollback not attempted: apply recorded no revision to undo",
                ),
            )
            return

        match self._rollback(ctx):
            case Ok(_):
                run.finish(Outcome.ROLLED_BACK, at=self._clock(), failure=failure)
            case Err(undo_error):
                run.finish(
                    Outcome.FAILED,
                    at=self._clock(),
                    failure=failure,
                    rollback_error=_as_undo_error(undo_error, ctx.revision),
                )

    # -- stage handlers ------------------------------------------------------

    def _checkout(self, ctx: _RunContext) -> Result[str, StageError]:
        result = ctx.backends.source.checkout(ctx.config.source_ref)
        if isinstance(result, Err):
            return result
        ctx.source = result.value
        return Ok(f"{ctx.config.source_ref} -> {result.value.revision} ({result.value.path})")

    def _build(self, ctx: _RunContext) -> Result[str, StageError]:
        if ctx.source is None:
            raise RuntimeError("build requires a checked-out source tree")
        result = ctx.backends.build.build(ctx.source)
        if isinstance(result, Err):
            return result
        ctx.image = result.value
        image = result.value
        if image.digest:
            return Ok(f"{image.reference} ({image.digest})")
        return Ok(image.reference)

    def _test(self, ctx: _RunContext) -> Result[str, StageError]:
        if ctx.image is None:
            raise RuntimeError("test requires a built image")
        result = ctx.backends.test.test(ctx.image)
        if isinstance(result, Err):
            return result
        report = result.value
        if not report.succeeded:
            return Err(
                TestError(
                    message=f"tests failed: {report.summary()}",
                    output=report.output,
                    passed=report.passed,
                    failed=report.failed,
                )
            )
        ctx.tested = True
        return Ok(f"{report.summary()}\n{report.output}".rstrip())

    def _publish(self, ctx: _RunContext) -> Result[str, StageError]:
        if ctx.image is None or not ctx.tested:
            raise RuntimeError("publish requires an image that passed its tests")
        result = ctx.backends.publish.push(ctx.image, ctx.config.registry_tag)
        if isinstance(result, Err):
            return result
        return Ok(f"pushed {ctx.image.reference} as {ctx.config.registry_tag}")

    def _apply(self, ctx: _RunContext) -> Result[str, StageError]:
        result = ctx.backends.cluster.apply(ctx.config.manifest)
        if isinstance(result, Err):
            if result.error.revision is not None:
                self._remember_revision(ctx, result.error.revision)
            return result
        self._remember_revision(ctx, result.value)
        return Ok(f"applied {ctx.config.manifest.name} as revision {result.value}")

    def _await_rollout(self, ctx: _RunContext) -> Result[str, StageError]:
        revision = ctx.revision
        if revision is None:
            raise RuntimeError("await-rollout requires an applied revision")

        timeout = ctx.config.rollout_timeout
        deadline = self._monotonic() + timeout
        polls = 0
        last: RolloutStatus | None = None

        while True:
            if ctx.cancelled:
                return Err(_cancelled(revision, last))

            status = ctx.backends.cluster.rollout_status(revision)
            polls += 1
            if isinstance(status, Err):
                return status
            last = status.value
            if last.complete:
                return Ok(f"rollout of {revision} complete ({last}) after {polls} poll(s)")

            remaining = deadline - self._monotonic()
            if remaining <= 0:
                return Err(
                    RolloutTimeoutError(
                        message=f"rollout of {revision} not complete after {timeout:g}s ({last})",
                        revision=revision,
                        last_status=last,
                    )
                )
            if self._wait(ctx, min(ctx.config.poll_interval, remaining)):
                return Err(_cancelled(revision, last))

    def _undo(self, ctx: _RunContext) -> Result[str, StageError]:
        revision = ctx.revision
        if revision is None:
            raise RuntimeError("rollback requires an applied revision")
        result = ctx.backends.cluster.undo(revision)
        if isinstance(result, Err):
            return result
        return Ok(f"reverted revision {revision}")

    # -- helpers -------------------------------------------------------------

    def _remember_revision(self, ctx: _RunContext, revision: str) -> None:
        ctx.revision = revision
        ctx.run.set_revision(revision)

    def _wait(self, ctx: _RunContext, seconds: float) -> bool:
        """Pause between polls. Returns True if the run was cancelled."""
        if ctx.cancel is not None:
            return ctx.cancel.wait(seconds)
        self._sleep(seconds)
        return False


def _interrupted(exc: BaseException) -> str:
    detail = str(exc)
    if detail:
        return f"interrupted by {type(exc).__name__}: {detail}"
    return f"interrupted by {type(exc).__name__}"


def _as_undo_error(error: StageError, revision: str) -> UndoError:
    if isinstance(error, UndoError):
        return error
    return UndoError(message=error.message, output=error.output, revision=revision)


def _cancelled(revision: str, last: RolloutStatus | None) -> RolloutTimeoutError:
    return RolloutTimeoutError(
        message=f"rollout wait for {revision} cancelled",
        revision=revision,
        last_status=last,
        cancelled=True,
    )
