"""Pipeline data model: stages, stage results, runs and cluster values."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relctl.pipeline.errors import StageError, UndoError

__all__ = [
    "PIPELINE_STAGES",
    "DeploymentManifest",
    "ImageRef",
    "Outcome",
    "PipelineRun",
    "RolloutStatus",
    "SourceTree",
    "Stage",
    "StageResult",
    "StageStatus",
    "TestReport",
]


class Stage(StrEnum):
    CHECKOUT = "checkout"
    BUILD = "build"
    TEST = "test"
    PUBLISH = "publish"
    APPLY = "apply"
    AWAIT_ROLLOUT = "await-rollout"
    ROLLBACK = "rollback"

    @property
    def is_deploying(self) -> bool:
        """True for stages whose failure leaves live changes behind."""
        return self in (Stage.APPLY, Stage.AWAIT_ROLLOUT)


# Fixed execution order. ROLLBACK is only entered from a failure.
PIPELINE_STAGES: tuple[Stage, ...] = (
    Stage.CHECKOUT,
    Stage.BUILD,
    Stage.TEST,
    Stage.PUBLISH,
    Stage.APPLY,
    Stage.AWAIT_ROLLOUT,
)


class StageStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class Outcome(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled-back"


@dataclass(frozen=True, slots=True)
class SourceTree:
    """A checked-out source tree.

    Attributes:
        path: Directory holding the sources (build context root)
        revision: Commit the tree was resolved to
    """

    path: Path
    revision: str

    @property
    def short_revision(self) -> str:
        return self.revision[:12]


@dataclass(frozen=True, slots=True)
class ImageRef:
    """A built container image."""

    reference: str
    digest: str | None = None

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True, slots=True)
class TestReport:
    """Outcome of a test suite run against an image."""

    __test__ = False

    passed: int
    failed: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return f"{self.passed} passed, {self.failed} failed"


@dataclass(frozen=True, slots=True)
class DeploymentManifest:
    """Desired state handed to the cluster backend.

    The controller never looks inside; only cluster backends interpret it.

    Attributes:
        name: Deployment (and service) name
        image: Image reference to run
        replicas: Desired replica count
        env: Environment variable bindings, in declaration order
        port: Container port exposed by the service
        namespace: Target namespace
    """

    name: str
    image: str
    replicas: int = 1
    env: tuple[tuple[str, str], ...] = ()
    port: int = 80
    namespace: str = "default"

    def __post_init__(self) -> None:
        if self.replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {self.replicas}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")


@dataclass(frozen=True, slots=True)
class RolloutStatus:
    """One observation of a rollout's progress."""

    desired_replicas: int
    updated_replicas: int
    available_replicas: int

    def __post_init__(self) -> None:
        for name in ("desired_replicas", "updated_replicas", "available_replicas"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def complete(self) -> bool:
        return self.updated_replicas == self.desired_replicas == self.available_replicas

    def __str__(self) -> str:
        return (
            f"desired={self.desired_replicas} updated={self.updated_replicas} "
            f"available={self.available_replicas}"
        )


@dataclass(frozen=True, slots=True)
class StageResult:
    """Recorded outcome of one executed stage."""

    stage: Stage
    status: StageStatus
    output: str
    started_at: datetime
    ended_at: datetime
    error: StageError | None = None

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "stage": str(self.stage),
            "status": str(self.status),
            "output": self.output,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
        }
        if self.error is not None:
            out["error"] = self.error.message
        return out


def _empty_results() -> list[StageResult]:
    return []


@dataclass(slots=True)
class PipelineRun:
    """One execution of the pipeline.

    Stage results are append-only and kept in execution order. The outcome
    is set exactly once; after that the run no longer changes.

    Attributes:
        id: Unique run identifier
        started_at: When the run was created
        manifest_revision: Revision returned by the cluster on apply
        failure: Error that ended the forward path, if any
        rollback_error: Why rollback failed or could not be attempted
    """

    id: str
    started_at: datetime
    manifest_revision: str | None = None
    failure: StageError | None = None
    rollback_error: UndoError | None = None
    ended_at: datetime | None = None
    _results: list[StageResult] = field(default_factory=_empty_results, repr=False)
    _outcome: Outcome | None = None

    @property
    def stage_results(self) -> tuple[StageResult, ...]:
        return tuple(self._results)

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    @property
    def finished(self) -> bool:
        return self._outcome is not None

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(r.stage for r in self._results)

    def result_for(self, stage: Stage) -> StageResult | None:
        for r in self._results:
            if r.stage == stage:
                return r
        return None

    def record(self, result: StageResult) -> None:
        if self.finished:
            raise RuntimeError(f"run {self.id} is finished; cannot record {result.stage}")
        self._results.append(result)

    def set_revision(self, revision: str) -> None:
        if self.finished:
            raise RuntimeError(f"run {self.id} is finished")
        self.manifest_revision = revision

    def finish(
        self,
        outcome: Outcome,
        *,
        at: datetime,
        failure: StageError | None = None,
        rollback_error: UndoError | None = None,
    ) -> None:
        if self.finished:
            raise RuntimeError(f"run {self.id} already finished as {self._outcome}")
        self.failure = failure
        self.rollback_error = rollback_error
        self.ended_at = at
        self._outcome = outcome

    def to_dict(self) -> dict[str, object]:
        """JSON-serialisable audit record of the run."""
        return {
            "id": self.id,
            "outcome": str(self._outcome) if self._outcome is not None else None,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at is not None else None,
            "manifest_revision": self.manifest_revision,
            "failure": self.failure.message if self.failure is not None else None,
            "rollback_error": (
                self.rollback_error.message if self.rollback_error is not None else None
            ),
            "stages": [r.to_dict() for r in self._results],
        }
