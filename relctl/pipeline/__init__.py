"""Release pipeline: data model, error taxonomy, backend contracts, controller."""

from .backends import (
    Backends,
    BuildBackend,
    ClusterBackend,
    PublishBackend,
    SourceBackend,
    TestBackend,
)
from .controller import NullListener, PipelineConfig, ReleaseController, RunListener
from .errors import (
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
from .model import (
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
    TestReport,
)

__all__ = [
    # backends
    "Backends",
    "BuildBackend",
    "ClusterBackend",
    "PublishBackend",
    "SourceBackend",
    "TestBackend",
    # controller
    "NullListener",
    "PipelineConfig",
    "ReleaseController",
    "RunListener",
    # errors
    "ApplyError",
    "BuildError",
    "CheckoutError",
    "PublishError",
    "RolloutFailedError",
    "RolloutTimeoutError",
    "StageError",
    "TestError",
    "UndoError",
    # model
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
