"""Contracts for the external systems the controller drives.

The controller only sequences calls; compiling, pushing and mutating the
cluster all happen behind these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from relctl.core.result import Result
from relctl.pipeline.errors import (
    ApplyError,
    BuildError,
    CheckoutError,
    PublishError,
    RolloutFailedError,
    TestError,
    UndoError,
)
from relctl.pipeline.model import (
    DeploymentManifest,
    ImageRef,
    RolloutStatus,
    SourceTree,
    TestReport,
)

__all__ = [
    "Backends",
    "BuildBackend",
    "ClusterBackend",
    "PublishBackend",
    "SourceBackend",
    "TestBackend",
]


class SourceBackend(Protocol):
    def checkout(self, source_ref: str) -> Result[SourceTree, CheckoutError]:
        """Resolve `source_ref` to a concrete source tree."""
        ...


class BuildBackend(Protocol):
    def build(self, source: SourceTree) -> Result[ImageRef, BuildError]:
        """Build and tag a container image from the source tree."""
        ...


class TestBackend(Protocol):
    def test(self, image: ImageRef) -> Result[TestReport, TestError]:
        """Run the test suite against the built image."""
        ...


class PublishBackend(Protocol):
    def push(self, image: ImageRef, registry_tag: str) -> Result[None, PublishError]:
        """Upload the image to a registry under `registry_tag`."""
        ...


class ClusterBackend(Protocol):
    def apply(self, manifest: DeploymentManifest) -> Result[str, ApplyError]:
        """Submit desired state; returns the revision id used for undo."""
        ...

    def rollout_status(self, revision: str) -> Result[RolloutStatus, RolloutFailedError]:
        """Report current progress of the rollout of `revision`."""
        ...

    def undo(self, revision: str) -> Result[None, UndoError]:
        """Revert to the desired state that preceded `revision`."""
        ...


@dataclass(frozen=True, slots=True)
class Backends:
    """Handles to every backend one run needs."""

    source: SourceBackend
    build: BuildBackend
    test: TestBackend
    publish: PublishBackend
    cluster: ClusterBackend
