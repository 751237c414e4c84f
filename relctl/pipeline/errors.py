"""Stage error taxonomy.

Every backend failure is one of these values. Each carries the stage it
belongs to, a human-readable message and whatever output the backend
captured.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from relctl.pipeline.model import RolloutStatus, Stage


@dataclass(frozen=True, slots=True)
class CheckoutError:
    stage: ClassVar[Stage] = Stage.CHECKOUT

    message: str
    output: str = ""


@dataclass(frozen=True, slots=True)
class BuildError:
    stage: ClassVar[Stage] = Stage.BUILD

    message: str
    output: str = ""


@dataclass(frozen=True, slots=True)
class TestError:
    __test__ = False
    stage: ClassVar[Stage] = Stage.TEST

    message: str
    output: str = ""
    passed: int = 0
    failed: int = 0


@dataclass(frozen=True, slots=True)
class PublishError:
    stage: ClassVar[Stage] = Stage.PUBLISH

    message: str
    output: str = ""


@dataclass(frozen=True, slots=True)
class ApplyError:
    """Apply failed.

    `revision` is set when the cluster accepted part of the change before
    failing, so there is something to undo.
    """

    stage: ClassVar[Stage] = Stage.APPLY

    message: str
    output: str = ""
    revision: str | None = None


@dataclass(frozen=True, slots=True)
class RolloutTimeoutError:
    """The rollout did not complete before the deadline (or was cancelled)."""

    stage: ClassVar[Stage] = Stage.AWAIT_ROLLOUT

    message: str
    revision: str
    last_status: RolloutStatus | None = None
    cancelled: bool = False
    output: str = ""


@dataclass(frozen=True, slots=True)
class RolloutFailedError:
    """Querying rollout status failed, or the cluster gave up on the rollout."""

    stage: ClassVar[Stage] = Stage.AWAIT_ROLLOUT

    message: str
    revision: str
    output: str = ""


@dataclass(frozen=True, slots=True)
class UndoError:
    stage: ClassVar[Stage] = Stage.ROLLBACK

    message: str
    revision: str | None = None
    output: str = ""


StageError = (
    CheckoutError
    | BuildError
    | TestError
    | PublishError
    | ApplyError
    | RolloutTimeoutError
    | RolloutFailedError
    | UndoError
)
