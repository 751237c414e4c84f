"""Exit codes for the relctl command line.

Each terminal pipeline outcome maps to a stable process exit code so CI
jobs wrapping `relctl run` can tell a clean failure from a rollback.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relctl.pipeline.model import Outcome

__all__ = ["ErrorCode", "exit_code_for"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (pipeline succeeded)
    - 1: User error (bad input, invalid arguments)
    - 2: Environment error (config missing or invalid)
    - 3: Pipeline failed (nothing deployed, or rollback impossible/failed)
    - 4: Pipeline rolled back (deploy failed, previous state restored)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    PIPELINE_FAILED = 3
    ROLLED_BACK = 4

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK


def exit_code_for(outcome: Outcome) -> ErrorCode:
    """Map a terminal pipeline outcome to its exit code."""
    from relctl.pipeline.model import Outcome

    match outcome:
        case Outcome.SUCCEEDED:
            return ErrorCode.OK
        case Outcome.ROLLED_BACK:
            return ErrorCode.ROLLED_BACK
        case Outcome.FAILED:
            return ErrorCode.PIPELINE_FAILED
