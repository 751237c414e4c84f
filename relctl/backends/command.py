"""Shared command execution for the command-line backends."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path

from relctl.core.result import Ok, Result
from relctl.output.console import ConsoleProtocol, Style
from relctl.platform.process import ProcessError
from relctl.platform.process import run as run_process

__all__ = ["CommandRunner"]


@dataclass(frozen=True, slots=True)
class CommandRunner:
    """Echoes each command, then runs it unless in dry-run mode.

    In dry-run mode every command succeeds with empty output; backends
    substitute synthetic results where they would parse that output.
    """

    console: ConsoleProtocol
    dry_run: bool = False

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        input: str | None = None,
    ) -> Result[str, ProcessError]:
        self.console.print(f"$ {shlex.join(cmd)}", Style.DIM)
        if self.dry_run:
            return Ok("")
        return run_process(cmd, cwd=cwd, input=input, timeout=timeout)
