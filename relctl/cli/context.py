from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from relctl.core.config import Config, load_config
from relctl.core.errors import ErrorCode
from relctl.core.result import Err
from relctl.output.console import ConsoleProtocol, RichConsole, Style


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: Config
    config_path: Path
    console: ConsoleProtocol

    @property
    def workdir(self) -> Path:
        """Directory holding the config file; commands run from here."""
        return self.config_path.parent


def build_context(config_path: Path) -> CLIContext:
    console = RichConsole()
    try:
        path = config_path.expanduser().resolve()
    except OSError as e:
        console.error(f"invalid --config: {e}")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    result = load_config(path)
    if isinstance(result, Err):
        console.error(result.error.message)
        console.print("hint: pass --config or create relctl.toml", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(config=result.value, config_path=path, console=console)
