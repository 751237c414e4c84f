from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer

from relctl.cli.context import CLIContext
from relctl.core.config import Config
from relctl.core.errors import ErrorCode
from relctl.core.result import Err, Ok
from relctl.output.console import MockConsole
from relctl.pipeline.errors import UndoError
from relctl.test.fakes import PENDING, FakeBackends, failing_build


def _ctx(tmp_path: Path, console: MockConsole) -> CLIContext:
    config = Config.from_dict(
        {
            "image": {
                "name": "laravel",
                "registry_tag": "registry.example.com/laravel:1.4.0",
                "test_command": ["php", "artisan", "test"],
            },
            "deploy": {"name": "laravel-app", "replicas": 3},
            "source": {"ref": "main"},
            "rollout": {"timeout_seconds": 0.05, "poll_interval_seconds": 0.01},
        },
        base_dir=tmp_path,
    )
    return CLIContext(config=config, config_path=tmp_path / "relctl.toml", console=console)


def _invoke(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    fakes: FakeBackends,
    *,
    ref: str | None = None,
    timeout: float | None = None,
    report: Path | None = None,
    dry_run: bool = False,
) -> MockConsole:
    import relctl.cli.commands.run_cmd as run_cmd

    console = MockConsole()
    wiring: list[bool] = []

    def fake_build_backends(config: Config, *, workdir: Path, console: object, dry_run: bool):
        del config, console
        assert workdir == tmp_path
        wiring.append(dry_run)
        return fakes.bundle()

    monkeypatch.setattr(run_cmd, "build_context", lambda config: _ctx(tmp_path, console))
    monkeypatch.setattr(run_cmd, "build_backends", fake_build_backends)

    run_cmd.run(
        config=tmp_path / "relctl.toml",
        ref=ref,
        timeout=timeout,
        report=report,
        verbose=False,
        dry_run=dry_run,
    )
    assert wiring == [dry_run]
    return console


def test_success_exits_zero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fakes = FakeBackends()

    console = _invoke(monkeypatch, tmp_path, fakes)

    assert console.find("release deployed")
    assert fakes.called("checkout") == ["checkout main"]
    assert fakes.called("push") == [
        "push laravel:4f2a9c1e8b7d registry.example.com/laravel:1.4.0"
    ]


def test_ref_overrides_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fakes = FakeBackends()

    _invoke(monkeypatch, tmp_path, fakes, ref="v1.4.0")

    assert fakes.called("checkout") == ["checkout v1.4.0"]


def test_pipeline_failure_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fakes = FakeBackends()
    fakes.build.result = failing_build()

    with pytest.raises(typer.Exit) as exc:
        _invoke(monkeypatch, tmp_path, fakes)

    assert exc.value.exit_code == int(ErrorCode.PIPELINE_FAILED)


def test_rollback_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fakes = FakeBackends()
    fakes.cluster.statuses = [Ok(PENDING)]

    with pytest.raises(typer.Exit) as exc:
        _invoke(monkeypatch, tmp_path, fakes)

    assert exc.value.exit_code == int(ErrorCode.ROLLED_BACK)
    assert fakes.cluster.undo_calls == ["rev-42"]


def test_failed_rollback_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fakes = FakeBackends()
    fakes.cluster.statuses = [Ok(PENDING)]
    fakes.cluster.undo_result = Err(UndoError(message="forbidden", revision="rev-42"))

    with pytest.raises(typer.Exit) as exc:
        _invoke(monkeypatch, tmp_path, fakes)

    assert exc.value.exit_code == int(ErrorCode.PIPELINE_FAILED)


@pytest.mark.parametrize("timeout", [0.0, float("nan"), float("inf")])
def test_invalid_timeout(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, timeout: float
) -> None:
    import relctl.cli.commands.run_cmd as run_cmd

    console = MockConsole()
    monkeypatch.setattr(run_cmd, "build_context", lambda config: _ctx(tmp_path, console))

    with pytest.raises(typer.Exit) as exc:
        run_cmd.run(
            config=tmp_path / "relctl.toml",
            ref=None,
            timeout=timeout,
            report=None,
            verbose=False,
            dry_run=False,
        )

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert console.find("--timeout must be a finite number > 0")


def test_writes_report(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    report = tmp_path / "out" / "run.json"

    console = _invoke(monkeypatch, tmp_path, FakeBackends(), report=report)

    data = json.loads(report.read_text(encoding="utf-8"))
    assert data["outcome"] == "succeeded"
    assert console.find(f"report: {report}")


def test_dry_run_is_passed_to_backends(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _invoke(monkeypatch, tmp_path, FakeBackends(), dry_run=True)
