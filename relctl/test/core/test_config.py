"""Tests for relctl.core.config module."""

from __future__ import annotations

from pathlib import Path

import pytest

from relctl.core.config import (
    Config,
    ConfigError,
    DeployConfig,
    ImageConfig,
    RolloutConfig,
    SourceConfig,
    load_config,
)
from relctl.core.result import Err, Ok

FULL_CONFIG = """
[source]
path = "app"
repo = "https://example.com/laravel.git"
ref = "main"

[image]
name = "laravel"
registry_tag = "registry.example.com/laravel:1.4.0"
dockerfile = "docker/Dockerfile"
test_command = ["php", "artisan", "test"]

[image.build_args]
user = "ubuntu"
uid = 1000

[deploy]
name = "laravel-app"
namespace = "shop"
replicas = 3
port = 8080
kube_context = "staging"

[deploy.env]
DB_DATABASE = "laravel"
DB_USERNAME = "ubuntu"

[rollout]
timeout_seconds = 120
poll_interval_seconds = 2.5
"""

MINIMAL = {"image": {"name": "web", "test_command": ["pytest"]}}


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "relctl.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_source_defaults(self) -> None:
        source = SourceConfig()
        assert source.path == Path(".")
        assert source.repo is None
        assert source.ref == "HEAD"

    def test_rollout_defaults(self) -> None:
        rollout = RolloutConfig()
        assert rollout.timeout_seconds == 300.0
        assert rollout.poll_interval_seconds == 5.0

    def test_frozen(self) -> None:
        config = DeployConfig(name="web")
        with pytest.raises(AttributeError):
            config.replicas = 5  # type: ignore[misc]


class TestFromDict:
    def test_minimal(self, tmp_path: Path) -> None:
        config = Config.from_dict(MINIMAL, base_dir=tmp_path)

        assert config.image == ImageConfig(
            name="web",
            registry_tag="web:latest",
            test_command=("pytest",),
        )
        assert config.deploy.name == "web"
        assert config.deploy.replicas == 1
        assert config.deploy.port == 80
        assert config.source.path == tmp_path / "."
        assert config.source.ref == "HEAD"

    def test_absolute_source_path_kept(self, tmp_path: Path) -> None:
        data = {**MINIMAL, "source": {"path": str(tmp_path / "src")}}
        config = Config.from_dict(data, base_dir=Path("/elsewhere"))
        assert config.source.path == tmp_path / "src"

    @pytest.mark.parametrize(
        ("data", "match"),
        [
            ({"image": {"test_command": ["pytest"]}}, "image.name"),
            ({"image": {"name": "web"}}, "test_command"),
            ({"image": {"name": "web", "test_command": []}}, "test_command"),
            ({**MINIMAL, "deploy": {"replicas": -1}}, "replicas"),
            ({**MINIMAL, "deploy": {"port": 0}}, "port"),
            ({**MINIMAL, "deploy": {"port": 70000}}, "port"),
            ({**MINIMAL, "rollout": {"timeout_seconds": 0}}, "timeout_seconds"),
            ({**MINIMAL, "rollout": {"timeout_seconds": float("nan")}}, "timeout_seconds"),
            ({**MINIMAL, "rollout": {"timeout_seconds": float("inf")}}, "timeout_seconds"),
            ({**MINIMAL, "rollout": {"poll_interval_seconds": float("nan")}}, "poll_interval"),
            ({**MINIMAL, "rollout": {"poll_interval_seconds": -1}}, "poll_interval_seconds"),
        ],
    )
    def test_invalid(self, data: dict[str, object], match: str) -> None:
        with pytest.raises(ValueError, match=match):
            Config.from_dict(data)

    def test_manifest_runs_registry_tag(self) -> None:
        data = {
            "image": {
                "name": "laravel",
                "registry_tag": "registry.example.com/laravel:1.4.0",
                "test_command": ["php", "artisan", "test"],
            },
            "deploy": {"replicas": 2, "env": {"APP_ENV": "production"}},
        }
        manifest = Config.from_dict(data).manifest()

        assert manifest.name == "laravel"
        assert manifest.image == "registry.example.com/laravel:1.4.0"
        assert manifest.replicas == 2
        assert manifest.env == (("APP_ENV", "production"),)
        assert manifest.namespace == "default"


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path) -> None:
        result = load_config(_write(tmp_path, FULL_CONFIG))

        assert isinstance(result, Ok)
        config = result.value
        assert config.source.path == tmp_path / "app"
        assert config.source.repo == "https://example.com/laravel.git"
        assert config.source.ref == "main"
        assert config.image.dockerfile == "docker/Dockerfile"
        assert config.image.test_command == ("php", "artisan", "test")
        assert config.image.build_args == (("user", "ubuntu"), ("uid", "1000"))
        assert config.deploy.namespace == "shop"
        assert config.deploy.port == 8080
        assert config.deploy.kube_context == "staging"
        assert config.deploy.env == (("DB_DATABASE", "laravel"), ("DB_USERNAME", "ubuntu"))
        assert config.rollout == RolloutConfig(timeout_seconds=120.0, poll_interval_seconds=2.5)

    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_config(tmp_path / "nope.toml")

        assert isinstance(result, Err)
        assert isinstance(result.error, ConfigError)
        assert "not found" in result.error.message
        assert result.error.path == tmp_path / "nope.toml"

    def test_invalid_toml(self, tmp_path: Path) -> None:
        result = load_config(_write(tmp_path, "[image\nname = "))

        assert isinstance(result, Err)
        assert "Invalid TOML" in result.error.message

    def test_invalid_values(self, tmp_path: Path) -> None:
        result = load_config(_write(tmp_path, '[image]\nname = "web"\n'))

        assert isinstance(result, Err)
        assert result.error.message.startswith("Invalid config:")
        assert "test_command" in result.error.message

    def test_nan_timeout_rejected(self, tmp_path: Path) -> None:
        text = """
[image]
name = "web"
test_command = ["pytest"]

[rollout]
timeout_seconds = nan
"""
        result = load_config(_write(tmp_path, text))

        assert isinstance(result, Err)
        assert "timeout_seconds" in result.error.message

    def test_not_utf8(self, tmp_path: Path) -> None:
        path = tmp_path / "relctl.toml"
        path.write_bytes(b"\xff\xfe[image]")

        result = load_config(path)

        assert isinstance(result, Err)
