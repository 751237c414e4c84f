"""Typed configuration loading.

relctl reads a single TOML file (default: relctl.toml):

    [source]
    path = "."
    ref = "main"

    [image]
    name = "laravel"
    registry_tag = "registry.example.com/laravel:1.4.0"
    test_command = ["php", "artisan", "test"]

    [image.build_args]
    user = "ubuntu"
    uid = 1000

    [deploy]
    name = "laravel-app"
    replicas = 3
    port = 80

    [deploy.env]
    DB_DATABASE = "laravel"

    [rollout]
    timeout_seconds = 300
    poll_interval_seconds = 5
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from relctl.pipeline.model import DeploymentManifest

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_str_map,
    get_table,
)

__all__ = [
    "Config",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DeployConfig",
    "ImageConfig",
    "RolloutConfig",
    "SourceConfig",
    "load_config",
]

DEFAULT_CONFIG_NAME = "relctl.toml"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class SourceConfig:
    """Where sources come from.

    Without `repo`, `path` must already be a git checkout and is used
    in place. With `repo`, the repository is cloned into `path`.
    """

    path: Path = Path(".")
    repo: str | None = None
    ref: str = "HEAD"


@dataclass(frozen=True, slots=True)
class ImageConfig:
    name: str
    registry_tag: str
    dockerfile: str = "Dockerfile"
    context: str = "."
    test_command: tuple[str, ...] = ()
    build_args: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class DeployConfig:
    name: str
    namespace: str = "default"
    replicas: int = 1
    port: int = 80
    env: tuple[tuple[str, str], ...] = ()
    kube_context: str | None = None


@dataclass(frozen=True, slots=True)
class RolloutConfig:
    timeout_seconds: float = 300.0
    poll_interval_seconds: float = 5.0


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    image: ImageConfig
    deploy: DeployConfig
    source: SourceConfig = field(default_factory=SourceConfig)
    rollout: RolloutConfig = field(default_factory=RolloutConfig)

    def manifest(self) -> DeploymentManifest:
        """Desired state for the cluster; runs the image Publish pushes."""
        return DeploymentManifest(
            name=self.deploy.name,
            image=self.image.registry_tag,
            replicas=self.deploy.replicas,
            env=self.deploy.env,
            port=self.deploy.port,
            namespace=self.deploy.namespace,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, base_dir: Path = Path(".")) -> Config:
        """Create Config from a mapping (parsed TOML).

        Relative source paths are resolved against `base_dir`.

        Raises:
            ValueError: If a required key is missing or a value is out of range.
        """
        source: StrDict = get_table(data, "source") or {}
        image: StrDict = get_table(data, "image") or {}
        deploy: StrDict = get_table(data, "deploy") or {}
        rollout: StrDict = get_table(data, "rollout") or {}

        image_name = get_str(image, "name")
        if image_name is None:
            raise ValueError("image.name is required")

        test_command = get_str_list(image, "test_command")
        if not test_command:
            raise ValueError("image.test_command must be a non-empty list of strings")

        source_path = Path(get_str(source, "path") or ".")
        if not source_path.is_absolute():
            source_path = base_dir / source_path

        replicas = get_int(deploy, "replicas")
        if replicas is None:
            replicas = 1
        if replicas < 0:
            raise ValueError(f"deploy.replicas must be >= 0, got {replicas}")

        port = get_int(deploy, "port")
        if port is None:
            port = 80
        if not 0 < port < 65536:
            raise ValueError(f"deploy.port out of range: {port}")

        timeout = get_float(rollout, "timeout_seconds")
        if timeout is None:
            timeout = 300.0
        if not math.isfinite(timeout) or timeout <= 0:
            raise ValueError(
                f"rollout.timeout_seconds must be a finite number > 0, got {timeout:g}"
            )

        interval = get_float(rollout, "poll_interval_seconds")
        if interval is None:
            interval = 5.0
        if not math.isfinite(interval) or interval < 0:
            raise ValueError(
                f"rollout.poll_interval_seconds must be a finite number >= 0, got {interval:g}"
            )

        return cls(
            source=SourceConfig(
                path=source_path,
                repo=get_str(source, "repo"),
                ref=get_str(source, "ref") or "HEAD",
            ),
            image=ImageConfig(
                name=image_name,
                registry_tag=get_str(image, "registry_tag") or f"{image_name}:latest",
                dockerfile=get_str(image, "dockerfile") or "Dockerfile",
                context=get_str(image, "context") or ".",
                test_command=tuple(test_command),
                build_args=tuple((get_str_map(image, "build_args") or {}).items()),
            ),
            deploy=DeployConfig(
                name=get_str(deploy, "name") or image_name,
                namespace=get_str(deploy, "namespace") or "default",
                replicas=replicas,
                port=port,
                env=tuple((get_str_map(deploy, "env") or {}).items()),
                kube_context=get_str(deploy, "kube_context"),
            ),
            rollout=RolloutConfig(
                timeout_seconds=timeout,
                poll_interval_seconds=interval,
            ),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and validate configuration from a TOML file.

    Args:
        path: Path to relctl.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        config = Config.from_dict(result.value, base_dir=path.parent)
        return Ok(config)
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))
