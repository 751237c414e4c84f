"""Command-line backends (git, docker, kubectl) and their wiring."""

from __future__ import annotations

from pathlib import Path

from relctl.core.config import Config
from relctl.output.console import ConsoleProtocol
from relctl.pipeline.backends import Backends

from .command import CommandRunner
from .docker import DockerBuild, DockerPublish, DockerTest
from .git import GitSource
from .kubectl import KubectlCluster, render_manifest

__all__ = [
    "CommandRunner",
    "DockerBuild",
    "DockerPublish",
    "DockerTest",
    "GitSource",
    "KubectlCluster",
    "build_backends",
    "render_manifest",
]


def build_backends(
    config: Config,
    *,
    workdir: Path,
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Backends:
    """Wire the command-line backends for a loaded config.

    Args:
        config: Loaded relctl configuration
        workdir: Directory commands run from when no source tree applies
        console: Where executed commands are echoed
        dry_run: Print commands instead of running them
    """
    runner = CommandRunner(console=console, dry_run=dry_run)
    return Backends(
        source=GitSource(runner=runner, path=config.source.path, repo=config.source.repo),
        build=DockerBuild(
            runner=runner,
            image_name=config.image.name,
            dockerfile=config.image.dockerfile,
            context=config.image.context,
            build_args=config.image.build_args,
        ),
        test=DockerTest(runner=runner, command=config.image.test_command, cwd=workdir),
        publish=DockerPublish(runner=runner, cwd=workdir),
        cluster=KubectlCluster(runner=runner, cwd=workdir, context=config.deploy.kube_context),
    )
