from __future__ import annotations

from pathlib import Path

from relctl.backends import (
    DockerBuild,
    DockerPublish,
    DockerTest,
    GitSource,
    KubectlCluster,
    build_backends,
)
from relctl.core.config import Config
from relctl.output.console import MockConsole


def test_build_backends_from_config(tmp_path: Path) -> None:
    config = Config.from_dict(
        {
            "source": {"path": "src", "repo": "https://example.com/app.git"},
            "image": {
                "name": "app",
                "dockerfile": "docker/Dockerfile",
                "test_command": ["pytest", "-q"],
                "build_args": {"uid": 1000},
            },
            "deploy": {"kube_context": "staging"},
        },
        base_dir=tmp_path,
    )

    backends = build_backends(config, workdir=tmp_path, console=MockConsole(), dry_run=True)

    assert isinstance(backends.source, GitSource)
    assert backends.source.path == tmp_path / "src"
    assert backends.source.repo == "https://example.com/app.git"
    assert isinstance(backends.build, DockerBuild)
    assert backends.build.dockerfile == "docker/Dockerfile"
    assert backends.build.build_args == (("uid", "1000"),)
    assert isinstance(backends.test, DockerTest)
    assert backends.test.command == ("pytest", "-q")
    assert isinstance(backends.publish, DockerPublish)
    assert isinstance(backends.cluster, KubectlCluster)
    assert backends.cluster.context == "staging"
    assert backends.cluster.runner.dry_run
