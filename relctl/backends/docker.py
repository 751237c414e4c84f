"""Build, test and publish backends backed by the docker CLI."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from relctl.core.result import Err, Ok, Result
from relctl.pipeline.errors import BuildError, PublishError, TestError
from relctl.pipeline.model import ImageRef, SourceTree, TestReport

from .command import CommandRunner
from .timeouts import (
    DOCKER_BUILD_TIMEOUT_SECONDS,
    DOCKER_PUSH_TIMEOUT_SECONDS,
    DOCKER_TEST_TIMEOUT_SECONDS,
)

__all__ = ["DockerBuild", "DockerPublish", "DockerTest", "image_tag", "parse_test_summary"]

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_INVALID_TAG_CHARS_RE = re.compile(r"[^A-Za-z0-9_.-]")

# PHPUnit: "OK (2 tests, 2 assertions)"
_PHPUNIT_OK_RE = re.compile(r"\bOK \((\d+) tests?, \d+ assertions?\)")
# PHPUnit: "Tests: 5, Assertions: 7, Errors: 1, Failures: 2."
_PHPUNIT_TOTAL_RE = re.compile(r"\bTests: (\d+), Assertions: \d+")
_PHPUNIT_ERRORS_RE = re.compile(r"\bErrors: (\d+)")
_PHPUNIT_FAILURES_RE = re.compile(r"\bFailures: (\d+)")
# Pest / artisan test / pytest: "1 failed, 2 passed"
_PASSED_RE = re.compile(r"\b(\d+) passed\b")
_FAILED_RE = re.compile(r"\b(\d+) failed\b")
_ERRORS_RE = re.compile(r"\b(\d+) errors?\b")


def image_tag(name: str, revision: str) -> str:
    """Local image tag for a source revision (docker tags allow [A-Za-z0-9_.-])."""
    tag = _INVALID_TAG_CHARS_RE.sub("-", revision[:12]) or "latest"
    return f"{name}:{tag}"


def parse_test_summary(output: str) -> tuple[int, int] | None:
    """Extract (passed, failed) from a test runner's summary line.

    Understands PHPUnit, Pest/`artisan test` and pytest summaries. Errors
    count as failures. Returns None if no summary line is found.
    """
    text = _ANSI_RE.sub("", output)
    for line in reversed(text.splitlines()):
        ok = _PHPUNIT_OK_RE.search(line)
        if ok:
            return int(ok.group(1)), 0

        total = _PHPUNIT_TOTAL_RE.search(line)
        if total:
            failed = _count(_PHPUNIT_ERRORS_RE, line) + _count(_PHPUNIT_FAILURES_RE, line)
            return max(int(total.group(1)) - failed, 0), failed

        passed = _PASSED_RE.search(line)
        failed_m = _FAILED_RE.search(line)
        if passed or failed_m:
            failed = _count(_FAILED_RE, line) + _count(_ERRORS_RE, line)
            return _count(_PASSED_RE, line), failed

    return None


def _count(pattern: re.Pattern[str], line: str) -> int:
    m = pattern.search(line)
    return int(m.group(1)) if m else 0


@dataclass(frozen=True, slots=True)
class DockerBuild:
    """`docker build` tagged with the source revision."""

    runner: CommandRunner
    image_name: str
    dockerfile: str = "Dockerfile"
    context: str = "."
    build_args: tuple[tuple[str, str], ...] = ()

    def build(self, source: SourceTree) -> Result[ImageRef, BuildError]:
        tag = image_tag(self.image_name, source.revision)
        cmd = [
            "docker",
            "build",
            "--quiet",
            "-t",
            tag,
            "-f",
            str(source.path / self.dockerfile),
        ]
        for key, value in self.build_args:
            cmd.extend(["--build-arg", f"{key}={value}"])
        cmd.append(str(source.path / self.context))

        result = self.runner.run(cmd, cwd=source.path, timeout=DOCKER_BUILD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            e = result.error
            return Err(
                BuildError(message=f"docker build failed (exit {e.returncode})", output=e.output)
            )

        # --quiet prints only the image id
        digest = result.value.strip() or None
        return Ok(ImageRef(reference=tag, digest=digest))


@dataclass(frozen=True, slots=True)
class DockerTest:
    """Runs the test command inside a throwaway container."""

    runner: CommandRunner
    command: tuple[str, ...]
    cwd: Path

    def test(self, image: ImageRef) -> Result[TestReport, TestError]:
        if not self.command:
            return Err(TestError(message="no test command configured"))

        cmd = ["docker", "run", "--rm", image.reference, *self.command]
        result = self.runner.run(cmd, cwd=self.cwd, timeout=DOCKER_TEST_TIMEOUT_SECONDS)
        if self.runner.dry_run:
            return Ok(TestReport(passed=0, failed=0, output="(dry-run)"))

        if isinstance(result, Err):
            e = result.error
            if e.returncode < 0:
                return Err(
                    TestError(message=f"could not run tests: {e.stderr.strip()}", output=e.output)
                )
            passed, failed = parse_test_summary(e.output) or (0, 0)
            return Err(
                TestError(
                    message=f"test command failed (exit {e.returncode})",
                    output=e.output,
                    passed=passed,
                    failed=failed,
                )
            )

        passed, failed = parse_test_summary(result.value) or (0, 0)
        return Ok(TestReport(passed=passed, failed=failed, output=result.value.strip()))


@dataclass(frozen=True, slots=True)
class DockerPublish:
    """`docker tag` + `docker push`."""

    runner: CommandRunner
    cwd: Path

    def push(self, image: ImageRef, registry_tag: str) -> Result[None, PublishError]:
        if registry_tag != image.reference:
            tagged = self.runner.run(
                ["docker", "tag", image.reference, registry_tag],
                cwd=self.cwd,
                timeout=DOCKER_PUSH_TIMEOUT_SECONDS,
            )
            if isinstance(tagged, Err):
                return Err(
                    PublishError(
                        message=f"failed to tag {image.reference} as {registry_tag}",
                        output=tagged.error.output,
                    )
                )

        pushed = self.runner.run(
            ["docker", "push", registry_tag],
            cwd=self.cwd,
            timeout=DOCKER_PUSH_TIMEOUT_SECONDS,
        )
        if isinstance(pushed, Err):
            e = pushed.error
            return Err(
                PublishError(message=f"docker push failed (exit {e.returncode})", output=e.output)
            )
        return Ok(None)
