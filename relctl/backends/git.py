"""Checkout backend backed by the git CLI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from relctl.core.result import Err, Ok, Result
from relctl.pipeline.errors import CheckoutError
from relctl.pipeline.model import SourceTree

from .command import CommandRunner
from .timeouts import GIT_NETWORK_TIMEOUT_SECONDS, GIT_TIMEOUT_SECONDS

__all__ = ["GitSource"]


@dataclass(frozen=True, slots=True)
class GitSource:
    """Checks out a ref and reports the commit it resolved to.

    Without `repo`, `path` is an existing checkout: HEAD is detached at the
    resolved commit, and a working tree with uncommitted changes to tracked
    files is refused. With `repo`, the repository is cloned into `path` (or
    fetched if already there) and the fetched commit checked out.
    """

    runner: CommandRunner
    path: Path
    repo: str | None = None

    def checkout(self, source_ref: str) -> Result[SourceTree, CheckoutError]:
        ref = source_ref
        if self.repo is not None:
            synced = self._sync_clone(self.repo, source_ref)
            if isinstance(synced, Err):
                return synced
            # The fetched commit is now checked out.
            ref = "HEAD"

        if self.runner.dry_run:
            self.runner.run(self._rev_parse(ref), cwd=self.path)
            return Ok(SourceTree(path=self.path, revision=source_ref))

        if not self.path.is_dir():
            return Err(CheckoutError(message=f"source path not found: {self.path}"))

        result = self.runner.run(
            self._rev_parse(ref), cwd=self.path, timeout=GIT_TIMEOUT_SECONDS
        )
        if isinstance(result, Err):
            return Err(
                CheckoutError(
                    message=f"cannot resolve ref '{source_ref}' in {self.path}",
                    output=result.error.output,
                )
            )

        sha = result.value.strip()
        if not sha:
            return Err(CheckoutError(message=f"git returned no commit for '{source_ref}'"))
        if self.repo is None:
            switched = self._detach_at(sha, source_ref)
            if isinstance(switched, Err):
                return switched
        return Ok(SourceTree(path=self.path, revision=sha))

    def _rev_parse(self, source_ref: str) -> list[str]:
        return ["git", "rev-parse", "--verify", f"{source_ref}^{{commit}}"]

    def _detach_at(self, sha: str, source_ref: str) -> Result[None, CheckoutError]:
        status = self.runner.run(
            ["git", "status", "--porcelain", "--untracked-files=no"],
            cwd=self.path,
            timeout=GIT_TIMEOUT_SECONDS,
        )
        if isinstance(status, Err):
            return Err(
                CheckoutError(
                    message=f"cannot read working tree status of {self.path}",
                    output=status.error.output,
                )
            )
        if status.value.strip():
            return Err(
                CheckoutError(
                    message=(
                        f"{self.path} has uncommitted changes; "
                        f"refusing to check out '{source_ref}'"
                    ),
                    output=status.value.strip(),
                )
            )

        head = self.runner.run(self._rev_parse("HEAD"), cwd=self.path, timeout=GIT_TIMEOUT_SECONDS)
        if isinstance(head, Ok) and head.value.strip() == sha:
            return Ok(None)

        switched = self.runner.run(
            ["git", "checkout", "--detach", sha],
            cwd=self.path,
            timeout=GIT_TIMEOUT_SECONDS,
        )
        if isinstance(switched, Err):
            return Err(
                CheckoutError(
                    message=f"failed to check out '{source_ref}'",
                    output=switched.error.output,
                )
            )
        return Ok(None)

    def _sync_clone(self, repo: str, source_ref: str) -> Result[None, CheckoutError]:
        if not (self.path / ".git").exists():
            if not self.runner.dry_run:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            cloned = self.runner.run(
                ["git", "clone", "--no-checkout", repo, str(self.path)],
                cwd=self.path.parent,
                timeout=GIT_NETWORK_TIMEOUT_SECONDS,
            )
            if isinstance(cloned, Err):
                return Err(
                    CheckoutError(message=f"failed to clone {repo}", output=cloned.error.output)
                )

        fetched = self.runner.run(
            ["git", "fetch", "--tags", "origin", source_ref],
            cwd=self.path,
            timeout=GIT_NETWORK_TIMEOUT_SECONDS,
        )
        if isinstance(fetched, Err):
            return Err(
                CheckoutError(
                    message=f"failed to fetch '{source_ref}' from {repo}",
                    output=fetched.error.output,
                )
            )

        result = self.runner.run(
            ["git", "checkout", "--detach", "FETCH_HEAD"],
            cwd=self.path,
            timeout=GIT_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(
                CheckoutError(
                    message=f"failed to check out '{source_ref}'",
                    output=result.error.output,
                )
            )
        return Ok(None)
