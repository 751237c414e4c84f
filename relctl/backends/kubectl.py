"""Cluster backend backed by kubectl.

The manifest is rendered as a Kubernetes `List` (Deployment + Service) in
JSON and piped to `kubectl apply -f -`. Revision ids name the Deployment
plus the revision before and after the apply, e.g. `default/web@2->3`, so
undo knows exactly which state to restore:

- previous == applied: the pod template did not change, undo only warns
- previous == 0: the Deployment did not exist, undo deletes it
- otherwise: `kubectl rollout undo --to-revision=<previous>`
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from time import sleep

from relctl.core.result import Err, Ok, Result
from relctl.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_int,
    get_str,
    get_table,
)
from relctl.pipeline.errors import ApplyError, RolloutFailedError, UndoError
from relctl.pipeline.model import DeploymentManifest, RolloutStatus

from .command import CommandRunner
from .timeouts import KUBECTL_TIMEOUT_SECONDS

__all__ = ["KubeRevision", "KubectlCluster", "render_manifest"]

REVISION_ANNOTATION = "deployment.kubernetes.io/revision"

# The deployment controller sets the revision annotation asynchronously.
_REVISION_LOOKUP_MAX_ATTEMPTS = 5
_REVISION_LOOKUP_DELAY_SECONDS = 1.0

_REVISION_RE = re.compile(r"^(?P<ns>[^/]+)/(?P<name>[^@]+)@(?P<prev>\d+)->(?P<rev>\d+)$")


@dataclass(frozen=True, slots=True)
class KubeRevision:
    namespace: str
    name: str
    previous: int
    revision: int

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}@{self.previous}->{self.revision}"

    @property
    def changed(self) -> bool:
        return self.previous != self.revision

    @classmethod
    def parse(cls, value: str) -> KubeRevision | None:
        m = _REVISION_RE.match(value)
        if m is None:
            return None
        return cls(
            namespace=m.group("ns"),
            name=m.group("name"),
            previous=int(m.group("prev")),
            revision=int(m.group("rev")),
        )


def render_manifest(manifest: DeploymentManifest) -> StrDict:
    """Render the desired state as a Kubernetes List object."""
    labels = {"app": manifest.name}
    metadata = {"name": manifest.name, "namespace": manifest.namespace, "labels": labels}
    container: StrDict = {
        "name": manifest.name,
        "image": manifest.image,
        "ports": [{"containerPort": manifest.port}],
    }
    if manifest.env:
        container["env"] = [{"name": k, "value": v} for k, v in manifest.env]

    deployment: StrDict = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": metadata,
        "spec": {
            "replicas": manifest.replicas,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {"containers": [container]},
            },
        },
    }
    service: StrDict = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata,
        "spec": {
            "selector": labels,
            "ports": [{"port": manifest.port, "targetPort": manifest.port}],
        },
    }
    return {"apiVersion": "v1", "kind": "List", "items": [deployment, service]}


@dataclass(frozen=True, slots=True)
class _DeploymentState:
    revision: int
    status: RolloutStatus
    deadline_exceeded: bool
    # The controller has processed the latest spec (observedGeneration caught up).
    settled: bool


def _parse_deployment(payload: str) -> _DeploymentState | None:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError:
        return None

    data = as_str_dict(obj)
    if data is None:
        return None

    metadata = get_table(data, "metadata") or {}
    annotations = get_table(metadata, "annotations") or {}
    spec = get_table(data, "spec") or {}
    status = get_table(data, "status") or {}

    revision_str = get_str(annotations, REVISION_ANNOTATION)
    revision = int(revision_str) if revision_str and revision_str.isdigit() else 0

    desired = get_int(spec, "replicas")
    if desired is None:
        desired = 1
    updated = get_int(status, "updatedReplicas") or 0
    available = get_int(status, "availableReplicas") or 0

    # Counts describe an older spec until the controller observes the new generation.
    generation = get_int(metadata, "generation") or 0
    observed = get_int(status, "observedGeneration") or 0
    settled = observed >= generation
    if not settled:
        updated = 0

    deadline_exceeded = False
    for cond_obj in as_obj_list(status.get("conditions")) or []:
        cond = as_str_dict(cond_obj)
        if cond is None:
            continue
        if get_str(cond, "type") == "Progressing" and (
            get_str(cond, "reason") == "ProgressDeadlineExceeded"
        ):
            deadline_exceeded = True

    return _DeploymentState(
        revision=revision,
        status=RolloutStatus(
            desired_replicas=max(desired, 0),
            updated_replicas=max(updated, 0),
            available_replicas=max(available, 0),
        ),
        deadline_exceeded=deadline_exceeded,
        settled=settled,
    )


@dataclass(frozen=True, slots=True)
class KubectlCluster:
    runner: CommandRunner
    cwd: Path
    context: str | None = None

    def apply(self, manifest: DeploymentManifest) -> Result[str, ApplyError]:
        before = self._read_deployment(manifest.namespace, manifest.name)
        if isinstance(before, Err):
            return before
        previous = before.value.revision if before.value is not None else 0

        document = json.dumps(render_manifest(manifest), indent=2)
        applied = self.runner.run(
            self._kubectl("apply", "-f", "-"),
            cwd=self.cwd,
            timeout=KUBECTL_TIMEOUT_SECONDS,
            input=document,
        )
        if isinstance(applied, Err):
            e = applied.error
            return Err(
                ApplyError(message=f"kubectl apply failed (exit {e.returncode})", output=e.output)
            )

        if self.runner.dry_run:
            return Ok(str(KubeRevision(manifest.namespace, manifest.name, 0, 0)))

        read_error: ApplyError | None = None
        for attempt in range(_REVISION_LOOKUP_MAX_ATTEMPTS):
            current = self._read_deployment(manifest.namespace, manifest.name)
            if isinstance(current, Err):
                read_error = current.error
                state = None
            else:
                read_error = None
                state = current.value
            if state is not None and state.settled and state.revision > 0:
                return Ok(
                    str(
                        KubeRevision(
                            namespace=manifest.namespace,
                            name=manifest.name,
                            previous=previous,
                            revision=state.revision,
                        )
                    )
                )
            if attempt < _REVISION_LOOKUP_MAX_ATTEMPTS - 1:
                sleep(_REVISION_LOOKUP_DELAY_SECONDS)

        # The apply went through, so undo must still be able to restore `previous`.
        assumed = KubeRevision(manifest.namespace, manifest.name, previous, previous + 1)
        message = f"deployment/{manifest.name} revision not observed after apply"
        output = applied.value.strip()
        if read_error is not None:
            message = f"{message} ({read_error.message})"
            output = read_error.output
        return Err(ApplyError(message=message, output=output, revision=str(assumed)))

    def rollout_status(self, revision: str) -> Result[RolloutStatus, RolloutFailedError]:
        rev = KubeRevision.parse(revision)
        if rev is None:
            return Err(
                RolloutFailedError(
                    message=f"unrecognized revision id: {revision}", revision=revision
                )
            )

        result = self.runner.run(
            self._kubectl("get", "deployment", rev.name, "-n", rev.namespace, "-o", "json"),
            cwd=self.cwd,
            timeout=KUBECTL_TIMEOUT_SECONDS,
        )
        if self.runner.dry_run:
            return Ok(RolloutStatus(desired_replicas=0, updated_replicas=0, available_replicas=0))
        if isinstance(result, Err):
            return Err(
                RolloutFailedError(
                    message=f"failed to query deployment/{rev.name}",
                    revision=revision,
                    output=result.error.output,
                )
            )

        state = _parse_deployment(result.value)
        if state is None:
            return Err(
                RolloutFailedError(
                    message=f"unexpected kubectl payload for deployment/{rev.name}",
                    revision=revision,
                    output=result.value,
                )
            )
        if state.revision != rev.revision:
            return Err(
                RolloutFailedError(
                    message=(
                        f"deployment/{rev.name} moved to revision {state.revision} "
                        f"while waiting for {rev.revision}"
                    ),
                    revision=revision,
                )
            )
        if state.deadline_exceeded:
            return Err(
                RolloutFailedError(
                    message=(
                        f"deployment/{rev.name} exceeded its progress deadline ({state.status})"
                    ),
                    revision=revision,
                )
            )
        return Ok(state.status)

    def undo(self, revision: str) -> Result[None, UndoError]:
        rev = KubeRevision.parse(revision)
        if rev is None:
            return Err(
                UndoError(message=f"unrecognized revision id: {revision}", revision=revision)
            )

        if not rev.changed:
            # Only the pod template creates a revision; replicas and the
            # Service are not part of it.
            self.runner.console.warning(
                f"deployment/{rev.name} template unchanged by apply; skipping undo "
                "(replica count and service changes from this apply stay live)"
            )
            return Ok(None)

        if rev.previous == 0:
            cmd = self._kubectl(
                "delete",
                f"deployment/{rev.name}",
                f"service/{rev.name}",
                "-n",
                rev.namespace,
                "--ignore-not-found",
            )
        else:
            cmd = self._kubectl(
                "rollout",
                "undo",
                f"deployment/{rev.name}",
                "-n",
                rev.namespace,
                f"--to-revision={rev.previous}",
            )

        result = self.runner.run(cmd, cwd=self.cwd, timeout=KUBECTL_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            e = result.error
            return Err(
                UndoError(
                    message=f"undo of {revision} failed (exit {e.returncode})",
                    revision=revision,
                    output=e.output,
                )
            )
        return Ok(None)

    def _read_deployment(
        self, namespace: str, name: str
    ) -> Result[_DeploymentState | None, ApplyError]:
        """State of the live Deployment, or None if it does not exist."""
        result = self.runner.run(
            self._kubectl(
                "get",
                "deployment",
                name,
                "-n",
                namespace,
                "-o",
                "json",
                "--ignore-not-found",
            ),
            cwd=self.cwd,
            timeout=KUBECTL_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(
                ApplyError(
                    message=f"failed to read deployment/{name}",
                    output=result.error.output,
                )
            )
        if not result.value.strip():
            return Ok(None)
        state = _parse_deployment(result.value)
        if state is None:
            return Err(ApplyError(message=f"unexpected kubectl payload for deployment/{name}"))
        return Ok(state)

    def _kubectl(self, *args: str) -> list[str]:
        cmd = ["kubectl"]
        if self.context:
            cmd.extend(["--context", self.context])
        cmd.extend(args)
        return cmd
