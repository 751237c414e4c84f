from __future__ import annotations

# Local git operations (rev-parse, checkout)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (clone, fetch)
GIT_NETWORK_TIMEOUT_SECONDS = 15 * 60.0

DOCKER_BUILD_TIMEOUT_SECONDS = 60 * 60.0
DOCKER_TEST_TIMEOUT_SECONDS = 30 * 60.0
DOCKER_PUSH_TIMEOUT_SECONDS = 15 * 60.0

# kubectl calls against the API server (apply, get, rollout undo, delete)
KUBECTL_TIMEOUT_SECONDS = 60.0
