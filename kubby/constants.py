# /*
# Copyright 2026 The Kubby Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Defaults, image references, and retry tuning."""

from __future__ import annotations

from pathlib import Path


def default_kubeconfig_path() -> Path:
    """Return the default kubeconfig location for kind clusters.

    Returns:
        ``$HOME/.kube/kind-config.yaml``.
    """
    return Path.home() / ".kube" / "kind-config.yaml"


# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "kind-cluster"
DEFAULT_WORKER_NODES = 1
DEFAULT_CONTROL_NODES = 1
DEFAULT_MAX_START_ATTEMPTS = 5
DEFAULT_START_RETRY_WAIT_SECONDS = 0.0
DEFAULT_NAMESPACE_TIMEOUT_SECONDS = 10.0

# -- kind config document --
KIND_API_VERSION = "kind.x-k8s.io/v1alpha4"
KIND_KIND = "Cluster"
KIND_NETWORK = "kind"
ROLE_CONTROL_PLANE = "control-plane"
ROLE_WORKER = "worker"
CONTAINERD_MIRROR_PATCH = (
    '[plugins."io.containerd.grpc.v1.cri".registry.mirrors."localhost:{port}"]\n'
    '  endpoint = ["http://{address}:{port}"]'
)

# -- Registry --
DEFAULT_REGISTRY_NAME = "kind-registry"
DEFAULT_REGISTRY_PORT = 5000
REGISTRY_IMAGE = "registry"
REGISTRY_TAG = "2"
REGISTRY_HOST = "127.0.0.1"
REGISTRY_AUTH_PLACEHOLDER = {"username": "kubby", "password": "placeholder"}
PUSH_MAX_ATTEMPTS = 3
PUSH_RETRY_WAIT_SECONDS = 0.5

# -- Containers --
DEFAULT_IMAGE_TAG = "latest"
CONTAINER_STOP_TIMEOUT_SECONDS = 5
HOST_BIND_ADDRESS = "0.0.0.0"
DOCKERFILE_NAME = "Dockerfile"

# -- Jobs --
DEFAULT_JOB_POLL_INTERVAL_SECONDS = 1.0
POD_DISCOVERY_MAX_ATTEMPTS = 3
POD_PHASE_PENDING = "Pending"
LOG_CHUNK_SIZE = 4096
