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

"""Configuration classes and config models."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubby.constants import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CONTROL_NODES,
    DEFAULT_MAX_START_ATTEMPTS,
    DEFAULT_NAMESPACE_TIMEOUT_SECONDS,
    DEFAULT_REGISTRY_NAME,
    DEFAULT_REGISTRY_PORT,
    DEFAULT_START_RETRY_WAIT_SECONDS,
    DEFAULT_WORKER_NODES,
    default_kubeconfig_path,
)


# ============================================================================
# Config models
# ============================================================================

class NodePort(BaseModel):
    """Extra port mapping on the first control-plane node.

    Attributes:
        host: Port published on the host.
        container: Port inside the node container.
    """

    model_config = ConfigDict(frozen=True)

    host: int = Field(ge=1, le=65535)
    container: int = Field(ge=1, le=65535)


class HelmChart(BaseModel):
    """A chart to install, and the record of one once installed.

    Attributes:
        name: Helm release name.
        namespace: Namespace the release is installed into.
        path: Local chart directory or archive.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    path: Path


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """kind cluster configuration, auto-loaded from KUBBY_* env vars.

    Attributes:
        name: Name of the kind cluster.
        kubeconfig_path: Where the cluster credentials are written.
        worker_nodes: Number of worker nodes.
        control_nodes: Number of control-plane nodes.
        start_on_create: Whether construction brings the cluster up. When
            false the cluster is assumed to be running already.
        max_start_attempts: Upper bound on ``kind create cluster`` attempts.
        start_retry_wait: Seconds to wait between bring-up attempts.
        registry_name: Container name of the default local registry.
        registry_port: Host and container port of the local registry.
        namespaces: Namespaces created after bring-up.
        namespace_timeout: Request timeout for each namespace creation.
        charts: Charts installed after bring-up, in order.
        node_ports: Extra port mappings on the first control-plane node.
    """

    model_config = SettingsConfigDict(env_prefix="KUBBY_", extra="ignore")

    name: str = Field(default=DEFAULT_CLUSTER_NAME, min_length=1)
    kubeconfig_path: Path = Field(default_factory=default_kubeconfig_path)
    worker_nodes: int = Field(default=DEFAULT_WORKER_NODES, ge=0)
    control_nodes: int = Field(default=DEFAULT_CONTROL_NODES, ge=1)
    start_on_create: bool = True
    max_start_attempts: int = Field(default=DEFAULT_MAX_START_ATTEMPTS, ge=1)
    start_retry_wait: float = Field(default=DEFAULT_START_RETRY_WAIT_SECONDS, ge=0)
    registry_name: str = Field(default=DEFAULT_REGISTRY_NAME, min_length=1)
    registry_port: int = Field(default=DEFAULT_REGISTRY_PORT, ge=1, le=65535)
    namespaces: list[str] = Field(default_factory=list)
    namespace_timeout: float = Field(default=DEFAULT_NAMESPACE_TIMEOUT_SECONDS, gt=0)
    charts: list[HelmChart] = Field(default_factory=list)
    node_ports: list[NodePort] = Field(default_factory=list)

    @field_validator("node_ports")
    @classmethod
    def _unique_host_ports(cls, ports: list[NodePort]) -> list[NodePort]:
        seen: set[int] = set()
        for port in ports:
            if port.host in seen:
                raise ValueError(f"duplicate host port {port.host}")
            seen.add(port.host)
        return ports


class HelmSettings(BaseSettings):
    """Helm settings, auto-loaded from HELM_* env vars.

    Attributes:
        driver: Release storage driver (``secret``, ``configmap``, ...).
            Empty leaves helm's own default in place.
    """

    model_config = SettingsConfigDict(env_prefix="HELM_", extra="ignore")

    driver: str = ""
