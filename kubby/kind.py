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

"""kind config rendering and the kind CLI provisioner."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import sh
import yaml

from kubby import logger
from kubby.config import NodePort
from kubby.constants import (
    CONTAINERD_MIRROR_PATCH,
    KIND_API_VERSION,
    KIND_KIND,
    ROLE_CONTROL_PLANE,
    ROLE_WORKER,
)
from kubby.errors import OperationError


# ============================================================================
# Config rendering
# ============================================================================

class _LiteralStr(str):
    """String emitted as a YAML literal block (``|-``)."""


class _KindDumper(yaml.SafeDumper):
    pass


def _represent_literal(dumper: yaml.SafeDumper, data: _LiteralStr) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style="|")


_KindDumper.add_representer(_LiteralStr, _represent_literal)


@dataclass(frozen=True)
class KindConfig:
    """Inputs of the kind cluster config document.

    Attributes:
        name: Cluster name.
        control_nodes: Number of control-plane nodes.
        worker_nodes: Number of worker nodes.
        node_ports: Extra port mappings for the first control-plane node.
        registry_address: Hostname of the local registry on the kind network.
        registry_port: Port the local registry listens on.
    """

    name: str
    control_nodes: int
    worker_nodes: int
    registry_address: str
    registry_port: int
    node_ports: tuple[NodePort, ...] = field(default_factory=tuple)

    def manifest(self) -> dict:
        """Build the kind ``Cluster`` document as a dictionary.

        Returns:
            kind config ready for YAML serialization.
        """
        mirror_patch = CONTAINERD_MIRROR_PATCH.format(
            address=self.registry_address, port=self.registry_port,
        )
        first_control: dict = {
            "role": ROLE_CONTROL_PLANE,
            "extraPortMappings": [
                {"containerPort": port.container, "hostPort": port.host}
                for port in self.node_ports
            ],
        }
        nodes = [first_control]
        nodes += [{"role": ROLE_CONTROL_PLANE} for _ in range(self.control_nodes - 1)]
        nodes += [{"role": ROLE_WORKER} for _ in range(self.worker_nodes)]
        return {
            "kind": KIND_KIND,
            "apiVersion": KIND_API_VERSION,
            "name": self.name,
            "containerdConfigPatches": [_LiteralStr(mirror_patch)],
            "nodes": nodes,
        }

    def render(self) -> str:
        """Serialize the config document; identical inputs give identical text."""
        return yaml.dump(self.manifest(), Dumper=_KindDumper, sort_keys=False, default_flow_style=False)

    def __str__(self) -> str:
        return self.render()


def render_kind_config(
    name: str,
    control_nodes: int,
    worker_nodes: int,
    node_ports: Sequence[NodePort],
    registry_address: str,
    registry_port: int,
) -> str:
    """Render a kind cluster config with a local registry mirror.

    Args:
        name: Cluster name.
        control_nodes: Number of control-plane nodes (at least one).
        worker_nodes: Number of worker nodes.
        node_ports: Extra port mappings for the first control-plane node.
        registry_address: Hostname of the local registry on the kind network.
        registry_port: Port the local registry listens on.

    Returns:
        The config document as YAML text.
    """
    return KindConfig(
        name=name,
        control_nodes=control_nodes,
        worker_nodes=worker_nodes,
        registry_address=registry_address,
        registry_port=registry_port,
        node_ports=tuple(node_ports),
    ).render()


# ============================================================================
# Provisioner
# ============================================================================

class Provisioner(Protocol):
    def list_nodes(self, name: str) -> list[str]: ...

    def create(self, name: str, config: str, kubeconfig_path: Path) -> None: ...

    def delete(self, name: str, kubeconfig_path: Path) -> None: ...


class KindProvider:
    """Cluster provisioner backed by the ``kind`` CLI."""

    def list_nodes(self, name: str) -> list[str]:
        """List the node containers of cluster *name*.

        Args:
            name: kind cluster name.

        Returns:
            Node names; empty when no such cluster exists.

        Raises:
            OperationError: If ``kind get nodes`` fails.
        """
        try:
            output = sh.kind("get", "nodes", "--name", name)
        except sh.ErrorReturnCode as err:
            raise OperationError("KindProvider.list_nodes", err) from err
        return [
            line.strip() for line in str(output).splitlines()
            if line.strip() and not line.startswith("No kind nodes")
        ]

    def create(self, name: str, config: str, kubeconfig_path: Path) -> None:
        """Create cluster *name* from a rendered config passed on stdin.

        Args:
            name: kind cluster name.
            config: Rendered kind config document.
            kubeconfig_path: File kind writes the cluster credentials into.

        Raises:
            OperationError: If ``kind create cluster`` fails.
        """
        logger.debug("kind config for %s:\n%s", name, config)
        try:
            sh.kind(
                "create", "cluster",
                "--name", name,
                "--config", "-",
                "--kubeconfig", str(kubeconfig_path),
                "--retain=false",
                "--wait", "0s",
                _in=config,
            )
        except sh.ErrorReturnCode as err:
            raise OperationError("KindProvider.create", err) from err

    def delete(self, name: str, kubeconfig_path: Path) -> None:
        try:
            sh.kind("delete", "cluster", "--name", name, "--kubeconfig", str(kubeconfig_path))
        except sh.ErrorReturnCode as err:
            raise OperationError("KindProvider.delete", err) from err
