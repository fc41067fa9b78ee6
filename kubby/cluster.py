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

"""kind cluster lifecycle: bring-up, configuration, and tear-down."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import docker
from kubernetes import client as k8s
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from kubby import console, logger
from kubby.charts import HelmChartManager, HelmResourcer
from kubby.config import ClusterConfig
from kubby.constants import DEFAULT_JOB_POLL_INTERVAL_SECONDS
from kubby.errors import ExceededMaxAttemptError, ExistingKubeClusterError, MissingFieldError
from kubby.kind import KindConfig, KindProvider, Provisioner
from kubby.registry import ClusterRegistry, new_registry
from kubby.resources import KubeResourceManager, KubeResourcer
from kubby.status import ClusterStatus
from kubby.utils import create_kubeconfig, remove_kubeconfig, require_command


# ============================================================================
# Internal helpers
# ============================================================================

def _check_prerequisites(need_kind: bool, need_helm: bool) -> None:
    """Check the CLI tools the default collaborators shell out to."""
    prereqs: list[str] = []
    if need_kind:
        prereqs.append("kind")
    if need_helm:
        prereqs.append("helm")
    for cmd in prereqs:
        require_command(cmd)


def _log_start_retry(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.warning("Error bringing up cluster, will retry (attempt %d): %s", retry_state.attempt_number, exc)
    console.print(f"[yellow]⚠️  Bring-up attempt {retry_state.attempt_number} failed, retrying[/yellow]")


def resolve_config(config: ClusterConfig | None = None, **overrides: Any) -> ClusterConfig:
    """Apply defaults, then KUBBY_* env vars, then explicit overrides.

    Args:
        config: Base configuration, or None to load one from the environment.
        **overrides: Field values that win over *config*.

    Returns:
        Validated cluster configuration.
    """
    if config is None:
        return ClusterConfig(**overrides)
    if not overrides:
        return config
    return ClusterConfig(**{**config.model_dump(), **overrides})


# ============================================================================
# Cluster
# ============================================================================

class KubeCluster:
    """One ephemeral kind cluster together with its registry and clients.

    Use :func:`new_kube_cluster` to build a running cluster. The instance is a
    context manager that tears the cluster down on exit.

    Attributes:
        config: Validated cluster configuration.
        provider: Provisioner that creates and deletes the node set.
        kind_config: Rendered input for the provisioner.
        status: Whether the node set is up.
        registry: Local image registry, set during bring-up if not given.
        resources: Cluster API wrapper, set during bring-up if not given.
        chart_manager: Chart installer, set during bring-up if not given.
    """

    def __init__(
        self,
        config: ClusterConfig,
        *,
        provider: Provisioner | None = None,
        registry: ClusterRegistry | None = None,
        resources: KubeResourcer | None = None,
        chart_manager: HelmResourcer | None = None,
        docker_client: docker.DockerClient | None = None,
    ) -> None:
        self.config = config
        self.provider = provider or KindProvider()
        self.registry = registry
        self.resources = resources
        self.chart_manager = chart_manager
        self._docker_client = docker_client
        self.status = ClusterStatus.DEAD if config.start_on_create else ClusterStatus.ALIVE
        # An injected registry decides both ends of the mirror.
        if registry is not None:
            registry_address, registry_port = registry.name, registry.port
        else:
            registry_address, registry_port = config.registry_name, config.registry_port
        self.kind_config = KindConfig(
            name=config.name,
            control_nodes=config.control_nodes,
            worker_nodes=config.worker_nodes,
            registry_address=registry_address,
            registry_port=registry_port,
            node_ports=tuple(config.node_ports),
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def kubeconfig_path(self) -> Path:
        return self.config.kubeconfig_path

    def __enter__(self) -> KubeCluster:
        return self

    def __exit__(self, exc_type, exc, traceback) -> bool:
        self.delete()
        return False

    def __repr__(self) -> str:
        return f"KubeCluster(name={self.name!r}, status={self.status})"

    # ------------------------------------------------------------------ Lifecycle

    def exists(self) -> bool:
        """Whether the provisioner reports nodes for this cluster's name."""
        return len(self.provider.list_nodes(self.name)) != 0

    def start(self) -> None:
        """Create the node set, retrying up to ``max_start_attempts`` times.

        A failed bring-up leaves the cluster DEAD and the empty kubeconfig in
        place.

        Raises:
            ExistingKubeClusterError: If a cluster with this name exists.
            ExistingKubeConfigError: If the kubeconfig file already exists.
            ExceededMaxAttemptError: If every attempt failed.
        """
        if self.status is ClusterStatus.ALIVE:
            return

        console.print(Panel.fit(f"Creating kind cluster '{self.name}'", style="bold blue"))
        if self.exists():
            raise ExistingKubeClusterError(self.name)

        console.print(f"[yellow]ℹ️  Creating kubeconfig at {self.kubeconfig_path}...[/yellow]")
        create_kubeconfig(self.kubeconfig_path)

        rendered = self.kind_config.render()
        attempts = self.config.max_start_attempts

        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.config.start_retry_wait),
            before_sleep=_log_start_retry,
            reraise=True,
        )
        def _attempt() -> None:
            self.provider.create(self.name, rendered, self.kubeconfig_path)

        try:
            _attempt()
        except Exception as err:
            raise ExceededMaxAttemptError(attempts) from err

        self.status = ClusterStatus.ALIVE
        console.print(f"[green]✅ Cluster '{self.name}' created[/green]")

    def configure(self) -> None:
        """Attach the registry and clients, then create namespaces and charts.

        Runs after the node set is up; the registry joins the kind network
        that the provisioner created.
        """
        if self.registry is None:
            self.registry = new_registry(
                self.config.registry_name, self.config.registry_port, client=self._docker_client,
            )

        if self.resources is None:
            self.resources = KubeResourceManager.from_kubeconfig(self.kubeconfig_path)

        if self.config.namespaces:
            console.print(Panel.fit("Creating namespaces", style="bold blue"))
        for namespace in self.config.namespaces:
            self.resources.create_namespace(namespace, timeout=self.config.namespace_timeout)

        if self.chart_manager is None:
            self.chart_manager = HelmChartManager(self.kubeconfig_path)

        for chart in self.config.charts:
            self.chart_manager.install_chart(chart.name, chart.namespace, chart.path)

    def delete(self) -> None:
        """Tear down the node set, kubeconfig, and registry container.

        Installed chart releases are not uninstalled.
        """
        if self.status is ClusterStatus.DEAD:
            return

        console.print(Panel.fit(f"Deleting kind cluster '{self.name}'", style="bold blue"))
        if self.exists():
            self.provider.delete(self.name, self.kubeconfig_path)
            console.print(f"[green]✅ Cluster '{self.name}' deleted[/green]")
        else:
            console.print(f"[yellow]⚠️  Cluster '{self.name}' not found or already deleted[/yellow]")

        if remove_kubeconfig(self.kubeconfig_path):
            console.print(f"[green]  ✓ Removed {self.kubeconfig_path}[/green]")

        if self.registry is not None:
            self.registry.delete()

        self.status = ClusterStatus.DEAD

    # ------------------------------------------------------------------ Workloads

    def _require(self, attr: str) -> Any:
        value = getattr(self, attr)
        if value is None:
            raise MissingFieldError(attr)
        return value

    def run_job(
        self,
        namespace: str,
        job: k8s.V1Job | dict,
        poll_interval: float = DEFAULT_JOB_POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
    ) -> None:
        self._require("resources").run_job(namespace, job, poll_interval, timeout)

    def create_deployment(self, namespace: str, deployment: k8s.V1Deployment | dict) -> None:
        self._require("resources").create_deployment(namespace, deployment)

    def delete_deployment(self, namespace: str, name: str) -> None:
        self._require("resources").delete_deployment(namespace, name)

    def create_namespace(self, name: str, timeout: float | None = None) -> None:
        self._require("resources").create_namespace(name, timeout=timeout or self.config.namespace_timeout)

    def install_chart(self, name: str, namespace: str, path: Path | str) -> None:
        self._require("chart_manager").install_chart(name, namespace, path)

    def push_image(self, build_path: Path | str, name: str) -> str:
        """Build *build_path* and push it to the cluster registry as *name*.

        Returns:
            The host-side image reference. Pods pull it as ``localhost:<port>/<name>``.
        """
        return self._require("registry").push_image(build_path, name)


def new_kube_cluster(
    config: ClusterConfig | None = None,
    *,
    provider: Provisioner | None = None,
    registry: ClusterRegistry | None = None,
    resources: KubeResourcer | None = None,
    chart_manager: HelmResourcer | None = None,
    docker_client: docker.DockerClient | None = None,
    **overrides: Any,
) -> KubeCluster:
    """Build and bring up a cluster.

    Configuration comes from the defaults, then ``KUBBY_*`` env vars, then
    *config*, then *overrides*. Collaborators left as None are created with
    their defaults: a ``kind`` provisioner, a ``registry:2`` container, a
    Kubernetes client built from the kubeconfig, and a helm chart manager.

    Args:
        config: Base configuration, or None to load one from the environment.
        provider: Provisioner override.
        registry: Already running registry to use instead of a new one.
        resources: Cluster API wrapper override.
        chart_manager: Chart installer override.
        docker_client: Docker client for the default registry.
        **overrides: ``ClusterConfig`` field values.

    Returns:
        A cluster whose node set is up, namespaces created and charts installed.

    Raises:
        KubbyError: If any bring-up step fails.
    """
    cfg = resolve_config(config, **overrides)
    _check_prerequisites(
        need_kind=provider is None,
        need_helm=chart_manager is None and bool(cfg.charts),
    )
    cluster = KubeCluster(
        cfg,
        provider=provider,
        registry=registry,
        resources=resources,
        chart_manager=chart_manager,
        docker_client=docker_client,
    )
    cluster.start()
    cluster.configure()
    return cluster
