from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from kubby import cluster as cluster_module
from kubby.cluster import KubeCluster, new_kube_cluster
from kubby.config import ClusterConfig, HelmChart
from kubby.errors import (
    ExceededMaxAttemptError,
    ExistingKubeClusterError,
    ExistingKubeConfigError,
    MissingFieldError,
)
from kubby.status import ClusterStatus
from tests.fakes import (
    FakeChartManager,
    FakeDockerClient,
    FakeProvider,
    FakeRegistry,
    FakeResources,
    job_manifest,
)


@pytest.fixture
def resources() -> FakeResources:
    return FakeResources()


def test_default_bring_up(
    isolated_env: Path, provider: FakeProvider, docker_client: FakeDockerClient, resources: FakeResources,
) -> None:
    cluster = new_kube_cluster(
        provider=provider, docker_client=docker_client, resources=resources, chart_manager=FakeChartManager(),
    )

    assert cluster.name == "kind-cluster"
    assert cluster.status is ClusterStatus.ALIVE
    assert cluster.kubeconfig_path == isolated_env / ".kube" / "kind-config.yaml"
    assert cluster.kubeconfig_path.is_file()
    assert cluster.exists()

    assert cluster.registry.name == "kind-registry"
    image, kwargs = docker_client.containers.create_calls[0]
    assert image == "registry:2"
    assert kwargs["ports"] == {"5000/tcp": ("0.0.0.0", "5000")}
    assert kwargs["network"] == "kind"

    name, config, kubeconfig = provider.create_calls[0]
    assert (name, kubeconfig) == ("kind-cluster", cluster.kubeconfig_path)
    doc = yaml.safe_load(config)
    assert [node["role"] for node in doc["nodes"]] == ["control-plane", "worker"]
    assert 'mirrors."localhost:5000"' in doc["containerdConfigPatches"][0]
    assert 'endpoint = ["http://kind-registry:5000"]' in doc["containerdConfigPatches"][0]


def test_injected_registry_sets_mirror_name_and_port(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry(name="shared-registry", port=5001)

    cluster = new_kube_cluster(provider=provider, registry=registry, resources=resources)

    config = provider.create_calls[0][1]
    assert cluster.registry is registry
    assert cluster.kind_config.registry_port == 5001
    assert 'mirrors."localhost:5001"' in config
    assert 'endpoint = ["http://shared-registry:5001"]' in config
    assert "5000" not in config


def test_injected_registry_port_wins_over_configured_port(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry(name="shared-registry", port=5001)

    new_kube_cluster(provider=provider, registry=registry, resources=resources, registry_port=6000)

    config = provider.create_calls[0][1]
    assert 'mirrors."localhost:5001"' in config
    assert "6000" not in config


def test_existing_cluster_is_rejected(isolated_env: Path, resources: FakeResources) -> None:
    provider = FakeProvider(existing=("kind-cluster",))

    with pytest.raises(ExistingKubeClusterError) as excinfo:
        new_kube_cluster(provider=provider, registry=FakeRegistry(), resources=resources)

    assert excinfo.value.name == "kind-cluster"
    assert provider.create_calls == []
    assert not (isolated_env / ".kube" / "kind-config.yaml").exists()


def test_existing_kubeconfig_is_rejected(tmp_path: Path, provider: FakeProvider) -> None:
    kubeconfig = tmp_path / "kc.yaml"
    kubeconfig.write_text("apiVersion: v1\n")

    with pytest.raises(ExistingKubeConfigError):
        new_kube_cluster(provider=provider, registry=FakeRegistry(), kubeconfig_path=kubeconfig)

    assert provider.create_calls == []


def test_bring_up_gives_up_after_max_attempts(tmp_path: Path) -> None:
    provider = FakeProvider(failures=10)
    cluster = KubeCluster(ClusterConfig(kubeconfig_path=tmp_path / "kc.yaml"), provider=provider)

    with pytest.raises(ExceededMaxAttemptError) as excinfo:
        cluster.start()

    assert excinfo.value.attempts == 5
    assert len(provider.create_calls) == 5
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert cluster.status is ClusterStatus.DEAD
    assert (tmp_path / "kc.yaml").exists()


def test_bring_up_succeeds_on_last_attempt(tmp_path: Path) -> None:
    provider = FakeProvider(failures=2)
    cluster = KubeCluster(ClusterConfig(kubeconfig_path=tmp_path / "kc.yaml", max_start_attempts=3), provider=provider)

    cluster.start()

    assert len(provider.create_calls) == 3
    assert cluster.status is ClusterStatus.ALIVE


def test_start_and_delete_are_idempotent(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry()
    cluster = new_kube_cluster(provider=provider, registry=registry, resources=resources)

    cluster.start()
    assert len(provider.create_calls) == 1

    cluster.delete()
    cluster.delete()

    assert provider.delete_calls == ["kind-cluster"]
    assert registry.deletes == 1
    assert not cluster.kubeconfig_path.exists()
    assert cluster.status is ClusterStatus.DEAD


def test_delete_tolerates_vanished_cluster(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry()
    cluster = new_kube_cluster(provider=provider, registry=registry, resources=resources)
    provider.nodes.clear()

    cluster.delete()

    assert provider.delete_calls == []
    assert registry.deletes == 1
    assert cluster.status is ClusterStatus.DEAD


def test_namespaces_are_created_before_charts(provider: FakeProvider, tmp_path: Path) -> None:
    events: list[tuple[str, str]] = []
    resources = FakeResources(events)

    new_kube_cluster(
        provider=provider,
        registry=FakeRegistry(),
        resources=resources,
        chart_manager=FakeChartManager(events),
        namespaces=["apps", "data"],
        namespace_timeout=2.5,
        charts=[
            HelmChart(name="redis", namespace="data", path=tmp_path / "redis"),
            HelmChart(name="web", namespace="apps", path=tmp_path / "web"),
        ],
    )

    assert events == [("namespace", "apps"), ("namespace", "data"), ("chart", "redis"), ("chart", "web")]
    assert resources.namespace_timeouts == [2.5, 2.5]


def test_start_on_create_false_assumes_running_cluster(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry()

    cluster = new_kube_cluster(
        provider=provider, registry=registry, resources=resources, start_on_create=False, namespaces=["apps"],
    )

    assert cluster.status is ClusterStatus.ALIVE
    assert provider.create_calls == []
    assert resources.events == [("namespace", "apps")]


def test_context_manager_tears_down(provider: FakeProvider, resources: FakeResources) -> None:
    registry = FakeRegistry()

    with new_kube_cluster(provider=provider, registry=registry, resources=resources) as cluster:
        assert cluster.status is ClusterStatus.ALIVE

    assert cluster.status is ClusterStatus.DEAD
    assert provider.delete_calls == ["kind-cluster"]
    assert registry.deletes == 1


def test_context_manager_tears_down_on_error(provider: FakeProvider, resources: FakeResources) -> None:
    with pytest.raises(ValueError):
        with new_kube_cluster(provider=provider, registry=FakeRegistry(), resources=resources) as cluster:
            raise ValueError("test body failed")

    assert cluster.status is ClusterStatus.DEAD


def test_workload_calls_delegate(provider: FakeProvider, resources: FakeResources, tmp_path: Path) -> None:
    registry = FakeRegistry()
    cluster = new_kube_cluster(provider=provider, registry=registry, resources=resources)
    job = job_manifest()

    cluster.run_job("jobs", job, poll_interval=0.5, timeout=30)
    cluster.create_namespace("extra")
    cluster.create_deployment("apps", {"metadata": {"name": "web"}})
    cluster.delete_deployment("apps", "web")
    image = cluster.push_image(tmp_path, "app")

    assert resources.jobs == [("jobs", job, 0.5, 30)]
    assert resources.events == [("namespace", "extra"), ("deployment", "apps"), ("delete-deployment", "web")]
    assert resources.namespace_timeouts == [10.0]
    assert image == "127.0.0.1:5000/app"
    assert registry.pushes == [(str(tmp_path), "app")]


def test_workload_calls_require_configured_cluster(tmp_path: Path, provider: FakeProvider) -> None:
    cluster = KubeCluster(ClusterConfig(kubeconfig_path=tmp_path / "kc.yaml"), provider=provider)

    with pytest.raises(MissingFieldError) as excinfo:
        cluster.run_job("jobs", job_manifest())

    assert excinfo.value.field == "resources"


def test_default_collaborators_check_cli_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    checked: list[str] = []
    monkeypatch.setattr(cluster_module, "require_command", checked.append)

    cluster_module._check_prerequisites(need_kind=True, need_helm=True)

    assert checked == ["kind", "helm"]


def test_default_registry_needs_no_docker_cli(
    monkeypatch: pytest.MonkeyPatch, provider: FakeProvider, docker_client: FakeDockerClient, resources: FakeResources,
) -> None:
    checked: list[str] = []
    monkeypatch.setattr(cluster_module, "require_command", checked.append)

    new_kube_cluster(provider=provider, docker_client=docker_client, resources=resources)

    assert checked == []


def test_missing_cli_tool_stops_bring_up(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(cmd: str) -> None:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.")

    monkeypatch.setattr(cluster_module, "require_command", _missing)

    with pytest.raises(RuntimeError, match="'kind' not found"):
        new_kube_cluster(registry=FakeRegistry(), resources=FakeResources())
