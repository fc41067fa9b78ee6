from __future__ import annotations

from pathlib import Path

import docker
import pytest

from kubby.errors import BadImageBuildError, OperationError
from kubby.registry import ClusterRegistry, check_stream_output, new_registry
from tests.fakes import FakeDockerClient


def test_new_registry_publishes_same_port_on_kind_network(docker_client: FakeDockerClient) -> None:
    registry = new_registry("kind-registry", 5001, client=docker_client)

    assert registry.name == "kind-registry"
    assert registry.url == "127.0.0.1:5001"
    assert docker_client.images.pulls == [("registry", "2")]
    image, kwargs = docker_client.containers.create_calls[0]
    assert image == "registry:2"
    assert kwargs["ports"] == {"5001/tcp": ("0.0.0.0", "5001")}
    assert kwargs["network"] == "kind"


def test_delete_removes_container(docker_client: FakeDockerClient) -> None:
    registry = new_registry(client=docker_client)

    registry.delete()

    assert docker_client.containers.get(registry.container.id).removed


@pytest.mark.parametrize("lines", [
    [],
    [{"stream": "Step 1/2"}, {"stream": "Successfully built"}],
    [{"error": "early"}, {"status": "recovered"}],
    [b'{"status": "pushed"}'],
    ["not json"],
])
def test_check_stream_output_accepts_clean_streams(lines: list) -> None:
    check_stream_output(lines)


@pytest.mark.parametrize("last", [{"error": "no space left"}, '{"error": "no space left"}', b'{"error": "no space left"}'])
def test_check_stream_output_raises_on_trailing_error(last: object) -> None:
    with pytest.raises(BadImageBuildError, match="no space left"):
        check_stream_output([{"stream": "Step 1/2"}, last])


def test_push_builds_once_and_pushes(docker_client: FakeDockerClient, tmp_path: Path) -> None:
    registry = ClusterRegistry("kind-registry", 5000, client=docker_client)

    image = registry.push_image(tmp_path, "app:v1")

    assert image == "127.0.0.1:5000/app:v1"
    build = docker_client.api.build_calls[0]
    assert build["path"] == str(tmp_path)
    assert build["tag"] == image
    assert build["dockerfile"] == "Dockerfile"
    assert [call[0] for call in docker_client.api.push_calls] == [image]
    assert docker_client.api.push_calls[0][1]["auth_config"]


def test_push_succeeds_on_third_attempt(docker_client: FakeDockerClient, tmp_path: Path) -> None:
    docker_client.api.push_outcomes = [
        docker.errors.APIError("connection reset by peer"),
        [{"error": "EOF"}],
        [{"status": "pushed"}],
    ]
    registry = ClusterRegistry("kind-registry", 5000, client=docker_client)

    assert registry.push_image(tmp_path, "app") == "127.0.0.1:5000/app"
    assert len(docker_client.api.build_calls) == 1
    assert len(docker_client.api.push_calls) == 3


def test_push_gives_up_after_three_attempts(docker_client: FakeDockerClient, tmp_path: Path) -> None:
    docker_client.api.push_outcomes = [docker.errors.APIError("connection reset by peer")] * 4
    registry = ClusterRegistry("kind-registry", 5000, client=docker_client)

    with pytest.raises(OperationError) as excinfo:
        registry.push_image(tmp_path, "app")

    assert excinfo.value.operation == "push_image"
    assert len(docker_client.api.push_calls) == 3


def test_build_error_is_not_retried(docker_client: FakeDockerClient, tmp_path: Path) -> None:
    docker_client.api.build_lines = [{"stream": "Step 1/3"}, {"error": "COPY failed: file not found"}]
    registry = ClusterRegistry("kind-registry", 5000, client=docker_client)

    with pytest.raises(BadImageBuildError) as excinfo:
        registry.push_image(tmp_path, "app")

    assert excinfo.value.message == "COPY failed: file not found"
    assert len(docker_client.api.build_calls) == 1
    assert docker_client.api.push_calls == []
