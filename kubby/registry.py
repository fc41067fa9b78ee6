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

"""Local image registry on the kind network, with build and push."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import docker
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from kubby import console, logger
from kubby.constants import (
    DEFAULT_REGISTRY_NAME,
    DEFAULT_REGISTRY_PORT,
    DOCKERFILE_NAME,
    KIND_NETWORK,
    PUSH_MAX_ATTEMPTS,
    PUSH_RETRY_WAIT_SECONDS,
    REGISTRY_AUTH_PLACEHOLDER,
    REGISTRY_HOST,
    REGISTRY_IMAGE,
    REGISTRY_TAG,
)
from kubby.container import Container
from kubby.errors import BadImageBuildError, OperationError


# ============================================================================
# Docker output streams
# ============================================================================

def check_stream_output(lines: Iterable[Any]) -> None:
    """Drain a build or push stream and fail if its last line is an error.

    Args:
        lines: Decoded JSON objects, or raw JSON lines, from the docker engine.

    Raises:
        BadImageBuildError: If the last line carries a non-empty ``error``.
    """
    last: Any = None
    for last in lines:
        pass
    if isinstance(last, (bytes, str)):
        try:
            last = json.loads(last)
        except ValueError:
            return
    if isinstance(last, dict) and last.get("error"):
        raise BadImageBuildError(str(last["error"]))


def build_image(client: docker.DockerClient, path: Path, image: str) -> None:
    """Build *image* from the Dockerfile at the root of *path*.

    Args:
        client: Docker client.
        path: Build context directory.
        image: Tag to apply to the built image.

    Raises:
        BadImageBuildError: If the build reports an error.
        OperationError: If the docker engine call fails.
    """
    console.print(f"[yellow]ℹ️  Building {image}...[/yellow]")
    try:
        stream = client.api.build(
            path=str(path), tag=image, dockerfile=DOCKERFILE_NAME, rm=True, decode=True,
        )
        check_stream_output(stream)
    except docker.errors.DockerException as err:
        raise OperationError("build_image", err) from err


def push_image(client: docker.DockerClient, image: str) -> None:
    """Push *image* to its registry.

    Raises:
        BadImageBuildError: If the push reports an error.
        OperationError: If the docker engine call fails.
    """
    try:
        stream = client.api.push(image, stream=True, decode=True, auth_config=REGISTRY_AUTH_PLACEHOLDER)
        check_stream_output(stream)
    except docker.errors.DockerException as err:
        raise OperationError("push_image", err) from err


def _log_push_retry(retry_state) -> None:
    logger.warning(
        "Push attempt %d failed, retrying: %s",
        retry_state.attempt_number, retry_state.outcome.exception(),
    )


# A freshly started registry tends to reset the first connections.
@retry(
    stop=stop_after_attempt(PUSH_MAX_ATTEMPTS),
    wait=wait_fixed(PUSH_RETRY_WAIT_SECONDS),
    before_sleep=_log_push_retry,
    reraise=True,
)
def _push_with_retry(client: docker.DockerClient, image: str) -> None:
    push_image(client, image)


# ============================================================================
# Registry
# ============================================================================

class ClusterRegistry:
    """A ``registry:2`` container joined to the kind network.

    The same port is published on the host and used inside the container, so
    the in-cluster mirror for ``localhost:<port>`` reaches this registry.

    Attributes:
        container: The underlying registry container.
        port: Host and container port.
        url: Host-side address images are tagged with.
    """

    def __init__(self, name: str, port: int, *, client: docker.DockerClient | None = None) -> None:
        self.port = port
        self.url = f"{REGISTRY_HOST}:{port}"
        self.container = Container(
            name,
            REGISTRY_IMAGE,
            tag=REGISTRY_TAG,
            networks=[KIND_NETWORK],
            ports={str(port): str(port)},
            client=client,
        )

    @property
    def name(self) -> str:
        return self.container.name

    def start(self) -> None:
        console.print(Panel.fit(f"Starting local registry '{self.name}' on {self.url}", style="bold blue"))
        self.container.start()

    def delete(self) -> None:
        self.container.delete()

    def push_image(self, build_path: Path | str, name: str) -> str:
        """Build an image from a local directory and push it to this registry.

        The build runs once; the push is retried on failure.

        Args:
            build_path: Directory containing a ``Dockerfile`` at its root.
            name: Repository name (optionally ``name:tag``) inside the registry.

        Returns:
            The pushed image reference, ``<url>/<name>``.

        Raises:
            BadImageBuildError: If the build or final push reports an error.
            OperationError: If a docker engine call fails.
        """
        image = f"{self.url}/{name}"
        client = self.container.client
        build_image(client, Path(build_path), image)
        console.print(f"[yellow]ℹ️  Pushing {image}...[/yellow]")
        _push_with_retry(client, image)
        console.print(f"[green]✅ Pushed {image}[/green]")
        return image


def new_registry(
    name: str = DEFAULT_REGISTRY_NAME,
    port: int = DEFAULT_REGISTRY_PORT,
    client: docker.DockerClient | None = None,
) -> ClusterRegistry:
    """Create and start a local registry.

    Args:
        name: Container name of the registry.
        port: Host and container port.
        client: Docker client, or None to connect from the environment.

    Returns:
        The running registry.
    """
    registry = ClusterRegistry(name, port, client=client)
    registry.start()
    return registry
