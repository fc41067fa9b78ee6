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

"""Named docker containers on named networks with published ports."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import docker

from kubby import console, logger
from kubby.constants import CONTAINER_STOP_TIMEOUT_SECONDS, DEFAULT_IMAGE_TAG, HOST_BIND_ADDRESS
from kubby.errors import BadContainerNameError, MissingFieldError, OperationError
from kubby.utils import strip_container_name


def new_docker_client() -> docker.DockerClient:
    """Connect to the docker engine configured in the environment.

    Raises:
        OperationError: If the engine is unreachable.
    """
    try:
        return docker.from_env()
    except docker.errors.DockerException as err:
        raise OperationError("new_docker_client", err) from err


def port_bindings(ports: Mapping[str, str]) -> dict[str, tuple[str, str]]:
    """Translate container port -> host port into docker SDK bindings.

    Args:
        ports: Mapping of container port to host port.

    Returns:
        ``{"<port>/tcp": ("0.0.0.0", "<host port>")}`` entries, one per container port.
    """
    return {f"{container}/tcp": (HOST_BIND_ADDRESS, str(host)) for container, host in ports.items()}


class Container:
    """A docker container owned by its creator.

    Tear-down is :meth:`delete`, which stops and then removes the container.

    Attributes:
        name: Container name, also its alias on every joined network.
        image: Image repository.
        tag: Image tag.
        networks: Networks to join; the first is used at creation time.
        ports: Mapping of container port to host port.
        id: Runtime id, empty until :meth:`start` succeeds.
    """

    def __init__(
        self,
        name: str,
        image: str,
        *,
        tag: str = DEFAULT_IMAGE_TAG,
        networks: Iterable[str] = (),
        ports: Mapping[str, str] | None = None,
        client: docker.DockerClient | None = None,
    ) -> None:
        self.name = name
        self.image = image
        self.tag = tag or DEFAULT_IMAGE_TAG
        self.networks = list(networks)
        self.ports = {str(c): str(h) for c, h in (ports or {}).items()}
        self.id = ""
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = new_docker_client()
        return self._client

    @property
    def reference(self) -> str:
        return f"{self.image}:{self.tag}"

    def start(self) -> None:
        """Pull the image, then create and start the container.

        Raises:
            MissingFieldError: If the name or image is empty.
            OperationError: If any docker engine call fails.
        """
        if not self.name:
            raise MissingFieldError("name")
        if not self.image:
            raise MissingFieldError("image")

        console.print(f"[yellow]ℹ️  Pulling {self.reference}...[/yellow]")
        try:
            self.client.images.pull(self.image, tag=self.tag)
            created = self.client.containers.create(
                self.reference,
                name=self.name,
                ports=port_bindings(self.ports),
                network=self.networks[0] if self.networks else None,
            )
            self.id = created.id
            for network in self.networks[1:]:
                self.client.networks.get(network).connect(created, aliases=[self.name])
            created.start()
        except docker.errors.DockerException as err:
            raise OperationError("Container.start", err) from err
        logger.info("Started container %s (%s)", self.name, self.id)
        console.print(f"[green]✅ Container '{self.name}' started[/green]")

    def stop(self) -> None:
        """Stop the container, allowing a short grace period."""
        try:
            self._handle().stop(timeout=CONTAINER_STOP_TIMEOUT_SECONDS)
        except docker.errors.DockerException as err:
            raise OperationError("Container.stop", err) from err

    def delete(self) -> None:
        """Stop and remove the container; an already stopped one is fine."""
        self.stop()
        try:
            self._handle().remove()
        except docker.errors.DockerException as err:
            raise OperationError("Container.delete", err) from err
        console.print(f"[green]✅ Container '{self.name}' removed[/green]")

    def _handle(self):
        if not self.id:
            raise MissingFieldError("id")
        return self.client.containers.get(self.id)


def lookup_container_id(name: str, client: docker.DockerClient | None = None) -> str:
    """Find the id of the running container called *name*.

    Args:
        name: Container name, with or without docker's leading ``/``.
        client: Docker client, or None to connect from the environment.

    Returns:
        Runtime id of the first matching container.

    Raises:
        BadContainerNameError: If no running container has that name.
        OperationError: If the container list cannot be fetched.
    """
    client = client or new_docker_client()
    wanted = strip_container_name(name)
    try:
        containers = client.containers.list(sparse=True)
    except docker.errors.DockerException as err:
        raise OperationError("lookup_container_id", err) from err
    for container in containers:
        names = container.attrs.get("Names") or [container.name]
        if any(strip_container_name(n) == wanted for n in names if n):
            return container.id
    raise BadContainerNameError(name)
