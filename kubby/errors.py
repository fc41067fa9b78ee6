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

"""Error taxonomy for cluster, container, registry, chart, and job failures."""

from __future__ import annotations


class KubbyError(Exception):
    """Base class for every error raised by kubby."""


class ExistingKubeClusterError(KubbyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"cluster {name} already exists")


class ExistingKubeConfigError(KubbyError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"kubeconfig at {path} already exists")


class ExceededMaxAttemptError(KubbyError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"exceeded max attempts ({attempts})")


class MissingFieldError(KubbyError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"field {field} is missing but it is required")


class BadContainerNameError(KubbyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"no such container named {name}")


class BadImageBuildError(KubbyError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"failed building image: {message}")


class FailedJobError(KubbyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"job {name} failed")


class BadPodNameError(KubbyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"no pod for job {name} exists")


class ExistingReleaseError(KubbyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"chart release {name} is already installed")


class JobTimeoutError(KubbyError, TimeoutError):
    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        super().__init__(f"job {name} did not finish within {timeout}s")


class OperationError(KubbyError):
    """Wraps a failure from docker, a CLI tool, or the Kubernetes API.

    Attributes:
        operation: Breadcrumb naming the kubby operation that failed.
        cause: The originating exception, also available as ``__cause__``.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {cause}")
