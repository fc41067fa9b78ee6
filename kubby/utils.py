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

"""Utility functions for command checks and kubeconfig files."""

from __future__ import annotations

from pathlib import Path

import sh

from kubby.errors import ExistingKubeConfigError


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def create_kubeconfig(path: Path) -> None:
    """Create an empty kubeconfig file for the provisioner to fill in.

    Args:
        path: Location of the kubeconfig file.

    Raises:
        ExistingKubeConfigError: If a file already exists at *path*.
    """
    if path.exists():
        raise ExistingKubeConfigError(str(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()


def remove_kubeconfig(path: Path) -> bool:
    """Remove the kubeconfig file if present.

    Args:
        path: Location of the kubeconfig file.

    Returns:
        True if a file was removed.
    """
    if not path.exists():
        return False
    path.unlink()
    return True


def strip_container_name(name: str) -> str:
    """Drop the single leading ``/`` docker prefixes to container names."""
    return name[1:] if name.startswith("/") else name
