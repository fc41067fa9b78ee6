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

"""Helm chart installation against a kubeconfig."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

import sh
from rich.panel import Panel

from kubby import console, logger
from kubby.config import HelmChart, HelmSettings
from kubby.errors import ExistingReleaseError, OperationError


class HelmResourcer(Protocol):
    def install_chart(self, name: str, namespace: str, path: Path | str) -> None: ...


class HelmChartManager:
    """Installs local charts and remembers what it installed.

    Attributes:
        kubeconfig_path: Credentials of the target cluster.
        charts: Installed charts keyed by release name.
    """

    def __init__(self, kubeconfig_path: Path | str, settings: HelmSettings | None = None) -> None:
        self.kubeconfig_path = Path(kubeconfig_path)
        self.settings = settings or HelmSettings()
        self.charts: dict[str, HelmChart] = {}

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.settings.driver:
            env["HELM_DRIVER"] = self.settings.driver
        return env

    def install_chart(self, name: str, namespace: str, path: Path | str) -> None:
        """Install the chart at *path* as release *name* in *namespace*.

        Args:
            name: Release name.
            namespace: Target namespace, which must already exist.
            path: Chart directory or packaged archive.

        Raises:
            ExistingReleaseError: If this manager already installed *name*.
            OperationError: If ``helm install`` fails.
        """
        if name in self.charts:
            raise ExistingReleaseError(name)

        console.print(Panel.fit(f"Installing chart {name} ({namespace})", style="bold blue"))
        try:
            output = sh.helm(
                "install", name, str(path),
                "--namespace", namespace,
                "--kubeconfig", str(self.kubeconfig_path),
                _env=self._env(),
            )
        except sh.ErrorReturnCode as err:
            raise OperationError("HelmChartManager.install_chart", err) from err
        logger.debug("helm install %s:\n%s", name, output)

        self.charts[name] = HelmChart(name=name, namespace=namespace, path=Path(path))
        console.print(f"[green]✅ Chart {name} installed[/green]")
