from __future__ import annotations

import os
from pathlib import Path

import pytest

from tests.fakes import FakeAppsApi, FakeBatchApi, FakeCoreApi, FakeDockerClient, FakeProvider


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep KUBBY_*/HELM_* settings and the default kubeconfig out of the host."""
    for key in list(os.environ):
        if key.startswith("KUBBY_") or key.startswith("HELM_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def docker_client() -> FakeDockerClient:
    return FakeDockerClient()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def apps_api() -> FakeAppsApi:
    return FakeAppsApi()


@pytest.fixture
def batch_api() -> FakeBatchApi:
    return FakeBatchApi()


@pytest.fixture
def core_api() -> FakeCoreApi:
    return FakeCoreApi()
