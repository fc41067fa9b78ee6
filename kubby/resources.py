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

"""Namespaces, deployments, and synchronous jobs through the Kubernetes API."""

from __future__ import annotations

import codecs
import sys
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Protocol, TextIO

from kubernetes import client as k8s
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from rich.panel import Panel
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed
from urllib3.exceptions import HTTPError

from kubby import console, logger
from kubby.constants import (
    DEFAULT_JOB_POLL_INTERVAL_SECONDS,
    DEFAULT_NAMESPACE_TIMEOUT_SECONDS,
    LOG_CHUNK_SIZE,
    POD_DISCOVERY_MAX_ATTEMPTS,
    POD_PHASE_PENDING,
)
from kubby.errors import BadPodNameError, FailedJobError, JobTimeoutError, OperationError

_API_ERRORS = (ApiException, HTTPError)


class _OpenStreams:
    """Log responses still being read by a watcher, shut down on demand."""

    def __init__(self, stop: threading.Event) -> None:
        self._stop = stop
        self._lock = threading.Lock()
        self._responses: list[Any] = []

    def add(self, response: Any) -> bool:
        """Track *response*; False if the run is already stopping."""
        with self._lock:
            if self._stop.is_set():
                return False
            self._responses.append(response)
            return True

    def release(self, response: Any) -> None:
        with self._lock:
            if response in self._responses:
                self._responses.remove(response)
            response.release_conn()

    def shutdown(self) -> None:
        """Unblock every pending read; the owning watcher releases the connection."""
        with self._lock:
            for response in self._responses:
                try:
                    response.shutdown()
                except (OSError, RuntimeError, ValueError) as err:
                    # Raised once the body has been read to EOF and the
                    # connection returned to the pool.
                    logger.debug("Log stream already closed: %s", err)


class KubeResourcer(Protocol):
    def run_job(
        self,
        namespace: str,
        job: k8s.V1Job | dict,
        poll_interval: float = DEFAULT_JOB_POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
    ) -> None: ...

    def create_deployment(self, namespace: str, deployment: k8s.V1Deployment | dict) -> None: ...

    def delete_deployment(self, namespace: str, name: str) -> None: ...

    def create_namespace(self, name: str, timeout: float = DEFAULT_NAMESPACE_TIMEOUT_SECONDS) -> None: ...


class KubeResourceManager:
    """Cluster API wrapper for namespaces, deployments, and jobs.

    The API objects are shared by the job watchers; the kubernetes client is
    safe for concurrent use.

    Args:
        api_client: Configured API client, or None for the client default.
        core_api: CoreV1Api override, used by tests.
        batch_api: BatchV1Api override, used by tests.
        apps_api: AppsV1Api override, used by tests.
        log_sink: Where job logs are written; ``sys.stdout`` when None.
    """

    def __init__(
        self,
        api_client: k8s.ApiClient | None = None,
        *,
        core_api: Any = None,
        batch_api: Any = None,
        apps_api: Any = None,
        log_sink: TextIO | None = None,
    ) -> None:
        self._core = core_api or k8s.CoreV1Api(api_client)
        self._batch = batch_api or k8s.BatchV1Api(api_client)
        self._apps = apps_api or k8s.AppsV1Api(api_client)
        self._log_sink = log_sink

    @classmethod
    def from_kubeconfig(cls, path: Path | str, **kwargs: Any) -> KubeResourceManager:
        """Build a manager bound to the cluster described by a kubeconfig file.

        Raises:
            OperationError: If the kubeconfig cannot be loaded.
        """
        try:
            api_client = k8s_config.new_client_from_config(config_file=str(path))
        except (k8s_config.ConfigException, OSError) as err:
            raise OperationError("KubeResourceManager.from_kubeconfig", err) from err
        return cls(api_client, **kwargs)

    # ------------------------------------------------------------------ Namespaces

    def create_namespace(self, name: str, timeout: float = DEFAULT_NAMESPACE_TIMEOUT_SECONDS) -> None:
        """Create namespace *name*; an existing namespace is an error."""
        body = k8s.V1Namespace(metadata=k8s.V1ObjectMeta(name=name))
        try:
            self._core.create_namespace(body, _request_timeout=timeout)
        except _API_ERRORS as err:
            raise OperationError("create_namespace", err) from err
        console.print(f"[green]  ✓ Namespace {name}[/green]")

    # ----------------------------------------------------------------- Deployments

    def create_deployment(self, namespace: str, deployment: k8s.V1Deployment | dict) -> None:
        try:
            self._apps.create_namespaced_deployment(namespace, deployment)
        except _API_ERRORS as err:
            raise OperationError("create_deployment", err) from err

    def delete_deployment(self, namespace: str, name: str) -> None:
        try:
            self._apps.delete_namespaced_deployment(name, namespace)
        except _API_ERRORS as err:
            raise OperationError("delete_deployment", err) from err

    # ------------------------------------------------------------------------ Jobs

    def run_job(
        self,
        namespace: str,
        job: k8s.V1Job | dict,
        poll_interval: float = DEFAULT_JOB_POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
    ) -> None:
        """Run a job to completion while streaming its pod's logs.

        The job is submitted, its pod discovered, and two watchers run side by
        side: one polls the job status, the other follows the pod logs. The
        job and pod are deleted afterwards on every path, including failures
        and interrupts.

        Args:
            namespace: Namespace to run the job in.
            job: Job manifest as a model or a dictionary.
            poll_interval: Seconds between status polls and discovery attempts.
            timeout: Seconds to wait for the watchers, or None to wait forever.

        Raises:
            BadPodNameError: If the job's pod does not appear.
            FailedJobError: If the job ends in the Failed state.
            JobTimeoutError: If *timeout* elapses first.
            OperationError: If any API call fails, including cleanup.
        """
        job_name = self._submit_job(namespace, job)
        console.print(Panel.fit(f"Running job {namespace}/{job_name}", style="bold blue"))
        pod = None
        try:
            pod = self._discover_pod(namespace, job_name, poll_interval)
            self._watch(namespace, job_name, pod.metadata.name, poll_interval, timeout)
        finally:
            self._cleanup(namespace, job_name, pod)
        console.print(f"[green]✅ Job {job_name} succeeded[/green]")

    def _submit_job(self, namespace: str, job: k8s.V1Job | dict) -> str:
        try:
            created = self._batch.create_namespaced_job(namespace, job)
        except _API_ERRORS as err:
            raise OperationError("run_job.submit", err) from err
        return created.metadata.name

    def _discover_pod(self, namespace: str, job_name: str, poll_interval: float) -> k8s.V1Pod:
        """Find the pod created for *job_name* by its generate-name.

        Raises:
            BadPodNameError: If no pod shows up within the discovery attempts.
        """
        prefix = f"{job_name}-"

        def _find() -> k8s.V1Pod | None:
            try:
                pods = self._core.list_namespaced_pod(namespace)
            except _API_ERRORS as err:
                raise OperationError("run_job.discover", err) from err
            return next((p for p in pods.items if p.metadata.generate_name == prefix), None)

        retrying = Retrying(
            stop=stop_after_attempt(POD_DISCOVERY_MAX_ATTEMPTS),
            wait=wait_fixed(poll_interval),
            retry=retry_if_result(lambda found: found is None),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        pod = retrying(_find)
        if pod is None:
            raise BadPodNameError(job_name)
        logger.info("Job %s runs in pod %s", job_name, pod.metadata.name)
        return pod

    def _watch(
        self,
        namespace: str,
        job_name: str,
        pod_name: str,
        poll_interval: float,
        timeout: float | None,
    ) -> None:
        """Run the status and log watchers until both finish or one fails.

        Both watcher threads have exited by the time this returns, on every
        path: the stop event ends their polls and any open log stream is
        shut down.
        """
        stop = threading.Event()
        streams = _OpenStreams(stop)
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"job-{job_name}")
        futures = [
            executor.submit(self._watch_job_status, namespace, job_name, poll_interval, stop),
            executor.submit(self._stream_pod_logs, namespace, pod_name, poll_interval, stop, streams),
        ]
        try:
            done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    raise future.exception()
            if pending:
                raise JobTimeoutError(job_name, timeout)
        finally:
            stop.set()
            streams.shutdown()
            executor.shutdown(wait=True, cancel_futures=True)

    def _watch_job_status(self, namespace: str, job_name: str, poll_interval: float, stop: threading.Event) -> None:
        while True:
            try:
                job = self._batch.read_namespaced_job(job_name, namespace)
            except _API_ERRORS as err:
                raise OperationError("run_job.watch_status", err) from err
            status = job.status or k8s.V1JobStatus()
            active = status.active or 0
            if (status.succeeded or 0) > 0 and active == 0:
                return
            if (status.failed or 0) > 0 and active == 0:
                raise FailedJobError(job_name)
            if stop.wait(poll_interval):
                return

    def _stream_pod_logs(
        self,
        namespace: str,
        pod_name: str,
        poll_interval: float,
        stop: threading.Event,
        streams: _OpenStreams,
    ) -> None:
        while True:
            try:
                pod = self._core.read_namespaced_pod(pod_name, namespace)
            except _API_ERRORS as err:
                raise OperationError("run_job.stream_logs", err) from err
            phase = (pod.status and pod.status.phase) or POD_PHASE_PENDING
            if phase != POD_PHASE_PENDING:
                break
            if stop.wait(poll_interval):
                return

        sink = self._log_sink or sys.stdout
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            response = self._core.read_namespaced_pod_log(
                pod_name, namespace, follow=True, _preload_content=False,
            )
        except _API_ERRORS as err:
            raise OperationError("run_job.stream_logs", err) from err
        if not streams.add(response):
            response.release_conn()
            return
        try:
            for chunk in response.stream(LOG_CHUNK_SIZE):
                if stop.is_set():
                    return
                sink.write(decoder.decode(chunk))
                sink.flush()
            sink.write(decoder.decode(b"", final=True))
        except _API_ERRORS as err:
            if stop.is_set():
                return
            raise OperationError("run_job.stream_logs", err) from err
        finally:
            streams.release(response)

    def _cleanup(self, namespace: str, job_name: str, pod: k8s.V1Pod | None) -> None:
        try:
            self._batch.delete_namespaced_job(job_name, namespace)
            if pod is not None:
                self._core.delete_namespaced_pod(pod.metadata.name, namespace)
        except _API_ERRORS as err:
            raise OperationError("run_job.cleanup", err) from err
        logger.info("Deleted job %s/%s", namespace, job_name)
