"""Deployment readiness polling for the lab namespace."""

import logging
import time
from typing import Callable, List, Optional

from dfirlab.core.k8s_client import API_ERRORS, K8sClientManager
from dfirlab.core.models import PodStatus, PodSummary, ReadinessResult
from dfirlab.core.progress import GENERIC_MESSAGE, describe_model_pull
from dfirlab.core.utils import log

logger = logging.getLogger(__name__)


def pod_is_ready(pod) -> bool:
    """A pod is ready when every container reports ready."""
    statuses = pod.status.container_statuses if pod.status else None
    return bool(statuses) and all(cs.ready for cs in statuses)


def pod_status(pod) -> PodStatus:
    statuses = (pod.status.container_statuses if pod.status else None) or []
    return PodStatus(
        name=pod.metadata.name,
        phase=(pod.status.phase if pod.status else None) or "Unknown",
        ready=pod_is_ready(pod),
        ready_containers=sum(1 for cs in statuses if cs.ready),
        total_containers=len(statuses),
        restart_count=sum(cs.restart_count or 0 for cs in statuses),
    )


def summarize_pods(namespace: str, pods: List) -> PodSummary:
    """Count ready versus total pods.

    Completed pods (hooks, jobs) never become ready and are left out of
    both counts.
    """
    counted = [s for s in map(pod_status, pods) if s.phase != "Succeeded"]
    return PodSummary(
        namespace=namespace,
        ready=sum(1 for p in counted if p.ready),
        total=len(counted),
        pods=counted,
    )


def snapshot(k8s: K8sClientManager, namespace: str) -> PodSummary:
    """Current readiness of the namespace.

    Raises:
        ApiException: If the pods cannot be listed
    """
    return summarize_pods(namespace, k8s.list_pods(namespace))


class ReadinessPoller:
    """Polls pod readiness until everything is ready or the budget runs out.

    The outcome is reported, never raised: a timeout is a warning and the
    caller carries on.
    """

    def __init__(
        self,
        k8s: K8sClientManager,
        namespace: str,
        timeout: int = 600,
        interval: int = 15,
        progress_selector: Optional[str] = None,
        progress_container: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the poller.

        Args:
            k8s: Kubernetes client manager
            namespace: Namespace to observe
            timeout: Time budget in seconds
            interval: Seconds between polls
            progress_selector: Label selector of the workload with a model
                download init step
            progress_container: Name of that init container
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self._k8s = k8s
        self._namespace = namespace
        self._timeout = timeout
        self._interval = interval
        self._progress_selector = progress_selector
        self._progress_container = progress_container
        self._sleep = sleep
        self._clock = clock

    def _poll_once(self) -> Optional[PodSummary]:
        try:
            return snapshot(self._k8s, self._namespace)
        except API_ERRORS as e:
            logger.debug("Pod query failed, counting as no progress: %s", e)
            return None

    def model_progress(self) -> Optional[str]:
        """Describe the model download step, or None if it is not running."""
        if not (self._progress_selector and self._progress_container):
            return None

        try:
            pods = self._k8s.list_pods(self._namespace, self._progress_selector)
        except API_ERRORS as e:
            logger.debug("Could not list model pods: %s", e)
            return None

        for pod in pods:
            init_statuses = (pod.status.init_container_statuses if pod.status else None) or []
            for cs in init_statuses:
                if cs.name != self._progress_container:
                    continue
                if cs.state and cs.state.terminated:
                    return None
                try:
                    text = self._k8s.read_container_log(
                        pod.metadata.name,
                        self._namespace,
                        container=self._progress_container,
                    )
                except API_ERRORS as e:
                    logger.debug("Could not read model download log: %s", e)
                    return GENERIC_MESSAGE
                return describe_model_pull(text)
        return None

    def wait(self) -> ReadinessResult:
        """Poll until all pods are ready or the timeout elapses.

        Returns:
            ReadinessResult with the last observed counts
        """
        log(f"Waiting for pods in {self._namespace} (timeout {self._timeout}s)...")
        start = self._clock()
        ready = total = ticks = 0
        progress = None

        while True:
            summary = self._poll_once()
            ticks += 1
            if summary is not None:
                ready, total = summary.ready, summary.total
            elapsed = self._clock() - start

            if total > 0 and ready == total:
                log(f"All {total} pods ready after {elapsed:.0f}s", "success")
                return ReadinessResult(
                    namespace=self._namespace,
                    ready=ready,
                    total=total,
                    elapsed=elapsed,
                    ticks=ticks,
                    last_progress=progress,
                )

            message = self.model_progress()
            if message:
                progress = message
                log(f"Ollama: {message}", "step")
            log(f"{ready}/{total} pods ready ({elapsed:.0f}s elapsed)")

            remaining = self._timeout - elapsed
            if remaining <= 0:
                log(
                    f"Timed out after {self._timeout}s with {ready}/{total} pods ready; "
                    "workloads may still come up",
                    "warning",
                )
                return ReadinessResult(
                    namespace=self._namespace,
                    ready=ready,
                    total=total,
                    timed_out=True,
                    elapsed=elapsed,
                    ticks=ticks,
                    last_progress=progress,
                )

            self._sleep(min(self._interval, remaining))
