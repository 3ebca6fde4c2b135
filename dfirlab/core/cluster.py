"""Minikube cluster management for dfirlab."""

import json
import logging
from typing import Iterable, List

from dfirlab.config import TIMEOUT_CLUSTER_START, TIMEOUT_NODE_READY, Settings
from dfirlab.core.utils import log, run_quiet

logger = logging.getLogger(__name__)


def get_cluster_status(profile: str) -> dict:
    """Query ``minikube status`` for a profile.

    Minikube exits non-zero for stopped clusters but still prints JSON,
    so the exit code is ignored.

    Args:
        profile: Minikube profile name

    Returns:
        Status dictionary (Host, Kubelet, APIServer, ...) or {} if the
        profile does not exist
    """
    success, output = run_quiet(
        ["minikube", "status", "-p", profile, "-o", "json"],
        check=False,
        timeout=60,
    )
    if not success or not output.strip():
        return {}
    try:
        status = json.loads(output)
    except json.JSONDecodeError:
        # "Profile not found" and similar plain text
        logger.debug("minikube status: %s", output.strip())
        return {}
    # Multi-node clusters print a list, the first entry is the control plane
    if isinstance(status, list):
        status = status[0] if status else {}
    return status if isinstance(status, dict) else {}


def cluster_exists(profile: str) -> bool:
    """Check if a Minikube profile exists."""
    return bool(get_cluster_status(profile))


def is_cluster_running(profile: str) -> bool:
    """Check if the cluster host and API server are running."""
    status = get_cluster_status(profile)
    return status.get("Host") == "Running" and status.get("APIServer") == "Running"


def start_command(settings: Settings) -> List[str]:
    """Build the ``minikube start`` command for the lab profile."""
    return [
        "minikube", "start",
        "-p", settings.minikube_profile,
        "--driver", settings.minikube_driver,
        "--cpus", str(settings.minikube_cpus),
        "--memory", settings.minikube_memory,
        "--disk-size", settings.minikube_disk_size,
        "--kubernetes-version", settings.kubernetes_version,
    ]


def start_cluster(settings: Settings) -> bool:
    """Create or start the Minikube cluster.

    Args:
        settings: Lab settings with profile and sizing

    Returns:
        True if the cluster is running afterwards
    """
    profile = settings.minikube_profile
    if is_cluster_running(profile):
        log(f"Cluster '{profile}' is already running", "success")
        return True

    action = "Starting" if cluster_exists(profile) else "Creating"
    log(f"{action} Minikube cluster '{profile}'...")

    success, output = run_quiet(start_command(settings), timeout=TIMEOUT_CLUSTER_START)
    if not success:
        log(f"Failed to start cluster: {output.strip()}", "error")
        return False

    log(f"Cluster '{profile}' is running", "success")
    return True


def stop_cluster(profile: str) -> bool:
    """Stop the Minikube cluster, keeping its state.

    Returns:
        True if stopped or not running
    """
    if not cluster_exists(profile):
        log(f"Cluster '{profile}' does not exist", "warning")
        return True

    log(f"Stopping cluster '{profile}'...")
    success, output = run_quiet(["minikube", "stop", "-p", profile], timeout=300)
    if success:
        log(f"Cluster '{profile}' stopped", "success")
    else:
        log(f"Failed to stop cluster: {output.strip()}", "error")
    return success


def delete_cluster(profile: str) -> bool:
    """Delete the Minikube cluster.

    Returns:
        True if cluster was deleted or didn't exist
    """
    if not cluster_exists(profile):
        log(f"Cluster '{profile}' does not exist", "warning")
        return True

    log(f"Deleting cluster '{profile}'...")
    success, output = run_quiet(["minikube", "delete", "-p", profile], timeout=300)
    if success:
        log(f"Cluster '{profile}' deleted", "success")
    else:
        log(f"Failed to delete cluster: {output.strip()}", "error")
    return success


def enable_addons(profile: str, addons: Iterable[str]) -> bool:
    """Enable Minikube addons; failures are warnings."""
    all_enabled = True
    for addon in addons:
        success, output = run_quiet(
            ["minikube", "addons", "enable", addon, "-p", profile],
            timeout=300,
        )
        if success:
            log(f"Addon {addon} enabled", "success")
        else:
            log(f"Could not enable addon {addon}: {output.strip()}", "warning")
            all_enabled = False
    return all_enabled


def wait_for_cluster_ready(context: str, timeout: int = TIMEOUT_NODE_READY) -> bool:
    """Wait for all nodes to report Ready.

    Args:
        context: Kube context name
        timeout: Timeout in seconds

    Returns:
        True if cluster is ready
    """
    log("Waiting for cluster to be ready...")

    success, _ = run_quiet(
        [
            "kubectl", "wait", "--for=condition=Ready", "node", "--all",
            f"--timeout={timeout}s", "--context", context,
        ],
        timeout=timeout + 10,
    )

    if success:
        log("Cluster is ready", "success")
    else:
        log("Cluster not ready within timeout", "warning")

    return success


def get_cluster_info(profile: str) -> dict:
    """Get information about the Minikube cluster.

    Returns:
        Dictionary with cluster information
    """
    status = get_cluster_status(profile)
    info = {
        "name": profile,
        "exists": bool(status),
        "host": status.get("Host", "Nonexistent"),
        "kubelet": status.get("Kubelet", "-"),
        "apiserver": status.get("APIServer", "-"),
        "kubeconfig": status.get("Kubeconfig", "-"),
    }

    if status.get("Host") == "Running":
        success, output = run_quiet(["minikube", "ip", "-p", profile], timeout=30)
        info["ip"] = output.strip() if success else None

    return info


def tunnel_command(profile: str) -> List[str]:
    """Command for the long-running Minikube tunnel process."""
    return ["minikube", "tunnel", "-p", profile]
