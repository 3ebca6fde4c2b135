"""Helm release queries for dfirlab."""

from typing import List, Optional

from dfirlab.core.utils import log, run_json, run_quiet


def list_releases(namespace: str, context: Optional[str] = None) -> List[dict]:
    """List Helm releases in a namespace.

    Args:
        namespace: Kubernetes namespace
        context: Kube context (uses current context if not specified)

    Returns:
        Releases as reported by ``helm list -o json`` (empty on failure)
    """
    cmd = ["helm", "list", "-n", namespace, "-o", "json"]
    if context:
        cmd.extend(["--kube-context", context])
    releases = run_json(cmd, timeout=60)
    return releases if isinstance(releases, list) else []


def is_release_installed(
    name: str, namespace: str, context: Optional[str] = None
) -> bool:
    """Check if a Helm release is installed.

    Args:
        name: Release name
        namespace: Kubernetes namespace

    Returns:
        True if release is installed
    """
    return any(r.get("name") == name for r in list_releases(namespace, context))


def get_release_status(
    name: str, namespace: str, context: Optional[str] = None
) -> dict:
    """Get status of a Helm release.

    Returns:
        Dictionary with installed flag and, when installed, status,
        revision, chart and app version
    """
    status = {"name": name, "namespace": namespace, "installed": False}

    for release in list_releases(namespace, context):
        if release.get("name") != name:
            continue
        status.update(
            installed=True,
            status=release.get("status", "unknown"),
            revision=release.get("revision", "?"),
            chart=release.get("chart", "?"),
            app_version=release.get("app_version", "?"),
            updated=release.get("updated"),
        )
        break

    return status


def uninstall_release(
    name: str, namespace: str, context: Optional[str] = None
) -> bool:
    """Uninstall a Helm release.

    Args:
        name: Release name
        namespace: Kubernetes namespace

    Returns:
        True if release was uninstalled or was not installed
    """
    if not is_release_installed(name, namespace, context):
        log(f"Release {name} is not installed", "warning")
        return True

    log(f"Uninstalling {name}...")
    cmd = ["helm", "uninstall", name, "-n", namespace, "--wait"]
    if context:
        cmd.extend(["--kube-context", context])
    success, output = run_quiet(cmd, timeout=600)
    if success:
        log(f"Uninstalled {name}", "success")
    else:
        log(f"Failed to uninstall {name}: {output.strip()}", "error")
    return success
