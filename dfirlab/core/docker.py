"""Container engine control and auxiliary image builds."""

import logging
import platform
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

from dfirlab.config import DOCKERFILES, IMAGES, TIMEOUT_BUILD, get_project_root
from dfirlab.core.utils import log, run, run_json, run_quiet

logger = logging.getLogger(__name__)

DOCKER_DESKTOP_WINDOWS = r"C:\Program Files\Docker\Docker\Docker Desktop.exe"


def get_timestamp_tag() -> str:
    """Generate a timestamp-based tag for unique image identification.

    Returns:
        Timestamp tag (e.g., "1706025600")
    """
    return str(int(time.time()))


def is_docker_running() -> bool:
    """Check whether the Docker daemon answers.

    Returns:
        True if ``docker info`` reports a server version
    """
    info = run_json(["docker", "info", "--format", "{{json .}}"], timeout=30)
    if not isinstance(info, dict):
        return False
    # docker info exits 0 with ServerErrors when only the client is up
    return bool(info.get("ServerVersion")) and not info.get("ServerErrors")


def start_command(system: Optional[str] = None) -> Optional[List[str]]:
    """Command that launches the container engine on this platform."""
    system = system or platform.system()
    if system == "Darwin":
        return ["open", "-a", "Docker"]
    if system == "Windows":
        return [DOCKER_DESKTOP_WINDOWS]
    if system == "Linux":
        if Path.home().joinpath(".docker", "desktop").exists():
            return ["systemctl", "--user", "start", "docker-desktop"]
        return ["sudo", "-n", "systemctl", "start", "docker"]
    return None


def start_docker_engine() -> bool:
    """Launch the container engine without waiting for it.

    Returns:
        True if a launch command was issued
    """
    cmd = start_command()
    if cmd is None:
        log("Don't know how to start Docker on this platform", "error")
        return False

    log(f"Starting Docker ({' '.join(cmd)})...")
    try:
        # Docker Desktop keeps running after the launcher exits
        subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        return True
    except OSError as e:
        log(f"Failed to start Docker: {e}", "error")
        return False


def ensure_docker_running(
    timeout: int = 120,
    interval: int = 5,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Make sure the Docker daemon is up, starting it if necessary.

    Args:
        timeout: Seconds to wait for the daemon after starting it
        interval: Seconds between checks

    Returns:
        True if Docker is running
    """
    if is_docker_running():
        log("Docker is running", "success")
        return True

    log("Docker is not running", "warning")
    if not start_docker_engine():
        return False

    deadline = clock() + timeout
    while clock() < deadline:
        sleep(interval)
        if is_docker_running():
            log("Docker is running", "success")
            return True
        logger.debug("Docker not up yet, %.0fs left", deadline - clock())

    log(f"Docker did not start within {timeout}s", "error")
    return False


def build_image(
    component: str,
    tag: Optional[str] = None,
    project_root: Optional[Path] = None,
) -> tuple[bool, str]:
    """Build a Docker image for an auxiliary component.

    Args:
        component: Component name (see IMAGES)
        tag: Image tag (defaults to timestamp)
        project_root: Project root directory

    Returns:
        Tuple of (success, full_image_name)
    """
    if component not in IMAGES:
        log(f"Unknown component: {component}", "error")
        return False, ""

    if project_root is None:
        project_root = get_project_root()

    if tag is None:
        tag = get_timestamp_tag()

    dockerfile = project_root / DOCKERFILES[component]
    full_image = f"{IMAGES[component]}:{tag}"

    if not dockerfile.exists():
        log(f"Dockerfile not found: {dockerfile}", "error")
        return False, ""

    log(f"Building {component} image ({full_image})...")

    cmd = [
        "docker", "build",
        "-f", str(dockerfile),
        "-t", full_image,
        str(dockerfile.parent),
    ]

    try:
        run(cmd, timeout=TIMEOUT_BUILD)
        log(f"Built {full_image}", "success")
        return True, full_image
    except subprocess.CalledProcessError as e:
        log(f"Failed to build {component}: {e}", "error")
        return False, ""
    except subprocess.TimeoutExpired:
        log(f"Build timed out for {component}", "error")
        return False, ""


def load_image_to_minikube(image: str, profile: str) -> bool:
    """Load a locally built image into the Minikube node.

    Args:
        image: Full image name (e.g., dfirlab-hashr:1706025600)
        profile: Minikube profile

    Returns:
        True if image was loaded successfully
    """
    log(f"Loading {image} into Minikube...")

    success, output = run_quiet(
        ["minikube", "image", "load", image, "-p", profile],
        timeout=600,
    )
    if success:
        log(f"Loaded {image}", "success")
    else:
        log(f"Failed to load {image}: {output.strip()}", "error")
    return success
