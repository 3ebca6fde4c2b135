"""Configuration for the dfirlab deployment tool."""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from dfirlab.core.errors import LabError
from dfirlab.core.models import CredentialSpec, ServiceDescriptor


def get_project_root() -> Path:
    """Get the project root directory."""
    # This file is at dfirlab/config.py
    return Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Lab configuration settings."""

    # Helm release / namespace
    release_name: str = "osdfir-lab"
    namespace: str = "osdfir"

    # Minikube
    minikube_profile: str = "osdfir"
    minikube_driver: str = "docker"
    minikube_cpus: int = 4
    minikube_memory: str = "8g"
    minikube_disk_size: str = "40g"
    kubernetes_version: str = "stable"
    minikube_addons: List[str] = ["metrics-server"]

    # Kubernetes client
    kubeconfig_path: Optional[str] = None
    kube_context: Optional[str] = None

    # Terraform
    terraform_dir: Path = get_project_root() / "terraform"
    values_file: Optional[Path] = None

    # Readiness polling (seconds)
    readiness_timeout: int = 600
    poll_interval: int = 15
    restart_pause: float = 2.0
    docker_start_timeout: int = 120

    # Ollama model download init step
    ollama_selector: str = "app.kubernetes.io/name=ollama"
    ollama_init_container: str = "model-puller"

    # Optional YAML replacement for the service descriptor set
    services_file: Optional[Path] = None

    class Config:
        """Pydantic config."""

        env_prefix = "DFIRLAB_"
        case_sensitive = False

    @property
    def context(self) -> str:
        """Kube context name; Minikube names it after the profile."""
        return self.kube_context or self.minikube_profile

    @property
    def resolved_values_file(self) -> Path:
        return self.values_file or self.terraform_dir / "values.yaml"


# External tools and how to probe them
REQUIRED_TOOLS = {
    "docker": ["docker", "--version"],
    "minikube": ["minikube", "version", "--short"],
    "kubectl": ["kubectl", "version", "--client"],
    "helm": ["helm", "version", "--short"],
    "terraform": ["terraform", "version"],
}

# Service descriptors: (name, service name template, local port, remote port)
SERVICES = [
    ("timesketch", "{release}-timesketch", 5000, 5000),
    ("openrelik", "{release}-openrelik", 8711, 8711),
    ("openrelik-api", "{release}-openrelik-api", 8710, 8710),
    ("yeti", "{release}-yeti", 9000, 80),
    ("ollama", "ollama", 11434, 11434),
]

# Operator credentials stored in cluster secrets
CREDENTIALS = [
    ("timesketch", "{release}-timesketch-secret", "timesketch-user", "timesketch",
     "http://localhost:5000"),
    ("openrelik", "{release}-openrelik-secret", "openrelik-user", "admin",
     "http://localhost:8711"),
    ("yeti", "{release}-yeti-secret", "yeti-user", "yeti",
     "http://localhost:9000"),
]

# Auxiliary images that can be built locally and loaded into Minikube
IMAGES = {
    "hashr": "dfirlab-hashr",
}

DOCKERFILES = {
    "hashr": "docker/hashr.Dockerfile",
}

# Upstream configuration data bundled for Timesketch
TIMESKETCH_REPO = "https://github.com/google/timesketch"
DFIQ_REPO = "https://github.com/google/dfiq"
DEFAULT_TS_REF = "master"
DEFAULT_DFIQ_REF = "main"
DEFAULT_CUSTOM_CONFIG_DIR = "configs/timesketch"
DEFAULT_BUNDLE_FILE = "terraform/files/ts-configs.tgz.b64"

# Timeouts (seconds)
TIMEOUT_BUILD = 900
TIMEOUT_CLUSTER_START = 600
TIMEOUT_TERRAFORM = 1800
TIMEOUT_NODE_READY = 120


def load_service_descriptors(settings: Settings) -> List[ServiceDescriptor]:
    """Build the service descriptor set for a release.

    Uses ``settings.services_file`` when set, otherwise the built-in table.

    Raises:
        LabError: If the services file is missing or malformed
    """
    if settings.services_file is None:
        rows = [
            {"name": name, "service": service, "local_port": local, "remote_port": remote}
            for name, service, local, remote in SERVICES
        ]
    else:
        path = Path(settings.services_file)
        if not path.exists():
            raise LabError(f"Services file not found: {path}")
        data = yaml.safe_load(path.read_text()) or {}
        rows = data.get("services", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise LabError(f"Services file {path} must contain a list of services")

    descriptors = []
    for row in rows:
        try:
            descriptor = ServiceDescriptor(**row)
        except (TypeError, ValidationError) as e:
            raise LabError(f"Invalid service entry {row!r}: {e}")
        descriptors.append(
            descriptor.model_copy(
                update={"service": descriptor.service.format(release=settings.release_name)}
            )
        )
    return descriptors


def load_credential_specs(settings: Settings) -> List[CredentialSpec]:
    """Credential descriptors for the configured release."""
    return [
        CredentialSpec(
            service=service,
            secret_name=secret.format(release=settings.release_name),
            key=key,
            username=username,
            url=url,
        )
        for service, secret, key, username, url in CREDENTIALS
    ]
