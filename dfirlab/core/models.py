"""Pydantic models for dfirlab."""

from typing import List, Optional

from pydantic import BaseModel, Field


# Service Models

class ServiceDescriptor(BaseModel):
    """A cluster service that gets forwarded to the workstation."""

    name: str = Field(..., description="Short service name used on the CLI")
    service: str = Field(..., description="Kubernetes service name")
    local_port: int = Field(..., description="Local port on the workstation")
    remote_port: int = Field(..., description="Service port inside the cluster")

    @property
    def job_name(self) -> str:
        """Deterministic name of the forwarding job for this service."""
        return f"pf-{self.name}"

    @property
    def url(self) -> str:
        return f"http://localhost:{self.local_port}"


class ForwardStatus(BaseModel):
    """Liveness of one port-forward job."""

    name: str = Field(..., description="Job name")
    service: str = Field(..., description="Kubernetes service name")
    url: str = Field(..., description="Local URL")
    alive: bool = Field(..., description="Whether the forwarding process is running")
    pid: Optional[int] = Field(default=None, description="Process ID")
    returncode: Optional[int] = Field(default=None, description="Exit code once dead")


# Credential Models

class CredentialSpec(BaseModel):
    """Where an operator login is stored in the cluster."""

    service: str = Field(..., description="Service name")
    secret_name: str = Field(..., description="Kubernetes secret name")
    key: str = Field(..., description="Field in the secret's data")
    username: str = Field(..., description="Fixed login username")
    url: str = Field(..., description="Local URL of the service")


class Credential(BaseModel):
    """A decoded operator login, or a marked miss."""

    service: str = Field(..., description="Service name")
    username: str = Field(..., description="Login username")
    url: str = Field(..., description="Local URL")
    password: Optional[str] = Field(default=None, description="Decoded password")
    found: bool = Field(default=False, description="Whether the secret field was read")
    message: Optional[str] = Field(default=None, description="Reason when not found")


# Readiness Models

class PodStatus(BaseModel):
    """Readiness of a single pod."""

    name: str = Field(..., description="Pod name")
    phase: str = Field(default="Unknown", description="Pod phase")
    ready: bool = Field(..., description="All containers ready")
    ready_containers: int = Field(default=0, description="Ready container count")
    total_containers: int = Field(default=0, description="Container count")
    restart_count: int = Field(default=0, description="Container restart count")


class PodSummary(BaseModel):
    """Ready versus total pods in a namespace."""

    namespace: str = Field(..., description="Namespace")
    ready: int = Field(default=0, description="Ready pods")
    total: int = Field(default=0, description="Counted pods")
    pods: List[PodStatus] = Field(default_factory=list, description="Per-pod status")


class ReadinessResult(BaseModel):
    """Outcome of a readiness poll."""

    namespace: str = Field(..., description="Namespace polled")
    ready: int = Field(default=0, description="Ready pods at the last tick")
    total: int = Field(default=0, description="Counted pods at the last tick")
    timed_out: bool = Field(default=False, description="Timeout elapsed before all ready")
    elapsed: float = Field(default=0.0, description="Seconds spent polling")
    ticks: int = Field(default=0, description="Number of status queries")
    last_progress: Optional[str] = Field(default=None, description="Last model download message")

    @property
    def all_ready(self) -> bool:
        return self.total > 0 and self.ready == self.total
