"""Lab deployment sequence: docker -> cluster -> terraform -> readiness -> forwards."""

import logging
import subprocess
from typing import Callable, List, Optional

from rich.panel import Panel
from rich.table import Table

from dfirlab.config import (
    REQUIRED_TOOLS,
    Settings,
    load_credential_specs,
    load_service_descriptors,
)
from dfirlab.core import cluster, docker, helm
from dfirlab.core.credentials import credentials_table, fetch_all
from dfirlab.core.errors import (
    ClusterUnreachableError,
    LabError,
    PrerequisiteMissingError,
    ToolError,
)
from dfirlab.core.k8s_client import API_ERRORS, K8sClientManager
from dfirlab.core.models import Credential, PodSummary, ReadinessResult
from dfirlab.core.portforward import PortForwardManager, probe_endpoint, supervise
from dfirlab.core.readiness import ReadinessPoller, snapshot
from dfirlab.core.terraform import TerraformRunner
from dfirlab.core.utils import (
    check_prerequisites,
    confirm,
    console,
    log,
    log_header,
    log_subheader,
)

logger = logging.getLogger(__name__)


class LabOrchestrator:
    """Runs the lab lifecycle against one release and namespace.

    Hard failures in the early deploy steps raise LabError and stop the
    sequence. Everything after provisioning degrades to warnings.
    """

    def __init__(
        self,
        settings: Settings,
        k8s_factory: Callable[..., K8sClientManager] = K8sClientManager,
    ) -> None:
        self.settings = settings
        self._k8s_factory = k8s_factory
        self._k8s: Optional[K8sClientManager] = None

    @property
    def k8s(self) -> K8sClientManager:
        """Kubernetes client for the lab context, created on first use.

        Raises:
            ClusterUnreachableError: If no kubeconfig for the context exists
        """
        if self._k8s is None:
            self._k8s = self._k8s_factory(
                kubeconfig_path=self.settings.kubeconfig_path,
                context=self.settings.context,
            )
        return self._k8s

    def forward_manager(self) -> PortForwardManager:
        return PortForwardManager(
            self.k8s,
            self.settings.namespace,
            load_service_descriptors(self.settings),
            context=self.settings.context,
        )

    # Deploy steps

    def check_tools(self) -> None:
        if not check_prerequisites(REQUIRED_TOOLS):
            raise PrerequisiteMissingError("Missing required tools")

    def ensure_docker(self) -> None:
        if not docker.ensure_docker_running(timeout=self.settings.docker_start_timeout):
            raise LabError("Docker is not running")

    def ensure_cluster(self) -> None:
        if not cluster.start_cluster(self.settings):
            raise ClusterUnreachableError(
                f"Could not start Minikube profile {self.settings.minikube_profile}"
            )
        cluster.wait_for_cluster_ready(self.settings.context)
        if self.settings.minikube_addons:
            cluster.enable_addons(self.settings.minikube_profile, self.settings.minikube_addons)

    def provision(self, dry_run: bool = False) -> int:
        """terraform init followed by apply (or plan on a dry run).

        Raises:
            ToolError: If terraform exits non-zero
        """
        runner = TerraformRunner.from_settings(self.settings)

        rc = runner.init()
        if rc != 0:
            raise ToolError(["terraform", "init"], rc)

        if dry_run:
            rc = runner.plan()
            if rc != 0:
                raise ToolError(["terraform", "plan"], rc)
            log("Dry run: plan complete, nothing applied", "success")
            return rc

        rc = runner.apply()
        if rc != 0:
            raise ToolError(["terraform", "apply"], rc)
        log(f"Release {self.settings.release_name} applied", "success")
        return rc

    def wait_ready(self, timeout: Optional[int] = None) -> ReadinessResult:
        """Poll readiness; never raises."""
        timeout = self.settings.readiness_timeout if timeout is None else timeout
        try:
            k8s = self.k8s
        except ClusterUnreachableError as e:
            log(f"Cannot poll readiness: {e}", "warning")
            return ReadinessResult(namespace=self.settings.namespace, timed_out=True)

        if not k8s.test_connection():
            log(
                f"Kubernetes API for context {self.settings.context} is unreachable; "
                "polling anyway",
                "warning",
            )

        poller = ReadinessPoller(
            k8s,
            self.settings.namespace,
            timeout=timeout,
            interval=self.settings.poll_interval,
            progress_selector=self.settings.ollama_selector,
            progress_container=self.settings.ollama_init_container,
        )
        return poller.wait()

    def deploy(
        self,
        dry_run: bool = False,
        skip_docker: bool = False,
        skip_cluster: bool = False,
        forward: bool = True,
        tunnel: bool = False,
        timeout: Optional[int] = None,
        read: Optional[Callable[[], str]] = None,
    ) -> ReadinessResult:
        """Full deployment sequence.

        Raises:
            LabError: On a hard failure before or during provisioning
        """
        log_header(f"Deploying {self.settings.release_name}")
        self.check_tools()

        if not skip_docker:
            log_header("Container Engine")
            self.ensure_docker()

        if not skip_cluster:
            log_header("Minikube Cluster")
            self.ensure_cluster()

        log_header("Terraform")
        self.provision(dry_run=dry_run)
        if dry_run:
            return ReadinessResult(namespace=self.settings.namespace)

        log_header("Waiting for Workloads")
        result = self.wait_ready(timeout)

        manager = None
        if forward:
            log_header("Port Forwarding")
            manager = self._start_forwards(tunnel)

        console.print()
        console.print(summary_panel(self.settings, result))

        log_header("Credentials")
        self.credentials()

        if manager is not None:
            supervise(manager, read=read, pause=self.settings.restart_pause)
        return result

    def _start_forwards(self, tunnel: bool) -> Optional[PortForwardManager]:
        try:
            manager = self.forward_manager()
        except ClusterUnreachableError as e:
            log(f"Skipping port forwarding: {e}", "warning")
            return None
        if tunnel:
            manager.start_tunnel(self.settings.minikube_profile)
        manager.start()
        return manager

    # Other actions

    def forward(
        self,
        services: Optional[List[str]] = None,
        tunnel: bool = False,
        read: Optional[Callable[[], str]] = None,
    ) -> None:
        """Start forwards and stay attached until the user quits."""
        manager = self.forward_manager()
        if tunnel:
            manager.start_tunnel(self.settings.minikube_profile)
        manager.start(services)
        supervise(manager, read=read, pause=self.settings.restart_pause)

    def start(self, skip_docker: bool = False) -> None:
        if not skip_docker:
            self.ensure_docker()
        self.ensure_cluster()

    def stop(self) -> bool:
        return cluster.stop_cluster(self.settings.minikube_profile)

    def teardown(
        self,
        force: bool = False,
        delete_cluster: bool = False,
        dry_run: bool = False,
    ) -> int:
        """Destroy the release, clean up leftovers, optionally delete the cluster.

        Args:
            force: Skip the confirmation prompt
            delete_cluster: Also delete the Minikube profile
            dry_run: Only print what would be done

        Returns:
            terraform destroy's exit code (0 if cancelled)
        """
        settings = self.settings
        if not dry_run and not force:
            target = f"release {settings.release_name} in {settings.namespace}"
            if delete_cluster:
                target += f" and Minikube profile {settings.minikube_profile}"
            if not confirm(f"Destroy {target}?"):
                log("Teardown cancelled")
                return 0

        if dry_run:
            log(f"Would run terraform destroy in {settings.terraform_dir}")
            log(f"Would uninstall Helm release {settings.release_name} if left over")
            if delete_cluster:
                log(f"Would delete Minikube profile {settings.minikube_profile}")
            return 0

        log_header("Terraform Destroy")
        rc = TerraformRunner.from_settings(settings).destroy()
        if rc != 0:
            log(f"terraform destroy failed (exit {rc})", "error")
        else:
            log("Infrastructure destroyed", "success")

        log_header("Cleanup")
        helm.uninstall_release(settings.release_name, settings.namespace, settings.context)

        if delete_cluster:
            cluster.delete_cluster(settings.minikube_profile)
        return rc

    def credentials(self, service: Optional[str] = None) -> List[Credential]:
        """Print operator credentials; missing secrets are marked, not raised."""
        try:
            k8s = self.k8s
        except ClusterUnreachableError as e:
            log(f"Cannot read credentials: {e}", "warning")
            return []

        specs = load_credential_specs(self.settings)
        if service is not None and service not in {s.service for s in specs}:
            raise LabError(
                f"No credentials for {service}. "
                f"Available: {', '.join(s.service for s in specs)}"
            )
        creds = fetch_all(k8s, specs, self.settings.namespace, service)
        console.print(credentials_table(creds))
        return creds

    def pod_summary(self) -> Optional[PodSummary]:
        try:
            k8s = self.k8s
            if not k8s.test_connection():
                log(f"Kubernetes API for context {self.settings.context} is unreachable", "warning")
                return None
            return snapshot(k8s, self.settings.namespace)
        except ClusterUnreachableError as e:
            log(str(e), "warning")
        except API_ERRORS as e:
            log(f"Could not list pods: {e}", "warning")
        return None

    def status(self) -> Optional[PodSummary]:
        """Print cluster, release, pod and endpoint status."""
        settings = self.settings
        log_header("Lab Status")

        log_subheader("Cluster")
        info = cluster.get_cluster_info(settings.minikube_profile)
        console.print(f"  Profile:   {info['name']}")
        console.print(f"  Host:      {info['host']}")
        console.print(f"  API:       {info['apiserver']}")
        if info.get("ip"):
            console.print(f"  IP:        {info['ip']}")
        console.print()

        log_subheader("Helm Release")
        release = helm.get_release_status(settings.release_name, settings.namespace, settings.context)
        if release["installed"]:
            console.print(
                f"  {release['name']}: {release['status']} "
                f"(revision {release['revision']}, {release['chart']})"
            )
        else:
            console.print(f"  {release['name']}: not installed")
        console.print()

        summary = None
        if info["exists"] and info["host"] == "Running":
            summary = self.pod_summary()
        if summary is not None:
            console.print(pods_table(summary))

            log_subheader("Services")
            for descriptor in load_service_descriptors(settings):
                try:
                    exists = self.k8s.service_exists(descriptor.service, settings.namespace)
                except API_ERRORS:
                    exists = False
                reachable = probe_endpoint(descriptor.url)
                console.print(
                    f"  {descriptor.name:<14} svc/{descriptor.service:<32} "
                    f"{'present' if exists else '[yellow]missing[/yellow]':<10} "
                    f"{descriptor.url} "
                    f"{'[green]reachable[/green]' if reachable else '[dim]not forwarded[/dim]'}"
                )
        return summary

    def logs(self, service: str, tail: Optional[int] = None, previous: bool = False) -> int:
        """Stream logs of a service's pod until interrupted."""
        descriptors = {d.name: d for d in load_service_descriptors(self.settings)}
        if service not in descriptors:
            raise LabError(f"Unknown service: {service}. Available: {', '.join(descriptors)}")

        cmd = [
            "kubectl", "logs", "-f",
            f"svc/{descriptors[service].service}",
            "-n", self.settings.namespace,
            "--context", self.settings.context,
        ]
        if previous:
            cmd.append("--previous")
        if tail:
            cmd.append(f"--tail={tail}")

        log(f"Streaming logs from {service}...")
        try:
            return subprocess.run(cmd).returncode
        except KeyboardInterrupt:
            return 0

    def build_image(self, component: str, tag: Optional[str] = None, load: bool = True) -> str:
        """Build an auxiliary image and load it into the cluster."""
        success, image = docker.build_image(component, tag)
        if not success:
            raise LabError(f"Failed to build {component}")
        if load and not docker.load_image_to_minikube(image, self.settings.minikube_profile):
            raise LabError(f"Failed to load {image} into Minikube")
        return image


def pods_table(summary: PodSummary) -> Table:
    table = Table(title=f"Pods in {summary.namespace}: {summary.ready}/{summary.total} ready")
    table.add_column("Pod", style="cyan")
    table.add_column("Phase", style="magenta")
    table.add_column("Ready")
    table.add_column("Restarts", style="yellow", justify="right")

    for pod in summary.pods:
        ready = f"{pod.ready_containers}/{pod.total_containers}"
        table.add_row(
            pod.name,
            pod.phase,
            f"[green]{ready}[/green]" if pod.ready else f"[red]{ready}[/red]",
            str(pod.restart_count),
        )
    return table


def summary_panel(settings: Settings, result: ReadinessResult) -> Panel:
    """Closing summary after a deploy."""
    lines = [f"[bold]Release:[/bold] {settings.release_name} in {settings.namespace}"]
    if result.all_ready:
        lines.append(f"[green]All {result.total} pods ready[/green]")
    else:
        lines.append(
            f"[yellow]{result.ready}/{result.total} pods ready; "
            "run 'dfirlab status' to check again[/yellow]"
        )
    lines.append("")
    for descriptor in load_service_descriptors(settings):
        lines.append(f"  {descriptor.name:<14} {descriptor.url}")
    return Panel("\n".join(lines), title="OSDFIR Lab", border_style="cyan")
