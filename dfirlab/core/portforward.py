"""Port-forward job management.

Forwarding processes are tracked in an in-memory registry owned by the
running dfirlab process. Nothing is persisted: when that process exits,
its jobs are stopped with it.
"""

import logging
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

import httpx
from rich.table import Table

from dfirlab.core.cluster import tunnel_command
from dfirlab.core.errors import LabError
from dfirlab.core.k8s_client import API_ERRORS, K8sClientManager
from dfirlab.core.models import ForwardStatus, ServiceDescriptor
from dfirlab.core.utils import console, log

logger = logging.getLogger(__name__)

TUNNEL_JOB = "tunnel"


@dataclass
class ForwardJob:
    """A background forwarding process."""

    name: str
    service: str
    url: str
    process: subprocess.Popen
    started_at: datetime = field(default_factory=datetime.now)

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def terminate(self, timeout: float = 5.0) -> None:
        """Stop the process, killing it if it ignores SIGTERM."""
        if not self.is_alive():
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()

    def status(self) -> ForwardStatus:
        alive = self.is_alive()
        return ForwardStatus(
            name=self.name,
            service=self.service,
            url=self.url,
            alive=alive,
            pid=self.process.pid,
            returncode=None if alive else self.process.returncode,
        )


class PortForwardManager:
    """Starts, stops and reports ``kubectl port-forward`` jobs.

    At most one job per service name: starting a service that already has a
    job stops the old one first. Dead jobs are reported by ``status()`` but
    never restarted on their own.
    """

    def __init__(
        self,
        k8s: K8sClientManager,
        namespace: str,
        services: Iterable[ServiceDescriptor],
        context: Optional[str] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._k8s = k8s
        self._namespace = namespace
        self._services = {s.name: s for s in services}
        self._context = context
        self._popen = popen
        self._sleep = sleep
        self._jobs: Dict[str, ForwardJob] = {}

    @property
    def services(self) -> List[ServiceDescriptor]:
        return list(self._services.values())

    @property
    def jobs(self) -> Dict[str, ForwardJob]:
        return dict(self._jobs)

    def _select(self, names: Optional[Iterable[str]]) -> List[ServiceDescriptor]:
        if not names:
            return self.services
        unknown = [n for n in names if n not in self._services]
        if unknown:
            raise LabError(
                f"Unknown service: {', '.join(unknown)}. "
                f"Available: {', '.join(self._services)}"
            )
        return [self._services[n] for n in names]

    def forward_command(self, descriptor: ServiceDescriptor) -> List[str]:
        cmd = [
            "kubectl", "port-forward",
            "-n", self._namespace,
            f"svc/{descriptor.service}",
            f"{descriptor.local_port}:{descriptor.remote_port}",
        ]
        if self._context:
            cmd.extend(["--context", self._context])
        return cmd

    def _launch(self, cmd: List[str]) -> Optional[subprocess.Popen]:
        try:
            return self._popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            log(f"Failed to run {cmd[0]}: {e}", "error")
            return None

    def _stop_job(self, key: str) -> None:
        job = self._jobs.pop(key, None)
        if job is not None:
            job.terminate()
            logger.debug("Stopped %s (pid %s)", job.name, job.process.pid)

    def start(self, names: Optional[Iterable[str]] = None) -> List[ForwardJob]:
        """Start forwarding for the given services (all if none given).

        Returns:
            Jobs that were started

        Raises:
            LabError: If an unknown service name is given
        """
        started = []
        for descriptor in self._select(names):
            if descriptor.name in self._jobs:
                self._stop_job(descriptor.name)

            try:
                exists = self._k8s.service_exists(descriptor.service, self._namespace)
            except API_ERRORS as e:
                log(f"Could not look up svc/{descriptor.service}: {e}", "error")
                continue
            if not exists:
                log(
                    f"Service {descriptor.service} not found in {self._namespace}, "
                    f"skipping {descriptor.name}",
                    "warning",
                )
                continue

            process = self._launch(self.forward_command(descriptor))
            if process is None:
                continue

            job = ForwardJob(
                name=descriptor.job_name,
                service=descriptor.service,
                url=descriptor.url,
                process=process,
            )
            self._jobs[descriptor.name] = job
            started.append(job)
            log(
                f"Forwarding {descriptor.name}: {descriptor.url} -> "
                f"svc/{descriptor.service}:{descriptor.remote_port}",
                "success",
            )
        return started

    def start_tunnel(self, profile: str) -> Optional[ForwardJob]:
        """Run ``minikube tunnel`` as a tracked background job."""
        self._stop_job(TUNNEL_JOB)
        cmd = tunnel_command(profile)
        process = self._launch(cmd)
        if process is None:
            return None
        job = ForwardJob(name=TUNNEL_JOB, service="minikube tunnel", url="-", process=process)
        self._jobs[TUNNEL_JOB] = job
        log(f"Started minikube tunnel for profile {profile}", "success")
        return job

    def stop(self, names: Optional[Iterable[str]] = None) -> int:
        """Stop jobs by service name (all jobs if none given).

        Returns:
            Number of jobs stopped
        """
        if names:
            targets = [n for n in names if n in self._jobs]
        else:
            targets = list(self._jobs)

        if not targets:
            log("No port-forward jobs running, nothing to stop")
            return 0

        for key in targets:
            self._stop_job(key)
        log(f"Stopped {len(targets)} job(s)", "success")
        return len(targets)

    def restart(
        self, names: Optional[Iterable[str]] = None, pause: float = 2.0
    ) -> List[ForwardJob]:
        """Stop, wait briefly, then start again."""
        names = list(names) if names else None
        self._select(names)
        self.stop(names)
        self._sleep(pause)
        return self.start(names)

    def status(self) -> List[ForwardStatus]:
        """Liveness of every registered job."""
        return [job.status() for job in self._jobs.values()]

    def dead_jobs(self) -> List[str]:
        return [key for key, job in self._jobs.items() if not job.is_alive()]


def probe_endpoint(url: str, timeout: float = 2.0) -> bool:
    """Check whether something answers HTTP on a URL.

    Any HTTP response counts, including errors and redirects.
    """
    try:
        httpx.get(url, timeout=timeout)
        return True
    except httpx.HTTPError:
        return False


def forward_table(statuses: List[ForwardStatus]) -> Table:
    table = Table(title="Port-forward jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Service")
    table.add_column("URL", style="green")
    table.add_column("State")
    table.add_column("PID", justify="right")

    for status in statuses:
        if status.alive:
            state = "[green]running[/green]"
        else:
            state = f"[red]exited ({status.returncode})[/red]"
        table.add_row(status.name, status.service, status.url, state, str(status.pid or "-"))
    return table


SUPERVISOR_HELP = """Commands:
  status              show forwarding jobs
  start [svc ...]     start forwarding (all services if none given)
  stop [svc ...]      stop forwarding
  restart [svc ...]   stop, pause, start
  quit                stop all jobs and exit"""


def _prompt() -> str:
    return console.input("[bold]forward>[/bold] ")


def supervise(
    manager: PortForwardManager,
    read: Optional[Callable[[], str]] = None,
    pause: float = 2.0,
) -> None:
    """Keep the forwarding jobs alive until the user quits.

    All jobs are stopped when the loop ends, including on Ctrl+C.
    """
    read = read or _prompt
    console.print(SUPERVISOR_HELP)
    reported = set()
    try:
        while True:
            try:
                line = read()
            except EOFError:
                break

            for key in manager.dead_jobs():
                if key not in reported:
                    log(f"Job for {key} has exited; use 'restart {key}'", "warning")
                    reported.add(key)

            parts = line.split()
            if not parts:
                continue
            command, args = parts[0].lower(), parts[1:]

            try:
                if command in ("quit", "exit", "q"):
                    break
                elif command == "status":
                    console.print(forward_table(manager.status()))
                elif command == "start":
                    manager.start(args)
                elif command == "stop":
                    manager.stop(args)
                elif command == "restart":
                    manager.restart(args, pause=pause)
                elif command == "help":
                    console.print(SUPERVISOR_HELP)
                else:
                    log(f"Unknown command: {command} (try 'help')", "warning")
            except LabError as e:
                log(str(e), "error")
                continue

            reported &= set(manager.dead_jobs())
    except KeyboardInterrupt:
        console.print()
    finally:
        manager.stop()
