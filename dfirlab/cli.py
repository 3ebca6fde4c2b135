"""CLI interface for the dfirlab deployment tool."""

from pathlib import Path
from typing import Optional, Tuple

import click
from pydantic import ValidationError
from rich.panel import Panel

from dfirlab import __version__
from dfirlab.config import (
    DEFAULT_BUNDLE_FILE,
    DEFAULT_CUSTOM_CONFIG_DIR,
    DEFAULT_DFIQ_REF,
    DEFAULT_TS_REF,
    IMAGES,
    Settings,
    get_project_root,
)
from dfirlab.core.bundle import backup_workspace, build_config_bundle
from dfirlab.core.errors import LabError
from dfirlab.core.orchestrator import LabOrchestrator
from dfirlab.core.utils import console, log, setup_logging


class LabGroup(click.Group):
    """Command group that refuses unknown actions before anything runs."""

    def resolve_command(self, ctx, args):
        cmd_name = args[0] if args else None
        if cmd_name and not cmd_name.startswith("-") and self.get_command(ctx, cmd_name) is None:
            log(f"Unknown action: {cmd_name}", "error")
            click.echo(ctx.get_help())
            ctx.exit(1)
        return super().resolve_command(ctx, args)


def _orchestrator(ctx: click.Context) -> LabOrchestrator:
    return LabOrchestrator(ctx.obj)


@click.group(cls=LabGroup, invoke_without_command=True)
@click.option("--release", "-r", default=None, help="Helm release name")
@click.option("--namespace", "-n", default=None, help="Kubernetes namespace")
@click.option("--profile", "-p", default=None, help="Minikube profile")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: click.Context,
    release: Optional[str],
    namespace: Optional[str],
    profile: Optional[str],
    verbose: bool,
) -> None:
    """dfirlab - A local DFIR lab (Timesketch, OpenRelik, Yeti, HashR, Ollama) on Minikube."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    setup_logging(verbose)
    overrides = {
        "release_name": release,
        "namespace": namespace,
        "minikube_profile": profile,
    }
    try:
        settings = Settings()
    except ValidationError as e:
        console.print(f"[bold red]✗[/bold red] Invalid configuration: {e}")
        raise click.Abort()
    ctx.obj = settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )


@main.command()
@click.option("--dry-run", is_flag=True, help="Run terraform plan instead of apply")
@click.option("--skip-docker", is_flag=True, help="Don't check or start Docker")
@click.option("--skip-cluster", is_flag=True, help="Use the current cluster as is")
@click.option("--no-forward", is_flag=True, help="Don't start port forwarding")
@click.option("--tunnel", is_flag=True, help="Also run minikube tunnel")
@click.option("--timeout", type=int, default=None, help="Readiness timeout in seconds")
@click.pass_context
def deploy(
    ctx: click.Context,
    dry_run: bool,
    skip_docker: bool,
    skip_cluster: bool,
    no_forward: bool,
    tunnel: bool,
    timeout: Optional[int],
) -> None:
    """Deploy the lab: Docker, Minikube, Terraform, readiness, forwards."""
    settings = ctx.obj
    console.print(
        Panel.fit(
            f"[bold cyan]dfirlab v{__version__}[/bold cyan]  "
            f"{settings.release_name} -> {settings.minikube_profile}/{settings.namespace}",
            border_style="cyan",
        )
    )

    try:
        _orchestrator(ctx).deploy(
            dry_run=dry_run,
            skip_docker=skip_docker,
            skip_cluster=skip_cluster,
            forward=not no_forward,
            tunnel=tunnel,
            timeout=timeout,
        )
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] Deployment failed: {e}")
        raise click.Abort()


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show cluster, release, pod and endpoint status."""
    try:
        _orchestrator(ctx).status()
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


@main.command()
@click.option("--skip-docker", is_flag=True, help="Don't check or start Docker")
@click.option("--forward", "with_forward", is_flag=True, help="Start port forwarding afterwards")
@click.pass_context
def start(ctx: click.Context, skip_docker: bool, with_forward: bool) -> None:
    """Start the Minikube cluster."""
    orchestrator = _orchestrator(ctx)
    try:
        orchestrator.start(skip_docker=skip_docker)
        if with_forward:
            orchestrator.forward()
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


@main.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop the Minikube cluster, keeping its state."""
    if not _orchestrator(ctx).stop():
        raise click.Abort()


@main.command()
@click.option("--force", "-f", is_flag=True, help="Don't ask for confirmation")
@click.option("--delete-cluster", is_flag=True, help="Also delete the Minikube profile")
@click.option("--dry-run", is_flag=True, help="Show what would be removed")
@click.pass_context
def teardown(ctx: click.Context, force: bool, delete_cluster: bool, dry_run: bool) -> None:
    """Destroy the lab release."""
    try:
        rc = _orchestrator(ctx).teardown(
            force=force, delete_cluster=delete_cluster, dry_run=dry_run
        )
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] Teardown failed: {e}")
        raise click.Abort()
    if rc != 0:
        ctx.exit(rc)


@main.command()
@click.argument("service", required=False)
@click.pass_context
def credentials(ctx: click.Context, service: Optional[str]) -> None:
    """Print operator logins (all services, or one)."""
    try:
        _orchestrator(ctx).credentials(service)
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


@main.command()
@click.argument("services", nargs=-1)
@click.option("--tunnel", is_flag=True, help="Also run minikube tunnel")
@click.pass_context
def forward(ctx: click.Context, services: Tuple[str, ...], tunnel: bool) -> None:
    """Forward services to localhost and manage the jobs interactively."""
    try:
        _orchestrator(ctx).forward(list(services) or None, tunnel=tunnel)
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


@main.command()
@click.option("--timeout", type=int, default=None, help="Timeout in seconds")
@click.pass_context
def wait(ctx: click.Context, timeout: Optional[int]) -> None:
    """Wait until all lab pods are ready (exit 1 on timeout)."""
    result = _orchestrator(ctx).wait_ready(timeout)
    if not result.all_ready:
        ctx.exit(1)


@main.command()
@click.argument("service")
@click.option("--tail", type=int, default=None, help="Lines of history to show")
@click.option("--previous", is_flag=True, help="Logs of the previous container instance")
@click.pass_context
def logs(ctx: click.Context, service: str, tail: Optional[int], previous: bool) -> None:
    """Follow the logs of a service."""
    try:
        rc = _orchestrator(ctx).logs(service, tail=tail, previous=previous)
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()
    if rc:
        ctx.exit(rc)


@main.command("build-image")
@click.argument("component", type=click.Choice(sorted(IMAGES)))
@click.option("--tag", "-t", default=None, help="Image tag (defaults to a timestamp)")
@click.option("--no-load", is_flag=True, help="Don't load the image into Minikube")
@click.pass_context
def build_image(ctx: click.Context, component: str, tag: Optional[str], no_load: bool) -> None:
    """Build an auxiliary image and load it into Minikube."""
    try:
        image = _orchestrator(ctx).build_image(component, tag=tag, load=not no_load)
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()
    console.print(f"  {component}: {image}")


@main.command("build-configs")
@click.option("--ts-ref", default=DEFAULT_TS_REF, show_default=True, help="Timesketch branch or tag")
@click.option("--dfiq-ref", default=DEFAULT_DFIQ_REF, show_default=True, help="DFIQ branch or tag")
@click.option(
    "--custom-dir",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Local overrides (default: {DEFAULT_CUSTOM_CONFIG_DIR})",
)
@click.option(
    "--out",
    "out_file",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Output file (default: {DEFAULT_BUNDLE_FILE})",
)
def build_configs(
    ts_ref: str,
    dfiq_ref: str,
    custom_dir: Optional[Path],
    out_file: Optional[Path],
) -> None:
    """Bundle upstream Timesketch and DFIQ config data as base64 tarball."""
    root = get_project_root()
    try:
        build_config_bundle(
            out_file or root / DEFAULT_BUNDLE_FILE,
            ts_ref=ts_ref,
            dfiq_ref=dfiq_ref,
            custom_dir=custom_dir or root / DEFAULT_CUSTOM_CONFIG_DIR,
        )
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


@main.command()
@click.option(
    "--dest",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for the archive (default: ./backups)",
)
def backup(dest: Optional[Path]) -> None:
    """Zip the working tree into a timestamped archive."""
    try:
        backup_workspace(Path.cwd(), dest)
    except LabError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise click.Abort()


if __name__ == "__main__":
    main()
