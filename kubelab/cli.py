"""Main CLI entry point for kubelab."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kubelab.constants import (
    DEFAULT_CPU,
    DEFAULT_DISK,
    DEFAULT_MEMORY,
    K0S_KUBECONFIG_FILE,
    K3S_KUBECONFIG_FILE,
    KUBEADM_KUBECONFIG_FILE,
)
from kubelab.exceptions import KubelabError, NoClusterFoundError, StageError, TeardownError
from kubelab.logging_config import get_logger, setup_logging
from kubelab.models.cluster import ClusterHandle, ClusterState
from kubelab.models.config import (
    Distribution,
    NetworkPlugin,
    OrchestratorSettings,
    resolve_run_config,
)
from kubelab.provider import CapabilityProvider

app = typer.Typer(
    name="kubelab",
    help="Spin up throw-away Kubernetes clusters on local Multipass VMs",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()
logger = get_logger(__name__)

KUBECONFIG_FILES = (KUBEADM_KUBECONFIG_FILE, K3S_KUBECONFIG_FILE, K0S_KUBECONFIG_FILE)


def get_provider(settings: OrchestratorSettings) -> CapabilityProvider:
    """Return the capability provider used by every command."""
    from kubelab.multipass import MultipassProvider

    return MultipassProvider(exec_timeout=settings.exec_timeout)


def _settings(ctx: typer.Context) -> OrchestratorSettings:
    if ctx.obj is None:
        ctx.obj = {}
    if "settings" not in ctx.obj:
        ctx.obj["settings"] = OrchestratorSettings()
    return ctx.obj["settings"]


def _print_error(e: KubelabError, title: str = "Error") -> None:
    console.print(f"[red]{title}:[/red] {escape(e.message)}")
    if e.details:
        console.print(f"\n{escape(e.details)}")


# Global callback to set up logging and settings
@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
    workdir: Path | None = typer.Option(
        None, "--workdir", help="Directory for kubeconfig and token files [default: cwd]"
    ),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")

    settings = OrchestratorSettings()
    if workdir is not None:
        settings = settings.model_copy(update={"workdir": workdir})
    ctx.obj = {"settings": settings}


@app.command()
def version() -> None:
    """Show version information."""
    from kubelab import __version__

    typer.echo(f"kubelab version {__version__}")


def _next_steps(handle: ClusterHandle) -> None:
    console.print("\n[green]✓ Cluster is up and ready![/green]")
    console.print(f"  Control plane: {handle.control_plane} ({handle.control_plane_ip})")
    console.print(f"  API server:    {handle.kubeconfig.server}")

    if handle.workers:
        joined = len(handle.joined_workers)
        console.print(f"  Workers:       {joined}/{len(handle.workers)} joined")
    for result in handle.join_results:
        if not result.succeeded:
            console.print(f"[yellow]Warning:[/yellow] {result.node} failed to join")
            if result.error:
                console.print(f"  {escape(result.error)}")

    console.print("\n[bold]Next steps:[/bold]")
    console.print("- Configure your local kubectl:")
    console.print(f"  export KUBECONFIG=$PWD/{handle.kubeconfig.path.name}")
    console.print("- Check the cluster nodes:")
    console.print("  kubectl get nodes")


def _destroy(settings: OrchestratorSettings) -> None:
    from kubelab.teardown import teardown

    console.print("-> Deleting the cluster VMs")
    try:
        report = teardown(get_provider(settings), settings.workdir)
    except NoClusterFoundError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except TeardownError as e:
        _print_error(e, "Teardown incomplete")
        raise typer.Exit(code=1)
    except KubelabError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    for name in report.deleted_vms:
        console.print(f"  [green]✓[/green] {name} deleted")
    for path in report.removed_files:
        console.print(f"  [green]✓[/green] {path.name} removed")
    console.print("[green]✓ Cluster destroyed[/green]")


def _bootstrap(
    settings: OrchestratorSettings,
    distribution: Distribution,
    workers: int | None,
    cpu: int,
    memory: str,
    disk: str,
    kubernetes_version: str | None,
    network_plugin: NetworkPlugin | None = None,
) -> None:
    from kubelab.bootstrap import ClusterBootstrapper

    try:
        config = resolve_run_config(
            distribution,
            workers=workers,
            cpu=cpu,
            memory=memory,
            disk=disk,
            kubernetes_version=kubernetes_version,
            network_plugin=network_plugin,
        )
    except KubelabError as e:
        _print_error(e, "Configuration error")
        raise typer.Exit(code=1)

    bootstrapper = ClusterBootstrapper(get_provider(settings), settings, progress=console.print)
    try:
        handle = bootstrapper.bootstrap(config)
    except StageError as e:
        logger.error(f"Stage {e.stage} failed: {e.message}")
        _print_error(e, f"Failed during {e.stage}")
        console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=1)
    except KubelabError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted, VMs are left as they are[/yellow]")
        console.print("Clean up with: kubelab destroy")
        raise typer.Exit(code=130)

    _next_steps(handle)


def _workers_option(default_help: str):
    return typer.Option(
        None, "--workers", "-w", min=0, help=f"Number of worker nodes {default_help}"
    )


CPU_OPTION = typer.Option(DEFAULT_CPU, "--cpu", "-c", min=1, help="Number of CPUs per VM")
MEMORY_OPTION = typer.Option(DEFAULT_MEMORY, "--memory", "-m", help="Memory per VM (e.g. 2G)")
DISK_OPTION = typer.Option(DEFAULT_DISK, "--disk", "-d", help="Disk size per VM (e.g. 10G)")
DESTROY_OPTION = typer.Option(False, "--destroy", "-D", help="Destroy the current cluster")


@app.command()
def kubeadm(
    ctx: typer.Context,
    workers: int | None = _workers_option("[default: 1]"),
    cpu: int = CPU_OPTION,
    memory: str = MEMORY_OPTION,
    disk: str = DISK_OPTION,
    kubernetes_version: str | None = typer.Option(
        None, "--version", "-v", help="Kubernetes version [default: 1.25.2]"
    ),
    network_plugin: NetworkPlugin = typer.Option(
        NetworkPlugin.CILIUM, "--network-plugin", "-p", help="Pod network plugin"
    ),
    destroy: bool = DESTROY_OPTION,
) -> None:
    """
    Create a kubeadm cluster.

    Examples:
        # Control plane, 2 workers and Calico
        kubelab kubeadm -w 2 -p calico
    """
    settings = _settings(ctx)
    if destroy:
        _destroy(settings)
        return
    _bootstrap(
        settings,
        Distribution.KUBEADM,
        workers,
        cpu,
        memory,
        disk,
        kubernetes_version,
        network_plugin,
    )


@app.command()
def k3s(
    ctx: typer.Context,
    workers: int | None = _workers_option("[default: 1]"),
    cpu: int = CPU_OPTION,
    memory: str = MEMORY_OPTION,
    disk: str = DISK_OPTION,
    kubernetes_version: str | None = typer.Option(
        None, "--version", "-v", help="k3s version [default: latest stable]"
    ),
    destroy: bool = DESTROY_OPTION,
) -> None:
    """Create a k3s cluster."""
    settings = _settings(ctx)
    if destroy:
        _destroy(settings)
        return
    _bootstrap(settings, Distribution.K3S, workers, cpu, memory, disk, kubernetes_version)


@app.command()
def k0s(
    ctx: typer.Context,
    workers: int | None = _workers_option("[default: 2]"),
    cpu: int = CPU_OPTION,
    memory: str = MEMORY_OPTION,
    disk: str = DISK_OPTION,
    kubernetes_version: str | None = typer.Option(
        None, "--version", "-v", help="k0s version [default: v1.25.2+k0s.0]"
    ),
    destroy: bool = DESTROY_OPTION,
) -> None:
    """Create a k0s cluster."""
    settings = _settings(ctx)
    if destroy:
        _destroy(settings)
        return
    _bootstrap(settings, Distribution.K0S, workers, cpu, memory, disk, kubernetes_version)


@app.command()
def destroy(ctx: typer.Context) -> None:
    """Delete the control plane, all workers and the local kubeconfig/token files."""
    _destroy(_settings(ctx))


def _find_kubeconfig(workdir: Path) -> Path | None:
    return next((workdir / f for f in KUBECONFIG_FILES if (workdir / f).exists()), None)


def _show_kubernetes_nodes(kubeconfig: Path) -> None:
    from kubernetes import client, config
    from kubernetes.client.rest import ApiException
    from kubernetes.config.config_exception import ConfigException

    try:
        config.load_kube_config(config_file=str(kubeconfig))
    except ConfigException as e:
        console.print(f"[red]Error:[/red] Failed to load {kubeconfig}: {e}")
        raise typer.Exit(code=1)

    try:
        nodes = client.CoreV1Api().list_node()
    except ApiException as e:
        console.print(f"[red]Error:[/red] Failed to list nodes: {e}")
        raise typer.Exit(code=1)

    table = Table(title="Kubernetes Nodes")
    table.add_column("Name", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Version", style="blue")

    for node in sorted(nodes.items, key=lambda n: n.metadata.name):
        conditions = node.status.conditions or []
        ready = next((c for c in conditions if c.type == "Ready"), None)
        if ready and ready.status == "True":
            status = "[green]✓ Ready[/green]"
        else:
            status = "[red]✗ NotReady[/red]"
        table.add_row(node.metadata.name, status, node.status.node_info.kubelet_version)

    console.print(table)


@app.command()
def status(
    ctx: typer.Context,
    show_nodes: bool = typer.Option(
        False, "--nodes", "-n", help="Also list Kubernetes nodes using the exported kubeconfig"
    ),
) -> None:
    """
    Show the cluster VMs and, optionally, the Kubernetes nodes.

    Examples:
        kubelab status
        kubelab status --nodes
    """
    settings = _settings(ctx)
    try:
        state = ClusterState.from_vms(get_provider(settings).list())
    except KubelabError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    if not state.exists and not state.workers:
        console.print("[yellow]No cluster VMs found[/yellow]")
        return

    table = Table(title="Cluster VMs")
    table.add_column("Name", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("State", style="green")
    table.add_column("IPv4", style="yellow")

    members = [state.control_plane] if state.control_plane else []
    for vm in [*members, *state.workers]:
        role = "Control Plane" if vm is state.control_plane else "Worker"
        table.add_row(vm.name, role, vm.state, vm.primary_ipv4 or "N/A")
    console.print(table)

    if not state.exists:
        console.print("[yellow]Warning:[/yellow] workers found without a control plane")

    if show_nodes:
        kubeconfig = _find_kubeconfig(settings.workdir)
        if kubeconfig is None:
            console.print(f"[red]Error:[/red] No kubeconfig found in {settings.workdir}")
            raise typer.Exit(code=1)
        _show_kubernetes_nodes(kubeconfig)


if __name__ == "__main__":
    app()
