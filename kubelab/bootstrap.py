"""Cluster bootstrapper: drives a RunConfig through the bootstrap pipeline.

Stages run strictly in order. Per-worker work (VM creation, joins) fans out on a
bounded thread pool; the network plugin runs alongside the joins since it only
touches the control plane.
"""

import shutil
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from enum import Enum

from kubelab.constants import CONTROL_PLANE_NAME
from kubelab.distributions import DistributionStrategy, get_strategy
from kubelab.exceptions import (
    ControlPlaneInitError,
    PreflightError,
    ProviderError,
    VmProvisioningError,
    WorkerJoinError,
)
from kubelab.join import JoinSecretProtocol
from kubelab.kubeconfig import export_credentials
from kubelab.logging_config import get_logger
from kubelab.models.cluster import ClusterHandle, JoinSecret, WorkerJoinResult
from kubelab.models.config import OrchestratorSettings, RunConfig
from kubelab.models.node import Node, control_plane_node, worker_nodes
from kubelab.provider import CapabilityProvider
from kubelab.remote import run_checked, wait_for_file

logger = get_logger(__name__)


class Stage(str, Enum):
    """Bootstrap pipeline stages, in execution order."""

    PREFLIGHT = "preflight"
    VM_PROVISIONING = "vm-provisioning"
    CONTROL_PLANE_INIT = "control-plane-init"
    CREDENTIAL_EXPORT = "credential-export"
    JOIN_SECRET = "join-secret"
    WORKER_JOIN = "worker-join"
    NETWORK_PLUGIN = "network-plugin"
    TAINT_REMOVAL = "taint-removal"


class ClusterBootstrapper:
    """Creates the VMs and turns them into a working cluster."""

    def __init__(
        self,
        provider: CapabilityProvider,
        settings: OrchestratorSettings | None = None,
        progress: Callable[[str], None] | None = None,
    ):
        """Initialize the bootstrapper.

        Args:
            provider: Capability provider used for every VM action
            settings: Runtime settings (defaults read from KUBELAB_* env vars)
            progress: Optional callback receiving human readable progress lines
        """
        self.provider = provider
        self.settings = settings or OrchestratorSettings()
        self.progress = progress

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.progress:
            self.progress(message)

    @contextmanager
    def _stage(self, stage: Stage, detail: str = "") -> Iterator[None]:
        suffix = f" ({detail})" if detail else ""
        self._report(f"-> {stage.value}{suffix}")
        yield
        self._report(f"✔ {stage.value}")

    def _pool_size(self, tasks: int) -> int:
        return max(1, min(tasks, self.settings.max_parallel))

    def bootstrap(self, config: RunConfig) -> ClusterHandle:
        """Run the full pipeline for a configuration.

        Args:
            config: Resolved run configuration

        Returns:
            ClusterHandle with the exported kubeconfig and per-worker join results

        Raises:
            PreflightError: If a required tool is missing or a cluster already exists
            VmProvisioningError: If a VM could not be created
            BootstrapError: If a control-plane side stage fails
        """
        strategy = get_strategy(config, self.settings)
        control_plane = control_plane_node()
        workers = worker_nodes(config.workers)
        logger.info(
            f"Bootstrapping {config.distribution.value} with {len(workers)} worker(s), "
            f"version={config.kubernetes_version or 'default'}"
        )

        with self._stage(Stage.PREFLIGHT):
            self._preflight()

        with self._stage(Stage.VM_PROVISIONING, f"{len(workers) + 1} VM(s)"):
            self._provision(config, control_plane, workers)

        with self._stage(Stage.CONTROL_PLANE_INIT, config.distribution.value):
            self._init_control_plane(strategy)

        with self._stage(Stage.CREDENTIAL_EXPORT):
            kubeconfig = export_credentials(self.provider, strategy, self.settings.workdir)

        protocol = strategy.join_protocol()
        with self._stage(Stage.JOIN_SECRET):
            secret = protocol.issue(self.provider, control_plane)

        join_results = self._join_and_finish(strategy, protocol, secret, workers)

        return ClusterHandle(
            distribution=config.distribution,
            control_plane=control_plane,
            control_plane_ip=kubeconfig.control_plane_ip,
            workers=workers,
            join_results=join_results,
            kubeconfig=kubeconfig,
        )

    def _preflight(self) -> None:
        try:
            self.provider.check_available()
        except ProviderError as e:
            raise PreflightError(e.message, e.details)

        if shutil.which("kubectl") is None:
            raise PreflightError(
                "kubectl is not installed or not in PATH",
                "Install kubectl: https://kubernetes.io/docs/tasks/tools/",
            )

        try:
            exists = self.provider.exists(CONTROL_PLANE_NAME)
        except ProviderError as e:
            raise PreflightError("Failed to list existing VMs", e.format_message())
        if exists:
            raise PreflightError(
                f"A VM named '{CONTROL_PLANE_NAME}' already exists",
                "Remove the current cluster first with: kubelab destroy",
            )

    def _create_vm(self, config: RunConfig, node: Node) -> None:
        try:
            self.provider.create(node.name, config.cpu, config.memory, config.disk)
        except ProviderError as e:
            raise VmProvisioningError(
                node.name, f"Failed to create VM '{node.name}'", e.format_message()
            )

    def _provision(self, config: RunConfig, control_plane: Node, workers: list[Node]) -> None:
        self._create_vm(config, control_plane)
        if not workers:
            logger.info("No worker VM requested")
            return

        failures: dict[int, VmProvisioningError] = {}
        with ThreadPoolExecutor(max_workers=self._pool_size(len(workers))) as executor:
            futures = {executor.submit(self._create_vm, config, w): w for w in workers}
            for future in as_completed(futures):
                worker = futures[future]
                try:
                    future.result()
                except VmProvisioningError as e:
                    logger.error(f"[{worker}] creation failed: {e.message}")
                    failures[worker.index] = e

        if failures:
            raise failures[min(failures)]

    def _init_control_plane(self, strategy: DistributionStrategy) -> None:
        run_checked(
            self.provider,
            CONTROL_PLANE_NAME,
            strategy.init_script(),
            ControlPlaneInitError,
            "Error during cluster init",
        )
        wait_for_file(
            self.provider,
            CONTROL_PLANE_NAME,
            strategy.admin_kubeconfig_path,
            timeout=self.settings.credential_wait_timeout,
            interval=self.settings.credential_poll_interval,
        )

    def _join_worker(
        self, protocol: JoinSecretProtocol, worker: Node, secret: JoinSecret
    ) -> WorkerJoinResult:
        try:
            protocol.present(self.provider, worker, secret)
        except WorkerJoinError as e:
            logger.warning(f"[{worker}] join failed: {e.message}")
            return WorkerJoinResult(node=worker, succeeded=False, error=e.format_message())
        except Exception as e:
            logger.warning(f"[{worker}] join failed unexpectedly: {e}")
            error = WorkerJoinError(worker.name, f"Unexpected error joining [{worker}]", str(e))
            return WorkerJoinResult(node=worker, succeeded=False, error=error.format_message())
        logger.info(f"[{worker}] joined")
        return WorkerJoinResult(node=worker, succeeded=True)

    def _join_and_finish(
        self,
        strategy: DistributionStrategy,
        protocol: JoinSecretProtocol,
        secret: JoinSecret,
        workers: list[Node],
    ) -> list[WorkerJoinResult]:
        """Join workers, install the network plugin alongside, then drop the taint."""
        results: dict[str, WorkerJoinResult] = {}
        plugin_future: Future | None = None
        slots = self._pool_size(len(workers)) + (1 if strategy.has_post_join_tasks else 0)

        with protocol.joining(secret), ThreadPoolExecutor(max_workers=slots) as executor:
            if strategy.has_post_join_tasks:
                self._report(f"-> {Stage.NETWORK_PLUGIN.value}")
                plugin_future = executor.submit(strategy.install_network_plugin, self.provider)

            if workers:
                self._report(f"-> {Stage.WORKER_JOIN.value} ({len(workers)} worker(s))")
                futures = {
                    executor.submit(self._join_worker, protocol, w, secret): w for w in workers
                }
                for future in as_completed(futures):
                    result = future.result()
                    results[result.node.name] = result
                joined = sum(1 for r in results.values() if r.succeeded)
                self._report(f"✔ {Stage.WORKER_JOIN.value} ({joined}/{len(workers)} joined)")
            else:
                logger.info("No worker will be added")

        if plugin_future is not None:
            plugin_future.result()
            self._report(f"✔ {Stage.NETWORK_PLUGIN.value}")

        if strategy.has_post_join_tasks:
            with self._stage(Stage.TAINT_REMOVAL):
                strategy.remove_control_plane_taint(self.provider)

        return [results[w.name] for w in workers]
