"""Distribution strategy interface.

A strategy knows how to install one Kubernetes distribution on the control
plane, where that distribution leaves its admin kubeconfig, and which join
protocol its workers use. Everything else (VM creation, waiting, exporting,
concurrency, error attribution) lives in the bootstrapper.
"""

from abc import ABC, abstractmethod

from kubelab.constants import CONTROL_PLANE_NAME, REMOTE_HOME
from kubelab.join import JoinSecretProtocol
from kubelab.models.config import Distribution, OrchestratorSettings, RunConfig
from kubelab.provider import CapabilityProvider


class DistributionStrategy(ABC):
    """Per-distribution install, credential and join details.

    Attributes:
        distribution: Distribution this strategy bootstraps
        admin_kubeconfig_path: Admin kubeconfig location on the control plane
        kubeconfig_filename: Name of the exported kubeconfig on the host
        internal_api_hosts: Node-internal API server hosts found in the admin kubeconfig
        requires_address_rewrite: Whether exporting must find and rewrite one of those hosts
    """

    distribution: Distribution
    admin_kubeconfig_path: str
    kubeconfig_filename: str
    internal_api_hosts: tuple[str, ...] = ("127.0.0.1", "localhost")
    requires_address_rewrite: bool = True

    def __init__(self, config: RunConfig, settings: OrchestratorSettings):
        self.config = config
        self.settings = settings

    @property
    def version(self) -> str | None:
        return self.config.kubernetes_version

    @abstractmethod
    def init_script(self) -> str:
        """Script that installs and starts the control plane."""

    @abstractmethod
    def join_protocol(self) -> JoinSecretProtocol:
        """Join-secret protocol used by this distribution's workers."""

    def kubeconfig_setup_script(self) -> str:
        """Script that gives the unprivileged user a copy of the admin kubeconfig."""
        return (
            "set -euo pipefail\n"
            f"mkdir -p {REMOTE_HOME}/.kube\n"
            f"sudo cp {self.admin_kubeconfig_path} {REMOTE_HOME}/.kube/config\n"
            f"sudo chown $(id -u):$(id -g) {REMOTE_HOME}/.kube/config\n"
        )

    @property
    def has_post_join_tasks(self) -> bool:
        """Whether network plugin or taint removal stages apply."""
        return False

    def install_network_plugin(self, provider: CapabilityProvider) -> None:
        """Apply the pod network. No-op for distributions that ship one."""

    def remove_control_plane_taint(self, provider: CapabilityProvider) -> None:
        """Allow workloads on the control plane. No-op unless the distribution taints it."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(version={self.version!r}, node={CONTROL_PLANE_NAME!r})"
