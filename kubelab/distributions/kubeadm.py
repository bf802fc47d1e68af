"""kubeadm strategy: upstream Kubernetes with a pluggable pod network."""

import shlex

from kubelab.constants import (
    CONTROL_PLANE_NAME,
    CONTROL_PLANE_TAINT,
    KUBEADM_ADMIN_CONF,
    KUBEADM_KUBECONFIG_FILE,
    KUBEADM_MASTER_SCRIPT_URL,
    KUBEADM_WORKER_SCRIPT_URL,
)
from kubelab.distributions.base import DistributionStrategy
from kubelab.exceptions import ProviderError, TaintRemovalError
from kubelab.join import TokenPullProtocol, parse_kubeadm_join_command
from kubelab.logging_config import get_logger
from kubelab.models.cluster import JoinSecret
from kubelab.models.config import Distribution, NetworkPlugin
from kubelab.network import install_network_plugin
from kubelab.provider import CapabilityProvider

logger = get_logger(__name__)


def _version_env(version: str | None) -> str:
    return f"VERSION={shlex.quote(version)} " if version else ""


class KubeadmJoin(TokenPullProtocol):
    """Bootstrap token minted by ``kubeadm token create``, passed inline to ``kubeadm join``."""

    def __init__(self, workdir, version: str | None):
        super().__init__(workdir)
        self.version = version

    def mint_script(self) -> str:
        return "sudo kubeadm token create --print-join-command 2>/dev/null"

    def parse_secret(self, output: str) -> JoinSecret:
        return parse_kubeadm_join_command(output)

    def join_script(self, secret: JoinSecret, remote_secret_path: str | None) -> str:
        endpoint = (secret.server_url or "").removeprefix("https://")
        return (
            "set -euo pipefail\n"
            f"curl -sfL {KUBEADM_WORKER_SCRIPT_URL} | {_version_env(self.version)}sh\n"
            f"sudo kubeadm join {endpoint} --token {secret.token.get_secret_value()} "
            f"--discovery-token-ca-cert-hash {secret.ca_cert_hash}\n"
        )


class KubeadmStrategy(DistributionStrategy):
    """Installs kubeadm through the luc.run scripts and runs ``kubeadm init``."""

    distribution = Distribution.KUBEADM
    admin_kubeconfig_path = KUBEADM_ADMIN_CONF
    kubeconfig_filename = KUBEADM_KUBECONFIG_FILE
    # admin.conf normally carries the advertise address already
    requires_address_rewrite = False

    def init_script(self) -> str:
        init = ["sudo kubeadm init --v=5"]
        if self.config.network_plugin == NetworkPlugin.CALICO:
            init.append(f"--pod-network-cidr={self.settings.calico_cidr}")
        init.append("--ignore-preflight-errors=NumCPU,Mem")
        return (
            "set -euo pipefail\n"
            f"curl -sfL {KUBEADM_MASTER_SCRIPT_URL} | {_version_env(self.version)}sh\n"
            f"{' '.join(init)}\n"
        )

    def join_protocol(self) -> KubeadmJoin:
        return KubeadmJoin(self.settings.workdir, self.version)

    @property
    def has_post_join_tasks(self) -> bool:
        return True

    def install_network_plugin(self, provider: CapabilityProvider) -> None:
        install_network_plugin(
            provider, self.config.network_plugin, calico_cidr=self.settings.calico_cidr
        )

    def remove_control_plane_taint(self, provider: CapabilityProvider) -> None:
        """Remove the NoSchedule taint; an already untainted node is fine."""
        script = f"kubectl taint nodes {CONTROL_PLANE_NAME} {CONTROL_PLANE_TAINT}-"
        try:
            result = provider.exec(CONTROL_PLANE_NAME, script)
        except ProviderError as e:
            raise TaintRemovalError(
                f"Failed to remove the {CONTROL_PLANE_TAINT} taint", e.format_message()
            )
        if result.ok:
            logger.info(f"[{CONTROL_PLANE_NAME}] taint {CONTROL_PLANE_TAINT} removed")
            return

        output = f"{result.stdout}\n{result.stderr}"
        if "not found" in output:
            logger.info(f"[{CONTROL_PLANE_NAME}] taint {CONTROL_PLANE_TAINT} already absent")
            return

        raise TaintRemovalError(
            f"Failed to remove the {CONTROL_PLANE_TAINT} taint",
            f"exit code {result.exit_code}\n{output.strip()}",
        )
