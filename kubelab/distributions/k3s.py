"""k3s strategy: single binary server, agents join with the server's node token."""

import shlex

from kubelab.constants import K3S_ADMIN_CONF, K3S_INSTALL_URL, K3S_KUBECONFIG_FILE, K3S_NODE_TOKEN
from kubelab.distributions.base import DistributionStrategy
from kubelab.join import TokenPushProtocol
from kubelab.models.cluster import JoinSecret
from kubelab.models.config import Distribution


def _version_env(version: str | None) -> str:
    return f"INSTALL_K3S_VERSION={shlex.quote(version)} " if version else ""


class K3sJoin(TokenPushProtocol):
    """Cluster token read from the server and pushed to the agent installer."""

    def __init__(self, version: str | None):
        self.version = version

    def token_script(self) -> str:
        return f"sudo cat {K3S_NODE_TOKEN}"

    def join_script(self, secret: JoinSecret) -> str:
        token = shlex.quote(secret.token.get_secret_value())
        return (
            "set -euo pipefail\n"
            f"curl -sfL {K3S_INSTALL_URL} | "
            f"K3S_URL={shlex.quote(secret.server_url)} K3S_TOKEN={token} "
            f"{_version_env(self.version)}sh -\n"
        )


class K3sStrategy(DistributionStrategy):
    """Runs the get.k3s.io installer in server mode, without Traefik."""

    distribution = Distribution.K3S
    admin_kubeconfig_path = K3S_ADMIN_CONF
    kubeconfig_filename = K3S_KUBECONFIG_FILE
    internal_api_hosts = ("127.0.0.1",)

    def init_script(self) -> str:
        return (
            "set -euo pipefail\n"
            f"curl -sfL {K3S_INSTALL_URL} | {_version_env(self.version)}sh -s - --disable=traefik\n"
        )

    def join_protocol(self) -> K3sJoin:
        return K3sJoin(self.version)
