"""k0s strategy: controller installed as a service, workers join with a token file."""

import shlex

from kubelab.constants import (
    K0S_ADMIN_CONF,
    K0S_CONFIG_PATH,
    K0S_INSTALL_URL,
    K0S_KUBECONFIG_FILE,
    K0S_TOKEN_FILE,
)
from kubelab.distributions.base import DistributionStrategy
from kubelab.join import TokenPullProtocol
from kubelab.models.cluster import JoinSecret
from kubelab.models.config import Distribution

# Where the worker service reads its token from once installed
WORKER_TOKEN_PATH = "/etc/k0s/worker-token"


def _install(version: str | None) -> str:
    env = f"K0S_VERSION={shlex.quote(version)} " if version else ""
    return f"curl -sSLf {K0S_INSTALL_URL} | sudo {env}sh\n"


class K0sJoin(TokenPullProtocol):
    """Worker token minted by ``k0s token create`` and shipped to each worker as a file."""

    secret_filename = K0S_TOKEN_FILE

    def __init__(self, workdir, version: str | None):
        super().__init__(workdir)
        self.version = version

    def mint_script(self) -> str:
        return "sudo k0s token create --role=worker 2>/dev/null"

    def parse_secret(self, output: str) -> JoinSecret:
        return JoinSecret(token=output)

    def join_script(self, secret: JoinSecret, remote_secret_path: str | None) -> str:
        return (
            "set -euo pipefail\n"
            f"trap 'rm -f {remote_secret_path}' EXIT\n"
            f"{_install(self.version)}"
            f"sudo mkdir -p {WORKER_TOKEN_PATH.rsplit('/', 1)[0]}\n"
            f"sudo install -m 600 {remote_secret_path} {WORKER_TOKEN_PATH}\n"
            f"sudo k0s install worker --token-file {WORKER_TOKEN_PATH}\n"
            "sudo k0s start\n"
        )


class K0sStrategy(DistributionStrategy):
    """Installs k0s, writes its default config and starts the controller service."""

    distribution = Distribution.K0S
    admin_kubeconfig_path = K0S_ADMIN_CONF
    kubeconfig_filename = K0S_KUBECONFIG_FILE
    internal_api_hosts = ("localhost",)

    def init_script(self) -> str:
        return (
            "set -euo pipefail\n"
            f"{_install(self.version)}"
            f"sudo mkdir -p {K0S_CONFIG_PATH.rsplit('/', 1)[0]}\n"
            f"k0s config create | sudo tee {K0S_CONFIG_PATH} >/dev/null\n"
            f"sudo k0s install controller -c {K0S_CONFIG_PATH}\n"
            "sudo k0s start\n"
        )

    def join_protocol(self) -> K0sJoin:
        return K0sJoin(self.settings.workdir, self.version)
