"""Join-secret protocol: minting a worker credential and handing it to workers.

Two variants share one contract so the bootstrapper never needs to know which
one a distribution uses:

- Token-pull: the control plane mints a worker-scoped bootstrap token. The worker
  receives it either inline in its join command or as a file transferred onto
  the node, and uses it to authenticate its own join request.
- Token-push: the control plane exposes a pre-shared cluster token plus its own
  address; both are handed straight to the worker's install command.
"""

import shlex
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from kubelab.constants import API_SERVER_PORT, REMOTE_HOME
from kubelab.exceptions import JoinSecretIssuanceError, ProviderError, WorkerJoinError
from kubelab.logging_config import get_logger
from kubelab.models.cluster import JoinSecret
from kubelab.models.node import Node
from kubelab.provider import CapabilityProvider
from kubelab.remote import run_checked

logger = get_logger(__name__)


class JoinSecretProtocol(ABC):
    """Contract for issuing a join secret and presenting it to a worker."""

    @abstractmethod
    def issue(self, provider: CapabilityProvider, control_plane: Node) -> JoinSecret:
        """Obtain a join secret from an initialized control plane.

        Raises:
            JoinSecretIssuanceError: If the control plane cannot produce one
        """

    @abstractmethod
    def present(self, provider: CapabilityProvider, worker: Node, secret: JoinSecret) -> None:
        """Install the worker and join it using the secret.

        Raises:
            WorkerJoinError: If the worker could not join
        """

    @contextmanager
    def joining(self, secret: JoinSecret) -> Iterator[None]:
        """Scope of a join phase. Holds any host-side secret material."""
        yield


class TokenPullProtocol(JoinSecretProtocol):
    """Control plane mints a bootstrap token that each worker pulls in.

    Subclasses provide the mint command, how to parse its output and the worker
    script. When ``secret_filename`` is set the token is transferred to the
    worker as a file instead of being inlined in the script.
    """

    secret_filename: str | None = None

    def __init__(self, workdir: Path):
        self.workdir = Path(workdir)
        self._secret_file: Path | None = None

    @abstractmethod
    def mint_script(self) -> str:
        """Script run on the control plane that prints the secret."""

    @abstractmethod
    def parse_secret(self, output: str) -> JoinSecret:
        """Build a JoinSecret from the mint script's output."""

    @abstractmethod
    def join_script(self, secret: JoinSecret, remote_secret_path: str | None) -> str:
        """Script run on the worker that installs it and joins the cluster."""

    @property
    def remote_secret_path(self) -> str | None:
        if self.secret_filename is None:
            return None
        return f"{REMOTE_HOME}/{self.secret_filename}"

    def issue(self, provider: CapabilityProvider, control_plane: Node) -> JoinSecret:
        logger.info(f"[{control_plane}] minting worker join token")
        result = run_checked(
            provider,
            control_plane.name,
            self.mint_script(),
            JoinSecretIssuanceError,
            f"Failed to create a join token on [{control_plane}]",
        )
        output = result.stdout.replace("\r", "").strip()
        if not output:
            raise JoinSecretIssuanceError(f"[{control_plane}] returned an empty join token")
        return self.parse_secret(output)

    @contextmanager
    def joining(self, secret: JoinSecret) -> Iterator[None]:
        if self.secret_filename is None:
            yield
            return
        with secret.materialize(self.workdir, self.secret_filename) as path:
            self._secret_file = path
            try:
                yield
            finally:
                self._secret_file = None

    def present(self, provider: CapabilityProvider, worker: Node, secret: JoinSecret) -> None:
        if self.secret_filename is not None and self._secret_file is None:
            with self.joining(secret):
                self._present(provider, worker, secret)
        else:
            self._present(provider, worker, secret)

    def _present(self, provider: CapabilityProvider, worker: Node, secret: JoinSecret) -> None:
        remote_path = self.remote_secret_path
        if remote_path is not None:
            try:
                provider.transfer_file(worker.name, self._secret_file, remote_path)
            except ProviderError as e:
                raise WorkerJoinError(
                    worker.name,
                    f"Failed to transfer the join token to [{worker}]",
                    e.format_message(),
                )

        logger.info(f"[{worker}] joining the cluster")
        run_checked(
            provider,
            worker.name,
            self.join_script(secret, remote_path),
            WorkerJoinError,
            f"Error while joining worker node [{worker}]",
            secrets=[secret.token.get_secret_value()],
            node_name=worker.name,
        )


class TokenPushProtocol(JoinSecretProtocol):
    """Control plane exposes a cluster token and its URL; both go to the worker."""

    @abstractmethod
    def token_script(self) -> str:
        """Script run on the control plane that prints the cluster token."""

    @abstractmethod
    def join_script(self, secret: JoinSecret) -> str:
        """Script run on the worker that installs the agent against the server."""

    def issue(self, provider: CapabilityProvider, control_plane: Node) -> JoinSecret:
        logger.info(f"[{control_plane}] reading cluster token")
        result = run_checked(
            provider,
            control_plane.name,
            self.token_script(),
            JoinSecretIssuanceError,
            f"Failed to read the cluster token on [{control_plane}]",
        )
        token = result.stdout.replace("\r", "").strip()
        if not token:
            raise JoinSecretIssuanceError(f"[{control_plane}] returned an empty cluster token")

        try:
            address = provider.info(control_plane.name).primary_ipv4
        except ProviderError as e:
            raise JoinSecretIssuanceError(
                f"Failed to look up the address of [{control_plane}]", e.format_message()
            )
        if not address:
            raise JoinSecretIssuanceError(f"[{control_plane}] has no IPv4 address")

        return JoinSecret(token=token, server_url=f"https://{address}:{API_SERVER_PORT}")

    def present(self, provider: CapabilityProvider, worker: Node, secret: JoinSecret) -> None:
        logger.info(f"[{worker}] joining the cluster")
        run_checked(
            provider,
            worker.name,
            self.join_script(secret),
            WorkerJoinError,
            f"Error while joining [{worker}] node",
            secrets=[secret.token.get_secret_value()],
            node_name=worker.name,
        )


def parse_kubeadm_join_command(output: str) -> JoinSecret:
    """Parse the output of ``kubeadm token create --print-join-command``.

    Args:
        output: e.g. ``kubeadm join 10.0.0.5:6443 --token abc.def
            --discovery-token-ca-cert-hash sha256:...``

    Returns:
        JoinSecret with the token, API endpoint and CA hash

    Raises:
        JoinSecretIssuanceError: If the command cannot be parsed
    """
    # kubeadm may print warnings before the command itself
    line = next((ln for ln in output.splitlines() if "kubeadm join" in ln), "")
    try:
        words = shlex.split(line.replace("\\", " "))
    except ValueError:
        words = []

    if "join" not in words:
        raise JoinSecretIssuanceError(
            "Unexpected output from 'kubeadm token create'",
            "Expected a 'kubeadm join <endpoint> --token ...' command",
        )

    endpoint_index = words.index("join") + 1
    endpoint = words[endpoint_index] if endpoint_index < len(words) else None
    options = {}
    for i, word in enumerate(words):
        if word.startswith("--") and i + 1 < len(words):
            options[word] = words[i + 1]

    token = options.get("--token")
    ca_hash = options.get("--discovery-token-ca-cert-hash")
    if not endpoint or endpoint.startswith("--") or not token or not ca_hash:
        raise JoinSecretIssuanceError(
            "Incomplete join command from 'kubeadm token create'",
            "The endpoint, --token and --discovery-token-ca-cert-hash are all required",
        )

    return JoinSecret(token=token, server_url=f"https://{endpoint}", ca_cert_hash=ca_hash)
