"""Data models for cluster state and bootstrap results."""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from kubelab.constants import CONTROL_PLANE_NAME, WORKER_PREFIX
from kubelab.models.config import Distribution
from kubelab.models.node import Node, is_worker_name


class VmInfo(BaseModel):
    """A VM as reported by the capability provider."""

    name: str
    state: str = "Unknown"
    ipv4: list[str] = Field(default_factory=list)

    @property
    def primary_ipv4(self) -> str | None:
        """First IPv4 address, the one reachable from the host."""
        return self.ipv4[0] if self.ipv4 else None


class JoinSecret(BaseModel):
    """Credential a worker needs to join the control plane.

    The token is a SecretStr so it never shows up in reprs or logs.
    """

    model_config = ConfigDict(frozen=True)

    token: SecretStr
    server_url: str | None = None
    ca_cert_hash: str | None = None

    @contextmanager
    def materialize(self, directory: Path, filename: str) -> Iterator[Path]:
        """Write the token to a private file for the duration of the block.

        Args:
            directory: Directory to write the file into
            filename: Name of the file

        Yields:
            Path to the file, readable only by the current user
        """
        path = Path(directory) / filename
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(self.token.get_secret_value())
            yield path
        finally:
            path.unlink(missing_ok=True)


class KubeconfigArtifact(BaseModel):
    """Admin kubeconfig exported to the invoking host."""

    path: Path
    server: str
    control_plane_ip: str


class WorkerJoinResult(BaseModel):
    """Outcome of joining a single worker."""

    node: Node
    succeeded: bool
    error: str | None = None


class ClusterHandle(BaseModel):
    """A bootstrapped cluster and what happened to its workers."""

    distribution: Distribution
    control_plane: Node
    control_plane_ip: str
    workers: list[Node] = Field(default_factory=list)
    join_results: list[WorkerJoinResult] = Field(default_factory=list)
    kubeconfig: KubeconfigArtifact

    @property
    def joined_workers(self) -> list[Node]:
        """Workers that joined successfully."""
        return [r.node for r in self.join_results if r.succeeded]

    @property
    def failed_workers(self) -> list[Node]:
        """Workers whose join failed."""
        return [r.node for r in self.join_results if not r.succeeded]

    @property
    def fully_joined(self) -> bool:
        """True when every requested worker joined."""
        return not self.failed_workers


class ClusterState(BaseModel):
    """Live view of the cluster VMs, rebuilt from the provider on every call."""

    vms: list[VmInfo] = Field(default_factory=list)

    @classmethod
    def from_vms(cls, vms: list[VmInfo]) -> "ClusterState":
        """Keep only the VMs that follow the naming convention."""
        members = [vm for vm in vms if vm.name == CONTROL_PLANE_NAME or is_worker_name(vm.name)]
        return cls(vms=members)

    @property
    def control_plane(self) -> VmInfo | None:
        """The control-plane VM, if present."""
        return next((vm for vm in self.vms if vm.name == CONTROL_PLANE_NAME), None)

    @property
    def workers(self) -> list[VmInfo]:
        """Worker VMs sorted by ordinal."""
        workers = [vm for vm in self.vms if is_worker_name(vm.name)]
        return sorted(workers, key=lambda vm: int(vm.name[len(WORKER_PREFIX) :]))

    @property
    def exists(self) -> bool:
        """Whether a cluster is present at all."""
        return self.control_plane is not None
