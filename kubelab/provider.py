"""Capability provider interface.

Every VM-side action the orchestrator takes goes through a CapabilityProvider:
create, delete, list, inspect, run a script in, and copy a file to a named VM.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from kubelab.models.cluster import VmInfo


@dataclass(frozen=True)
class ExecResult:
    """Output of a script run inside a VM.

    Attributes:
        stdout: Captured standard output
        stderr: Captured standard error
        exit_code: Exit status of the script
    """

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CapabilityProvider(ABC):
    """VM lifecycle primitives consumed by the bootstrapper and teardown.

    Implementations raise ProviderError when the backend itself fails. A script
    that runs but exits non-zero is not a provider failure: exec returns it.
    """

    name = "provider"

    @abstractmethod
    def check_available(self) -> None:
        """Raise ProviderError if the backend cannot be used."""

    @abstractmethod
    def create(self, name: str, cpu: int, memory: str, disk: str) -> None:
        """Create and start a VM."""

    @abstractmethod
    def delete(self, name: str, purge: bool = True) -> None:
        """Delete a VM, purging it unless told otherwise."""

    @abstractmethod
    def list(self) -> list[VmInfo]:
        """List all VMs known to the backend."""

    @abstractmethod
    def info(self, name: str) -> VmInfo:
        """Describe a single VM."""

    @abstractmethod
    def exec(self, name: str, script: str) -> ExecResult:
        """Run a bash script inside a VM."""

    @abstractmethod
    def transfer_file(self, name: str, local_path: Path, remote_path: str) -> None:
        """Copy a host file into a VM."""

    def exists(self, name: str) -> bool:
        """Check whether a VM with this name is currently listed."""
        return any(vm.name == name for vm in self.list())
