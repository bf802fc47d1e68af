"""Pytest configuration and shared fixtures."""

import threading
from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

from kubelab.constants import (
    K0S_ADMIN_CONF,
    K3S_ADMIN_CONF,
    K3S_NODE_TOKEN,
    KUBEADM_ADMIN_CONF,
)
from kubelab.exceptions import ProviderError
from kubelab.models.cluster import VmInfo
from kubelab.models.config import OrchestratorSettings
from kubelab.provider import CapabilityProvider, ExecResult

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

CONTROL_PLANE_IP = "192.168.64.10"
KUBEADM_JOIN_COMMAND = (
    f"kubeadm join {CONTROL_PLANE_IP}:6443 --token abcdef.0123456789abcdef "
    "--discovery-token-ca-cert-hash sha256:1a2b3c4d5e6f"
)
K3S_TOKEN = "K10c0ffee::server:s3cr3t"
K0S_TOKEN = "H4sIAAAAAAAC_k0s-worker-token"


def make_kubeconfig(server: str, ca_data: str = "LS0tLS1CRUdJTiBDRVJUSUZJQ0FURS0tLS0t") -> str:
    """Minimal admin kubeconfig pointing at server."""
    return (
        "apiVersion: v1\n"
        "clusters:\n"
        "- cluster:\n"
        f"    certificate-authority-data: {ca_data}\n"
        f"    server: {server}\n"
        "  name: default\n"
        "contexts:\n"
        "- context:\n"
        "    cluster: default\n"
        "    user: default\n"
        "  name: default\n"
        "current-context: default\n"
        "kind: Config\n"
        "users:\n"
        "- name: default\n"
        "  user:\n"
        "    client-key-data: a2V5LWRhdGEtbG9jYWxob3N0\n"
    )


class FakeProvider(CapabilityProvider):
    """In-memory provider that records every call and can be told to fail."""

    name = "fake"

    def __init__(self):
        self.available = True
        self.vms: dict[str, VmInfo] = {}
        self.creates: list[str] = []
        self.deletes: list[str] = []
        self.execs: list[tuple[str, str]] = []
        self.transfers: list[tuple[str, str, str]] = []
        self.fail_create: set[str] = set()
        self.fail_delete: set[str] = set()
        self.fail_transfer: set[str] = set()
        self.missing_files: set[str] = set()
        self.remote_files: dict[str, str] = {
            KUBEADM_ADMIN_CONF: make_kubeconfig(f"https://{CONTROL_PLANE_IP}:6443"),
            K3S_ADMIN_CONF: make_kubeconfig("https://127.0.0.1:6443"),
            K0S_ADMIN_CONF: make_kubeconfig("https://localhost:6443"),
            K3S_NODE_TOKEN: K3S_TOKEN + "\n",
        }
        self._exec_rules: list[tuple[str | None, str, ExecResult]] = []
        self._lock = threading.Lock()

    def fail_exec(
        self, node: str | None, fragment: str, exit_code: int = 1, stderr: str = "boom"
    ) -> None:
        """Make exec return a failure when the script on node contains fragment."""
        self._exec_rules.append((node, fragment, ExecResult("", stderr, exit_code)))

    def respond(self, node: str | None, fragment: str, stdout: str) -> None:
        """Make exec succeed with stdout when the script on node contains fragment."""
        self._exec_rules.append((node, fragment, ExecResult(stdout, "", 0)))

    def add_vm(self, name: str, ip: str | None = None, state: str = "Running") -> None:
        self.vms[name] = VmInfo(name=name, state=state, ipv4=[ip] if ip else [])

    def execs_on(self, node: str, fragment: str = "") -> list[str]:
        return [script for n, script in self.execs if n == node and fragment in script]

    def check_available(self) -> None:
        if not self.available:
            raise ProviderError("Multipass is not installed or not in PATH")

    def create(self, name: str, cpu: int, memory: str, disk: str) -> None:
        with self._lock:
            self.creates.append(name)
        if name in self.fail_create:
            raise ProviderError(f"multipass launch failed for {name}")
        with self._lock:
            if name == "control-plane":
                ip = CONTROL_PLANE_IP
            else:
                ip = f"192.168.64.{20 + len(self.vms)}"
            self.add_vm(name, ip)

    def delete(self, name: str, purge: bool = True) -> None:
        self.deletes.append(name)
        if name in self.fail_delete:
            raise ProviderError(f"multipass delete failed for {name}")
        self.vms.pop(name, None)

    def list(self) -> list[VmInfo]:
        return list(self.vms.values())

    def info(self, name: str) -> VmInfo:
        if name not in self.vms:
            raise ProviderError(f"instance \"{name}\" does not exist")
        return self.vms[name]

    def exec(self, name: str, script: str) -> ExecResult:
        with self._lock:
            self.execs.append((name, script))
        if name not in self.vms:
            raise ProviderError(f"instance \"{name}\" does not exist")

        for node, fragment, result in self._exec_rules:
            if (node is None or node == name) and fragment in script:
                return result

        if script.startswith("sudo test -f "):
            path = script.removeprefix("sudo test -f ").strip("'")
            return ExecResult("", "", 1 if path in self.missing_files else 0)
        if script.startswith("sudo cat "):
            path = script.removeprefix("sudo cat ")
            if path in self.remote_files:
                return ExecResult(self.remote_files[path], "", 0)
            return ExecResult("", f"cat: {path}: No such file or directory", 1)
        if "kubeadm token create" in script:
            return ExecResult(KUBEADM_JOIN_COMMAND + " \n", "", 0)
        if "k0s token create" in script:
            return ExecResult(K0S_TOKEN + "\n", "", 0)
        return ExecResult("", "", 0)

    def transfer_file(self, name: str, local_path: Path, remote_path: str) -> None:
        content = Path(local_path).read_text()
        with self._lock:
            self.transfers.append((name, remote_path, content))
        if name in self.fail_transfer:
            raise ProviderError(f"multipass transfer failed for {name}")


@pytest.fixture
def provider():
    """A fresh FakeProvider."""
    return FakeProvider()


@pytest.fixture
def cluster_provider(provider):
    """FakeProvider that already runs a control plane and two workers."""
    provider.add_vm("control-plane", CONTROL_PLANE_IP)
    provider.add_vm("worker1", "192.168.64.21")
    provider.add_vm("worker2", "192.168.64.22")
    return provider


@pytest.fixture
def orchestrator_settings(tmp_path):
    """Settings writing into a temporary directory, with a short credential wait."""
    return OrchestratorSettings(
        workdir=tmp_path, credential_wait_timeout=0.5, credential_poll_interval=0.01
    )


@pytest.fixture
def kubectl_on_path(monkeypatch):
    """Pretend kubectl is installed on the host."""
    monkeypatch.setattr("kubelab.bootstrap.shutil.which", lambda name: f"/usr/bin/{name}")
