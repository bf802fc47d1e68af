"""Multipass-backed capability provider."""

import json
import subprocess
from pathlib import Path

from kubelab.constants import DEFAULT_EXEC_TIMEOUT
from kubelab.exceptions import ProviderError
from kubelab.logging_config import get_logger
from kubelab.models.cluster import VmInfo
from kubelab.provider import CapabilityProvider, ExecResult

logger = get_logger(__name__)

INSTALL_HINT = "Install Multipass from https://multipass.run and make sure it is in your PATH"


class MultipassProvider(CapabilityProvider):
    """Drives the ``multipass`` CLI on the invoking host."""

    name = "multipass"

    def __init__(self, binary: str = "multipass", exec_timeout: int = DEFAULT_EXEC_TIMEOUT):
        """Initialize the provider.

        Args:
            binary: Name or path of the multipass executable
            exec_timeout: Seconds a single multipass invocation may take
        """
        self.binary = binary
        self.exec_timeout = exec_timeout

    def _run(
        self, args: list[str], timeout: int | None = None, check: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a multipass subcommand and translate OS-level failures.

        Raises:
            ProviderError: If multipass is missing, times out, or (with check) exits non-zero
        """
        command = [self.binary, *args]
        logger.debug(f"Running: {' '.join(command[:3])} ...")
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=check,
                timeout=timeout or self.exec_timeout,
            )
        except FileNotFoundError:
            logger.error("Multipass binary not found in PATH")
            raise ProviderError("Multipass is not installed or not in PATH", INSTALL_HINT)
        except subprocess.TimeoutExpired:
            logger.error(f"multipass {args[0]} timed out")
            raise ProviderError(
                f"multipass {args[0]} timed out",
                f"The command did not finish within {timeout or self.exec_timeout} seconds",
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"multipass {args[0]} failed with return code {e.returncode}: {e.stderr}")
            raise ProviderError(
                f"multipass {args[0]} failed with return code {e.returncode}",
                (e.stderr or "").strip() or None,
            )

    def check_available(self) -> None:
        self._run(["version"], timeout=30)

    def create(self, name: str, cpu: int, memory: str, disk: str) -> None:
        logger.info(f"Launching VM '{name}' (cpus={cpu}, memory={memory}, disk={disk})")
        self._run(
            [
                "launch",
                "--name",
                name,
                "--cpus",
                str(cpu),
                "--memory",
                memory,
                "--disk",
                disk,
            ]
        )

    def delete(self, name: str, purge: bool = True) -> None:
        logger.info(f"Deleting VM '{name}'")
        args = ["delete", name]
        if purge:
            args.insert(1, "--purge")
        self._run(args)

    def list(self) -> list[VmInfo]:
        result = self._run(["list", "--format", "json"], timeout=60)
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse multipass list output: {e}")
            raise ProviderError(
                "Failed to parse multipass list output",
                "multipass returned invalid JSON. This may indicate a version mismatch.",
            )

        return [
            VmInfo(
                name=entry["name"],
                state=entry.get("state", "Unknown"),
                ipv4=_ipv4_list(entry.get("ipv4")),
            )
            for entry in data.get("list", [])
        ]

    def info(self, name: str) -> VmInfo:
        result = self._run(["info", name, "--format", "json"], timeout=60)
        try:
            data = json.loads(result.stdout)
            entry = data["info"][name]
        except (json.JSONDecodeError, KeyError) as e:
            logger.error(f"Failed to parse multipass info output for '{name}': {e}")
            raise ProviderError(f"Failed to parse multipass info output for '{name}'")

        return VmInfo(
            name=name,
            state=entry.get("state", "Unknown"),
            ipv4=_ipv4_list(entry.get("ipv4")),
        )

    def exec(self, name: str, script: str) -> ExecResult:
        result = self._run(["exec", name, "--", "/bin/bash", "-c", script], check=False)
        return ExecResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)

    def transfer_file(self, name: str, local_path: Path, remote_path: str) -> None:
        logger.debug(f"Transferring {local_path} to {name}:{remote_path}")
        self._run(["transfer", str(local_path), f"{name}:{remote_path}"], timeout=120)


def _ipv4_list(value) -> list[str]:
    """multipass reports ipv4 as a list, or as a bare string on older releases."""
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
