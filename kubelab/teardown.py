"""Teardown: delete the cluster VMs and the host-side artifacts.

Teardown relies only on the naming convention, so it works for any distribution
and needs no record of how the cluster was built.
"""

from dataclasses import dataclass, field
from pathlib import Path

from kubelab.constants import CONTROL_PLANE_NAME, LOCAL_ARTIFACTS
from kubelab.exceptions import NoClusterFoundError, ProviderError, TeardownError
from kubelab.logging_config import get_logger
from kubelab.models.cluster import ClusterState
from kubelab.provider import CapabilityProvider

logger = get_logger(__name__)


@dataclass
class TeardownReport:
    """What teardown removed."""

    deleted_vms: list[str] = field(default_factory=list)
    failed_vms: dict[str, str] = field(default_factory=dict)
    removed_files: list[Path] = field(default_factory=list)
    failed_files: dict[Path, str] = field(default_factory=dict)


def teardown(provider: CapabilityProvider, workdir: Path) -> TeardownReport:
    """Delete the control plane, every worker VM and the local artifacts.

    Every deletion is attempted even if an earlier one failed.

    Args:
        provider: Capability provider
        workdir: Directory holding the exported artifacts

    Returns:
        TeardownReport

    Raises:
        NoClusterFoundError: If there is no control-plane VM
        TeardownError: If a VM could not be deleted or an artifact removed
    """
    try:
        state = ClusterState.from_vms(provider.list())
    except ProviderError as e:
        raise TeardownError([], "Failed to list VMs", e.format_message())

    if not state.exists:
        raise NoClusterFoundError(
            "No cluster found",
            f"There is no VM named '{CONTROL_PLANE_NAME}' to delete",
        )

    report = TeardownReport()
    for vm in [state.control_plane, *state.workers]:
        try:
            provider.delete(vm.name, purge=True)
        except ProviderError as e:
            logger.error(f"Failed to delete VM '{vm.name}': {e.message}")
            report.failed_vms[vm.name] = e.format_message()
            continue
        report.deleted_vms.append(vm.name)

    workdir = Path(workdir)
    for name in LOCAL_ARTIFACTS:
        path = workdir / name
        if not path.exists():
            continue
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Failed to remove {path}: {e}")
            report.failed_files[path] = str(e)
            continue
        logger.info(f"Removed {path}")
        report.removed_files.append(path)

    if report.failed_vms or report.failed_files:
        failed = list(report.failed_vms)
        if failed:
            message = f"Failed to delete {len(failed)} VM(s): {', '.join(failed)}"
        else:
            message = f"Failed to remove {len(report.failed_files)} local file(s)"
        problems = [f"- {name}: {err}" for name, err in report.failed_vms.items()]
        problems += [f"- {path}: {err}" for path, err in report.failed_files.items()]
        raise TeardownError(failed, message, "\n".join(problems))

    logger.info(f"Deleted {len(report.deleted_vms)} VM(s)")
    return report
