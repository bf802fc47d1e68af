"""Export the admin kubeconfig from the control plane to the invoking host.

The kubeconfig written by each distribution points its API server at an address
that only works from inside the VM (``127.0.0.1`` or ``localhost``). The exported
copy has that host rewritten to the control plane's external IPv4 address. Only
the host part of ``server:`` fields is touched; certificate and token material
is written back byte for byte.
"""

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from kubelab.constants import CONTROL_PLANE_NAME
from kubelab.exceptions import CredentialExportError, ProviderError
from kubelab.logging_config import get_logger
from kubelab.models.cluster import KubeconfigArtifact
from kubelab.provider import CapabilityProvider
from kubelab.remote import run_checked

if TYPE_CHECKING:
    from kubelab.distributions.base import DistributionStrategy

logger = get_logger(__name__)

_SERVER_FIELD = r"^(?P<prefix>[ \t]*(?:-[ \t]+)?server:[ \t]*[\"']?https?://)"
_SERVER_URL_RE = re.compile(
    r"^[ \t]*(?:-[ \t]+)?server:[ \t]*[\"']?(?P<url>[^\s\"']+)", re.MULTILINE
)


def rewrite_server_address(content: str, hosts: tuple[str, ...], address: str) -> tuple[str, int]:
    """Replace node-internal API server hosts with an external address.

    Args:
        content: Kubeconfig text
        hosts: Hosts to replace (e.g. ``("127.0.0.1",)``)
        address: Replacement IPv4 address

    Returns:
        Tuple of (rewritten content, number of server fields rewritten)
    """
    alternatives = "|".join(re.escape(h) for h in hosts)
    pattern = re.compile(_SERVER_FIELD + rf"(?:{alternatives})(?=[:/\"'\s]|$)", re.MULTILINE)
    return pattern.subn(lambda m: m.group("prefix") + address, content)


def server_url(content: str) -> str | None:
    """Return the first API server URL declared in a kubeconfig."""
    match = _SERVER_URL_RE.search(content)
    return match.group("url") if match else None


def write_private_file(path: Path, content: str) -> None:
    """Write a file readable only by the current user, replacing any previous copy."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    os.chmod(path, 0o600)


def export_credentials(
    provider: CapabilityProvider, strategy: "DistributionStrategy", workdir: Path
) -> KubeconfigArtifact:
    """Copy the admin kubeconfig off the control plane and make it host-usable.

    Args:
        provider: Capability provider
        strategy: Distribution strategy that owns the kubeconfig location
        workdir: Directory where the artifact is written

    Returns:
        The exported KubeconfigArtifact

    Raises:
        CredentialExportError: If the file is missing or empty, or the address lookup fails
    """
    node = CONTROL_PLANE_NAME
    source = strategy.admin_kubeconfig_path

    logger.info(f"[{node}] normalizing permissions of {source}")
    run_checked(
        provider,
        node,
        strategy.kubeconfig_setup_script(),
        CredentialExportError,
        f"Failed to install {source} for the unprivileged user on [{node}]",
    )

    result = run_checked(
        provider,
        node,
        f"sudo cat {source}",
        CredentialExportError,
        f"Failed to read {source} on [{node}]",
    )
    content = result.stdout.replace("\r\n", "\n")
    if not content.strip():
        raise CredentialExportError(f"{source} on [{node}] is empty")

    try:
        address = provider.info(node).primary_ipv4
    except ProviderError as e:
        raise CredentialExportError(
            f"Failed to look up the address of [{node}]", e.format_message()
        )
    if not address:
        raise CredentialExportError(
            f"[{node}] has no IPv4 address",
            "The VM may still be starting. Check: multipass info " + node,
        )

    rewritten, count = rewrite_server_address(content, strategy.internal_api_hosts, address)
    if count == 0 and strategy.requires_address_rewrite:
        raise CredentialExportError(
            f"No API server entry in {source} refers to {', '.join(strategy.internal_api_hosts)}",
            "The kubeconfig layout is not the one expected for "
            f"{strategy.distribution.value}; refusing to export an unreachable config",
        )
    logger.debug(f"Rewrote {count} server field(s) to {address}")

    workdir = Path(workdir)
    workdir.mkdir(parents=True, exist_ok=True)
    path = workdir / strategy.kubeconfig_filename
    try:
        write_private_file(path, rewritten)
    except OSError as e:
        raise CredentialExportError(f"Failed to write {path}", str(e))

    logger.info(f"Kubeconfig written to {path}")
    return KubeconfigArtifact(
        path=path,
        server=server_url(rewritten) or f"https://{address}",
        control_plane_ip=address,
    )
