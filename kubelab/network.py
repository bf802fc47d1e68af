"""Pod network installers for the kubeadm strategy.

All three plugins are applied from the control plane with its own kubectl. The
Calico custom resources are fetched on the host, patched with the configured
pod CIDR and transferred to the node before being created.
"""

import io
import tempfile
from pathlib import Path

import requests
from ruamel.yaml import YAML

from kubelab.constants import (
    CALICO_CUSTOM_RESOURCES_URL,
    CALICO_OPERATOR_URL,
    CILIUM_CLI_RELEASE_URL,
    CONTROL_PLANE_NAME,
    REMOTE_HOME,
    WEAVENET_MANIFEST_URL,
)
from kubelab.exceptions import NetworkPluginInstallError, ProviderError
from kubelab.logging_config import get_logger
from kubelab.models.config import NetworkPlugin
from kubelab.provider import CapabilityProvider
from kubelab.remote import run_checked

logger = get_logger(__name__)

CALICO_REMOTE_MANIFEST = f"{REMOTE_HOME}/calico-custom-resources.yaml"
CALICO_CRD = "crd/installations.operator.tigera.io"


def patch_calico_manifest(text: str, cidr: str) -> str:
    """Set ``Installation.spec.calicoNetwork.ipPools[0].cidr`` in a multi-document manifest.

    Everything else in the manifest is written back unchanged.

    Args:
        text: custom-resources.yaml content
        cidr: Pod network CIDR

    Returns:
        Patched manifest

    Raises:
        ValueError: If no Installation document with an IP pool is present
    """
    yaml = YAML()
    yaml.preserve_quotes = True
    docs = list(yaml.load_all(text))

    patched = False
    for doc in docs:
        if not isinstance(doc, dict) or doc.get("kind") != "Installation":
            continue
        try:
            pool = doc["spec"]["calicoNetwork"]["ipPools"][0]
        except (KeyError, IndexError, TypeError):
            raise ValueError("Installation resource has no spec.calicoNetwork.ipPools[0]")
        pool["cidr"] = cidr
        patched = True

    if not patched:
        raise ValueError("No Installation resource found in the Calico manifest")

    out = io.StringIO()
    yaml.dump_all(docs, out)
    return out.getvalue()


def fetch_manifest(url: str, timeout: int = 30) -> str:
    """Download a manifest on the host.

    Raises:
        NetworkPluginInstallError: If the download fails
    """
    logger.debug(f"Fetching {url}")
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise NetworkPluginInstallError(f"Failed to download {url}", str(e))
    return response.text


def install_weavenet(provider: CapabilityProvider) -> None:
    run_checked(
        provider,
        CONTROL_PLANE_NAME,
        f"kubectl apply -f {WEAVENET_MANIFEST_URL}",
        NetworkPluginInstallError,
        "Failed to apply the Weave Net manifest",
    )


def install_calico(provider: CapabilityProvider, cidr: str) -> None:
    run_checked(
        provider,
        CONTROL_PLANE_NAME,
        "set -euo pipefail\n"
        f"kubectl create -f {CALICO_OPERATOR_URL}\n"
        f"kubectl wait --for=condition=established --timeout=120s {CALICO_CRD}\n",
        NetworkPluginInstallError,
        "Failed to install the Tigera operator",
    )

    try:
        manifest = patch_calico_manifest(fetch_manifest(CALICO_CUSTOM_RESOURCES_URL), cidr)
    except ValueError as e:
        raise NetworkPluginInstallError("Unexpected Calico custom-resources manifest", str(e))

    with tempfile.TemporaryDirectory() as tmp:
        local = Path(tmp) / "custom-resources.yaml"
        local.write_text(manifest)
        try:
            provider.transfer_file(CONTROL_PLANE_NAME, local, CALICO_REMOTE_MANIFEST)
        except ProviderError as e:
            raise NetworkPluginInstallError(
                "Failed to copy the Calico manifest to the control plane", e.format_message()
            )

    run_checked(
        provider,
        CONTROL_PLANE_NAME,
        f"kubectl create -f {CALICO_REMOTE_MANIFEST}",
        NetworkPluginInstallError,
        "Failed to create the Calico custom resources",
    )


def cilium_script() -> str:
    """Install the cilium CLI for the node's OS and architecture, then Cilium itself."""
    return (
        "set -euo pipefail\n"
        "cd \"$(mktemp -d)\"\n"
        "OS=\"$(uname | tr '[:upper:]' '[:lower:]')\"\n"
        "ARCH=\"$(uname -m | sed -e 's/x86_64/amd64/' "
        "-e 's/\\(arm\\)\\(64\\)\\?.*/\\1\\2/' -e 's/aarch64$/arm64/')\"\n"
        f"curl -sSL --remote-name-all {CILIUM_CLI_RELEASE_URL}"
        "/cilium-$OS-$ARCH.tar.gz{,.sha256sum}\n"
        "sha256sum --check cilium-$OS-$ARCH.tar.gz.sha256sum\n"
        "sudo tar xzfC cilium-$OS-$ARCH.tar.gz /usr/local/bin\n"
        "cilium install\n"
    )


def install_cilium(provider: CapabilityProvider) -> None:
    run_checked(
        provider,
        CONTROL_PLANE_NAME,
        cilium_script(),
        NetworkPluginInstallError,
        "Failed to install Cilium",
    )


def install_network_plugin(
    provider: CapabilityProvider, plugin: NetworkPlugin, calico_cidr: str
) -> None:
    """Apply the selected pod network from the control plane.

    Args:
        provider: Capability provider
        plugin: Network plugin to install
        calico_cidr: Pod CIDR used by Calico

    Raises:
        NetworkPluginInstallError: If the plugin could not be installed
    """
    logger.info(f"[{CONTROL_PLANE_NAME}] installing {plugin.value} network plugin")
    if plugin == NetworkPlugin.WEAVENET:
        install_weavenet(provider)
    elif plugin == NetworkPlugin.CALICO:
        install_calico(provider, calico_cidr)
    elif plugin == NetworkPlugin.CILIUM:
        install_cilium(provider)
    else:
        raise NetworkPluginInstallError(f"Unsupported network plugin '{plugin}'")
    logger.info(f"[{CONTROL_PLANE_NAME}] {plugin.value} network plugin installed")
