"""Tests for exporting the admin kubeconfig."""

import stat

import pytest
from conftest import CONTROL_PLANE_IP, make_kubeconfig

from kubelab.constants import K0S_ADMIN_CONF, K3S_ADMIN_CONF, KUBEADM_ADMIN_CONF
from kubelab.distributions import get_strategy
from kubelab.exceptions import CredentialExportError
from kubelab.kubeconfig import export_credentials, rewrite_server_address, server_url
from kubelab.models.config import resolve_run_config


@pytest.fixture
def k3s_strategy(orchestrator_settings):
    return get_strategy(resolve_run_config("k3s"), orchestrator_settings)


@pytest.fixture
def k0s_strategy(orchestrator_settings):
    return get_strategy(resolve_run_config("k0s"), orchestrator_settings)


@pytest.fixture
def kubeadm_strategy(orchestrator_settings):
    return get_strategy(resolve_run_config("kubeadm"), orchestrator_settings)


def test_rewrite_only_touches_server_field():
    """Test that certificate data mentioning localhost is left alone."""
    content = make_kubeconfig("https://localhost:6443", ca_data="bG9jYWxob3N0localhost")

    rewritten, count = rewrite_server_address(content, ("localhost",), "10.0.0.7")

    assert count == 1
    assert "server: https://10.0.0.7:6443" in rewritten
    assert "bG9jYWxob3N0localhost" in rewritten
    assert rewritten.replace("10.0.0.7", "localhost", 1) == content


def test_rewrite_handles_quoted_server():
    """Test that a quoted server URL is rewritten."""
    content = '    server: "https://127.0.0.1:6443"\n'

    rewritten, count = rewrite_server_address(content, ("127.0.0.1",), "10.0.0.7")

    assert count == 1
    assert rewritten == '    server: "https://10.0.0.7:6443"\n'


def test_rewrite_ignores_other_hosts():
    """Test that a host merely starting with the internal name is not rewritten."""
    content = "    server: https://localhost.example.com:6443\n"

    rewritten, count = rewrite_server_address(content, ("localhost",), "10.0.0.7")

    assert count == 0
    assert rewritten == content


def test_server_url():
    """Test extraction of the first server URL."""
    assert server_url(make_kubeconfig("https://10.0.0.7:6443")) == "https://10.0.0.7:6443"
    assert server_url("apiVersion: v1\n") is None


def test_export_k3s(cluster_provider, k3s_strategy, tmp_path):
    """Test the k3s export rewrites 127.0.0.1 and writes a private file."""
    artifact = export_credentials(cluster_provider, k3s_strategy, tmp_path)

    assert artifact.path == tmp_path / "kubeconfig.k3s"
    assert artifact.server == f"https://{CONTROL_PLANE_IP}:6443"
    assert artifact.control_plane_ip == CONTROL_PLANE_IP
    content = artifact.path.read_text()
    assert "127.0.0.1" not in content
    assert stat.S_IMODE(artifact.path.stat().st_mode) == 0o600
    assert cluster_provider.execs_on("control-plane", f"sudo cat {K3S_ADMIN_CONF}")


def test_export_k0s(cluster_provider, k0s_strategy, tmp_path):
    """Test the k0s export rewrites localhost."""
    artifact = export_credentials(cluster_provider, k0s_strategy, tmp_path)

    assert artifact.path.name == "kubeconfig.k0s"
    assert f"server: https://{CONTROL_PLANE_IP}:6443" in artifact.path.read_text()


def test_export_kubeadm_keeps_advertise_address(cluster_provider, kubeadm_strategy, tmp_path):
    """Test that a kubeadm config already pointing at the node is copied as-is."""
    artifact = export_credentials(cluster_provider, kubeadm_strategy, tmp_path)

    assert artifact.path.name == "kubeconfig.cfg"
    assert artifact.path.read_text() == cluster_provider.remote_files[KUBEADM_ADMIN_CONF]


def test_export_normalizes_permissions_first(cluster_provider, k0s_strategy, tmp_path):
    """Test that the unprivileged user's copy is installed before reading."""
    export_credentials(cluster_provider, k0s_strategy, tmp_path)

    scripts = cluster_provider.execs_on("control-plane")
    setup = next(i for i, s in enumerate(scripts) if "/.kube/config" in s)
    read = next(i for i, s in enumerate(scripts) if s == f"sudo cat {K0S_ADMIN_CONF}")
    assert setup < read
    assert f"sudo cp {K0S_ADMIN_CONF}" in scripts[setup]


def test_export_overwrites_previous_artifact(cluster_provider, k3s_strategy, tmp_path):
    """Test that a rerun replaces an old kubeconfig."""
    (tmp_path / "kubeconfig.k3s").write_text("stale")

    artifact = export_credentials(cluster_provider, k3s_strategy, tmp_path)

    assert "stale" not in artifact.path.read_text()


def test_export_missing_file(cluster_provider, k3s_strategy, tmp_path):
    """Test that a missing admin kubeconfig fails the export."""
    del cluster_provider.remote_files[K3S_ADMIN_CONF]

    with pytest.raises(CredentialExportError) as exc_info:
        export_credentials(cluster_provider, k3s_strategy, tmp_path)

    assert "No such file" in exc_info.value.details
    assert not (tmp_path / "kubeconfig.k3s").exists()


def test_export_empty_file(cluster_provider, k3s_strategy, tmp_path):
    """Test that an empty admin kubeconfig fails the export."""
    cluster_provider.remote_files[K3S_ADMIN_CONF] = "\n"

    with pytest.raises(CredentialExportError, match="empty"):
        export_credentials(cluster_provider, k3s_strategy, tmp_path)


def test_export_without_address(cluster_provider, k3s_strategy, tmp_path):
    """Test that an unknown control-plane address fails the export."""
    cluster_provider.add_vm("control-plane", ip=None)

    with pytest.raises(CredentialExportError, match="no IPv4 address"):
        export_credentials(cluster_provider, k3s_strategy, tmp_path)


def test_export_without_internal_host(cluster_provider, k0s_strategy, tmp_path):
    """Test that k0s refuses a config that does not point at localhost."""
    cluster_provider.remote_files[K0S_ADMIN_CONF] = make_kubeconfig("https://10.1.1.1:6443")

    with pytest.raises(CredentialExportError, match="No API server entry"):
        export_credentials(cluster_provider, k0s_strategy, tmp_path)


def test_export_setup_failure(cluster_provider, k3s_strategy, tmp_path):
    """Test that a failing permission step is reported as an export error."""
    cluster_provider.fail_exec("control-plane", "/.kube/config", stderr="permission denied")

    with pytest.raises(CredentialExportError) as exc_info:
        export_credentials(cluster_provider, k3s_strategy, tmp_path)

    assert exc_info.value.stage == "credential-export"
    assert "permission denied" in exc_info.value.details
