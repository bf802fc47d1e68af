"""Property-based tests for the kubeconfig server address rewrite."""

from hypothesis import given
from hypothesis import strategies as st

from kubelab.kubeconfig import rewrite_server_address, server_url

# Base64-ish payloads, occasionally containing the internal host names
BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/="
payload = st.text(alphabet=BASE64, min_size=1) | st.sampled_from(
    ["localhost", "127.0.0.1", "bG9jYWxob3N0localhost127.0.0.1"]
)


@st.composite
def ipv4(draw):
    """Generate dotted IPv4 addresses."""
    return ".".join(str(draw(st.integers(min_value=0, max_value=255))) for _ in range(4))


def kubeconfig(server: str, ca_data: str, key_data: str) -> str:
    return (
        "apiVersion: v1\n"
        "clusters:\n"
        "- cluster:\n"
        f"    certificate-authority-data: {ca_data}\n"
        f"    server: {server}\n"
        "  name: default\n"
        "users:\n"
        "- name: default\n"
        "  user:\n"
        f"    client-key-data: {key_data}\n"
    )


@given(
    host=st.sampled_from(["localhost", "127.0.0.1"]),
    port=st.integers(min_value=1, max_value=65535),
    address=ipv4(),
    ca_data=payload,
    key_data=payload,
)
def test_rewrite_changes_only_the_server_host(host, port, address, ca_data, key_data):
    """Rewriting touches the server host and nothing else."""
    original = kubeconfig(f"https://{host}:{port}", ca_data, key_data)

    rewritten, count = rewrite_server_address(original, (host,), address)

    assert count == 1
    assert server_url(rewritten) == f"https://{address}:{port}"
    assert rewritten == kubeconfig(f"https://{address}:{port}", ca_data, key_data)


@given(address=ipv4(), other=ipv4(), ca_data=payload)
def test_rewrite_is_noop_for_external_servers(address, other, ca_data):
    """A config that already points elsewhere is returned unchanged."""
    original = kubeconfig(f"https://{other}:6443", ca_data, "a2V5")

    rewritten, count = rewrite_server_address(original, ("localhost",), address)

    assert count == 0
    assert rewritten == original


@given(address=ipv4())
def test_rewrite_is_idempotent(address):
    """Rewriting twice gives the same result as rewriting once."""
    original = kubeconfig("https://127.0.0.1:6443", "Y2E=", "a2V5")

    once, _ = rewrite_server_address(original, ("127.0.0.1",), address)
    twice, count = rewrite_server_address(once, ("127.0.0.1",), address)

    assert twice == once
    assert count == (1 if address == "127.0.0.1" else 0)
