"""Helpers for running scripts on cluster nodes through a provider."""

import shlex

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

from kubelab.exceptions import (
    ControlPlaneInitError,
    ControlPlaneTimeoutError,
    KubelabError,
    ProviderError,
)
from kubelab.logging_config import get_logger
from kubelab.provider import CapabilityProvider, ExecResult

logger = get_logger(__name__)


def mask(text: str, secrets: list[str]) -> str:
    """Replace every secret value in text so it can be logged."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "********")
    return text


def _tail(result: ExecResult, lines: int = 20) -> str:
    output = (result.stderr or result.stdout or "").strip().splitlines()
    return "\n".join(output[-lines:])


def run_checked(
    provider: CapabilityProvider,
    node: str,
    script: str,
    error_cls: type[KubelabError],
    message: str,
    secrets: list[str] | None = None,
    **error_kwargs,
) -> ExecResult:
    """Run a script on a node and raise error_cls unless it exits 0.

    Provider failures are re-raised as error_cls too, so callers only deal with
    their own stage's error type.

    Args:
        provider: Capability provider
        node: VM name
        script: Bash script to run
        error_cls: Exception type raised on failure
        message: Error message used on failure
        secrets: Values masked out of log lines and error details
        **error_kwargs: Extra keyword arguments for error_cls (e.g. node_name)

    Returns:
        The successful ExecResult
    """
    secrets = secrets or []
    logger.debug(f"[{node}] exec: {mask(script, secrets)}")
    try:
        result = provider.exec(node, script)
    except ProviderError as e:
        raise error_cls(message=message, details=mask(e.format_message(), secrets), **error_kwargs)

    if not result.ok:
        logger.error(f"[{node}] script exited with {result.exit_code}")
        raise error_cls(
            message=message,
            details=mask(f"exit code {result.exit_code}\n{_tail(result)}", secrets),
            **error_kwargs,
        )
    return result


def file_exists(provider: CapabilityProvider, node: str, path: str) -> bool:
    """Check whether a file exists on a node (readable by root)."""
    result = provider.exec(node, f"sudo test -f {shlex.quote(path)}")
    return result.ok


def wait_for_file(
    provider: CapabilityProvider,
    node: str,
    path: str,
    timeout: float,
    interval: float,
) -> None:
    """Poll a node until a file exists, giving up after timeout seconds.

    Args:
        provider: Capability provider
        node: VM name
        path: Absolute path on the node
        timeout: Seconds before giving up
        interval: Seconds between two checks

    Raises:
        ControlPlaneTimeoutError: If the file did not appear in time
        ControlPlaneInitError: If the node could not be polled at all
    """
    logger.info(f"[{node}] waiting up to {timeout}s for {path}")
    retrying = Retrying(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda present: not present),
    )
    try:
        retrying(file_exists, provider, node, path)
    except RetryError:
        raise ControlPlaneTimeoutError(
            f"Timed out waiting for {path} on [{node}]",
            f"The file did not appear within {timeout} seconds. "
            "Inspect the node with: multipass shell " + node,
        )
    except ProviderError as e:
        raise ControlPlaneInitError(
            f"Lost contact with [{node}] while waiting for {path}",
            e.format_message(),
        )
    logger.info(f"[{node}] {path} is present")
