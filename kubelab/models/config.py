"""Run configuration and its resolution from user options."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubelab.constants import (
    DEFAULT_CALICO_CIDR,
    DEFAULT_CPU,
    DEFAULT_CREDENTIAL_POLL_INTERVAL,
    DEFAULT_CREDENTIAL_WAIT_TIMEOUT,
    DEFAULT_DISK,
    DEFAULT_EXEC_TIMEOUT,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_MEMORY,
    K0S_DEFAULT_VERSION,
    KUBEADM_DEFAULT_VERSION,
    SIZE_PATTERN,
)
from kubelab.exceptions import ConfigurationError


class Distribution(str, Enum):
    """Control-plane bootstrapping strategy."""

    KUBEADM = "kubeadm"
    K3S = "k3s"
    K0S = "k0s"


class NetworkPlugin(str, Enum):
    """Pod network implementation (kubeadm only)."""

    WEAVENET = "weavenet"
    CALICO = "calico"
    CILIUM = "cilium"


# Per-distribution defaults: (workers, kubernetes_version, network_plugin)
DISTRIBUTION_DEFAULTS: dict[Distribution, tuple[int, str | None, NetworkPlugin | None]] = {
    Distribution.KUBEADM: (1, KUBEADM_DEFAULT_VERSION, NetworkPlugin.CILIUM),
    Distribution.K3S: (1, None, None),
    Distribution.K0S: (2, K0S_DEFAULT_VERSION, None),
}


class RunConfig(BaseModel):
    """Immutable configuration for a single bootstrap run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    distribution: Distribution
    workers: int = Field(ge=0)
    cpu: int = Field(default=DEFAULT_CPU, ge=1)
    memory: str = Field(default=DEFAULT_MEMORY, pattern=SIZE_PATTERN)
    disk: str = Field(default=DEFAULT_DISK, pattern=SIZE_PATTERN)
    kubernetes_version: str | None = None
    network_plugin: NetworkPlugin | None = None

    @model_validator(mode="after")
    def validate_network_plugin(self) -> "RunConfig":
        """Only the kubeadm strategy installs a network plugin, and it always needs one."""
        if self.distribution == Distribution.KUBEADM and self.network_plugin is None:
            raise ValueError("kubeadm requires a network plugin")
        if self.distribution != Distribution.KUBEADM and self.network_plugin is not None:
            raise ValueError(
                f"network plugin selection is only supported with kubeadm, "
                f"not {self.distribution.value}"
            )
        return self


class OrchestratorSettings(BaseSettings):
    """Runtime knobs, auto-loaded from KUBELAB_* env vars.

    Attributes:
        workdir: Directory where kubeconfig and token artifacts are written.
        credential_wait_timeout: Seconds to wait for the admin credential file.
        credential_poll_interval: Seconds between two credential file checks.
        exec_timeout: Seconds a single remote command may run.
        max_parallel: Upper bound on concurrent per-worker tasks.
        calico_cidr: Pod CIDR used when Calico is selected.
    """

    model_config = SettingsConfigDict(env_prefix="KUBELAB_", extra="ignore")

    workdir: Path = Field(default_factory=Path.cwd)
    credential_wait_timeout: float = Field(default=DEFAULT_CREDENTIAL_WAIT_TIMEOUT, gt=0)
    credential_poll_interval: float = Field(default=DEFAULT_CREDENTIAL_POLL_INTERVAL, ge=0)
    exec_timeout: int = Field(default=DEFAULT_EXEC_TIMEOUT, ge=1)
    max_parallel: int = Field(default=DEFAULT_MAX_PARALLEL, ge=1, le=64)
    calico_cidr: str = DEFAULT_CALICO_CIDR


def resolve_run_config(
    distribution: Distribution | str,
    *,
    workers: int | None = None,
    cpu: int | None = None,
    memory: str | None = None,
    disk: str | None = None,
    kubernetes_version: str | None = None,
    network_plugin: NetworkPlugin | str | None = None,
) -> RunConfig:
    """Merge user options with the distribution's defaults.

    Args:
        distribution: Bootstrapping strategy
        workers: Worker count override
        cpu: CPUs per VM override
        memory: Memory per VM override (e.g. ``4G``)
        disk: Disk per VM override (e.g. ``20G``)
        kubernetes_version: Version override passed to the installer
        network_plugin: Network plugin override (kubeadm only)

    Returns:
        Validated, immutable RunConfig

    Raises:
        ConfigurationError: If any option is invalid or the combination is unsupported
    """
    try:
        distribution = Distribution(distribution)
    except ValueError:
        allowed = ", ".join(d.value for d in Distribution)
        raise ConfigurationError(
            f"Unknown distribution '{distribution}'", f"Supported distributions: {allowed}"
        )

    if network_plugin is not None:
        try:
            network_plugin = NetworkPlugin(network_plugin)
        except ValueError:
            allowed = ", ".join(p.value for p in NetworkPlugin)
            raise ConfigurationError(
                f"Unknown network plugin '{network_plugin}'",
                f"Supported network plugins: {allowed}",
            )

    default_workers, default_version, default_plugin = DISTRIBUTION_DEFAULTS[distribution]
    options = {
        "distribution": distribution,
        "workers": default_workers if workers is None else workers,
        "cpu": DEFAULT_CPU if cpu is None else cpu,
        "memory": DEFAULT_MEMORY if memory is None else memory,
        "disk": DEFAULT_DISK if disk is None else disk,
        "kubernetes_version": kubernetes_version or default_version,
        "network_plugin": network_plugin if network_plugin is not None else default_plugin,
    }

    try:
        return RunConfig(**options)
    except ValidationError as e:
        problems = "\n".join(
            f"- {'.'.join(str(x) for x in error['loc']) or 'config'}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid {distribution.value} configuration", problems)
