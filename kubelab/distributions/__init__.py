"""Distribution strategies, one per supported Kubernetes flavour."""

from kubelab.distributions.base import DistributionStrategy
from kubelab.distributions.k0s import K0sStrategy
from kubelab.distributions.k3s import K3sStrategy
from kubelab.distributions.kubeadm import KubeadmStrategy
from kubelab.models.config import Distribution, OrchestratorSettings, RunConfig

STRATEGIES: dict[Distribution, type[DistributionStrategy]] = {
    Distribution.KUBEADM: KubeadmStrategy,
    Distribution.K3S: K3sStrategy,
    Distribution.K0S: K0sStrategy,
}


def get_strategy(config: RunConfig, settings: OrchestratorSettings) -> DistributionStrategy:
    """Return the strategy that bootstraps config.distribution."""
    return STRATEGIES[config.distribution](config, settings)


__all__ = [
    "DistributionStrategy",
    "K0sStrategy",
    "K3sStrategy",
    "KubeadmStrategy",
    "STRATEGIES",
    "get_strategy",
]
