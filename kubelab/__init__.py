"""kubelab - disposable Kubernetes clusters on local virtual machines."""

__version__ = "0.1.0"
