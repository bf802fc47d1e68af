"""Custom exceptions for kubelab."""


class KubelabError(Exception):
    """Base exception for all kubelab errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigurationError(KubelabError):
    """Exception raised when a run configuration cannot be resolved."""

    pass


class ProviderError(KubelabError):
    """Exception raised when the VM provider itself fails."""

    pass


class StageError(KubelabError):
    """A fatal failure attributed to one stage of the bootstrap pipeline."""

    stage = "unknown"


class PreflightError(StageError):
    """Exception raised when a required tool is missing."""

    stage = "preflight"


class VmProvisioningError(StageError):
    """Exception raised when a VM cannot be created."""

    stage = "vm-provisioning"

    def __init__(self, node_name: str, message: str, details: str = None):
        self.node_name = node_name
        super().__init__(message, details)


class BootstrapError(StageError):
    """Base exception for control-plane side pipeline failures."""

    pass


class ControlPlaneInitError(BootstrapError):
    """Exception raised when the control-plane install/init script fails."""

    stage = "control-plane-init"


class ControlPlaneTimeoutError(BootstrapError):
    """Exception raised when the admin credential never shows up on the node."""

    stage = "control-plane-init"


class CredentialExportError(BootstrapError):
    """Exception raised when the admin kubeconfig cannot be exported."""

    stage = "credential-export"


class JoinSecretIssuanceError(BootstrapError):
    """Exception raised when the control plane cannot mint a join secret."""

    stage = "join-secret"


class NetworkPluginInstallError(BootstrapError):
    """Exception raised when the network plugin cannot be applied."""

    stage = "network-plugin"


class TaintRemovalError(BootstrapError):
    """Exception raised when the control-plane taint cannot be removed."""

    stage = "taint-removal"


class WorkerJoinError(KubelabError):
    """Exception raised when a single worker fails to join.

    Not fatal: the bootstrapper records it against the worker and moves on.
    """

    def __init__(self, node_name: str, message: str, details: str = None):
        self.node_name = node_name
        super().__init__(message, details)


class TeardownError(KubelabError):
    """Exception raised when some VMs could not be deleted during teardown."""

    def __init__(self, failed_nodes: list[str], message: str, details: str = None):
        self.failed_nodes = failed_nodes
        super().__init__(message, details)


class NoClusterFoundError(KubelabError):
    """Exception raised when teardown finds no control-plane VM."""

    pass
