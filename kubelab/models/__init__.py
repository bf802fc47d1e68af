"""Data models for run configuration, nodes and cluster state."""

from kubelab.models.cluster import (
    ClusterHandle,
    ClusterState,
    JoinSecret,
    KubeconfigArtifact,
    VmInfo,
    WorkerJoinResult,
)
from kubelab.models.config import (
    Distribution,
    NetworkPlugin,
    OrchestratorSettings,
    RunConfig,
    resolve_run_config,
)
from kubelab.models.node import Node, NodeRole, control_plane_node, is_worker_name, worker_nodes

__all__ = [
    "ClusterHandle",
    "ClusterState",
    "Distribution",
    "JoinSecret",
    "KubeconfigArtifact",
    "NetworkPlugin",
    "Node",
    "NodeRole",
    "OrchestratorSettings",
    "RunConfig",
    "VmInfo",
    "WorkerJoinResult",
    "control_plane_node",
    "is_worker_name",
    "resolve_run_config",
    "worker_nodes",
]
