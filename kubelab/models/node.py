"""Data models for cluster nodes and the VM naming convention."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from kubelab.constants import CONTROL_PLANE_NAME, WORKER_NAME_PATTERN, WORKER_PREFIX

_WORKER_NAME_RE = re.compile(WORKER_NAME_PATTERN, re.ASCII)


class NodeRole(str, Enum):
    """Role a VM plays in the cluster."""

    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


class Node(BaseModel):
    """A VM belonging to the cluster, identified by its name only."""

    model_config = ConfigDict(frozen=True)

    name: str
    role: NodeRole
    index: int | None = None

    @field_validator("index")
    @classmethod
    def validate_index(cls, v: int | None) -> int | None:
        """Worker ordinals start at 1."""
        if v is not None and v < 1:
            raise ValueError(f"index must be >= 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_naming(self) -> "Node":
        """Names must follow the naming convention for their role."""
        if self.role == NodeRole.CONTROL_PLANE:
            if self.name != CONTROL_PLANE_NAME or self.index is not None:
                raise ValueError(
                    f"control-plane node must be named '{CONTROL_PLANE_NAME}' with no index"
                )
        elif self.index is None or self.name != worker_name(self.index):
            raise ValueError(f"worker node '{self.name}' does not match index {self.index}")
        return self

    def __str__(self) -> str:
        return self.name


def worker_name(index: int) -> str:
    """Return the VM name of the worker with the given 1-based ordinal."""
    return f"{WORKER_PREFIX}{index}"


def is_worker_name(name: str) -> bool:
    """Check whether a VM name matches the worker naming convention."""
    return _WORKER_NAME_RE.fullmatch(name) is not None


def control_plane_node() -> Node:
    """The single control-plane node of the cluster."""
    return Node(name=CONTROL_PLANE_NAME, role=NodeRole.CONTROL_PLANE)


def worker_nodes(count: int) -> list[Node]:
    """Build ``worker1..worker<count>``.

    Args:
        count: Number of workers, may be zero

    Returns:
        Worker nodes in ordinal order
    """
    if count < 0:
        raise ValueError(f"worker count cannot be negative, got {count}")
    return [Node(name=worker_name(i), role=NodeRole.WORKER, index=i) for i in range(1, count + 1)]
