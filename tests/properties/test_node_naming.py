"""Property-based tests for the VM naming convention."""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from kubelab.models.cluster import ClusterState, VmInfo
from kubelab.models.node import (
    Node,
    NodeRole,
    control_plane_node,
    is_worker_name,
    worker_name,
    worker_nodes,
)


@given(count=st.integers(min_value=0, max_value=200))
def test_worker_nodes_are_sequential(count):
    """For any worker count N, the workers are exactly worker1..workerN."""
    nodes = worker_nodes(count)

    assert [n.name for n in nodes] == [f"worker{i}" for i in range(1, count + 1)]
    assert [n.index for n in nodes] == list(range(1, count + 1))
    assert all(n.role == NodeRole.WORKER for n in nodes)
    assert len({n.name for n in nodes}) == count


@given(count=st.integers(max_value=-1))
def test_negative_worker_count_rejected(count):
    """A negative worker count never produces nodes."""
    with pytest.raises(ValueError):
        worker_nodes(count)


@given(index=st.integers(min_value=1, max_value=10_000))
def test_worker_names_round_trip_through_convention(index):
    """Every generated worker name is recognised as a worker name."""
    assert is_worker_name(worker_name(index))


@given(name=st.text(min_size=1, max_size=20))
def test_non_conforming_names_are_not_workers(name):
    """Names that are not 'worker' followed by digits are never workers."""
    conforming = name.startswith("worker") and name[6:].isascii() and name[6:].isdigit()
    assert is_worker_name(name) == conforming


@given(index=st.integers(min_value=1, max_value=1000), other=st.integers(min_value=1))
def test_worker_name_must_match_index(index, other):
    """A worker node whose name disagrees with its index is invalid."""
    if index == other:
        assert Node(name=worker_name(index), role=NodeRole.WORKER, index=other).index == index
    else:
        with pytest.raises(ValidationError):
            Node(name=worker_name(index), role=NodeRole.WORKER, index=other)


def test_control_plane_is_unique():
    """The control plane always has the same name and no index."""
    node = control_plane_node()

    assert node.name == "control-plane"
    assert node.index is None
    with pytest.raises(ValidationError):
        Node(name="master", role=NodeRole.CONTROL_PLANE)


@given(
    indexes=st.lists(st.integers(min_value=1, max_value=500), unique=True, max_size=20),
    foreign=st.lists(st.sampled_from(["primary", "db", "worker-x", "cp"]), unique=True),
    with_control_plane=st.booleans(),
)
def test_cluster_state_only_keeps_conforming_vms(indexes, foreign, with_control_plane):
    """Live cluster state keeps the control plane and workers, sorted by ordinal."""
    vms = [VmInfo(name=worker_name(i)) for i in indexes] + [VmInfo(name=n) for n in foreign]
    if with_control_plane:
        vms.append(VmInfo(name="control-plane"))

    state = ClusterState.from_vms(vms)

    assert [vm.name for vm in state.workers] == [worker_name(i) for i in sorted(indexes)]
    assert state.exists == with_control_plane
    assert not any(vm.name in foreign for vm in state.vms)
