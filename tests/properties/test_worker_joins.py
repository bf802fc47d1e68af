"""Property-based tests for worker join failure handling."""

import tempfile
from pathlib import Path
from unittest.mock import patch

from conftest import FakeProvider
from hypothesis import given, settings
from hypothesis import strategies as st

from kubelab.bootstrap import ClusterBootstrapper
from kubelab.models.config import OrchestratorSettings, resolve_run_config


@st.composite
def workers_and_failures(draw):
    """Generate a worker count and the subset of workers whose join fails."""
    count = draw(st.integers(min_value=0, max_value=6))
    if count == 0:
        return 0, set()
    return count, draw(st.sets(st.integers(min_value=1, max_value=count)))


@settings(max_examples=25, deadline=None)
@given(case=workers_and_failures(), max_parallel=st.integers(min_value=1, max_value=4))
def test_join_failures_are_isolated(case, max_parallel):
    """Exactly the failing workers are reported; every other worker joins."""
    count, failing = case
    provider = FakeProvider()
    for i in failing:
        provider.fail_exec(f"worker{i}", "K3S_URL=", stderr="join refused")

    with tempfile.TemporaryDirectory() as workdir, patch(
        "kubelab.bootstrap.shutil.which", return_value="/usr/bin/kubectl"
    ):
        orchestrator_settings = OrchestratorSettings(
            workdir=Path(workdir),
            credential_wait_timeout=1,
            credential_poll_interval=0,
            max_parallel=max_parallel,
        )
        handle = ClusterBootstrapper(provider, orchestrator_settings).bootstrap(
            resolve_run_config("k3s", workers=count)
        )

    expected = [f"worker{i}" for i in range(1, count + 1)]
    assert [r.node.name for r in handle.join_results] == expected
    assert {w.index for w in handle.failed_workers} == failing
    assert {w.index for w in handle.joined_workers} == set(range(1, count + 1)) - failing
    for name in expected:
        assert len(provider.execs_on(name, "K3S_URL=")) == 1
