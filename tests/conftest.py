"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from fabprov.adapters.mock import mock_registry, seed_samples_tree
from fabprov.core.context import WorkflowContext
from fabprov.core.models.settings import ProvisionSettings, ReadinessBudget


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """No directory overrides or log settings leak in from the caller."""
    for var in (
        "FABRIC_SAMPLES_DIR",
        "PEER_ORG_SETUP_DIR",
        "FABPROV_LOG_LEVEL",
        "FABPROV_LOG_FILE",
        "FABPROV_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def fast_budget() -> ReadinessBudget:
    return ReadinessBudget(initial_delay=0, retries=3, interval=0, tls_retries=2, tls_interval=0)


@pytest.fixture
def settings(tmp_path: Path, fast_budget: ReadinessBudget) -> ProvisionSettings:
    """Default Org1 settings rooted in a temporary directory."""
    return ProvisionSettings(
        samples_dir=tmp_path / "fabric-samples",
        setup_dir=tmp_path / "peer-org-setup",
        readiness=fast_budget,
    )


@pytest.fixture
def registry(settings: ProvisionSettings):
    return mock_registry(settings)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def ctx(settings, registry, sleeps) -> WorkflowContext:
    return WorkflowContext.create(settings, registry, sleep=sleeps.append)


@pytest.fixture
def samples_ctx(ctx: WorkflowContext) -> WorkflowContext:
    """Context whose samples checkout (with NodeOU config) exists."""
    seed_samples_tree(ctx.layout.samples_dir)
    return ctx


@pytest.fixture
def ca_ctx(samples_ctx: WorkflowContext) -> WorkflowContext:
    """Context with the (mock) CA configured, started and ready."""
    from fabprov.core.services.ca_bootstrap import bring_up_ca

    bring_up_ca(samples_ctx)
    return samples_ctx
