"""
Provision use case — the full ``fabprov up`` workflow.

Loads settings and the previous run state, builds the stage plan,
executes it against the real host (or the mocks), and persists the
outcome: run state in ``.state/provision.json``, one ledger entry in
``.state/audit.ndjson``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from fabprov.adapters.registry import AdapterRegistry, default_registry
from fabprov.core.config.loader import ConfigError, load_settings
from fabprov.core.context import OrgLayout, WorkflowContext
from fabprov.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    Stage,
    execute_plan,
    generate_operation_id,
    write_audit_entries,
)
from fabprov.core.errors import SetupDirConflict
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.models.state import ProvisionState
from fabprov.core.persistence.audit import AuditWriter
from fabprov.core.persistence.state_file import default_state_path, load_state, save_state
from fabprov.core.services.artifact_fetcher import artifacts_ready, fetch_artifacts
from fabprov.core.services.ca_bootstrap import bring_up_ca, ca_running
from fabprov.core.services.dependency_installer import install_dependencies
from fabprov.core.services.enrollment import enroll_identities, enrollment_complete
from fabprov.core.services.environment_probe import probe_environment
from fabprov.core.services.peer_compose import start_peers

logger = logging.getLogger(__name__)

WORKFLOW = "up"


@dataclass
class RunResult:
    """Result of one provisioning run."""

    report: ExecutionReport | None = None
    settings: ProvisionSettings | None = None
    state_path: Path | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    hint: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.all_ok

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            if self.hint:
                result["hint"] = self.hint
        if self.settings is not None:
            result["org_domain"] = self.settings.org_domain
            result["setup_dir"] = str(self.settings.setup_dir)
        if self.warnings:
            result["warnings"] = self.warnings
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def build_plan(operation_id: str = "") -> ExecutionPlan:
    """The provisioning stages, in order."""
    return ExecutionPlan(
        operation_id=operation_id,
        workflow=WORKFLOW,
        stages=[
            Stage(
                name="probe",
                action=probe_environment,
                description="Detect OS, package manager and tool versions",
            ),
            Stage(
                name="dependencies",
                action=install_dependencies,
                description="Install missing prerequisites, check the Docker daemon",
            ),
            Stage(
                name="artifacts",
                action=fetch_artifacts,
                is_complete=artifacts_ready,
                description="Clone fabric-samples and download the Fabric binaries",
                skip_reason="samples and binaries present",
            ),
            Stage(
                name="ca",
                action=bring_up_ca,
                is_complete=ca_running,
                description="Configure, start and wait for the Fabric CA",
                skip_reason="CA container running",
            ),
            Stage(
                name="enrollment",
                action=enroll_identities,
                is_complete=enrollment_complete,
                description="Enroll the CA admin, the peers and the org admin",
                skip_reason="all credential bundles present",
            ),
            Stage(
                name="peers",
                action=start_peers,
                description="Write the peer compose file and start the peers",
            ),
        ],
    )


def check_run_mode(state: ProvisionState, settings: ProvisionSettings, mock: bool) -> None:
    """A setup directory belongs to either mock runs or real runs.

    Mock enrollment leaves bundles signed by a throwaway CA that a real
    run would otherwise treat as complete.

    Raises:
        SetupDirConflict: The setup directory holds output of the other mode.
    """
    setup_dir = settings.setup_dir
    if state.mock and not mock:
        raise SetupDirConflict(
            f"{setup_dir} holds the output of a --mock run",
            hint=(
                f"Remove {setup_dir} and the mock checkout {settings.samples_dir}, "
                "or set PEER_ORG_SETUP_DIR and FABRIC_SAMPLES_DIR to other directories"
            ),
        )
    if mock and not state.mock and state.last_run.run_id:
        raise SetupDirConflict(
            f"{setup_dir} holds a real provisioning",
            hint="Point PEER_ORG_SETUP_DIR and FABRIC_SAMPLES_DIR at scratch directories for --mock runs",
        )


def _no_sleep(seconds: float) -> None:
    logger.debug("mock mode: not sleeping %.1fs", seconds)


def run_provision(
    config_path: Path | None = None,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    settings: ProvisionSettings | None = None,
    on_stage: Callable[[Stage, Receipt], None] | None = None,
) -> RunResult:
    """Provision the organization.

    Args:
        config_path: Optional explicit fabprov.yml.
        mock_mode: Run every external call against the mocks.
        registry: Pre-configured adapter registry (overrides mock_mode wiring).
        settings: Already loaded settings (skips the config lookup).
        on_stage: Per-stage callback for CLI narration.

    Returns:
        RunResult with the execution report, or the config error.
    """
    result = RunResult()

    # ── Load settings ────────────────────────────────────────────
    if settings is None:
        try:
            settings = load_settings(config_path)
        except ConfigError as e:
            result.error = e.message
            result.hint = e.hint
            return result
    result.settings = settings

    # ── Set up adapter registry ──────────────────────────────────
    if registry is None:
        if mock_mode:
            from fabprov.adapters.mock import mock_registry

            registry = mock_registry(settings)
        else:
            registry = default_registry(OrgLayout.from_settings(settings).ca_client_binary)

    # ── Load previous state ──────────────────────────────────────
    state_path = default_state_path(settings.setup_dir)
    result.state_path = state_path
    state = load_state(state_path)
    try:
        check_run_mode(state, settings, registry.mock_mode)
    except SetupDirConflict as e:
        result.error = e.message
        result.hint = e.hint
        return result
    state.mock = registry.mock_mode
    state.org_name = settings.org_name
    state.org_domain = settings.org_domain

    ctx = WorkflowContext.create(
        settings,
        registry,
        state=state,
        persist=lambda s: save_state(s, state_path),
    )
    if registry.mock_mode:
        ctx.sleep = _no_sleep

    # ── Execute ──────────────────────────────────────────────────
    operation_id = generate_operation_id()
    state.last_run.run_id = operation_id
    state.last_run.started_at = datetime.now(UTC).isoformat()

    report = execute_plan(build_plan(operation_id), ctx, on_stage=on_stage)
    result.report = report
    result.warnings = list(ctx.warnings)
    if report.error is not None:
        result.error = report.error.message
        result.hint = report.error.hint

    # ── Persist state ────────────────────────────────────────────
    state.last_run.ended_at = datetime.now(UTC).isoformat()
    state.last_run.status = report.status
    state.last_run.failed_stage = report.failed_stage
    state.last_run.error = report.error.message if report.error else None
    save_state(state, state_path)

    # ── Write audit log ──────────────────────────────────────────
    write_audit_entries(
        report,
        AuditWriter(setup_dir=settings.setup_dir),
        org_domain=settings.org_domain,
        mock=registry.mock_mode,
    )

    if report.all_ok:
        logger.info("Provisioning of %s complete", settings.org_domain)
    else:
        logger.error("Provisioning failed at stage %s", report.failed_stage)
    return result
