"""
Status use case — what the last run left behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fabprov.core.config.loader import ConfigError, load_settings
from fabprov.core.context import OrgLayout
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.models.state import ProvisionState
from fabprov.core.persistence.audit import AuditEntry, AuditWriter
from fabprov.core.persistence.state_file import default_state_path, load_state
from fabprov.core.services.credentials import msp_complete, node_bundle_complete
from fabprov.core.services.enrollment import admin_bundle, org_admin_id, peer_bundle, user_bundle


@dataclass
class StatusResult:
    """Run state, on-disk artifacts and recent ledger entries."""

    settings: ProvisionSettings | None = None
    state: ProvisionState | None = None
    artifacts: dict[str, bool] = field(default_factory=dict)
    recent: list[AuditEntry] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        if self.settings:
            result["organization"] = {
                "name": self.settings.org_name,
                "domain": self.settings.org_domain,
                "peers": self.settings.num_peers,
                "setup_dir": str(self.settings.setup_dir),
            }

        if self.state:
            result["last_run"] = self.state.last_run.model_dump()
            result["stages"] = {
                name: {"status": record.status, "finished_at": record.finished_at}
                for name, record in self.state.stages.items()
            }

        result["artifacts"] = self.artifacts
        result["recent"] = [entry.model_dump(mode="json") for entry in self.recent]
        return result


def collect_artifacts(settings: ProvisionSettings) -> dict[str, bool]:
    """Which generated files and credential bundles exist."""
    layout = OrgLayout.from_settings(settings)
    artifacts = {
        "ca-compose": layout.ca_compose_file.is_file(),
        "ca-server-config": layout.ca_server_config.is_file(),
        "peer-compose": layout.peer_compose_file.is_file(),
        "ca-admin": msp_complete(admin_bundle(layout, settings.ca_admin_user).msp_dir),
    }
    for node in settings.topology().nodes():
        artifacts[node.host] = node_bundle_complete(peer_bundle(layout, node))
    admin_id = org_admin_id(settings.org_domain)
    artifacts[admin_id] = msp_complete(user_bundle(layout, admin_id).msp_dir)
    return artifacts


def get_status(config_path: Path | None = None, recent: int = 5) -> StatusResult:
    """Read settings, run state and the tail of the audit ledger.

    Args:
        config_path: Optional explicit fabprov.yml.
        recent: How many ledger entries to include.
    """
    result = StatusResult()

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        result.error = e.message
        return result
    result.settings = settings

    result.state = load_state(default_state_path(settings.setup_dir))
    result.artifacts = collect_artifacts(settings)
    result.recent = AuditWriter(setup_dir=settings.setup_dir).read_recent(recent)
    return result
