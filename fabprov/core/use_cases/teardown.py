"""
Teardown use case — ``docker compose -f <peers> -f <ca> down [-v]``.

Credential bundles and generated files stay on disk; with ``volumes``
the peers' ledger volumes are removed too.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from fabprov.adapters.registry import AdapterRegistry, default_registry
from fabprov.core.config.loader import ConfigError, load_settings
from fabprov.core.context import OrgLayout
from fabprov.core.engine.executor import generate_operation_id
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class TeardownResult:
    compose_files: list[Path] = field(default_factory=list)
    receipt: Receipt | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
        result["compose_files"] = [str(p) for p in self.compose_files]
        if self.receipt is not None:
            result["receipt"] = self.receipt.model_dump(mode="json")
        return result


def run_teardown(
    config_path: Path | None = None,
    volumes: bool = False,
    registry: AdapterRegistry | None = None,
    settings: ProvisionSettings | None = None,
) -> TeardownResult:
    """Stop the peers and the CA of the organization."""
    result = TeardownResult()

    if settings is None:
        try:
            settings = load_settings(config_path)
        except ConfigError as e:
            result.error = e.message
            return result

    layout = OrgLayout.from_settings(settings)
    if registry is None:
        registry = default_registry(layout.ca_client_binary)

    files = [p for p in (layout.peer_compose_file, layout.ca_compose_file) if p.is_file()]
    result.compose_files = files
    if not files:
        result.error = f"No compose files in {layout.setup_dir}; nothing to stop"
        return result

    start = time.monotonic()
    receipt = registry.containers.down(files, cwd=layout.setup_dir, volumes=volumes)
    result.receipt = receipt
    if receipt.failed:
        result.error = f"docker compose down failed: {receipt.describe_failure()}"

    AuditWriter(setup_dir=settings.setup_dir).write(AuditEntry(
        operation_id=generate_operation_id(),
        operation_type="down",
        org_domain=settings.org_domain,
        mock=registry.mock_mode,
        status="ok" if receipt.ok else "failed",
        stages_total=1,
        stages_succeeded=1 if receipt.ok else 0,
        stages_failed=0 if receipt.ok else 1,
        duration_ms=int((time.monotonic() - start) * 1000),
        errors=[result.error] if result.error else [],
        context={"volumes": volumes, "compose_files": [p.name for p in files]},
    ))
    logger.info("Teardown of %s: %s", settings.org_domain, receipt.status)
    return result
