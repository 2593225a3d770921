"""
Probe use case — host environment, tool states and adapter availability, read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fabprov.adapters.registry import AdapterRegistry, default_registry
from fabprov.core.config.loader import load_settings
from fabprov.core.context import OrgLayout
from fabprov.core.data import get_registry
from fabprov.core.errors import ProvisionError
from fabprov.core.models.requirement import HostEnvironment, ToolStatus
from fabprov.core.services.environment_probe import detect_host, probe_all, toolchain_env


@dataclass
class ProbeResult:
    host: HostEnvironment | None = None
    tools: list[ToolStatus] = field(default_factory=list)
    adapters: dict[str, dict[str, Any]] = field(default_factory=dict)
    error: str | None = None
    hint: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(t.satisfied for t in self.tools)

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            if self.hint:
                result["hint"] = self.hint
            return result
        result["host"] = self.host.to_dict() if self.host else None
        result["tools"] = [t.to_dict() for t in self.tools]
        result["adapters"] = self.adapters
        return result


def run_probe(
    config_path: Path | None = None,
    registry: AdapterRegistry | None = None,
) -> ProbeResult:
    """Detect the host and classify every requirement without installing.

    The registry defaults to the real adapters, with fabric-ca-client
    resolved from the configured samples directory.
    """
    result = ProbeResult()
    try:
        if registry is None:
            settings = load_settings(config_path)
            registry = default_registry(OrgLayout.from_settings(settings).ca_client_binary)
        result.host = detect_host(registry.runner)
    except ProvisionError as e:
        result.error = e.message
        result.hint = e.hint
        return result

    result.tools = probe_all(registry.runner, get_registry().tool_requirements, toolchain_env())
    result.adapters = registry.adapter_status()
    return result
