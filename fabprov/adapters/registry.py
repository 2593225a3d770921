"""
Adapter registry — capability lookup for the workflow.

The registry is the single point of adapter management. Services never
construct adapters themselves: they ask the registry for a capability
(``runner``, ``containers``, ``vcs``, ``identity``, ``network``) and
get whatever implementation was registered for it, real or mock.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fabprov.adapters.base import (
    Adapter,
    CommandRunner,
    ContainerOrchestrator,
    IdentityAuthority,
    ReachabilityProbe,
    SourceControl,
)

logger = logging.getLogger(__name__)

# capability key → interface the registered adapter must implement
CAPABILITIES: dict[str, type[Adapter]] = {
    "runner": CommandRunner,
    "containers": ContainerOrchestrator,
    "vcs": SourceControl,
    "identity": IdentityAuthority,
    "network": ReachabilityProbe,
}


class AdapterRegistry:
    """Capability → adapter mapping.

    Features:
        - Register adapters under a capability key (type-checked)
        - Typed accessors for each capability
        - Availability report for the probe command
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def register(self, capability: str, adapter: Adapter) -> None:
        """Register an adapter for a capability.

        Raises:
            ValueError: Unknown capability key.
            TypeError: Adapter does not implement the capability.
        """
        interface = CAPABILITIES.get(capability)
        if interface is None:
            raise ValueError(
                f"Unknown capability '{capability}'. "
                f"Valid: {', '.join(sorted(CAPABILITIES))}"
            )
        if not isinstance(adapter, interface):
            raise TypeError(
                f"{adapter.__class__.__name__} does not implement {interface.__name__}"
            )
        if capability in self._adapters:
            logger.warning("Overwriting existing adapter for %s", capability)
        self._adapters[capability] = adapter
        logger.debug("Registered %s adapter: %s", capability, adapter.name)

    def require(self, capability: str) -> Adapter:
        adapter = self._adapters.get(capability)
        if adapter is None:
            raise LookupError(f"No adapter registered for '{capability}'")
        return adapter

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered adapter, for ``fabprov probe``."""
        return {
            capability: {
                "name": adapter.name,
                "available": adapter.is_available(),
                "type": adapter.__class__.__name__,
            }
            for capability, adapter in self._adapters.items()
        }

    # ── Typed accessors ─────────────────────────────────────────

    @property
    def runner(self) -> CommandRunner:
        return self.require("runner")  # type: ignore[return-value]

    @property
    def containers(self) -> ContainerOrchestrator:
        return self.require("containers")  # type: ignore[return-value]

    @property
    def vcs(self) -> SourceControl:
        return self.require("vcs")  # type: ignore[return-value]

    @property
    def identity(self) -> IdentityAuthority:
        return self.require("identity")  # type: ignore[return-value]

    @property
    def network(self) -> ReachabilityProbe:
        return self.require("network")  # type: ignore[return-value]


def default_registry(ca_client_binary: Path) -> AdapterRegistry:
    """Registry wired to the real host tools.

    Args:
        ca_client_binary: Where the fetched fabric-ca-client lives. It
            does not need to exist yet; the adapter resolves it per call.
    """
    from fabprov.adapters.containers.docker import DockerComposeAdapter
    from fabprov.adapters.identity.fabric_ca import FabricCAClientAdapter
    from fabprov.adapters.network.tcp import TcpProbeAdapter
    from fabprov.adapters.shell.command import ShellCommandAdapter
    from fabprov.adapters.vcs.git import GitAdapter

    registry = AdapterRegistry()
    registry.register("runner", ShellCommandAdapter())
    registry.register("containers", DockerComposeAdapter())
    registry.register("vcs", GitAdapter())
    registry.register("identity", FabricCAClientAdapter(ca_client_binary))
    registry.register("network", TcpProbeAdapter())
    return registry
