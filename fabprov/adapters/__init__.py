"""Adapters — capability bindings for external tools.

Public re-exports for convenient access.
"""

from fabprov.adapters.base import (
    Adapter,
    CommandRunner,
    ContainerOrchestrator,
    IdentityAuthority,
    ReachabilityProbe,
    SourceControl,
)
from fabprov.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "CommandRunner",
    "ContainerOrchestrator",
    "IdentityAuthority",
    "ReachabilityProbe",
    "SourceControl",
    "default_registry",
]
