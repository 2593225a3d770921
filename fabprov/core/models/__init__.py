"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from fabprov.core.models import ProvisionSettings, OrgIdentity, Receipt
"""

from fabprov.core.models.identity import (
    CAEndpoint,
    CredentialBundle,
    IdentityType,
    OrgIdentity,
)
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.requirement import (
    HostEnvironment,
    Severity,
    ToolRequirement,
    ToolState,
    ToolStatus,
)
from fabprov.core.models.service import (
    NetworkTopology,
    PeerNode,
    PortFamily,
    PortScheme,
    ServiceDescriptor,
)
from fabprov.core.models.settings import ProvisionSettings, ReadinessBudget
from fabprov.core.models.state import ProvisionState, RunRecord, StageRecord
from fabprov.core.models.template import GeneratedFile

__all__ = [
    # identity.py
    "CAEndpoint",
    "CredentialBundle",
    "GeneratedFile",
    # requirement.py
    "HostEnvironment",
    "IdentityType",
    # service.py
    "NetworkTopology",
    "OrgIdentity",
    "PeerNode",
    "PortFamily",
    "PortScheme",
    # settings.py
    "ProvisionSettings",
    # state.py
    "ProvisionState",
    "ReadinessBudget",
    # receipt.py
    "Receipt",
    "RunRecord",
    "ServiceDescriptor",
    "Severity",
    "StageRecord",
    "ToolRequirement",
    "ToolState",
    "ToolStatus",
]
