"""
Identity models — the organization's CA identities and where their
credential bundles live on disk.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class IdentityType(str, Enum):
    PEER = "peer"
    CLIENT = "client"
    ADMIN = "admin"


class OrgIdentity(BaseModel):
    """An identity registered with (or bootstrapped into) the CA.

    Immutable once created. ``attributes`` values may carry the
    fabric-ca ``:ecert`` suffix (``"true:ecert"``) to have the attribute
    embedded in the enrollment certificate.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    secret: str = Field(repr=False)
    type: IdentityType
    attributes: dict[str, str] = Field(default_factory=dict)

    @property
    def registry_type(self) -> str:
        """The fabric-ca registry type (the bootstrap admin is a client)."""
        if self.type == IdentityType.ADMIN:
            return IdentityType.CLIENT.value
        return self.type.value

    def attrs_argument(self) -> str:
        """Attributes in the ``--id.attrs`` format: ``"k=v","k2=v2"``."""
        return ",".join(f'"{key}={value}"' for key, value in self.attributes.items())


class CAEndpoint(BaseModel):
    """Where and how to reach the CA server."""

    host: str = "localhost"
    port: int = 7054
    ca_name: str
    tls_certfile: Path

    def url_for(self, identity: OrgIdentity) -> str:
        """Enrollment URL with embedded credentials."""
        return f"https://{identity.id}:{identity.secret}@{self.host}:{self.port}"


class CredentialBundle(BaseModel):
    """Filesystem layout of one identity's enrolled material.

    ``home`` is the fabric-ca client home used while enrolling; the MSP
    (membership) sub-bundle always exists, the TLS sub-bundle only for
    nodes.
    """

    identity_id: str
    home: Path
    msp_dir: Path
    tls_dir: Path | None = None

    @property
    def signcert_dir(self) -> Path:
        return self.msp_dir / "signcerts"

    @property
    def keystore_dir(self) -> Path:
        return self.msp_dir / "keystore"
