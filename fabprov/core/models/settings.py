"""
Provisioning settings — the organization, versions, ports and budgets.

Defaults reproduce the stock single-org layout (Org1, three peers,
Fabric 3.0 / CA 1.5). Loaded from fabprov.yml by the config loader and
overridden by FABRIC_SAMPLES_DIR / PEER_ORG_SETUP_DIR.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from fabprov.core.models.service import NetworkTopology, PortScheme
from fabprov.core.services.versioning import parse_version


class ReadinessBudget(BaseModel):
    """Bounded polling budget for the CA readiness wait."""

    initial_delay: float = Field(default=5.0, ge=0)
    retries: int = Field(default=10, ge=1)
    interval: float = Field(default=6.0, ge=0)
    # extra wait for the CA's TLS root certificate after it is listening
    tls_retries: int = Field(default=5, ge=1)
    tls_interval: float = Field(default=2.0, ge=0)


class ProvisionSettings(BaseModel):
    """Everything the workflow needs to know about the target network."""

    # ── Organization ─────────────────────────────────────────────
    org_name: str = "Org1"
    org_domain: str = "org1.example.com"
    num_peers: int = Field(default=3, ge=1)

    # ── Versions ─────────────────────────────────────────────────
    fabric_version: str = "3.0.0"
    ca_version: str = "1.5.10"
    ca_image_tag: str = "1.5"
    peer_image_tag: str = "3.0"
    samples_repository: str = "https://github.com/hyperledger/fabric-samples.git"

    # ── CA ───────────────────────────────────────────────────────
    ca_host: str = "localhost"
    ca_port: int = 7054
    ca_operations_port: int = 17054
    ca_admin_user: str = "admin"
    ca_admin_password: str = Field(default="adminpw", repr=False)

    # ── Peers ────────────────────────────────────────────────────
    ports: PortScheme = Field(default_factory=PortScheme)

    # ── Budgets ──────────────────────────────────────────────────
    readiness: ReadinessBudget = Field(default_factory=ReadinessBudget)

    # ── Directories ──────────────────────────────────────────────
    samples_dir: Path = Field(default_factory=lambda: Path.home() / "fabric-samples")
    setup_dir: Path = Field(default_factory=lambda: Path.home() / "peer-org-setup")
    go_path: Path | None = None

    @field_validator("fabric_version", "ca_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        parse_version(value)
        return value

    @field_validator("samples_dir", "setup_dir", "go_path")
    @classmethod
    def _expand_dir(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return Path(value).expanduser()

    @model_validator(mode="after")
    def _check_port_collisions(self) -> ProvisionSettings:
        seen: dict[int, str] = {
            self.ca_port: "ca",
            self.ca_operations_port: "ca-operations",
        }
        if self.ca_port == self.ca_operations_port:
            raise ValueError(f"CA port {self.ca_port} is used twice")
        topology = self.topology()
        for node in topology.nodes():
            for family, port in (
                ("peer", node.peer_port),
                ("chaincode", node.chaincode_port),
                ("operations", node.operations_port),
            ):
                label = f"{node.name}/{family}"
                if port in seen:
                    raise ValueError(
                        f"Port {port} of {label} collides with {seen[port]}"
                    )
                seen[port] = label
        return self

    # ── Derived names ────────────────────────────────────────────

    @property
    def org_key(self) -> str:
        """Lower-cased org name used in directory/network names."""
        return self.org_name.lower()

    @property
    def msp_id(self) -> str:
        return f"{self.org_name}MSP"

    @property
    def ca_name(self) -> str:
        return f"ca-{self.org_key}"

    @property
    def network_name(self) -> str:
        """Docker network shared by the CA and the peers."""
        return f"{self.org_key}_fabric_network"

    @property
    def ca_url(self) -> str:
        return f"https://{self.ca_host}:{self.ca_port}"

    @property
    def peer_compose_filename(self) -> str:
        return f"docker-compose-{self.org_key}-peers.yaml"

    def topology(self) -> NetworkTopology:
        return NetworkTopology(
            domain=self.org_domain,
            node_count=self.num_peers,
            ports=self.ports,
        )
