"""
Workflow context — everything a stage needs, threaded explicitly.

Every stage receives the same WorkflowContext: the validated settings,
the on-disk layout derived from them, the adapter registry, the
persisted run state, and the per-run facts discovered along the way
(host environment, tool statuses, toolchain environment overrides).

Design notes:
    - The active fabric-ca client home is a context field. Steps that
      act as a different identity derive a new context with
      ``with_client_home()``; nothing touches ``os.environ``.
    - Toolchain variables (GOPATH, GOBIN, PATH) live in ``env`` and are
      passed to child processes only.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from fabprov.adapters.registry import AdapterRegistry
from fabprov.core.models.identity import CAEndpoint
from fabprov.core.models.requirement import HostEnvironment, ToolStatus
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.models.state import ProvisionState

CA_COMPOSE_FILE = "docker-compose-ca.yaml"
STATE_DIR = ".state"


@dataclass(frozen=True)
class OrgLayout:
    """Where every file of the organization lives."""

    samples_dir: Path
    setup_dir: Path
    org_key: str
    org_domain: str
    peer_compose_filename: str

    @classmethod
    def from_settings(cls, settings: ProvisionSettings) -> OrgLayout:
        return cls(
            samples_dir=settings.samples_dir,
            setup_dir=settings.setup_dir,
            org_key=settings.org_key,
            org_domain=settings.org_domain,
            peer_compose_filename=settings.peer_compose_filename,
        )

    # ── Samples checkout ─────────────────────────────────────────

    @property
    def bin_dir(self) -> Path:
        return self.samples_dir / "bin"

    @property
    def ca_client_binary(self) -> Path:
        return self.bin_dir / "fabric-ca-client"

    @property
    def peer_binary(self) -> Path:
        return self.bin_dir / "peer"

    @property
    def bootstrap_script(self) -> Path:
        return self.samples_dir / "scripts" / "bootstrap.sh"

    @property
    def nodeou_source(self) -> Path:
        """Preferred location of the NodeOU config inside the samples."""
        return (
            self.samples_dir / "test-network" / "organizations"
            / "fabric-ca" / "msp" / "config.yaml"
        )

    # ── CA ───────────────────────────────────────────────────────

    @property
    def organizations_dir(self) -> Path:
        return self.setup_dir / "organizations"

    @property
    def ca_dir(self) -> Path:
        return self.organizations_dir / "fabric-ca" / self.org_key

    @property
    def ca_server_config(self) -> Path:
        return self.ca_dir / "fabric-ca-server-config.yaml"

    @property
    def ca_server_data(self) -> Path:
        """Host side of the CA server home volume."""
        return self.ca_dir / "server-data"

    @property
    def ca_tls_certfile(self) -> Path:
        """Root certificate the CA writes on first start."""
        return self.ca_server_data / "ca-cert.pem"

    @property
    def ca_admin_home(self) -> Path:
        return self.ca_dir / "client-admin"

    @property
    def ca_compose_file(self) -> Path:
        return self.setup_dir / CA_COMPOSE_FILE

    # ── Peer organization ────────────────────────────────────────

    @property
    def peer_org_dir(self) -> Path:
        return self.organizations_dir / "peerOrganizations" / self.org_domain

    @property
    def org_msp_dir(self) -> Path:
        return self.peer_org_dir / "msp"

    @property
    def nodeou_config(self) -> Path:
        return self.org_msp_dir / "config.yaml"

    def peer_dir(self, host: str) -> Path:
        return self.peer_org_dir / "peers" / host

    def user_dir(self, user_id: str) -> Path:
        return self.peer_org_dir / "users" / user_id

    @property
    def peer_compose_file(self) -> Path:
        return self.setup_dir / self.peer_compose_filename

    # ── Run bookkeeping ──────────────────────────────────────────

    @property
    def state_dir(self) -> Path:
        return self.setup_dir / STATE_DIR


@dataclass
class WorkflowContext:
    """Explicit state shared by all stages of one run."""

    settings: ProvisionSettings
    registry: AdapterRegistry
    layout: OrgLayout
    state: ProvisionState = field(default_factory=ProvisionState)
    client_home: Path | None = None
    env: dict[str, str] = field(default_factory=dict)
    host: HostEnvironment | None = None
    tools: list[ToolStatus] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sleep: Callable[[float], None] = time.sleep
    persist: Callable[[ProvisionState], None] | None = None

    @classmethod
    def create(
        cls,
        settings: ProvisionSettings,
        registry: AdapterRegistry,
        state: ProvisionState | None = None,
        **kwargs,
    ) -> WorkflowContext:
        return cls(
            settings=settings,
            registry=registry,
            layout=OrgLayout.from_settings(settings),
            state=state or ProvisionState(
                org_name=settings.org_name,
                org_domain=settings.org_domain,
            ),
            **kwargs,
        )

    def with_client_home(self, home: Path) -> WorkflowContext:
        """Same run, acting as the identity enrolled in *home*.

        The returned context shares state, env and warnings with this one.
        """
        return dataclasses.replace(self, client_home=home)

    def ca_endpoint(self) -> CAEndpoint:
        return CAEndpoint(
            host=self.settings.ca_host,
            port=self.settings.ca_port,
            ca_name=self.settings.ca_name,
            tls_certfile=self.layout.ca_tls_certfile,
        )

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def checkpoint(self) -> None:
        """Persist the run state now (no-op when nothing is attached)."""
        if self.persist is not None:
            self.persist(self.state)
