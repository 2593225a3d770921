"""
Adapter base — the capability contracts between workflow and tools.

The workflow only reaches external tools (shell, docker, git,
fabric-ca-client, the network) through these interfaces, never
directly. Real implementations shell out; the mocks in
``fabprov.adapters.mock`` stand in for them in tests and mock mode.

Adapters perform side effects and return Receipts. They NEVER raise
for tool failures: the caller decides whether a failed receipt is
fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path

from fabprov.core.models.identity import CAEndpoint, OrgIdentity
from fabprov.core.models.receipt import Receipt


class Adapter(ABC):
    """Abstract base class for all adapters.

    To create a new adapter:
        1. Subclass the capability interface it implements
        2. Implement name, is_available and the capability methods
        3. Register it in the AdapterRegistry under the capability key
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'docker', 'git')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class CommandRunner(Adapter):
    """Run host commands (installers, version probes, bootstrap scripts)."""

    @abstractmethod
    def run(
        self,
        command: Sequence[str] | str,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int = 300,
    ) -> Receipt:
        """Run a command. A string is run through the shell."""

    @abstractmethod
    def which(self, binary: str) -> str | None:
        """Resolve a binary on PATH, or None."""


class ContainerOrchestrator(Adapter):
    """Compose-level container lifecycle."""

    @abstractmethod
    def up(self, compose_files: Sequence[Path], cwd: Path) -> Receipt:
        """Start the compose project detached."""

    @abstractmethod
    def down(
        self,
        compose_files: Sequence[Path],
        cwd: Path,
        volumes: bool = False,
    ) -> Receipt:
        """Stop (and optionally wipe volumes of) the compose project."""

    @abstractmethod
    def running(self, name_pattern: str) -> list[str]:
        """Names of running containers whose name matches the regex.

        Returns an empty list when the runtime cannot be queried.
        """

    @abstractmethod
    def logs(self, container: str) -> str:
        """Combined stdout/stderr logs of a container ('' on failure)."""

    @abstractmethod
    def daemon_status(self, sudo: str = "") -> Receipt:
        """Check that the container daemon answers."""


class SourceControl(Adapter):
    """Remote repository inspection and checkout."""

    @abstractmethod
    def has_ref(self, url: str, ref: str, kind: str) -> bool:
        """Whether the remote has ``refs/<kind>/<ref>`` (kind: tags|heads)."""

    @abstractmethod
    def clone(
        self,
        url: str,
        dest: Path,
        branch: str | None = None,
        depth: int | None = 1,
    ) -> Receipt:
        """Clone *url* into *dest* (shallow when depth is set)."""


class IdentityAuthority(Adapter):
    """Register and enroll identities against a CA."""

    @abstractmethod
    def register(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
    ) -> Receipt:
        """Register *identity* using the registrar enrolled in *client_home*.

        Registering an identity the CA already knows returns a success
        receipt with ``metadata["already_registered"] = True``.
        """

    @abstractmethod
    def enroll(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
        msp_dir: Path,
        *,
        profile: str | None = None,
        csr_hosts: Sequence[str] = (),
    ) -> Receipt:
        """Enroll *identity*, writing key material + certs into *msp_dir*."""


class ReachabilityProbe(Adapter):
    """Network reachability checks."""

    @abstractmethod
    def reachable(self, host: str, port: int, timeout: float = 2.0) -> bool:
        """Whether a TCP connection to host:port succeeds."""
