"""
Mock adapters — in-memory stand-ins for every capability.

Used by the test suite and by ``fabprov up --mock`` to run the whole
workflow without touching the host: no packages are installed, no
containers start, no CA is contacted. The mocks still leave behind
the same files the real tools would (cloned samples tree, fetched
binaries, enrolled MSP directories with real X.509 material), so the
filesystem-based completion checks behave exactly as in a real run.

Each mock keeps a ``call_log`` and supports ``set_failure`` to
script a failing operation.
"""

from __future__ import annotations

import datetime
import re
import secrets
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from fabprov.adapters.base import (
    CommandRunner,
    ContainerOrchestrator,
    IdentityAuthority,
    ReachabilityProbe,
    SourceControl,
)
from fabprov.adapters.registry import AdapterRegistry
from fabprov.core.models.identity import CAEndpoint, OrgIdentity
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.settings import ProvisionSettings

# Version outputs of a host that satisfies every requirement.
DEFAULT_HOST_TOOLS: dict[str, str] = {
    "git --version": "git version 2.43.0",
    "curl --version": "curl 8.5.0 (x86_64-pc-linux-gnu) libcurl/8.5.0",
    "docker --version": "Docker version 27.1.1, build 6312585",
    "docker compose version": "Docker Compose version v2.29.1",
    "go version": "go version go1.22.2 linux/amd64",
    "node -v": "v20.11.1",
    "npm -v": "10.2.4",
    "python3 --version": "Python 3.12.3",
}

NODE_OU_CONFIG = """\
NodeOUs:
  Enable: true
  ClientOUIdentifier:
    Certificate: cacerts/localhost-7054-ca-org1.pem
    OrganizationalUnitIdentifier: client
  PeerOUIdentifier:
    Certificate: cacerts/localhost-7054-ca-org1.pem
    OrganizationalUnitIdentifier: peer
  AdminOUIdentifier:
    Certificate: cacerts/localhost-7054-ca-org1.pem
    OrganizationalUnitIdentifier: admin
  OrdererOUIdentifier:
    Certificate: cacerts/localhost-7054-ca-org1.pem
    OrganizationalUnitIdentifier: orderer
"""


# ── Command runner ──────────────────────────────────────────────

Handler = Callable[[str, Path | None, Mapping[str, str] | None], Receipt | None]


class MockCommandRunner(CommandRunner):
    """Scripted shell.

    ``tools`` maps a command line (``"go version"``) to its output; the
    first word of each command line is considered installed on PATH.
    Commands for binaries that are not on PATH fail with code 127,
    shell strings (install pipelines) succeed unless scripted otherwise.
    """

    def __init__(
        self,
        tools: Mapping[str, str] | None = None,
        binaries: Iterable[str] = (),
        available: bool = True,
    ):
        self._outputs: dict[str, str] = {}
        self._path: set[str] = set(binaries)
        self._handlers: list[tuple[str, Handler]] = []
        self._failures: dict[str, str] = {}
        self._available = available
        self.call_log: list[dict[str, Any]] = []
        for command, output in (tools or {}).items():
            self.add_tool(command, output)

    @property
    def name(self) -> str:
        return "mock-shell"

    def is_available(self) -> bool:
        return self._available

    @property
    def commands(self) -> list[str]:
        """Every command line run so far, in order."""
        return [entry["command"] for entry in self.call_log]

    def add_tool(self, command: str, output: str = "") -> None:
        self._outputs[command] = output
        self._path.add(command.split()[0])

    def remove_tool(self, binary: str) -> None:
        self._path.discard(binary)
        for command in [c for c in self._outputs if c.split()[0] == binary]:
            del self._outputs[command]

    def on(self, fragment: str, handler: Handler) -> None:
        """Call *handler* for commands containing *fragment*.

        A handler returning None falls through to the default behaviour.
        """
        self._handlers.append((fragment, handler))

    def set_failure(self, fragment: str, error: str = "Mock failure") -> None:
        """Fail every command containing *fragment*."""
        self._failures[fragment] = error

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self._path else None

    def run(
        self,
        command: Sequence[str] | str,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int = 300,
    ) -> Receipt:
        use_shell = isinstance(command, str)
        label = command if use_shell else " ".join(command)
        self.call_log.append({"command": label, "cwd": cwd, "env": dict(env or {})})

        for fragment, error in self._failures.items():
            if fragment in label:
                return Receipt.failure(
                    adapter=self.name, operation=label, error=error, return_code=1,
                )
        for fragment, handler in self._handlers:
            if fragment in label:
                result = handler(label, cwd, env)
                if result is not None:
                    return result

        if label in self._outputs:
            return Receipt.success(
                adapter=self.name, operation=label, output=self._outputs[label], return_code=0,
            )
        if not use_shell and command[0] not in self._path:
            return Receipt.failure(
                adapter=self.name,
                operation=label,
                error=f"{command[0]}: command not found",
                return_code=127,
            )
        return Receipt.success(adapter=self.name, operation=label, return_code=0)


def fabric_bootstrap_handler(
    label: str,
    cwd: Path | None,
    env: Mapping[str, str] | None,
) -> Receipt:
    """Stand-in for ``scripts/bootstrap.sh``: drops the binaries into ``bin/``."""
    bin_dir = Path(cwd or ".") / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    for binary in ("peer", "configtxgen", "fabric-ca-client", "fabric-ca-server"):
        path = bin_dir / binary
        path.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
        path.chmod(0o755)
    return Receipt.success(adapter="mock-shell", operation=label, return_code=0)


# ── Containers ──────────────────────────────────────────────────

class MockContainerOrchestrator(ContainerOrchestrator):
    """Compose projects that "start" by reading their compose files.

    ``up`` marks every service's container as running, publishes its
    host ports and writes a ``Listening on https://0.0.0.0:<port>`` log
    line per published port, then runs the ``on_up`` hooks with the
    parsed compose document.
    """

    def __init__(self, available: bool = True, daemon_up: bool = True):
        self._available = available
        self._daemon_up = daemon_up
        self._failures: dict[str, str] = {}
        self._hooks: list[Callable[[dict], None]] = []
        self.running_containers: set[str] = set()
        self.published_ports: set[int] = set()
        self.container_logs: dict[str, str] = {}
        self.call_log: list[tuple[str, list[str]]] = []

    @property
    def name(self) -> str:
        return "mock-docker"

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, operation: str, error: str = "Mock failure") -> None:
        """Fail ``up``, ``down`` or ``info``."""
        self._failures[operation] = error

    def on_up(self, hook: Callable[[dict], None]) -> None:
        self._hooks.append(hook)

    def set_logs(self, container: str, text: str) -> None:
        self.container_logs[container] = text

    def up(self, compose_files: Sequence[Path], cwd: Path) -> Receipt:
        files = [Path(cwd, f) for f in compose_files]
        self.call_log.append(("up", [f.name for f in files]))
        if "up" in self._failures:
            return Receipt.failure(
                adapter=self.name, operation="up", error=self._failures["up"], return_code=1,
            )

        for path in files:
            document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            for service_name, service in (document.get("services") or {}).items():
                container = service.get("container_name", service_name)
                self.running_containers.add(container)
                lines = []
                for mapping in service.get("ports", []):
                    host_port, _, container_port = str(mapping).rpartition(":")
                    self.published_ports.add(int(host_port or container_port))
                    lines.append(f"[INFO] Listening on https://0.0.0.0:{container_port}")
                self.container_logs.setdefault(container, "\n".join(lines))
            for hook in self._hooks:
                hook(document)
        return Receipt.success(adapter=self.name, operation="up", return_code=0)

    def down(
        self,
        compose_files: Sequence[Path],
        cwd: Path,
        volumes: bool = False,
    ) -> Receipt:
        files = [Path(cwd, f) for f in compose_files]
        self.call_log.append(("down", [f.name for f in files]))
        if "down" in self._failures:
            return Receipt.failure(
                adapter=self.name, operation="down", error=self._failures["down"], return_code=1,
            )
        for path in files:
            if not path.is_file():
                continue
            document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            for service_name, service in (document.get("services") or {}).items():
                container = service.get("container_name", service_name)
                self.running_containers.discard(container)
                self.container_logs.pop(container, None)
                for mapping in service.get("ports", []):
                    host_port, _, container_port = str(mapping).rpartition(":")
                    self.published_ports.discard(int(host_port or container_port))
        return Receipt.success(
            adapter=self.name, operation="down", return_code=0, metadata={"volumes": volumes},
        )

    def running(self, name_pattern: str) -> list[str]:
        regex = re.compile(name_pattern)
        return sorted(n for n in self.running_containers if regex.search(n))

    def logs(self, container: str) -> str:
        return self.container_logs.get(container, "")

    def daemon_status(self, sudo: str = "") -> Receipt:
        self.call_log.append(("info", [sudo] if sudo else []))
        if "info" in self._failures or not self._daemon_up:
            return Receipt.failure(
                adapter=self.name,
                operation="info",
                error=self._failures.get("info", "Cannot connect to the Docker daemon"),
                return_code=1,
            )
        return Receipt.success(adapter=self.name, operation="info", return_code=0)


# ── Source control ──────────────────────────────────────────────

def seed_samples_tree(dest: Path) -> None:
    """Minimal fabric-samples checkout: bootstrap script + NodeOU config."""
    script = dest / "scripts" / "bootstrap.sh"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text("#!/bin/bash\nexit 0\n", encoding="utf-8")
    script.chmod(0o755)
    nodeou = dest / "test-network" / "organizations" / "fabric-ca" / "msp" / "config.yaml"
    nodeou.parent.mkdir(parents=True, exist_ok=True)
    nodeou.write_text(NODE_OU_CONFIG, encoding="utf-8")


class MockSourceControl(SourceControl):
    """Remote with a fixed set of tags and branches."""

    def __init__(
        self,
        tags: Iterable[str] = (),
        heads: Iterable[str] = (),
        seed: Callable[[Path], None] | None = seed_samples_tree,
        available: bool = True,
    ):
        self._refs = {"tags": set(tags), "heads": set(heads)}
        self._seed = seed
        self._available = available
        self._failure: str | None = None
        self.call_log: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "mock-git"

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, error: str = "Mock clone failure") -> None:
        self._failure = error

    def has_ref(self, url: str, ref: str, kind: str) -> bool:
        self.call_log.append({"op": "ls-remote", "kind": kind, "ref": ref})
        return ref in self._refs.get(kind, set())

    def clone(
        self,
        url: str,
        dest: Path,
        branch: str | None = None,
        depth: int | None = 1,
    ) -> Receipt:
        self.call_log.append({"op": "clone", "url": url, "branch": branch, "depth": depth})
        if self._failure:
            return Receipt.failure(
                adapter=self.name, operation="clone", error=self._failure, return_code=128,
            )
        dest.mkdir(parents=True, exist_ok=True)
        if self._seed:
            self._seed(dest)
        return Receipt.success(adapter=self.name, operation="clone", return_code=0)


# ── Certificate authority ───────────────────────────────────────

def _name(common_name: str, org_unit: str | None = None) -> x509.Name:
    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if org_unit:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, org_unit))
    return x509.Name(attributes)


def _key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


class MockCertificateAuthority:
    """Self-signed ECDSA P-256 root that issues leaf certificates."""

    def __init__(self, common_name: str = "ca-org1"):
        self._key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.datetime.now(datetime.timezone.utc)
        self.certificate = (
            x509.CertificateBuilder()
            .subject_name(_name(common_name))
            .issuer_name(_name(common_name))
            .public_key(self._key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
            .sign(self._key, hashes.SHA256())
        )

    def root_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def issue(
        self,
        common_name: str,
        hosts: Sequence[str] = (),
        org_unit: str | None = None,
    ) -> tuple[bytes, bytes]:
        """Issue a leaf certificate; returns (key PEM, certificate PEM)."""
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.datetime.now(datetime.timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(_name(common_name, org_unit))
            .issuer_name(self.certificate.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        )
        if hosts:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(h) for h in hosts]),
                critical=False,
            )
        cert = builder.sign(self._key, hashes.SHA256())
        return _key_pem(key), cert.public_bytes(serialization.Encoding.PEM)


def fabric_ca_server_hook(authority: MockCertificateAuthority) -> Callable[[dict], None]:
    """on_up hook: a started fabric-ca-server writes ``ca-cert.pem`` into its home."""

    def _write_root(document: dict) -> None:
        for service in (document.get("services") or {}).values():
            for volume in service.get("volumes", []):
                host, _, target = str(volume).partition(":")
                if target.rstrip("/") == "/etc/hyperledger/fabric-ca-server":
                    home = Path(host)
                    home.mkdir(parents=True, exist_ok=True)
                    (home / "ca-cert.pem").write_bytes(authority.root_pem())
                    (home / "tls-cert.pem").write_bytes(authority.root_pem())

    return _write_root


# ── Identity authority ──────────────────────────────────────────

class MockIdentityAuthority(IdentityAuthority):
    """In-memory CA registry that writes real MSP directories.

    Registration requires the registrar's enrollment in the client home
    (``<home>/msp/signcerts``), exactly like fabric-ca-client, so tests
    catch a wrong client home.
    """

    def __init__(
        self,
        authority: MockCertificateAuthority | None = None,
        bootstrap: Mapping[str, str] | None = None,
        available: bool = True,
    ):
        self.authority = authority or MockCertificateAuthority()
        self.registered: dict[str, str] = dict(bootstrap or {})
        self.attributes: dict[str, dict[str, str]] = {}
        self.call_log: list[dict[str, Any]] = []
        self._failures: dict[str, str] = {}
        self._available = available

    @property
    def name(self) -> str:
        return "mock-fabric-ca"

    def is_available(self) -> bool:
        return self._available

    @property
    def operations(self) -> list[str]:
        return [entry["operation"] for entry in self.call_log]

    def set_failure(self, operation: str, error: str = "Mock failure") -> None:
        """Fail an operation such as ``register:peer1`` or ``enroll:peer0:tls``."""
        self._failures[operation] = error

    def register(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
    ) -> Receipt:
        operation = f"register:{identity.id}"
        self.call_log.append({"operation": operation, "client_home": client_home})
        if operation in self._failures:
            return Receipt.failure(
                adapter=self.name, operation=operation, error=self._failures[operation],
                return_code=1,
            )
        if not (client_home / "msp" / "signcerts").is_dir():
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Enrollment information does not exist under {client_home}",
                return_code=1,
            )
        if identity.id in self.registered:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=f"Identity '{identity.id}' is already registered",
                metadata={"already_registered": True},
            )
        self.registered[identity.id] = identity.secret
        self.attributes[identity.id] = dict(identity.attributes)
        return Receipt.success(adapter=self.name, operation=operation, return_code=0)

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
        operation = f"enroll:{identity.id}" + (f":{profile}" if profile else "")
        self.call_log.append({
            "operation": operation,
            "client_home": client_home,
            "msp_dir": msp_dir,
            "csr_hosts": list(csr_hosts),
        })
        if operation in self._failures:
            return Receipt.failure(
                adapter=self.name, operation=operation, error=self._failures[operation],
                return_code=1,
            )
        if not endpoint.tls_certfile.is_file():
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"open {endpoint.tls_certfile}: no such file or directory",
                return_code=1,
            )
        if self.registered.get(identity.id) != identity.secret:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error="Authentication failure",
                return_code=1,
            )

        self._write_msp(endpoint, identity, client_home, msp_dir, profile, csr_hosts)
        return Receipt.success(adapter=self.name, operation=operation, return_code=0)

    def _write_msp(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
        msp_dir: Path,
        profile: str | None,
        csr_hosts: Sequence[str],
    ) -> None:
        key_pem, cert_pem = self.authority.issue(
            identity.id, hosts=csr_hosts, org_unit=identity.registry_type,
        )
        root_name = f"{endpoint.host}-{endpoint.port}-{endpoint.ca_name}.pem"

        for sub in ("signcerts", "keystore", "cacerts", "intermediatecerts", "user"):
            (msp_dir / sub).mkdir(parents=True, exist_ok=True)
        (msp_dir / "signcerts" / "cert.pem").write_bytes(cert_pem)
        (msp_dir / "keystore" / f"{secrets.token_hex(16)}_sk").write_bytes(key_pem)
        if profile == "tls":
            (msp_dir / "tlscacerts").mkdir(exist_ok=True)
            (msp_dir / "tlscacerts" / f"tls-{root_name}").write_bytes(self.authority.root_pem())
        else:
            (msp_dir / "cacerts" / root_name).write_bytes(self.authority.root_pem())
        (msp_dir / "IssuerPublicKey").write_bytes(b"mock-issuer-public-key")
        (msp_dir / "IssuerRevocationPublicKey").write_bytes(b"mock-revocation-public-key")

        client_home.mkdir(parents=True, exist_ok=True)
        (client_home / "fabric-ca-client-config.yaml").write_text(
            f"url: https://{endpoint.host}:{endpoint.port}\n", encoding="utf-8",
        )


# ── Reachability ────────────────────────────────────────────────

class MockReachabilityProbe(ReachabilityProbe):
    """Ports are open when listed, or published by a mock orchestrator."""

    def __init__(
        self,
        containers: MockContainerOrchestrator | None = None,
        open_ports: Iterable[int] = (),
    ):
        self._containers = containers
        self.open_ports: set[int] = set(open_ports)
        self.call_log: list[tuple[str, int]] = []

    @property
    def name(self) -> str:
        return "mock-tcp"

    def is_available(self) -> bool:
        return True

    def reachable(self, host: str, port: int, timeout: float = 2.0) -> bool:
        self.call_log.append((host, port))
        if port in self.open_ports:
            return True
        return self._containers is not None and port in self._containers.published_ports


# ── Wiring ──────────────────────────────────────────────────────

def mock_registry(settings: ProvisionSettings) -> AdapterRegistry:
    """A registry of mocks wired into one consistent simulated host.

    The samples remote has the pinned tag, the bootstrap script drops
    the binaries, a started CA writes its root certificate and knows
    the bootstrap admin, and published container ports are reachable.
    """
    authority = MockCertificateAuthority(settings.ca_name)

    runner = MockCommandRunner(DEFAULT_HOST_TOOLS, binaries=("sudo", "apt-get", "brew"))
    runner.on("bootstrap.sh", fabric_bootstrap_handler)

    containers = MockContainerOrchestrator()
    containers.on_up(fabric_ca_server_hook(authority))

    registry = AdapterRegistry(mock_mode=True)
    registry.register("runner", runner)
    registry.register("containers", containers)
    registry.register("vcs", MockSourceControl(tags=[f"v{settings.fabric_version}"]))
    registry.register(
        "identity",
        MockIdentityAuthority(
            authority,
            bootstrap={settings.ca_admin_user: settings.ca_admin_password},
        ),
    )
    registry.register("network", MockReachabilityProbe(containers))
    return registry
