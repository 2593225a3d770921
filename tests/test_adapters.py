"""
Tests for adapters — registry, CLI-backed adapters, mocks.
"""

import subprocess
from pathlib import Path

import pytest

from fabprov.adapters.identity.fabric_ca import FabricCAClientAdapter
from fabprov.adapters.mock import (
    MockCommandRunner,
    MockContainerOrchestrator,
    MockReachabilityProbe,
    MockSourceControl,
)
from fabprov.adapters.registry import AdapterRegistry, default_registry
from fabprov.adapters.shell.command import ShellCommandAdapter, merged_env
from fabprov.adapters.vcs.git import GitAdapter
from fabprov.core.models.identity import CAEndpoint, IdentityType, OrgIdentity


def _completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


# ── Registry ────────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_lookup(self):
        registry = AdapterRegistry()
        runner = MockCommandRunner()
        registry.register("runner", runner)
        assert registry.runner is runner
        assert registry.require("runner") is runner

    def test_unknown_capability(self):
        with pytest.raises(ValueError, match="Unknown capability"):
            AdapterRegistry().register("ledger", MockCommandRunner())

    def test_wrong_interface(self):
        with pytest.raises(TypeError):
            AdapterRegistry().register("vcs", MockCommandRunner())

    def test_missing_capability(self):
        with pytest.raises(LookupError):
            AdapterRegistry().containers  # noqa: B018

    def test_adapter_status(self):
        registry = AdapterRegistry(mock_mode=True)
        registry.register("containers", MockContainerOrchestrator(available=False))
        status = registry.adapter_status()
        assert status["containers"] == {
            "name": "mock-docker",
            "available": False,
            "type": "MockContainerOrchestrator",
        }

    def test_default_registry_wires_every_capability(self, tmp_path: Path):
        registry = default_registry(tmp_path / "bin" / "fabric-ca-client")
        assert sorted(registry.adapter_status()) == [
            "containers", "identity", "network", "runner", "vcs",
        ]
        assert not registry.mock_mode
        assert not registry.identity.is_available()


# ── Shell ───────────────────────────────────────────────────────


class TestShellCommandAdapter:
    def test_merged_env(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/me")
        env = merged_env({"GOPATH": "/go"})
        assert env["GOPATH"] == "/go"
        assert env["HOME"] == "/home/me"
        assert merged_env(None) is None

    def test_success_keeps_stderr(self, monkeypatch):
        monkeypatch.setattr(
            subprocess, "run",
            lambda cmd, **kw: _completed(cmd, stdout="out\n", stderr="Python 3.12.3\n"),
        )
        receipt = ShellCommandAdapter().run(["python3", "--version"])
        assert receipt.ok
        assert receipt.output == "out"
        assert receipt.metadata["stderr"] == "Python 3.12.3"

    def test_failure(self, monkeypatch):
        monkeypatch.setattr(
            subprocess, "run", lambda cmd, **kw: _completed(cmd, returncode=2, stderr="bad"),
        )
        receipt = ShellCommandAdapter().run("false")
        assert receipt.failed
        assert receipt.return_code == 2
        assert receipt.error == "bad"

    def test_missing_cwd(self, tmp_path: Path):
        receipt = ShellCommandAdapter().run(["ls"], cwd=tmp_path / "missing")
        assert receipt.failed
        assert "does not exist" in receipt.error

    def test_timeout(self, monkeypatch):
        def run(cmd, **kw):
            raise subprocess.TimeoutExpired(cmd, 1)

        monkeypatch.setattr(subprocess, "run", run)
        receipt = ShellCommandAdapter().run(["sleep", "10"], timeout=1)
        assert receipt.failed
        assert "timed out" in receipt.error


# ── Git ─────────────────────────────────────────────────────────


class TestGitAdapter:
    LS_REMOTE = (
        "a1b2c3\trefs/tags/v3.0.0\n"
        "d4e5f6\trefs/tags/v3.0.0-rc1\n"
    )

    def test_has_ref_exact_match(self, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: _completed(cmd, stdout=self.LS_REMOTE))
        git = GitAdapter()
        assert git.has_ref("url", "v3.0.0", "tags")
        assert not git.has_ref("url", "v3.0", "tags")

    def test_has_ref_failure_is_false(self, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: _completed(cmd, returncode=128))
        assert not GitAdapter().has_ref("url", "v3.0.0", "tags")

    def test_bad_kind(self):
        with pytest.raises(ValueError):
            GitAdapter().has_ref("url", "main", "branches")

    def test_shallow_clone_args(self, monkeypatch, tmp_path: Path):
        calls = []

        def run(cmd, **kw):
            calls.append(cmd)
            return _completed(cmd)

        monkeypatch.setattr(subprocess, "run", run)
        receipt = GitAdapter().clone("url", tmp_path / "s", branch="release-3.0", depth=1)
        assert receipt.ok
        assert calls[0] == [
            "git", "clone", "--depth", "1", "--branch", "release-3.0", "url", str(tmp_path / "s"),
        ]


# ── Fabric CA ───────────────────────────────────────────────────


class TestFabricCAClientAdapter:
    def _endpoint(self, tmp_path: Path) -> CAEndpoint:
        return CAEndpoint(ca_name="ca-org1", tls_certfile=tmp_path / "ca-cert.pem")

    def test_register_args_and_home(self, monkeypatch, tmp_path: Path):
        seen = {}

        def run(cmd, **kw):
            seen["cmd"] = cmd
            seen["home"] = kw["env"]["FABRIC_CA_CLIENT_HOME"]
            return _completed(cmd)

        monkeypatch.setattr(subprocess, "run", run)
        identity = OrgIdentity(
            id="Admin@org1.example.com", secret="pw", type=IdentityType.CLIENT,
            attributes={"admin": "true:ecert"},
        )
        adapter = FabricCAClientAdapter(tmp_path / "fabric-ca-client")
        receipt = adapter.register(self._endpoint(tmp_path), identity, tmp_path / "admin")

        assert receipt.ok
        assert seen["home"] == str(tmp_path / "admin")
        cmd = seen["cmd"]
        assert cmd[:2] == [str(tmp_path / "fabric-ca-client"), "register"]
        assert cmd[cmd.index("--id.type") + 1] == "client"
        assert cmd[cmd.index("--id.attrs") + 1] == '"admin=true:ecert"'
        assert cmd[-2:] == ["--tls.certfiles", str(tmp_path / "ca-cert.pem")]

    def test_already_registered_is_success(self, monkeypatch, tmp_path: Path):
        monkeypatch.setattr(
            subprocess, "run",
            lambda cmd, **kw: _completed(
                cmd, returncode=1, stderr="Error: Identity 'peer0' is already registered",
            ),
        )
        identity = OrgIdentity(id="peer0", secret="pw", type=IdentityType.PEER)
        receipt = FabricCAClientAdapter(tmp_path / "c").register(
            self._endpoint(tmp_path), identity, tmp_path / "admin",
        )
        assert receipt.ok
        assert receipt.metadata["already_registered"]

    def test_enroll_tls_args(self, monkeypatch, tmp_path: Path):
        seen = {}

        def run(cmd, **kw):
            seen["cmd"] = cmd
            return _completed(cmd)

        monkeypatch.setattr(subprocess, "run", run)
        identity = OrgIdentity(id="peer0", secret="pw", type=IdentityType.PEER)
        receipt = FabricCAClientAdapter(tmp_path / "c").enroll(
            self._endpoint(tmp_path), identity, tmp_path / "peer0", tmp_path / "peer0" / "tls",
            profile="tls", csr_hosts=("peer0.org1.example.com", "localhost"),
        )
        cmd = seen["cmd"]
        assert receipt.operation == "enroll:peer0:tls"
        assert cmd[cmd.index("-u") + 1] == "https://peer0:pw@localhost:7054"
        assert cmd[cmd.index("--enrollment.profile") + 1] == "tls"
        hosts = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "--csr.hosts"]
        assert hosts == ["peer0.org1.example.com", "localhost"]

    def test_missing_binary_is_failure(self, tmp_path: Path):
        identity = OrgIdentity(id="peer0", secret="pw", type=IdentityType.PEER)
        receipt = FabricCAClientAdapter(tmp_path / "missing").enroll(
            self._endpoint(tmp_path), identity, tmp_path / "h", tmp_path / "h" / "msp",
        )
        assert receipt.failed


# ── Mocks ───────────────────────────────────────────────────────


class TestMockCommandRunner:
    def test_known_tool(self):
        runner = MockCommandRunner({"go version": "go version go1.22.2 linux/amd64"})
        assert runner.which("go") == "/usr/bin/go"
        assert runner.run(["go", "version"]).output.startswith("go version")

    def test_missing_binary(self):
        receipt = MockCommandRunner().run(["node", "-v"])
        assert receipt.failed
        assert receipt.return_code == 127

    def test_scripted_failure(self):
        runner = MockCommandRunner()
        runner.set_failure("apt-get install", "E: broken packages")
        receipt = runner.run("sudo apt-get install -y git")
        assert receipt.failed
        assert runner.commands == ["sudo apt-get install -y git"]

    def test_remove_tool(self):
        runner = MockCommandRunner({"go version": "go1.22"})
        runner.remove_tool("go")
        assert runner.which("go") is None


class TestMockContainers:
    def test_up_down(self, tmp_path: Path):
        compose = tmp_path / "c.yaml"
        compose.write_text(
            "services:\n  ca-org1:\n    container_name: ca-org1\n    ports:\n    - 7054:7054\n"
        )
        containers = MockContainerOrchestrator()
        probe = MockReachabilityProbe(containers)

        assert containers.up([compose], cwd=tmp_path).ok
        assert containers.running("^ca-org1$") == ["ca-org1"]
        assert "Listening on https://0.0.0.0:7054" in containers.logs("ca-org1")
        assert probe.reachable("localhost", 7054)

        assert containers.down([compose], cwd=tmp_path).ok
        assert containers.running("^ca-org1$") == []
        assert not probe.reachable("localhost", 7054)

    def test_source_control_refs(self, tmp_path: Path):
        vcs = MockSourceControl(tags=["v3.0.0"], heads=["main"])
        assert vcs.has_ref("url", "v3.0.0", "tags")
        assert not vcs.has_ref("url", "release-3.0", "heads")
        assert vcs.clone("url", tmp_path / "s").ok
        assert (tmp_path / "s" / "scripts" / "bootstrap.sh").is_file()
