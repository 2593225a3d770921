"""
Tests for the CLI — command wiring, output modes and exit codes.
"""

import json

import pytest
from click.testing import CliRunner

from fabprov import __version__
from fabprov.adapters.mock import DEFAULT_HOST_TOOLS, MockCommandRunner, MockContainerOrchestrator
from fabprov.adapters.registry import AdapterRegistry
from fabprov.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "fabprov.yml"
    path.write_text(
        "org_name: Org1\n"
        "org_domain: org1.example.com\n"
        "num_peers: 2\n"
        "samples_dir: fabric-samples\n"
        "setup_dir: peer-org-setup\n"
    )
    return path


class TestCLIBasics:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("up", "probe", "topology", "status", "down"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestUp:
    def test_mock_run(self, runner, config, tmp_path):
        result = runner.invoke(cli, ["-c", str(config), "up", "--mock"])
        assert result.exit_code == 0, result.output
        assert "org1.example.com: CA + 2 peer(s) provisioned" in result.output
        assert (tmp_path / "peer-org-setup" / "docker-compose-org1-peers.yaml").is_file()

    def test_mock_run_json(self, runner, config):
        result = runner.invoke(cli, ["-q", "-c", str(config), "up", "--mock", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["org_domain"] == "org1.example.com"
        assert [r["operation"] for r in data["report"]["receipts"]] == [
            "stage:probe",
            "stage:dependencies",
            "stage:artifacts",
            "stage:ca",
            "stage:enrollment",
            "stage:peers",
        ]

    def test_env_overrides_directories(self, runner, config, tmp_path):
        env = {
            "FABRIC_SAMPLES_DIR": str(tmp_path / "elsewhere" / "samples"),
            "PEER_ORG_SETUP_DIR": str(tmp_path / "elsewhere" / "setup"),
        }
        result = runner.invoke(cli, ["-q", "-c", str(config), "up", "--mock"], env=env)
        assert result.exit_code == 0
        assert (tmp_path / "elsewhere" / "setup" / "docker-compose-ca.yaml").is_file()
        assert not (tmp_path / "peer-org-setup").exists()

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "fabprov.yml"
        path.write_text("num_peers: zero\n")
        result = runner.invoke(cli, ["-c", str(path), "up", "--mock"])
        assert result.exit_code == 1

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["-q", "-c", str(tmp_path / "nope.yml"), "up", "--mock", "--json"])
        assert result.exit_code == 1
        assert "Config file not found" in json.loads(result.stdout)["error"]


class TestTopology:
    def test_json(self, runner, config):
        result = runner.invoke(cli, ["-q", "-c", str(config), "topology", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["domain"] == "org1.example.com"
        assert [p["host"] for p in data["peers"]] == [
            "peer0.org1.example.com",
            "peer1.org1.example.com",
        ]

    def test_peers_override(self, runner, config):
        result = runner.invoke(cli, ["-q", "-c", str(config), "topology", "--peers", "5", "--json"])
        assert result.exit_code == 0
        peers = json.loads(result.stdout)["peers"]
        assert len(peers) == 5
        assert peers[4]["peer_port"] == 11051
        assert peers[4]["operations_port"] == 9447
        assert peers[4]["gossip_bootstrap"] == "peer0.org1.example.com:7051"

    def test_table(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "topology"])
        assert result.exit_code == 0
        assert "peer1.org1.example.com" in result.output
        assert "8051" in result.output

    def test_invalid_peer_count(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "topology", "--peers", "0"])
        assert result.exit_code == 1


class TestStatusAndDown:
    def test_status_before_any_run(self, runner, config):
        result = runner.invoke(cli, ["-q", "-c", str(config), "status", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["organization"]["peers"] == 2
        assert data["recent"] == []
        assert not any(data["artifacts"].values())

    def test_status_after_run(self, runner, config):
        runner.invoke(cli, ["-q", "-c", str(config), "up", "--mock"])
        result = runner.invoke(cli, ["-q", "-c", str(config), "status", "--json"])
        data = json.loads(result.stdout)
        assert data["last_run"]["status"] == "ok"
        assert data["stages"]["peers"]["status"] == "ok"
        assert all(data["artifacts"].values())
        assert len(data["recent"]) == 1

    def test_status_text(self, runner, config):
        runner.invoke(cli, ["-q", "-c", str(config), "up", "--mock"])
        result = runner.invoke(cli, ["-c", str(config), "status"])
        assert result.exit_code == 0
        assert "Org1 (org1.example.com)" in result.output
        assert "Admin@org1.example.com" in result.output

    def test_down_mock(self, runner, config):
        runner.invoke(cli, ["-q", "-c", str(config), "up", "--mock"])
        result = runner.invoke(cli, ["-c", str(config), "down", "--mock"])
        assert result.exit_code == 0
        assert "Stopped docker-compose-org1-peers.yaml, docker-compose-ca.yaml" in result.output

    def test_down_without_compose_files(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "down", "--mock"])
        assert result.exit_code == 1


class TestProbe:
    @pytest.fixture(autouse=True)
    def _mock_host(self, monkeypatch):
        from fabprov.core.use_cases import probe as probe_module

        original = probe_module.run_probe
        host = AdapterRegistry()
        host.register("runner", MockCommandRunner(DEFAULT_HOST_TOOLS, binaries=["apt-get"]))
        host.register("containers", MockContainerOrchestrator(available=False))
        monkeypatch.setattr("platform.system", lambda: "Linux")
        monkeypatch.setattr(
            probe_module, "run_probe", lambda config_path=None: original(registry=host),
        )

    def test_json(self, runner):
        result = runner.invoke(cli, ["-q", "probe", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["host"]["package_manager"] == "apt"
        assert {t["name"] for t in data["tools"]} >= {"docker", "go", "python3"}
        assert data["adapters"]["runner"]["available"] is True
        assert data["adapters"]["containers"] == {
            "name": "mock-docker",
            "available": False,
            "type": "MockContainerOrchestrator",
        }

    def test_table(self, runner):
        result = runner.invoke(cli, ["probe"])
        assert result.exit_code == 0
        assert "Package manager: apt" in result.output
        assert "mock-docker" in result.output
