"""
Tests for the environment prober and the dependency installer.
"""

import pytest

from fabprov.adapters.mock import DEFAULT_HOST_TOOLS, MockCommandRunner, MockContainerOrchestrator
from fabprov.core.data import get_registry
from fabprov.core.errors import MissingMandatoryTool, UnsupportedEnvironment
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.requirement import HostEnvironment, ToolState
from fabprov.core.services.dependency_installer import (
    ensure_requirement,
    format_command,
    install_dependencies,
    verify_docker_daemon,
)
from fabprov.core.services.environment_probe import (
    detect_host,
    probe_all,
    probe_environment,
    probe_tool,
    toolchain_env,
)

APT_HOST = HostEnvironment(os_family="Linux", architecture="x86_64", package_manager="apt", sudo="sudo")


def _req(name):
    return get_registry().requirement(name)


# ── Host detection ──────────────────────────────────────────────


class TestDetectHost:
    def test_debian(self):
        runner = MockCommandRunner(binaries=["sudo", "apt-get"])
        host = detect_host(runner, system="Linux", machine="x86_64")
        assert host.package_manager == "apt"
        assert host.sudo == "sudo"

    def test_rhel(self):
        host = detect_host(MockCommandRunner(binaries=["yum"]), system="Linux", machine="aarch64")
        assert host.package_manager == "yum"
        assert host.sudo == ""

    def test_linux_without_package_manager(self):
        with pytest.raises(UnsupportedEnvironment):
            detect_host(MockCommandRunner(binaries=["sudo"]), system="Linux", machine="x86_64")

    def test_macos_never_uses_sudo(self):
        runner = MockCommandRunner(binaries=["sudo", "brew"])
        host = detect_host(runner, system="Darwin", machine="arm64")
        assert host.package_manager == "brew"
        assert host.sudo == ""

    def test_macos_without_brew(self):
        with pytest.raises(UnsupportedEnvironment, match="Homebrew"):
            detect_host(MockCommandRunner(), system="Darwin", machine="arm64")

    def test_other_os(self):
        with pytest.raises(UnsupportedEnvironment, match="Windows"):
            detect_host(MockCommandRunner(binaries=["apt-get"]), system="Windows", machine="AMD64")


# ── Tool probing ────────────────────────────────────────────────


class TestProbeTool:
    def test_catalog_order(self):
        names = [r.name for r in get_registry().tool_requirements]
        assert names == ["git", "curl", "docker", "docker-compose", "go", "node", "npm", "python3"]

    def test_all_satisfied_on_default_host(self):
        runner = MockCommandRunner(DEFAULT_HOST_TOOLS)
        statuses = probe_all(runner, get_registry().tool_requirements)
        assert all(s.satisfied for s in statuses)

    def test_absent(self):
        status = probe_tool(MockCommandRunner(), _req("go"))
        assert status.state == ToolState.ABSENT

    def test_go_outdated_numeric_comparison(self):
        runner = MockCommandRunner({"go version": "go version go1.9.7 linux/amd64"})
        status = probe_tool(runner, _req("go"))
        assert status.state == ToolState.OUTDATED
        assert status.installed_version == "1.9.7"

    def test_go_minimum_exact(self):
        runner = MockCommandRunner({"go version": "go version go1.18 linux/amd64"})
        assert probe_tool(runner, _req("go")).satisfied

    def test_compose_v1_is_outdated(self):
        runner = MockCommandRunner({
            "docker compose version": "docker-compose version 1.29.2, build 5becea4c",
        })
        assert probe_tool(runner, _req("docker-compose")).state == ToolState.OUTDATED

    def test_compose_subcommand_missing_is_absent(self):
        runner = MockCommandRunner(DEFAULT_HOST_TOOLS)
        runner.set_failure("docker compose version", "'compose' is not a docker command")
        assert probe_tool(runner, _req("docker-compose")).state == ToolState.ABSENT

    def test_version_on_stderr(self):
        runner = MockCommandRunner(binaries=["python3"])
        runner.on(
            "python3 --version",
            lambda label, cwd, env: Receipt.success(
                adapter="mock-shell", operation=label, metadata={"stderr": "Python 3.10.12"},
            ),
        )
        status = probe_tool(runner, _req("python3"))
        assert status.satisfied
        assert status.installed_version == "3.10.12"

    def test_unreadable_version_is_outdated(self):
        runner = MockCommandRunner({"node -v": "garbage"})
        assert probe_tool(runner, _req("node")).state == ToolState.OUTDATED


class TestToolchainEnv:
    def test_defaults_from_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        env = toolchain_env(base={"PATH": "/usr/bin"})
        assert env["GOPATH"] == str(tmp_path / "go")
        assert env["GOBIN"] == str(tmp_path / "go") + "/bin"
        assert env["PATH"].endswith(":" + env["GOBIN"])

    def test_existing_gobin_not_duplicated(self):
        env = toolchain_env(base={"GOPATH": "/g", "PATH": "/usr/bin:/g/bin"})
        assert env["PATH"] == "/usr/bin:/g/bin"

    def test_explicit_go_path(self, tmp_path):
        env = toolchain_env(base={}, go_path=tmp_path / "gp")
        assert env["GOPATH"] == str(tmp_path / "gp")
        assert env["PATH"] == str(tmp_path / "gp") + "/bin"


# ── Installer ───────────────────────────────────────────────────


def _installs(runner, fragment, tool_command, output):
    """Script *fragment* to make *tool_command* available."""

    def handler(label, cwd, env):
        runner.add_tool(tool_command, output)
        return Receipt.success(adapter="mock-shell", operation=label, return_code=0)

    runner.on(fragment, handler)


def _get_docker(runner):
    """get-docker.sh installs the engine together with the Compose v2 plugin."""

    def handler(label, cwd, env):
        runner.add_tool("docker --version", "Docker version 27.1.1, build 6312585")
        runner.add_tool("docker compose version", "Docker Compose version v2.29.1")
        return Receipt.success(adapter="mock-shell", operation=label, return_code=0)

    return handler


class TestEnsureRequirement:
    def test_format_command(self):
        brew = HostEnvironment(os_family="Darwin", architecture="arm64", package_manager="brew")
        assert format_command("{sudo} yum install -y git", APT_HOST) == "sudo yum install -y git"
        assert format_command("{sudo} apt-get update && {sudo} apt-get install -y git", brew) == (
            "apt-get update && apt-get install -y git"
        )

    def test_installs_absent_tool(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("git")
        _installs(runner, "apt-get install -y git", "git --version", "git version 2.43.0")
        ctx.host = APT_HOST

        status = ensure_requirement(ctx, probe_tool(runner, _req("git")))
        assert status.satisfied
        assert "sudo apt-get update && sudo apt-get install -y git" in runner.commands

    def test_still_absent_after_install(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("curl")
        ctx.host = APT_HOST
        with pytest.raises(MissingMandatoryTool, match="still not found"):
            ensure_requirement(ctx, probe_tool(runner, _req("curl")))

    def test_install_command_failure(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("git")
        runner.set_failure("apt-get install -y git", "E: Unable to locate package git")
        ctx.host = APT_HOST
        with pytest.raises(MissingMandatoryTool, match="Unable to locate"):
            ensure_requirement(ctx, probe_tool(runner, _req("git")))

    def test_soft_outdated_after_install_warns(self, ctx):
        runner = ctx.registry.runner
        runner.add_tool("go version", "go version go1.16.15 linux/amd64")
        ctx.host = APT_HOST

        status = ensure_requirement(ctx, probe_tool(runner, _req("go")))
        assert status.state == ToolState.OUTDATED
        assert len(ctx.warnings) == 1
        assert "older than required 1.18" in ctx.warnings[0]

    def test_mandatory_outdated_after_install_fails(self, ctx):
        runner = ctx.registry.runner
        runner.add_tool("python3 --version", "Python 2.7.18")
        ctx.host = APT_HOST
        with pytest.raises(MissingMandatoryTool, match="older than"):
            ensure_requirement(ctx, probe_tool(runner, _req("python3")))

    def test_no_recipe_for_compose(self, ctx):
        runner = ctx.registry.runner
        runner.set_failure("docker compose version", "'compose' is not a docker command")
        ctx.host = APT_HOST
        with pytest.raises(MissingMandatoryTool) as exc:
            ensure_requirement(ctx, probe_tool(runner, _req("docker-compose")))
        assert "Compose V2" in exc.value.hint

    def test_no_recipe_for_docker_on_brew(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("docker")
        ctx.host = HostEnvironment(os_family="Darwin", architecture="arm64", package_manager="brew")
        with pytest.raises(MissingMandatoryTool, match="cannot be installed automatically"):
            ensure_requirement(ctx, probe_tool(runner, _req("docker")))

    def test_compose_arrives_with_docker(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("docker")
        runner.on("get-docker.sh", _get_docker(runner))
        ctx.host = APT_HOST
        compose = probe_tool(runner, _req("docker-compose"))
        assert compose.state == ToolState.ABSENT

        ensure_requirement(ctx, probe_tool(runner, _req("docker")))
        status = ensure_requirement(ctx, compose)

        assert status.satisfied
        assert status.installed_version == "2.29.1"

    def test_docker_post_install(self, ctx):
        runner = ctx.registry.runner
        runner.remove_tool("docker")
        _installs(runner, "get-docker.sh", "docker --version", "Docker version 27.1.1")
        ctx.host = APT_HOST

        assert ensure_requirement(ctx, probe_tool(runner, _req("docker"))).satisfied
        assert "sudo usermod -aG docker $USER" in runner.commands
        assert "sudo systemctl enable docker" in runner.commands


class _SudoOnlyDocker(MockContainerOrchestrator):
    def daemon_status(self, sudo=""):
        if sudo:
            return Receipt.success(adapter=self.name, operation="info")
        return Receipt.failure(adapter=self.name, operation="info", error="permission denied")


class TestDockerDaemon:
    def test_reachable(self, ctx):
        verify_docker_daemon(ctx)
        assert ctx.warnings == []

    def test_down(self, ctx):
        ctx.registry.containers.set_failure("info")
        ctx.host = APT_HOST
        with pytest.raises(MissingMandatoryTool) as exc:
            verify_docker_daemon(ctx)
        assert exc.value.hint == "sudo systemctl start docker"

    def test_sudo_only_warns(self, ctx):
        ctx.registry.register("containers", _SudoOnlyDocker())
        ctx.host = APT_HOST
        verify_docker_daemon(ctx)
        assert "newgrp docker" in ctx.warnings[0]


class TestStageActions:
    def test_probe_environment(self, ctx, monkeypatch):
        monkeypatch.setattr("platform.system", lambda: "Linux")
        receipt = probe_environment(ctx)
        assert receipt.ok
        assert ctx.host.package_manager == "apt"
        assert len(ctx.tools) == 8
        assert receipt.metadata["unsatisfied"] == []
        assert "GOPATH" in ctx.env

    def test_install_dependencies_noop_on_satisfied_host(self, ctx, monkeypatch):
        monkeypatch.setattr("platform.system", lambda: "Linux")
        probe_environment(ctx)
        receipt = install_dependencies(ctx)
        assert receipt.output == "all prerequisites present"
        assert not any("install" in c for c in ctx.registry.runner.commands)

    def test_fresh_host(self, ctx, monkeypatch):
        monkeypatch.setattr("platform.system", lambda: "Linux")
        runner = ctx.registry.runner
        runner.remove_tool("docker")
        runner.remove_tool("go")
        runner.add_tool("node -v", "v12.22.9")
        runner.on("get-docker.sh", _get_docker(runner))
        _installs(runner, "install -y golang-go", "go version", "go version go1.22.2 linux/amd64")

        probed = probe_environment(ctx)
        assert probed.metadata["unsatisfied"] == ["docker", "docker-compose", "go", "node"]

        receipt = install_dependencies(ctx)

        assert receipt.ok
        assert receipt.output == "installed: docker, docker-compose, go; still outdated: node"
        states = {s.name: s.state for s in ctx.tools}
        assert states["docker-compose"] == ToolState.SATISFIED
        assert states["node"] == ToolState.OUTDATED
        assert len(ctx.warnings) == 1
        assert "node 12.22.9 is still older than required 16" in ctx.warnings[0]
        installs = [c for c in runner.commands if "install" in c or "get-docker" in c]
        assert installs == [
            "curl -fsSL https://get.docker.com -o get-docker.sh && sudo sh get-docker.sh; "
            "rc=$?; rm -f get-docker.sh; exit $rc",
            "sudo apt-get update && sudo apt-get install -y golang-go",
            "sudo apt-get update && sudo apt-get install -y nodejs npm",
        ]
