"""
Environment prober — what host are we on, and what does it have.

Read-only: resolves OS family, architecture, package manager and sudo
prefix, and classifies each tool requirement as absent, outdated or
satisfied by running its version command.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from fabprov.adapters.base import CommandRunner
from fabprov.core.context import WorkflowContext
from fabprov.core.data import get_registry
from fabprov.core.errors import UnsupportedEnvironment
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.requirement import (
    HostEnvironment,
    ToolRequirement,
    ToolState,
    ToolStatus,
)
from fabprov.core.services.versioning import version_at_least

logger = logging.getLogger(__name__)

_MANUAL_HINT = "Install the prerequisites manually and re-run"


def detect_host(
    runner: CommandRunner,
    system: str | None = None,
    machine: str | None = None,
) -> HostEnvironment:
    """Resolve OS family, architecture, package manager and sudo prefix.

    Raises:
        UnsupportedEnvironment: Unknown OS, or no supported package manager.
    """
    system = system or platform.system()
    machine = machine or platform.machine()
    sudo = "sudo" if runner.which("sudo") else ""

    if system == "Linux":
        if runner.which("apt-get"):
            package_manager = "apt"
        elif runner.which("yum"):
            package_manager = "yum"
        else:
            raise UnsupportedEnvironment(
                "Unsupported Linux distribution: neither apt-get nor yum found",
                hint=_MANUAL_HINT,
            )
    elif system == "Darwin":
        if not runner.which("brew"):
            raise UnsupportedEnvironment(
                "Homebrew not found",
                hint="Install Homebrew (https://brew.sh/) or install the prerequisites manually",
            )
        package_manager = "brew"
        # Homebrew refuses to run under sudo
        sudo = ""
    else:
        raise UnsupportedEnvironment(
            f"Unsupported operating system: {system}",
            hint=_MANUAL_HINT,
        )

    host = HostEnvironment(
        os_family=system,
        architecture=machine,
        package_manager=package_manager,
        sudo=sudo,
    )
    logger.info("Detected OS: %s, Arch: %s, Package Manager: %s", system, machine, package_manager)
    return host


def extract_version(requirement: ToolRequirement, text: str) -> str | None:
    """First version string in *text* matching the requirement's pattern."""
    match = re.search(requirement.version_pattern, text)
    if not match:
        return None
    return match.group(1) if match.groups() else match.group(0)


def probe_tool(
    runner: CommandRunner,
    requirement: ToolRequirement,
    env: Mapping[str, str] | None = None,
) -> ToolStatus:
    """Classify one requirement on this host."""
    if runner.which(requirement.binary) is None:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.ABSENT,
            detail=f"{requirement.binary} not found on PATH",
        )

    if not requirement.version_command:
        return ToolStatus(requirement=requirement, state=ToolState.SATISFIED)

    receipt = runner.run(requirement.version_command, env=env or None, timeout=30)
    if receipt.failed:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.ABSENT,
            detail=receipt.describe_failure(),
        )

    # some tools print their version on stderr
    text = "\n".join(filter(None, [receipt.output, receipt.metadata.get("stderr", "")]))
    version = extract_version(requirement, text)

    if requirement.minimum_version is None:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.SATISFIED,
            installed_version=version,
        )

    if version is None:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.OUTDATED,
            detail=f"cannot read a version from {text.strip()!r}",
        )

    try:
        ok = version_at_least(version, requirement.minimum_version, requirement.components)
    except ValueError as e:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.OUTDATED,
            installed_version=version,
            detail=str(e),
        )

    if ok:
        return ToolStatus(
            requirement=requirement,
            state=ToolState.SATISFIED,
            installed_version=version,
        )
    return ToolStatus(
        requirement=requirement,
        state=ToolState.OUTDATED,
        installed_version=version,
        detail=f"{version} is older than required {requirement.minimum_version}",
    )


def probe_all(
    runner: CommandRunner,
    requirements: Sequence[ToolRequirement],
    env: Mapping[str, str] | None = None,
) -> list[ToolStatus]:
    statuses = []
    for requirement in requirements:
        status = probe_tool(runner, requirement, env)
        logger.info(
            "%s: %s%s",
            requirement.name,
            status.state.value,
            f" ({status.installed_version})" if status.installed_version else "",
        )
        statuses.append(status)
    return statuses


def toolchain_env(
    base: Mapping[str, str] | None = None,
    go_path: Path | None = None,
) -> dict[str, str]:
    """GOPATH, GOBIN and PATH for child processes.

    GOPATH defaults to ``~/go`` and GOBIN to ``$GOPATH/bin``; GOBIN is
    appended to PATH when missing. *base* (default ``os.environ``) is
    only read.
    """
    environ = os.environ if base is None else base
    gopath = str(go_path) if go_path else environ.get("GOPATH") or str(Path.home() / "go")
    gobin = environ.get("GOBIN") or f"{gopath}/bin"
    path = environ.get("PATH", "")
    if gobin not in path.split(os.pathsep):
        path = f"{path}{os.pathsep}{gobin}" if path else gobin
    return {"GOPATH": gopath, "GOBIN": gobin, "PATH": path}


def probe_environment(ctx: WorkflowContext) -> Receipt:
    """Stage action: record host, toolchain env and tool states on *ctx*.

    Raises:
        UnsupportedEnvironment: See detect_host().
    """
    runner = ctx.registry.runner
    ctx.host = detect_host(runner)
    ctx.env = toolchain_env(go_path=ctx.settings.go_path)
    ctx.tools = probe_all(runner, get_registry().tool_requirements, ctx.env)

    unsatisfied = [s.name for s in ctx.tools if not s.satisfied]
    return Receipt.success(
        adapter="probe",
        operation="environment",
        output=f"{ctx.host.os_family}/{ctx.host.package_manager}, "
        f"{len(ctx.tools) - len(unsatisfied)}/{len(ctx.tools)} tools satisfied",
        metadata={"host": ctx.host.to_dict(), "unsatisfied": unsatisfied},
    )
