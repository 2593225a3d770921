"""
Dependency installer — bring unsatisfied requirements up to date.

Each requirement the prober did not find satisfied is probed again
(an earlier install may have covered it). If still unsatisfied, run the
package-manager-specific install commands (then the post-install
commands), probe again and decide:

    still absent                → MissingMandatoryTool (every tool)
    present but too old, soft   → warning, continue
    present but too old         → MissingMandatoryTool
    no install recipe           → MissingMandatoryTool with a manual hint

Install commands are shell strings from the requirements catalog with
a ``{sudo}`` placeholder for the host's sudo prefix.
"""

from __future__ import annotations

import logging

from fabprov.core.context import WorkflowContext
from fabprov.core.errors import MissingMandatoryTool
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.requirement import HostEnvironment, ToolState, ToolStatus
from fabprov.core.services.environment_probe import probe_tool

logger = logging.getLogger(__name__)

INSTALL_TIMEOUT = 1800


def format_command(template: str, host: HostEnvironment) -> str:
    """Fill the ``{sudo}`` placeholder of an install command."""
    if host.sudo:
        return template.replace("{sudo}", host.sudo)
    return template.replace("{sudo} ", "").replace("{sudo}", "")


def ensure_requirement(ctx: WorkflowContext, status: ToolStatus) -> ToolStatus:
    """Install/upgrade one requirement if needed; returns the new status.

    Raises:
        MissingMandatoryTool: The requirement cannot be satisfied.
    """
    if status.satisfied:
        return status

    req = status.requirement
    host = ctx.host
    if host is None:
        raise RuntimeError("Host environment must be probed before installing")

    runner = ctx.registry.runner
    # an earlier install may have covered it (get-docker.sh ships Compose v2)
    status = probe_tool(runner, req, ctx.env)
    if status.satisfied:
        logger.info("%s satisfied by an earlier install (%s)", req.name, status.installed_version or "ok")
        return status

    hint = req.manual_hint or f"Install {req.name} manually and re-run"
    commands = req.install_commands(host.package_manager)

    if not commands:
        if status.state == ToolState.OUTDATED and req.soft:
            ctx.warn(
                f"{req.name} {status.installed_version or '(unknown version)'} is older than required "
                f"{req.minimum_version}. {hint}"
            )
            return status
        raise MissingMandatoryTool(
            f"{req.name} is {status.state.value} and cannot be installed "
            f"automatically with {host.package_manager}",
            hint=hint,
        )

    logger.info("Attempting to install %s (%s)...", req.name, status.state.value)
    for template in commands:
        receipt = runner.run(
            format_command(template, host),
            env=ctx.env or None,
            timeout=INSTALL_TIMEOUT,
        )
        if receipt.failed:
            raise MissingMandatoryTool(
                f"Failed to install {req.name}: {receipt.describe_failure()}",
                hint=hint,
            )

    for template in req.post_install.get(host.package_manager, []):
        receipt = runner.run(format_command(template, host), env=ctx.env or None)
        if receipt.failed:
            ctx.warn(f"Post-install step for {req.name} failed: {receipt.describe_failure()}")

    after = probe_tool(runner, req, ctx.env)
    if after.state == ToolState.ABSENT:
        raise MissingMandatoryTool(
            f"{req.name} still not found after installation attempt",
            hint=hint,
        )
    if after.state == ToolState.OUTDATED:
        if req.soft:
            ctx.warn(
                f"Installed {req.name} {after.installed_version} is still older than "
                f"required {req.minimum_version}. {hint}"
            )
            return after
        raise MissingMandatoryTool(
            f"Installed {req.name} {after.installed_version} is older than "
            f"required {req.minimum_version}",
            hint=hint,
        )

    logger.info("%s installed successfully (%s)", req.name, after.installed_version or "ok")
    return after


def install_missing(ctx: WorkflowContext) -> list[ToolStatus]:
    """Run ensure_requirement over every probed tool, in catalog order."""
    ctx.tools = [ensure_requirement(ctx, status) for status in ctx.tools]
    return ctx.tools


def verify_docker_daemon(ctx: WorkflowContext) -> None:
    """The Docker daemon must answer, directly or through sudo.

    Raises:
        MissingMandatoryTool: Neither ``docker info`` nor ``sudo docker info`` works.
    """
    containers = ctx.registry.containers
    if containers.daemon_status().ok:
        logger.info("Successfully connected to Docker daemon")
        return

    logger.warning("Could not connect to Docker daemon using current user")
    sudo = ctx.host.sudo if ctx.host else ""
    if sudo and containers.daemon_status(sudo=sudo).ok:
        ctx.warn(
            "Docker daemon is reachable only through sudo. Run 'newgrp docker' "
            "or log out and back in so the docker group membership takes effect."
        )
        return

    raise MissingMandatoryTool(
        "Failed to connect to the Docker daemon",
        hint="sudo systemctl start docker",
    )


def install_dependencies(ctx: WorkflowContext) -> Receipt:
    """Stage action: satisfy every requirement, then check the Docker daemon.

    Raises:
        MissingMandatoryTool: A tool cannot be satisfied or Docker is down.
    """
    before = {s.name for s in ctx.tools if not s.satisfied}
    install_missing(ctx)
    verify_docker_daemon(ctx)

    fixed = sorted(s.name for s in ctx.tools if s.name in before and s.satisfied)
    lagging = sorted(s.name for s in ctx.tools if not s.satisfied)
    if not before:
        output = "all prerequisites present"
    else:
        output = f"installed: {', '.join(fixed) or 'none'}"
        if lagging:
            output += f"; still outdated: {', '.join(lagging)}"
    return Receipt.success(
        adapter="installer",
        operation="dependencies",
        output=output,
        metadata={"tools": [s.to_dict() for s in ctx.tools]},
    )
