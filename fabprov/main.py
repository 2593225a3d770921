"""
fabprov — CLI entrypoint.

Usage:
    fabprov --help
    fabprov up
    fabprov up --mock
    fabprov topology --peers 5
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from fabprov import __version__
from fabprov.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    cli_level,
    setup_logging,
)

_STATUS_STYLE = {"ok": ("✓", "green"), "failed": ("✗", "red"), "skipped": ("⊘", "yellow")}


def _fail(message: str, hint: str | None = None) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    if hint:
        click.echo(f"   Try: {hint}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="fabprov")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to fabprov.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """fabprov — provision a single-organization Hyperledger Fabric network."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        cli_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Use mock adapters (nothing is installed or started).")
@click.pass_context
def up(ctx: click.Context, as_json: bool, mock: bool) -> None:
    """Provision the organization: prerequisites, CA, identities, peers.

    Every stage is skipped when its result already exists, so re-running
    is safe.
    """
    from fabprov.core.use_cases.provision import run_provision

    quiet = ctx.obj.get("quiet", False)

    def narrate(stage, receipt) -> None:
        if as_json or quiet:
            return
        marker, color = _STATUS_STYLE.get(receipt.status, ("•", "white"))
        click.secho(f"   {marker} {stage.name:<13}", fg=color, nl=False)
        detail = receipt.error if receipt.failed else receipt.output
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        click.echo(f" {detail}{timing}")

    if not as_json and not quiet:
        label = "[mock] " if mock else ""
        click.secho(f"\n⚡ {label}fabprov up", fg="cyan", bold=True)
        click.echo()

    result = run_provision(
        config_path=ctx.obj.get("config_path"),
        mock_mode=mock,
        on_stage=narrate,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    for warning in result.warnings:
        click.secho(f"   ⚠️  {warning}", fg="yellow")

    if not result.ok:
        click.echo()
        _fail(result.error or "Provisioning failed", result.hint)

    settings = result.settings
    assert settings is not None
    click.echo()
    click.secho(
        f"   ✅ {settings.org_domain}: CA + {settings.num_peers} peer(s) provisioned",
        fg="green",
        bold=True,
    )
    if not quiet:
        click.echo(f"   Setup directory: {settings.setup_dir}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def probe(ctx: click.Context, as_json: bool) -> None:
    """Show the host, prerequisite versions and adapter availability (read-only)."""
    from fabprov.core.use_cases.probe import run_probe

    result = run_probe(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error, result.hint)

    host = result.host
    assert host is not None
    click.secho(f"\n🔍 {host.os_family} ({host.architecture})", fg="cyan", bold=True)
    click.echo(f"   Package manager: {host.package_manager}")
    click.echo()
    for status in result.tools:
        marker, color = {
            "satisfied": ("✓", "green"),
            "outdated": ("!", "yellow"),
            "absent": ("✗", "red"),
        }.get(status.state.value, ("•", "white"))
        version = status.installed_version or "-"
        click.secho(f"   {marker} {status.name:<15}", fg=color, nl=False)
        click.echo(f" {version}")
        if status.detail and not status.satisfied:
            click.echo(f"     │ {status.detail}")

    click.echo()
    for capability, info in result.adapters.items():
        marker, color = ("✓", "green") if info["available"] else ("✗", "red")
        click.secho(f"   {marker} {capability:<15}", fg=color, nl=False)
        click.echo(f" {info['name']}")
    click.echo()


@cli.command()
@click.option("--peers", "num_peers", type=int, default=None, help="Override the peer count.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def topology(ctx: click.Context, num_peers: int | None, as_json: bool) -> None:
    """Show per-peer ports and gossip bootstrap targets."""
    from pydantic import ValidationError

    from fabprov.core.config.loader import ConfigError, load_settings
    from fabprov.core.models.settings import ProvisionSettings
    from fabprov.core.services.peer_compose import render_topology

    try:
        settings = load_settings(ctx.obj.get("config_path"))
        if num_peers is not None:
            data = settings.model_dump()
            data["num_peers"] = num_peers
            settings = ProvisionSettings.model_validate(data)
    except ConfigError as e:
        _fail(e.message, e.hint)
        return
    except ValidationError as e:
        _fail(f"Invalid topology: {e}")
        return

    nodes = render_topology(settings)
    if as_json:
        click.echo(json.dumps({"domain": settings.org_domain, "peers": nodes}, indent=2))
        return

    click.secho(f"\n🌐 {settings.org_domain} — {len(nodes)} peer(s)", fg="cyan", bold=True)
    click.echo()
    click.echo(f"   {'HOST':<28} {'PEER':>6} {'CC':>6} {'OPS':>6}  GOSSIP BOOTSTRAP")
    for node in nodes:
        click.echo(
            f"   {node['host']:<28} {node['peer_port']:>6} {node['chaincode_port']:>6} "
            f"{node['operations_port']:>6}  {node['gossip_bootstrap']}"
        )
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the last run, generated artifacts and recent runs."""
    from fabprov.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error)

    settings = result.settings
    assert settings is not None
    click.secho(f"\n📋 {settings.org_name} ({settings.org_domain})", fg="cyan", bold=True)
    click.echo(f"   Setup directory: {settings.setup_dir}")

    state = result.state
    if state and state.last_run.run_id:
        run = state.last_run
        click.echo()
        click.secho("   Last run:", fg="white", bold=True)
        _, color = _STATUS_STYLE.get(run.status, ("", "white"))
        click.echo(f"     {run.run_id} — ", nl=False)
        click.secho(run.status or "unknown", fg=color)
        if run.ended_at:
            click.echo(f"     at {run.ended_at}")
        if run.failed_stage:
            click.echo(f"     failed at {run.failed_stage}: {run.error}")
        for name, record in state.stages.items():
            marker, color = _STATUS_STYLE.get(record.status, ("•", "white"))
            click.secho(f"     {marker} {name}", fg=color)

    click.echo()
    click.secho("   Artifacts:", fg="white", bold=True)
    for name, present in result.artifacts.items():
        marker, color = ("✓", "green") if present else ("✗", "red")
        click.secho(f"     {marker} {name}", fg=color)

    if result.recent and ctx.obj.get("verbose"):
        click.echo()
        click.secho("   Recent runs:", fg="white", bold=True)
        for entry in result.recent:
            click.echo(f"     {entry.timestamp}  {entry.operation_type:<4} {entry.status}")
    click.echo()


@cli.command()
@click.option("--volumes", is_flag=True, help="Also remove the peers' ledger volumes.")
@click.option("--mock", is_flag=True, help="Use mock adapters.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def down(ctx: click.Context, volumes: bool, mock: bool, as_json: bool) -> None:
    """Stop the peers and the CA (credentials stay on disk)."""
    from fabprov.core.config.loader import ConfigError, load_settings
    from fabprov.core.use_cases.teardown import run_teardown

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        _fail(e.message, e.hint)
        return

    registry = None
    if mock:
        from fabprov.adapters.mock import mock_registry

        registry = mock_registry(settings)

    result = run_teardown(volumes=volumes, registry=registry, settings=settings)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if not result.ok:
        _fail(result.error or "Teardown failed")

    click.secho(
        f"✅ Stopped {', '.join(p.name for p in result.compose_files)}",
        fg="green",
    )


if __name__ == "__main__":
    cli()
