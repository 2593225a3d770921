"""
CA service bootstrapper — absent → configured → started → ready.

    configured: fabric-ca-server-config.yaml + docker-compose-ca.yaml
                rendered (existing files are kept)
    started:    docker compose -f docker-compose-ca.yaml up -d
    ready:      localhost:<ca_port> accepts connections AND the container
                log says "Listening on http(s)://0.0.0.0:<ca_port>"

A readiness timeout tears the CA project down again (best effort) and
fails the run. Enrollment additionally waits for the CA's TLS root
certificate to exist and parse before it uses it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from cryptography import x509

from fabprov.core.context import WorkflowContext
from fabprov.core.errors import ReadinessTimeout, ServiceStartFailure
from fabprov.core.models.receipt import Receipt
from fabprov.core.reliability.readiness import PollResult, poll_until
from fabprov.core.services.generators.ca_server_config import generate_ca_server_config
from fabprov.core.services.generators.compose import generate_ca_compose

logger = logging.getLogger(__name__)


def ca_running(ctx: WorkflowContext) -> bool:
    """Completion check: a container named exactly like the CA is up."""
    name = ctx.settings.ca_name
    return bool(ctx.registry.containers.running(f"^{re.escape(name)}$"))


def write_ca_configs(ctx: WorkflowContext) -> list[Path]:
    """Render the server config and compose file; returns the files written."""
    settings, layout = ctx.settings, ctx.layout
    layout.ca_server_data.mkdir(parents=True, exist_ok=True)
    layout.peer_org_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for generated in (
        generate_ca_server_config(settings, layout),
        generate_ca_compose(settings, layout),
    ):
        if generated.write():
            logger.info("Wrote %s", generated.path)
            written.append(generated.path)
        else:
            logger.info("Keeping existing %s", generated.path)
    return written


def start_ca(ctx: WorkflowContext) -> Receipt:
    """docker compose up -d for the CA project.

    Raises:
        ServiceStartFailure: Non-zero exit from compose.
    """
    layout = ctx.layout
    logger.info("Starting Fabric CA server (%s)", ctx.settings.ca_name)
    receipt = ctx.registry.containers.up([layout.ca_compose_file], cwd=layout.setup_dir)
    if receipt.failed:
        raise ServiceStartFailure(
            f"Failed to start Fabric CA {ctx.settings.ca_name}: {receipt.describe_failure()}",
            hint=f"docker compose -f {layout.ca_compose_file} logs",
        )
    return receipt


def ca_listening(ctx: WorkflowContext) -> bool:
    """Whether the CA log announces its listener on the configured port."""
    port = ctx.settings.ca_port
    logs = ctx.registry.containers.logs(ctx.settings.ca_name)
    return re.search(rf"Listening on https?://0\.0\.0\.0:{port}\b", logs) is not None


def wait_for_ca(ctx: WorkflowContext, initial_delay: float | None = None) -> PollResult:
    """Bounded poll: port reachable and listener logged, in the same attempt."""
    settings = ctx.settings
    budget = settings.readiness
    network = ctx.registry.network
    return poll_until(
        {
            "port": lambda: network.reachable(settings.ca_host, settings.ca_port),
            "log": lambda: ca_listening(ctx),
        },
        retries=budget.retries,
        interval=budget.interval,
        initial_delay=budget.initial_delay if initial_delay is None else initial_delay,
        sleep=ctx.sleep,
        label=f"CA {settings.ca_name}",
    )


def bring_up_ca(ctx: WorkflowContext) -> Receipt:
    """Stage action: configure, start and wait for the CA.

    Raises:
        ServiceStartFailure: compose up failed.
        ReadinessTimeout: The CA did not become ready within the budget.
    """
    settings, layout = ctx.settings, ctx.layout
    written = write_ca_configs(ctx)
    start_ca(ctx)

    result = wait_for_ca(ctx)
    if not result.ready:
        down = ctx.registry.containers.down([layout.ca_compose_file], cwd=layout.setup_dir)
        if down.failed:
            logger.warning("CA cleanup failed: %s", down.describe_failure())
        raise ReadinessTimeout(
            f"Fabric CA server ({settings.ca_name}) failed to start within "
            f"{result.attempt_count} attempts (last blocked on: {result.last_failed_check()})",
            hint=f"docker logs {settings.ca_name}",
        )

    return Receipt.success(
        adapter="ca",
        operation="bring-up",
        output=f"{settings.ca_name} ready after {result.attempt_count} attempt(s)",
        metadata={
            "written": [str(p) for p in written],
            "attempts": result.attempt_count,
        },
    )


# ── TLS root ────────────────────────────────────────────────────

def load_certificate(path: Path) -> x509.Certificate | None:
    """Parse a PEM certificate, or None if missing/unreadable/not PEM."""
    try:
        return x509.load_pem_x509_certificate(path.read_bytes())
    except (OSError, ValueError):
        return None


def await_tls_root(ctx: WorkflowContext) -> x509.Certificate:
    """Wait (bounded) for the CA to write a parseable ``ca-cert.pem``.

    Raises:
        ReadinessTimeout: Still missing or invalid after the budget.
    """
    path = ctx.layout.ca_tls_certfile
    budget = ctx.settings.readiness
    result = poll_until(
        {"tls-root": lambda: load_certificate(path) is not None},
        retries=budget.tls_retries,
        interval=budget.tls_interval,
        sleep=ctx.sleep,
        label="CA TLS root certificate",
    )
    cert = load_certificate(path) if result.ready else None
    if cert is None:
        raise ReadinessTimeout(
            f"CA TLS root certificate {path} is missing or not a PEM certificate",
            hint=f"docker logs {ctx.settings.ca_name}",
        )
    logger.debug("CA TLS root: %s", cert.subject.rfc4514_string())
    return cert


def ensure_ca_ready(ctx: WorkflowContext) -> x509.Certificate:
    """The CA answers and its TLS root is readable (used before enrolling).

    Raises:
        ReadinessTimeout: Either condition fails within its budget.
    """
    settings = ctx.settings
    result = wait_for_ca(ctx, initial_delay=0)
    if not result.ready:
        raise ReadinessTimeout(
            f"Fabric CA server ({settings.ca_name}) is not answering on port {settings.ca_port}",
            hint=f"docker logs {settings.ca_name}",
        )
    return await_tls_root(ctx)
