"""
Cluster compose generator — the peer compose file and the peer cluster.

The compose file is rewritten on every run so it always reflects the
current settings. Containers start only when fewer than ``num_peers``
peers of the domain are running.
"""

from __future__ import annotations

import logging
import re

from fabprov.core.context import WorkflowContext
from fabprov.core.errors import ClusterStartFailure
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.services.generators.compose import generate_peer_compose

logger = logging.getLogger(__name__)


def peer_container_pattern(domain: str) -> str:
    return rf"^peer[0-9]+\.{re.escape(domain)}$"


def running_peers(ctx: WorkflowContext) -> list[str]:
    return ctx.registry.containers.running(peer_container_pattern(ctx.settings.org_domain))


def start_peers(ctx: WorkflowContext) -> Receipt:
    """Stage action: write the peer compose file, then start it if needed.

    Raises:
        ClusterStartFailure: compose up failed.
    """
    settings, layout = ctx.settings, ctx.layout

    generated = generate_peer_compose(settings, layout)
    generated.write()
    logger.info("Wrote %s", generated.path)

    running = running_peers(ctx)
    if len(running) >= settings.num_peers:
        logger.info("Peers already running: %s", ", ".join(running))
        return Receipt.success(
            adapter="peers",
            operation="up",
            output=f"{len(running)} peer(s) already running",
            metadata={"started": False, "running": running},
        )

    logger.info("Starting %d peer(s) for %s", settings.num_peers, settings.org_domain)
    receipt = ctx.registry.containers.up([layout.peer_compose_file], cwd=layout.setup_dir)
    if receipt.failed:
        raise ClusterStartFailure(
            f"Failed to start peer containers: {receipt.describe_failure()}",
            hint=f"docker logs peer0.{settings.org_domain}",
        )
    return Receipt.success(
        adapter="peers",
        operation="up",
        output=f"started {settings.num_peers} peer(s)",
        metadata={"started": True, "compose_file": str(layout.peer_compose_file)},
    )


def render_topology(settings: ProvisionSettings) -> list[dict]:
    """Per-peer addressing, as shown by ``fabprov topology``."""
    return [
        {
            "host": node.host,
            "peer_port": node.peer_port,
            "chaincode_port": node.chaincode_port,
            "operations_port": node.operations_port,
            "gossip_bootstrap": node.gossip_bootstrap,
        }
        for node in settings.topology().nodes()
    ]
