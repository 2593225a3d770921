"""
Artifact fetcher — fabric-samples checkout and the Fabric binaries.

    samples dir absent/empty → shallow clone: tag v<ver>, else branch
                               release-<major>.<minor>, else default branch
    bin/peer + bin/fabric-ca-client missing → scripts/bootstrap.sh <ver> <ca_ver> -d -s
    bin/fabric-ca-client must end up executable
"""

from __future__ import annotations

import logging
import os

from fabprov.core.context import OrgLayout, WorkflowContext
from fabprov.core.errors import FetchFailure
from fabprov.core.models.receipt import Receipt
from fabprov.core.services.versioning import release_branch

logger = logging.getLogger(__name__)

BOOTSTRAP_TIMEOUT = 1800
INSTALL_DOCS = "https://hyperledger-fabric.readthedocs.io/en/latest/install.html"


def samples_present(layout: OrgLayout) -> bool:
    path = layout.samples_dir
    return path.is_dir() and any(path.iterdir())


def binaries_present(layout: OrgLayout) -> bool:
    return layout.peer_binary.is_file() and layout.ca_client_binary.is_file()


def ca_client_executable(layout: OrgLayout) -> bool:
    path = layout.ca_client_binary
    return path.is_file() and os.access(path, os.X_OK)


def artifacts_ready(ctx: WorkflowContext) -> bool:
    """Completion check: samples, binaries and an executable CA client."""
    layout = ctx.layout
    return samples_present(layout) and binaries_present(layout) and ca_client_executable(layout)


def choose_ref(ctx: WorkflowContext) -> str | None:
    """The ref to clone: tag, then release branch, then None (default branch)."""
    settings = ctx.settings
    vcs = ctx.registry.vcs
    url = settings.samples_repository

    tag = f"v{settings.fabric_version}"
    if vcs.has_ref(url, tag, "tags"):
        logger.info("Checking out tag '%s'", tag)
        return tag

    branch = release_branch(settings.fabric_version)
    if vcs.has_ref(url, branch, "heads"):
        logger.info("Tag %s not found, cloning branch %s", tag, branch)
        return branch

    ctx.warn(
        f"Neither tag {tag} nor branch {branch} found; cloning the default branch. "
        "This might lead to version mismatches or missing scripts."
    )
    return None


def clone_samples(ctx: WorkflowContext) -> Receipt:
    """Clone fabric-samples unless a non-empty checkout is already there.

    Raises:
        FetchFailure: The clone failed.
    """
    layout = ctx.layout
    settings = ctx.settings

    if samples_present(layout):
        ctx.warn(
            f"Directory '{layout.samples_dir}' already exists. Ensure it contains "
            f"v{settings.fabric_version} or remove it and re-run."
        )
        return Receipt.skip(adapter="fetcher", operation="clone", reason="samples present")

    ref = choose_ref(ctx)
    layout.samples_dir.parent.mkdir(parents=True, exist_ok=True)
    receipt = ctx.registry.vcs.clone(
        settings.samples_repository,
        layout.samples_dir,
        branch=ref,
        depth=1,
    )
    if receipt.failed:
        raise FetchFailure(
            f"Cloning {settings.samples_repository} failed: {receipt.describe_failure()}",
            hint=f"Check network access, or clone it manually into {layout.samples_dir}",
        )
    receipt.metadata["ref"] = ref or "default"
    return receipt


def fetch_binaries(ctx: WorkflowContext) -> Receipt:
    """Run the samples bootstrap script unless peer + fabric-ca-client exist.

    Raises:
        FetchFailure: Script missing or failing.
    """
    layout = ctx.layout
    settings = ctx.settings

    if binaries_present(layout):
        logger.info("Fabric binaries already found in %s", layout.bin_dir)
        return Receipt.skip(adapter="fetcher", operation="bootstrap", reason="binaries present")

    script = layout.bootstrap_script
    if not script.is_file():
        raise FetchFailure(
            f"scripts/bootstrap.sh not found in {layout.samples_dir}",
            hint=f"Check the fabric-samples checkout or download manually: {INSTALL_DOCS}",
        )

    logger.info(
        "Downloading Fabric binaries (v%s) and CA binaries (v%s)",
        settings.fabric_version,
        settings.ca_version,
    )
    receipt = ctx.registry.runner.run(
        ["bash", str(script), settings.fabric_version, settings.ca_version, "-d", "-s"],
        cwd=layout.samples_dir,
        env=ctx.env or None,
        timeout=BOOTSTRAP_TIMEOUT,
    )
    if receipt.failed:
        raise FetchFailure(
            f"bootstrap.sh failed: {receipt.describe_failure()}",
            hint=f"Download the binaries manually: {INSTALL_DOCS}",
        )
    return receipt


def verify_ca_client(ctx: WorkflowContext) -> None:
    if not ca_client_executable(ctx.layout):
        raise FetchFailure(
            f"fabric-ca-client not found or not executable at {ctx.layout.ca_client_binary}",
            hint=f"Remove {ctx.layout.bin_dir} and re-run to download the binaries again",
        )


def fetch_artifacts(ctx: WorkflowContext) -> Receipt:
    """Stage action: checkout, binaries, executable check."""
    cloned = clone_samples(ctx)
    fetched = fetch_binaries(ctx)
    verify_ca_client(ctx)
    return Receipt.success(
        adapter="fetcher",
        operation="artifacts",
        output=f"samples: {cloned.status}, binaries: {fetched.status}",
        metadata={"ref": cloned.metadata.get("ref"), "bin_dir": str(ctx.layout.bin_dir)},
    )
