"""
Credential bundles on disk — completeness checks and post-processing.

Completeness is judged per bundle from the files fabric-ca-client
leaves behind, so an interrupted run re-enrolls only what is missing.
"""

from __future__ import annotations

import logging
import secrets
import shutil
from pathlib import Path

from fabprov.core.context import OrgLayout, WorkflowContext
from fabprov.core.errors import EnrollmentCommandFailure
from fabprov.core.models.identity import CredentialBundle

logger = logging.getLogger(__name__)

TLS_FILES = ("ca.crt", "server.crt", "server.key")

# enrollment by-products not used by a peer or an admin
_PRUNED_DIRS = ("intermediatecerts", "user", "users")
_PRUNED_FILES = ("IssuerPublicKey", "IssuerRevocationPublicKey", "fabric-ca-client-config.yaml")


def _has_file(directory: Path) -> bool:
    return directory.is_dir() and any(p.is_file() for p in directory.iterdir())


def msp_complete(msp_dir: Path) -> bool:
    """A signing certificate and its private key are present."""
    return _has_file(msp_dir / "signcerts") and _has_file(msp_dir / "keystore")


def tls_complete(tls_dir: Path) -> bool:
    return all((tls_dir / name).is_file() for name in TLS_FILES)


def node_bundle_complete(bundle: CredentialBundle) -> bool:
    return (
        msp_complete(bundle.msp_dir)
        and (bundle.msp_dir / "config.yaml").is_file()
        and bundle.tls_dir is not None
        and tls_complete(bundle.tls_dir)
    )


def user_bundle_complete(bundle: CredentialBundle) -> bool:
    return msp_complete(bundle.msp_dir) and (bundle.msp_dir / "config.yaml").is_file()


def first_file(directory: Path) -> Path:
    """The first regular file in *directory* (sorted by name).

    Raises:
        EnrollmentCommandFailure: The directory holds no file.
    """
    files = sorted(p for p in directory.glob("*") if p.is_file()) if directory.is_dir() else []
    if not files:
        raise EnrollmentCommandFailure(f"Expected enrollment output in {directory}, found none")
    return files[0]


def normalize_tls(tls_dir: Path) -> None:
    """Copy the TLS enrollment output to ca.crt, server.crt and server.key."""
    shutil.copyfile(first_file(tls_dir / "tlscacerts"), tls_dir / "ca.crt")
    shutil.copyfile(first_file(tls_dir / "signcerts"), tls_dir / "server.crt")
    shutil.copyfile(first_file(tls_dir / "keystore"), tls_dir / "server.key")
    (tls_dir / "server.key").chmod(0o600)


def prune_enrollment_artifacts(directory: Path, keep_cacerts: bool = True) -> None:
    """Remove intermediate/user material and client config from an MSP/TLS dir."""
    dirs = _PRUNED_DIRS if keep_cacerts else (*_PRUNED_DIRS, "cacerts")
    for name in dirs:
        target = directory / name
        if target.is_dir():
            shutil.rmtree(target)
    for name in _PRUNED_FILES:
        (directory / name).unlink(missing_ok=True)


# ── NodeOU config ───────────────────────────────────────────────

def find_nodeou_config(layout: OrgLayout) -> Path | None:
    """The samples' NodeOU config: the test-network copy, else any
    ``config.yaml`` under the samples tree that declares NodeOUs."""
    if layout.nodeou_source.is_file():
        return layout.nodeou_source
    if not layout.samples_dir.is_dir():
        return None
    for candidate in sorted(layout.samples_dir.rglob("config.yaml")):
        try:
            if "NodeOUs" in candidate.read_text(encoding="utf-8", errors="replace"):
                return candidate
        except OSError:
            continue
    return None


def install_nodeou_config(layout: OrgLayout) -> Path:
    """Copy the NodeOU config into the organization MSP (once).

    Raises:
        EnrollmentCommandFailure: No NodeOU config can be located.
    """
    dest = layout.nodeou_config
    if dest.is_file():
        return dest
    source = find_nodeou_config(layout)
    if source is None:
        raise EnrollmentCommandFailure(
            f"Cannot locate a NodeOU 'config.yaml' in {layout.samples_dir}",
            hint=f"Place a NodeOU config at {dest} and re-run",
        )
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)
    logger.info("Copied NodeOU config from %s", source)
    return dest


def copy_nodeou_into(layout: OrgLayout, msp_dir: Path) -> None:
    target = msp_dir / "config.yaml"
    if not target.is_file():
        shutil.copyfile(layout.nodeou_config, target)


def populate_org_msp(ctx: WorkflowContext) -> None:
    """Org-level MSP trust roots: the CA root under cacerts/ and tlscacerts/."""
    layout = ctx.layout
    endpoint = ctx.ca_endpoint()
    root = layout.ca_tls_certfile
    for sub, name in (
        ("cacerts", f"{endpoint.host}-{endpoint.port}-{endpoint.ca_name}.pem"),
        ("tlscacerts", "ca.crt"),
    ):
        target = layout.org_msp_dir / sub / name
        if not target.is_file():
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(root, target)


# ── Secrets ─────────────────────────────────────────────────────

def identity_secret(ctx: WorkflowContext, identity_id: str) -> str:
    """The enrollment secret of *identity_id*, generated and persisted once."""
    secret = ctx.state.secrets.get(identity_id)
    if secret is None:
        secret = secrets.token_urlsafe(18)
        ctx.state.secrets[identity_id] = secret
        # persisted before registering so a crash cannot lose it
        ctx.checkpoint()
    return secret
