"""
Identity enrollment — the CA admin, every peer and the org admin.

    CA bootstrap admin   enroll → <ca_dir>/client-admin/msp
    NodeOU config        copied into the organization MSP
    peer<i>              register (type peer), enroll MSP with CSR host
                         peer<i>.<domain>, enroll TLS (profile tls) with
                         CSR hosts peer<i>.<domain> + localhost, then
                         ca.crt / server.crt / server.key
    Admin@<domain>       register (type client, admin attributes),
                         enroll MSP

Every identity is skipped when its bundle is already complete on disk,
so a re-run touches nothing and an interrupted run resumes at the
first incomplete identity. Registration acts as the CA admin (its
client home); enrollment uses the identity's own home.
"""

from __future__ import annotations

import logging

from fabprov.core.context import OrgLayout, WorkflowContext
from fabprov.core.errors import EnrollmentCommandFailure
from fabprov.core.models.identity import CredentialBundle, IdentityType, OrgIdentity
from fabprov.core.models.receipt import Receipt
from fabprov.core.models.service import PeerNode
from fabprov.core.services.ca_bootstrap import ensure_ca_ready
from fabprov.core.services.credentials import (
    copy_nodeou_into,
    identity_secret,
    install_nodeou_config,
    msp_complete,
    node_bundle_complete,
    normalize_tls,
    populate_org_msp,
    prune_enrollment_artifacts,
    tls_complete,
    user_bundle_complete,
)

logger = logging.getLogger(__name__)

ORG_ADMIN_ATTRIBUTES = {
    "hf.Registrar.Roles": "client",
    "hf.AffiliationMgr": "false",
    "hf.Revoker": "false",
    "hf.GenCRL": "false",
    "admin": "true:ecert",
}

ENROLLED = "enrolled"
SKIPPED = "skipped"


def org_admin_id(domain: str) -> str:
    return f"Admin@{domain}"


# ── Bundles ─────────────────────────────────────────────────────

def admin_bundle(layout: OrgLayout, admin_user: str) -> CredentialBundle:
    home = layout.ca_admin_home
    return CredentialBundle(identity_id=admin_user, home=home, msp_dir=home / "msp")


def peer_bundle(layout: OrgLayout, node: PeerNode) -> CredentialBundle:
    home = layout.peer_dir(node.host)
    return CredentialBundle(
        identity_id=node.name,
        home=home,
        msp_dir=home / "msp",
        tls_dir=home / "tls",
    )


def user_bundle(layout: OrgLayout, user_id: str) -> CredentialBundle:
    home = layout.user_dir(user_id)
    return CredentialBundle(identity_id=user_id, home=home, msp_dir=home / "msp")


def enrollment_complete(ctx: WorkflowContext) -> bool:
    """Completion check: every bundle of the organization is on disk."""
    settings, layout = ctx.settings, ctx.layout
    if not msp_complete(admin_bundle(layout, settings.ca_admin_user).msp_dir):
        return False
    if not layout.nodeou_config.is_file():
        return False
    if not all(node_bundle_complete(peer_bundle(layout, n)) for n in settings.topology().nodes()):
        return False
    return user_bundle_complete(user_bundle(layout, org_admin_id(settings.org_domain)))


# ── CA operations ───────────────────────────────────────────────

def _check(ctx: WorkflowContext, receipt: Receipt, what: str) -> Receipt:
    if receipt.failed:
        raise EnrollmentCommandFailure(
            f"Failed to {what}: {receipt.describe_failure()}",
            hint=f"docker logs {ctx.settings.ca_name}",
        )
    return receipt


def register(ctx: WorkflowContext, identity: OrgIdentity) -> Receipt:
    """Register *identity* as the CA admin. Already registered is fine."""
    registrar = ctx.with_client_home(ctx.layout.ca_admin_home)
    receipt = ctx.registry.identity.register(
        ctx.ca_endpoint(), identity, registrar.client_home,
    )
    _check(ctx, receipt, f"register {identity.id}")
    if receipt.metadata.get("already_registered"):
        logger.info("%s already registered", identity.id)
    return receipt


def enroll(
    ctx: WorkflowContext,
    identity: OrgIdentity,
    bundle: CredentialBundle,
    *,
    tls: bool = False,
    csr_hosts: tuple[str, ...] = (),
) -> Receipt:
    target = bundle.tls_dir if tls else bundle.msp_dir
    step = ctx.with_client_home(bundle.home)
    target.mkdir(parents=True, exist_ok=True)
    receipt = ctx.registry.identity.enroll(
        ctx.ca_endpoint(),
        identity,
        step.client_home,
        target,
        profile="tls" if tls else None,
        csr_hosts=csr_hosts,
    )
    what = f"enroll {identity.id}" + (" (TLS)" if tls else "")
    return _check(ctx, receipt, what)


# ── Identities ──────────────────────────────────────────────────

def enroll_bootstrap_admin(ctx: WorkflowContext) -> str:
    settings = ctx.settings
    bundle = admin_bundle(ctx.layout, settings.ca_admin_user)
    if msp_complete(bundle.msp_dir):
        logger.info("CA admin already enrolled")
        return SKIPPED

    logger.info("Enrolling the CA admin (%s)", settings.ca_admin_user)
    admin = OrgIdentity(
        id=settings.ca_admin_user,
        secret=settings.ca_admin_password,
        type=IdentityType.ADMIN,
    )
    enroll(ctx, admin, bundle)
    return ENROLLED


def enroll_peer(ctx: WorkflowContext, node: PeerNode) -> str:
    """Register and enroll one peer (MSP + TLS), completing what is missing."""
    layout = ctx.layout
    bundle = peer_bundle(layout, node)
    if node_bundle_complete(bundle):
        logger.info("%s credentials already present", node.host)
        return SKIPPED

    logger.info("Registering and enrolling %s", node.host)
    identity = OrgIdentity(
        id=node.name,
        secret=identity_secret(ctx, node.name),
        type=IdentityType.PEER,
    )
    register(ctx, identity)

    if not msp_complete(bundle.msp_dir):
        enroll(ctx, identity, bundle, csr_hosts=(node.host,))
    copy_nodeou_into(layout, bundle.msp_dir)

    if not tls_complete(bundle.tls_dir):
        enroll(ctx, identity, bundle, tls=True, csr_hosts=(node.host, "localhost"))
        normalize_tls(bundle.tls_dir)

    prune_enrollment_artifacts(bundle.msp_dir)
    prune_enrollment_artifacts(bundle.tls_dir, keep_cacerts=False)
    (bundle.home / "fabric-ca-client-config.yaml").unlink(missing_ok=True)
    return ENROLLED


def enroll_org_admin(ctx: WorkflowContext) -> str:
    layout = ctx.layout
    admin_id = org_admin_id(ctx.settings.org_domain)
    bundle = user_bundle(layout, admin_id)
    if user_bundle_complete(bundle):
        logger.info("%s credentials already present", admin_id)
        return SKIPPED

    logger.info("Registering and enrolling the org admin (%s)", admin_id)
    identity = OrgIdentity(
        id=admin_id,
        secret=identity_secret(ctx, admin_id),
        type=IdentityType.CLIENT,
        attributes=ORG_ADMIN_ATTRIBUTES,
    )
    register(ctx, identity)
    if not msp_complete(bundle.msp_dir):
        enroll(ctx, identity, bundle)
    copy_nodeou_into(layout, bundle.msp_dir)
    prune_enrollment_artifacts(bundle.msp_dir)
    (bundle.home / "fabric-ca-client-config.yaml").unlink(missing_ok=True)
    return ENROLLED


def enroll_identities(ctx: WorkflowContext) -> Receipt:
    """Stage action: the whole enrollment sequence.

    Raises:
        ReadinessTimeout: The CA is not answering.
        EnrollmentCommandFailure: A register/enroll command failed or the
            NodeOU config cannot be found.
    """
    ensure_ca_ready(ctx)

    outcome: dict[str, str] = {}
    outcome[ctx.settings.ca_admin_user] = enroll_bootstrap_admin(ctx)

    install_nodeou_config(ctx.layout)
    populate_org_msp(ctx)

    for node in ctx.settings.topology().nodes():
        outcome[node.host] = enroll_peer(ctx, node)

    outcome[org_admin_id(ctx.settings.org_domain)] = enroll_org_admin(ctx)

    enrolled = [name for name, status in outcome.items() if status == ENROLLED]
    return Receipt.success(
        adapter="enrollment",
        operation="enroll",
        output=f"{len(enrolled)} enrolled, {len(outcome) - len(enrolled)} already present",
        metadata={"identities": outcome},
    )
