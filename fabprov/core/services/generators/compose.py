"""
Compose generator — CA and peer compose files from the settings.

Services are built as ServiceDescriptors and rendered with PyYAML.
No top-level ``version:`` key: Compose v2 ignores it.
"""

from __future__ import annotations

import yaml

from fabprov.core.context import OrgLayout
from fabprov.core.models.service import PeerNode, ServiceDescriptor
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.models.template import GeneratedFile

GENERATED_HEADER = "# Generated by fabprov — edit fabprov.yml and re-run instead\n"

CA_HOME = "/etc/hyperledger/fabric-ca-server"
PEER_CONFIG_DIR = "/etc/hyperledger/fabric"
PEER_WORKING_DIR = "/opt/gopath/src/github.com/hyperledger/fabric/peer"
FABRIC_LABELS = {"service": "hyperledger-fabric"}


def compose_document(
    services: list[ServiceDescriptor],
    networks: dict[str, dict],
    volumes: list[str] | None = None,
) -> dict:
    """Assemble a compose mapping (volumes, networks, services)."""
    document: dict = {}
    if volumes:
        document["volumes"] = {name: {} for name in volumes}
    document["networks"] = networks
    document["services"] = {svc.name: svc.to_compose() for svc in services}
    return document


def render_compose(document: dict) -> str:
    return GENERATED_HEADER + yaml.dump(
        document,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


# ── CA ──────────────────────────────────────────────────────────

def ca_network_key(settings: ProvisionSettings) -> str:
    return f"{settings.org_key}_ca_net"


def ca_service(settings: ProvisionSettings, layout: OrgLayout) -> ServiceDescriptor:
    admin = f"{settings.ca_admin_user}:{settings.ca_admin_password}"
    return ServiceDescriptor(
        name=settings.ca_name,
        container_name=settings.ca_name,
        image=f"hyperledger/fabric-ca:{settings.ca_image_tag}",
        labels=dict(FABRIC_LABELS),
        environment={
            "FABRIC_CA_HOME": CA_HOME,
            "FABRIC_CA_SERVER_CA_NAME": settings.ca_name,
            "FABRIC_CA_SERVER_TLS_ENABLED": "true",
            "FABRIC_CA_SERVER_PORT": str(settings.ca_port),
            "FABRIC_CA_SERVER_OPERATIONS_LISTENADDRESS": f"0.0.0.0:{settings.ca_operations_port}",
        },
        ports=[
            f"{settings.ca_port}:{settings.ca_port}",
            f"{settings.ca_operations_port}:{settings.ca_operations_port}",
        ],
        command=f"sh -c 'fabric-ca-server start -b {admin}'",
        volumes=[
            f"{layout.ca_server_data}:{CA_HOME}",
            f"{layout.ca_server_config}:{CA_HOME}/fabric-ca-server-config.yaml",
        ],
        networks=[ca_network_key(settings)],
    )


def generate_ca_compose(settings: ProvisionSettings, layout: OrgLayout) -> GeneratedFile:
    """docker-compose-ca.yaml; it also creates the network the peers join."""
    document = compose_document(
        [ca_service(settings, layout)],
        networks={ca_network_key(settings): {"name": settings.network_name}},
    )
    return GeneratedFile(
        path=layout.ca_compose_file,
        content=render_compose(document),
        overwrite=False,
        reason=f"Fabric CA {settings.ca_name}",
    )


# ── Peers ───────────────────────────────────────────────────────

def peer_network_key(settings: ProvisionSettings) -> str:
    return f"{settings.org_key}_net"


def peer_environment(settings: ProvisionSettings, node: PeerNode) -> dict[str, str]:
    """The CORE_* environment of one peer."""
    return {
        "CORE_VM_ENDPOINT": "unix:///host/var/run/docker.sock",
        "CORE_VM_DOCKER_HOSTCONFIG_NETWORKMODE": settings.network_name,
        "FABRIC_LOGGING_SPEC": "INFO",
        "CORE_PEER_TLS_ENABLED": "true",
        "CORE_PEER_PROFILE_ENABLED": "false",
        "CORE_PEER_ID": node.host,
        "CORE_PEER_ADDRESS": node.address,
        "CORE_PEER_LISTENADDRESS": f"0.0.0.0:{node.peer_port}",
        "CORE_PEER_CHAINCODEADDRESS": f"{node.host}:{node.chaincode_port}",
        "CORE_PEER_CHAINCODELISTENADDRESS": f"0.0.0.0:{node.chaincode_port}",
        "CORE_PEER_GOSSIP_EXTERNALENDPOINT": node.address,
        "CORE_PEER_GOSSIP_BOOTSTRAP": node.gossip_bootstrap,
        "CORE_PEER_LOCALMSPID": settings.msp_id,
        "CORE_PEER_TLS_CERT_FILE": f"{PEER_CONFIG_DIR}/tls/server.crt",
        "CORE_PEER_TLS_KEY_FILE": f"{PEER_CONFIG_DIR}/tls/server.key",
        "CORE_PEER_TLS_ROOTCERT_FILE": f"{PEER_CONFIG_DIR}/tls/ca.crt",
        "CORE_PEER_MSPCONFIGPATH": f"{PEER_CONFIG_DIR}/msp",
        "CORE_OPERATIONS_LISTENADDRESS": f"0.0.0.0:{node.operations_port}",
        "CORE_OPERATIONS_TLS_ENABLED": "false",
        "CORE_METRICS_PROVIDER": "disabled",
    }


def peer_service(
    settings: ProvisionSettings,
    layout: OrgLayout,
    node: PeerNode,
) -> ServiceDescriptor:
    peer_dir = layout.peer_dir(node.host)
    return ServiceDescriptor(
        name=node.host,
        container_name=node.host,
        image=f"hyperledger/fabric-peer:{settings.peer_image_tag}",
        labels=dict(FABRIC_LABELS),
        environment=peer_environment(settings, node),
        volumes=[
            "/var/run/:/host/var/run/",
            f"{peer_dir / 'msp'}:{PEER_CONFIG_DIR}/msp",
            f"{peer_dir / 'tls'}:{PEER_CONFIG_DIR}/tls",
            f"{node.host}:/var/hyperledger/production",
        ],
        working_dir=PEER_WORKING_DIR,
        command="peer node start",
        ports=[
            f"{node.peer_port}:{node.peer_port}",
            f"{node.operations_port}:{node.operations_port}",
        ],
        networks=[peer_network_key(settings)],
    )


def generate_peer_compose(settings: ProvisionSettings, layout: OrgLayout) -> GeneratedFile:
    """docker-compose-<org>-peers.yaml, one service and volume per peer."""
    nodes = settings.topology().nodes()
    document = compose_document(
        [peer_service(settings, layout, node) for node in nodes],
        networks={
            peer_network_key(settings): {"name": settings.network_name, "external": True},
        },
        volumes=[node.host for node in nodes],
    )
    return GeneratedFile(
        path=layout.peer_compose_file,
        content=render_compose(document),
        overwrite=True,
        reason=f"{len(nodes)} peer(s) of {settings.org_domain}",
    )
