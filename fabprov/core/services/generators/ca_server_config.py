"""
fabric-ca-server-config.yaml generator.

The server runs with TLS, the ``SW`` BCCSP (SHA2/256) and a registry
holding only the bootstrap admin with full registrar rights. The root
certificate is written to ``ca-cert.pem`` in the server home, which is
the file every enrollment trusts.
"""

from __future__ import annotations

import yaml

from fabprov.core.context import OrgLayout
from fabprov.core.models.settings import ProvisionSettings
from fabprov.core.models.template import GeneratedFile
from fabprov.core.services.generators.compose import CA_HOME, GENERATED_HEADER

REGISTRAR_ATTRIBUTES = {
    "hf.Registrar.Roles": "*",
    "hf.Registrar.DelegateRoles": "*",
    "hf.Revoker": True,
    "hf.GenCRL": True,
    "hf.Registrar.Attributes": "*",
    "hf.AffiliationMgr": True,
    "admin": True,
    "abac.init": True,
}


def ca_server_config(settings: ProvisionSettings) -> dict:
    return {
        "port": settings.ca_port,
        "ca": {
            "name": settings.ca_name,
            "certfile": f"{CA_HOME}/ca-cert.pem",
        },
        "registry": {
            "maxenrollments": -1,
            "identities": [
                {
                    "name": settings.ca_admin_user,
                    "pass": settings.ca_admin_password,
                    "type": "client",
                    "affiliation": "",
                    "attrs": dict(REGISTRAR_ATTRIBUTES),
                },
            ],
        },
        "tls": {
            "enabled": True,
            "certfile": f"{CA_HOME}/tls-cert.pem",
        },
        "affiliations": {settings.org_key: []},
        "bccsp": {
            "default": "SW",
            "sw": {
                "hash": "SHA2",
                "security": 256,
                "filekeystore": {"keystore": "msp/keystore"},
            },
        },
        "csr": {
            "cn": settings.ca_name,
            "names": [
                {
                    "C": "US",
                    "ST": "California",
                    "L": "San Francisco",
                    "O": settings.org_domain,
                    "OU": "ca",
                },
            ],
            "hosts": ["localhost", settings.ca_name],
        },
    }


def generate_ca_server_config(settings: ProvisionSettings, layout: OrgLayout) -> GeneratedFile:
    content = GENERATED_HEADER + yaml.dump(
        ca_server_config(settings),
        default_flow_style=False,
        sort_keys=False,
    )
    return GeneratedFile(
        path=layout.ca_server_config,
        content=content,
        overwrite=False,
        reason=f"Fabric CA server config for {settings.ca_name}",
    )
