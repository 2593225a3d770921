"""
Fabric CA adapter — register/enroll through the fabric-ca-client binary.

The client home (``FABRIC_CA_CLIENT_HOME``) is passed per call from the
workflow context; the adapter never relies on the caller's process
environment for it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path

from fabprov.adapters.base import IdentityAuthority
from fabprov.core.models.identity import CAEndpoint, OrgIdentity
from fabprov.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_ALREADY_REGISTERED = "is already registered"


class FabricCAClientAdapter(IdentityAuthority):
    """fabric-ca-client CLI wrapper.

    Args:
        binary: Path to the fabric-ca-client executable (lives in the
            samples ``bin/`` directory once the binaries are fetched).
    """

    def __init__(self, binary: Path, timeout: int = 120):
        self._binary = binary
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "fabric-ca"

    def is_available(self) -> bool:
        return self._binary.is_file() and os.access(self._binary, os.X_OK)

    def register(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
    ) -> Receipt:
        args = [
            "register",
            "--caname", endpoint.ca_name,
            "--id.name", identity.id,
            "--id.secret", identity.secret,
            "--id.type", identity.registry_type,
        ]
        if identity.attributes:
            args.extend(["--id.attrs", identity.attrs_argument()])
        args.extend(["--tls.certfiles", str(endpoint.tls_certfile)])

        receipt = self._client(args, client_home, operation=f"register:{identity.id}")
        if receipt.failed and _ALREADY_REGISTERED in (receipt.error or ""):
            logger.info("Identity %s is already registered", identity.id)
            return Receipt.success(
                adapter=self.name,
                operation=receipt.operation,
                output=receipt.error or "",
                metadata={"already_registered": True},
            )
        return receipt

    def enroll(
        self,
        endpoint: CAEndpoint,
        identity: OrgIdentity,
        client_home: Path,
        msp_dir: Path,
        *,
        profile: str | None = None,
        csr_hosts: Sequence[str] = (),
    ) -> Receipt:
        args = [
            "enroll",
            "-u", endpoint.url_for(identity),
            "--caname", endpoint.ca_name,
            "-M", str(msp_dir),
        ]
        if profile:
            args.extend(["--enrollment.profile", profile])
        for host in csr_hosts:
            args.extend(["--csr.hosts", host])
        args.extend(["--tls.certfiles", str(endpoint.tls_certfile)])

        suffix = f":{profile}" if profile else ""
        return self._client(args, client_home, operation=f"enroll:{identity.id}{suffix}")

    # ── Helpers ─────────────────────────────────────────────────

    def _client(self, args: list[str], client_home: Path, operation: str) -> Receipt:
        client_home.mkdir(parents=True, exist_ok=True)
        env = os.environ.copy()
        env["FABRIC_CA_CLIENT_HOME"] = str(client_home)

        cmd = [str(self._binary), *args]
        # never log enrollment URLs, they embed the secret
        logger.debug("Executing: fabric-ca-client %s (home=%s)", args[0], client_home)
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                env=env,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"fabric-ca-client {args[0]} timed out after {self._timeout}s",
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"fabric-ca-client error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        # fabric-ca-client logs to stderr even on success
        output = (result.stdout + result.stderr).strip()
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=output,
                duration_ms=elapsed_ms,
                return_code=0,
            )
        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=result.stderr.strip() or f"fabric-ca-client {args[0]} failed",
            duration_ms=elapsed_ms,
            return_code=result.returncode,
        )
