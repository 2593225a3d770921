"""
Docker adapter — compose lifecycle, container listing and logs.

Uses the docker CLI (``docker compose`` v2) — never the Docker API
directly.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path

from fabprov.adapters.base import ContainerOrchestrator
from fabprov.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class DockerComposeAdapter(ContainerOrchestrator):
    """Docker Engine + Compose v2 through the docker CLI."""

    def __init__(self, timeout: int = 300):
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which("docker") is not None

    # ── Compose ─────────────────────────────────────────────────

    def up(self, compose_files: Sequence[Path], cwd: Path) -> Receipt:
        return self._compose("up", compose_files, cwd, ["up", "-d"])

    def down(
        self,
        compose_files: Sequence[Path],
        cwd: Path,
        volumes: bool = False,
    ) -> Receipt:
        extra = ["down", "-v"] if volumes else ["down"]
        return self._compose("down", compose_files, cwd, extra)

    # ── Containers ──────────────────────────────────────────────

    def running(self, name_pattern: str) -> list[str]:
        try:
            result = subprocess.run(
                ["docker", "ps", "--format", "{{.Names}}"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("docker ps failed: %s", e)
            return []
        if result.returncode != 0:
            logger.debug("docker ps failed: %s", result.stderr.strip())
            return []
        regex = re.compile(name_pattern)
        return [n for n in result.stdout.split() if regex.search(n)]

    def logs(self, container: str) -> str:
        try:
            result = subprocess.run(
                ["docker", "logs", container],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("docker logs %s failed: %s", container, e)
            return ""
        # the CA logs to stderr
        return result.stdout + result.stderr

    def daemon_status(self, sudo: str = "") -> Receipt:
        cmd = [sudo, "docker", "info"] if sudo else ["docker", "info"]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
        except (OSError, subprocess.TimeoutExpired) as e:
            return Receipt.failure(adapter=self.name, operation="info", error=str(e))
        if result.returncode == 0:
            return Receipt.success(adapter=self.name, operation="info", return_code=0)
        return Receipt.failure(
            adapter=self.name,
            operation="info",
            error=result.stderr.strip() or "docker info failed",
            return_code=result.returncode,
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _compose(
        self,
        operation: str,
        compose_files: Sequence[Path],
        cwd: Path,
        args: list[str],
    ) -> Receipt:
        cmd = ["docker", "compose"]
        for path in compose_files:
            cmd.extend(["-f", str(path)])
        cmd.extend(args)

        logger.debug("Executing: %s (cwd=%s)", " ".join(cmd), cwd)
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"docker compose {operation} timed out after {self._timeout}s",
                metadata={"command": " ".join(cmd)},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Docker error: {e}",
                metadata={"command": " ".join(cmd)},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=(result.stdout + result.stderr).strip(),
                duration_ms=elapsed_ms,
                return_code=0,
                metadata={"command": " ".join(cmd)},
            )
        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=result.stderr.strip() or f"docker compose {operation} failed",
            duration_ms=elapsed_ms,
            return_code=result.returncode,
            metadata={"command": " ".join(cmd)},
        )
