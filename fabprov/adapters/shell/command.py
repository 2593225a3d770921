"""
Shell command adapter — run host commands and capture their output.

This is the most fundamental adapter: package installs, version
probes and the Fabric bootstrap script all go through it. The other
CLI-backed adapters follow the same subprocess pattern.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from fabprov.adapters.base import CommandRunner
from fabprov.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


def merged_env(overrides: Mapping[str, str] | None) -> dict[str, str] | None:
    """Process environment plus *overrides* (None when there are none)."""
    if not overrides:
        return None
    env = os.environ.copy()
    env.update(overrides)
    return env


class ShellCommandAdapter(CommandRunner):
    """Execute commands on the host.

    A string command runs through ``sh -c`` (install pipelines such as
    ``sudo apt-get update && sudo apt-get install -y git``); a list runs
    directly.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        # Shell is always available on Unix systems
        return shutil.which("sh") is not None

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    def run(
        self,
        command: Sequence[str] | str,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int = 300,
    ) -> Receipt:
        use_shell = isinstance(command, str)
        label = command if use_shell else " ".join(command)
        operation = label.split()[0] if label.split() else "run"

        if cwd is not None and not Path(cwd).is_dir():
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Working directory does not exist: {cwd}",
                metadata={"command": label},
            )

        logger.debug("Executing: %s (cwd=%s)", label, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command if use_shell else list(command),
                shell=use_shell,
                cwd=cwd,
                env=merged_env(env),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command timed out after {timeout}s",
                metadata={"command": label, "timeout": timeout},
            )
        except OSError as e:
            # binary missing, permission denied
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Command execution error: {e}",
                metadata={"command": label},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=output,
                duration_ms=elapsed_ms,
                return_code=0,
                metadata={"command": label, "stderr": stderr},
            )
        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            return_code=result.returncode,
            metadata={"command": label},
        )
