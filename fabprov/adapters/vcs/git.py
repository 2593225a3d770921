"""
Git adapter — remote ref lookup and shallow clones.

Uses the git CLI — never raw API calls.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from fabprov.adapters.base import SourceControl
from fabprov.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class GitAdapter(SourceControl):
    """Git operations needed to check out the samples repository."""

    def __init__(self, timeout: int = 600):
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def has_ref(self, url: str, ref: str, kind: str) -> bool:
        if kind not in ("tags", "heads"):
            raise ValueError(f"Unknown ref kind '{kind}'. Valid: heads, tags")
        receipt = self._git(["ls-remote", f"--{kind}", url], operation="ls-remote", timeout=60)
        if not receipt.ok:
            logger.warning("git ls-remote %s failed: %s", url, receipt.describe_failure())
            return False
        wanted = f"refs/{kind}/{ref}"
        for line in receipt.output.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == wanted:
                return True
        return False

    def clone(
        self,
        url: str,
        dest: Path,
        branch: str | None = None,
        depth: int | None = 1,
    ) -> Receipt:
        args = ["clone"]
        if depth:
            args.extend(["--depth", str(depth)])
        if branch:
            args.extend(["--branch", branch])
        args.extend([url, str(dest)])
        return self._git(args, operation="clone", timeout=self._timeout)

    # ── Helpers ─────────────────────────────────────────────────

    def _git(self, args: list[str], operation: str, timeout: int) -> Receipt:
        cmd = ["git", *args]
        logger.debug("Executing: %s", " ".join(cmd))
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"git {operation} timed out after {timeout}s",
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Git error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                operation=operation,
                output=result.stdout.strip(),
                duration_ms=elapsed_ms,
                return_code=0,
            )
        return Receipt.failure(
            adapter=self.name,
            operation=operation,
            error=result.stderr.strip() or f"git {operation} failed",
            duration_ms=elapsed_ms,
            return_code=result.returncode,
        )
