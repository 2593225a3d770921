"""
Receipt model — the result contract between services and adapters.

Adapters perform external side effects (run a CLI, probe a port) and
describe the outcome in a Receipt. They never raise: services inspect
the receipt and decide whether a failure is fatal for the workflow.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Outcome of one adapter operation or one workflow stage.

    ``adapter`` names who did the work (``docker``, ``fabric-ca``,
    ``workflow`` …) and ``operation`` what was attempted (``up``,
    ``enroll:peer0``, ``stage:ca`` …).
    """

    adapter: str
    operation: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the operation failed."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    def describe_failure(self) -> str:
        """Best human-readable reason for a failed receipt."""
        if self.error:
            return self.error
        if self.return_code is not None:
            return f"{self.operation} exited with code {self.return_code}"
        return f"{self.operation} failed"

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def success(cls, adapter: str, operation: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, operation: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, operation: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A stage or operation that had nothing to do; *reason* lands in ``output``."""
        return cls(adapter=adapter, operation=operation, status="skipped", output=reason, **kwargs)
