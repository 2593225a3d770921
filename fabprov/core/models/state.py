"""
ProvisionState — what previous runs left behind.

Serialized to ``<setup_dir>/.state/provision.json``. The filesystem
(credential bundles, compose files, running containers) stays the
source of truth for idempotence; this document only remembers what
cannot be re-derived from it: the secrets generated for registered
identities, and the outcome of the last run.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StageRecord(BaseModel):
    """Outcome of one stage in the last run."""

    name: str
    status: str = ""            # ok, skipped, failed
    detail: str = ""
    finished_at: str | None = None


class RunRecord(BaseModel):
    """Summary of the last run."""

    run_id: str = ""
    started_at: str = ""
    ended_at: str = ""
    status: str = ""            # ok, failed
    failed_stage: str | None = None
    error: str | None = None


class ProvisionState(BaseModel):
    """Root state document."""

    schema_version: int = 1

    org_name: str = ""
    org_domain: str = ""

    # written by `up --mock`: credentials signed by a throwaway CA
    mock: bool = False

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # identity id → secret used when it was registered
    secrets: dict[str, str] = Field(default_factory=dict, repr=False)

    stages: dict[str, StageRecord] = Field(default_factory=dict)
    last_run: RunRecord = Field(default_factory=RunRecord)

    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def set_stage(self, name: str, **kwargs: Any) -> None:
        """Update or create a stage record."""
        if name in self.stages:
            for key, value in kwargs.items():
                setattr(self.stages[name], key, value)
        else:
            self.stages[name] = StageRecord(name=name, **kwargs)
