"""
Audit ledger — append-only run log.

Every ``up``/``down`` appends one entry to
``<setup_dir>/.state/audit.ndjson``: which stages ran, which were
skipped as already complete, and what failed. Entries are never
modified or deleted.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = ".state"
DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # up, down

    org_domain: str = ""
    mock: bool = False

    # Results
    status: str = ""               # ok, failed
    stages_total: int = 0
    stages_succeeded: int = 0
    stages_skipped: int = 0
    stages_failed: int = 0
    duration_ms: int = 0

    errors: list[str] = Field(default_factory=list)

    # Extensible context
    context: dict[str, Any] = Field(default_factory=dict)

class AuditWriter:
    """Appends run entries to ``<setup_dir>/.state/audit.ndjson``."""

    def __init__(self, setup_dir: Path):
        self._path = Path(setup_dir) / DEFAULT_AUDIT_DIR / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append *entry*; an unwritable ledger is logged, not raised."""
        record = entry.model_dump_json()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as ledger:
                ledger.write(record + "\n")
        except OSError as e:
            logger.error("Audit ledger %s not writable: %s", self._path, e)
            return
        logger.debug("Audited %s run %s", entry.operation_type, entry.operation_id)

    def _entries(self) -> Iterator[AuditEntry]:
        if not self._path.is_file():
            return
        try:
            with self._path.open(encoding="utf-8") as ledger:
                for number, raw in enumerate(ledger, start=1):
                    if not raw.strip():
                        continue
                    try:
                        yield AuditEntry.model_validate_json(raw)
                    except ValueError as e:
                        logger.warning("%s:%d unreadable, skipped (%s)", self._path.name, number, e)
        except OSError as e:
            logger.error("Audit ledger %s not readable: %s", self._path, e)

    def read_all(self) -> list[AuditEntry]:
        return list(self._entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last *n* entries, oldest first."""
        return list(deque(self._entries(), maxlen=n))
