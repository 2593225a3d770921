"""
State file persistence — atomic read/write for ProvisionState.

State is stored as JSON in ``<setup_dir>/.state/provision.json``.
Writes are atomic (write to temp file, then rename) so an interrupted
run never leaves a truncated document behind. The file holds the
secrets of registered identities and is created owner-readable only.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from fabprov.core.models.state import ProvisionState

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".state"
DEFAULT_STATE_FILE = "provision.json"


def default_state_path(setup_dir: Path) -> Path:
    """Get the state file path for a setup directory."""
    return setup_dir / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


def load_state(path: Path) -> ProvisionState:
    """Load provisioning state from a JSON file.

    Returns:
        ProvisionState model. If the file doesn't exist or cannot be
        parsed, returns a fresh state.
    """
    if not path.is_file():
        logger.info("No state file at %s — starting fresh", path)
        return ProvisionState()

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
        state = ProvisionState.model_validate(data)
        logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
        return state
    except json.JSONDecodeError as e:
        logger.warning("Corrupt state file %s: %s — starting fresh", path, e)
        return ProvisionState()
    except Exception as e:
        logger.warning("Cannot load state from %s: %s — starting fresh", path, e)
        return ProvisionState()


def save_state(state: ProvisionState, path: Path) -> None:
    """Save provisioning state to a JSON file (atomic write, mode 0600)."""
    state.touch()

    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".provision_",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, 0o600)
        tmp.replace(path)
        logger.debug("State saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise
