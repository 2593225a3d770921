"""
Generated file model — used by all renderers.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A document produced by a renderer.

    Attributes:
        path:      Absolute destination path.
        content:   Full file content.
        overwrite: Whether an existing file is replaced on write.
        reason:    Why this file was generated.
    """

    path: Path
    content: str
    overwrite: bool = True
    reason: str = ""

    def write(self) -> bool:
        """Write the file; returns False if it existed and was kept."""
        if self.path.exists() and not self.overwrite:
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.content, encoding="utf-8")
        return True
