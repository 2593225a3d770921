"""
Version parsing and comparison (pure).

Versions are compared as ordered integer tuples, component by
component. Comparing the raw strings is wrong ("1.9" > "1.18"
lexicographically), so every check in the prober goes through here.
No I/O, no subprocess.
"""

from __future__ import annotations

import re

Version = tuple[int, ...]

_COMPONENT_RE = re.compile(r"^(\d+)")


def parse_version(text: str, components: int | None = None) -> Version:
    """Parse a dotted version string into an integer tuple.

    Leading ``v`` / ``go`` prefixes are ignored and each component keeps
    only its leading digits, so ``"v20.11.0"`` → ``(20, 11, 0)`` and
    ``"3.0.0-rc1"`` → ``(3, 0, 0)``. Parsing stops at the first
    component without digits.

    Args:
        text: Version string as printed by a tool.
        components: Keep only the first N components (``2`` compares
            major.minor, ``1`` major only). ``None`` keeps all.

    Raises:
        ValueError: If the string has no leading numeric component.
    """
    cleaned = text.strip()
    for prefix in ("go", "v", "V"):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break

    parts: list[int] = []
    for chunk in cleaned.split("."):
        match = _COMPONENT_RE.match(chunk)
        if not match:
            break
        parts.append(int(match.group(1)))
        if match.end() != len(chunk):
            # "0-rc1" ends the version
            break

    if not parts:
        raise ValueError(f"Not a version string: {text!r}")

    if components is not None:
        parts = parts[:components]
    return tuple(parts)


def compare_versions(left: Version, right: Version) -> int:
    """Three-way compare two version tuples, padding the shorter with zeros.

    Returns:
        -1, 0 or 1.
    """
    width = max(len(left), len(right))
    a = left + (0,) * (width - len(left))
    b = right + (0,) * (width - len(right))
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def version_at_least(
    installed: str | Version,
    minimum: str | Version,
    components: int | None = None,
) -> bool:
    """Whether *installed* >= *minimum*.

    Both arguments accept either strings or already parsed tuples.
    """
    inst = parse_version(installed, components) if isinstance(installed, str) else installed
    mini = parse_version(minimum, components) if isinstance(minimum, str) else minimum
    if components is not None:
        inst, mini = inst[:components], mini[:components]
    return compare_versions(inst, mini) >= 0


def format_version(version: Version) -> str:
    """Render a version tuple back to dotted form."""
    return ".".join(str(part) for part in version)


def release_branch(version: str) -> str:
    """Release branch name for a version: ``"3.0.0"`` → ``"release-3.0"``."""
    major_minor = parse_version(version, components=2)
    return f"release-{format_version(major_minor)}"
