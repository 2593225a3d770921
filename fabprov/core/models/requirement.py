"""
Requirement models — what the host must provide before provisioning.

A ToolRequirement is a declaration ("docker must exist, go must be at
least 1.18"); a ToolStatus is what the prober observed for it on this
host right now.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """How an unsatisfied requirement affects the run."""

    MANDATORY = "mandatory"   # unsatisfied after install → abort
    SOFT = "soft"             # present but too old after install → warn


class ToolState(str, Enum):
    ABSENT = "absent"
    OUTDATED = "outdated"
    SATISFIED = "satisfied"


class ToolRequirement(BaseModel):
    """A host tool the workflow depends on.

    ``install`` maps a package manager name (apt, yum, brew) to the
    shell commands that install the tool there. A package manager
    missing from the map means the tool must be installed by hand.
    """

    name: str
    binary: str
    version_command: list[str] = Field(default_factory=list)
    version_pattern: str = r"(\d+(?:\.\d+)*)"
    minimum_version: str | None = None
    components: int | None = None      # compare only the first N components
    severity: Severity = Severity.MANDATORY
    install: dict[str, list[str]] = Field(default_factory=dict)
    post_install: dict[str, list[str]] = Field(default_factory=dict)
    manual_hint: str = ""

    @property
    def soft(self) -> bool:
        return self.severity == Severity.SOFT

    def install_commands(self, package_manager: str) -> list[str]:
        """Install commands for a package manager (empty if unsupported)."""
        return list(self.install.get(package_manager, []))


class ToolStatus(BaseModel):
    """Observed state of one requirement on the host."""

    requirement: ToolRequirement
    state: ToolState
    installed_version: str | None = None
    detail: str = ""

    @property
    def name(self) -> str:
        return self.requirement.name

    @property
    def satisfied(self) -> bool:
        return self.state == ToolState.SATISFIED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "installed_version": self.installed_version,
            "minimum_version": self.requirement.minimum_version,
            "severity": self.requirement.severity.value,
            "detail": self.detail,
        }


class HostEnvironment(BaseModel):
    """OS family, architecture and package manager of the host."""

    os_family: str             # Linux, Darwin
    architecture: str
    package_manager: str       # apt, yum, brew
    sudo: str = ""             # "sudo" or "" (brew, or running as root)

    def to_dict(self) -> dict:
        return self.model_dump()
