"""
Provisioning errors — every fatal condition of the workflow.

Each error carries an optional ``hint``: the diagnostic command the
operator should run next (``docker logs ca-org1`` …). The CLI prints
it before exiting with status 1.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for fatal workflow conditions."""

    kind = "provision"

    def __init__(self, message: str, *, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "error": self.message}
        if self.hint:
            data["hint"] = self.hint
        return data


class UnsupportedEnvironment(ProvisionError):
    """OS or package manager the installer cannot drive."""

    kind = "unsupported_environment"


class MissingMandatoryTool(ProvisionError):
    """A required tool is absent (or too old) after the install attempt."""

    kind = "missing_tool"


class FetchFailure(ProvisionError):
    """Samples checkout or binary bundle could not be obtained."""

    kind = "fetch_failure"


class ServiceStartFailure(ProvisionError):
    """The CA compose project failed to start."""

    kind = "service_start_failure"


class ReadinessTimeout(ProvisionError):
    """The CA did not become ready within the polling budget."""

    kind = "readiness_timeout"


class EnrollmentCommandFailure(ProvisionError):
    """A register/enroll call failed, or enrollment inputs are missing."""

    kind = "enrollment_failure"


class ClusterStartFailure(ProvisionError):
    """The peer compose project failed to start."""

    kind = "cluster_start_failure"


class SetupDirConflict(ProvisionError):
    """The setup directory holds output of the other run mode (mock vs real)."""

    kind = "setup_dir_conflict"
