"""
Engine executor — the sequential stage loop.

A workflow is an ordered list of stages. Each stage has an optional
completion check and an action. The engine runs them in order against
one WorkflowContext:

    is_complete(ctx)?  → skip (receipt "skipped")
    else action(ctx)   → receipt "ok"
    ProvisionError     → receipt "failed", stop

The first failing stage ends the run; nothing is rolled back. Every
stage outcome is recorded in the run state and the report.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fabprov.core.context import WorkflowContext
from fabprov.core.errors import ProvisionError
from fabprov.core.models.receipt import Receipt
from fabprov.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)

StageAction = Callable[[WorkflowContext], Receipt]
CompletionCheck = Callable[[WorkflowContext], bool]


@dataclass
class Stage:
    """One step of the workflow."""

    name: str
    action: StageAction
    is_complete: CompletionCheck | None = None
    description: str = ""
    skip_reason: str = "already complete"


@dataclass
class ExecutionPlan:
    """An ordered list of stages to run."""

    operation_id: str = ""
    workflow: str = ""
    stages: list[Stage] = field(default_factory=list)

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]


@dataclass
class ExecutionReport:
    """Result of executing a plan."""

    operation_id: str = ""
    workflow: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    error: ProvisionError | None = None
    failed_stage: str | None = None
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.skipped)

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        return "ok" if self.failed == 0 else "failed"

    def receipt_for(self, stage: str) -> Receipt | None:
        for receipt in self.receipts:
            if receipt.operation == f"stage:{stage}":
                return receipt
        return None

    def to_dict(self) -> dict:
        data = {
            "operation_id": self.operation_id,
            "workflow": self.workflow,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }
        if self.error is not None:
            data["failed_stage"] = self.failed_stage
            data["error"] = self.error.to_dict()
        return data


def execute_plan(
    plan: ExecutionPlan,
    ctx: WorkflowContext,
    on_stage: Callable[[Stage, Receipt], None] | None = None,
) -> ExecutionReport:
    """Run the stages of *plan* in order, stopping at the first failure.

    Args:
        plan: The stages to run.
        ctx: Context threaded through every stage.
        on_stage: Called after each stage with its receipt (CLI narration).

    Returns:
        ExecutionReport with one receipt per stage that ran or was skipped.
    """
    report = ExecutionReport(operation_id=plan.operation_id, workflow=plan.workflow)
    run_start = time.monotonic()

    for stage in plan.stages:
        operation = f"stage:{stage.name}"
        start = time.monotonic()
        started_at = datetime.now(UTC).isoformat()

        if stage.is_complete is not None and stage.is_complete(ctx):
            receipt = Receipt.skip(adapter="workflow", operation=operation, reason=stage.skip_reason)
        else:
            error: ProvisionError | None = None
            try:
                receipt = stage.action(ctx)
            except ProvisionError as e:
                error = e
            except OSError as e:
                logger.debug("Stage %s hit a filesystem error", stage.name, exc_info=True)
                error = ProvisionError(
                    f"Stage {stage.name} failed: {e}",
                    hint=f"Check permissions and free space for {e.filename}" if e.filename else None,
                )
            if error is not None:
                report.error = error
                receipt = Receipt.failure(
                    adapter="workflow",
                    operation=operation,
                    error=error.message,
                    metadata={"kind": error.kind, "hint": error.hint} if error.hint else {"kind": error.kind},
                )
            else:
                receipt.adapter = "workflow"
                receipt.operation = operation
                if receipt.failed and report.error is None:
                    report.error = ProvisionError(receipt.describe_failure())

        receipt.started_at = started_at
        receipt.ended_at = datetime.now(UTC).isoformat()
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        report.receipts.append(receipt)

        ctx.state.set_stage(
            stage.name,
            status=receipt.status,
            detail=receipt.error or receipt.output,
            finished_at=receipt.ended_at,
        )

        status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
        logger.info("%s %s → %s", status_marker, stage.name, receipt.status)

        if on_stage is not None:
            on_stage(stage, receipt)

        if receipt.failed:
            report.failed_stage = stage.name
            break

    report.duration_ms = int((time.monotonic() - run_start) * 1000)
    return report


def write_audit_entries(
    report: ExecutionReport,
    audit_writer: AuditWriter,
    org_domain: str = "",
    mock: bool = False,
) -> None:
    """Write the run outcome to the audit ledger."""
    errors = []
    if report.error is not None:
        errors.append(f"{report.failed_stage}: {report.error.message}")
    entry = AuditEntry(
        operation_id=report.operation_id,
        operation_type=report.workflow,
        org_domain=org_domain,
        mock=mock,
        status=report.status,
        stages_total=report.total,
        stages_succeeded=report.succeeded,
        stages_skipped=report.skipped,
        stages_failed=report.failed,
        duration_ms=report.duration_ms,
        errors=errors,
        context={r.operation.removeprefix("stage:"): r.status for r in report.receipts},
    )
    audit_writer.write(entry)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
