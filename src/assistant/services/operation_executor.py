from __future__ import annotations

"""Validate and apply tool invocations against the tenant's data.

Each invocation is handled on its own: a schema violation or a store failure
for one of them is logged and skipped while the rest of the batch continues.
Nothing is rolled back, and nothing is retried. Every mutation that goes
through produces exactly one :class:`AppliedOperation` and one audit entry.
"""

import logging
from datetime import UTC, datetime
from typing import Callable, List, Optional, Sequence, Union

from ..domain.intents import (
    DocumentIntent,
    IntentValidationError,
    KPIIntent,
    OperationIntent,
    TaskIntent,
    ToolInvocation,
    parse_intent,
)
from ..domain.models import ASSISTANT_SOURCE
from ..domain.operations import (
    AppliedOperation,
    AuditLogEntry,
    DocumentFinding,
    ExecutionReport,
    FailedIntent,
    RejectedIntent,
)
from ..infrastructure.events import publish_event
from ..infrastructure.store import BusinessStore, get_store
from ..observability.metrics import INTENT_OUTCOMES
from ..security.auth import Principal
from .document_analysis import DocumentAnalyzer, get_document_analyzer

logger = logging.getLogger(__name__)

MAX_FINDINGS = 5


class ExecutionError(Exception):
    """A validated intent could not be applied to the store."""


class NoOpIntent(Exception):
    """A validated intent that legitimately has nothing to change."""


def _fmt_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


class OperationExecutor:
    def __init__(
        self,
        store: Optional[BusinessStore] = None,
        analyzer: Optional[DocumentAnalyzer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store or get_store()
        self.analyzer = analyzer or get_document_analyzer()
        self._now = clock or (lambda: datetime.now(UTC))

    def apply(self, invocations: Sequence[ToolInvocation], principal: Optional[Principal]) -> ExecutionReport:
        report = ExecutionReport()
        if not invocations:
            return report
        if principal is None:
            logger.info("execution_skipped_no_principal", extra={"count": len(invocations)})
            return report

        for invocation in invocations:
            try:
                intent = parse_intent(invocation.name, invocation.arguments)
            except IntentValidationError as exc:
                report.rejected.append(RejectedIntent(tool_name=invocation.name, reason=exc.reason))
                INTENT_OUTCOMES.labels(tool=invocation.name, outcome="rejected").inc()
                logger.warning("intent_rejected", extra={"tool": invocation.name, "reason": exc.reason})
                continue

            try:
                outcome = self._execute(intent, principal)
                if isinstance(outcome, AppliedOperation):
                    self._audit(outcome, intent, invocation, principal)
            except NoOpIntent as exc:
                INTENT_OUTCOMES.labels(tool=invocation.name, outcome="noop").inc()
                logger.info("intent_noop", extra={"tool": invocation.name, "action": intent.action, "reason": str(exc)})
                continue
            except Exception as exc:
                report.failed.append(FailedIntent(entity=intent.entity, action=intent.action, reason=str(exc)))
                INTENT_OUTCOMES.labels(tool=invocation.name, outcome="failed").inc()
                logger.warning(
                    "intent_failed",
                    extra={"tool": invocation.name, "action": intent.action, "err": str(exc)},
                )
                continue

            if isinstance(outcome, AppliedOperation):
                report.applied.append(outcome)
                INTENT_OUTCOMES.labels(tool=invocation.name, outcome="applied").inc()
                logger.info(
                    "intent_applied",
                    extra={"entity": outcome.entity, "action": outcome.action, "resource_id": outcome.resource_id},
                )
            else:
                report.findings.extend(outcome)
                INTENT_OUTCOMES.labels(tool=invocation.name, outcome="read").inc()

        if report.applied:
            publish_event(
                "operations_applied",
                {
                    "tenant_id": principal.tenant_id,
                    "user_id": principal.user_id,
                    "entities": report.updated_entities(),
                    "count": len(report.applied),
                },
            )
        return report

    def _audit(
        self,
        applied: AppliedOperation,
        intent: OperationIntent,
        invocation: ToolInvocation,
        principal: Principal,
    ) -> None:
        entry = AuditLogEntry(
            resource_type=applied.entity,
            action=applied.action,
            user_id=principal.user_id,
            tenant_id=principal.tenant_id,
            resource_id=applied.resource_id,
            metadata={
                "tool": invocation.name,
                "intent": intent.model_dump(mode="json", exclude_none=True),
                "summary": applied.summary,
                "source": ASSISTANT_SOURCE,
            },
            created_at=self._now().isoformat().replace("+00:00", "Z"),
        )
        self.store.append_audit(entry)

    def _execute(self, intent: OperationIntent, principal: Principal) -> Union[AppliedOperation, List[DocumentFinding]]:
        if isinstance(intent, KPIIntent):
            return self._apply_kpi(intent, principal.tenant_id)
        if isinstance(intent, TaskIntent):
            return self._apply_task(intent, principal.tenant_id)
        if isinstance(intent, DocumentIntent):
            return self._apply_document(intent, principal.tenant_id)
        raise ExecutionError(f"Unsupported intent type: {type(intent).__name__}")

    # KPIs -------------------------------------------------------------
    def _apply_kpi(self, intent: KPIIntent, tenant_id: str) -> AppliedOperation:
        unit = f" {intent.unit}" if intent.unit else ""
        if intent.action == "update_latest":
            row = self.store.find_latest_kpi(tenant_id, intent.name)
            if row is None:
                raise NoOpIntent(f'KPI "{intent.name}" not found')
            updated = self.store.update_kpi_value(tenant_id, row.id, intent.value, ASSISTANT_SOURCE)
            if updated is None:
                raise ExecutionError(f'KPI "{intent.name}" disappeared before update')
            unit = unit or (f" {updated.unit}" if updated.unit else "")
            return AppliedOperation(
                entity="kpi",
                action=intent.action,
                summary=f'KPI "{updated.name}" updated to {_fmt_number(intent.value)}{unit} (period ending {updated.period_end.isoformat()})',
                resource_id=updated.id,
            )

        # insert_new: both period bounds are guaranteed by the schema
        row = self.store.insert_kpi(
            tenant_id,
            name=intent.name,
            value=intent.value,
            period_start=intent.period_start,  # type: ignore[arg-type]
            period_end=intent.period_end,  # type: ignore[arg-type]
            unit=intent.unit,
            area=intent.area,
            source=ASSISTANT_SOURCE,
        )
        return AppliedOperation(
            entity="kpi",
            action=intent.action,
            summary=(
                f'New value {_fmt_number(intent.value)}{unit} recorded for KPI "{row.name}" '
                f"({row.period_start.isoformat()} to {row.period_end.isoformat()})"
            ),
            resource_id=row.id,
        )

    # Tasks ------------------------------------------------------------
    def _status_fields(self, status: str) -> dict:
        return {"status": status, "completed_at": self._now() if status == "completed" else None}

    def _apply_task(self, intent: TaskIntent, tenant_id: str) -> AppliedOperation:
        if intent.action == "create":
            plan = self.store.get_active_plan(tenant_id)
            if plan is None:
                raise NoOpIntent("no active plan to attach the task to")
            objective = self.store.first_objective(tenant_id, plan.id)
            if objective is None:
                raise NoOpIntent(f'plan "{plan.title}" has no objectives')
            fields = intent.changes()
            fields.setdefault("status", "pending")
            fields.setdefault("priority", "medium")
            if fields["status"] == "completed":
                fields["completed_at"] = self._now()
            fields["metadata"] = {"source": ASSISTANT_SOURCE}
            task = self.store.create_task(tenant_id, objective.id, fields)
            return AppliedOperation(
                entity="task",
                action="create",
                summary=f'Task "{task.title}" created under objective "{objective.title}"',
                resource_id=task.id,
            )

        task_id = intent.task_id or ""
        task = self.store.get_task(tenant_id, task_id)
        if task is None:
            raise ExecutionError(f"task {task_id} not found")

        if intent.action == "delete":
            if not self.store.delete_task(tenant_id, task_id):
                raise ExecutionError(f"task {task_id} could not be deleted")
            return AppliedOperation(entity="task", action="delete", summary=f'Task "{task.title}" deleted', resource_id=task_id)

        if intent.action == "change_status":
            fields = self._status_fields(intent.status or "")
            summary = f'Task "{task.title}" moved to {intent.status}'
        elif intent.action == "assign":
            fields = {"assigned_to": intent.assigned_to}
            summary = f'Task "{task.title}" assigned to {intent.assigned_to}'
        else:
            fields = intent.changes()
            if "status" in fields:
                fields.update(self._status_fields(fields["status"]))
            changed = ", ".join(k for k in TaskIntent.UPDATABLE_FIELDS if k in fields)
            summary = f'Task "{fields.get("title", task.title)}" updated ({changed})'

        updated = self.store.update_task(tenant_id, task_id, fields)
        if updated is None:
            raise ExecutionError(f"task {task_id} disappeared before update")
        return AppliedOperation(entity="task", action=intent.action, summary=summary, resource_id=task_id)

    # Documents --------------------------------------------------------
    def _apply_document(self, intent: DocumentIntent, tenant_id: str) -> Union[AppliedOperation, List[DocumentFinding]]:
        if intent.action == "query":
            return self._query_documents(tenant_id, intent.query_text or "")

        document_id = intent.document_id or ""
        doc = self.store.get_document(tenant_id, document_id)
        if doc is None:
            raise ExecutionError(f"document {document_id} not found")

        if intent.action == "analyze":
            self.analyzer.trigger(tenant_id, document_id)
            self.store.update_document(tenant_id, document_id, {"analysis_status": "processing"})
            return AppliedOperation(
                entity="document",
                action="analyze",
                summary=f'Analysis requested for "{doc.file_name}"',
                resource_id=document_id,
            )

        updated = self.store.update_document(tenant_id, document_id, {"category": intent.new_category})
        if updated is None:
            raise ExecutionError(f"document {document_id} disappeared before update")
        return AppliedOperation(
            entity="document",
            action="recategorize",
            summary=f'Document "{doc.file_name}" moved from {doc.category or "uncategorized"} to {intent.new_category}',
            resource_id=document_id,
        )

    def _query_documents(self, tenant_id: str, query_text: str) -> List[DocumentFinding]:
        terms = [t for t in query_text.lower().split() if len(t) > 2]
        findings: List[DocumentFinding] = []
        for doc in self.store.list_documents(tenant_id):
            result = doc.analysis_result or {}
            summary = result.get("summary") if isinstance(result, dict) else None
            haystack = " ".join(filter(None, [doc.file_name, doc.category, summary])).lower()
            if terms and not any(term in haystack for term in terms):
                continue
            findings.append(
                DocumentFinding(document_id=doc.id, name=doc.file_name, category=doc.category, summary=summary)
            )
            if len(findings) >= MAX_FINDINGS:
                break
        return findings
