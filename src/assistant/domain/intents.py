from __future__ import annotations

"""Schema registry for assistant mutation intents.

Each tool the language model may call maps to exactly one pydantic model. The
model is the single source of truth for what a well-formed invocation looks
like; anything the model emits is parsed here before a single field is trusted.

- ``manage_kpis``      -> :class:`KPIIntent`
- ``manage_tasks``     -> :class:`TaskIntent`
- ``manage_documents`` -> :class:`DocumentIntent`
"""

import json
from dataclasses import dataclass
from datetime import date
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

TaskStatus = Literal["pending", "in_progress", "completed", "blocked"]
TaskPriority = Literal["high", "medium", "low"]
DocumentCategory = Literal["financial", "legal", "operational", "marketing", "strategic", "other"]

TASK_STATUSES = ("pending", "in_progress", "completed", "blocked")
TASK_PRIORITIES = ("high", "medium", "low")
DOCUMENT_CATEGORIES = ("financial", "legal", "operational", "marketing", "strategic", "other")


class IntentValidationError(Exception):
    """A single tool invocation did not match its registered schema."""

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(f"{tool_name}: {reason}")
        self.tool_name = tool_name
        self.reason = reason


@dataclass(frozen=True)
class ToolInvocation:
    """Raw tool call as returned by the model; ``arguments`` is unparsed JSON."""

    name: str
    arguments: str
    call_id: Optional[str] = None


class _IntentBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    entity: ClassVar[str] = ""


class KPIIntent(_IntentBase):
    entity: ClassVar[str] = "kpi"

    action: Literal["update_latest", "insert_new"]
    name: str = Field(min_length=1, max_length=200)
    value: float
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    unit: Optional[str] = Field(default=None, max_length=50)
    area: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def _check_period(self) -> "KPIIntent":
        if self.action == "insert_new":
            if self.period_start is None or self.period_end is None:
                raise ValueError("insert_new requires period_start and period_end")
        if self.period_start and self.period_end and self.period_start > self.period_end:
            raise ValueError("period_start must not be after period_end")
        return self


class TaskIntent(_IntentBase):
    entity: ClassVar[str] = "task"

    UPDATABLE_FIELDS: ClassVar[tuple[str, ...]] = (
        "title",
        "description",
        "status",
        "priority",
        "due_date",
        "estimated_effort",
        "assigned_to",
    )

    action: Literal["create", "update", "delete", "change_status", "assign"]
    task_id: Optional[str] = Field(default=None, alias="taskId", min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = Field(default=None, alias="dueDate")
    estimated_effort: Optional[float] = Field(default=None, alias="estimatedEffort", ge=0)
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo", min_length=1)

    @model_validator(mode="after")
    def _check_required_keys(self) -> "TaskIntent":
        if self.action == "create":
            if not self.title:
                raise ValueError("create requires title")
            return self
        if not self.task_id:
            raise ValueError(f"{self.action} requires taskId")
        if self.action == "change_status" and self.status is None:
            raise ValueError("change_status requires status")
        if self.action == "assign" and not self.assigned_to:
            raise ValueError("assign requires assignedTo")
        if self.action == "update" and not self.changes():
            raise ValueError("update requires at least one field to change")
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly supplied by the model, excluding identity and action."""
        return {
            name: getattr(self, name)
            for name in self.UPDATABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is not None
        }


class DocumentIntent(_IntentBase):
    entity: ClassVar[str] = "document"

    action: Literal["analyze", "recategorize", "query"]
    document_id: Optional[str] = Field(default=None, alias="documentId", min_length=1)
    new_category: Optional[DocumentCategory] = Field(default=None, alias="newCategory")
    query_text: Optional[str] = Field(default=None, alias="queryText", min_length=1, max_length=500)

    @model_validator(mode="after")
    def _check_required_keys(self) -> "DocumentIntent":
        if self.action in ("analyze", "recategorize") and not self.document_id:
            raise ValueError(f"{self.action} requires documentId")
        if self.action == "recategorize" and self.new_category is None:
            raise ValueError("recategorize requires newCategory")
        if self.action == "query" and not self.query_text:
            raise ValueError("query requires queryText")
        return self


OperationIntent = Union[KPIIntent, TaskIntent, DocumentIntent]

INTENT_MODELS: Dict[str, type[_IntentBase]] = {
    "manage_kpis": KPIIntent,
    "manage_tasks": TaskIntent,
    "manage_documents": DocumentIntent,
}


def _describe_errors(exc: ValidationError) -> str:
    parts: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid arguments"


def parse_intent(tool_name: str, arguments: str | Dict[str, Any]) -> OperationIntent:
    """Parse and validate one tool invocation.

    Raises:
        IntentValidationError for unknown tools, malformed JSON, or arguments
        that violate the registered schema.
    """
    model = INTENT_MODELS.get(tool_name)
    if model is None:
        raise IntentValidationError(tool_name, "unknown tool")
    if isinstance(arguments, dict):
        payload: Any = arguments
    else:
        try:
            payload = json.loads(arguments or "")
        except (TypeError, ValueError) as exc:
            raise IntentValidationError(tool_name, f"arguments are not valid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise IntentValidationError(tool_name, "arguments must be a JSON object")
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise IntentValidationError(tool_name, _describe_errors(exc)) from exc


TOOL_DECLARATIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "manage_kpis",
            "description": (
                "Update or record KPI values. Use update_latest to overwrite the most recent value of an "
                "existing KPI, insert_new to add a value for a new period."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": ["update_latest", "insert_new"]},
                    "name": {"type": "string", "description": "KPI name exactly as listed in the known entities"},
                    "value": {"type": "number", "description": "New numeric value"},
                    "period_start": {"type": "string", "description": "ISO date (YYYY-MM-DD), required for insert_new"},
                    "period_end": {"type": "string", "description": "ISO date (YYYY-MM-DD), required for insert_new"},
                    "unit": {"type": "string", "description": "Unit of measure"},
                    "area": {"type": "string", "description": "Business area of the KPI"},
                },
                "required": ["action", "name", "value"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "manage_tasks",
            "description": "Create, update, delete, re-assign or change the status of tasks in the active plan.",
            "parameters": {
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": ["create", "update", "delete", "change_status", "assign"]},
                    "taskId": {"type": "string", "description": "Identifier of an existing task; required unless action is create"},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "status": {"type": "string", "enum": list(TASK_STATUSES)},
                    "priority": {"type": "string", "enum": list(TASK_PRIORITIES)},
                    "dueDate": {"type": "string", "description": "ISO date (YYYY-MM-DD)"},
                    "estimatedEffort": {"type": "number", "description": "Estimated effort in hours"},
                    "assignedTo": {"type": "string", "description": "Assignee name or id"},
                },
                "required": ["action"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "manage_documents",
            "description": "Trigger analysis of a document, change its category, or look up documents by content.",
            "parameters": {
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": ["analyze", "recategorize", "query"]},
                    "documentId": {"type": "string"},
                    "newCategory": {"type": "string", "enum": list(DOCUMENT_CATEGORIES)},
                    "queryText": {"type": "string"},
                },
                "required": ["action"],
                "additionalProperties": False,
            },
        },
    },
]
