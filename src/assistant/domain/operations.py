from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

EntityType = Literal["kpi", "task", "document"]


@dataclass(frozen=True)
class AppliedOperation:
    """One successfully executed intent."""

    entity: EntityType
    action: str
    summary: str
    resource_id: Optional[str] = None


@dataclass(frozen=True)
class RejectedIntent:
    tool_name: str
    reason: str


@dataclass(frozen=True)
class FailedIntent:
    entity: str
    action: str
    reason: str


@dataclass(frozen=True)
class DocumentFinding:
    document_id: str
    name: str
    category: Optional[str] = None
    summary: Optional[str] = None


@dataclass
class ExecutionReport:
    applied: List[AppliedOperation] = field(default_factory=list)
    rejected: List[RejectedIntent] = field(default_factory=list)
    failed: List[FailedIntent] = field(default_factory=list)
    findings: List[DocumentFinding] = field(default_factory=list)

    @property
    def data_updated(self) -> bool:
        return bool(self.applied)

    def updated_entities(self) -> List[str]:
        return updated_entity_types(self.applied)


def updated_entity_types(applied: List[AppliedOperation]) -> List[str]:
    """Distinct entity types touched, sorted for a stable header value."""
    return sorted({op.entity for op in applied})


class AuditLogEntry(BaseModel):
    resource_type: str
    action: str
    user_id: str
    tenant_id: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str
