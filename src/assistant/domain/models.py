from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

ASSISTANT_SOURCE = "ai_assistant"


class KpiRecord(BaseModel):
    id: str
    tenant_id: str
    area: str = "general"
    name: str
    value: float
    target_value: Optional[float] = None
    unit: Optional[str] = None
    period_start: date
    period_end: date
    source: str = "manual"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class PlanRecord(BaseModel):
    id: str
    tenant_id: str
    title: str
    status: str = "active"
    created_at: datetime


class ObjectiveRecord(BaseModel):
    id: str
    tenant_id: str
    plan_id: str
    title: str
    position: int = 0


class TaskRecord(BaseModel):
    id: str
    tenant_id: str
    objective_id: str
    title: str
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    assigned_to: Optional[str] = None
    estimated_effort: Optional[float] = None
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class DocumentRecord(BaseModel):
    id: str
    tenant_id: str
    file_name: str
    file_type: Optional[str] = None
    category: Optional[str] = None
    analysis_status: str = "pending"
    analysis_result: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
