from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import UTC, date, datetime
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol

from ..domain.models import DocumentRecord, KpiRecord, ObjectiveRecord, PlanRecord, TaskRecord
from ..domain.operations import AuditLogEntry

logger = logging.getLogger(__name__)


class BusinessStore(Protocol):
    """Tenant-scoped datastore for the entities the assistant may read or mutate."""

    def list_kpis(self, tenant_id: str) -> List[KpiRecord]: ...

    def find_latest_kpi(self, tenant_id: str, name: str) -> Optional[KpiRecord]: ...

    def update_kpi_value(self, tenant_id: str, kpi_id: str, value: float, source: str) -> Optional[KpiRecord]: ...

    def insert_kpi(
        self,
        tenant_id: str,
        *,
        name: str,
        value: float,
        period_start: date,
        period_end: date,
        unit: Optional[str] = None,
        area: Optional[str] = None,
        target_value: Optional[float] = None,
        source: str = "manual",
    ) -> KpiRecord: ...

    def add_plan(self, tenant_id: str, title: str, status: str = "active") -> PlanRecord: ...

    def add_objective(self, tenant_id: str, plan_id: str, title: str, position: int = 0) -> ObjectiveRecord: ...

    def get_active_plan(self, tenant_id: str) -> Optional[PlanRecord]: ...

    def first_objective(self, tenant_id: str, plan_id: str) -> Optional[ObjectiveRecord]: ...

    def list_tasks(self, tenant_id: str) -> List[TaskRecord]: ...

    def get_task(self, tenant_id: str, task_id: str) -> Optional[TaskRecord]: ...

    def create_task(self, tenant_id: str, objective_id: str, fields: Dict[str, Any]) -> TaskRecord: ...

    def update_task(self, tenant_id: str, task_id: str, fields: Dict[str, Any]) -> Optional[TaskRecord]: ...

    def delete_task(self, tenant_id: str, task_id: str) -> bool: ...

    def add_document(self, tenant_id: str, file_name: str, **fields: Any) -> DocumentRecord: ...

    def list_documents(self, tenant_id: str) -> List[DocumentRecord]: ...

    def get_document(self, tenant_id: str, document_id: str) -> Optional[DocumentRecord]: ...

    def update_document(self, tenant_id: str, document_id: str, fields: Dict[str, Any]) -> Optional[DocumentRecord]: ...

    def append_audit(self, entry: AuditLogEntry) -> AuditLogEntry: ...

    def list_audit(self, tenant_id: str, limit: Optional[int] = None) -> List[AuditLogEntry]: ...


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryBusinessStore:
    """Thread-safe in-memory store.

    Every read returns a copy so callers never hold live references into the
    store between requests. Writes are last-write-wins per row.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._kpis: Dict[str, KpiRecord] = {}
        self._plans: Dict[str, PlanRecord] = {}
        self._objectives: Dict[str, ObjectiveRecord] = {}
        self._tasks: Dict[str, TaskRecord] = {}
        self._documents: Dict[str, DocumentRecord] = {}
        self._audit: List[AuditLogEntry] = []

    def _save(self) -> None:
        """Persistence hook; the in-memory store has nothing to flush."""

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    # KPIs -------------------------------------------------------------
    def list_kpis(self, tenant_id: str) -> List[KpiRecord]:
        with self._lock:
            rows = [k.model_copy() for k in self._kpis.values() if k.tenant_id == tenant_id]
        return sorted(rows, key=lambda k: (k.name.lower(), k.period_end))

    def find_latest_kpi(self, tenant_id: str, name: str) -> Optional[KpiRecord]:
        needle = (name or "").strip().lower()
        with self._lock:
            matches = [
                k for k in self._kpis.values()
                if k.tenant_id == tenant_id and k.name.strip().lower() == needle
            ]
            if not matches:
                return None
            latest = max(matches, key=lambda k: (k.period_end, k.created_at))
            return latest.model_copy()

    def update_kpi_value(self, tenant_id: str, kpi_id: str, value: float, source: str) -> Optional[KpiRecord]:
        with self._lock:
            row = self._kpis.get(kpi_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            row.value = value
            row.source = source
            self._save()
            return row.model_copy()

    def insert_kpi(
        self,
        tenant_id: str,
        *,
        name: str,
        value: float,
        period_start: date,
        period_end: date,
        unit: Optional[str] = None,
        area: Optional[str] = None,
        target_value: Optional[float] = None,
        source: str = "manual",
    ) -> KpiRecord:
        with self._lock:
            row = KpiRecord(
                id=self._new_id(),
                tenant_id=tenant_id,
                area=area or "general",
                name=name,
                value=value,
                target_value=target_value,
                unit=unit,
                period_start=period_start,
                period_end=period_end,
                source=source,
                created_at=_now(),
            )
            self._kpis[row.id] = row
            self._save()
            return row.model_copy()

    # Plans & objectives -----------------------------------------------
    def add_plan(self, tenant_id: str, title: str, status: str = "active") -> PlanRecord:
        with self._lock:
            plan = PlanRecord(id=self._new_id(), tenant_id=tenant_id, title=title, status=status, created_at=_now())
            self._plans[plan.id] = plan
            self._save()
            return plan.model_copy()

    def add_objective(self, tenant_id: str, plan_id: str, title: str, position: int = 0) -> ObjectiveRecord:
        with self._lock:
            objective = ObjectiveRecord(
                id=self._new_id(),
                tenant_id=tenant_id,
                plan_id=plan_id,
                title=title,
                position=position,
            )
            self._objectives[objective.id] = objective
            self._save()
            return objective.model_copy()

    def get_active_plan(self, tenant_id: str) -> Optional[PlanRecord]:
        with self._lock:
            active = [p for p in self._plans.values() if p.tenant_id == tenant_id and p.status == "active"]
            if not active:
                return None
            return max(active, key=lambda p: p.created_at).model_copy()

    def first_objective(self, tenant_id: str, plan_id: str) -> Optional[ObjectiveRecord]:
        with self._lock:
            rows = [
                o for o in self._objectives.values()
                if o.tenant_id == tenant_id and o.plan_id == plan_id
            ]
            if not rows:
                return None
            return min(rows, key=lambda o: o.position).model_copy()

    # Tasks ------------------------------------------------------------
    def list_tasks(self, tenant_id: str) -> List[TaskRecord]:
        with self._lock:
            rows = [t.model_copy() for t in self._tasks.values() if t.tenant_id == tenant_id]
        return sorted(rows, key=lambda t: t.created_at)

    def get_task(self, tenant_id: str, task_id: str) -> Optional[TaskRecord]:
        with self._lock:
            row = self._tasks.get(task_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            return row.model_copy()

    def create_task(self, tenant_id: str, objective_id: str, fields: Dict[str, Any]) -> TaskRecord:
        with self._lock:
            data = {k: v for k, v in (fields or {}).items() if v is not None}
            row = TaskRecord(
                id=self._new_id(),
                tenant_id=tenant_id,
                objective_id=objective_id,
                created_at=_now(),
                **data,
            )
            self._tasks[row.id] = row
            self._save()
            return row.model_copy()

    def update_task(self, tenant_id: str, task_id: str, fields: Dict[str, Any]) -> Optional[TaskRecord]:
        with self._lock:
            row = self._tasks.get(task_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            updated = row.model_copy(update=dict(fields or {}))
            self._tasks[task_id] = TaskRecord.model_validate(updated.model_dump())
            self._save()
            return self._tasks[task_id].model_copy()

    def delete_task(self, tenant_id: str, task_id: str) -> bool:
        with self._lock:
            row = self._tasks.get(task_id)
            if row is None or row.tenant_id != tenant_id:
                return False
            del self._tasks[task_id]
            self._save()
            return True

    # Documents --------------------------------------------------------
    def add_document(self, tenant_id: str, file_name: str, **fields: Any) -> DocumentRecord:
        with self._lock:
            row = DocumentRecord(
                id=fields.pop("id", None) or self._new_id(),
                tenant_id=tenant_id,
                file_name=file_name,
                created_at=_now(),
                **fields,
            )
            self._documents[row.id] = row
            self._save()
            return row.model_copy()

    def list_documents(self, tenant_id: str) -> List[DocumentRecord]:
        with self._lock:
            rows = [d.model_copy() for d in self._documents.values() if d.tenant_id == tenant_id]
        return sorted(rows, key=lambda d: d.created_at)

    def get_document(self, tenant_id: str, document_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            row = self._documents.get(document_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            return row.model_copy()

    def update_document(self, tenant_id: str, document_id: str, fields: Dict[str, Any]) -> Optional[DocumentRecord]:
        with self._lock:
            row = self._documents.get(document_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            update = dict(fields or {})
            update["updated_at"] = _now()
            self._documents[document_id] = DocumentRecord.model_validate(row.model_copy(update=update).model_dump())
            self._save()
            return self._documents[document_id].model_copy()

    # Audit log --------------------------------------------------------
    def append_audit(self, entry: AuditLogEntry) -> AuditLogEntry:
        with self._lock:
            stored = entry.model_copy(deep=True)
            self._audit.append(stored)
            self._save()
            return stored.model_copy(deep=True)

    def list_audit(self, tenant_id: str, limit: Optional[int] = None) -> List[AuditLogEntry]:
        with self._lock:
            rows = [e.model_copy(deep=True) for e in self._audit if e.tenant_id == tenant_id]
        if limit is not None and limit >= 0:
            rows = rows[-limit:] if limit else []
        return rows


class FileBusinessStore(InMemoryBusinessStore):
    """JSON file-backed store for development persistence.

    Thread-safe with a coarse RLock; suitable for dev/test, not high concurrency.
    """

    def __init__(self, file_path: Optional[str] = None) -> None:
        super().__init__()
        root = Path(__file__).resolve().parents[3]
        default_path = root / "run" / "assistant_store.json"
        self._path = Path(file_path or os.getenv("ASSISTANT_STORE_FILE", str(default_path)))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, ValueError):
            logger.warning("Could not read store file %s; starting empty", self._path)
            return
        self._kpis = {r["id"]: KpiRecord(**r) for r in data.get("kpis", [])}
        self._plans = {r["id"]: PlanRecord(**r) for r in data.get("plans", [])}
        self._objectives = {r["id"]: ObjectiveRecord(**r) for r in data.get("objectives", [])}
        self._tasks = {r["id"]: TaskRecord(**r) for r in data.get("tasks", [])}
        self._documents = {r["id"]: DocumentRecord(**r) for r in data.get("documents", [])}
        self._audit = [AuditLogEntry(**r) for r in data.get("audit", [])]

    def _save(self) -> None:
        obj = {
            "kpis": [r.model_dump(mode="json") for r in self._kpis.values()],
            "plans": [r.model_dump(mode="json") for r in self._plans.values()],
            "objectives": [r.model_dump(mode="json") for r in self._objectives.values()],
            "tasks": [r.model_dump(mode="json") for r in self._tasks.values()],
            "documents": [r.model_dump(mode="json") for r in self._documents.values()],
            "audit": [r.model_dump(mode="json") for r in self._audit],
        }
        # Write then swap so a crash never leaves a truncated store file
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(obj, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


_store: Optional[BusinessStore] = None


def get_store() -> BusinessStore:
    global _store
    if _store is None:
        impl = os.getenv("ASSISTANT_STORE_IMPL", "memory").lower()
        _store = FileBusinessStore() if impl == "file" else InMemoryBusinessStore()
    return _store


def set_store(store: Optional[BusinessStore]) -> None:
    """Swap the process-wide store (tests, alternative backends)."""
    global _store
    _store = store
