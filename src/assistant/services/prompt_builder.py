from __future__ import annotations

"""System prompt assembly.

Everything here is a pure function of its arguments: no store, no network.
The prompt for a contextual turn is made of, in order:

1. base instructions (admin override or the default below)
2. page and project identity
3. a bullet rendering of the caller's data snapshot
4. the focused entity, if any
5. document findings from read-only ``query`` intents
6. only when something changed: the applied operations grouped by entity
"""

import json
import math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..domain.chat_models import CompanyInfo, PageContext
from ..domain.operations import AppliedOperation, DocumentFinding
from .page_catalog import page_name

DIAGNOSIS_READY_MARKER = "[[DIAGNOSIS_READY]]"

MAX_LISTED_ITEMS = 5
MAX_RAW_SNAPSHOT_CHARS = 4000

CONTEXTUAL_BASE_PROMPT = (
    "You are the business assistant embedded in a management application for small companies. "
    "Answer concisely in Markdown, in the user's language, using only the data provided below. "
    "Never invent figures. If information is missing, say so and suggest where the user can find it. "
    "When the user asks for a change you cannot see confirmed under CHANGES JUST APPLIED, do not claim it was made."
)

DIAGNOSIS_BASE_PROMPT = """You are an expert business consultant running a company diagnosis.

CRITICAL RULE: work ONLY with this specific company. Do not invent or assume different information.

THE COMPANY IS:
Name: {{COMPANY_NAME}}
Industry: {{COMPANY_INDUSTRY}}
Stage: {{COMPANY_STAGE}}

YOUR JOB:
Ask questions ONE at a time to gather information about these 6 areas:
1. Strategy (vision, mission, objectives)
2. Operations (processes, efficiency, quality)
3. Finance (profitability, financial control)
4. Marketing (brand, customer acquisition)
5. Legal (compliance, contracts, protection)
6. Technology (infrastructure, digitalization)

INSTRUCTIONS:
- ALWAYS use the correct company name: {{COMPANY_NAME}}
- Adapt questions to the stage: {{COMPANY_STAGE}}
- One question at a time, conversational and empathetic
- Do NOT invent information the user has not given you
- When you have enough information for all areas, ask whether they want to generate the diagnosis"""

ENTITY_HEADINGS = (
    ("kpi", "KPIs"),
    ("task", "Tasks"),
    ("document", "Documents"),
)


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def kpi_progress(value: Any, target: Any) -> Optional[int]:
    """Percentage of target reached (halves round up), or None without a usable target."""
    v = _number(value)
    t = _number(target)
    if v is None or t is None or t == 0:
        return None
    return int(math.floor(v / t * 100 + 0.5))


def _render_tasks(tasks: List[Dict[str, Any]], today: date) -> List[str]:
    open_tasks = [t for t in tasks if _first(t, "status") != "completed"]
    completed = len(tasks) - len(open_tasks)
    lines = [f"- Tasks: {len(tasks)} total, {completed} completed, {len(open_tasks)} open"]

    urgent = [t for t in open_tasks if _first(t, "priority") == "high"]
    if urgent:
        titles = ", ".join(str(_first(t, "title", "name") or "untitled") for t in urgent[:MAX_LISTED_ITEMS])
        lines.append(f"- Urgent tasks ({len(urgent)}): {titles}")

    overdue = []
    for task in open_tasks:
        due = _parse_date(_first(task, "due_date", "dueDate"))
        if due is not None and due < today:
            overdue.append((task, due))
    if overdue:
        rendered = ", ".join(
            f"{_first(t, 'title', 'name') or 'untitled'} (due {due.isoformat()})" for t, due in overdue[:MAX_LISTED_ITEMS]
        )
        lines.append(f"- Overdue tasks ({len(overdue)}): {rendered}")
    return lines


def _render_kpis(kpis: List[Dict[str, Any]]) -> List[str]:
    lines: List[str] = []
    for kpi in kpis:
        name = _first(kpi, "name") or "unnamed KPI"
        value = _number(_first(kpi, "value", "current_value"))
        unit = _first(kpi, "unit")
        target = _first(kpi, "target_value", "targetValue", "target")
        text = f"- KPI {name}: {_fmt(value) if value is not None else 'no value'}"
        if unit:
            text += f" {unit}"
        progress = kpi_progress(value, target)
        if progress is not None:
            text += f" ({progress}% of target {_fmt(float(_number(target)))})"
        lines.append(text)
    return lines


def _render_documents(documents: List[Dict[str, Any]]) -> List[str]:
    pending = [d for d in documents if _first(d, "analysis_status", "analysisStatus") in ("pending", None)]
    return [f"- Documents: {len(documents)} total, {len(pending)} pending analysis"]


def render_snapshot(snapshot: Any, today: date) -> List[str]:
    if snapshot is None:
        return []
    if not isinstance(snapshot, dict):
        raw = json.dumps(snapshot, default=str, ensure_ascii=False)
        return [f"- Raw data: {raw[:MAX_RAW_SNAPSHOT_CHARS]}"]

    lines: List[str] = []
    if "tasks" in snapshot:
        lines.extend(_render_tasks(_as_list(snapshot.get("tasks")), today))
    if "kpis" in snapshot:
        lines.extend(_render_kpis(_as_list(snapshot.get("kpis"))))
    if "documents" in snapshot:
        lines.extend(_render_documents(_as_list(snapshot.get("documents"))))
    for key in sorted(k for k in snapshot if k not in ("tasks", "kpis", "documents")):
        raw = json.dumps(snapshot[key], default=str, ensure_ascii=False)
        lines.append(f"- {key}: {raw[:500]}")
    return lines


def _render_focus(page_context: PageContext) -> List[str]:
    focus = page_context.focus
    if focus is None or focus.is_empty():
        return []
    lines: List[str] = []
    if focus.kpi_id or focus.kpi_name:
        label = focus.kpi_name or focus.kpi_id
        lines.append(f"- The user is looking at KPI: {label}" + (f" (id {focus.kpi_id})" if focus.kpi_name and focus.kpi_id else ""))
    if focus.task_id:
        lines.append(f"- The user is looking at task id {focus.task_id}")
    if focus.document_id:
        lines.append(f"- The user is looking at document id {focus.document_id}")
    return lines


def summarize_operations(applied_operations: Sequence[AppliedOperation]) -> List[str]:
    lines: List[str] = []
    for entity, heading in ENTITY_HEADINGS:
        group = [op for op in applied_operations if op.entity == entity]
        if not group:
            continue
        lines.append(f"{heading}:")
        lines.extend(f"- {op.summary}" for op in group)
    return lines


def build_system_prompt(
    page_context: Optional[PageContext],
    applied_operations: Sequence[AppliedOperation],
    *,
    findings: Optional[Iterable[DocumentFinding]] = None,
    today: Optional[date] = None,
    base_instructions: Optional[str] = None,
) -> str:
    ctx = page_context or PageContext()
    today = today or date.today()
    sections: List[str] = [(base_instructions or CONTEXTUAL_BASE_PROMPT).strip()]

    context_lines = [f"- Page: {page_name(ctx.page_id)} ({ctx.page_id})"]
    if ctx.project is not None:
        context_lines.append(f"- Project: {ctx.project.name} (id {ctx.project.id})")
    context_lines.append(f"- Today: {today.isoformat()}")
    sections.append("CURRENT CONTEXT:\n" + "\n".join(context_lines))

    snapshot_lines = render_snapshot(ctx.data_snapshot, today)
    if snapshot_lines:
        sections.append("DATA SNAPSHOT:\n" + "\n".join(snapshot_lines))

    focus_lines = _render_focus(ctx)
    if focus_lines:
        sections.append("FOCUS:\n" + "\n".join(focus_lines))

    finding_list = list(findings or [])
    if finding_list:
        rendered = []
        for f in finding_list:
            line = f"- {f.name} [{f.category or 'uncategorized'}]"
            if f.summary:
                line += f": {f.summary[:300]}"
            rendered.append(line)
        sections.append("RELEVANT DOCUMENTS:\n" + "\n".join(rendered))

    if applied_operations:
        sections.append(
            "CHANGES JUST APPLIED:\n"
            + "\n".join(summarize_operations(applied_operations))
            + "\nConfirm these changes to the user in a natural, conversational way before answering anything else."
        )

    return "\n\n".join(sections)


def build_diagnosis_prompt(company: Optional[CompanyInfo], template: Optional[str] = None) -> str:
    company = company or CompanyInfo()
    prompt = (template or DIAGNOSIS_BASE_PROMPT)
    prompt = prompt.replace("{{COMPANY_NAME}}", company.name or "your company")
    prompt = prompt.replace("{{COMPANY_INDUSTRY}}", company.industry or "Not specified")
    prompt = prompt.replace("{{COMPANY_STAGE}}", company.stage or "startup")
    return (
        prompt.strip()
        + f"\n\nWhen you ask whether to generate the diagnosis, end that message with the exact marker {DIAGNOSIS_READY_MARKER}."
    )
