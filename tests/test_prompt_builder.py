from datetime import date

from src.assistant.domain.chat_models import CompanyInfo, PageContext
from src.assistant.domain.operations import AppliedOperation, DocumentFinding
from src.assistant.services.prompt_builder import (
    CONTEXTUAL_BASE_PROMPT,
    DIAGNOSIS_READY_MARKER,
    build_diagnosis_prompt,
    build_system_prompt,
    kpi_progress,
    render_snapshot,
)

TODAY = date(2024, 3, 15)


def _ctx(**kwargs):
    return PageContext.model_validate(kwargs)


def test_no_changes_section_without_applied_operations():
    prompt = build_system_prompt(_ctx(pageId="/kpis"), [], today=TODAY)
    assert prompt.startswith(CONTEXTUAL_BASE_PROMPT)
    assert "- Page: KPIs (/kpis)" in prompt
    assert "- Today: 2024-03-15" in prompt
    assert "CHANGES JUST APPLIED" not in prompt


def test_changes_section_groups_by_entity_and_asks_for_confirmation():
    ops = [
        AppliedOperation(entity="task", action="create", summary='Task "A" created'),
        AppliedOperation(entity="kpi", action="update_latest", summary='KPI "Revenue" updated to 500'),
    ]
    prompt = build_system_prompt(_ctx(), ops, today=TODAY)
    section = prompt.split("CHANGES JUST APPLIED:\n", 1)[1]
    assert section.index("KPIs:") < section.index("Tasks:")
    assert '- KPI "Revenue" updated to 500' in section
    assert "Confirm these changes" in section


def test_snapshot_reports_urgent_and_overdue_tasks():
    snapshot = {
        "tasks": [
            {"title": "Pay taxes", "priority": "high", "status": "pending", "due_date": "2024-03-01"},
            {"title": "Old done", "priority": "high", "status": "completed", "due_date": "2024-01-01"},
            {"title": "Later", "priority": "low", "status": "pending", "dueDate": "2024-04-01"},
        ]
    }
    lines = render_snapshot(snapshot, TODAY)
    assert lines[0] == "- Tasks: 3 total, 1 completed, 2 open"
    assert "- Urgent tasks (1): Pay taxes" in lines
    assert "- Overdue tasks (1): Pay taxes (due 2024-03-01)" in lines


def test_snapshot_renders_kpi_progress_against_target():
    lines = render_snapshot({"kpis": [{"name": "Revenue", "value": 750, "unit": "EUR", "target_value": 1000}]}, TODAY)
    assert lines == ["- KPI Revenue: 750 EUR (75% of target 1000)"]


def test_kpi_progress_without_usable_target():
    assert kpi_progress(10, None) is None
    assert kpi_progress(10, 0) is None
    assert kpi_progress("5", "20") == 25


def test_kpi_progress_rounds_halves_up():
    assert kpi_progress(1, 8) == 13
    assert kpi_progress(5, 8) == 63
    assert kpi_progress(750, 1000) == 75


def test_focus_and_project_are_included():
    ctx = _ctx(currentPage="/kpis", project={"id": "p1", "name": "Bakery"}, focus={"kpiName": "Margin", "kpiId": "k9"})
    prompt = build_system_prompt(ctx, [], today=TODAY)
    assert "- Project: Bakery (id p1)" in prompt
    assert "FOCUS:\n- The user is looking at KPI: Margin (id k9)" in prompt


def test_findings_and_admin_override():
    findings = [DocumentFinding(document_id="d1", name="lease.pdf", category="legal", summary="Lease until 2026")]
    prompt = build_system_prompt(None, [], findings=findings, today=TODAY, base_instructions="Be brief.")
    assert prompt.startswith("Be brief.")
    assert "RELEVANT DOCUMENTS:\n- lease.pdf [legal]: Lease until 2026" in prompt


def test_diagnosis_prompt_fills_company_and_marker():
    prompt = build_diagnosis_prompt(CompanyInfo(name="Panadería Sol", industry="Food", stage="growth"))
    assert "Name: Panadería Sol" in prompt
    assert "Stage: growth" in prompt
    assert "{{" not in prompt
    assert prompt.rstrip().endswith(f"{DIAGNOSIS_READY_MARKER}.")


def test_diagnosis_prompt_defaults_when_company_unknown():
    prompt = build_diagnosis_prompt(None, template="Company {{COMPANY_NAME}} in {{COMPANY_INDUSTRY}}")
    assert prompt.startswith("Company your company in Not specified")
