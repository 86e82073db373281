from datetime import date

from src.assistant.domain.operations import AuditLogEntry
from src.assistant.infrastructure import store as store_module
from src.assistant.infrastructure.store import FileBusinessStore, InMemoryBusinessStore

from tests.utils import TENANT


def test_find_latest_kpi_is_case_insensitive_and_picks_latest_period():
    s = InMemoryBusinessStore()
    s.insert_kpi(TENANT, name="Revenue", value=1, period_start=date(2024, 2, 1), period_end=date(2024, 2, 29))
    s.insert_kpi(TENANT, name="Revenue", value=2, period_start=date(2024, 1, 1), period_end=date(2024, 1, 31))
    s.insert_kpi("tenant-other", name="Revenue", value=3, period_start=date(2024, 3, 1), period_end=date(2024, 3, 31))

    latest = s.find_latest_kpi(TENANT, "  REVENUE ")
    assert latest.period_end == date(2024, 2, 29)
    assert s.find_latest_kpi(TENANT, "Margin") is None


def test_returned_rows_are_copies():
    s = InMemoryBusinessStore()
    row = s.insert_kpi(TENANT, name="Revenue", value=1, period_start=date(2024, 1, 1), period_end=date(2024, 1, 31))
    row.value = 999
    assert s.list_kpis(TENANT)[0].value == 1


def test_audit_limit_keeps_most_recent():
    s = InMemoryBusinessStore()
    for i in range(5):
        s.append_audit(AuditLogEntry(resource_type="kpi", action=str(i), user_id="u", tenant_id=TENANT, created_at="2024-01-01T00:00:00Z"))
    assert [e.action for e in s.list_audit(TENANT, limit=2)] == ["3", "4"]
    assert s.list_audit(TENANT, limit=0) == []


def test_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "store.json"
    first = FileBusinessStore(str(path))
    plan = first.add_plan(TENANT, "Plan")
    obj = first.add_objective(TENANT, plan.id, "Objective")
    task = first.create_task(TENANT, obj.id, {"title": "Persist me", "due_date": date(2024, 5, 1)})
    first.add_document(TENANT, "a.pdf", category="legal")

    second = FileBusinessStore(str(path))
    assert second.get_task(TENANT, task.id).due_date == date(2024, 5, 1)
    assert second.get_active_plan(TENANT).id == plan.id
    assert second.list_documents(TENANT)[0].category == "legal"


def test_get_store_honours_impl_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ASSISTANT_STORE_IMPL", "file")
    monkeypatch.setenv("ASSISTANT_STORE_FILE", str(tmp_path / "s.json"))
    store_module.set_store(None)
    assert isinstance(store_module.get_store(), FileBusinessStore)


def test_file_store_swaps_in_complete_file(tmp_path):
    path = tmp_path / "store.json"
    s = FileBusinessStore(str(path))
    s.add_plan(TENANT, "Plan")
    s.add_plan(TENANT, "Second plan")

    assert not (tmp_path / "store.json.tmp").exists()
    assert [p.name for p in tmp_path.iterdir()] == ["store.json"]
    assert len(FileBusinessStore(str(path))._plans) == 2
