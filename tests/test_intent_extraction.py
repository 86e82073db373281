import requests

from src.assistant.domain.intents import ToolInvocation
from src.assistant.infrastructure.store import InMemoryBusinessStore
from src.assistant.services.intent_extraction import extract_intents, known_entity_catalog

from tests.utils import TENANT, FakeGateway


def test_no_tool_calls_means_no_intents():
    gw = FakeGateway()
    assert extract_intents("How are my sales doing?", ["kpi: Revenue"], gateway=gw) == []
    # Known entities are handed to the model
    assert any("kpi: Revenue" in m["content"] for m in gw.tool_requests[0])


def test_tool_calls_are_returned_unparsed():
    gw = FakeGateway(tool_calls=[("manage_kpis", {"action": "update_latest", "name": "Revenue", "value": 500})])
    result = extract_intents("Set revenue to 500", [], gateway=gw)
    assert len(result) == 1
    assert isinstance(result[0], ToolInvocation)
    assert result[0].name == "manage_kpis"
    assert '"value": 500' in result[0].arguments
    assert result[0].call_id == "call_0"


def test_transport_failure_is_swallowed():
    gw = FakeGateway(extraction_error=requests.exceptions.ConnectionError("boom"))
    assert extract_intents("Set revenue to 500", [], gateway=gw) == []


def test_blank_utterance_skips_the_model():
    gw = FakeGateway()
    assert extract_intents("   ", [], gateway=gw) == []
    assert gw.tool_requests == []


def test_known_entity_catalog_lists_each_kpi_name_once():
    from datetime import date

    store = InMemoryBusinessStore()
    for month in (1, 2):
        store.insert_kpi(TENANT, name="Revenue", value=1, period_start=date(2024, month, 1), period_end=date(2024, month, 28))
    plan = store.add_plan(TENANT, "Plan")
    obj = store.add_objective(TENANT, plan.id, "Grow")
    task = store.create_task(TENANT, obj.id, {"title": "Call supplier"})
    doc = store.add_document(TENANT, "contract.pdf", category="legal")
    store.add_document("other-tenant", "secret.pdf")

    catalog = known_entity_catalog(store, TENANT)
    assert catalog.count("kpi: Revenue") == 1
    assert f"task [{task.id}]: Call supplier (pending)" in catalog
    assert f"document [{doc.id}]: contract.pdf (legal)" in catalog
    assert not any("secret.pdf" in entry for entry in catalog)
