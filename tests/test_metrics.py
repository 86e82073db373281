from fastapi.testclient import TestClient

from src.assistant.api.main import app
from src.assistant.observability.metrics import sanitize_path


client = TestClient(app)


def test_metrics_endpoint_exposes_assistant_series():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text

    assert "# HELP assistant_request_latency_seconds" in body
    assert "# TYPE assistant_request_latency_seconds histogram" in body
    assert "assistant_intents_total" in body or "# HELP assistant_intents" in body
    assert "assistant_extraction_failures_total" in body


def test_sanitize_path_limits_cardinality():
    assert sanitize_path("") == "/"
    assert sanitize_path("/") == "/"
    assert sanitize_path("/assistant/prompts/contextual_system_prompt") == "/assistant/prompts"
    assert sanitize_path("/health?x=1") == "/health"
