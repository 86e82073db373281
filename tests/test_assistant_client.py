import pytest

from src.assistant.client import (
    DIAGNOSIS_READY,
    ENTITIES_UPDATED,
    AssistantClient,
    AssistantServerError,
    Conversation,
    QuotaExhaustedError,
    RateLimitedError,
)
from src.assistant.services.prompt_builder import DIAGNOSIS_READY_MARKER

from tests.utils import FakeStreamResponse, sse


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


def _client(response, token="tok"):
    session = FakeSession(response)
    return AssistantClient("http://assistant.local/", token=token, session=session), session


def test_streamed_reply_lands_in_conversation_and_fires_refresh():
    body = sse("All ", "done")
    resp = FakeStreamResponse([body[:10], body[10:]], headers={"X-Data-Updated": "1", "X-Updated-Entities": "kpi,task"})
    client, session = _client(resp)
    seen = []
    client.signals.subscribe(ENTITIES_UPDATED, seen.append)

    conv = Conversation()
    conv.append_user("Mark task 3 done and set revenue to 500")
    partials = []
    result = client.chat(conv, {"pageId": "/tasks"}, on_update=partials.append)

    url, kwargs = session.calls[0]
    assert url == "http://assistant.local/assistant/chat"
    assert kwargs["stream"] is True
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["json"]["context"] == {"pageId": "/tasks"}

    assert result.content == "All done"
    assert result.data_updated is True
    assert result.updated_entities == ["kpi", "task"]
    assert seen == [["kpi", "task"]]
    assert partials[-1] == "All done"
    assert [(m.role, m.content) for m in conv.messages] == [
        ("user", "Mark task 3 done and set revenue to 500"),
        ("assistant", "All done"),
    ]
    assert resp.closed


def test_no_refresh_when_nothing_changed():
    resp = FakeStreamResponse([sse("Hi")], headers={"X-Data-Updated": "0", "X-Updated-Entities": ""})
    client, _ = _client(resp)
    fired = []
    client.signals.subscribe(ENTITIES_UPDATED, fired.append)
    result = client.chat(Conversation(), None)
    assert result.data_updated is False and result.updated_entities == []
    assert fired == []


def test_diagnosis_marker_emits_its_own_signal():
    resp = FakeStreamResponse([sse(f"Shall I generate it? {DIAGNOSIS_READY_MARKER}")])
    client, session = _client(resp, token=None)
    ready = []
    client.signals.subscribe(DIAGNOSIS_READY, ready.append)
    result = client.chat(Conversation(), None, mode="diagnosis", company_info={"name": "Sol"})
    assert result.diagnosis_ready is True
    assert len(ready) == 1
    sent = session.calls[0][1]
    assert sent["json"]["companyInfo"] == {"name": "Sol"}
    assert "Authorization" not in sent["headers"]


@pytest.mark.parametrize(
    "status, error_type",
    [(429, RateLimitedError), (402, QuotaExhaustedError), (500, AssistantServerError), (502, AssistantServerError)],
)
def test_error_statuses_map_to_typed_errors(status, error_type):
    resp = FakeStreamResponse([], status_code=status)
    resp._json = {"error": "server says no"}
    client, _ = _client(resp)
    with pytest.raises(error_type) as exc:
        client.chat(Conversation(), None)
    assert exc.value.status_code == status
    assert exc.value.message == "server says no"
    assert exc.value.hint
    assert resp.closed


def test_failing_signal_handler_does_not_break_the_reply():
    resp = FakeStreamResponse([sse("ok")], headers={"X-Data-Updated": "1", "X-Updated-Entities": "document"})
    client, _ = _client(resp)

    def broken(_payload):
        raise RuntimeError("ui gone")

    client.signals.subscribe(ENTITIES_UPDATED, broken)
    assert client.chat(Conversation(), None).content == "ok"
