from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from src.assistant.security.auth import Principal, create_access_token

TENANT = "tenant-acme"


def principal(user_id: str = "user-1", tenant_id: str = TENANT, roles: Sequence[str] = ("contributor",)) -> Principal:
    return Principal(user_id=user_id, tenant_id=tenant_id, name="Test User", roles=list(roles))


def auth_headers(user_id: str = "user-1", tenant_id: str = TENANT, roles: Sequence[str] = ("contributor",)) -> Dict[str, str]:
    token = create_access_token(principal(user_id, tenant_id, roles))
    return {"Authorization": f"Bearer {token}"}


def sse(*deltas: str, done: bool = True) -> bytes:
    """Encode text deltas the way an OpenAI-compatible gateway streams them."""
    lines = [": keep-alive\n"]
    for delta in deltas:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}) + "\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


class FakeStreamResponse:
    def __init__(self, chunks: Iterable[bytes], status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> None:
        self._chunks = list(chunks)
        self.status_code = status_code
        self.headers = headers or {}
        self.closed = False
        self._json: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            yield chunk

    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json

    def close(self) -> None:
        self.closed = True


ToolCall = Tuple[str, Union[str, Dict[str, Any]]]


class FakeGateway:
    """Stands in for LLMGateway: scripted tool calls and a scripted stream."""

    def __init__(
        self,
        tool_calls: Optional[List[ToolCall]] = None,
        chunks: Optional[List[bytes]] = None,
        extraction_error: Optional[Exception] = None,
        stream_error: Optional[Exception] = None,
    ) -> None:
        self.tool_calls = tool_calls or []
        self.chunks = chunks if chunks is not None else [sse("Hello")]
        self.extraction_error = extraction_error
        self.stream_error = stream_error
        self.tool_requests: List[List[Dict[str, Any]]] = []
        self.stream_requests: List[List[Dict[str, Any]]] = []
        self.responses: List[FakeStreamResponse] = []

    def complete_with_tools(self, messages, tools, tool_choice="auto"):
        self.tool_requests.append(messages)
        if self.extraction_error is not None:
            raise self.extraction_error
        calls = []
        for i, (name, args) in enumerate(self.tool_calls):
            calls.append(
                {
                    "id": f"call_{i}",
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(args) if isinstance(args, dict) else args},
                }
            )
        return {"role": "assistant", "content": None, "tool_calls": calls}

    def open_stream(self, messages):
        self.stream_requests.append(messages)
        if self.stream_error is not None:
            raise self.stream_error
        resp = FakeStreamResponse(self.chunks)
        self.responses.append(resp)
        return resp
