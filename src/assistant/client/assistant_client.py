from __future__ import annotations

"""HTTP client for the assistant chat endpoint.

Sends the transcript plus page context, then consumes the event stream with a
:class:`StreamReassembler`. Summary headers are read before the body so data
refresh signals can fire even if the caller ignores the text.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from ..services.prompt_builder import DIAGNOSIS_READY_MARKER
from ..services.streaming_relay import DATA_UPDATED_HEADER, UPDATED_ENTITIES_HEADER
from .signals import DIAGNOSIS_READY, ENTITIES_UPDATED, RefreshSignals
from .stream_reassembler import Conversation, StreamReassembler

logger = logging.getLogger(__name__)


class AssistantClientError(Exception):
    hint = "Something went wrong talking to the assistant."

    def __init__(self, status_code: Optional[int], message: str = "") -> None:
        super().__init__(message or self.hint)
        self.status_code = status_code
        self.message = message or self.hint


class RateLimitedError(AssistantClientError):
    hint = "Too many requests. Wait a moment before trying again."


class QuotaExhaustedError(AssistantClientError):
    hint = "The workspace is out of AI credits. Add funds to keep using the assistant."


class AssistantServerError(AssistantClientError):
    hint = "The assistant is unavailable right now. Please try again."


def _error_for(status_code: int, message: str) -> AssistantClientError:
    if status_code == 429:
        return RateLimitedError(status_code, message)
    if status_code == 402:
        return QuotaExhaustedError(status_code, message)
    return AssistantServerError(status_code, message)


@dataclass
class ChatResult:
    content: str
    data_updated: bool = False
    updated_entities: List[str] = field(default_factory=list)
    diagnosis_ready: bool = False


def parse_entities_header(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class AssistantClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        signals: Optional[RefreshSignals] = None,
        timeout: tuple[float, float] = (3.0, 120.0),
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._session = session or requests.Session()
        self.signals = signals or RefreshSignals()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def chat(
        self,
        conversation: Conversation,
        context: Optional[Dict[str, Any]] = None,
        *,
        mode: str = "contextual",
        company_info: Optional[Dict[str, Any]] = None,
        on_update: Optional[Callable[[str], None]] = None,
    ) -> ChatResult:
        """Send the conversation and stream the reply into it.

        Raises:
            RateLimitedError, QuotaExhaustedError, AssistantServerError on non-2xx.
            StreamBufferOverflow if the server never terminates a line.
        """
        payload: Dict[str, Any] = {"messages": conversation.as_payload(), "mode": mode}
        if context is not None:
            payload["context"] = context
        if company_info is not None:
            payload["companyInfo"] = company_info

        try:
            resp = self._session.post(
                f"{self.base_url}/assistant/chat",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as exc:
            raise AssistantServerError(None, str(exc)) from exc

        try:
            if not resp.ok:
                message = ""
                try:
                    message = (resp.json() or {}).get("error") or ""
                except ValueError:
                    message = ""
                raise _error_for(resp.status_code, message)

            data_updated = resp.headers.get(DATA_UPDATED_HEADER) == "1"
            entities = parse_entities_header(resp.headers.get(UPDATED_ENTITIES_HEADER))

            def _update(content: str) -> None:
                conversation.update_streaming(content)
                if on_update is not None:
                    on_update(content)

            conversation.begin_stream()
            reassembler = StreamReassembler(on_update=_update)
            for chunk in resp.iter_content(chunk_size=None):
                if chunk:
                    reassembler.feed(chunk)
                if reassembler.done:
                    break
            content = reassembler.close()
            conversation.finalize_stream(content if content else None)
        finally:
            resp.close()

        diagnosis_ready = DIAGNOSIS_READY_MARKER in content
        if data_updated:
            self.signals.emit(ENTITIES_UPDATED, entities)
        if diagnosis_ready:
            self.signals.emit(DIAGNOSIS_READY, content)
        logger.info(
            "assistant_reply_received",
            extra={"chars": len(content), "data_updated": data_updated, "entities": entities},
        )
        return ChatResult(
            content=content,
            data_updated=data_updated,
            updated_entities=entities,
            diagnosis_ready=diagnosis_ready,
        )
