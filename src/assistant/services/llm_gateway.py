from __future__ import annotations

"""Thin client for an OpenAI-compatible chat-completions gateway.

Two call shapes are needed by the assistant:

- ``complete_with_tools``: one non-streaming call used for intent extraction.
- ``open_stream``: a streaming call whose raw SSE bytes are relayed untouched.

Non-2xx answers are mapped onto :class:`UpstreamGenerationError` subclasses so
callers never have to look at status codes. No status-based retries happen
here: a 429 or 402 is reported to the caller as-is.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger("assistant.llm")

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    "xai": "https://api.x.ai/v1",
    "gateway": "https://ai.gateway.lovable.dev/v1",
    "local": "http://127.0.0.1:11434/v1",
}

PROVIDER_KEY_ENVS = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "xai": "XAI_API_KEY",
    "gateway": "LOVABLE_API_KEY",
    "local": None,
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.5-flash",
    "xai": "grok-2-latest",
    "gateway": "google/gemini-2.5-flash",
    "local": "llama3.1",
}


class GatewayNotConfigured(RuntimeError):
    pass


class UpstreamGenerationError(Exception):
    kind = "upstream_failure"

    def __init__(self, status_code: Optional[int], detail: str = "") -> None:
        super().__init__(f"{self.kind} (status={status_code}): {detail[:200]}")
        self.status_code = status_code
        self.detail = detail


class RateLimited(UpstreamGenerationError):
    kind = "rate_limited"


class QuotaExhausted(UpstreamGenerationError):
    kind = "quota_exhausted"


class UpstreamFailure(UpstreamGenerationError):
    kind = "upstream_failure"


def classify_status(status_code: int, detail: str = "") -> UpstreamGenerationError:
    if status_code == 429:
        return RateLimited(status_code, detail)
    if status_code == 402:
        return QuotaExhausted(status_code, detail)
    return UpstreamFailure(status_code, detail)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class GatewayConfig:
    provider: str
    api_key: Optional[str]
    base_url: str
    model: str
    extraction_model: str
    connect_timeout: float = 3.0
    read_timeout: float = 60.0
    temperature: float = 0.5

    @property
    def requires_api_key(self) -> bool:
        return PROVIDER_KEY_ENVS.get(self.provider) is not None

    @staticmethod
    def from_env() -> "GatewayConfig":
        provider = (os.getenv("ASSISTANT_LLM_PROVIDER") or "openai").strip().lower()
        if provider not in DEFAULT_BASE_URLS:
            raise GatewayNotConfigured(f"Unknown LLM provider: {provider}")
        key_env = PROVIDER_KEY_ENVS.get(provider)
        api_key = os.getenv("ASSISTANT_LLM_API_KEY") or (os.getenv(key_env) if key_env else None)
        base_url = os.getenv("ASSISTANT_LLM_BASE_URL") or DEFAULT_BASE_URLS[provider]
        model = os.getenv("ASSISTANT_LLM_MODEL") or DEFAULT_MODELS[provider]
        return GatewayConfig(
            provider=provider,
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            model=model,
            extraction_model=os.getenv("ASSISTANT_LLM_EXTRACTION_MODEL") or model,
            connect_timeout=_env_float("ASSISTANT_LLM_CONNECT_TIMEOUT", 3.0),
            read_timeout=_env_float("ASSISTANT_LLM_READ_TIMEOUT", 60.0),
            temperature=_env_float("ASSISTANT_LLM_TEMPERATURE", 0.5),
        )


def _build_session() -> requests.Session:
    session = requests.Session()
    # Only connection establishment is retried; status codes go back to the caller.
    retry = Retry(
        total=2,
        connect=2,
        read=0,
        status=0,
        backoff_factor=0.5,
        allowed_methods=frozenset(["POST"]),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class LLMGateway:
    def __init__(self, config: Optional[GatewayConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or GatewayConfig.from_env()
        self._session = session or _build_session()

    def _headers(self) -> Dict[str, str]:
        if self.config.requires_api_key and not self.config.api_key:
            raise GatewayNotConfigured("LLM API key not configured")
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @property
    def _timeout(self) -> tuple[float, float]:
        return (self.config.connect_timeout, self.config.read_timeout)

    def complete_with_tools(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        tool_choice: str | Dict[str, Any] = "auto",
    ) -> Dict[str, Any]:
        """Run one non-streaming completion and return the first choice's message."""
        payload = {
            "model": self.config.extraction_model,
            "messages": messages,
            "tools": tools,
            "tool_choice": tool_choice,
            "stream": False,
        }
        LOG.debug("llm_tool_call", extra={"model": self.config.extraction_model, "base_url": self.config.base_url})
        resp = self._session.post(
            f"{self.config.base_url}/chat/completions",
            json=payload,
            headers=self._headers(),
            timeout=self._timeout,
        )
        if not resp.ok:
            raise classify_status(resp.status_code, resp.text)
        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            return {}
        return choices[0].get("message") or {}

    def open_stream(self, messages: List[Dict[str, Any]]) -> requests.Response:
        """Start a streaming completion; the caller owns (and must close) the response."""
        payload = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
            "temperature": self.config.temperature,
        }
        LOG.debug(
            "llm_stream_open",
            extra={"model": self.config.model, "base_url": self.config.base_url, "timeout": self._timeout},
        )
        try:
            resp = self._session.post(
                f"{self.config.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as exc:
            raise UpstreamFailure(None, str(exc)) from exc
        if not resp.ok:
            try:
                detail = resp.text
            finally:
                resp.close()
            raise classify_status(resp.status_code, detail)
        return resp


_gateway: Optional[LLMGateway] = None


def get_gateway() -> LLMGateway:
    global _gateway
    if _gateway is None:
        _gateway = LLMGateway()
    return _gateway


def reset_gateway() -> None:
    global _gateway
    _gateway = None
