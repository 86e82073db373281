import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolated_assistant_state(monkeypatch):
    """Fresh store, prompt overrides, rate limits and gateway for every test."""
    from src.assistant.infrastructure import events
    from src.assistant.infrastructure.config_store import get_prompt_config_store
    from src.assistant.infrastructure.store import InMemoryBusinessStore, set_store
    from src.assistant.security.rate_limit import reset_rate_limits
    from src.assistant.services import document_analysis
    from src.assistant.services.llm_gateway import reset_gateway

    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("DOCUMENT_ANALYSIS_URL", raising=False)
    monkeypatch.delenv("ASSISTANT_PUBLIC_MODE", raising=False)
    monkeypatch.delenv("ASSISTANT_LOCALE", raising=False)
    monkeypatch.setattr(events, "_publisher", None)

    set_store(InMemoryBusinessStore())
    get_prompt_config_store().clear()
    reset_rate_limits()
    reset_gateway()
    document_analysis._queued.drain()
    yield
    set_store(None)
    reset_gateway()
