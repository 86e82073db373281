from __future__ import annotations

from datetime import UTC, datetime
from threading import RLock
from typing import Dict, Optional

from ..domain.chat_models import PromptConfig

CONTEXTUAL_PROMPT_KEY = "contextual_system_prompt"
DIAGNOSIS_PROMPT_KEY = "chat_diagnosis_system_prompt"
PROMPT_KEYS = (CONTEXTUAL_PROMPT_KEY, DIAGNOSIS_PROMPT_KEY)


class PromptConfigStore:
    """Admin-managed overrides for the assistant's base system prompts."""

    def __init__(self) -> None:
        self._data: Dict[str, PromptConfig] = {}
        self._lock = RLock()

    def get(self, key: str) -> Optional[PromptConfig]:
        with self._lock:
            entry = self._data.get(key)
            return entry.model_copy() if entry else None

    def get_prompt(self, key: str) -> Optional[str]:
        entry = self.get(key)
        if entry and entry.prompt.strip():
            return entry.prompt
        return None

    def put(self, key: str, prompt: str, updated_by: Optional[str] = None) -> PromptConfig:
        if key not in PROMPT_KEYS:
            raise KeyError(key)
        with self._lock:
            entry = PromptConfig(
                key=key,
                prompt=prompt,
                updated_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
                updated_by=updated_by,
            )
            self._data[key] = entry
            return entry.model_copy()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


_store = PromptConfigStore()


def get_prompt_config_store() -> PromptConfigStore:
    return _store
