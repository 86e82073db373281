from __future__ import annotations

"""Tiny in-process pub/sub so UI pieces can react to assistant side effects."""

import logging
from collections import defaultdict
from threading import RLock
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

ENTITIES_UPDATED = "entities_updated"
DIAGNOSIS_READY = "diagnosis_ready"

Handler = Callable[[Any], None]


class RefreshSignals:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = RLock()

    def subscribe(self, signal: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[signal].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[signal]:
                    self._handlers[signal].remove(handler)

        return unsubscribe

    def emit(self, signal: str, payload: Any = None) -> int:
        """Call every handler; a failing handler does not stop the others."""
        with self._lock:
            handlers = list(self._handlers.get(signal, []))
        for handler in handlers:
            try:
                handler(payload)
            except Exception as exc:
                logger.warning("signal_handler_failed", extra={"signal": signal, "err": str(exc)})
        return len(handlers)
