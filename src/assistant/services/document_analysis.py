from __future__ import annotations

"""Document analysis collaborator.

The assistant only *triggers* analysis; extraction, summarisation and KPI
suggestion happen in a separate service. A trigger succeeds once that service
acknowledges the request, without waiting for the analysis to finish.
"""

import logging
import os
from collections import deque
from threading import RLock
from typing import Deque, List, Optional, Protocol, Tuple

import requests

logger = logging.getLogger(__name__)


class AnalysisTriggerError(Exception):
    pass


class DocumentAnalyzer(Protocol):
    def trigger(self, tenant_id: str, document_id: str) -> None: ...


class HttpDocumentAnalyzer:
    """POSTs ``{"documentId": ...}`` to the analysis endpoint."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: Tuple[float, float] = (3.0, 10.0)) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self._session = requests.Session()

    def trigger(self, tenant_id: str, document_id: str) -> None:
        headers = {"Content-Type": "application/json", "X-Tenant-Id": tenant_id}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self._session.post(self.url, json={"documentId": document_id}, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise AnalysisTriggerError(f"analysis service unreachable: {exc}") from exc
        if not resp.ok:
            raise AnalysisTriggerError(f"analysis service answered {resp.status_code}")
        logger.info("document_analysis_triggered", extra={"document_id": document_id, "status": resp.status_code})


class QueuedDocumentAnalyzer:
    """Keeps triggered ids in memory for a worker (or a test) to drain."""

    def __init__(self) -> None:
        self._pending: Deque[Tuple[str, str]] = deque()
        self._lock = RLock()

    def trigger(self, tenant_id: str, document_id: str) -> None:
        with self._lock:
            self._pending.append((tenant_id, document_id))
        logger.info("document_analysis_queued", extra={"document_id": document_id})

    def drain(self) -> List[Tuple[str, str]]:
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
            return items


_queued = QueuedDocumentAnalyzer()


def get_document_analyzer() -> DocumentAnalyzer:
    url = os.getenv("DOCUMENT_ANALYSIS_URL")
    if url:
        return HttpDocumentAnalyzer(url, token=os.getenv("DOCUMENT_ANALYSIS_TOKEN"))
    return _queued
