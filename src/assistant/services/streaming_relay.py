from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from ..domain.chat_models import Utterance
from ..domain.operations import AppliedOperation, updated_entity_types
from .llm_gateway import LLMGateway, get_gateway

logger = logging.getLogger(__name__)

DATA_UPDATED_HEADER = "X-Data-Updated"
UPDATED_ENTITIES_HEADER = "X-Updated-Entities"

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def relay_headers(applied_operations: Sequence[AppliedOperation]) -> Dict[str, str]:
    """Summary headers so callers can refresh without parsing the stream."""
    return {
        DATA_UPDATED_HEADER: "1" if applied_operations else "0",
        UPDATED_ENTITIES_HEADER: ",".join(updated_entity_types(list(applied_operations))),
    }


def build_generation_messages(system_prompt: str, conversation: Sequence[Utterance]) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": u.role, "content": u.content} for u in conversation)
    return messages


def _iter_upstream(resp: requests.Response) -> Iterator[bytes]:
    """Yield upstream bytes as received; closing the generator closes upstream."""
    sent = 0
    try:
        for chunk in resp.iter_content(chunk_size=None):
            if chunk:
                sent += len(chunk)
                yield chunk
    except requests.exceptions.RequestException as exc:
        # Headers are already out; the stream simply ends early
        logger.warning("relay_upstream_interrupted", extra={"bytes": sent, "err": str(exc)})
    finally:
        resp.close()
        logger.debug("relay_closed", extra={"bytes": sent})


@dataclass
class RelayResult:
    body: Iterator[bytes]
    headers: Dict[str, str] = field(default_factory=dict)
    media_type: str = "text/event-stream"


def open_relay(
    system_prompt: str,
    conversation: Sequence[Utterance],
    applied_operations: Sequence[AppliedOperation],
    gateway: Optional[LLMGateway] = None,
) -> RelayResult:
    """Start the generation call and hand back a pass-through body.

    Raises:
        UpstreamGenerationError for non-2xx upstream answers (never retried).
        GatewayNotConfigured when no credentials are available.
    """
    gw = gateway or get_gateway()
    resp = gw.open_stream(build_generation_messages(system_prompt, conversation))
    headers = dict(STREAM_HEADERS)
    headers.update(relay_headers(applied_operations))
    return RelayResult(body=_iter_upstream(resp), headers=headers)
