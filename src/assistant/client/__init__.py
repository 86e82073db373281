from .assistant_client import (
    AssistantClient,
    AssistantClientError,
    AssistantServerError,
    ChatResult,
    QuotaExhaustedError,
    RateLimitedError,
)
from .signals import DIAGNOSIS_READY, ENTITIES_UPDATED, RefreshSignals
from .stream_reassembler import Conversation, StreamBufferOverflow, StreamReassembler

__all__ = [
    "AssistantClient",
    "AssistantClientError",
    "AssistantServerError",
    "ChatResult",
    "QuotaExhaustedError",
    "RateLimitedError",
    "RefreshSignals",
    "ENTITIES_UPDATED",
    "DIAGNOSIS_READY",
    "Conversation",
    "StreamBufferOverflow",
    "StreamReassembler",
]
