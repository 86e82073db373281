from __future__ import annotations

"""Incremental reassembly of a streamed assistant reply.

The server relays OpenAI-style server-sent events as raw bytes. Network chunks
carry no framing guarantees: a chunk may end in the middle of a line, a JSON
payload or even a multi-byte UTF-8 sequence. :class:`StreamReassembler` keeps
a text buffer across chunks and only consumes complete lines.

Per line:

- strip one trailing ``\\r``
- skip blank lines and ``:`` comments (keep-alives)
- skip anything not prefixed by ``data: ``
- ``data: [DONE]`` ends the stream
- otherwise parse JSON and append ``choices[0].delta.content``

A ``data:`` line that does not parse as JSON is assumed to be truncated: it is
put back in front of the buffer and processing waits for more bytes.
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
DEFAULT_MAX_BUFFER_CHARS = 1_000_000


class StreamBufferOverflow(Exception):
    """The pending (unterminated) text grew past the configured bound."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"stream buffer holds {size} chars, limit is {limit}")
        self.size = size
        self.limit = limit


def extract_delta(payload: Any) -> str:
    """``choices[0].delta.content`` or empty string for any other shape."""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class StreamReassembler:
    def __init__(
        self,
        on_update: Optional[Callable[[str], None]] = None,
        on_finish: Optional[Callable[[str], None]] = None,
        max_buffer_chars: int = DEFAULT_MAX_BUFFER_CHARS,
    ) -> None:
        self._on_update = on_update
        self._on_finish = on_finish
        self._max_buffer_chars = max_buffer_chars
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._content = ""
        self._done = False
        self._finished = False

    @property
    def content(self) -> str:
        return self._content

    @property
    def done(self) -> bool:
        return self._done

    @property
    def message(self) -> "ReassembledMessage":
        return ReassembledMessage(role="assistant", content=self._content)

    def feed(self, chunk: bytes) -> None:
        """Consume one network chunk. Chunks after ``[DONE]`` are ignored."""
        if self._done:
            return
        self._buffer += self._decoder.decode(chunk)
        self._drain()
        if len(self._buffer) > self._max_buffer_chars:
            raise StreamBufferOverflow(len(self._buffer), self._max_buffer_chars)

    def close(self) -> str:
        """End of body: flush what is left and report the final content."""
        if not self._done:
            self._buffer += self._decoder.decode(b"", final=True)
            self._flush_remaining()
        self._done = True
        if not self._finished:
            self._finished = True
            if self._on_finish is not None:
                self._on_finish(self._content)
        return self._content

    def _drain(self) -> None:
        while not self._done:
            newline = self._buffer.find("\n")
            if newline < 0:
                return
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            if not self._handle_line(line):
                # Incomplete JSON: put it back and wait for the next chunk
                self._buffer = line + "\n" + self._buffer
                return

    def _handle_line(self, line: str) -> bool:
        """Return False when the line must be retried once more bytes arrive."""
        if line.endswith("\r"):
            line = line[:-1]
        if not line or line.startswith(":"):
            return True
        if not line.startswith(DATA_PREFIX):
            return True
        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self._done = True
            self._buffer = ""
            return True
        try:
            payload = json.loads(data)
        except ValueError:
            return False
        self._append(extract_delta(payload))
        return True

    def _flush_remaining(self) -> None:
        # Whatever is left has no more bytes coming; unparseable lines are dropped
        remaining, self._buffer = self._buffer, ""
        for raw in remaining.split("\n"):
            line = raw[:-1] if raw.endswith("\r") else raw
            if not line or line.startswith(":") or not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :].strip()
            if data == DONE_SENTINEL:
                break
            try:
                payload = json.loads(data)
            except ValueError:
                logger.debug("stream_flush_skipped_line", extra={"chars": len(line)})
                continue
            self._append(extract_delta(payload))

    def _append(self, delta: str) -> None:
        if not delta:
            return
        self._content += delta
        if self._on_update is not None:
            self._on_update(self._content)


@dataclass
class ReassembledMessage:
    role: str
    content: str


@dataclass
class Conversation:
    """Client-side transcript with a single in-flight assistant entry.

    While a reply streams, every update replaces the last assistant entry
    instead of appending a new one.
    """

    messages: List[ReassembledMessage] = field(default_factory=list)
    _streaming: bool = False

    def append_user(self, content: str) -> None:
        self.messages.append(ReassembledMessage(role="user", content=content))

    def begin_stream(self) -> None:
        self._streaming = False

    def update_streaming(self, content: str) -> None:
        if self._streaming and self.messages and self.messages[-1].role == "assistant":
            self.messages[-1] = ReassembledMessage(role="assistant", content=content)
            return
        self.messages.append(ReassembledMessage(role="assistant", content=content))
        self._streaming = True

    def finalize_stream(self, content: Optional[str] = None) -> None:
        if content is not None:
            self.update_streaming(content)
        self._streaming = False

    def as_payload(self) -> List[dict]:
        return [{"role": m.role, "content": m.content} for m in self.messages]
