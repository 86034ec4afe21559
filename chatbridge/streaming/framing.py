"""
Stream framing decoders.

Upstream chat streams are newline-terminated records carried over an HTTP
body whose read boundaries are arbitrary (mid-line, even mid-character).

  LineDecoder       → bytes chunks → complete text lines
  JsonLinesFraming  → every non-empty line is a JSON object (Ollama /api/chat)
  SSEFraming        → "data: {...}" lines, "data: [DONE]" ends the stream

A line that does not parse is logged and dropped; the stream keeps going.
"""
from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterator, Optional

logger = logging.getLogger(__name__)

SSE_PREFIX = "data: "
DONE_TOKEN = "[DONE]"


class LineDecoder:
    """
    Incremental splitter. Keeps incomplete UTF-8 sequences and the trailing
    partial line between calls, so a record split across two reads is only
    emitted once it is complete.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def decode(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left once the upstream body is exhausted."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        tail = tail.rstrip("\r")
        return [tail] if tail else []


class JsonLinesFraming:
    """Raw JSON per line, no prefix."""

    def __init__(self, source: str = "upstream"):
        self.source = source
        self.done = False
        self.skipped = 0
        self._lines = LineDecoder()

    def extract(self, line: str) -> Optional[str]:
        """Return the JSON text carried by `line`, or None if it carries nothing."""
        line = line.strip()
        return line or None

    def parse(self, line: str) -> Optional[dict[str, Any]]:
        data = self.extract(line)
        if data is None:
            return None
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as exc:
            self._skip(line, exc)
            return None
        if not isinstance(payload, dict):
            self._skip(line, "not a JSON object")
            return None
        return payload

    def feed(self, chunk: bytes) -> Iterator[dict[str, Any]]:
        for line in self._lines.decode(chunk):
            if self.done:
                return
            payload = self.parse(line)
            if payload is not None:
                yield payload

    def close(self) -> Iterator[dict[str, Any]]:
        for line in self._lines.flush():
            if self.done:
                return
            payload = self.parse(line)
            if payload is not None:
                yield payload

    async def iter_payloads(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
        """
        Pull chunks only as fast as payloads are consumed. Stops reading as
        soon as the framing reports completion.
        """
        async for chunk in chunks:
            for payload in self.feed(chunk):
                yield payload
            if self.done:
                return
        for payload in self.close():
            yield payload

    def _skip(self, line: str, reason: Any) -> None:
        self.skipped += 1
        logger.warning("Skipping malformed %s line (%s): %.200s", self.source, reason, line)


class SSEFraming(JsonLinesFraming):
    """`data: ` prefixed JSON; `data: [DONE]` marks completion."""

    def extract(self, line: str) -> Optional[str]:
        line = line.strip()
        if not line.startswith(SSE_PREFIX):
            # event:, id:, comments and keep-alive blanks carry no payload
            return None
        data = line[len(SSE_PREFIX):].strip()
        if data == DONE_TOKEN:
            self.done = True
            return None
        return data or None
