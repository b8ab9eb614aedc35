"""
Server-Sent Events parsing for chat-completion streams.

Chunks arrive as the network delivers them, so a line may be split across
chunks; the incomplete tail is buffered until its newline shows up.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Union

from parley.providers.events import ProviderEvent, ReasoningDelta, StreamError, TextDelta
from parley.utilities.errors import DecodeError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class EventStreamParser:
    """
    Incremental parser for OpenAI-style ``text/event-stream`` bodies.

    Feed it chunks with ``feed()`` (or wrap a chunk iterator with ``parse()``)
    and it returns the events decoded from every complete line. Parsing stops
    for good once ``data: [DONE]`` is seen.
    """

    def __init__(self):
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._done = False

    @property
    def done(self) -> bool:
        """True once the ``[DONE]`` sentinel has been seen."""
        return self._done

    def feed(self, chunk: Union[str, bytes]) -> list[ProviderEvent]:
        """
        Consume one raw chunk.

        Args:
            chunk: Text or bytes as received from the transport

        Returns:
            Events decoded from the lines completed by this chunk
        """
        if self._done:
            return []

        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        events: list[ProviderEvent] = []

        while not self._done:
            line_end = self._buffer.find("\n")
            if line_end == -1:
                break
            line = self._buffer[:line_end]
            self._buffer = self._buffer[line_end + 1:]
            events.extend(self._parse_line(line))

        if self._done:
            self._buffer = ""
        return events

    def flush(self) -> list[ProviderEvent]:
        """Process whatever is left in the buffer once the stream has closed."""
        if self._done:
            return []

        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not remaining.strip():
            return []
        return self._parse_line(remaining)

    async def parse(
        self, chunks: AsyncIterable[Union[str, bytes]]
    ) -> AsyncIterator[ProviderEvent]:
        """
        Lazily parse an async stream of chunks.

        Stops consuming ``chunks`` as soon as ``[DONE]`` is seen. Reaching the
        end of ``chunks`` without it is not treated as an error here.
        """
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
            if self._done:
                return

        for event in self.flush():
            yield event

    def _parse_line(self, raw_line: str) -> list[ProviderEvent]:
        line = raw_line.strip()

        # Blank separators and comments like ": OPENROUTER PROCESSING"
        if not line or line.startswith(":"):
            return []

        if not line.startswith(DATA_PREFIX):
            # event:, id:, retry: fields carry nothing we use
            return []

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self._done = True
            return []

        try:
            record = decode_payload(payload)
        except DecodeError as e:
            logger.debug(f"Skipping undecodable SSE payload: {e}")
            return []

        return extract_events(record)


def decode_payload(payload: str) -> dict[str, Any]:
    """
    Decode one ``data:`` payload into a JSON object.

    Raises:
        DecodeError: If the payload is not a JSON object
    """
    try:
        record = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {payload[:80]!r}") from e

    if not isinstance(record, dict):
        raise DecodeError(f"expected a JSON object, got {type(record).__name__}")
    return record


def extract_events(record: dict[str, Any]) -> list[ProviderEvent]:
    """Pull content, reasoning and error events out of a decoded chunk."""
    error = record.get("error")
    if error:
        if isinstance(error, dict):
            message = error.get("message") or "Unknown error"
        else:
            message = str(error)
        return [StreamError(message)]

    choices = record.get("choices")
    if not isinstance(choices, list) or not choices:
        return []

    first = choices[0]
    if not isinstance(first, dict):
        return []
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return []

    events: list[ProviderEvent] = []

    reasoning = delta.get("reasoning")
    if isinstance(reasoning, str) and reasoning:
        events.append(ReasoningDelta(reasoning))

    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(TextDelta(content))

    return events
