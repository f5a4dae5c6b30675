"""Incremental decoder for the upstream SSE byte stream.

Bytes arrive in arbitrary chunks. Complete lines are decoded into
``UpstreamEvent`` records; the trailing partial line is held until the next
chunk. Every input byte is scanned once.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator

from perplexity_bridge.exceptions import DecodeError
from perplexity_bridge.models.domain import STREAM_DONE, Citation, UpstreamEvent
from perplexity_bridge.observability.logger import get_logger

logger = get_logger("decoder")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def parse_citations(payload: dict) -> tuple[Citation, ...] | None:
    """Citations carried by one upstream object, or None if it carries none.

    ``search_results`` (objects) wins over the legacy ``citations`` (URL strings).
    Entries without a string ``url`` are dropped.
    """
    raw = payload.get("search_results")
    if isinstance(raw, list):
        citations = []
        for item in raw:
            if not isinstance(item, dict) or not isinstance(item.get("url"), str):
                continue
            title = item.get("title")
            snippet = item.get("snippet")
            citations.append(
                Citation(
                    title=title if isinstance(title, str) and title else item["url"],
                    url=item["url"],
                    snippet=snippet if isinstance(snippet, str) else None,
                )
            )
        return tuple(citations)

    raw = payload.get("citations")
    if isinstance(raw, list):
        return tuple(Citation(title=url, url=url) for url in raw if isinstance(url, str))
    return None


def event_from_payload(payload: dict) -> UpstreamEvent:
    """Project one decoded chunk object onto an ``UpstreamEvent``."""
    delta = None
    finish_reason = None
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        delta_obj = choice.get("delta")
        if isinstance(delta_obj, dict) and isinstance(delta_obj.get("content"), str):
            delta = delta_obj["content"]
        if isinstance(choice.get("finish_reason"), str):
            finish_reason = choice["finish_reason"]

    usage = payload.get("usage")
    ident = payload.get("id")
    model = payload.get("model")
    return UpstreamEvent(
        delta=delta,
        finish_reason=finish_reason,
        citations=parse_citations(payload),
        usage=usage if isinstance(usage, dict) else None,
        id=ident if isinstance(ident, str) else None,
        model=model if isinstance(model, str) else None,
    )


def decode_frame(data: str) -> UpstreamEvent:
    """Decode the payload of one ``data:`` line. Raises DecodeError."""
    if data == DONE_SENTINEL:
        return STREAM_DONE
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"malformed frame: {type(e).__name__}: {e}") from e
    if not isinstance(payload, dict):
        raise DecodeError(f"frame is not an object: {type(payload).__name__}")
    return event_from_payload(payload)


class SSEDecoder:
    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending: list[str] = []
        self.frames = 0
        self.skipped = 0

    def feed(self, chunk: bytes) -> list[UpstreamEvent]:
        return self._consume(self._utf8.decode(chunk))

    def flush(self) -> list[UpstreamEvent]:
        """End of input: decode whatever is left, including an unterminated last line."""
        events = self._consume(self._utf8.decode(b"", final=True))
        if self._pending:
            line = "".join(self._pending)
            self._pending.clear()
            event = self._decode_line(line)
            if event is not None:
                events.append(event)
        return events

    def _consume(self, text: str) -> list[UpstreamEvent]:
        if not text:
            return []
        if "\n" not in text:
            self._pending.append(text)
            return []

        lines = text.split("\n")
        self._pending.append(lines[0])
        first = "".join(self._pending)
        self._pending = [lines[-1]] if lines[-1] else []

        events = []
        for line in [first, *lines[1:-1]]:
            event = self._decode_line(line)
            if event is not None:
                events.append(event)
        return events

    def _decode_line(self, line: str) -> UpstreamEvent | None:
        line = line.rstrip("\r")
        if not line.strip() or not line.startswith(DATA_PREFIX):
            return None
        data = line[len(DATA_PREFIX):]
        if data.startswith(" "):
            data = data[1:]
        try:
            event = decode_frame(data.strip())
        except DecodeError as e:
            self.skipped += 1
            logger.debug("frame_skipped", error=str(e), frame=data[:100])
            return None
        self.frames += 1
        return event


async def iter_events(
    source: AsyncIterable[bytes], decoder: SSEDecoder | None = None
) -> AsyncIterator[UpstreamEvent]:
    """Lazily decode ``source``. Stops after yielding ``STREAM_DONE`` or at end of input."""
    decoder = decoder or SSEDecoder()
    async for chunk in source:
        for event in decoder.feed(chunk):
            yield event
            if event.done:
                return
    for event in decoder.flush():
        yield event
        if event.done:
            return
