"""Projection of accumulated results onto the caller's wire format."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from perplexity_bridge.exceptions import BridgeError
from perplexity_bridge.models.domain import AccumulatedResult, CompletionResult, UpstreamEvent
from perplexity_bridge.models.schemas import (
    ResourceContent,
    SearchResult,
    SearchResultsResource,
    TextContent,
    ToolResult,
)
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.streaming.accumulator import apply

logger = get_logger("projector")

INTERNAL_ERROR = -32603


@dataclass(frozen=True)
class StreamFrame:
    event: str  # "progress", "result", "error", "done"
    data: str


def format_sse(frame: StreamFrame) -> str:
    return f"event: {frame.event}\ndata: {frame.data}\n\n"


def consolidated(result: CompletionResult) -> ToolResult:
    content: list[TextContent | ResourceContent] = [TextContent(text=result.text)]
    if result.citations:
        content.append(
            ResourceContent(
                resource=SearchResultsResource(
                    results=[SearchResult(**c.to_dict()) for c in result.citations]
                )
            )
        )
    return ToolResult(content=content, is_error=False)


def error_result(error: BaseException) -> ToolResult:
    return ToolResult(content=[TextContent(text=f"Error: {error}")], is_error=True)


def _dumps(message: dict) -> str:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":"))


def progress_frame(progress_token: Any, progress: int, delta: str) -> StreamFrame:
    return StreamFrame(
        event="progress",
        data=_dumps(
            {
                "jsonrpc": "2.0",
                "method": "notifications/progress",
                "params": {
                    "progressToken": progress_token,
                    "progress": progress,
                    "total": None,
                    "message": delta,
                },
            }
        ),
    )


def result_frame(request_id: Any, result: ToolResult) -> StreamFrame:
    return StreamFrame(
        event="result",
        data=_dumps({"jsonrpc": "2.0", "id": request_id, "result": result.to_wire()}),
    )


def error_frame(request_id: Any, error: BaseException) -> StreamFrame:
    return StreamFrame(
        event="error",
        data=_dumps(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": INTERNAL_ERROR, "message": str(error)},
            }
        ),
    )


DONE_FRAME = StreamFrame(event="done", data="[DONE]")


async def live_frames(
    events: AsyncIterable[UpstreamEvent],
    request_id: Any,
    progress_token: Any = None,
    state: AccumulatedResult | None = None,
) -> AsyncIterator[StreamFrame]:
    """Re-encode upstream events as caller frames.

    One progress frame per non-empty delta, then one result frame (citations
    included) and one done frame, whether or not upstream sent its sentinel.
    A ``BridgeError`` mid-stream becomes an error frame followed by done.
    """
    state = state or AccumulatedResult()
    token = progress_token if progress_token is not None else request_id
    try:
        async for event in events:
            apply(event, state)
            if event.delta:
                yield progress_frame(token, state.chars, event.delta)
        if not state.completed:
            logger.info("stream_ended_without_sentinel", chars=state.chars)
        yield result_frame(request_id, consolidated(state.freeze()))
    except BridgeError as e:
        logger.error("live_stream_failed", error=str(e), chars=state.chars)
        yield error_frame(request_id, e)
    yield DONE_FRAME
