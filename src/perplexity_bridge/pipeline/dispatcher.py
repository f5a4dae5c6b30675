"""Per-call orchestration: argument decoding, upstream call, projection.

Upstream streaming and caller streaming are decided independently. Upstream
streaming is a latency optimization; callers that want one consolidated
answer still get one. All four combinations are handled here.
"""

from __future__ import annotations

import math
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Union

from perplexity_bridge.config.settings import ToolProfile
from perplexity_bridge.exceptions import BridgeError, InputError
from perplexity_bridge.models.domain import (
    STREAM_DONE,
    AccumulatedResult,
    CompletionRequest,
    CompletionResult,
    UpstreamEvent,
)
from perplexity_bridge.models.schemas import ToolResult
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.observability.tracing import DispatchTrace
from perplexity_bridge.pipeline.tool import (
    RECENCY_FILTERS,
    REASONING_EFFORTS,
    SEARCH_CONTEXT_SIZES,
    SEARCH_MODES,
    TOOL_NAME,
)
from perplexity_bridge.projection.projector import (
    DONE_FRAME,
    StreamFrame,
    consolidated,
    error_frame,
    error_result,
    live_frames,
)
from perplexity_bridge.streaming.accumulator import accumulate, from_completion_payload
from perplexity_bridge.streaming.decoder import SSEDecoder, iter_events
from perplexity_bridge.transport.client import BufferedUpstream, StreamingUpstream, UpstreamClient

logger = get_logger("dispatcher")


@dataclass
class CompletedResponse:
    result: ToolResult


@dataclass
class StreamedResponse:
    frames: AsyncIterator[StreamFrame]


DispatchResponse = Union[CompletedResponse, StreamedResponse]


def _choice(value: Any, allowed: tuple[str, ...]) -> str | None:
    return value if isinstance(value, str) and value in allowed else None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class RequestDispatcher:
    def __init__(self, client: UpstreamClient, profile: ToolProfile) -> None:
        self._client = client
        self._profile = profile

    @property
    def profile(self) -> ToolProfile:
        return self._profile

    def parse_arguments(
        self, arguments: Any, force_upstream_streaming: bool = False
    ) -> CompletionRequest:
        """Decode tool arguments. Only ``query`` is strict; other fields fall back to defaults."""
        if not isinstance(arguments, dict):
            raise InputError("No arguments provided")
        query = arguments.get("query")
        if not isinstance(query, str):
            raise InputError(f"Invalid arguments for {TOOL_NAME}: 'query' must be a string")
        if not query.strip():
            raise InputError(f"Invalid arguments for {TOOL_NAME}: 'query' must not be empty")

        profile = self._profile
        stream = arguments.get("stream")
        if force_upstream_streaming:
            use_stream = True
        elif isinstance(stream, bool):
            use_stream = stream
        else:
            use_stream = profile.default_upstream_streaming

        max_tokens = _number(arguments.get("max_tokens"))
        temperature = _number(arguments.get("temperature"))
        reasoning_effort = None
        if profile.allow_reasoning_effort:
            reasoning_effort = _choice(arguments.get("reasoning_effort"), REASONING_EFFORTS)

        return CompletionRequest(
            query=query,
            model=_choice(arguments.get("model"), profile.models) or profile.default_model,
            use_upstream_streaming=use_stream,
            search_mode=_choice(arguments.get("search_mode"), SEARCH_MODES),
            recency_filter=_choice(arguments.get("recency_filter"), RECENCY_FILTERS),
            reasoning_effort=reasoning_effort,
            max_tokens=(
                int(_clamp(max_tokens, 1, profile.max_tokens_ceiling))
                if max_tokens is not None
                else profile.default_max_tokens
            ),
            temperature=(
                _clamp(temperature, 0.0, 2.0)
                if temperature is not None
                else profile.default_temperature
            ),
            search_context_size=_choice(
                arguments.get("search_context_size"), SEARCH_CONTEXT_SIZES
            ),
        )

    def build_upstream_body(self, request: CompletionRequest) -> dict:
        body: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.query}],
            "stream": request.use_upstream_streaming,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.search_mode:
            body["search_mode"] = request.search_mode
        if request.recency_filter:
            body["recency_filter"] = request.recency_filter
        if request.reasoning_effort:
            body["reasoning_effort"] = request.reasoning_effort
        if request.search_context_size:
            body["web_search_options"] = {"search_context_size": request.search_context_size}
        return body

    async def complete(
        self, request: CompletionRequest, trace: DispatchTrace | None = None
    ) -> CompletionResult:
        """Run one request to completion, consuming an upstream stream server-side if needed."""
        trace = trace or DispatchTrace(request.model, request.use_upstream_streaming)
        body = self.build_upstream_body(request)

        with trace.stage("upstream_request"):
            upstream = await self._client.send(body)
        trace.record_upstream(upstream.attempts)

        if isinstance(upstream, BufferedUpstream):
            state = from_completion_payload(upstream.payload)
            trace.record_result(state)
            return state.freeze()

        state = AccumulatedResult()
        decoder = SSEDecoder()
        try:
            with trace.stage("stream_consume"):
                await accumulate(iter_events(upstream.aiter_bytes(), decoder), state)
        finally:
            await upstream.aclose()
            trace.record_result(state, decoder.skipped)
        return state.freeze()

    async def handle(
        self,
        request: CompletionRequest,
        caller_streaming: bool = False,
        request_id: Any = None,
        progress_token: Any = None,
    ) -> DispatchResponse:
        if caller_streaming:
            return StreamedResponse(
                frames=self._stream(request, request_id, progress_token)
            )

        return CompletedResponse(result=await self.consolidate(request))

    async def call_tool(
        self, name: Any, arguments: Any, force_upstream_streaming: bool = False
    ) -> ToolResult:
        """Consolidated tool call that never raises; failures come back with ``isError``."""
        if name != TOOL_NAME:
            return error_result(InputError(f"Unknown tool: {name}"))
        try:
            request = self.parse_arguments(arguments, force_upstream_streaming)
        except InputError as e:
            return error_result(e)
        logger.info("tool_call", query=request.query[:50], model=request.model)
        return await self.consolidate(request)

    async def consolidate(self, request: CompletionRequest) -> ToolResult:
        """Consolidated result for ``request``; every failure becomes an ``isError`` result."""
        trace = DispatchTrace(request.model, request.use_upstream_streaming)
        try:
            result = await self.complete(request, trace)
        except Exception as e:
            _log_failure(e)
            trace.emit("error", e)
            return error_result(e)
        trace.emit("ok")
        return consolidated(result)

    async def _stream(
        self, request: CompletionRequest, request_id: Any, progress_token: Any
    ) -> AsyncIterator[StreamFrame]:
        trace = DispatchTrace(request.model, request.use_upstream_streaming, caller_stream=True)
        body = self.build_upstream_body(request)
        try:
            with trace.stage("upstream_request"):
                upstream = await self._client.send(body)
        except Exception as e:
            _log_failure(e)
            trace.emit("error", e)
            yield error_frame(request_id, e)
            yield DONE_FRAME
            return
        trace.record_upstream(upstream.attempts)

        state = AccumulatedResult()
        decoder = SSEDecoder()
        if isinstance(upstream, StreamingUpstream):
            events = iter_events(upstream.aiter_bytes(), decoder)
        else:
            events = _replay_payload(upstream.payload)

        outcome = "streamed"
        failure: Exception | None = None
        try:
            with trace.stage("stream_consume"):
                async for frame in live_frames(events, request_id, progress_token, state):
                    if frame.event == "error":
                        outcome = "error"
                    yield frame
        except Exception as e:
            _log_failure(e)
            outcome, failure = "error", e
            yield error_frame(request_id, e)
            yield DONE_FRAME
        finally:
            if isinstance(upstream, StreamingUpstream):
                await upstream.aclose()
            trace.record_result(state, decoder.skipped)
            trace.emit(outcome, failure)


def _log_failure(error: Exception) -> None:
    if isinstance(error, BridgeError):
        logger.error("dispatch_failed", error=str(error), error_type=type(error).__name__)
    else:
        logger.exception("dispatch_unexpected_error", error_type=type(error).__name__)


async def _replay_payload(payload: dict) -> AsyncIterator[UpstreamEvent]:
    """A buffered completion replayed as a single-delta event stream."""
    state = from_completion_payload(payload)
    yield UpstreamEvent(
        delta=state.text or None,
        finish_reason=state.finish_reason,
        citations=state.citations or None,
        usage=state.usage,
        id=state.id,
        model=state.model,
    )
    yield STREAM_DONE
