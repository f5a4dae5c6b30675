"""Per-dispatch trace: stage timings plus the outcome of one tool call."""

from __future__ import annotations

import time
from contextlib import contextmanager
from uuid import uuid4

from perplexity_bridge.models.domain import AccumulatedResult
from perplexity_bridge.observability.logger import get_logger

logger = get_logger("tracing")


class DispatchTrace:
    """Collects what happened during one dispatch and logs it as one line."""

    def __init__(self, model: str, upstream_stream: bool, caller_stream: bool = False) -> None:
        self.trace_id = uuid4().hex
        self.model = model
        self.upstream_stream = upstream_stream
        self.caller_stream = caller_stream
        self.stages: dict[str, float] = {}
        self.attempts = 0
        self.chars = 0
        self.citations = 0
        self.skipped_frames = 0
        self.sentinel_seen = False
        self._start = time.monotonic()

    @contextmanager
    def stage(self, name: str):
        start = time.monotonic()
        try:
            yield
        finally:
            self.stages[name] = round((time.monotonic() - start) * 1000, 2)

    def record_upstream(self, attempts: int) -> None:
        self.attempts = attempts

    def record_result(self, state: AccumulatedResult, skipped_frames: int = 0) -> None:
        self.chars = state.chars
        self.citations = len(state.citations)
        self.skipped_frames = skipped_frames
        self.sentinel_seen = state.completed

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000

    def emit(self, outcome: str, error: BaseException | None = None) -> None:
        fields = {}
        if error is not None:
            fields["error_type"] = type(error).__name__
        logger.info(
            "dispatch_trace",
            trace_id=self.trace_id,
            outcome=outcome,
            model=self.model,
            upstream_stream=self.upstream_stream,
            caller_stream=self.caller_stream,
            attempts=self.attempts,
            chars=self.chars,
            citations=self.citations,
            skipped_frames=self.skipped_frames,
            sentinel_seen=self.sentinel_seen,
            stages_ms=self.stages,
            latency_ms=round(self.elapsed_ms, 2),
            **fields,
        )
