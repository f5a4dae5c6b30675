"""Metric recording helpers for upstream calls."""

from __future__ import annotations

from perplexity_bridge.observability.logger import get_logger

logger = get_logger("metrics")


def log_upstream_attempt(attempt: int, max_attempts: int, status: int, elapsed_ms: float) -> None:
    logger.info(
        "upstream_attempt",
        attempt=attempt,
        max_attempts=max_attempts,
        status=status,
        elapsed_ms=round(elapsed_ms, 2),
    )


def log_upstream_result(attempts: int, status: int | None, elapsed_ms: float, stream: bool) -> None:
    logger.info(
        "upstream_response",
        attempts=attempts,
        status=status,
        elapsed_ms=round(elapsed_ms, 2),
        stream=stream,
    )
