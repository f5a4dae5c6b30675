"""Pooled HTTP client for the Perplexity Chat Completions API.

One ``httpx.AsyncClient`` is shared by every request in the process. Calls
are retried on transient statuses with jittered exponential backoff, and a
single deadline bounds the whole call, stream reads included.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar, Union

import httpx

from perplexity_bridge.config.settings import Settings
from perplexity_bridge.exceptions import (
    NetworkError,
    StreamError,
    UpstreamError,
    UpstreamTimeoutError,
)
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.observability.metrics import log_upstream_attempt, log_upstream_result

logger = get_logger("transport")

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({408, 429})
JITTER_RATIO = 0.3


def is_retryable(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS or 500 <= status_code < 600


def backoff_delay(attempt: int, base_s: float, rng: random.Random | None = None) -> float:
    """Delay before retry number ``attempt + 1``: ``base * 2**attempt`` with ±30% jitter."""
    delay = base_s * (2**attempt)
    r = rng or random
    return max(0.0, delay * (1 + r.uniform(-JITTER_RATIO, JITTER_RATIO)))


class Deadline:
    """Absolute monotonic deadline shared by every await of one upstream call."""

    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        self._expires_at = time.monotonic() + timeout_s

    @property
    def remaining(self) -> float:
        return self._expires_at - time.monotonic()

    async def run(self, awaitable: Awaitable[T]) -> T:
        remaining = self.remaining
        if remaining <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise self.expired()
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise self.expired() from e

    def expired(self) -> UpstreamTimeoutError:
        return UpstreamTimeoutError(
            f"Perplexity API timeout after {int(self.timeout_s * 1000)}ms"
        )


@dataclass
class BufferedUpstream:
    """Upstream answered with a complete JSON body (``stream: false``)."""

    payload: dict
    attempts: int = 1


class StreamingUpstream:
    """Upstream answered with an open SSE body (``stream: true``)."""

    def __init__(self, response: httpx.Response, deadline: Deadline, attempts: int = 1) -> None:
        self._response = response
        self._deadline = deadline
        self.attempts = attempts

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        iterator = self._response.aiter_bytes().__aiter__()
        while True:
            try:
                chunk = await self._deadline.run(iterator.__anext__())
            except StopAsyncIteration:
                return
            except UpstreamTimeoutError:
                await self.aclose()
                raise
            except httpx.HTTPError as e:
                await self.aclose()
                raise StreamError(f"Error reading Perplexity stream: {e}") from e
            if chunk:
                yield chunk

    async def aclose(self) -> None:
        await self._response.aclose()


UpstreamResult = Union[BufferedUpstream, StreamingUpstream]


class UpstreamClient:
    """Async client for the upstream completion endpoint."""

    def __init__(
        self,
        api_key: str,
        url: str = "https://api.perplexity.ai/chat/completions",
        timeout_s: float = 15.0,
        max_attempts: int = 2,
        backoff_base_s: float = 0.3,
        max_connections: int = 10,
        keepalive_expiry_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._timeout_s = timeout_s
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_s = backoff_base_s
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
                keepalive_expiry=keepalive_expiry_s,
            ),
            # The call-wide Deadline governs; httpx only bounds connect.
            timeout=httpx.Timeout(None, connect=timeout_s),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> UpstreamClient:
        return cls(
            api_key=settings.require_api_key(),
            url=settings.perplexity_api_url,
            timeout_s=settings.request_timeout_s,
            max_attempts=settings.retry_max_attempts,
            backoff_base_s=settings.retry_backoff_base_s,
            max_connections=settings.pool_max_connections,
            keepalive_expiry_s=settings.pool_keepalive_expiry_s,
            transport=transport,
        )

    async def send(self, body: dict, timeout_s: float | None = None) -> UpstreamResult:
        """POST ``body`` upstream. Returns a buffered or streaming result by ``body["stream"]``."""
        stream = bool(body.get("stream"))
        deadline = Deadline(timeout_s if timeout_s is not None else self._timeout_s)
        start = time.monotonic()
        logger.info(
            "upstream_request",
            model=body.get("model"),
            stream=stream,
            timeout_ms=int(deadline.timeout_s * 1000),
        )

        try:
            response, attempts = await self._send_with_retry(body, deadline, start)
        except UpstreamTimeoutError:
            logger.error(
                "upstream_timeout",
                elapsed_ms=round((time.monotonic() - start) * 1000, 2),
                timeout_ms=int(deadline.timeout_s * 1000),
            )
            raise
        except NetworkError as e:
            logger.error(
                "upstream_network_error",
                elapsed_ms=round((time.monotonic() - start) * 1000, 2),
                error=str(e),
            )
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        log_upstream_result(attempts, response.status_code, elapsed_ms, stream)

        if not response.is_success:
            body_text = await self._read_error_body(response, deadline)
            raise UpstreamError(response.status_code, body_text, response.reason_phrase)

        if stream:
            return StreamingUpstream(response, deadline, attempts)

        try:
            raw = await deadline.run(response.aread())
        except httpx.HTTPError as e:
            raise StreamError(f"Error reading Perplexity response: {e}") from e
        finally:
            await response.aclose()
        try:
            payload = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise UpstreamError(response.status_code, f"Failed to parse JSON response: {e}") from e
        if not isinstance(payload, dict):
            raise UpstreamError(response.status_code, "Failed to parse JSON response: not an object")
        return BufferedUpstream(payload=payload, attempts=attempts)

    async def _send_with_retry(
        self, body: dict, deadline: Deadline, start: float
    ) -> tuple[httpx.Response, int]:
        request = self._client.build_request("POST", self._url, json=body)

        for attempt in range(self._max_attempts):
            last_attempt = attempt == self._max_attempts - 1
            try:
                response = await deadline.run(self._client.send(request, stream=True))
            except httpx.TransportError as e:
                if last_attempt:
                    raise NetworkError(f"Network error while calling Perplexity API: {e}") from e
                logger.warning(
                    "upstream_transport_error",
                    attempt=attempt + 1,
                    max_attempts=self._max_attempts,
                    error=str(e),
                )
            else:
                log_upstream_attempt(
                    attempt + 1,
                    self._max_attempts,
                    response.status_code,
                    (time.monotonic() - start) * 1000,
                )
                if response.is_success or not is_retryable(response.status_code) or last_attempt:
                    return response, attempt + 1
                await response.aclose()

            delay = backoff_delay(attempt, self._backoff_base_s)
            logger.warning(
                "upstream_retry",
                attempt=attempt + 1,
                max_attempts=self._max_attempts,
                delay_ms=round(delay * 1000, 1),
            )
            await deadline.run(self._sleep(delay))

        raise NetworkError("retry loop exhausted without a response")

    async def _read_error_body(self, response: httpx.Response, deadline: Deadline) -> str:
        try:
            raw = await deadline.run(response.aread())
            return raw.decode("utf-8", errors="replace")
        except (httpx.HTTPError, UpstreamTimeoutError):
            return "Unable to parse error response"
        finally:
            await response.aclose()

    async def close(self) -> None:
        await self._client.aclose()
