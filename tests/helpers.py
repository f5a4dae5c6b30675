"""Fake upstream responses and SSE body builders shared by the tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx

SEARCH_RESULTS = [
    {"title": "Python docs", "url": "https://docs.python.org", "snippet": "Official docs"},
    {"title": "PEP 8", "url": "https://peps.python.org/pep-0008/"},
]


def chunk(
    delta: str | None = None,
    search_results: list | None = None,
    finish_reason: str | None = None,
    usage: dict | None = None,
    chunk_id: str = "cmpl-1",
    model: str = "sonar",
) -> dict:
    choice: dict = {"index": 0, "delta": {}, "finish_reason": finish_reason}
    if delta is not None:
        choice["delta"] = {"role": "assistant", "content": delta}
    data: dict = {"id": chunk_id, "model": model, "choices": [choice]}
    if search_results is not None:
        data["search_results"] = search_results
    if usage is not None:
        data["usage"] = usage
    return data


def sse_body(*chunks: dict | str, done: bool = True) -> bytes:
    """Render chunk dicts (or raw frame payloads) as an upstream SSE body."""
    lines = []
    for c in chunks:
        payload = c if isinstance(c, str) else json.dumps(c)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def completion_payload(content: str, search_results: list | None = None) -> dict:
    data: dict = {
        "id": "cmpl-buffered",
        "model": "sonar",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8},
    }
    if search_results is not None:
        data["search_results"] = search_results
    return data


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given chunks, optionally stalling afterwards."""

    def __init__(self, chunks: list[bytes], stall_after: bool = False) -> None:
        self._chunks = chunks
        self._stall_after = stall_after

    async def __aiter__(self):
        for c in self._chunks:
            yield c
        if self._stall_after:
            await asyncio.sleep(30)

    async def aclose(self) -> None:
        pass


class FakeUpstream:
    """Scripted upstream: each call pops the next response factory."""

    def __init__(self, *responses: httpx.Response | Callable) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if callable(item):
            item = item(request)
            if asyncio.iscoroutine(item):
                item = await item
        return item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def sse_response(body: bytes) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=body
    )


def json_response(payload: dict, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, json=payload)


def status_response(status_code: int, text: str = "") -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, text=text)
