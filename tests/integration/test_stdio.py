"""Integration tests for the newline-delimited stdio server."""

from __future__ import annotations

import io
import json

import httpx
from helpers import SEARCH_RESULTS, FakeUpstream, chunk, sse_body, sse_response

from perplexity_bridge.pipeline.protocol import McpProtocol
from perplexity_bridge.stdio.server import read_message, serve, write_message


def _stdin(*messages) -> io.BytesIO:
    lines = [m if isinstance(m, str) else json.dumps(m) for m in messages]
    return io.BytesIO(("\n".join(lines) + "\n").encode("utf-8"))


def _responses(stdout: io.BytesIO) -> dict:
    lines = stdout.getvalue().decode("utf-8").splitlines()
    return {msg["id"]: msg for msg in map(json.loads, lines)}


def test_read_message_skips_blank_and_garbage_lines():
    stream = io.BytesIO(b"\n   \nnot json\n{\"id\": 1}\n")
    assert read_message(stream) == {"id": 1}
    assert read_message(stream) is None


def test_write_message_is_one_line():
    stream = io.BytesIO()
    write_message(stream, {"jsonrpc": "2.0", "id": 1, "result": {"text": "a\nb"}})
    data = stream.getvalue()
    assert data.endswith(b"\n")
    assert data.count(b"\n") == 1


async def test_serve_session(make_dispatcher):
    body = sse_body(chunk("Stdio "), chunk("answer", search_results=SEARCH_RESULTS))
    fake = FakeUpstream(sse_response(body))
    protocol = McpProtocol(make_dispatcher(fake), server_name="stdio-test", server_version="1")

    stdin = _stdin(
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "perplexity-completions", "arguments": {"query": "q"}},
        },
        {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "nope"}},
    )
    stdout = io.BytesIO()

    await serve(protocol, stdin=stdin, stdout=stdout)

    responses = _responses(stdout)
    assert sorted(responses) == [1, 2, 3, 4]
    assert responses[1]["result"]["serverInfo"]["name"] == "stdio-test"
    assert "reasoning_effort" in responses[2]["result"]["tools"][0]["inputSchema"]["properties"]

    call = responses[3]["result"]
    assert call["content"][0] == {"type": "text", "text": "Stdio answer"}
    assert call["content"][1]["resource"]["type"] == "search_results"
    assert "https://docs.python.org" not in call["content"][0]["text"]

    assert responses[4]["result"] == {
        "content": [{"type": "text", "text": "Error: Unknown tool: nope"}],
        "isError": True,
    }


async def test_serve_empty_input(make_dispatcher):
    protocol = McpProtocol(make_dispatcher(FakeUpstream()), server_name="s", server_version="1")
    stdout = io.BytesIO()
    await serve(protocol, stdin=io.BytesIO(b""), stdout=stdout)
    assert stdout.getvalue() == b""


async def test_serve_replies_when_upstream_body_is_malformed(make_dispatcher):
    fake = FakeUpstream(lambda request: httpx.Response(200, content=b'{"id": "\xff\xfe"}'))
    protocol = McpProtocol(make_dispatcher(fake), server_name="s", server_version="1")
    stdin = _stdin(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {
                "name": "perplexity-completions",
                "arguments": {"query": "q", "stream": False},
            },
        }
    )
    stdout = io.BytesIO()

    await serve(protocol, stdin=stdin, stdout=stdout)

    assert _responses(stdout)[1]["result"]["isError"] is True
