"""Tests for JSON-RPC message handling."""

from __future__ import annotations

from helpers import SEARCH_RESULTS, FakeUpstream, chunk, sse_body, sse_response

from perplexity_bridge.pipeline.protocol import (
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    McpProtocol,
)


def _protocol(dispatcher, **kwargs) -> McpProtocol:
    return McpProtocol(dispatcher, server_name="test-server", server_version="9.9", **kwargs)


async def test_initialize(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream()))
    response = await protocol.handle_message({"jsonrpc": "2.0", "id": 1, "method": "initialize"})
    assert response == {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "test-server", "version": "9.9"},
        },
    }


async def test_tools_list(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream(), profile="http"))
    response = await protocol.handle_message({"jsonrpc": "2.0", "id": "a", "method": "tools/list"})
    tools = response["result"]["tools"]
    assert [t["name"] for t in tools] == ["perplexity-completions"]


async def test_notification_gets_no_response(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream()))
    response = await protocol.handle_message(
        {"jsonrpc": "2.0", "method": "notifications/initialized"}
    )
    assert response is None


async def test_null_id_is_still_a_request(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream()))
    response = await protocol.handle_message({"jsonrpc": "2.0", "id": None, "method": "ping"})
    assert response == {"jsonrpc": "2.0", "id": None, "result": {}}


async def test_unknown_method(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream()))
    response = await protocol.handle_message({"jsonrpc": "2.0", "id": 2, "method": "resources/list"})
    assert response["error"]["code"] == METHOD_NOT_FOUND


async def test_invalid_request(make_dispatcher):
    protocol = _protocol(make_dispatcher(FakeUpstream()))
    response = await protocol.handle_message({"jsonrpc": "2.0", "id": 4})
    assert response["id"] == 4
    assert response["error"]["code"] == INVALID_REQUEST

    response = await protocol.handle_message(["not", "an", "object"])
    assert response["id"] is None
    assert response["error"]["code"] == INVALID_REQUEST


async def test_tools_call_returns_consolidated_result(make_dispatcher):
    body = sse_body(chunk("Hello"), chunk(" world", search_results=SEARCH_RESULTS))
    fake = FakeUpstream(sse_response(body))
    protocol = _protocol(make_dispatcher(fake))

    response = await protocol.handle_message(
        {
            "jsonrpc": "2.0",
            "id": 5,
            "method": "tools/call",
            "params": {"name": "perplexity-completions", "arguments": {"query": "hi"}},
        }
    )

    result = response["result"]
    assert result["isError"] is False
    assert result["content"][0] == {"type": "text", "text": "Hello world"}
    assert result["content"][1]["type"] == "resource"


async def test_tools_call_unknown_tool_is_tool_result(make_dispatcher):
    fake = FakeUpstream()
    protocol = _protocol(make_dispatcher(fake))
    response = await protocol.handle_message(
        {"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": {"name": "search"}}
    )
    assert response["result"] == {
        "content": [{"type": "text", "text": "Error: Unknown tool: search"}],
        "isError": True,
    }
    assert fake.calls == 0


async def test_tools_call_unknown_tool_rejected_when_configured(make_dispatcher):
    fake = FakeUpstream()
    protocol = _protocol(make_dispatcher(fake), reject_unknown_tools=True)
    response = await protocol.handle_message(
        {"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": {"name": "search"}}
    )
    assert response["error"] == {"code": METHOD_NOT_FOUND, "message": "Unknown tool: search"}
    assert fake.calls == 0


async def test_tools_call_input_error_is_tool_result(make_dispatcher):
    fake = FakeUpstream()
    protocol = _protocol(make_dispatcher(fake))
    response = await protocol.handle_message(
        {
            "jsonrpc": "2.0",
            "id": 6,
            "method": "tools/call",
            "params": {"name": "perplexity-completions", "arguments": {}},
        }
    )
    assert "error" not in response
    assert response["result"]["isError"] is True
    assert fake.calls == 0


async def test_force_upstream_streaming(make_dispatcher):
    fake = FakeUpstream(sse_response(sse_body(chunk("streamed"))))
    protocol = _protocol(make_dispatcher(fake, profile="http"), force_upstream_streaming=True)
    await protocol.handle_message(
        {
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "perplexity-completions", "arguments": {"query": "q"}},
        }
    )
    assert fake.bodies()[0]["stream"] is True
