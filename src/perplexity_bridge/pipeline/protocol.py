"""JSON-RPC message handling for the MCP tool surface.

Shared by the HTTP ``/mcp`` endpoint and the stdio server. Tool failures are
reported inside the result (``isError: true``); JSON-RPC errors are reserved
for protocol problems such as unknown methods. Unknown tool names are a tool
failure unless ``reject_unknown_tools`` is set.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from perplexity_bridge.models.schemas import JsonRpcRequest
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.pipeline.tool import TOOL_NAME, tool_definition

logger = get_logger("protocol")

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601


def error_response(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def success_response(request_id: Any, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


class McpProtocol:
    def __init__(
        self,
        dispatcher: RequestDispatcher,
        server_name: str,
        server_version: str,
        force_upstream_streaming: bool = False,
        reject_unknown_tools: bool = False,
    ) -> None:
        self._dispatcher = dispatcher
        self._server_name = server_name
        self._server_version = server_version
        self._force_upstream_streaming = force_upstream_streaming
        self._reject_unknown_tools = reject_unknown_tools

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    @property
    def force_upstream_streaming(self) -> bool:
        return self._force_upstream_streaming

    def parse(self, message: Any) -> JsonRpcRequest:
        """Validate a raw message. Raises ValidationError."""
        return JsonRpcRequest.model_validate(message)

    async def handle_message(self, message: Any) -> dict | None:
        """Answer one JSON-RPC message. Returns None for notifications."""
        try:
            rpc = self.parse(message)
        except ValidationError:
            request_id = message.get("id") if isinstance(message, dict) else None
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        if "id" not in rpc.model_fields_set:
            logger.debug("notification_ignored", method=rpc.method)
            return None

        if rpc.method == "initialize":
            return success_response(
                rpc.id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": self._server_name, "version": self._server_version},
                },
            )
        if rpc.method == "ping":
            return success_response(rpc.id, {})
        if rpc.method == "tools/list":
            return success_response(
                rpc.id, {"tools": [tool_definition(self._dispatcher.profile)]}
            )
        if rpc.method == "tools/call":
            params = rpc.params or {}
            name = params.get("name")
            if self._reject_unknown_tools and name != TOOL_NAME:
                return error_response(rpc.id, METHOD_NOT_FOUND, f"Unknown tool: {name}")
            result = await self._dispatcher.call_tool(
                name,
                params.get("arguments"),
                force_upstream_streaming=self._force_upstream_streaming,
            )
            return success_response(rpc.id, result.to_wire())

        return error_response(rpc.id, METHOD_NOT_FOUND, f"Unknown method: {rpc.method}")
