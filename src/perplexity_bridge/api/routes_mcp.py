"""JSON-RPC MCP endpoint, with optional live SSE re-streaming of tool calls."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from perplexity_bridge.api.auth import verify_credentials
from perplexity_bridge.api.dependencies import get_protocol
from perplexity_bridge.exceptions import InputError
from perplexity_bridge.models.schemas import JsonRpcRequest
from perplexity_bridge.pipeline.dispatcher import StreamedResponse
from perplexity_bridge.pipeline.protocol import (
    INVALID_REQUEST,
    PARSE_ERROR,
    McpProtocol,
    error_response,
    success_response,
)
from perplexity_bridge.pipeline.tool import TOOL_NAME
from perplexity_bridge.projection.projector import error_result, format_sse

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _progress_token(rpc: JsonRpcRequest):
    meta = (rpc.params or {}).get("_meta")
    if isinstance(meta, dict):
        return meta.get("progressToken")
    return None


def wants_live_stream(request: Request, rpc: JsonRpcRequest) -> bool:
    """Live re-stream only for tool calls that asked for progress over an SSE-capable client."""
    if rpc.method != "tools/call" or "id" not in rpc.model_fields_set:
        return False
    if (rpc.params or {}).get("name") != TOOL_NAME:
        return False
    accept = request.headers.get("accept", "")
    return "text/event-stream" in accept and _progress_token(rpc) is not None


@router.post("/mcp")
async def mcp(
    request: Request,
    protocol: McpProtocol = Depends(get_protocol),
    _user: str = Depends(verify_credentials),
):
    try:
        message = json.loads(await request.body())
    except (ValueError, UnicodeDecodeError):
        return JSONResponse(
            status_code=400, content=error_response(None, PARSE_ERROR, "Parse error")
        )

    try:
        rpc = protocol.parse(message)
    except ValidationError:
        return JSONResponse(
            status_code=400, content=error_response(None, INVALID_REQUEST, "Invalid Request")
        )

    if wants_live_stream(request, rpc):
        return await _live_tool_call(protocol, rpc)

    response = await protocol.handle_message(message)
    if response is None:
        return Response(status_code=202)
    return JSONResponse(content=response)


async def _live_tool_call(protocol: McpProtocol, rpc: JsonRpcRequest):
    dispatcher = protocol.dispatcher
    params = rpc.params or {}
    try:
        completion_request = dispatcher.parse_arguments(
            params.get("arguments"),
            force_upstream_streaming=protocol.force_upstream_streaming,
        )
    except InputError as e:
        return JSONResponse(content=success_response(rpc.id, error_result(e).to_wire()))

    dispatched = await dispatcher.handle(
        completion_request,
        caller_streaming=True,
        request_id=rpc.id,
        progress_token=_progress_token(rpc),
    )
    if not isinstance(dispatched, StreamedResponse):
        return JSONResponse(content=success_response(rpc.id, dispatched.result.to_wire()))

    async def event_generator():
        async for frame in dispatched.frames:
            yield format_sse(frame)

    return StreamingResponse(
        event_generator(), media_type="text/event-stream", headers=SSE_HEADERS
    )
