"""Legacy tool endpoints: ``GET /mcp/tools`` and ``POST /mcp/call``."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from perplexity_bridge.api.auth import verify_credentials
from perplexity_bridge.api.dependencies import get_dispatcher
from perplexity_bridge.exceptions import InputError
from perplexity_bridge.models.schemas import ToolCallRequest
from perplexity_bridge.observability.logger import get_logger
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.pipeline.tool import TOOL_NAME, tool_definition

logger = get_logger("routes_call")

router = APIRouter(prefix="/mcp")


@router.get("/tools")
async def list_tools(
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
    _user: str = Depends(verify_credentials),
) -> dict:
    return {"tools": [tool_definition(dispatcher.profile)]}


@router.post("/call")
async def call_tool(
    body: ToolCallRequest,
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
    _user: str = Depends(verify_credentials),
):
    """Consolidated tool call. Upstream streaming follows ``arguments.stream``."""
    if body.name != TOOL_NAME:
        return JSONResponse(
            status_code=400, content={"error": f"Unknown tool: {body.name}", "isError": True}
        )
    try:
        request = dispatcher.parse_arguments(body.arguments)
    except InputError as e:
        return JSONResponse(status_code=400, content={"error": str(e), "isError": True})

    logger.info(
        "tool_call",
        query=request.query[:50],
        model=request.model,
        upstream_stream=request.use_upstream_streaming,
    )
    result = await dispatcher.consolidate(request)
    return JSONResponse(content=result.to_wire())
