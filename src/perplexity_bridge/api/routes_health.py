"""Health and service-info endpoints (no auth)."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from perplexity_bridge.models.schemas import HealthResponse

router = APIRouter()


@router.get("/")
async def root() -> dict:
    return {
        "name": "Perplexity Chat Completions MCP Server",
        "description": "Model Context Protocol server for Perplexity Chat Completions API",
        "endpoints": {
            "health": "/health",
            "mcp": "/mcp",
            "tools": "/mcp/tools",
            "call": "/mcp/call",
        },
        "authentication": "Basic Auth",
        "status": "running",
    }


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())
