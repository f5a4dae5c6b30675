"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from perplexity_bridge.api.middleware import RequestContextMiddleware
from perplexity_bridge.api.routes_call import router as call_router
from perplexity_bridge.api.routes_health import router as health_router
from perplexity_bridge.api.routes_mcp import router as mcp_router
from perplexity_bridge.config.settings import Settings
from perplexity_bridge.observability.logger import get_logger, setup_logging
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.pipeline.protocol import McpProtocol
from perplexity_bridge.transport.client import UpstreamClient

logger = get_logger("app")

SERVER_NAME = "perplexity-completions-mcp"
SERVER_VERSION = "0.1.0"


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_json)
        settings.require_http_credentials()

        # Shared connection pool for every request in the process
        client = UpstreamClient.from_settings(settings, transport=transport)
        profile = settings.tool_profile("http")

        app.state.settings = settings
        app.state.upstream_client = client
        dispatcher = RequestDispatcher(client, profile)
        app.state.dispatcher = dispatcher
        app.state.protocol = McpProtocol(
            dispatcher,
            server_name=SERVER_NAME,
            server_version=SERVER_VERSION,
            # /mcp tool calls always stream from upstream
            force_upstream_streaming=True,
            reject_unknown_tools=True,
        )

        logger.info(
            "startup_complete",
            profile=profile.name,
            upstream=settings.perplexity_api_url,
            timeout_s=settings.request_timeout_s,
            pool_max_connections=settings.pool_max_connections,
        )

        yield

        await client.close()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="Perplexity Chat Completions MCP Server",
        version=SERVER_VERSION,
        description="Model Context Protocol server for the Perplexity Chat Completions API",
        lifespan=lifespan,
    )
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(mcp_router, tags=["mcp"])
    app.include_router(call_router, tags=["mcp"])
    return app
