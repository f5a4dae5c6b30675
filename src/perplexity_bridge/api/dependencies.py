"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from perplexity_bridge.config.settings import Settings
from perplexity_bridge.pipeline.dispatcher import RequestDispatcher
from perplexity_bridge.pipeline.protocol import McpProtocol


def get_dispatcher(request: Request) -> RequestDispatcher:
    return request.app.state.dispatcher


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_protocol(request: Request) -> McpProtocol:
    return request.app.state.protocol
