"""Pydantic models for the caller-facing wire format."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class SearchResult(BaseModel):
    title: str
    url: str
    snippet: str | None = None


class SearchResultsResource(BaseModel):
    type: Literal["search_results"] = "search_results"
    results: list[SearchResult]


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ResourceContent(BaseModel):
    type: Literal["resource"] = "resource"
    resource: SearchResultsResource


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: list[Union[TextContent, ResourceContent]]
    is_error: bool = Field(default=False, alias="isError")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ToolCallRequest(BaseModel):
    """Body of the legacy ``POST /mcp/call`` endpoint."""

    name: str
    arguments: dict[str, Any] | None = None


class JsonRpcRequest(BaseModel):
    jsonrpc: str = "2.0"
    method: str
    params: dict[str, Any] | None = None
    id: str | int | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
