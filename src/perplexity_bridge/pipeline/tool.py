"""Definition of the ``perplexity-completions`` tool as advertised to callers."""

from __future__ import annotations

from perplexity_bridge.config.settings import ToolProfile

TOOL_NAME = "perplexity-completions"

SEARCH_MODES = ("web", "academic", "sec")
RECENCY_FILTERS = ("day", "week", "month", "year")
REASONING_EFFORTS = ("low", "medium", "high")
SEARCH_CONTEXT_SIZES = ("low", "medium", "high")


def tool_definition(profile: ToolProfile) -> dict:
    properties: dict[str, dict] = {
        "query": {
            "type": "string",
            "description": "Search query or question to ask Perplexity AI",
        },
        "model": {
            "type": "string",
            "description": "Perplexity model: " + ", ".join(f"'{m}'" for m in profile.models),
            "enum": list(profile.models),
        },
        "stream": {
            "type": "boolean",
            "description": "Stream from the Perplexity API for faster time-to-first-token",
            "default": profile.default_upstream_streaming,
        },
        "search_mode": {
            "type": "string",
            "description": "Search mode: 'web' (default), 'academic', 'sec'",
            "enum": list(SEARCH_MODES),
        },
        "recency_filter": {
            "type": "string",
            "description": "Filter results by time: 'day', 'week', 'month', 'year'",
            "enum": list(RECENCY_FILTERS),
        },
    }
    if profile.allow_reasoning_effort:
        properties["reasoning_effort"] = {
            "type": "string",
            "description": "Computational effort for deep research (only for sonar-deep-research)",
            "enum": list(REASONING_EFFORTS),
        }
    properties["max_tokens"] = {
        "type": "number",
        "description": (
            f"Maximum tokens in response (default: {profile.default_max_tokens}, "
            f"max: {profile.max_tokens_ceiling})"
        ),
        "minimum": 1,
        "maximum": profile.max_tokens_ceiling,
    }
    properties["temperature"] = {
        "type": "number",
        "description": f"Sampling temperature 0-2 (default: {profile.default_temperature})",
        "minimum": 0,
        "maximum": 2,
    }
    properties["search_context_size"] = {
        "type": "string",
        "description": "Search context depth: 'low', 'medium' (default), 'high'",
        "enum": list(SEARCH_CONTEXT_SIZES),
    }

    return {
        "name": TOOL_NAME,
        "description": (
            "Performs AI-powered web search using the Perplexity Chat Completions API. "
            "Returns AI-generated answers with real-time web search, citations, and sources."
        ),
        "inputSchema": {
            "type": "object",
            "properties": properties,
            "required": ["query"],
        },
    }
