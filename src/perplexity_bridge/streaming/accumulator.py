"""Fold of upstream events into one logical completion result."""

from __future__ import annotations

from collections.abc import AsyncIterable

from perplexity_bridge.models.domain import AccumulatedResult, UpstreamEvent
from perplexity_bridge.streaming.decoder import parse_citations


def apply(event: UpstreamEvent, state: AccumulatedResult) -> AccumulatedResult:
    """Apply one event to ``state`` in arrival order and return it.

    Text is append-only. A non-empty citation list replaces the previous one
    whole; events without citations never clear it. Metadata is last-seen-wins.
    """
    if event.done:
        state.completed = True
        return state

    state.frames += 1
    if event.delta:
        state.parts.append(event.delta)
        state.chars += len(event.delta)
    if event.citations:
        state.citations = event.citations
    if event.usage is not None:
        state.usage = event.usage
    if event.id is not None:
        state.id = event.id
    if event.model is not None:
        state.model = event.model
    if event.finish_reason is not None:
        state.finish_reason = event.finish_reason
    return state


async def accumulate(
    events: AsyncIterable[UpstreamEvent], state: AccumulatedResult | None = None
) -> AccumulatedResult:
    state = state or AccumulatedResult()
    async for event in events:
        apply(event, state)
    return state


def from_completion_payload(payload: dict) -> AccumulatedResult:
    """State for a buffered (``stream: false``) chat completion body."""
    state = AccumulatedResult(completed=True, frames=1)
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        message = choice.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            content = message["content"]
            if content:
                state.parts.append(content)
                state.chars = len(content)
        if isinstance(choice.get("finish_reason"), str):
            state.finish_reason = choice["finish_reason"]

    citations = parse_citations(payload)
    if citations:
        state.citations = citations
    if isinstance(payload.get("usage"), dict):
        state.usage = payload["usage"]
    if isinstance(payload.get("id"), str):
        state.id = payload["id"]
    if isinstance(payload.get("model"), str):
        state.model = payload["model"]
    return state
