"""Core domain objects used throughout the bridge."""

from __future__ import annotations

from dataclasses import dataclass, field

NO_RESPONSE_TEXT = "No response generated."


@dataclass(frozen=True)
class Citation:
    title: str
    url: str
    snippet: str | None = None

    def to_dict(self) -> dict:
        data = {"title": self.title, "url": self.url}
        if self.snippet is not None:
            data["snippet"] = self.snippet
        return data


@dataclass(frozen=True)
class UpstreamEvent:
    """One decoded upstream SSE frame."""

    delta: str | None = None
    finish_reason: str | None = None
    citations: tuple[Citation, ...] | None = None
    usage: dict | None = None
    id: str | None = None
    model: str | None = None
    done: bool = False


# data: [DONE]
STREAM_DONE = UpstreamEvent(done=True)


@dataclass
class CompletionRequest:
    query: str
    model: str = "sonar"
    use_upstream_streaming: bool = True
    search_mode: str | None = None
    recency_filter: str | None = None
    reasoning_effort: str | None = None
    max_tokens: int = 1024
    temperature: float = 0.7
    search_context_size: str | None = None


@dataclass(frozen=True)
class CompletionResult:
    text: str
    citations: tuple[Citation, ...] = ()
    usage: dict | None = None
    id: str | None = None
    model: str | None = None
    finish_reason: str | None = None
    completed: bool = False


@dataclass
class AccumulatedResult:
    """Fold state for one upstream response. Mutated only by the accumulator."""

    parts: list[str] = field(default_factory=list)
    citations: tuple[Citation, ...] = ()
    usage: dict | None = None
    id: str | None = None
    model: str | None = None
    finish_reason: str | None = None
    completed: bool = False
    frames: int = 0
    chars: int = 0

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def freeze(self) -> CompletionResult:
        return CompletionResult(
            text=self.text or NO_RESPONSE_TEXT,
            citations=self.citations,
            usage=self.usage,
            id=self.id,
            model=self.model,
            finish_reason=self.finish_reason,
            completed=self.completed,
        )
