"""Custom exception hierarchy for the completions bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all bridge errors."""


class InputError(BridgeError):
    """Missing or mistyped required tool argument."""


class NetworkError(BridgeError):
    """Transport failure reaching the upstream API."""


class UpstreamTimeoutError(NetworkError):
    """The upstream call did not finish before its deadline."""


class UpstreamError(BridgeError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, reason: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.reason = reason
        head = f"Perplexity API error: {status_code}"
        if reason:
            head = f"{head} {reason}"
        super().__init__(f"{head}\n{body}" if body else head)


class DecodeError(BridgeError):
    """A single SSE frame could not be decoded."""


class StreamError(BridgeError):
    """Reading the upstream body failed mid-stream."""


class ConfigurationError(BridgeError):
    """Error in system configuration."""
