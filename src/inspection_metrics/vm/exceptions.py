"""Errors raised by the VictoriaMetrics query client."""

from __future__ import annotations


class VictoriaMetricsError(RuntimeError):
    """Base class for every failure surfaced by a query."""


class TransportError(VictoriaMetricsError):
    """Connection failure or timeout while talking to the query API."""


class QueryCancelledError(TransportError):
    """The caller cancelled the query before it completed."""


class RequestError(VictoriaMetricsError):
    """The request failed for a reason a retry would not fix.

    Covers redirect loops and bodies that cannot be content-decoded.
    """


class HTTPStatusError(VictoriaMetricsError):
    """The query API answered with a non-2xx status code."""

    def __init__(self, status_code: int, body: bytes) -> None:
        self.status_code = status_code
        self.body = body
        text = body.decode("utf-8", errors="replace")
        super().__init__(f"VM API returned status {status_code}: {text}")

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500


class DecodeError(VictoriaMetricsError):
    """Response body could not be decoded into a query envelope."""


class APIError(VictoriaMetricsError):
    """The API reported ``status: error`` in an otherwise valid response."""

    def __init__(self, error_type: str, error_message: str) -> None:
        self.error_type = error_type
        self.error_message = error_message
        super().__init__(f"VM API error [{error_type}]: {error_message}")


class ResultTypeError(VictoriaMetricsError):
    """Successful response whose result is not an instant vector."""

    def __init__(self, result_type: str) -> None:
        self.result_type = result_type
        super().__init__(f"unexpected result type: {result_type!r} (expected vector)")


class SampleParseError(ValueError):
    """A single sample value could not be read as a float.

    Handled during normalization; never escapes a query.
    """


__all__ = [
    "APIError",
    "DecodeError",
    "HTTPStatusError",
    "QueryCancelledError",
    "RequestError",
    "ResultTypeError",
    "SampleParseError",
    "TransportError",
    "VictoriaMetricsError",
]
