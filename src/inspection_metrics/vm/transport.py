"""HTTP execution of instant queries with bounded exponential backoff."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..logging import get_logger
from ..metrics import QUERY_ATTEMPTS, QUERY_LATENCY
from .exceptions import (
    HTTPStatusError,
    QueryCancelledError,
    RequestError,
    TransportError,
    VictoriaMetricsError,
)

LOGGER = get_logger(__name__)

QUERY_PATH = "/api/v1/query"
MAX_DELAY_FACTOR = 8


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often and how patiently a failed attempt is repeated."""

    max_retries: int
    base_delay: timedelta

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < timedelta(0):
            raise ValueError("base_delay must be non-negative")

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    @property
    def max_delay(self) -> timedelta:
        return self.base_delay * MAX_DELAY_FACTOR


@dataclass(frozen=True, slots=True)
class RawResponse:
    body: bytes
    status_code: int


def is_retryable(exc: BaseException) -> bool:
    """Transport failures and 5xx answers are retried, nothing else."""

    if isinstance(exc, QueryCancelledError):
        return False
    if isinstance(exc, TransportError):
        return True
    if isinstance(exc, HTTPStatusError):
        return exc.retryable
    return False


class QueryExecutor:
    """Issues ``GET /api/v1/query`` and applies the retry policy."""

    def __init__(
        self,
        client: httpx.Client,
        retry: RetryPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._retry = retry
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def execute(
        self,
        query: str,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> RawResponse:
        """Run ``query`` until it succeeds, fails permanently or retries run out.

        ``timeout`` overrides the client timeout for each attempt. Setting
        ``cancel`` aborts the call before the next attempt or in the middle of
        a backoff wait, raising :class:`QueryCancelledError`.
        """

        base = self._retry.base_delay.total_seconds()
        retrying = Retrying(
            stop=stop_after_attempt(self._retry.attempts),
            wait=wait_exponential(multiplier=base, max=self._retry.max_delay.total_seconds()),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleeper(cancel),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            reraise=True,
        )
        with QUERY_LATENCY.time():
            try:
                return retrying(self._attempt, query, timeout, cancel)
            except VictoriaMetricsError as exc:
                LOGGER.error("Query failed: %s", exc, extra={"query": query})
                raise

    def _sleeper(self, cancel: threading.Event | None) -> Callable[[float], None]:
        if cancel is None:
            return self._sleep

        def wait(seconds: float) -> None:
            if cancel.wait(seconds):
                raise QueryCancelledError("query cancelled while waiting to retry")

        return wait

    def _attempt(
        self,
        query: str,
        timeout: float | None,
        cancel: threading.Event | None,
    ) -> RawResponse:
        if cancel is not None and cancel.is_set():
            raise QueryCancelledError("query cancelled")

        request_timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        try:
            response = self._client.get(
                QUERY_PATH,
                params={"query": query},
                timeout=request_timeout,
            )
        except httpx.TransportError as exc:
            QUERY_ATTEMPTS.labels(outcome="transport_error").inc()
            LOGGER.warning("Query attempt failed: %s", exc)
            raise TransportError(f"failed to execute query: {exc}") from exc
        except httpx.RequestError as exc:
            # redirect loops and undecodable bodies do not improve on retry
            QUERY_ATTEMPTS.labels(outcome="request_error").inc()
            raise RequestError(f"failed to execute query: {exc}") from exc

        if not response.is_success:
            QUERY_ATTEMPTS.labels(outcome=f"{response.status_code // 100}xx").inc()
            LOGGER.warning(
                "VM API returned status %s: %s",
                response.status_code,
                response.text,
                extra={"query": query},
            )
            raise HTTPStatusError(response.status_code, response.content)

        QUERY_ATTEMPTS.labels(outcome="success").inc()
        return RawResponse(body=response.content, status_code=response.status_code)


__all__ = [
    "MAX_DELAY_FACTOR",
    "QUERY_PATH",
    "QueryExecutor",
    "RawResponse",
    "RetryPolicy",
    "is_retryable",
]
