"""Tests for the retrying query executor."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from datetime import timedelta

import httpx
import pytest

from inspection_metrics.vm.exceptions import (
    HTTPStatusError,
    QueryCancelledError,
    RequestError,
    TransportError,
)
from inspection_metrics.vm.transport import QueryExecutor, RetryPolicy, is_retryable

OK_BODY = {"status": "success", "data": {"resultType": "vector", "result": []}}


class ScriptedHandler:
    """Replays one canned outcome per request and records the requests."""

    def __init__(self, outcomes: list[int | Exception]) -> None:
        self._outcomes: Iterator[int | Exception] = iter(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = next(self._outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == 200:
            return httpx.Response(200, json=OK_BODY)
        return httpx.Response(outcome, text=f"status {outcome}")


def _build_executor(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    max_retries: int = 3,
    base_delay: timedelta = timedelta(0),
    sleep: Callable[[float], None] | None = None,
) -> QueryExecutor:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://vm:8428")
    policy = RetryPolicy(max_retries=max_retries, base_delay=base_delay)
    if sleep is None:
        return QueryExecutor(client, policy)
    return QueryExecutor(client, policy, sleep=sleep)


def test_execute_sends_query_parameter() -> None:
    handler = ScriptedHandler([200])
    executor = _build_executor(handler)

    raw = executor.execute('cpu_usage_active{env="prod"}')

    assert raw.status_code == 200
    assert b'"success"' in raw.body
    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/v1/query"
    assert request.url.params["query"] == 'cpu_usage_active{env="prod"}'


def test_retries_server_errors_until_success() -> None:
    handler = ScriptedHandler([503, 503, 200])
    executor = _build_executor(handler, max_retries=3)

    raw = executor.execute("up")

    assert raw.status_code == 200
    assert len(handler.requests) == 3


def test_client_error_is_not_retried() -> None:
    handler = ScriptedHandler([400, 200])
    executor = _build_executor(handler, max_retries=3)

    with pytest.raises(HTTPStatusError) as excinfo:
        executor.execute("bad{")

    assert len(handler.requests) == 1
    assert excinfo.value.status_code == 400
    assert excinfo.value.body == b"status 400"


def test_exhausted_retries_surface_last_status() -> None:
    handler = ScriptedHandler([500, 502, 504])
    executor = _build_executor(handler, max_retries=2)

    with pytest.raises(HTTPStatusError) as excinfo:
        executor.execute("up")

    assert len(handler.requests) == 3
    assert excinfo.value.status_code == 504


def test_transport_errors_are_retried() -> None:
    handler = ScriptedHandler(
        [httpx.ConnectError("refused"), httpx.ReadTimeout("slow"), 200]
    )
    executor = _build_executor(handler, max_retries=3)

    assert executor.execute("up").status_code == 200
    assert len(handler.requests) == 3


def test_exhausted_transport_errors_raise_transport_error() -> None:
    handler = ScriptedHandler([httpx.ConnectError("refused")])
    executor = _build_executor(handler, max_retries=0)

    with pytest.raises(TransportError) as excinfo:
        executor.execute("up")

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(handler.requests) == 1


def test_backoff_grows_exponentially_and_is_capped() -> None:
    delays: list[float] = []
    handler = ScriptedHandler([500] * 6 + [200])
    executor = _build_executor(
        handler, max_retries=6, base_delay=timedelta(seconds=1), sleep=delays.append
    )

    executor.execute("up")

    assert delays == [1, 2, 4, 8, 8, 8]


def test_no_sleep_after_success_or_client_error() -> None:
    delays: list[float] = []
    executor = _build_executor(
        ScriptedHandler([404]), base_delay=timedelta(seconds=1), sleep=delays.append
    )

    with pytest.raises(HTTPStatusError):
        executor.execute("up")
    assert delays == []


def test_cancelled_before_first_attempt() -> None:
    handler = ScriptedHandler([200])
    executor = _build_executor(handler)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(QueryCancelledError):
        executor.execute("up", cancel=cancel)

    assert handler.requests == []


def test_cancel_interrupts_backoff() -> None:
    cancel = threading.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        cancel.set()
        return httpx.Response(503)

    executor = _build_executor(handler, max_retries=5, base_delay=timedelta(seconds=30))

    with pytest.raises(QueryCancelledError):
        executor.execute("up", cancel=cancel)


def test_retry_condition() -> None:
    assert is_retryable(TransportError("timeout"))
    assert is_retryable(HTTPStatusError(500, b""))
    assert is_retryable(HTTPStatusError(503, b""))
    assert not is_retryable(HTTPStatusError(400, b""))
    assert not is_retryable(HTTPStatusError(404, b""))
    assert not is_retryable(QueryCancelledError("cancelled"))
    assert not is_retryable(RequestError("redirect loop"))
    assert not is_retryable(ValueError("other"))


def test_retry_policy_bounds() -> None:
    policy = RetryPolicy(max_retries=3, base_delay=timedelta(seconds=2))
    assert policy.attempts == 4
    assert policy.max_delay == timedelta(seconds=16)
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1, base_delay=timedelta(seconds=1))


@pytest.mark.parametrize(
    "error",
    [httpx.TooManyRedirects("redirect loop"), httpx.DecodingError("bad gzip stream")],
)
def test_non_transport_request_errors_are_wrapped_and_not_retried(error: Exception) -> None:
    handler = ScriptedHandler([error, 200])
    executor = _build_executor(handler, max_retries=3)

    with pytest.raises(RequestError) as excinfo:
        executor.execute("up")

    assert excinfo.value.__cause__ is error
    assert len(handler.requests) == 1


def test_retried_server_error_logs_warning_not_error(caplog: pytest.LogCaptureFixture) -> None:
    handler = ScriptedHandler([503, 200])
    executor = _build_executor(handler, max_retries=3)

    with caplog.at_level(logging.DEBUG, logger="inspection_metrics.vm.transport"):
        executor.execute("up")

    records = [r for r in caplog.records if r.name == "inspection_metrics.vm.transport"]
    assert any(r.levelno == logging.WARNING for r in records)
    assert not any(r.levelno >= logging.ERROR for r in records)


def test_final_failure_logs_one_error(caplog: pytest.LogCaptureFixture) -> None:
    handler = ScriptedHandler([500, 502, 504])
    executor = _build_executor(handler, max_retries=2)

    with caplog.at_level(logging.DEBUG, logger="inspection_metrics.vm.transport"):
        with pytest.raises(HTTPStatusError):
            executor.execute("up")

    errors = [
        r
        for r in caplog.records
        if r.name == "inspection_metrics.vm.transport" and r.levelno >= logging.ERROR
    ]
    assert len(errors) == 1
