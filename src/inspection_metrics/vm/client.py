"""HTTP client for the VictoriaMetrics/Prometheus instant query API."""

from __future__ import annotations

import threading
from typing import Any

import httpx

from ..logging import get_logger
from .config import InspectionConfig
from .filter import HostFilter, rewrite_query
from .transport import QueryExecutor, RetryPolicy
from .types import (
    NormalizedResult,
    QuerySuccess,
    decode_response,
    group_by_identity,
    normalize_samples,
    validate_response,
)

LOGGER = get_logger(__name__)


class VictoriaMetricsClient:
    """Runs instant vector queries scoped to a set of monitored hosts.

    Each call rewrites the query for the host filter, executes it with
    retries, then decodes and validates the response. The ``query_results``
    and ``query_by_ident`` helpers additionally normalize the samples.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        retry: RetryPolicy,
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
        strict_decode: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.strict_decode = strict_decode
        self._client = client or httpx.Client(
            base_url=endpoint,
            timeout=timeout_seconds,
            verify=verify_ssl,
        )
        self._owns_client = client is None
        self._executor = QueryExecutor(self._client, retry)

    @classmethod
    def from_config(
        cls, config: InspectionConfig, *, client: httpx.Client | None = None
    ) -> "VictoriaMetricsClient":
        settings = config.victoriametrics
        return cls(
            settings.endpoint,
            retry=config.http.retry.to_policy(),
            timeout_seconds=settings.timeout_seconds,
            verify_ssl=settings.verify_ssl,
            strict_decode=settings.strict_decode,
            client=client,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._executor.retry_policy

    def query(
        self,
        query: str,
        host_filter: HostFilter | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> QuerySuccess:
        """Execute an instant query and return the validated response."""

        final_query = rewrite_query(query, host_filter)
        LOGGER.debug("Executing PromQL query", extra={"query": final_query})
        raw = self._executor.execute(final_query, cancel=cancel)
        response = validate_response(decode_response(raw.body, strict=self.strict_decode))
        LOGGER.debug(
            "Query returned %s %s samples",
            len(response.samples),
            response.result_type,
            extra={"query": final_query},
        )
        return response

    def query_results(
        self,
        query: str,
        host_filter: HostFilter | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> list[NormalizedResult]:
        """Execute a query and return every usable sample in response order."""

        return normalize_samples(self.query(query, host_filter, cancel=cancel))

    def query_by_ident(
        self,
        query: str,
        host_filter: HostFilter | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> dict[str, NormalizedResult]:
        """Execute a query and keep the last sample seen for each host."""

        return group_by_identity(self.query_results(query, host_filter, cancel=cancel))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "VictoriaMetricsClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


__all__ = ["VictoriaMetricsClient"]
