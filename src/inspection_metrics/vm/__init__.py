"""VictoriaMetrics/Prometheus instant query client."""

from .client import VictoriaMetricsClient
from .config import (
    DEFAULT_CONFIG_PATH,
    HostFilterSettings,
    InspectionConfig,
    RetrySettings,
    VictoriaMetricsSettings,
    load_config,
)
from .exceptions import (
    APIError,
    DecodeError,
    HTTPStatusError,
    QueryCancelledError,
    RequestError,
    ResultTypeError,
    TransportError,
    VictoriaMetricsError,
)
from .filter import HostFilter, rewrite_query
from .transport import QueryExecutor, RawResponse, RetryPolicy
from .types import (
    NormalizedResult,
    QueryFailure,
    QueryResponse,
    QuerySuccess,
    Sample,
    decode_response,
    group_by_identity,
    normalize_samples,
    validate_response,
)

__all__ = [
    "APIError",
    "DEFAULT_CONFIG_PATH",
    "DecodeError",
    "HTTPStatusError",
    "HostFilter",
    "HostFilterSettings",
    "InspectionConfig",
    "NormalizedResult",
    "QueryCancelledError",
    "QueryExecutor",
    "QueryFailure",
    "QueryResponse",
    "QuerySuccess",
    "RawResponse",
    "RequestError",
    "ResultTypeError",
    "RetryPolicy",
    "RetrySettings",
    "Sample",
    "TransportError",
    "VictoriaMetricsClient",
    "VictoriaMetricsError",
    "VictoriaMetricsSettings",
    "decode_response",
    "group_by_identity",
    "load_config",
    "normalize_samples",
    "rewrite_query",
    "validate_response",
]
