"""Query response model, decoding and per-host normalization.

The wire envelope follows the Prometheus HTTP API::

    {"status": "success", "data": {"resultType": "vector", "result": [...]},
     "errorType": "...", "error": "...", "warnings": [...]}

It is decoded once into either :class:`QuerySuccess` or :class:`QueryFailure`.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..logging import get_logger
from ..metrics import SAMPLES_DROPPED
from .exceptions import APIError, DecodeError, ResultTypeError, SampleParseError

LOGGER = get_logger(__name__)

METRIC_NAME_LABEL = "__name__"
IDENTITY_LABELS = ("ident", "host", "instance")
SENTINEL_VALUES = frozenset({"NaN", "+Inf", "-Inf"})
VECTOR = "vector"


def resolve_identity(labels: Mapping[str, str]) -> str:
    """Return the first non-empty of ``ident``, ``host`` and ``instance``."""

    for key in IDENTITY_LABELS:
        value = labels.get(key)
        if value:
            return value
    return ""


@dataclass(frozen=True, slots=True)
class Sample:
    """One series of an instant vector: its labels and ``[timestamp, value]``."""

    labels: Mapping[str, str] = field(default_factory=dict)
    timestamp: float = 0.0
    raw_value: Any = None

    @property
    def metric_name(self) -> str:
        return self.labels.get(METRIC_NAME_LABEL, "")

    @property
    def identity(self) -> str:
        return resolve_identity(self.labels)

    @property
    def timestamp_unix(self) -> int:
        return int(self.timestamp)

    def label(self, name: str) -> str:
        return self.labels.get(name, "")

    def is_sentinel(self) -> bool:
        if self.raw_value is None:
            return True
        return isinstance(self.raw_value, str) and self.raw_value in SENTINEL_VALUES

    def parse_value(self) -> float:
        raw = self.raw_value
        if isinstance(raw, bool):
            raise SampleParseError(f"unexpected value type: {type(raw).__name__}")
        if isinstance(raw, (int, float)):
            return float(raw)
        if isinstance(raw, str):
            try:
                return float(raw)
            except ValueError as exc:
                raise SampleParseError(f"failed to parse value {raw!r}") from exc
        raise SampleParseError(f"unexpected value type: {type(raw).__name__}")


@dataclass(frozen=True, slots=True)
class QuerySuccess:
    result_type: str
    samples: tuple[Sample, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return True

    @property
    def is_vector(self) -> bool:
        return self.result_type == VECTOR


@dataclass(frozen=True, slots=True)
class QueryFailure:
    """``status`` other than success; all-empty when the body was undecodable."""

    status: str = ""
    error_type: str = ""
    error_message: str = ""
    warnings: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return False


QueryResponse = QuerySuccess | QueryFailure


@dataclass(frozen=True, slots=True)
class NormalizedResult:
    identity: str
    value: float
    labels: dict[str, str]


class _WireSample(BaseModel):
    metric: dict[str, str] = Field(default_factory=dict)
    value: list[Any] | None = None


class _WireData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result_type: str = Field(default="", alias="resultType")
    result: Any = None


class _WireEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str | None = None
    data: _WireData | None = None
    error_type: str | None = Field(default=None, alias="errorType")
    error: str | None = None
    warnings: list[str] | None = None


_VECTOR_ADAPTER = TypeAdapter(list[_WireSample])


def decode_response(body: bytes | str, *, strict: bool = False) -> QueryResponse:
    """Decode a raw ``/api/v1/query`` body.

    In the default lenient mode a structurally invalid body is logged and
    returned as an all-empty :class:`QueryFailure`; with ``strict`` it raises
    :class:`DecodeError` instead.
    """

    try:
        envelope = _WireEnvelope.model_validate_json(body)
        data = envelope.data or _WireData()
        samples = _decode_samples(data) if envelope.status == "success" else ()
    except ValidationError as exc:
        if strict:
            raise DecodeError(f"invalid query response: {exc}") from exc
        LOGGER.warning("Undecodable query response treated as empty: %s", exc)
        return QueryFailure()

    warnings = tuple(envelope.warnings or ())
    if envelope.status != "success":
        return QueryFailure(
            status=envelope.status or "",
            error_type=envelope.error_type or "",
            error_message=envelope.error or "",
            warnings=warnings,
        )
    return QuerySuccess(result_type=data.result_type, samples=samples, warnings=warnings)


def _decode_samples(data: _WireData) -> tuple[Sample, ...]:
    # matrix, scalar and string payloads are rejected later by validate_response
    if data.result_type != VECTOR or data.result is None:
        return ()
    wire_samples = _VECTOR_ADAPTER.validate_python(data.result)
    return tuple(_to_sample(item) for item in wire_samples)


def _to_sample(item: _WireSample) -> Sample:
    pair = item.value or []
    timestamp = pair[0] if pair else 0.0
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        timestamp = 0.0
    raw_value = pair[1] if len(pair) > 1 else None
    return Sample(labels=item.metric, timestamp=float(timestamp), raw_value=raw_value)


def validate_response(response: QueryResponse) -> QuerySuccess:
    """Ensure ``response`` is a successful instant vector.

    Warnings never change the outcome; they are logged and stay available on
    the returned value.
    """

    if isinstance(response, QueryFailure):
        LOGGER.error(
            "VM API returned error [%s]: %s",
            response.error_type,
            response.error_message,
        )
        raise APIError(response.error_type, response.error_message)

    if response.warnings:
        LOGGER.warning("VM API returned warnings: %s", "; ".join(response.warnings))

    if not response.is_vector:
        raise ResultTypeError(response.result_type)
    return response


def normalize_samples(response: QuerySuccess) -> list[NormalizedResult]:
    """Flatten a vector into per-sample results, in response order.

    NaN and infinite values, missing values and unparseable values are
    skipped; the remaining samples are always returned.
    """

    results: list[NormalizedResult] = []
    for sample in response.samples:
        if sample.is_sentinel():
            _record_drop("sentinel", sample)
            continue
        try:
            value = sample.parse_value()
        except SampleParseError as exc:
            _record_drop("unparseable", sample, exc)
            continue
        if not math.isfinite(value):
            _record_drop("sentinel", sample)
            continue
        results.append(
            NormalizedResult(identity=sample.identity, value=value, labels=dict(sample.labels))
        )
    return results


def group_by_identity(results: Iterable[NormalizedResult]) -> dict[str, NormalizedResult]:
    """Index results by host identity; later entries replace earlier ones.

    Results without an identity are left out. Use the flat list when every
    sample of a host matters (per-core or per-mountpoint series).
    """

    grouped: dict[str, NormalizedResult] = {}
    for result in results:
        if result.identity:
            grouped[result.identity] = result
    return grouped


def _record_drop(reason: str, sample: Sample, exc: Exception | None = None) -> None:
    SAMPLES_DROPPED.labels(reason=reason).inc()
    LOGGER.debug(
        "Skipping %s sample %s for %r%s",
        reason,
        sample.raw_value,
        sample.identity,
        f": {exc}" if exc else "",
    )


__all__ = [
    "IDENTITY_LABELS",
    "METRIC_NAME_LABEL",
    "NormalizedResult",
    "QueryFailure",
    "QueryResponse",
    "QuerySuccess",
    "SENTINEL_VALUES",
    "Sample",
    "decode_response",
    "group_by_identity",
    "normalize_samples",
    "resolve_identity",
    "validate_response",
]
