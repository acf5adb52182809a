"""Configuration for the time-series query client."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .filter import HostFilter
from .transport import RetryPolicy

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse duration strings like ``500ms``, ``30s``, ``5m``, ``1h``.

    Bare numbers are read as seconds.
    """

    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)

    units = {
        "ms": 0.001,
        "s": 1,
        "m": 60,
        "h": 3600,
    }
    text = str(value).strip().lower()
    if not text:
        raise ValueError("Duration cannot be empty")

    suffix = "ms" if text.endswith("ms") else text[-1]
    if suffix.isdigit():
        return timedelta(seconds=float(text))
    if suffix not in units:
        raise ValueError(f"Unsupported duration unit: {suffix}")

    amount = float(text[: -len(suffix)]) if text[: -len(suffix)] else 0.0
    if amount < 0:
        raise ValueError("Duration must not be negative")
    return timedelta(seconds=amount * units[suffix])


class VictoriaMetricsSettings(BaseModel):
    endpoint: str = Field(default="http://localhost:8428")
    timeout: timedelta = Field(default=timedelta(seconds=30))
    verify_ssl: bool = Field(default=True)
    strict_decode: bool = Field(
        default=False,
        description="Raise on undecodable responses instead of treating them as empty.",
    )

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL: {value!r}")
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> timedelta:
        timeout = parse_duration(value)
        # zero falls back to the default like an unset value
        return timeout or timedelta(seconds=30)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout.total_seconds()


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay: timedelta = Field(default=timedelta(seconds=1))

    @field_validator("base_delay", mode="before")
    @classmethod
    def _parse_base_delay(cls, value: Any) -> timedelta:
        return parse_duration(value)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.base_delay)


class HTTPSettings(BaseModel):
    retry: RetrySettings = Field(default_factory=RetrySettings)


class HostFilterSettings(BaseModel):
    """Business groups are ORed together; tags are ANDed with them."""

    business_groups: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("business_groups", mode="before")
    @classmethod
    def _none_groups(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_filter(self) -> HostFilter | None:
        if not self.business_groups and not self.tags:
            return None
        return HostFilter(business_groups=self.business_groups, tags=self.tags)


class InspectionConfig(BaseModel):
    victoriametrics: VictoriaMetricsSettings = Field(default_factory=VictoriaMetricsSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    host_filter: HostFilterSettings = Field(default_factory=HostFilterSettings)


def load_config(path: Path | None = None) -> InspectionConfig:
    """Load YAML config into an InspectionConfig instance."""

    config_path = path or DEFAULT_CONFIG_PATH
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if data is None:
        raise ValueError(f"Inspection config is empty: {config_path}")
    return InspectionConfig.model_validate(data)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "HTTPSettings",
    "HostFilterSettings",
    "InspectionConfig",
    "RetrySettings",
    "VictoriaMetricsSettings",
    "load_config",
    "parse_duration",
]
