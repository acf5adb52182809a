"""Process-wide settings resolved from the environment."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Typed settings leveraging environment variables for overrides."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    config_path: Path | None = Field(
        default=None,
        description="Inspection YAML config used when --config is not given.",
    )

    model_config = {
        "env_file": ".env",
        "env_prefix": "INSPECTION_",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


@lru_cache
def get_settings() -> Settings:
    """Cache Settings to avoid re-parsing env on every lookup."""

    return Settings()
