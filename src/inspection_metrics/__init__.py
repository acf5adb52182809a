"""Metrics acquisition layer for the host inspection tool."""

from importlib import metadata


__all__ = ["__version__"]


try:
    __version__ = metadata.version("inspection-metrics")
except metadata.PackageNotFoundError:  # pragma: no cover - during local dev without install
    __version__ = "0.1.0"
