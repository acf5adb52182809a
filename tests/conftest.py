"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("INSPECTION_LOG_LEVEL", "DEBUG")
