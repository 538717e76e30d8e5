"""Nested (per-group) forecasting orchestration."""
from __future__ import annotations

__version__ = "0.1.0"
