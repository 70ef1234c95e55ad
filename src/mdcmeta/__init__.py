"""Cached MDC component metadata and completions for component tags."""

from __future__ import annotations

__version__ = "0.1.0"
