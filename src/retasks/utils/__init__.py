"""Utility functions."""

from .datetime import from_iso, ms_between, now_utc, parse_date

__all__ = [
    "from_iso",
    "ms_between",
    "now_utc",
    "parse_date",
]
