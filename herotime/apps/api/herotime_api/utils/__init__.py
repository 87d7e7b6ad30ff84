"""Utility functions and helpers."""

from herotime_api.utils.formatting import format_file_size
from herotime_api.utils.logging import JSONFormatter, configure_json_logging

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "format_file_size",
]
