"""Utility functions for the Music Library service."""

from .decorators import handle_errors, retry, track_performance
from .header_sanitizer import sanitize_header_value, sanitize_metadata_for_headers
from .tool_checker import ToolChecker, locate_tool

__all__ = [
    "handle_errors",
    "retry",
    "track_performance",
    "sanitize_header_value",
    "sanitize_metadata_for_headers",
    "ToolChecker",
    "locate_tool",
]
