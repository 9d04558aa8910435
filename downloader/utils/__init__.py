"""
Utility functions and helpers.

Provides logging setup and credential redaction used across the codebase.
"""

from downloader.utils.logging_config import setup_logging
from downloader.utils.redaction import RedactingFilter, redact

__all__ = [
    "setup_logging",
    "RedactingFilter",
    "redact",
]
