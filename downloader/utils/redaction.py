"""
Credential redaction for log records and forwarded process output.
"""

import logging
import re
from typing import Iterable

REDACTED = "***"

# scheme://userinfo@host -> scheme://***@host
URL_USERINFO_PATTERN = re.compile(r"([A-Za-z][A-Za-z0-9+.-]*://)[^/@\s]+@")


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """
    Remove credentials from a piece of text.

    Every non-empty secret is replaced verbatim, then any userinfo
    segment of a URL is masked so tokens that were never registered
    still cannot leak through an authenticated clone URL.

    Args:
        text: Text that may contain credentials.
        secrets: Known secret values to mask.

    Returns:
        The text with credentials replaced by ``***``.
    """
    if not text:
        return text

    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)

    return URL_USERINFO_PATTERN.sub(rf"\1{REDACTED}@", text)


class RedactingFilter(logging.Filter):
    """Logging filter that scrubs URL credentials from every record."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message, self.secrets)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True
