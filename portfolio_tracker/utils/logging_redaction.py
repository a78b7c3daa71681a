"""
Logging redaction helpers.
Redacts API keys and tokens from log messages.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # CoinMarketCap key header or query param
    (re.compile(r"(?i)(X-CMC_PRO_API_KEY|CMC_PRO_API_KEY)(['\"]?\s*[:=]\s*['\"]?)([A-Za-z0-9\-]+)"), r"\1\2[REDACTED]"),
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # Generic api key / token key=value
    (re.compile(r"(?i)\b(api[_-]?key|access_token|token)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact_message(message)
        record.args = ()
        return True


def install_redaction_filter() -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
    if not any(isinstance(f, RedactingFilter) for f in root.filters):
        root.addFilter(RedactingFilter())
