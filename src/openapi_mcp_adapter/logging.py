"""Logging helpers with redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Dict, Optional, Pattern


_SENSITIVE_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization|cookie)", re.IGNORECASE)

REDACTED = "***REDACTED***"


def configure_logging(level: str) -> None:
    # stdout belongs to the stdio transport.
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def sensitive_keys(extra: Optional[str] = None) -> Pattern[str]:
    if not extra:
        return _SENSITIVE_KEYS
    return re.compile(f"{_SENSITIVE_KEYS.pattern}|^{re.escape(extra)}$", re.IGNORECASE)


def redact_payload(payload: Dict[str, Any], pattern: Optional[Pattern[str]] = None) -> Dict[str, Any]:
    pattern = pattern or _SENSITIVE_KEYS
    redacted: Dict[str, Any] = {}
    for key, value in payload.items():
        if pattern.search(str(key)):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = redact_payload(value, pattern)
        else:
            redacted[key] = value
    return redacted
