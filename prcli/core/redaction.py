from __future__ import annotations

import re
from typing import Any

REDACTED = "[TOKEN_REDACTED]"

# Order matters: the oauth2 URL form must be rewritten before the bare token patterns run.
_TOKEN_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"oauth2:[^@\s]+@"), f"oauth2:{REDACTED}@"),
    (re.compile(r"gh[pousr][_A-Za-z0-9]+"), REDACTED),
    (re.compile(r"glpat-[A-Za-z0-9_-]{20,}"), REDACTED),
)


def redact_tokens(message: str) -> str:
    """Strip GitHub/GitLab credentials from a message before it leaves the process."""
    for pattern, replacement in _TOKEN_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_tokens(value)
    if isinstance(value, dict):
        return {key: redact_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(item) for item in value)
    if isinstance(value, BaseException):
        return redact_tokens(str(value))
    return value
