"""
Irreversible scrubbing applied to events before they are hashed.

Redaction runs before chaining, so the stored hash always covers the
redacted form and the original values never reach disk.
"""

import re
from typing import Any, Dict, Optional

REDACTED = "[REDACTED]"
DEFAULT_REDACTION_THRESHOLD = 100

SENSITIVE_PATTERN = re.compile(r"password|secret|token|key|credential|auth", re.IGNORECASE)


def mask_ip(ip: Optional[str]) -> Optional[str]:
    """Zero the last IPv4 octet or IPv6 segment."""
    if not ip:
        return ip

    if "." in ip:
        parts = ip.split(".")
        if len(parts) == 4:
            parts[3] = "0"
            return ".".join(parts)

    if ":" in ip:
        parts = ip.split(":")
        parts[-1] = "0"
        return ":".join(parts)

    return ip


def is_sensitive(text: str) -> bool:
    return bool(SENSITIVE_PATTERN.search(text))


def redact_value(value: Any, threshold: int = DEFAULT_REDACTION_THRESHOLD) -> Any:
    """Redact a single value, recursing into dicts and lists."""
    if isinstance(value, str):
        if value == REDACTED:
            return value
        if len(value) > threshold or is_sensitive(value):
            return REDACTED
        return value
    if isinstance(value, dict):
        return redact_details(value, threshold)
    if isinstance(value, (list, tuple)):
        return [redact_value(item, threshold) for item in value]
    return value


def redact_details(
    details: Optional[Dict[str, Any]],
    threshold: int = DEFAULT_REDACTION_THRESHOLD,
) -> Optional[Dict[str, Any]]:
    """Return a redacted copy of an event's details map.

    Keys that look sensitive have their whole value replaced; other values
    are redacted when they are strings that look sensitive or exceed the
    length threshold. Applying this to its own output changes nothing.
    """
    if details is None:
        return None

    redacted: Dict[str, Any] = {}
    for key, value in details.items():
        key = str(key)
        if is_sensitive(key):
            redacted[key] = REDACTED
        else:
            redacted[key] = redact_value(value, threshold)
    return redacted
