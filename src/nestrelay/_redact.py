"""Helpers for safe debug logging.

The relay handles OAuth secrets (client secret, authorization codes,
access tokens) that travel inside provider payloads and stored documents.
This module masks those fields before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "access_token",
        "client_secret",
        "code",
        "refresh_token",
        "authorization",
        "cookie",
    }
)

# Characters of a secret kept visible so log lines can be correlated.
_VISIBLE_SUFFIX = 4


def mask_secret(value: Any) -> str:
    """Mask *value*, keeping a short suffix of long strings."""
    if not isinstance(value, str) or len(value) <= _VISIBLE_SUFFIX * 3:
        return "<redacted>"
    return f"<redacted:…{value[-_VISIBLE_SUFFIX:]}>"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(k): (
                mask_secret(v)
                if str(k).lower() in _SENSITIVE_VALUE_KEYS
                else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            )
            for k, v in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
