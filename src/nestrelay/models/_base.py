"""Shared model base and the telemetry value tree.

Telemetry attributes are opaque to the relay: whatever JSON the provider
or the local sensor sends is stored as-is. :data:`TelemetryAttributes`
only checks that a mapping is JSON-compatible (strings, numbers, booleans,
null, and nested lists/objects of those).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, JsonValue, TypeAdapter, ValidationError

from nestrelay.exceptions import BadRequestError

TelemetryValue = JsonValue
TelemetryAttributes = dict[str, JsonValue]

_ATTRIBUTES_ADAPTER: TypeAdapter[dict[str, JsonValue]] = TypeAdapter(dict[str, JsonValue])


def validate_attributes(value: Any) -> TelemetryAttributes:
    """Validate *value* as a string-keyed JSON object.

    Raises
    ------
    BadRequestError
        If *value* is not an object or holds non-JSON values.
    """
    if not isinstance(value, dict):
        raise BadRequestError(f"telemetry payload must be a JSON object, got {type(value).__name__}")
    try:
        return _ATTRIBUTES_ADAPTER.validate_python(value, strict=True)
    except ValidationError as exc:
        raise BadRequestError(f"telemetry payload is not JSON-compatible: {exc.error_count()} error(s)") from exc


class RelayBaseModel(BaseModel):
    """Base for relay models: immutable, tolerant of unknown upstream keys."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
