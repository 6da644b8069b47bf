"""Data models for provider payloads and stored documents."""

from nestrelay.models._base import (
    RelayBaseModel,
    TelemetryAttributes,
    TelemetryValue,
    validate_attributes,
)
from nestrelay.models.nest import AccessTokenResponse, NestDevices, NestMetadata, NestSnapshot
from nestrelay.models.records import LinkedAccount, StateToken

__all__ = [
    "AccessTokenResponse",
    "LinkedAccount",
    "NestDevices",
    "NestMetadata",
    "NestSnapshot",
    "RelayBaseModel",
    "StateToken",
    "TelemetryAttributes",
    "TelemetryValue",
    "validate_attributes",
]
