"""Thermostat provider payloads.

Only the fields the relay routes on are typed; each thermostat's
attribute map is kept verbatim so new provider fields flow through to the
store without a code change.
"""

from __future__ import annotations

from pydantic import Field, JsonValue

from nestrelay.models._base import RelayBaseModel, TelemetryAttributes


class AccessTokenResponse(RelayBaseModel):
    """Body of a successful authorization-code exchange."""

    access_token: str
    expires_in: int | None = None


class NestDevices(RelayBaseModel):
    thermostats: dict[str, TelemetryAttributes] = Field(default_factory=dict)


class NestMetadata(RelayBaseModel):
    user_id: str
    access_token: str
    client_version: int | None = None


class NestSnapshot(RelayBaseModel):
    """Root document of the provider API for one access token."""

    devices: NestDevices = Field(default_factory=NestDevices)
    metadata: NestMetadata
    structures: dict[str, JsonValue] = Field(default_factory=dict)

    @property
    def user_id(self) -> str:
        return self.metadata.user_id

    @property
    def thermostats(self) -> dict[str, TelemetryAttributes]:
        return self.devices.thermostats
