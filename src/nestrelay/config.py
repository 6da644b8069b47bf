"""Relay configuration."""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Any

from nestrelay._constants import (
    API_URL,
    AUTH_URL,
    DEFAULT_CHECKUP_INTERVAL_SECONDS,
    DEFAULT_PORT,
    DEFAULT_STALE_AFTER_SECONDS,
    LOCAL_DEVICE_NAME,
    TOKEN_URL,
)
from nestrelay.exceptions import RelayConfigError

#: Environment variable pointing at the JSON config file.
CONFIG_PATH_ENV = "NESTRELAY_CONFIG"

# JSON keys of the config file, as written by the deployment tooling.
_FILE_KEY_MAP = {
    "clientId": "client_id",
    "clientSecret": "client_secret",
    "projectId": "project_id",
    "storageBucket": "storage_bucket",
    "checkupIntervalSeconds": "checkup_interval_seconds",
    "staleAfterSeconds": "stale_after_seconds",
    "storePath": "store_path",
    "localDeviceName": "local_device_name",
}

_NUMERIC_FIELDS = {
    "checkup_interval_seconds": int,
    "stale_after_seconds": int,
    "request_timeout": float,
    "port": int,
}


@dataclasses.dataclass(frozen=True)
class RelayConfig:
    """Relay configuration.

    Parameters
    ----------
    client_id : str
        OAuth client id registered with the thermostat provider.
    client_secret : str
        OAuth client secret.
    project_id : str
        Identifier of the document-store project. Informational only for the
        SQLite backend; reported at ``/debug/vars``.
    storage_bucket : str
        Directory receiving uploaded images.
    checkup_interval_seconds : int
        Seconds between auditor ticks. ``0`` falls back to one hour.
    stale_after_seconds : int
        Age after which a device is reported as not responding.
    store_path : str
        SQLite database file, or ``":memory:"``.
    local_device_name : str
        Document id the locally-posted sensor payload is stored under.
    auth_url, token_url, api_url : str
        Provider endpoints.
    request_timeout : float
        Total timeout in seconds for each provider request.
    port : int
        Listening port of the HTTP surface.
    """

    client_id: str
    client_secret: str
    project_id: str = ""
    storage_bucket: str = "images"
    checkup_interval_seconds: int = DEFAULT_CHECKUP_INTERVAL_SECONDS
    stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS
    store_path: str = "nestrelay.sqlite3"
    local_device_name: str = LOCAL_DEVICE_NAME
    auth_url: str = AUTH_URL
    token_url: str = TOKEN_URL
    api_url: str = API_URL
    request_timeout: float = 30.0
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if not self.client_id or not self.client_secret:
            raise RelayConfigError("config must set both clientId and clientSecret")
        if self.checkup_interval_seconds <= 0:
            object.__setattr__(self, "checkup_interval_seconds", DEFAULT_CHECKUP_INTERVAL_SECONDS)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], **overrides: Any) -> RelayConfig:
        """Create configuration from a JSON file.

        Unknown keys are ignored. Explicit keyword arguments override the
        file values.
        """
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RelayConfigError(f"error opening config at {str(path)!r}: {exc}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RelayConfigError(f"error parsing config {str(path)!r}: {exc}") from exc
        if not isinstance(data, dict):
            raise RelayConfigError(f"config {str(path)!r} must be a JSON object")

        kwargs: dict[str, Any] = {}
        for key, field_name in _FILE_KEY_MAP.items():
            value = data.get(key)
            if value is not None:
                kwargs[field_name] = value
        kwargs.update(overrides)
        return cls(**_coerce(kwargs))

    @classmethod
    def from_env(cls, **overrides: Any) -> RelayConfig:
        """Create configuration from the environment.

        ``NESTRELAY_CONFIG`` may point at a JSON file which is read first;
        ``NESTRELAY_<FIELD>`` variables (e.g. ``NESTRELAY_CLIENT_ID``) then
        override individual fields, and keyword arguments override both.
        """
        env = os.environ

        env_kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            val = env.get(f"NESTRELAY_{f.name.upper()}")
            if val is not None:
                env_kwargs[f.name] = val
        env_kwargs.update(overrides)

        path = env.get(CONFIG_PATH_ENV)
        if path:
            return cls.from_file(path, **env_kwargs)
        return cls(**_coerce(env_kwargs))

    def public_vars(self) -> dict[str, Any]:
        """Non-secret values suitable for the debug endpoint."""
        return {
            "projectId": self.project_id,
            "clientId": self.client_id,
            "checkupIntervalSeconds": self.checkup_interval_seconds,
        }


def _coerce(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Convert numeric fields that arrived as strings."""
    for name, kind in _NUMERIC_FIELDS.items():
        if name in kwargs and isinstance(kwargs[name], str):
            try:
                kwargs[name] = kind(kwargs[name])
            except ValueError as exc:
                raise RelayConfigError(f"invalid value for {name}: {kwargs[name]!r}") from exc
    return kwargs
