"""Telemetry fan-out into device snapshots and per-device logs.

Every write lands twice::

    device/<name>                 current snapshot, overwritten in place
    device/<name>/log/<log_key>   running log, one entry per key

Both documents carry the same attributes plus a store-assigned
``timestamp``. One relay invocation uses one log key for every device it
touches, so readings taken together can be correlated later. Two
invocations within the same second share a key and the later one wins.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from nestrelay._constants import (
    DEVICE_COLLECTION,
    LOCAL_DEVICE_NAME,
    NAME_FIELD,
    TIMESTAMP_FIELD,
    device_log,
)
from nestrelay.exceptions import InvalidDataError
from nestrelay.linker import OAuthLinker
from nestrelay.models._base import TelemetryAttributes
from nestrelay.provider import TelemetryProvider
from nestrelay.store import SERVER_TIMESTAMP, DocumentStore

_logger = logging.getLogger(__name__)


def key_for_now(now: datetime | None = None) -> str:
    """RFC3339 UTC key at second precision, e.g. ``2024-01-01T00:00:00Z``."""
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def display_name(device_id: str, attributes: Mapping[str, Any]) -> str:
    """The provider ``name`` attribute when it is a non-empty string, else *device_id*."""
    name = attributes.get(NAME_FIELD)
    if isinstance(name, str) and name:
        return name
    return device_id


class TelemetryRelay:
    """Writes telemetry snapshots and reads back their freshness."""

    def __init__(
        self,
        store: DocumentStore,
        provider: TelemetryProvider,
        linker: OAuthLinker,
        *,
        local_device_name: str = LOCAL_DEVICE_NAME,
    ) -> None:
        self._store = store
        self._provider = provider
        self._linker = linker
        self._local_device_name = local_device_name

    async def _write_device(self, name: str, log_key: str, attributes: Mapping[str, Any]) -> None:
        record = {**attributes, TIMESTAMP_FIELD: SERVER_TIMESTAMP}
        await self._store.set(DEVICE_COLLECTION, name, record)
        await self._store.set(device_log(name), log_key, record)

    async def relay_external_snapshot(self, log_key: str) -> list[str]:
        """Fetch every linked account's thermostats and record them under *log_key*.

        Accounts are processed one after another. A provider failure aborts
        the call; devices already written stay written.

        Returns
        -------
        list[str]
            Device names written, in write order.
        """
        written: list[str] = []
        accounts = await self._linker.list_linked_accounts()
        for user_id, access_token in accounts.items():
            snapshot = await self._provider.fetch_snapshot(access_token)
            for device_id, attributes in snapshot.thermostats.items():
                name = display_name(device_id, attributes)
                await self._write_device(name, log_key, attributes)
                written.append(name)
            _logger.debug("Relayed %d thermostat(s) for user %s", len(snapshot.thermostats), user_id)
        return written

    async def relay_local_payload(self, log_key: str, attributes: TelemetryAttributes) -> str:
        """Record a sensor payload for the local device under *log_key*.

        The payload is stored as given; unknown fields pass through. The
        caller's mapping is not modified.
        """
        await self._write_device(self._local_device_name, log_key, attributes)
        return self._local_device_name

    async def get_most_recent_timestamps(self) -> dict[str, datetime]:
        """Map each device name to the time its snapshot was last written.

        Raises
        ------
        InvalidDataError
            Any device snapshot lacks a datetime ``timestamp``; no partial
            result is returned.
        """
        timestamps: dict[str, datetime] = {}
        for doc in await self._store.list_all(DEVICE_COLLECTION):
            value = doc.data.get(TIMESTAMP_FIELD)
            if not isinstance(value, datetime):
                raise InvalidDataError(f"device {doc.id} has invalid timestamp: {value!r}")
            timestamps[doc.id] = value
        return timestamps
