"""Periodic checkup of device freshness."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from nestrelay._constants import DEFAULT_CHECKUP_INTERVAL_SECONDS, DEFAULT_STALE_AFTER_SECONDS
from nestrelay.relay import TelemetryRelay, key_for_now

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class StaleDevice:
    """A device whose last snapshot is older than the staleness threshold."""

    name: str
    last_seen: datetime
    age: timedelta


class AuditorMetrics(Protocol):
    """Sink for the auditor's introspection values."""

    def set_interval(self, seconds: float) -> None:
        ...

    def record_checkup(self, key: str) -> None:
        ...

    def record_stale(self, names: list[str]) -> None:
        ...


class InMemoryAuditorMetrics:
    """Keeps the latest auditor values for the debug endpoint."""

    def __init__(self) -> None:
        self.checkup_interval_seconds: float = 0
        self.last_checkup_time: str = ""
        self.checkup_count: int = 0
        self.stale_devices: list[str] = []

    def set_interval(self, seconds: float) -> None:
        self.checkup_interval_seconds = seconds

    def record_checkup(self, key: str) -> None:
        self.last_checkup_time = key
        self.checkup_count += 1

    def record_stale(self, names: list[str]) -> None:
        self.stale_devices = list(names)

    def as_dict(self) -> dict[str, Any]:
        return {
            "checkupIntervalSeconds": self.checkup_interval_seconds,
            "lastCheckupTime": self.last_checkup_time,
            "checkupCount": self.checkup_count,
            "staleDevices": self.stale_devices,
        }


class PeriodicAuditor:
    """Runs :meth:`checkup` every ``interval`` seconds until cancelled.

    Failures inside a checkup are logged and the loop carries on; there is
    no caller to report them to.
    """

    def __init__(
        self,
        relay: TelemetryRelay,
        *,
        interval: float = DEFAULT_CHECKUP_INTERVAL_SECONDS,
        stale_after: timedelta = timedelta(seconds=DEFAULT_STALE_AFTER_SECONDS),
        refresh: bool = False,
        metrics: AuditorMetrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._relay = relay
        self._interval = interval if interval > 0 else DEFAULT_CHECKUP_INTERVAL_SECONDS
        self._stale_after = stale_after
        self._refresh = refresh
        self._clock = clock
        self.metrics: AuditorMetrics = metrics if metrics is not None else InMemoryAuditorMetrics()

    @property
    def interval(self) -> float:
        return self._interval

    async def checkup(self) -> list[StaleDevice]:
        """One tick: optionally refresh provider data, then flag stale devices."""
        key = key_for_now(self._clock())
        _logger.info("%s: Checkup.", key)
        self.metrics.record_checkup(key)

        if self._refresh:
            try:
                await self._relay.relay_external_snapshot(key)
            except Exception:
                _logger.exception("Unable to relay thermostat data")

        try:
            timestamps = await self._relay.get_most_recent_timestamps()
            _logger.info("Device Timestamps: %s", {name: ts.isoformat() for name, ts in timestamps.items()})

            now = self._clock()
            stale: list[StaleDevice] = []
            for name, last_seen in timestamps.items():
                age = now - last_seen
                if age > self._stale_after:
                    _logger.warning("Device %s has not responded for >%s.", name, self._stale_after)
                    stale.append(StaleDevice(name=name, last_seen=last_seen, age=age))
        except Exception:
            _logger.exception("Unable to get most recent log data")
            return []
        self.metrics.record_stale([device.name for device in stale])
        return stale

    async def run_forever(self) -> None:
        """Tick until the task is cancelled."""
        self.metrics.set_interval(self._interval)
        _logger.info("Auditor started, interval=%ss", self._interval)
        while True:
            try:
                await self.checkup()
            except Exception:
                _logger.exception("Checkup failed")
            await asyncio.sleep(self._interval)
