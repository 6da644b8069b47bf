from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from nestrelay.config import RelayConfig
from nestrelay.exceptions import ForbiddenError, StoreUnavailableError, UpstreamUnavailableError
from nestrelay.models.nest import NestSnapshot
from nestrelay.store import MemoryDocumentStore


class FakeClock:
    """Settable clock shared by the store and the auditor."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingStore(MemoryDocumentStore):
    """Memory store that records calls and can fail or yield on demand."""

    def __init__(
        self,
        *,
        clock: FakeClock | None = None,
        fail_after_sets: int | None = None,
        yield_on_get: bool = False,
    ) -> None:
        super().__init__(clock=clock or FakeClock())
        self.calls: list[tuple[str, str]] = []
        self.fail_after_sets = fail_after_sets
        self.yield_on_get = yield_on_get
        self._sets = 0

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self.calls.append(("get", collection))
        result = await super().get(collection, doc_id)
        if self.yield_on_get:
            await asyncio.sleep(0)
        return result

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.calls.append(("set", collection))
        if self.fail_after_sets is not None and self._sets >= self.fail_after_sets:
            raise StoreUnavailableError(
                f"unable to write {collection}/{doc_id}: backend down", collection=collection, doc_id=doc_id
            )
        self._sets += 1
        await super().set(collection, doc_id, data)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        self.calls.append(("add", collection))
        return await super().add(collection, data)

    async def list_all(self, collection: str) -> list[Any]:
        self.calls.append(("list_all", collection))
        return await super().list_all(collection)

    async def compare_and_set(
        self, collection: str, doc_id: str, field: str, expected: Any, updates: dict[str, Any]
    ) -> bool:
        self.calls.append(("compare_and_set", collection))
        return await super().compare_and_set(collection, doc_id, field, expected, updates)


@dataclass
class FakeAccount:
    user_id: str
    thermostats: dict[str, dict[str, Any]]


@dataclass
class FakeNestProvider:
    """In-process stand-in for the provider API."""

    codes: dict[str, str] = field(default_factory=lambda: {"abc": "token-1"})
    accounts: dict[str, FakeAccount] = field(
        default_factory=lambda: {
            "token-1": FakeAccount(user_id="user-1", thermostats={"Hall": {"name": "Hall", "humidity": 42}}),
        }
    )
    unreachable: bool = False
    calls: dict[str, int] = field(default_factory=dict)

    def _record_call(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def exchange_code_for_token(self, code: str) -> str:
        self._record_call("exchange_code_for_token")
        if self.unreachable:
            raise UpstreamUnavailableError("unable to connect to nest: connection refused")
        token = self.codes.get(code)
        if token is None:
            raise ForbiddenError("unable to get access token: 400 Bad Request")
        return token

    async def fetch_snapshot(self, access_token: str) -> NestSnapshot:
        self._record_call("fetch_snapshot")
        if self.unreachable:
            raise UpstreamUnavailableError("unable to connect to nest: connection refused")
        account = self.accounts.get(access_token)
        if account is None:
            raise ForbiddenError("unable to get metadata: 401 Unauthorized: invalid token")
        return NestSnapshot.model_validate(
            {
                "devices": {"thermostats": account.thermostats},
                "metadata": {"user_id": account.user_id, "access_token": access_token, "client_version": 1},
                "structures": {},
            }
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> RecordingStore:
    return RecordingStore(clock=clock)


@pytest.fixture
def provider() -> FakeNestProvider:
    return FakeNestProvider()


@pytest.fixture
def config(tmp_path: Any) -> RelayConfig:
    return RelayConfig(
        client_id="client-123",
        client_secret="secret-456",
        project_id="relay-test",
        storage_bucket=str(tmp_path / "images"),
        store_path=":memory:",
    )
