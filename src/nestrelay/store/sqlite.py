"""SQLite-backed document store."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from nestrelay.exceptions import InvalidDataError, StoreUnavailableError
from nestrelay.store._base import (
    Document,
    field_matches,
    new_document_id,
    resolve_server_timestamps,
    utcnow,
)

_logger = logging.getLogger(__name__)

# Each row is an envelope: the document fields as plain JSON, plus the names
# of the top-level fields that held datetimes. Nothing inside the fields is
# interpreted on read, so any JSON value round-trips unchanged.
_FIELDS_KEY = "fields"
_DATETIMES_KEY = "datetimes"


def _reject_nested(value: Any) -> Any:
    if isinstance(value, datetime):
        raise InvalidDataError("datetimes are only supported as top-level document fields")
    raise InvalidDataError(f"value of type {type(value).__name__} cannot be stored")


def _dumps(data: dict[str, Any]) -> str:
    fields: dict[str, Any] = {}
    datetimes: list[str] = []
    for key, value in data.items():
        if isinstance(value, datetime):
            fields[key] = value.isoformat()
            datetimes.append(key)
        else:
            fields[key] = value
    envelope = {_FIELDS_KEY: fields, _DATETIMES_KEY: sorted(datetimes)}
    return json.dumps(envelope, default=_reject_nested, separators=(",", ":"), sort_keys=True)


def _loads(raw: str, where: str) -> dict[str, Any]:
    """Decode a row written by :func:`_dumps`.

    Raises
    ------
    InvalidDataError
        The row is not a well-formed envelope.
    """
    try:
        envelope = json.loads(raw)
        fields: dict[str, Any] = envelope[_FIELDS_KEY]
        for key in envelope[_DATETIMES_KEY]:
            fields[key] = datetime.fromisoformat(fields[key])
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidDataError(f"unable to decode {where}: {exc}") from exc
    if not isinstance(fields, dict):
        raise InvalidDataError(f"unable to decode {where}: fields is not an object")
    return fields


class SqliteDocumentStore:
    """Document store keeping one JSON row per document.

    Usage::

        async with SqliteDocumentStore("relay.sqlite3") as store:
            await store.set("device", "Hall", {"humidity": 40})

    :meth:`compare_and_set` issues a conditional ``UPDATE`` against the exact
    row contents it read, so concurrent writers (tasks or processes) cannot
    both win.
    """

    def __init__(self, db_path: str, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.db_path = db_path
        self.clock = clock
        self._db: aiosqlite.Connection | None = None

    async def __aenter__(self) -> SqliteDocumentStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                );
                """
            )
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"unable to open document store at {self.db_path}: {exc}") from exc
        _logger.info("SQLite document store opened at %s", self.db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            _logger.info("SQLite document store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError("document store not initialized; call initialize() first")
        return self._db

    async def _fetch_raw(self, collection: str, doc_id: str) -> str | None:
        async with self.db.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            raw = await self._fetch_raw(collection, doc_id)
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(
                f"unable to read {collection}/{doc_id}: {exc}", collection=collection, doc_id=doc_id
            ) from exc
        return _loads(raw, f"{collection}/{doc_id}") if raw is not None else None

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        payload = _dumps(resolve_server_timestamps(data, self.clock()))
        try:
            await self.db.execute(
                "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?) "
                "ON CONFLICT (collection, id) DO UPDATE SET data = excluded.data",
                (collection, doc_id, payload),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(
                f"unable to write {collection}/{doc_id}: {exc}", collection=collection, doc_id=doc_id
            ) from exc

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        payload = _dumps(resolve_server_timestamps(data, self.clock()))
        try:
            while True:
                doc_id = new_document_id()
                cursor = await self.db.execute(
                    "INSERT OR IGNORE INTO documents (collection, id, data) VALUES (?, ?, ?)",
                    (collection, doc_id, payload),
                )
                if cursor.rowcount == 1:
                    break
            await self.db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"unable to add to {collection}: {exc}", collection=collection) from exc
        return doc_id

    async def list_all(self, collection: str) -> list[Document]:
        try:
            async with self.db.execute(
                "SELECT id, data FROM documents WHERE collection = ? ORDER BY id",
                (collection,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(f"unable to list {collection}: {exc}", collection=collection) from exc
        return [Document(id=row[0], data=_loads(row[1], f"{collection}/{row[0]}")) for row in rows]

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        try:
            raw = await self._fetch_raw(collection, doc_id)
            if raw is None:
                return False
            data = _loads(raw, f"{collection}/{doc_id}")
            if not field_matches(data, field, expected):
                return False
            data.update(resolve_server_timestamps(updates, self.clock()))
            cursor = await self.db.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ? AND data = ?",
                (_dumps(data), collection, doc_id, raw),
            )
            await self.db.commit()
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(
                f"unable to update {collection}/{doc_id}: {exc}", collection=collection, doc_id=doc_id
            ) from exc
        return cursor.rowcount == 1
