"""Document store capability.

The relay persists everything as schemaless documents addressed by a
collection path and a document id. Collection paths nest with slashes,
so ``device/Hall/log`` is the log sub-collection of document ``Hall`` in
``device``. Collections and documents are independent: writing a
sub-collection never creates its parent document.
"""

from __future__ import annotations

import copy
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20


class _ServerTimestamp:
    """Sentinel field value replaced by the store's clock at write time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: dict[int, Any]) -> _ServerTimestamp:
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_document_id() -> str:
    """Random 20-character alphanumeric id for auto-keyed documents."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def resolve_server_timestamps(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Deep-copy *data*, replacing top-level ``SERVER_TIMESTAMP`` values with *now*."""
    return {key: now if value is SERVER_TIMESTAMP else copy.deepcopy(value) for key, value in data.items()}


@dataclass(frozen=True, slots=True)
class Document:
    """A stored document and its id."""

    id: str
    data: dict[str, Any]


class DocumentStore(Protocol):
    """Structural interface of the document database.

    Implementations raise :class:`~nestrelay.exceptions.StoreUnavailableError`
    when the backend cannot be reached or rejects an operation.
    """

    clock: Callable[[], datetime]

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a copy of the document, or ``None`` if it does not exist."""
        ...

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or wholly overwrite a document."""
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document under a new store-assigned id and return the id."""
        ...

    async def list_all(self, collection: str) -> list[Document]:
        """Every document directly inside *collection*, ordered by id."""
        ...

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        """Merge *updates* into a document only while ``field == expected``.

        Returns ``False`` when the document is missing or the field no longer
        holds *expected*; in that case nothing is written.
        """
        ...

    async def close(self) -> None:
        ...


def field_matches(data: dict[str, Any], field: str, expected: Any) -> bool:
    """Strict equality of ``data[field]`` and *expected* (``0`` does not match ``False``)."""
    if field not in data:
        return False
    current = data[field]
    return type(current) is type(expected) and current == expected
