"""In-process document store."""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import datetime
from typing import Any

from nestrelay.store._base import (
    Document,
    field_matches,
    new_document_id,
    resolve_server_timestamps,
    utcnow,
)


class MemoryDocumentStore:
    """Document store kept in a dict.

    Every operation runs without yielding to the event loop, so each call
    (including :meth:`compare_and_set`) is atomic with respect to other
    tasks. Documents are deep-copied on the way in and out.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        docs = self._collections.get(collection)
        if docs is None:
            docs = {}
            self._collections[collection] = docs
        return docs

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._collection(collection)[doc_id] = resolve_server_timestamps(data, self.clock())

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        docs = self._collection(collection)
        doc_id = new_document_id()
        while doc_id in docs:
            doc_id = new_document_id()
        docs[doc_id] = resolve_server_timestamps(data, self.clock())
        return doc_id

    async def list_all(self, collection: str) -> list[Document]:
        docs = self._collections.get(collection, {})
        return [Document(id=doc_id, data=copy.deepcopy(docs[doc_id])) for doc_id in sorted(docs)]

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None or not field_matches(doc, field, expected):
            return False
        doc.update(resolve_server_timestamps(updates, self.clock()))
        return True

    async def close(self) -> None:
        return None
