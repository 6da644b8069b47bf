"""Document store layer.

Components talk to persistence only through :class:`DocumentStore`;
``MemoryDocumentStore`` backs tests and throwaway runs,
``SqliteDocumentStore`` backs the deployed relay.
"""

from nestrelay.store._base import SERVER_TIMESTAMP, Document, DocumentStore, new_document_id
from nestrelay.store.memory import MemoryDocumentStore
from nestrelay.store.sqlite import SqliteDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "new_document_id",
]
