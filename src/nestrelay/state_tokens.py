"""Single-use anti-forgery tokens for the OAuth round trip."""

from __future__ import annotations

import logging

from nestrelay._constants import AUTH_COLLECTION, CREATED_FIELD, UPDATED_FIELD, USED_FIELD
from nestrelay.exceptions import StateTokenAlreadyUsedError, StateTokenNotFoundError
from nestrelay.models.records import StateToken
from nestrelay.store import SERVER_TIMESTAMP, DocumentStore

_logger = logging.getLogger(__name__)


class StateTokenManager:
    """Creates state tokens and consumes each at most once."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_token(self) -> str:
        """Insert an unused token and return its store-assigned id.

        The creation time comes from the store clock, never from the caller.
        """
        token_id = await self._store.add(
            AUTH_COLLECTION,
            {USED_FIELD: False, CREATED_FIELD: SERVER_TIMESTAMP},
        )
        _logger.debug("Created state token %s", token_id)
        return token_id

    async def get_token(self, token_id: str) -> StateToken | None:
        data = await self._store.get(AUTH_COLLECTION, token_id)
        if data is None:
            return None
        return StateToken.from_document(token_id, data)

    async def validate_and_consume(self, token_id: str) -> StateToken:
        """Mark *token_id* used, failing if it is unknown or already used.

        The flip is a compare-and-set on ``used``; when two callbacks race
        for the same token the loser gets :class:`StateTokenAlreadyUsedError`.
        """
        token = await self.get_token(token_id)
        if token is None:
            raise StateTokenNotFoundError("unknown oauth state")
        if token.used:
            raise StateTokenAlreadyUsedError("invalid oauth state")

        consumed = await self._store.compare_and_set(
            AUTH_COLLECTION,
            token_id,
            USED_FIELD,
            False,
            {USED_FIELD: True, UPDATED_FIELD: SERVER_TIMESTAMP},
        )
        if not consumed:
            _logger.warning("State token %s was consumed concurrently", token_id)
            raise StateTokenAlreadyUsedError("invalid oauth state")
        return token.model_copy(update={"used": True})
