"""Documents owned by the relay components."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from nestrelay._constants import ACCESS_TOKEN_FIELD, CREATED_FIELD, UPDATED_FIELD, USED_FIELD
from nestrelay.models._base import RelayBaseModel


class StateToken(RelayBaseModel):
    """Anti-forgery token backing one OAuth round trip.

    ``used`` flips from ``False`` to ``True`` exactly once.
    """

    id: str
    used: bool
    created: datetime | None = None
    updated: datetime | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> StateToken:
        return cls(
            id=doc_id,
            used=data.get(USED_FIELD) is not False,
            created=data.get(CREATED_FIELD),
            updated=data.get(UPDATED_FIELD),
        )


class LinkedAccount(RelayBaseModel):
    """A provider user and the access token granted for them."""

    user_id: str
    access_token: str

    def to_document(self) -> dict[str, Any]:
        return {ACCESS_TOKEN_FIELD: self.access_token}
