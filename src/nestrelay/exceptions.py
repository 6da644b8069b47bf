"""Custom exception hierarchy for nestrelay.

Every error carries the HTTP status the web layer answers with; the
message text is sent verbatim as the response body.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all nestrelay errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class RelayConfigError(RelayError):
    """Invalid or missing configuration."""


class BadRequestError(RelayError):
    """Missing or malformed input."""

    status_code = 400


class ForbiddenError(RelayError):
    """Invalid OAuth state or code, or credentials rejected upstream."""

    status_code = 403


class StateTokenNotFoundError(ForbiddenError):
    """No state token with the given id exists."""


class StateTokenAlreadyUsedError(ForbiddenError):
    """The state token was consumed by an earlier callback."""


class StoreUnavailableError(RelayError):
    """The document store could not be reached or rejected a write."""

    def __init__(self, message: str, *, collection: str = "", doc_id: str = "") -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message)


class UpstreamUnavailableError(RelayError):
    """Transport-level failure talking to the telemetry provider."""

    status_code = 502

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class InvalidDataError(RelayError):
    """A persisted record was malformed when read back."""
