"""Async client for the thermostat provider API."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from nestrelay._redact import redact_for_log
from nestrelay._transport import HttpResponse, HttpTransport, Transport
from nestrelay.config import RelayConfig
from nestrelay.exceptions import ForbiddenError, RelayError, UpstreamUnavailableError
from nestrelay.models.nest import AccessTokenResponse, NestSnapshot

_logger = logging.getLogger(__name__)


class TelemetryProvider(Protocol):
    """What the linker and the relay need from the provider."""

    async def exchange_code_for_token(self, code: str) -> str:
        ...

    async def fetch_snapshot(self, access_token: str) -> NestSnapshot:
        ...


def _parse_json(response: HttpResponse, what: str) -> Any:
    try:
        return json.loads(response.text)
    except json.JSONDecodeError as exc:
        raise UpstreamUnavailableError(f"unable to parse {what} json: {exc}", url=response.url) from exc


class NestClient:
    """Async client for the Nest developer API.

    Usage::

        async with NestClient(config) as nest:
            token = await nest.exchange_code_for_token(code)
            snapshot = await nest.fetch_snapshot(token)

    A caller-owned ``aiohttp.ClientSession`` or a ready :class:`Transport`
    may be injected; otherwise the client opens and closes its own session.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport

    async def __aenter__(self) -> NestClient:
        if self._transport is None:
            if self._http_session is None:
                timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
                self._http_session = aiohttp.ClientSession(timeout=timeout)
            self._transport = HttpTransport(self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise RelayError("Client not initialized. Use 'async with NestClient(...) as client:'")
        return self._transport

    async def exchange_code_for_token(self, code: str) -> str:
        """Exchange an authorization code for an access token.

        Raises
        ------
        ForbiddenError
            The provider rejected the code (expired, reused, or unknown).
        UpstreamUnavailableError
            The provider could not be reached or answered garbage.
        """
        transport = self._require_transport()
        form = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "code": code,
            "grant_type": "authorization_code",
        }
        _logger.debug("Exchanging code form=%s", redact_for_log(form))
        response = await transport.post_form(self._config.token_url, form)
        if response.status != 200:
            raise ForbiddenError(f"unable to get access token: {response.status_line}")

        payload = _parse_json(response, "access token")
        try:
            token = AccessTokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamUnavailableError(
                f"access token response missing fields: {exc.error_count()} error(s)", url=response.url
            ) from exc
        return token.access_token

    async def fetch_snapshot(self, access_token: str) -> NestSnapshot:
        """Fetch devices and metadata visible to *access_token*.

        Raises
        ------
        ForbiddenError
            The token is invalid or expired.
        UpstreamUnavailableError
            Transport failure, too many redirects, or an unreadable body.
        """
        transport = self._require_transport()
        response = await transport.get_bearer(self._config.api_url, access_token)
        if response.status != 200:
            raise ForbiddenError(f"unable to get metadata: {response.status_line}: {response.text[:200]}")

        payload = _parse_json(response, "metadata")
        _logger.debug("Snapshot payload=%s", redact_for_log(payload))
        try:
            return NestSnapshot.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamUnavailableError(
                f"metadata response has unexpected shape: {exc.error_count()} error(s)", url=response.url
            ) from exc
