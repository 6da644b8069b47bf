"""HTTP transport to the thermostat provider."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import aiohttp
from yarl import URL

from nestrelay._constants import MAX_REDIRECTS
from nestrelay.exceptions import UpstreamUnavailableError

_logger = logging.getLogger(__name__)

_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Status line and decoded body of a finished request."""

    status: int
    reason: str
    text: str
    url: str

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".strip()


class Transport(Protocol):
    """Structural transport interface used by :class:`~nestrelay.provider.NestClient`.

    Implementations raise :class:`UpstreamUnavailableError` when no HTTP
    response could be obtained; any response, whatever its status, is
    returned to the caller.
    """

    async def post_form(self, url: str, form: Mapping[str, str]) -> HttpResponse:
        ...

    async def get_bearer(self, url: str, access_token: str) -> HttpResponse:
        ...


class HttpTransport:
    """aiohttp transport that keeps the bearer header across redirects.

    aiohttp drops ``Authorization`` when a redirect changes origin, and the
    provider API answers its root URL with a redirect to a per-user shard,
    so redirects are followed by hand with the header re-sent on each hop.
    """

    def __init__(self, http_session: aiohttp.ClientSession, *, max_redirects: int = MAX_REDIRECTS) -> None:
        self._http = http_session
        self._max_redirects = max_redirects

    async def post_form(self, url: str, form: Mapping[str, str]) -> HttpResponse:
        _logger.debug("POST %s", url)
        try:
            async with self._http.post(url, data=dict(form)) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, reason=resp.reason or "", text=text, url=str(resp.url))
        except TimeoutError as exc:
            raise UpstreamUnavailableError("timed out waiting for nest", url=url) from exc
        except aiohttp.ClientError as exc:
            raise UpstreamUnavailableError(f"unable to connect to nest: {exc}", url=url) from exc

    async def get_bearer(self, url: str, access_token: str) -> HttpResponse:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
        }
        target = URL(url)
        for hop in range(self._max_redirects + 1):
            _logger.debug("GET %s (hop %d)", target, hop)
            try:
                async with self._http.get(target, headers=headers, allow_redirects=False) as resp:
                    location = resp.headers.get("Location")
                    if resp.status in _REDIRECT_STATUSES and location:
                        target = resp.url.join(URL(location))
                        continue
                    text = await resp.text()
                    return HttpResponse(status=resp.status, reason=resp.reason or "", text=text, url=str(resp.url))
            except TimeoutError as exc:
                raise UpstreamUnavailableError("timed out waiting for nest", url=str(target)) from exc
            except aiohttp.ClientError as exc:
                raise UpstreamUnavailableError(f"unable to connect to nest: {exc}", url=str(target)) from exc
        raise UpstreamUnavailableError(f"stopped after {self._max_redirects} redirects", url=url)
