from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from nestrelay.config import RelayConfig
from nestrelay.exceptions import ForbiddenError, RelayError, UpstreamUnavailableError
from nestrelay.provider import NestClient

SNAPSHOT = {
    "devices": {
        "thermostats": {
            "dev-a": {"name": "Hall", "humidity": 42, "ambient_temperature_c": 21.5},
        },
    },
    "metadata": {"user_id": "user-1", "access_token": "token-1", "client_version": 1},
    "structures": {"s-1": {"name": "Home"}},
}


class FakeNestApi:
    """Token endpoint plus a root API that redirects to a second server."""

    def __init__(self) -> None:
        self.forms: list[dict[str, str]] = []
        self.auth_headers: list[str | None] = []
        self.shard_url = ""

    def api_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/oauth2/access_token", self.token)
        app.router.add_get("/", self.root)
        app.router.add_get("/loop", self.loop)
        app.router.add_get("/garbage", self.garbage)
        app.router.add_get("/slow", self.slow)
        app.router.add_post("/slow", self.slow)
        return app

    def shard_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.shard)
        return app

    async def token(self, request: web.Request) -> web.Response:
        form = dict(await request.post())
        self.forms.append({k: str(v) for k, v in form.items()})
        if form.get("code") != "abc" or form.get("client_secret") != "secret-456":
            return web.Response(status=400, reason="Bad Request", text="invalid code")
        return web.json_response({"access_token": "token-1", "expires_in": 315360000})

    async def root(self, request: web.Request) -> web.Response:
        self.auth_headers.append(request.headers.get("Authorization"))
        raise web.HTTPTemporaryRedirect(location=self.shard_url)

    async def loop(self, request: web.Request) -> web.Response:
        self.auth_headers.append(request.headers.get("Authorization"))
        raise web.HTTPTemporaryRedirect(location="/loop")

    async def garbage(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>maintenance</html>")

    async def slow(self, request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.json_response(SNAPSHOT)

    async def shard(self, request: web.Request) -> web.Response:
        auth = request.headers.get("Authorization")
        self.auth_headers.append(auth)
        if auth != "Bearer token-1":
            return web.Response(status=401, reason="Unauthorized", text="unauthorized")
        return web.json_response(SNAPSHOT)


@pytest_asyncio.fixture
async def nest_api() -> AsyncIterator[tuple[FakeNestApi, TestServer]]:
    api = FakeNestApi()
    async with TestServer(api.shard_app()) as shard, TestServer(api.api_app()) as server:
        api.shard_url = str(shard.make_url("/"))
        yield api, server


def _client_config(config: RelayConfig, server: TestServer, api_path: str = "/") -> RelayConfig:
    return dataclasses.replace(
        config,
        token_url=str(server.make_url("/oauth2/access_token")),
        api_url=str(server.make_url(api_path)),
    )


@pytest.mark.asyncio
async def test_exchange_code_posts_credentials_form(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    api, server = nest_api

    async with NestClient(_client_config(config, server)) as nest:
        token = await nest.exchange_code_for_token("abc")

    assert token == "token-1"
    assert api.forms == [
        {
            "client_id": "client-123",
            "client_secret": "secret-456",
            "code": "abc",
            "grant_type": "authorization_code",
        }
    ]


@pytest.mark.asyncio
async def test_rejected_code_is_forbidden_with_status_line(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    _, server = nest_api

    async with NestClient(_client_config(config, server)) as nest:
        with pytest.raises(ForbiddenError, match="unable to get access token: 400 Bad Request"):
            await nest.exchange_code_for_token("expired")


@pytest.mark.asyncio
async def test_snapshot_follows_cross_origin_redirect_with_bearer(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    api, server = nest_api

    async with NestClient(_client_config(config, server)) as nest:
        snapshot = await nest.fetch_snapshot("token-1")

    assert snapshot.user_id == "user-1"
    assert snapshot.thermostats == {"dev-a": {"name": "Hall", "humidity": 42, "ambient_temperature_c": 21.5}}
    assert api.auth_headers == ["Bearer token-1", "Bearer token-1"]


@pytest.mark.asyncio
async def test_invalid_token_is_forbidden(config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]) -> None:
    _, server = nest_api

    async with NestClient(_client_config(config, server)) as nest:
        with pytest.raises(ForbiddenError, match="unable to get metadata: 401 Unauthorized"):
            await nest.fetch_snapshot("revoked")


@pytest.mark.asyncio
async def test_redirect_loop_stops_after_ten_hops(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    api, server = nest_api

    async with NestClient(_client_config(config, server, "/loop")) as nest:
        with pytest.raises(UpstreamUnavailableError, match="stopped after 10 redirects") as exc_info:
            await nest.fetch_snapshot("token-1")

    assert exc_info.value.status_code == 502
    assert len(api.auth_headers) == 11


@pytest.mark.asyncio
async def test_unparseable_body_is_upstream_error(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    _, server = nest_api

    async with NestClient(_client_config(config, server, "/garbage")) as nest:
        with pytest.raises(UpstreamUnavailableError, match="unable to parse metadata json"):
            await nest.fetch_snapshot("token-1")


@pytest.mark.asyncio
async def test_connection_failure_is_upstream_error(config: RelayConfig) -> None:
    unreachable = dataclasses.replace(
        config, token_url="http://127.0.0.1:1/oauth2/access_token", api_url="http://127.0.0.1:1/"
    )

    async with NestClient(unreachable) as nest:
        with pytest.raises(UpstreamUnavailableError, match="unable to connect to nest"):
            await nest.exchange_code_for_token("abc")
        with pytest.raises(UpstreamUnavailableError, match="unable to connect to nest"):
            await nest.fetch_snapshot("token-1")


@pytest.mark.asyncio
async def test_client_requires_context_manager(config: RelayConfig) -> None:
    nest = NestClient(config)

    with pytest.raises(RelayError, match="not initialized"):
        await nest.fetch_snapshot("token-1")


@pytest.mark.asyncio
async def test_request_timeout_is_upstream_error(
    config: RelayConfig, nest_api: tuple[FakeNestApi, TestServer]
) -> None:
    _, server = nest_api
    slow = dataclasses.replace(
        config,
        token_url=str(server.make_url("/slow")),
        api_url=str(server.make_url("/slow")),
        request_timeout=0.1,
    )

    async with NestClient(slow) as nest:
        with pytest.raises(UpstreamUnavailableError, match="timed out waiting for nest") as exc_info:
            await nest.exchange_code_for_token("abc")
        assert exc_info.value.status_code == 502
        with pytest.raises(UpstreamUnavailableError, match="timed out waiting for nest"):
            await nest.fetch_snapshot("token-1")
