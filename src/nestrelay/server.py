"""HTTP surface of the relay.

Routes:
  - ``GET /login``             redirect to the provider's OAuth page
  - ``GET /oauth``             OAuth callback (``code``, ``state``)
  - ``POST /log``              local sensor payload, relayed with a provider poll
  - ``POST /image/{filename}`` JPEG upload
  - ``GET /debug/vars``        auditor metrics and public config

Errors answer with the error's status and its message as plain text.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta
from typing import Any

from aiohttp import web

from nestrelay.auditor import InMemoryAuditorMetrics, PeriodicAuditor
from nestrelay.blobs import JPEG_CONTENT_TYPE, BlobStore, FilesystemBlobStore, blob_path
from nestrelay.config import RelayConfig
from nestrelay.exceptions import BadRequestError, RelayError
from nestrelay.linker import OAuthLinker
from nestrelay.models._base import validate_attributes
from nestrelay.provider import NestClient, TelemetryProvider
from nestrelay.relay import TelemetryRelay, key_for_now
from nestrelay.store import DocumentStore, SqliteDocumentStore

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", RelayConfig)
LINKER_KEY = web.AppKey("linker", OAuthLinker)
RELAY_KEY = web.AppKey("relay", TelemetryRelay)
BLOBS_KEY = web.AppKey("blobs", BlobStore)
AUDITOR_KEY = web.AppKey("auditor", PeriodicAuditor)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Translate :class:`RelayError` into its status code and message."""
    try:
        return await handler(request)
    except RelayError as exc:
        _logger.info("%s %s failed with %d: %s", request.method, request.path, exc.status_code, exc)
        return web.Response(status=exc.status_code, text=str(exc))


async def handle_login(request: web.Request) -> web.StreamResponse:
    _logger.info("Handling %s request to %s.", request.method, request.path_qs)
    auth_url = await request.app[LINKER_KEY].begin_login()
    raise web.HTTPFound(location=auth_url, text="Redirecting")


async def handle_oauth(request: web.Request) -> web.StreamResponse:
    _logger.info("Handling %s request to %s.", request.method, request.path)
    params = request.query
    await request.app[LINKER_KEY].complete_login(params.get("code"), params.get("state"))
    return web.Response(text="Logged in successfully.")


async def handle_log(request: web.Request) -> web.StreamResponse:
    _logger.info("Handling %s request to %s.", request.method, request.path_qs)
    body = await request.read()
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadRequestError(f"unable to parse json: {exc}") from exc
    attributes = validate_attributes(payload)

    # One key for the sensor reading and the thermostat poll it triggers.
    key = key_for_now()
    relay = request.app[RELAY_KEY]
    await relay.relay_local_payload(key, attributes)
    await relay.relay_external_snapshot(key)
    return web.Response(text="ack")


async def handle_image(request: web.Request) -> web.StreamResponse:
    _logger.info("Handling %s request to %s.", request.method, request.path_qs)
    filename = request.match_info["filename"]
    content_type = request.headers.get("Content-Type", "")
    if content_type != JPEG_CONTENT_TYPE:
        raise BadRequestError(f"invalid content type {content_type}")

    data = await request.read()
    path = blob_path(filename)
    await request.app[BLOBS_KEY].write(path, content_type, data)
    return web.Response(text=filename)


async def handle_debug_vars(request: web.Request) -> web.StreamResponse:
    payload: dict[str, Any] = {}
    metrics = request.app[AUDITOR_KEY].metrics
    if isinstance(metrics, InMemoryAuditorMetrics):
        payload.update(metrics.as_dict())
    payload.update(request.app[CONFIG_KEY].public_vars())
    return web.json_response(payload)


async def _auditor_ctx(app: web.Application) -> AsyncIterator[None]:
    task = asyncio.create_task(app[AUDITOR_KEY].run_forever(), name="nestrelay-auditor")
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def create_app(
    config: RelayConfig,
    store: DocumentStore,
    provider: TelemetryProvider,
    *,
    blobs: BlobStore | None = None,
    auditor: PeriodicAuditor | None = None,
    run_auditor: bool = True,
) -> web.Application:
    """Wire the components into an aiohttp application."""
    linker = OAuthLinker(config, store, provider)
    relay = TelemetryRelay(store, provider, linker, local_device_name=config.local_device_name)
    if auditor is None:
        auditor = PeriodicAuditor(
            relay,
            interval=config.checkup_interval_seconds,
            stale_after=timedelta(seconds=config.stale_after_seconds),
        )

    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[LINKER_KEY] = linker
    app[RELAY_KEY] = relay
    app[BLOBS_KEY] = blobs if blobs is not None else FilesystemBlobStore(config.storage_bucket)
    app[AUDITOR_KEY] = auditor

    app.router.add_get("/login", handle_login)
    app.router.add_get("/oauth", handle_oauth)
    app.router.add_post("/log", handle_log)
    app.router.add_post("/image/{filename}", handle_image)
    app.router.add_get("/debug/vars", handle_debug_vars)

    if run_auditor:
        app.cleanup_ctx.append(_auditor_ctx)
    return app


async def build_app(config: RelayConfig) -> web.Application:
    """Open the SQLite store and the provider client, then build the app."""
    resources = contextlib.AsyncExitStack()
    store = await resources.enter_async_context(SqliteDocumentStore(config.store_path))
    nest = await resources.enter_async_context(NestClient(config))

    app = create_app(config, store, nest)

    async def _close(_app: web.Application) -> None:
        await resources.aclose()

    app.on_cleanup.append(_close)
    return app
