"""Local HTTP front of the cache layer (aiohttp.web).

Requests are addressed as ``/<absolute-url>`` (e.g.
``/https://api.mapbox.com/v4/...``); any other path is resolved against the
app scope URL. Each one is turned into a RequestIdentity and handed to the
CacheRouter. Control endpoints live under ``/__offline__``:

    POST /__offline__/commands   one command (JSON body or plain text)
    GET  /__offline__/events     WebSocket: events out, commands in
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import weakref
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

from aiohttp import WSMsgType, web

from domain.models import RequestIdentity
from infrastructure.http.client import HOP_BY_HOP_HEADERS
from shared.constants import PROXY_CONTROL_PREFIX

if TYPE_CHECKING:
    from services.commands import CommandDispatcher
    from services.router import CacheRouter
    from shared.progress import ProgressChannel, Subscription

logger = logging.getLogger(__name__)

ROUTER_KEY = web.AppKey('router', object)
DISPATCHER_KEY = web.AppKey('dispatcher', object)
CHANNEL_KEY = web.AppKey('channel', object)
SOCKETS_KEY = web.AppKey('sockets', weakref.WeakSet)

DEFAULT_FETCH_MODE = 'cors'


def parse_command(raw: str) -> Any:
    """JSON when it parses, otherwise the stripped text ('getVersion')."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw.strip()


def target_url(request: web.Request, scope_url: str) -> str:
    raw = request.raw_path.lstrip('/')
    if raw.startswith(('http://', 'https://')):
        return raw
    return urljoin(scope_url, raw)


async def to_identity(request: web.Request, scope_url: str) -> RequestIdentity:
    body = await request.read() if request.can_read_body else None
    headers = tuple(
        (k, v) for k, v in request.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS
    )
    return RequestIdentity(
        url=target_url(request, scope_url),
        method=request.method,
        mode=request.headers.get('Sec-Fetch-Mode', DEFAULT_FETCH_MODE),
        headers=headers,
        body=body or None,
    )


async def handle_proxy(request: web.Request) -> web.Response:
    router: CacheRouter = request.app[ROUTER_KEY]
    identity = await to_identity(request, router.settings.app_scope_url)
    response = await router.handle(identity)
    return web.Response(
        status=response.status,
        headers={k: v for k, v in response.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS},
        body=response.body,
    )


async def handle_command(request: web.Request) -> web.Response:
    dispatcher: CommandDispatcher = request.app[DISPATCHER_KEY]
    ack = await dispatcher.dispatch(parse_command(await request.text()))
    status = 200 if ack.get('ok', True) else 400
    return web.json_response(ack, status=status)


async def _pump_events(ws: web.WebSocketResponse, sub: Subscription) -> None:
    async for event in sub:
        if ws.closed:
            return
        try:
            await ws.send_json(event.to_message())
        except ConnectionResetError:
            return


async def handle_events(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    channel: ProgressChannel = request.app[CHANNEL_KEY]
    dispatcher: CommandDispatcher = request.app[DISPATCHER_KEY]
    request.app[SOCKETS_KEY].add(ws)
    logger.info('Event stream opened (%s)', request.remote)

    with channel.subscribe() as sub:
        sender = asyncio.create_task(_pump_events(ws, sub))
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    ack = await dispatcher.dispatch(parse_command(msg.data))
                    await ws.send_json(ack)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning('Event stream error: %s', ws.exception())
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            if sub.dropped:
                logger.info('Event stream dropped %d events (slow client)', sub.dropped)
    logger.info('Event stream closed (%s)', request.remote)
    return ws


async def _close_sockets(app: web.Application) -> None:
    for ws in set(app[SOCKETS_KEY]):
        await ws.close(code=1001, message=b'Server shutdown')


def create_app(
    router: CacheRouter,
    dispatcher: CommandDispatcher,
    channel: ProgressChannel,
) -> web.Application:
    app = web.Application()
    app[ROUTER_KEY] = router
    app[DISPATCHER_KEY] = dispatcher
    app[CHANNEL_KEY] = channel
    app[SOCKETS_KEY] = weakref.WeakSet()
    app.router.add_post(f'{PROXY_CONTROL_PREFIX}/commands', handle_command)
    app.router.add_get(f'{PROXY_CONTROL_PREFIX}/events', handle_events)
    app.router.add_route('*', '/{target:.*}', handle_proxy)
    app.on_shutdown.append(_close_sockets)
    return app
