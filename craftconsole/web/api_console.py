"""WebSocket endpoint streaming the server console."""

import logging

from aiohttp import web

from craftconsole.console.heartbeat import SessionHeartbeat
from craftconsole.console.session import ClientSession
from craftconsole.console.transport import AiohttpTransport
from craftconsole.web.keys import HUB_KEY, SESSIONS_KEY, SETTINGS_KEY, SUPERVISOR_KEY

logger = logging.getLogger("craftconsole.web.api_console")

routes = web.RouteTableDef()


@routes.get("/ws")
async def console_socket(request: web.Request) -> web.WebSocketResponse:
    """Upgrade to a WebSocket and bind it to a new console session."""
    settings = request.app[SETTINGS_KEY]
    # Pings and pongs must reach the session heartbeat.
    ws = web.WebSocketResponse(autoping=False)
    await ws.prepare(request)

    session = ClientSession(
        request.app[HUB_KEY],
        request.app[SUPERVISOR_KEY],
        AiohttpTransport(ws),
        heartbeat=SessionHeartbeat(
            interval_seconds=settings.heartbeat_interval_seconds,
            timeout_seconds=settings.client_timeout_seconds,
        ),
    )
    sessions = request.app[SESSIONS_KEY]
    sessions.add(session)
    try:
        reason = await session.run()
    finally:
        sessions.discard(session)
    logger.debug("Console socket from %s ended: %s", request.remote, reason)
    return ws
