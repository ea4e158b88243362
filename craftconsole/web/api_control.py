"""Server lifecycle endpoints: start, stop, status and health."""

import logging

from aiohttp import web
from pydantic import ValidationError

from craftconsole.config import LaunchConfig
from craftconsole.contracts import (
    START_ALREADY_RUNNING,
    START_FAILED,
    START_OK,
    STATUS_NOT_RUNNING,
    STATUS_RUNNING,
    STOP_FAILED,
    STOP_OK,
    VERSION,
)
from craftconsole.process.errors import ConsoleError
from craftconsole.process.models import StartRequest
from craftconsole.web.keys import HUB_KEY, SUPERVISOR_KEY

logger = logging.getLogger("craftconsole.web.api_control")

routes = web.RouteTableDef()


async def _launch_config_from_request(request: web.Request) -> LaunchConfig | None:
    if not request.can_read_body:
        return None
    body = await request.text()
    if not body.strip():
        return None
    try:
        start_request = StartRequest.model_validate_json(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(text=f"Invalid start request: {exc.errors()[0]['msg']}")
    if not start_request.file_path:
        return None
    return LaunchConfig.for_script(start_request.file_path, start_request.working_dir)


@routes.post("/start")
async def start_server(request: web.Request) -> web.Response:
    supervisor = request.app[SUPERVISOR_KEY]
    config = await _launch_config_from_request(request)
    try:
        started = await supervisor.start(config)
    except ConsoleError as exc:
        logger.error("Failed to start server: %s", exc)
        return web.Response(status=500, text=START_FAILED.format(reason=exc))
    return web.Response(text=START_OK if started else START_ALREADY_RUNNING)


@routes.post("/stop")
async def stop_server(request: web.Request) -> web.Response:
    supervisor = request.app[SUPERVISOR_KEY]
    try:
        stopped = await supervisor.stop()
    except ConsoleError as exc:
        logger.error("Failed to stop server: %s", exc)
        return web.Response(status=500, text=STOP_FAILED.format(reason=exc))
    return web.Response(text=STOP_OK if stopped else STATUS_NOT_RUNNING)


@routes.get("/status")
async def server_status(request: web.Request) -> web.Response:
    supervisor = request.app[SUPERVISOR_KEY]
    return web.Response(text=STATUS_RUNNING if supervisor.is_running() else STATUS_NOT_RUNNING)


@routes.get("/health")
async def health_check(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "status": "ok",
            "version": VERSION,
            "process": request.app[SUPERVISOR_KEY].snapshot(),
            "clients": request.app[HUB_KEY].subscriber_count,
        }
    )
