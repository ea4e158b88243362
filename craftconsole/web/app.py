import asyncio
import logging
from typing import AsyncIterator

from aiohttp import web

from craftconsole.config import ConsoleSettings
from craftconsole.console.hub import BroadcastHub
from craftconsole.process.supervisor import ProcessSupervisor
from craftconsole.web.api_console import routes as console_routes
from craftconsole.web.api_control import routes as control_routes
from craftconsole.web.keys import HUB_KEY, SESSIONS_KEY, SETTINGS_KEY, SUPERVISOR_KEY

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger("craftconsole.web")

BROADCAST_TASK_KEY = web.AppKey("broadcast_task", asyncio.Task)


async def _console_lifecycle(app: web.Application) -> AsyncIterator[None]:
    hub = app[HUB_KEY]
    supervisor = app[SUPERVISOR_KEY]
    app[BROADCAST_TASK_KEY] = asyncio.create_task(hub.run_forever(supervisor.outbound))
    logger.info("Console service ready (launch command: %s)", _describe_launch(app[SETTINGS_KEY]))

    yield

    logger.info("Stopping supervised server...")
    await supervisor.stop()
    task = app[BROADCAST_TASK_KEY]
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    hub.close_all()
    logger.info("Console service stopped.")


async def _close_sessions(app: web.Application) -> None:
    sessions = list(app[SESSIONS_KEY])
    if sessions:
        logger.info("Closing %d console sessions...", len(sessions))
    for session in sessions:
        await session.transport.close()


def _describe_launch(settings: ConsoleSettings) -> str:
    if settings.launch is None:
        return "none, pass file_path to /start"
    return " ".join(settings.launch.command)


def create_app(
    settings: ConsoleSettings | None = None,
    *,
    supervisor: ProcessSupervisor | None = None,
    hub: BroadcastHub | None = None,
) -> web.Application:
    """Build the console service with its supervisor and broadcast hub."""
    settings = settings or ConsoleSettings()
    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[SUPERVISOR_KEY] = supervisor or ProcessSupervisor(settings.launch)
    app[HUB_KEY] = hub or BroadcastHub(max_backlog=settings.max_backlog)
    app[SESSIONS_KEY] = set()
    app.add_routes(control_routes)
    app.add_routes(console_routes)
    app.cleanup_ctx.append(_console_lifecycle)
    app.on_shutdown.append(_close_sessions)
    return app


def run_app(settings: ConsoleSettings) -> None:
    web.run_app(create_app(settings), host=settings.host, port=settings.port)
