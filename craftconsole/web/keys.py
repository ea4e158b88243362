from aiohttp import web

from craftconsole.config import ConsoleSettings
from craftconsole.console.hub import BroadcastHub
from craftconsole.process.supervisor import ProcessSupervisor

SETTINGS_KEY = web.AppKey("settings", ConsoleSettings)
SUPERVISOR_KEY = web.AppKey("supervisor", ProcessSupervisor)
HUB_KEY = web.AppKey("hub", BroadcastHub)
SESSIONS_KEY = web.AppKey("sessions", set)
