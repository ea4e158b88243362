import asyncio
from pathlib import Path
from typing import Optional

import aiohttp
import httpx
import typer
from pydantic import ValidationError

from craftconsole.config import CONFIG_PATH, LaunchConfig, apply_env_overrides, load_settings, with_updates
from craftconsole.contracts import COMMAND_ACK

app = typer.Typer()

SERVICE_HOST = "127.0.0.1"
SERVICE_PORT = 8080


def _service_url(host: str, port: int) -> str:
    return f"http://{host}:{port}"


def _echo_response(response: httpx.Response) -> None:
    typer.echo(response.text)
    if response.status_code >= 400:
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    config_path: Path = typer.Option(CONFIG_PATH, "--config", help="Settings JSON file"),
    script: Optional[Path] = typer.Option(None, "--script", help="Server start script"),
):
    """Run the console service in the foreground."""
    from craftconsole.web.app import run_app

    updates: dict[str, object] = {}
    if host:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if script:
        updates["launch"] = LaunchConfig.for_script(script)
    try:
        settings = with_updates(apply_env_overrides(load_settings(config_path)), updates)
    except ValidationError as exc:
        typer.echo(f"Invalid settings: {exc}")
        raise typer.Exit(code=1)
    typer.echo(f"Console service listening on {_service_url(settings.host, settings.port)}")
    run_app(settings)


@app.command()
def start(
    script: Optional[str] = typer.Option(None, "--script", help="Server start script to launch"),
    host: str = typer.Option(SERVICE_HOST, "--host"),
    port: int = typer.Option(SERVICE_PORT, "--port"),
):
    """Start the supervised server."""
    body = {"file_path": script} if script else None
    try:
        response = httpx.post(f"{_service_url(host, port)}/start", json=body, timeout=30.0)
    except httpx.ConnectError:
        typer.echo("Console service: NOT RESPONDING (Connection refused)")
        raise typer.Exit(code=1)
    _echo_response(response)


@app.command()
def stop(
    host: str = typer.Option(SERVICE_HOST, "--host"),
    port: int = typer.Option(SERVICE_PORT, "--port"),
):
    """Stop the supervised server."""
    try:
        # Waits for the server to save and exit.
        response = httpx.post(f"{_service_url(host, port)}/stop", timeout=None)
    except httpx.ConnectError:
        typer.echo("Console service: NOT RESPONDING (Connection refused)")
        raise typer.Exit(code=1)
    _echo_response(response)


@app.command()
def status(
    host: str = typer.Option(SERVICE_HOST, "--host"),
    port: int = typer.Option(SERVICE_PORT, "--port"),
):
    """Check whether the supervised server is running."""
    try:
        response = httpx.get(f"{_service_url(host, port)}/status", timeout=5.0)
    except httpx.ConnectError:
        typer.echo("Console service: NOT RESPONDING (Connection refused)")
        raise typer.Exit(code=1)
    _echo_response(response)


async def _send_command(url: str, command: str) -> str:
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url) as ws:
            await ws.receive_str()  # welcome banner
            await ws.send_str(command)
            while True:
                frame = await ws.receive_str()
                if frame == COMMAND_ACK.format(command=command):
                    return frame


async def _attach(url: str) -> None:
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url) as ws:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    typer.echo(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    break


@app.command()
def send(
    command: str,
    host: str = typer.Option(SERVICE_HOST, "--host"),
    port: int = typer.Option(SERVICE_PORT, "--port"),
):
    """Send one console command to the server."""
    url = f"{_service_url(host, port)}/ws"
    try:
        ack = asyncio.run(_send_command(url, command))
    except (aiohttp.ClientError, TypeError) as exc:
        typer.echo(f"Failed to send command: {exc}")
        raise typer.Exit(code=1)
    typer.echo(ack)


@app.command()
def attach(
    host: str = typer.Option(SERVICE_HOST, "--host"),
    port: int = typer.Option(SERVICE_PORT, "--port"),
):
    """Stream the server console until interrupted."""
    url = f"{_service_url(host, port)}/ws"
    try:
        asyncio.run(_attach(url))
    except KeyboardInterrupt:
        pass
    except aiohttp.ClientError as exc:
        typer.echo(f"Console connection failed: {exc}")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
