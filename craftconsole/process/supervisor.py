"""Lifecycle owner for the single supervised server process."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from craftconsole.config import LaunchConfig
from craftconsole.process.errors import NotRunningError, ProcessIOError, SpawnError
from craftconsole.process.line_reader import pump_lines
from craftconsole.process.models import LogLine, LogOrigin, ProcessState

logger = logging.getLogger("craftconsole.process.supervisor")

READER_DRAIN_SECONDS = 2.0
STREAM_LIMIT_BYTES = 1024 * 1024

SpawnFn = Callable[..., Awaitable[asyncio.subprocess.Process]]


@dataclass
class ProcessHandle:
    """Live child process plus the tasks reading from it."""

    process: asyncio.subprocess.Process
    config: LaunchConfig
    started_at: datetime
    readers: list[asyncio.Task] = field(default_factory=list)
    watcher: asyncio.Task | None = None

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessSupervisor:
    """Start, stop and feed commands to one server process.

    Output from both pipes is pushed onto ``outbound`` as ``LogLine`` values
    for the broadcast hub to consume.
    """

    def __init__(
        self,
        launch_config: LaunchConfig | None = None,
        *,
        outbound: asyncio.Queue[LogLine] | None = None,
        spawn_fn: SpawnFn | None = None,
        reader_drain_seconds: float = READER_DRAIN_SECONDS,
    ) -> None:
        self.launch_config = launch_config
        self.outbound: asyncio.Queue[LogLine] = outbound if outbound is not None else asyncio.Queue()
        self.spawn_fn = spawn_fn or asyncio.create_subprocess_exec
        self.reader_drain_seconds = reader_drain_seconds
        self._state = ProcessState.STOPPED
        self._handle: ProcessHandle | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._stdin_lock = asyncio.Lock()

    @property
    def state(self) -> ProcessState:
        return self._state

    def is_running(self) -> bool:
        return self._state == ProcessState.RUNNING

    def snapshot(self) -> dict[str, Any]:
        handle = self._handle
        return {
            "state": self._state.value,
            "pid": handle.pid if handle else None,
            "started_at": handle.started_at.isoformat() if handle else None,
            "command": list(handle.config.command) if handle else None,
        }

    async def start(self, config: LaunchConfig | None = None) -> bool:
        """Spawn the server unless one is already live.

        Returns False when the call was a no-op.
        """
        async with self._lifecycle_lock:
            if self._state != ProcessState.STOPPED:
                logger.info("Start ignored; server is %s", self._state.value)
                return False
            config = config or self.launch_config
            if config is None:
                raise SpawnError("no launch command configured")

            self._state = ProcessState.STARTING
            try:
                process = await self.spawn_fn(
                    *config.command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(config.working_dir) if config.working_dir else None,
                    env=config.environment(),
                    limit=STREAM_LIMIT_BYTES,
                )
            except OSError as exc:
                self._state = ProcessState.STOPPED
                logger.error("Failed to spawn %s: %s", config.command[0], exc)
                raise SpawnError(f"{config.command[0]}: {exc.strerror or exc}") from exc

            handle = ProcessHandle(process=process, config=config, started_at=datetime.utcnow())
            if process.stdout is not None:
                handle.readers.append(
                    asyncio.create_task(pump_lines(process.stdout, LogOrigin.STDOUT, self.outbound))
                )
            if process.stderr is not None:
                handle.readers.append(
                    asyncio.create_task(pump_lines(process.stderr, LogOrigin.STDERR, self.outbound))
                )
            handle.watcher = asyncio.create_task(self._watch_exit(handle))
            self._handle = handle
            self._state = ProcessState.RUNNING
            logger.info("Server started (PID: %s)", process.pid)
            return True

    async def stop(self) -> bool:
        """Ask the server to stop and wait for it to exit.

        Falls back to killing the process when the stop command cannot be
        written or the exit does not arrive within the configured timeout.
        Returns False when nothing was running.
        """
        async with self._lifecycle_lock:
            handle = self._handle
            if handle is None or self._state == ProcessState.STOPPED:
                return False
            self._state = ProcessState.STOPPING
            logger.info("Stopping server (PID: %s)", handle.pid)
            try:
                if not await self._request_graceful_exit(handle):
                    self._kill(handle)
                await self._wait_for_exit(handle)
            finally:
                await self._release(handle)
            logger.info("Server stopped (exit code: %s)", handle.process.returncode)
            return True

    async def send_command(self, text: str) -> None:
        """Write one console command line to the server's stdin."""
        handle = self._handle
        if self._state != ProcessState.RUNNING or handle is None:
            raise NotRunningError()
        stdin = handle.process.stdin
        if stdin is None:
            raise NotRunningError("server stdin is not available")
        async with self._stdin_lock:
            try:
                stdin.write(f"{text}\n".encode("utf-8"))
                await stdin.drain()
            except OSError as exc:
                raise ProcessIOError(f"failed to write command: {exc}") from exc

    async def _request_graceful_exit(self, handle: ProcessHandle) -> bool:
        stdin = handle.process.stdin
        if stdin is None or stdin.is_closing():
            logger.warning("Server stdin unavailable; killing process")
            return False
        try:
            async with self._stdin_lock:
                stdin.write(f"{handle.config.stop_command}\n".encode("utf-8"))
                await stdin.drain()
        except OSError as exc:
            logger.warning("Stop command write failed (%s); killing process", exc)
            return False
        return True

    def _kill(self, handle: ProcessHandle) -> None:
        if handle.process.returncode is not None:
            return
        try:
            handle.process.kill()
        except ProcessLookupError:
            pass

    async def _wait_for_exit(self, handle: ProcessHandle) -> None:
        timeout = handle.config.stop_timeout_seconds
        try:
            await asyncio.wait_for(handle.process.wait(), timeout=timeout)
            return
        except asyncio.TimeoutError:
            logger.warning("Server did not exit within %ss; killing process", timeout)
        except Exception as exc:
            logger.error("Waiting for server exit failed: %s", exc)
            return
        self._kill(handle)
        try:
            await handle.process.wait()
        except Exception as exc:
            logger.error("Waiting for killed server failed: %s", exc)

    async def _release(self, handle: ProcessHandle) -> None:
        """Drop the handle and finish its reader tasks."""
        if self._handle is handle:
            self._handle = None
            self._state = ProcessState.STOPPED
        if handle.watcher is not None and handle.watcher is not asyncio.current_task():
            handle.watcher.cancel()
        if handle.readers:
            _, pending = await asyncio.wait(handle.readers, timeout=self.reader_drain_seconds)
            for task in pending:
                task.cancel()
        if handle.process.stdin is not None and not handle.process.stdin.is_closing():
            handle.process.stdin.close()

    async def _watch_exit(self, handle: ProcessHandle) -> None:
        """Notice the server exiting without a stop request."""
        try:
            returncode = await handle.process.wait()
        except Exception as exc:
            logger.error("Exit watcher failed for PID %s: %s", handle.pid, exc)
            return
        async with self._lifecycle_lock:
            if self._handle is not handle or self._state != ProcessState.RUNNING:
                return
            logger.warning("Server exited unexpectedly (PID: %s, exit code: %s)", handle.pid, returncode)
            await self._release(handle)
