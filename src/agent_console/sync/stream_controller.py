"""Run a long-lived action stream and resume it across dropped connections.

The controller owns one :class:`StreamRunState`. ``start_fn`` opens the
stream; it receives the number of log lines already delivered (the resume
cursor) and the server-side session id learnt from a ``connected``/``session``
event, so a reconnect asks the server to skip what the client already has.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from console_core.errors import is_transient_error
from console_core.logging import log_fields

from agent_console.sync.envelope import Connected, LogReceived, StreamEnded, TerminalResult, Update
from agent_console.sync.log_window import LogWindow
from agent_console.sync.models import LogLine, RunResult

LOGGER = logging.getLogger("agent_console.stream")

PHASE_IDLE = "idle"
PHASE_RUNNING = "running"
PHASE_RECONNECTING = "reconnecting"
PHASE_COMPLETED = "completed"
PHASE_FAILED = "failed"

DEFAULT_MAX_RECONNECTS = 10
DEFAULT_RECONNECT_DELAY_SECONDS = 2.0
STREAM_ENDED_MESSAGE = "Completed successfully"

StreamSource = Union[AsyncIterator[Update], Awaitable[AsyncIterator[Update]]]
StartFn = Callable[[int, Union[str, None]], StreamSource]


def max_reconnects_message(max_reconnects: int) -> str:
    return f"Connection lost. Maximum reconnection attempts ({max_reconnects}) exceeded."


@dataclass
class StreamRunState:
    phase: str = PHASE_IDLE
    running: bool = False
    logs: list[LogLine] = field(default_factory=list)
    result: RunResult | None = None
    reconnecting: bool = False
    reconnection_count: int = 0
    resume_cursor: int = 0
    session_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "running": self.running,
            "logs": [line.to_payload() for line in self.logs],
            "result": self.result.to_payload() if self.result else None,
            "reconnecting": self.reconnecting,
            "reconnection_count": self.reconnection_count,
            "resume_cursor": self.resume_cursor,
            "session_id": self.session_id,
        }


class _Abandoned(Exception):
    pass


class ReconnectingStreamController:
    def __init__(
        self,
        *,
        max_reconnects: int = DEFAULT_MAX_RECONNECTS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        window: LogWindow | None = None,
        on_complete: Callable[[RunResult], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "",
    ) -> None:
        self.max_reconnects = max(0, int(max_reconnects))
        self.reconnect_delay = max(0.0, float(reconnect_delay))
        self.window = window
        self.name = name
        self._on_complete = on_complete
        self._sleep = sleep
        self._state = StreamRunState()
        self._generation = 0
        self._abandoned = False
        self._task: asyncio.Task[StreamRunState] | None = None

    @property
    def state(self) -> StreamRunState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def reset(self) -> None:
        self._cancel_task()
        self._generation += 1
        self._abandoned = False
        self._state = StreamRunState()
        if self.window is not None:
            self.window.clear()

    def cancel(self) -> None:
        """Abandon the current run; its state is frozen from here on."""
        if self._abandoned:
            return
        self._abandoned = True
        if self._state.running:
            self._state.running = False
            self._state.reconnecting = False
            self._log("Stream run abandoned", operation="cancel", result="abandoned")
        self._cancel_task()

    def add_log(self, text: str, *, error: bool = False) -> None:
        """Append a locally produced line; the resume cursor only counts server lines."""
        self._state.logs.append(LogLine(text=text, error=error))
        if self.window is not None:
            self.window.append(text)

    def start(self, start_fn: StartFn) -> asyncio.Task[StreamRunState]:
        loop = asyncio.get_running_loop()
        self._cancel_task()
        generation = self._begin()
        self._task = loop.create_task(self._run(generation, start_fn))
        return self._task

    async def run(self, start_fn: StartFn) -> StreamRunState:
        return await self._run(self._begin(), start_fn)

    def _begin(self) -> int:
        self._generation += 1
        self._abandoned = False
        self._state = StreamRunState(phase=PHASE_RUNNING, running=True)
        if self.window is not None:
            self.window.clear()
        self._log("Stream run started", operation="run", result="started")
        return self._generation

    async def _run(self, generation: int, start_fn: StartFn) -> StreamRunState:
        started = time.monotonic()
        attempts = 0
        try:
            while True:
                if attempts > 0:
                    self._set(generation, phase=PHASE_RECONNECTING, reconnecting=True, reconnection_count=attempts)
                    self._log(
                        "Reconnecting stream attempt=%d cursor=%d",
                        attempts,
                        self._state.resume_cursor,
                        operation="reconnect",
                        result="scheduled",
                    )
                    await self._sleep(self.reconnect_delay)
                    self._check(generation)
                try:
                    settled = await self._attempt(generation, start_fn)
                except _Abandoned:
                    raise
                except Exception as exc:
                    if not is_transient_error(exc):
                        self._settle(generation, RunResult(ok=False, message=str(exc) or type(exc).__name__))
                        self._log(
                            "Stream run failed: %s",
                            exc,
                            operation="run",
                            result="failed",
                            error_class=type(exc).__name__,
                            started=started,
                            level=logging.WARNING,
                        )
                        break
                    self._log(
                        "Stream interrupted: %s",
                        exc,
                        operation="consume",
                        result="interrupted",
                        error_class=type(exc).__name__,
                    )
                    settled = False
                if settled:
                    self._log("Stream run settled", operation="run", result=self._state.phase, started=started)
                    break
                attempts += 1
                if attempts > self.max_reconnects:
                    self._settle(generation, RunResult(ok=False, message=max_reconnects_message(self.max_reconnects)))
                    self._log(
                        "Stream reconnection attempts exhausted",
                        operation="reconnect",
                        result="exhausted",
                        started=started,
                        level=logging.WARNING,
                    )
                    break
        except _Abandoned:
            pass
        return self._state

    async def _attempt(self, generation: int, start_fn: StartFn) -> bool:
        stream = await _open_stream(start_fn(self._state.resume_cursor, self._state.session_id))
        try:
            self._check(generation)
            self._set(generation, phase=PHASE_RUNNING, reconnecting=False)
            async for update in stream:
                self._check(generation)
                if self._handle(generation, update):
                    return True
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        self._check(generation)
        return False

    def _handle(self, generation: int, update: Update) -> bool:
        if isinstance(update, LogReceived):
            line = update.line
            if line.index is not None and line.index < self._state.resume_cursor:
                return False
            self._state.logs.append(line)
            self._state.resume_cursor += 1
            if self.window is not None:
                self.window.append(line.text)
            return False
        if isinstance(update, Connected):
            if update.session_id:
                self._state.session_id = update.session_id
            return False
        if isinstance(update, TerminalResult):
            self._settle(generation, update.result)
            return True
        if isinstance(update, StreamEnded):
            self._settle(generation, RunResult(ok=True, message=STREAM_ENDED_MESSAGE))
            return True
        return False

    def _settle(self, generation: int, result: RunResult) -> None:
        self._set(
            generation,
            phase=PHASE_COMPLETED if result.ok else PHASE_FAILED,
            running=False,
            reconnecting=False,
            result=result,
        )
        if self._on_complete is not None:
            self._on_complete(result)

    def _set(self, generation: int, **changes: Any) -> None:
        self._check(generation)
        for key, value in changes.items():
            setattr(self._state, key, value)

    def _check(self, generation: int) -> None:
        if self._abandoned or generation != self._generation:
            raise _Abandoned()

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _log(
        self,
        message: str,
        *args: Any,
        operation: str,
        result: str,
        error_class: str = "",
        started: float | None = None,
        level: int = logging.INFO,
    ) -> None:
        duration_ms = int((time.monotonic() - started) * 1000) if started is not None else 0
        LOGGER.log(
            level,
            message,
            *args,
            extra=log_fields(
                action_id=self.name,
                component="stream_controller",
                operation=operation,
                result=result,
                duration_ms=duration_ms,
                error_class=error_class,
            ),
        )


async def _open_stream(source: StreamSource) -> AsyncIterator[Update]:
    if inspect.isawaitable(source):
        source = await source
    return source


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


__all__ = [
    "DEFAULT_MAX_RECONNECTS",
    "DEFAULT_RECONNECT_DELAY_SECONDS",
    "PHASE_COMPLETED",
    "PHASE_FAILED",
    "PHASE_IDLE",
    "PHASE_RECONNECTING",
    "PHASE_RUNNING",
    "ReconnectingStreamController",
    "StartFn",
    "StreamRunState",
    "max_reconnects_message",
]
