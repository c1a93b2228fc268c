from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from console_core.errors import TypedConsoleError
from console_core.logging import log_fields

from agent_console.sync.models import SESSION_STATUS_STARTING, SessionInfo

LOGGER = logging.getLogger("agent_console.poller")

DEFAULT_POLL_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_MISSED_POLLS = 20


class SessionStatusPoller:
    """Refetch the session list while one session is still starting.

    The push stream only carries events once the agent process has bound its
    port, so this fills the gap. ``current_status`` is read before every tick;
    the loop ends as soon as the session leaves "starting", whichever path
    (poll or push) moved it. It also gives up after ``max_missed_polls`` consecutive lists that do not
    contain the session at all.
    """

    def __init__(
        self,
        *,
        session_id: str,
        fetch_sessions: Callable[[], Awaitable[list[SessionInfo]]],
        current_status: Callable[[], str],
        on_update: Callable[[SessionInfo], Any],
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_missed_polls: int = DEFAULT_MAX_MISSED_POLLS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session_id = session_id
        self.interval = max(0.0, float(interval))
        self.max_missed_polls = max(1, int(max_missed_polls))
        self._fetch_sessions = fetch_sessions
        self._current_status = current_status
        self._on_update = on_update
        self._sleep = sleep
        self._last_seen: SessionInfo | None = None
        self._task: asyncio.Task[SessionInfo | None] | None = None
        self.ticks = 0
        self.missed = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[SessionInfo | None]:
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def run(self) -> SessionInfo | None:
        while self._current_status() == SESSION_STATUS_STARTING:
            await self._sleep(self.interval)
            if self._current_status() != SESSION_STATUS_STARTING:
                break
            self.ticks += 1
            try:
                sessions = await self._fetch_sessions()
            except (TypedConsoleError, ConnectionError, TimeoutError) as exc:
                LOGGER.debug(
                    "Session poll failed: %s",
                    exc,
                    extra=log_fields(
                        session_id=self.session_id,
                        component="poller",
                        operation="poll",
                        result="error",
                        error_class=type(exc).__name__,
                    ),
                )
                continue
            found = next((session for session in sessions if session.id == self.session_id), None)
            if found is None:
                self.missed += 1
                if self.missed >= self.max_missed_polls:
                    LOGGER.warning(
                        "Session %s missing from %d consecutive polls; giving up",
                        self.session_id,
                        self.missed,
                        extra=log_fields(
                            session_id=self.session_id, component="poller", operation="poll", result="missing"
                        ),
                    )
                    break
                continue
            self.missed = 0
            if found == self._last_seen:
                continue
            self._last_seen = found
            self._on_update(found)
        LOGGER.debug(
            "Session poller finished status=%s",
            self._current_status(),
            extra=log_fields(session_id=self.session_id, component="poller", operation="poll", result="stopped"),
        )
        return self._last_seen


__all__ = ["DEFAULT_MAX_MISSED_POLLS", "DEFAULT_POLL_INTERVAL_SECONDS", "SessionStatusPoller"]
