from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from console_core.logging import log_fields

from agent_console.sync.models import SESSION_STATUS_STARTING
from agent_console.sync.poller import (
    DEFAULT_MAX_MISSED_POLLS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    SessionStatusPoller,
)

LOGGER = logging.getLogger("agent_console.sessions")


class SessionService:
    def __init__(
        self,
        *,
        domain: Any,
        hub_client: Any,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_missed_polls: int = DEFAULT_MAX_MISSED_POLLS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._domain = domain
        self._hub_client = hub_client
        self._poll_interval = poll_interval
        self._max_missed_polls = max_missed_polls
        self._sleep = sleep
        self._pollers: dict[str, SessionStatusPoller] = {}

    def sessions_payload(self) -> dict[str, Any]:
        return self._domain.sessions_payload()

    def session_payload(self, session_id: str) -> dict[str, Any]:
        return self._domain.session(session_id).to_payload()

    async def refresh(self) -> dict[str, Any]:
        sessions = await self._hub_client.fetch_sessions()
        changed = self._domain.replace_sessions(sessions)
        for info in sessions:
            if info.status == SESSION_STATUS_STARTING:
                self.watch_starting(info.id)
        LOGGER.debug(
            "Refreshed %d sessions (%d changed)",
            len(sessions),
            len(changed),
            extra=log_fields(component="sessions", operation="refresh", result="ok"),
        )
        return self._domain.sessions_payload()

    def watching(self, session_id: str) -> bool:
        poller = self._pollers.get(session_id)
        return poller is not None and poller.active

    def watch_starting(self, session_id: str) -> bool:
        """Poll the hub until ``session_id`` leaves "starting"; False if no poll is needed."""
        self._domain.session(session_id)
        self._prune_finished()
        if self._domain.status(session_id) != SESSION_STATUS_STARTING or self.watching(session_id):
            return False
        poller = SessionStatusPoller(
            session_id=session_id,
            fetch_sessions=self._hub_client.fetch_sessions,
            current_status=lambda: self._domain.status(session_id),
            on_update=self._domain.apply_session_update,
            interval=self._poll_interval,
            max_missed_polls=self._max_missed_polls,
            sleep=self._sleep,
        )
        self._pollers[session_id] = poller
        poller.start()
        LOGGER.info(
            "Watching starting session %s",
            session_id,
            extra=log_fields(session_id=session_id, component="sessions", operation="watch", result="started"),
        )
        return True

    def stop_watch(self, session_id: str) -> bool:
        poller = self._pollers.pop(session_id, None)
        if poller is None:
            return False
        poller.stop()
        return True

    def _prune_finished(self) -> None:
        for session_id, poller in list(self._pollers.items()):
            if not poller.active:
                del self._pollers[session_id]

    def stop_all(self) -> None:
        for session_id in list(self._pollers):
            self.stop_watch(session_id)


__all__ = ["SessionService"]
