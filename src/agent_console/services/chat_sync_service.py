from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi import HTTPException

from console_core.errors import TypedConsoleError
from console_core.logging import log_fields

from agent_console.sync.envelope import Connected, StatusChanged, StreamEnded, Update
from agent_console.sync.models import Message

LOGGER = logging.getLogger("agent_console.chat")


class ChatSyncService:
    """Keep one transcript per session in step with the hub's push stream."""

    def __init__(self, *, domain: Any, sessions: Any, hub_client: Any) -> None:
        self._domain = domain
        self._sessions = sessions
        self._hub_client = hub_client
        self._followers: dict[str, asyncio.Task[int]] = {}

    def apply(self, session_id: str, update: Update) -> bool:
        if isinstance(update, StatusChanged):
            error = update.detail.get("error") if isinstance(update.detail.get("error"), str) else ""
            return self._sessions.apply_status(update.session_id or session_id, update.status, error=error)
        if isinstance(update, Connected):
            LOGGER.debug(
                "Push stream connected model=%s dir=%s",
                update.model,
                update.directory,
                extra=log_fields(session_id=session_id, component="chat", operation="follow", result="connected"),
            )
            return False
        return self._domain.apply(session_id, update)

    def seed(self, session_id: str, messages: list[Message]) -> dict[str, Any]:
        self._domain.seed(session_id, messages)
        return self._domain.transcript_payload(session_id)

    async def load_snapshot(self, session_id: str, conversation_id: str) -> dict[str, Any]:
        messages = await self._hub_client.fetch_messages(session_id, conversation_id)
        return self.seed(session_id, messages)

    async def follow(self, session_id: str) -> int:
        """Consume the session's push stream until it ends; return the number of applied updates."""
        applied = 0
        stream = self._hub_client.stream_session_events(session_id)
        try:
            async for update in stream:
                if isinstance(update, StreamEnded):
                    break
                if self.apply(session_id, update):
                    applied += 1
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return applied

    def following(self, session_id: str) -> bool:
        task = self._followers.get(session_id)
        return task is not None and not task.done()

    def start_follow(self, session_id: str) -> None:
        if self.following(session_id):
            raise HTTPException(status_code=409, detail="Session is already being followed.")
        self._followers[session_id] = asyncio.get_running_loop().create_task(self._follow_logged(session_id))

    def stop_follow(self, session_id: str) -> bool:
        task = self._followers.pop(session_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def stop_all(self) -> None:
        for session_id in list(self._followers):
            self.stop_follow(session_id)

    def transcript_payload(self, session_id: str) -> dict[str, Any]:
        return self._domain.transcript_payload(session_id)

    def turns_payload(self, session_id: str) -> dict[str, Any]:
        return self._domain.turns_payload(session_id)

    async def _follow_logged(self, session_id: str) -> int:
        started = time.monotonic()
        try:
            applied = await self.follow(session_id)
        except TypedConsoleError as exc:
            LOGGER.warning(
                "Push stream for session %s stopped: %s",
                session_id,
                exc,
                extra=log_fields(
                    session_id=session_id,
                    component="chat",
                    operation="follow",
                    result="error",
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error_class=type(exc).__name__,
                ),
            )
            return 0
        LOGGER.info(
            "Push stream for session %s ended after %d updates",
            session_id,
            applied,
            extra=log_fields(
                session_id=session_id,
                component="chat",
                operation="follow",
                result="ended",
                duration_ms=int((time.monotonic() - started) * 1000),
            ),
        )
        return applied


__all__ = ["ChatSyncService"]
