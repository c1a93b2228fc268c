from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable

from fastapi import HTTPException

from console_core.logging import log_fields

from agent_console.sync.models import (
    SESSION_STATUS_ERROR,
    SESSION_STATUS_RUNNING,
    SESSION_STATUS_STARTING,
    SESSION_STATUS_STOPPED,
    SessionInfo,
)

LOGGER = logging.getLogger("agent_console.sessions")

# Push streams report agent activity ("busy", "idle") rather than the hub's
# lifecycle statuses; both mean the session process is up.
_PUSH_STATUS_ALIASES = {
    SESSION_STATUS_STARTING: SESSION_STATUS_STARTING,
    SESSION_STATUS_RUNNING: SESSION_STATUS_RUNNING,
    "busy": SESSION_STATUS_RUNNING,
    "idle": SESSION_STATUS_RUNNING,
    "ready": SESSION_STATUS_RUNNING,
    SESSION_STATUS_ERROR: SESSION_STATUS_ERROR,
    "failed": SESSION_STATUS_ERROR,
    SESSION_STATUS_STOPPED: SESSION_STATUS_STOPPED,
    "exited": SESSION_STATUS_STOPPED,
}


def normalize_push_status(value: Any) -> str:
    return _PUSH_STATUS_ALIASES.get(str(value or "").strip().lower(), "")


class SessionDomain:
    def __init__(self, *, state: Any) -> None:
        self._state = state

    def sessions(self) -> list[SessionInfo]:
        return list(self._state.sessions.values())

    def session(self, session_id: str) -> SessionInfo:
        info = self._state.sessions.get(session_id)
        if info is None:
            raise HTTPException(status_code=404, detail="Session not found.")
        return info

    def status(self, session_id: str) -> str:
        info = self._state.sessions.get(session_id)
        return info.status if info is not None else ""

    def apply_session_update(self, info: SessionInfo) -> bool:
        """Store ``info`` as the session's record; return whether anything changed.

        Poll results and push status events both land here, so whichever
        arrives later wins and neither path can undo the other with stale data
        it did not observe.
        """
        current = self._state.sessions.get(info.id)
        if current == info:
            return False
        self._state.sessions[info.id] = info
        LOGGER.info(
            "Session %s status %s -> %s",
            info.id,
            current.status if current is not None else "-",
            info.status,
            extra=log_fields(session_id=info.id, component="sessions", operation="update", result=info.status),
        )
        return True

    def apply_status(self, session_id: str, status: str, *, error: str = "") -> bool:
        normalized = normalize_push_status(status)
        if not session_id or not normalized:
            return False
        current = self._state.sessions.get(session_id)
        if current is None:
            return self.apply_session_update(SessionInfo(id=session_id, status=normalized, error=error))
        return self.apply_session_update(replace(current, status=normalized, error=error or current.error))

    def replace_sessions(self, sessions: Iterable[SessionInfo]) -> list[str]:
        incoming = {info.id: info for info in sessions}
        changed = [session_id for session_id, info in incoming.items() if self.apply_session_update(info)]
        for session_id in [session_id for session_id in self._state.sessions if session_id not in incoming]:
            del self._state.sessions[session_id]
            changed.append(session_id)
        return changed

    def sessions_payload(self) -> dict[str, Any]:
        return {"sessions": [info.to_payload() for info in self.sessions()]}


__all__ = ["SessionDomain", "normalize_push_status"]
