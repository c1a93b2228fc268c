from __future__ import annotations

import logging
import urllib.parse
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from console_core.errors import HubUnavailableError, StreamInterruptedError
from console_core.logging import log_fields

from agent_console.sync.envelope import Update, parse_line, parse_message
from agent_console.sync.models import Message, SessionInfo

LOGGER = logging.getLogger("agent_console.hub_client")

SESSIONS_PATH = "/api/agents/sessions"
_TRANSIENT_STATUS_CODES = {502, 503, 504}


def session_events_path(session_id: str) -> str:
    return f"{SESSIONS_PATH}/{urllib.parse.quote(session_id, safe='')}/proxy/event"


def session_messages_path(session_id: str, conversation_id: str) -> str:
    return (
        f"{SESSIONS_PATH}/{urllib.parse.quote(session_id, safe='')}/proxy/session/"
        f"{urllib.parse.quote(conversation_id, safe='')}/message"
    )


class HubClient:
    """Async HTTP client for the agent hub endpoints the sync engine consumes."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            # Streams stay open indefinitely; only connecting and writing are bounded.
            timeout=httpx.Timeout(timeout, read=None),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HubClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def fetch_sessions(self) -> list[SessionInfo]:
        data = await self._get_json(SESSIONS_PATH)
        if isinstance(data, dict) and isinstance(data.get("sessions"), list):
            raw_sessions = data["sessions"]
        elif isinstance(data, list):
            raw_sessions = data
        else:
            raw_sessions = []
        sessions: list[SessionInfo] = []
        for raw in raw_sessions:
            if not isinstance(raw, dict):
                continue
            session = SessionInfo.from_payload(raw)
            if session is not None:
                sessions.append(session)
        return sessions

    async def fetch_messages(self, session_id: str, conversation_id: str) -> list[Message]:
        data = await self._get_json(session_messages_path(session_id, conversation_id))
        if not isinstance(data, list):
            return []
        messages: list[Message] = []
        for raw in data:
            message = parse_message(raw)
            if message is not None:
                messages.append(message)
        return messages

    def stream_session_events(self, session_id: str) -> AsyncIterator[Update]:
        return self._stream_updates("GET", session_events_path(session_id))

    def action_starter(
        self,
        path: str,
        *,
        body: dict[str, Any] | None = None,
    ) -> Callable[[int, str | None], AsyncIterator[Update]]:
        """Build a ``start_fn`` for :class:`ReconnectingStreamController`.

        The first attempt POSTs ``body``; once the hub has announced a session
        id, reconnects GET the same path with ``session_id`` and ``log_index``.
        """

        def start(log_index: int, session_id: str | None) -> AsyncIterator[Update]:
            params: dict[str, str] = {}
            if session_id:
                params["session_id"] = session_id
            if log_index > 0:
                params["log_index"] = str(log_index)
            if session_id:
                return self._stream_updates("GET", path, params=params)
            return self._stream_updates("POST", path, params=params or None, json_body=body or {})

        return start

    async def _get_json(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.TransportError as exc:
            raise HubUnavailableError(f"Hub request failed (GET {path}): {exc}") from exc
        if response.status_code >= 400:
            raise HubUnavailableError(
                f"Hub returned HTTP {response.status_code} for GET {path}: {response.text.strip()[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise HubUnavailableError(f"Hub returned invalid JSON for GET {path}.") from exc

    async def _stream_updates(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> AsyncIterator[Update]:
        LOGGER.debug(
            "Opening stream %s %s",
            method,
            path,
            extra=log_fields(component="hub_client", operation="stream_open", result="pending"),
        )
        try:
            async with self._client.stream(
                method,
                path,
                params=params,
                json=json_body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace").strip()[:200]
                    message = f"Hub returned HTTP {response.status_code} for {method} {path}: {detail}"
                    if response.status_code in _TRANSIENT_STATUS_CODES:
                        raise StreamInterruptedError(message)
                    raise HubUnavailableError(message, status_code=response.status_code)
                async for line in response.aiter_lines():
                    update = parse_line(line)
                    if update is not None:
                        yield update
        except httpx.TransportError as exc:
            raise StreamInterruptedError(f"Stream {method} {path} interrupted: {exc}") from exc


__all__ = ["HubClient", "session_events_path", "session_messages_path"]
