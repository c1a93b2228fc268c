"""Decode push-stream lines into typed update records.

A stream line looks like ``data: {"type": "...", ...}``. Anything that does
not decode into one of the update kinds below is dropped without raising:
streams routinely carry keep-alives, comments and event types newer than
this client.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Union

from agent_console.sync.models import (
    PART_KIND_TEXT,
    PART_KIND_THINKING,
    PART_KIND_TOOL_CALL,
    ROLE_AGENT,
    ROLE_USER,
    TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR,
    TOOL_STATUS_PENDING,
    TOOL_STATUS_RUNNING,
    LogLine,
    Message,
    MessageInfo,
    ModelRef,
    Part,
    RunResult,
    TokenUsage,
    ToolCall,
)

LOGGER = logging.getLogger("agent_console.envelope")

DATA_PREFIX = "data:"
END_OF_STREAM_SENTINEL = "[DONE]"

EVENT_TYPE_MESSAGE_UPDATED = "message.updated"
EVENT_TYPE_MESSAGE_REMOVED = "message.removed"
EVENT_TYPE_PART_UPDATED = "message.part.updated"
EVENT_TYPE_PART_REMOVED = "message.part.removed"
EVENT_TYPE_STATUS = "status"
EVENT_TYPE_SESSION_STATUS = "session.status"
EVENT_TYPE_LOG = "log"
EVENT_TYPE_ERROR = "error"
EVENT_TYPE_DONE = "done"
EVENT_TYPE_CONNECTED = "connected"
EVENT_TYPE_SESSION = "session"

DEFAULT_OK_MESSAGE = "Completed successfully"
DEFAULT_FAILED_MESSAGE = "Failed"

_THINKING_PART_TYPES = {"reasoning", "thinking", "text/thinking"}
_TEXT_PART_TYPES = {"text", "text/plain"}
_TOOL_PART_TYPES = {
    "tool",
    "tool_call",
    "toolcall",
    "tool-invocation",
    "tool_use",
    "tool-result",
    "tool/call",
    "tool/result",
}
_TOOL_STATUS_ALIASES = {
    TOOL_STATUS_PENDING: TOOL_STATUS_PENDING,
    "call": TOOL_STATUS_RUNNING,
    "partial-call": TOOL_STATUS_RUNNING,
    TOOL_STATUS_RUNNING: TOOL_STATUS_RUNNING,
    "in_progress": TOOL_STATUS_RUNNING,
    TOOL_STATUS_COMPLETED: TOOL_STATUS_COMPLETED,
    "result": TOOL_STATUS_COMPLETED,
    "done": TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR: TOOL_STATUS_ERROR,
    "failed": TOOL_STATUS_ERROR,
}


@dataclass(frozen=True)
class MessageUpserted:
    info: MessageInfo


@dataclass(frozen=True)
class PartUpserted:
    part: Part


@dataclass(frozen=True)
class MessageRemoved:
    message_id: str


@dataclass(frozen=True)
class PartRemoved:
    part_id: str
    message_id: str = ""


@dataclass(frozen=True)
class StatusChanged:
    status: str
    session_id: str = ""
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LogReceived:
    line: LogLine


@dataclass(frozen=True)
class TerminalResult:
    result: RunResult


@dataclass(frozen=True)
class Connected:
    session_id: str = ""
    model: str = ""
    directory: str = ""


@dataclass(frozen=True)
class StreamEnded:
    pass


Update = Union[
    MessageUpserted,
    PartUpserted,
    MessageRemoved,
    PartRemoved,
    StatusChanged,
    LogReceived,
    TerminalResult,
    Connected,
    StreamEnded,
]

TRANSCRIPT_UPDATE_TYPES = (MessageUpserted, PartUpserted, MessageRemoved, PartRemoved)


def parse_line(line: str) -> Update | None:
    """Parse one raw stream line; return None for anything not understood."""
    if not isinstance(line, str):
        return None
    stripped = line.rstrip("\r\n")
    if not stripped.startswith(DATA_PREFIX):
        return None
    data = stripped[len(DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]
    if data.strip() == END_OF_STREAM_SENTINEL:
        return StreamEnded()
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError):
        LOGGER.debug("Skipping malformed stream payload: %.120s", data)
        return None
    if not isinstance(payload, dict):
        return None
    return parse_payload(payload)


def parse_payload(payload: Mapping[str, Any]) -> Update | None:
    if not isinstance(payload, Mapping):
        return None
    event = _unwrap(payload)
    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        if isinstance(event.get("ok"), bool):
            return _terminal_from_ok_shape(event)
        return None
    properties = event.get("properties")
    if not isinstance(properties, Mapping):
        properties = event

    if event_type == EVENT_TYPE_MESSAGE_UPDATED:
        info = parse_message_info(properties.get("info"))
        return MessageUpserted(info=info) if info is not None else None
    if event_type == EVENT_TYPE_PART_UPDATED:
        part = parse_part(properties.get("part"))
        return PartUpserted(part=part) if part is not None else None
    if event_type == EVENT_TYPE_MESSAGE_REMOVED:
        message_id = _first_str(properties, "messageID", "message_id")
        return MessageRemoved(message_id=message_id) if message_id else None
    if event_type == EVENT_TYPE_PART_REMOVED:
        part_id = _first_str(properties, "partID", "part_id")
        if not part_id:
            return None
        return PartRemoved(part_id=part_id, message_id=_first_str(properties, "messageID", "message_id"))
    if event_type in (EVENT_TYPE_STATUS, EVENT_TYPE_SESSION_STATUS):
        return _status_changed(properties)
    if event_type in (EVENT_TYPE_LOG, EVENT_TYPE_ERROR):
        return _log_received(event, error=event_type == EVENT_TYPE_ERROR)
    if event_type == EVENT_TYPE_DONE:
        return _terminal_from_done(event)
    if event_type == EVENT_TYPE_CONNECTED:
        return Connected(
            session_id=_first_str(event, "session_id", "sessionId", "message"),
            model=_first_str(event, "model"),
            directory=_first_str(event, "dir", "directory"),
        )
    if event_type == EVENT_TYPE_SESSION:
        session_id = _first_str(event, "session_id", "sessionId")
        return Connected(session_id=session_id) if session_id else None
    if isinstance(event.get("ok"), bool):
        return _terminal_from_ok_shape(event)
    return None


def parse_message_info(raw: Any) -> MessageInfo | None:
    if not isinstance(raw, Mapping):
        return None
    message_id = _first_str(raw, "id")
    if not message_id:
        return None
    return MessageInfo(
        id=message_id,
        role=normalize_role(raw.get("role")),
        created_at=_parse_timestamp(raw.get("time")),
        model_ref=_parse_model_ref(raw),
        token_usage=_parse_token_usage(raw.get("tokens")),
    )


def parse_part(raw: Any) -> Part | None:
    if not isinstance(raw, Mapping):
        return None
    message_id = _first_str(raw, "messageID", "message_id")
    if not message_id:
        return None
    kind = classify_part(raw)
    if kind is None:
        return None
    part_id = _first_str(raw, "id")
    if kind == PART_KIND_TOOL_CALL:
        return Part(id=part_id, message_id=message_id, kind=kind, tool_call=_parse_tool_call(raw))
    if kind == PART_KIND_THINKING:
        text = _first_str(raw, "thinking", "reasoning", "text", "content")
    else:
        text = _first_str(raw, "text", "content")
    return Part(id=part_id, message_id=message_id, kind=kind, text=text)


def parse_message(raw: Any) -> Message | None:
    """Parse one ``{info, parts}`` entry of a transcript snapshot."""
    if not isinstance(raw, Mapping):
        return None
    info = parse_message_info(raw.get("info") if isinstance(raw.get("info"), Mapping) else raw)
    if info is None:
        return None
    parts: list[Part] = []
    raw_parts = raw.get("parts")
    for raw_part in raw_parts if isinstance(raw_parts, list) else []:
        if isinstance(raw_part, Mapping) and not raw_part.get("messageID") and not raw_part.get("message_id"):
            raw_part = {**raw_part, "messageID": info.id}
        part = parse_part(raw_part)
        if part is not None:
            parts.append(part)
    return Message(info=info, parts=tuple(parts))


def classify_part(raw: Mapping[str, Any]) -> str | None:
    part_type = str(raw.get("type") or raw.get("kind") or raw.get("content_type") or "").strip().lower()
    if part_type in _THINKING_PART_TYPES or raw.get("thinking") or raw.get("reasoning"):
        return PART_KIND_THINKING
    if part_type in _TOOL_PART_TYPES:
        return PART_KIND_TOOL_CALL
    if part_type in _TEXT_PART_TYPES:
        return PART_KIND_TEXT
    return None


def normalize_role(value: Any) -> str:
    if str(value or "").strip().lower() == ROLE_USER:
        return ROLE_USER
    return ROLE_AGENT


def normalize_tool_status(value: Any) -> str:
    return _TOOL_STATUS_ALIASES.get(str(value or "").strip().lower(), TOOL_STATUS_PENDING)


def _unwrap(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    nested = payload.get("payload")
    if isinstance(nested, Mapping) and isinstance(nested.get("type"), str):
        return nested
    return payload


def _first_str(raw: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return ""


def _parse_timestamp(value: Any) -> str:
    if isinstance(value, Mapping):
        value = value.get("created")
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e12 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return ""
    return str(value)


def _parse_model_ref(raw: Mapping[str, Any]) -> ModelRef | None:
    model_id = _first_str(raw, "modelID", "model_id")
    provider_id = _first_str(raw, "providerID", "provider_id")
    if not model_id:
        model = raw.get("model")
        if isinstance(model, Mapping):
            model_id = _first_str(model, "modelID", "model_id")
            provider_id = provider_id or _first_str(model, "providerID", "provider_id")
        elif isinstance(model, str) and model:
            provider, sep, name = model.partition("/")
            if sep:
                provider_id, model_id = provider_id or provider, name
            else:
                model_id = model
    if not model_id:
        return None
    return ModelRef(provider_id=provider_id, model_id=model_id)


def _parse_token_usage(raw: Any) -> TokenUsage | None:
    if not isinstance(raw, Mapping):
        return None

    def _count(key: str) -> int:
        value = raw.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return int(value)

    return TokenUsage(input=_count("input"), output=_count("output"))


def _parse_tool_call(raw: Mapping[str, Any]) -> ToolCall:
    state = raw.get("state")
    tool = _first_str(raw, "tool", "name") or "tool"
    if isinstance(state, Mapping):
        return ToolCall(
            tool=tool,
            status=normalize_tool_status(state.get("status")),
            input=state.get("input", raw.get("input")),
            output=_optional_text(state.get("output", raw.get("output"))),
            error=_optional_text(state.get("error")),
            title=_first_str(state, "title") or _first_str(raw, "title"),
        )
    status_value = state if state is not None else raw.get("status")
    if status_value is None and raw.get("output") is not None:
        status_value = TOOL_STATUS_COMPLETED
    return ToolCall(
        tool=tool,
        status=normalize_tool_status(status_value),
        input=raw.get("input", raw.get("metadata")),
        output=_optional_text(raw.get("output")),
        error=_optional_text(raw.get("error")),
        title=_first_str(raw, "title"),
    )


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def _status_changed(properties: Mapping[str, Any]) -> StatusChanged | None:
    status = properties.get("status")
    detail: dict[str, Any] = {}
    if isinstance(status, Mapping):
        detail = dict(status)
        status = status.get("type") or status.get("status")
    if not isinstance(status, str) or not status:
        return None
    for key, value in properties.items():
        if key not in ("type", "status", "session_id", "sessionID"):
            detail.setdefault(key, value)
    return StatusChanged(
        status=status.strip().lower(),
        session_id=_first_str(properties, "session_id", "sessionID"),
        detail=detail,
    )


def _log_received(event: Mapping[str, Any], *, error: bool) -> LogReceived:
    index = event.get("index")
    return LogReceived(
        line=LogLine(
            text=_first_str(event, "message", "text"),
            error=error,
            index=index if isinstance(index, int) and not isinstance(index, bool) else None,
        )
    )


def _terminal_from_done(event: Mapping[str, Any]) -> TerminalResult:
    success = event.get("success")
    if success is None:
        ok = not (isinstance(event.get("ok"), bool) and not event.get("ok"))
    else:
        ok = success is True or str(success).strip().lower() == "true"
    message = _first_str(event, "message") or (DEFAULT_OK_MESSAGE if ok else DEFAULT_FAILED_MESSAGE)
    extra = {k: v for k, v in event.items() if k not in ("type", "success", "ok", "message")}
    return TerminalResult(result=RunResult(ok=ok, message=message, extra=extra))


def _terminal_from_ok_shape(event: Mapping[str, Any]) -> TerminalResult:
    ok = bool(event.get("ok"))
    message = _first_str(event, "message") or (DEFAULT_OK_MESSAGE if ok else DEFAULT_FAILED_MESSAGE)
    extra = {k: v for k, v in event.items() if k not in ("type", "ok", "message")}
    return TerminalResult(result=RunResult(ok=ok, message=message, extra=extra))


__all__ = [
    "Connected",
    "LogReceived",
    "MessageRemoved",
    "MessageUpserted",
    "PartRemoved",
    "PartUpserted",
    "StatusChanged",
    "StreamEnded",
    "TRANSCRIPT_UPDATE_TYPES",
    "TerminalResult",
    "Update",
    "classify_part",
    "normalize_role",
    "normalize_tool_status",
    "parse_line",
    "parse_message",
    "parse_message_info",
    "parse_part",
    "parse_payload",
]
