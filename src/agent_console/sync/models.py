"""Value types shared by the sync engine.

Everything here is an immutable dataclass so reconciliation can return new
values instead of mutating state that a renderer may still be reading.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterator

ROLE_USER = "user"
ROLE_AGENT = "agent"
SUPPORTED_ROLES = (ROLE_USER, ROLE_AGENT)

PART_KIND_TEXT = "text"
PART_KIND_THINKING = "thinking"
PART_KIND_TOOL_CALL = "tool_call"
SUPPORTED_PART_KINDS = (PART_KIND_TEXT, PART_KIND_THINKING, PART_KIND_TOOL_CALL)

TOOL_STATUS_PENDING = "pending"
TOOL_STATUS_RUNNING = "running"
TOOL_STATUS_COMPLETED = "completed"
TOOL_STATUS_ERROR = "error"
SUPPORTED_TOOL_STATUSES = (
    TOOL_STATUS_PENDING,
    TOOL_STATUS_RUNNING,
    TOOL_STATUS_COMPLETED,
    TOOL_STATUS_ERROR,
)

SESSION_STATUS_STARTING = "starting"
SESSION_STATUS_RUNNING = "running"
SESSION_STATUS_ERROR = "error"
SESSION_STATUS_STOPPED = "stopped"
SUPPORTED_SESSION_STATUSES = (
    SESSION_STATUS_STARTING,
    SESSION_STATUS_RUNNING,
    SESSION_STATUS_ERROR,
    SESSION_STATUS_STOPPED,
)


@dataclass(frozen=True)
class ModelRef:
    provider_id: str
    model_id: str

    def to_payload(self) -> dict[str, str]:
        return {"provider_id": self.provider_id, "model_id": self.model_id}


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0

    def to_payload(self) -> dict[str, int]:
        return {"input": self.input, "output": self.output}


@dataclass(frozen=True)
class ToolCall:
    tool: str
    status: str = TOOL_STATUS_PENDING
    input: Any = None
    output: str | None = None
    error: str | None = None
    title: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "status": self.status,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "title": self.title,
        }


@dataclass(frozen=True)
class Part:
    id: str
    message_id: str
    kind: str = PART_KIND_TEXT
    text: str = ""
    tool_call: ToolCall | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "message_id": self.message_id,
            "kind": self.kind,
            "text": self.text,
        }
        if self.tool_call is not None:
            payload["tool_call"] = self.tool_call.to_payload()
        return payload


@dataclass(frozen=True)
class MessageInfo:
    id: str
    role: str = ROLE_AGENT
    created_at: str = ""
    model_ref: ModelRef | None = None
    token_usage: TokenUsage | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "created_at": self.created_at,
            "model_ref": self.model_ref.to_payload() if self.model_ref else None,
            "token_usage": self.token_usage.to_payload() if self.token_usage else None,
        }


@dataclass(frozen=True)
class Message:
    info: MessageInfo
    parts: tuple[Part, ...] = ()

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def role(self) -> str:
        return self.info.role

    def part_index(self, part_id: str) -> int:
        if not part_id:
            return -1
        for index, part in enumerate(self.parts):
            if part.id == part_id:
                return index
        return -1

    def with_info(self, info: MessageInfo) -> "Message":
        return replace(self, info=info)

    def with_parts(self, parts: tuple[Part, ...]) -> "Message":
        return replace(self, parts=parts)

    def to_payload(self) -> dict[str, Any]:
        payload = self.info.to_payload()
        payload["parts"] = [part.to_payload() for part in self.parts]
        return payload


@dataclass(frozen=True)
class Transcript:
    messages: tuple[Message, ...] = ()

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def index_of(self, message_id: str) -> int:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    def get(self, message_id: str) -> Message | None:
        index = self.index_of(message_id)
        if index < 0:
            return None
        return self.messages[index]

    @property
    def message_ids(self) -> list[str]:
        return [message.id for message in self.messages]

    def to_payload(self) -> list[dict[str, Any]]:
        return [message.to_payload() for message in self.messages]


@dataclass(frozen=True)
class LogLine:
    text: str
    error: bool = False
    index: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"text": self.text, "error": self.error}


@dataclass(frozen=True)
class RunResult:
    ok: bool
    message: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload["ok"] = self.ok
        payload["message"] = self.message
        return payload


@dataclass(frozen=True)
class SessionInfo:
    id: str
    status: str = SESSION_STATUS_STARTING
    agent_id: str = ""
    agent_name: str = ""
    project_dir: str = ""
    port: int = 0
    created_at: str = ""
    error: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionInfo | None":
        session_id = str(payload.get("id") or "").strip()
        if not session_id:
            return None
        status = str(payload.get("status") or "").strip().lower()
        if status not in SUPPORTED_SESSION_STATUSES:
            status = SESSION_STATUS_ERROR if payload.get("error") else SESSION_STATUS_STARTING
        port = payload.get("port")
        return cls(
            id=session_id,
            status=status,
            agent_id=str(payload.get("agent_id") or ""),
            agent_name=str(payload.get("agent_name") or ""),
            project_dir=str(payload.get("project_dir") or ""),
            port=port if isinstance(port, int) and not isinstance(port, bool) else 0,
            created_at=str(payload.get("created_at") or ""),
            error=str(payload.get("error") or ""),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "project_dir": self.project_dir,
            "port": self.port,
            "created_at": self.created_at,
            "error": self.error,
        }
