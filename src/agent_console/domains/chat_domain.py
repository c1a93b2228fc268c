from __future__ import annotations

from typing import Any, Iterable

from agent_console.sync.envelope import TRANSCRIPT_UPDATE_TYPES, Update
from agent_console.sync.models import Message, Transcript
from agent_console.sync.presentation import turns_payload
from agent_console.sync.reconciler import apply, transcript_from_messages


class ChatDomain:
    def __init__(self, *, state: Any) -> None:
        self._state = state

    def transcript(self, session_id: str) -> Transcript:
        return self._state.transcripts.get(session_id) or Transcript()

    def apply(self, session_id: str, update: Update) -> bool:
        if not isinstance(update, TRANSCRIPT_UPDATE_TYPES):
            return False
        current = self.transcript(session_id)
        updated = apply(current, update)
        if updated is current:
            return False
        self._state.transcripts[session_id] = updated
        return True

    def seed(self, session_id: str, messages: Iterable[Message]) -> Transcript:
        transcript = transcript_from_messages(messages)
        self._state.transcripts[session_id] = transcript
        return transcript

    def forget(self, session_id: str) -> None:
        self._state.transcripts.pop(session_id, None)

    def transcript_payload(self, session_id: str) -> dict[str, Any]:
        return {"session_id": session_id, "messages": self.transcript(session_id).to_payload()}

    def turns_payload(self, session_id: str) -> dict[str, Any]:
        return {"session_id": session_id, "turns": turns_payload(self.transcript(session_id))}
