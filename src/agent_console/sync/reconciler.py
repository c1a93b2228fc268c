"""Merge transcript updates into an ordered, duplicate-free transcript."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from agent_console.sync.envelope import (
    MessageRemoved,
    MessageUpserted,
    PartRemoved,
    PartUpserted,
    Update,
)
from agent_console.sync.models import ROLE_AGENT, Message, MessageInfo, Part, Transcript


def apply(transcript: Transcript, update: Update | None, *, placeholder_role: str = ROLE_AGENT) -> Transcript:
    """Return the transcript with one update applied.

    Non-transcript updates (logs, status, terminal results) leave the
    transcript untouched, so callers can feed a whole stream through here.
    """
    if isinstance(update, MessageUpserted):
        return _upsert_message(transcript, update.info)
    if isinstance(update, PartUpserted):
        return _upsert_part(transcript, update.part, placeholder_role=placeholder_role)
    if isinstance(update, MessageRemoved):
        return _remove_message(transcript, update.message_id)
    if isinstance(update, PartRemoved):
        return _remove_part(transcript, update.part_id)
    return transcript


def apply_all(
    transcript: Transcript,
    updates: Iterable[Update | None],
    *,
    placeholder_role: str = ROLE_AGENT,
) -> Transcript:
    for update in updates:
        transcript = apply(transcript, update, placeholder_role=placeholder_role)
    return transcript


def transcript_from_messages(messages: Iterable[Message]) -> Transcript:
    """Seed a transcript from a snapshot using the same upsert rules."""
    transcript = Transcript()
    for message in messages:
        transcript = _upsert_message(transcript, message.info)
        for part in message.parts:
            if part.message_id != message.id:
                part = replace(part, message_id=message.id)
            transcript = _upsert_part(transcript, part, placeholder_role=message.role)
    return transcript


def _replace_at(transcript: Transcript, index: int, message: Message) -> Transcript:
    messages = list(transcript.messages)
    messages[index] = message
    return Transcript(messages=tuple(messages))


def _upsert_message(transcript: Transcript, info: MessageInfo) -> Transcript:
    index = transcript.index_of(info.id)
    if index < 0:
        return Transcript(messages=transcript.messages + (Message(info=info),))
    existing = transcript.messages[index]
    if existing.info == info:
        return transcript
    return _replace_at(transcript, index, existing.with_info(info))


def _upsert_part(transcript: Transcript, part: Part, *, placeholder_role: str) -> Transcript:
    index = transcript.index_of(part.message_id)
    if index < 0:
        placeholder = Message(info=MessageInfo(id=part.message_id, role=placeholder_role), parts=(part,))
        return Transcript(messages=transcript.messages + (placeholder,))
    message = transcript.messages[index]
    part_index = message.part_index(part.id)
    if part_index < 0:
        return _replace_at(transcript, index, message.with_parts(message.parts + (part,)))
    if message.parts[part_index] == part:
        return transcript
    parts = list(message.parts)
    parts[part_index] = part
    return _replace_at(transcript, index, message.with_parts(tuple(parts)))


def _remove_message(transcript: Transcript, message_id: str) -> Transcript:
    if transcript.index_of(message_id) < 0:
        return transcript
    return Transcript(messages=tuple(m for m in transcript.messages if m.id != message_id))


def _remove_part(transcript: Transcript, part_id: str) -> Transcript:
    if not part_id:
        return transcript
    changed = False
    messages: list[Message] = []
    for message in transcript.messages:
        if message.part_index(part_id) < 0:
            messages.append(message)
            continue
        changed = True
        messages.append(message.with_parts(tuple(p for p in message.parts if p.id != part_id)))
    if not changed:
        return transcript
    return Transcript(messages=tuple(messages))


__all__ = ["apply", "apply_all", "transcript_from_messages"]
