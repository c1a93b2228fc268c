"""Derived display views over a transcript. Nothing here holds state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from agent_console.sync.models import PART_KIND_THINKING, PART_KIND_TOOL_CALL, Message, Part, Transcript

THINKING_PREVIEW_LINES = 3
TOOL_OUTPUT_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class Turn:
    role: str
    messages: tuple[Message, ...]

    @property
    def parts(self) -> tuple[Part, ...]:
        return tuple(part for message in self.messages for part in message.parts)


@dataclass(frozen=True)
class ThinkingPreview:
    text: str
    preview: str
    expandable: bool
    collapsed: bool = True


def group_by_role(transcript: Transcript) -> list[Turn]:
    turns: list[Turn] = []
    for message in transcript:
        if turns and turns[-1].role == message.role:
            last = turns[-1]
            turns[-1] = Turn(role=last.role, messages=last.messages + (message,))
        else:
            turns.append(Turn(role=message.role, messages=(message,)))
    return turns


def split_thinking(turn: Turn) -> tuple[list[Part], list[Part]]:
    thinking: list[Part] = []
    content: list[Part] = []
    for part in turn.parts:
        (thinking if part.kind == PART_KIND_THINKING else content).append(part)
    return thinking, content


def thinking_preview(parts: list[Part], *, max_lines: int = THINKING_PREVIEW_LINES) -> ThinkingPreview | None:
    text = "\n".join(part.text for part in parts).strip()
    if not text:
        return None
    lines = text.split("\n")
    expandable = len(lines) > max_lines
    preview = "\n".join(lines[:max_lines]) if expandable else text
    return ThinkingPreview(text=text, preview=preview, expandable=expandable)


def truncate(text: str, limit: int = TOOL_OUTPUT_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _content_part_payload(part: Part) -> dict[str, Any]:
    payload = part.to_payload()
    if part.kind == PART_KIND_TOOL_CALL and part.tool_call is not None and part.tool_call.output:
        payload["tool_call"]["output_preview"] = truncate(part.tool_call.output)
    return payload


def turns_payload(transcript: Transcript) -> list[dict[str, Any]]:
    payload: list[dict[str, Any]] = []
    for turn in group_by_role(transcript):
        thinking, content = split_thinking(turn)
        preview = thinking_preview(thinking)
        payload.append(
            {
                "role": turn.role,
                "message_ids": [message.id for message in turn.messages],
                "thinking": (
                    None
                    if preview is None
                    else {
                        "text": preview.text,
                        "preview": preview.preview,
                        "expandable": preview.expandable,
                        "collapsed": preview.collapsed,
                    }
                ),
                "parts": [_content_part_payload(part) for part in content],
            }
        )
    return payload


__all__ = [
    "ThinkingPreview",
    "Turn",
    "group_by_role",
    "split_thinking",
    "thinking_preview",
    "truncate",
    "turns_payload",
]
