from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from agent_console.sync.models import (
    PART_KIND_THINKING,
    PART_KIND_TOOL_CALL,
    ROLE_AGENT,
    ROLE_USER,
    Message,
    MessageInfo,
    Part,
    ToolCall,
    Transcript,
)
from agent_console.sync.presentation import group_by_role, thinking_preview, truncate, turns_payload


def _message(message_id: str, role: str, *parts: Part) -> Message:
    return Message(info=MessageInfo(id=message_id, role=role), parts=parts)


def test_consecutive_messages_with_same_role_form_one_turn() -> None:
    transcript = Transcript(
        messages=(
            _message("m1", ROLE_USER),
            _message("m2", ROLE_AGENT),
            _message("m3", ROLE_AGENT),
            _message("m4", ROLE_USER),
        )
    )

    turns = group_by_role(transcript)

    assert [(turn.role, [m.id for m in turn.messages]) for turn in turns] == [
        (ROLE_USER, ["m1"]),
        (ROLE_AGENT, ["m2", "m3"]),
        (ROLE_USER, ["m4"]),
    ]


def test_thinking_preview_collapses_after_three_lines() -> None:
    parts = [Part(id="t1", message_id="m1", kind=PART_KIND_THINKING, text="a\nb\nc\nd")]

    preview = thinking_preview(parts)

    assert preview is not None
    assert preview.preview == "a\nb\nc"
    assert preview.expandable is True
    assert preview.collapsed is True
    assert thinking_preview([Part(id="t2", message_id="m1", kind=PART_KIND_THINKING, text="  ")]) is None


def test_truncate_limits_tool_output() -> None:
    assert truncate("x" * 10) == "x" * 10
    assert truncate("x" * 600) == "x" * 500 + "..."


def test_turns_payload_separates_thinking_and_previews_tool_output() -> None:
    transcript = Transcript(
        messages=(
            _message(
                "m1",
                ROLE_AGENT,
                Part(id="t1", message_id="m1", kind=PART_KIND_THINKING, text="plan"),
                Part(id="p1", message_id="m1", text="answer"),
                Part(
                    id="p2",
                    message_id="m1",
                    kind=PART_KIND_TOOL_CALL,
                    tool_call=ToolCall(tool="bash", status="completed", output="o" * 501),
                ),
            ),
        )
    )

    [turn] = turns_payload(transcript)

    assert turn["role"] == ROLE_AGENT
    assert turn["message_ids"] == ["m1"]
    assert turn["thinking"]["text"] == "plan"
    assert turn["thinking"]["expandable"] is False
    assert [part["id"] for part in turn["parts"]] == ["p1", "p2"]
    assert turn["parts"][1]["tool_call"]["output_preview"] == "o" * 500 + "..."
