"""Incremental synchronization engine for agent transcripts and action streams."""

from agent_console.sync.envelope import (
    Connected,
    LogReceived,
    MessageRemoved,
    MessageUpserted,
    PartRemoved,
    PartUpserted,
    StatusChanged,
    StreamEnded,
    TerminalResult,
    Update,
    parse_line,
    parse_payload,
)
from agent_console.sync.log_window import LogBuffer, LogWindow, render_log_buffer
from agent_console.sync.poller import SessionStatusPoller
from agent_console.sync.reconciler import apply, apply_all, transcript_from_messages
from agent_console.sync.stream_controller import ReconnectingStreamController, StreamRunState

__all__ = [
    "Connected",
    "LogBuffer",
    "LogReceived",
    "LogWindow",
    "MessageRemoved",
    "MessageUpserted",
    "PartRemoved",
    "PartUpserted",
    "ReconnectingStreamController",
    "SessionStatusPoller",
    "StatusChanged",
    "StreamEnded",
    "StreamRunState",
    "TerminalResult",
    "Update",
    "apply",
    "apply_all",
    "parse_line",
    "parse_payload",
    "render_log_buffer",
    "transcript_from_messages",
]
