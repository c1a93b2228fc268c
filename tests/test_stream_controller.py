from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from console_core.errors import HubUnavailableError, StreamInterruptedError
from agent_console.sync.envelope import parse_line
from agent_console.sync.log_window import LogWindow
from agent_console.sync.models import RunResult
from agent_console.sync.stream_controller import (
    PHASE_COMPLETED,
    PHASE_FAILED,
    PHASE_IDLE,
    PHASE_RUNNING,
    ReconnectingStreamController,
    max_reconnects_message,
)


class ScriptedStarts:
    """Fake ``start_fn``: each call replays the next script of raw stream lines.

    A script entry that is an exception instance is raised at that point.
    """

    def __init__(self, *scripts: list) -> None:
        self._scripts = list(scripts)
        self.calls: list[tuple[int, str | None]] = []

    def __call__(self, cursor: int, session_id: str | None):
        self.calls.append((cursor, session_id))
        script = self._scripts.pop(0) if self._scripts else [StreamInterruptedError("gone")]
        return self._stream(script)

    async def _stream(self, script: list):
        for item in script:
            if isinstance(item, BaseException):
                raise item
            update = parse_line(item)
            if update is not None:
                yield update


def _log(text: str, index: int | None = None) -> str:
    payload: dict = {"type": "log", "message": text}
    if index is not None:
        payload["index"] = index
    return "data: " + json.dumps(payload)


def _controller(**kwargs) -> tuple[ReconnectingStreamController, list[float]]:
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    kwargs.setdefault("sleep", fake_sleep)
    return ReconnectingStreamController(**kwargs), delays


def test_resumes_after_drop_with_cursor() -> None:
    starts = ScriptedStarts(
        [_log(f"line {n}") for n in range(5)] + [StreamInterruptedError("connection reset")],
        [_log(f"line {n}") for n in range(5, 8)] + ['data: {"ok": true, "message": "done"}'],
    )
    controller, delays = _controller(reconnect_delay=2.0)

    state = asyncio.run(controller.run(starts))

    assert starts.calls == [(0, None), (5, None)]
    assert state.running is False
    assert state.phase == PHASE_COMPLETED
    assert [line.text for line in state.logs] == [f"line {n}" for n in range(8)]
    assert state.result == RunResult(ok=True, message="done")
    assert state.reconnection_count == 1
    assert state.reconnecting is False
    assert delays == [2.0]


def test_reconnect_sends_session_id_learnt_from_stream() -> None:
    starts = ScriptedStarts(
        ['data: {"type": "session", "session_id": "srv-1"}', _log("a")],
        ['data: {"type": "done", "success": "true"}'],
    )
    controller, _ = _controller()

    state = asyncio.run(controller.run(starts))

    assert starts.calls == [(0, None), (1, "srv-1")]
    assert state.session_id == "srv-1"
    assert state.result is not None and state.result.ok


def test_replayed_lines_below_cursor_are_skipped() -> None:
    starts = ScriptedStarts(
        [_log("a", 0), _log("b", 1), StreamInterruptedError("drop")],
        [_log("a", 0), _log("b", 1), _log("c", 2), "data: [DONE]"],
    )
    controller, _ = _controller()

    state = asyncio.run(controller.run(starts))

    assert [line.text for line in state.logs] == ["a", "b", "c"]
    assert state.resume_cursor == 3
    assert state.result == RunResult(ok=True, message="Completed successfully")


def test_retries_are_bounded() -> None:
    starts = ScriptedStarts()
    controller, delays = _controller(max_reconnects=3, reconnect_delay=0.5)

    state = asyncio.run(controller.run(starts))

    assert len(starts.calls) == 4
    assert delays == [0.5, 0.5, 0.5]
    assert state.phase == PHASE_FAILED
    assert state.running is False
    assert state.reconnection_count == 3
    assert state.result == RunResult(ok=False, message=max_reconnects_message(3))
    assert state.result.message == "Connection lost. Maximum reconnection attempts (3) exceeded."


def test_stream_ending_without_result_reconnects() -> None:
    starts = ScriptedStarts([_log("a")], [_log("b"), 'data: {"ok": true, "message": "fine"}'])
    controller, _ = _controller()

    state = asyncio.run(controller.run(starts))

    assert len(starts.calls) == 2
    assert state.reconnection_count == 1
    assert [line.text for line in state.logs] == ["a", "b"]


def test_terminal_failure_is_stored_without_reconnecting() -> None:
    starts = ScriptedStarts(
        [_log("starting"), 'data: {"type": "done", "success": "false", "message": "port in use"}'],
    )
    controller, delays = _controller()

    state = asyncio.run(controller.run(starts))

    assert len(starts.calls) == 1
    assert delays == []
    assert state.phase == PHASE_FAILED
    assert state.result == RunResult(ok=False, message="port in use")
    assert state.reconnection_count == 0


def test_error_lines_do_not_end_the_run() -> None:
    starts = ScriptedStarts(
        ['data: {"type": "error", "message": "warning"}', 'data: {"type": "done", "success": "true"}'],
    )
    controller, _ = _controller()

    state = asyncio.run(controller.run(starts))

    assert [(line.text, line.error) for line in state.logs] == [("warning", True)]
    assert state.phase == PHASE_COMPLETED


def test_non_transient_error_fails_immediately() -> None:
    starts = ScriptedStarts([HubUnavailableError("HTTP 404", status_code=404)])
    controller, delays = _controller()

    state = asyncio.run(controller.run(starts))

    assert len(starts.calls) == 1
    assert delays == []
    assert state.phase == PHASE_FAILED
    assert state.result == RunResult(ok=False, message="HTTP 404")


def test_completion_callback_and_window_receive_run_output() -> None:
    results: list[RunResult] = []
    window = LogWindow(head_capacity=2, tail_capacity=2)
    starts = ScriptedStarts([_log(str(n)) for n in range(6)] + ["data: [DONE]"])
    controller, _ = _controller(window=window, on_complete=results.append)

    asyncio.run(controller.run(starts))

    assert results == [RunResult(ok=True, message="Completed successfully")]
    assert window.render() == ["0", "1", "2 lines omitted", "4", "5"]


def test_start_marks_run_running_before_first_event() -> None:
    async def scenario() -> None:
        starts = ScriptedStarts(["data: [DONE]"])
        controller, _ = _controller()
        task = controller.start(starts)
        assert controller.running is True
        assert controller.state.phase == PHASE_RUNNING
        await task
        assert controller.running is False

    asyncio.run(scenario())


def test_cancel_abandons_run_and_freezes_state() -> None:
    async def scenario() -> None:
        gate = asyncio.Event()

        async def blocking_stream(cursor: int, session_id: str | None):
            yield parse_line(_log("first"))
            await gate.wait()
            yield parse_line(_log("late"))

        controller, _ = _controller()
        task = controller.start(blocking_stream)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        controller.cancel()
        controller.cancel()
        gate.set()
        await asyncio.gather(task, return_exceptions=True)

        assert controller.abandoned is True
        assert controller.running is False
        assert controller.state.result is None
        assert [line.text for line in controller.state.logs] == ["first"]

    asyncio.run(scenario())


def test_reset_returns_to_idle_and_clears_window() -> None:
    window = LogWindow(head_capacity=5, tail_capacity=5)
    controller, _ = _controller(window=window)
    asyncio.run(controller.run(ScriptedStarts([_log("a"), "data: [DONE]"])))

    controller.reset()

    assert controller.state.phase == PHASE_IDLE
    assert controller.state.logs == []
    assert controller.state.result is None
    assert window.total == 0


def test_add_log_does_not_move_resume_cursor() -> None:
    window = LogWindow(head_capacity=5, tail_capacity=5)
    controller, _ = _controller(window=window)

    controller.add_log("queued locally", error=True)

    assert [(line.text, line.error) for line in controller.state.logs] == [("queued locally", True)]
    assert controller.state.resume_cursor == 0
    assert window.render() == ["queued locally"]


def test_state_payload_shape() -> None:
    controller, _ = _controller()
    asyncio.run(controller.run(ScriptedStarts([_log("a"), 'data: {"ok": true, "message": "done"}'])))

    payload = controller.state.to_payload()

    assert payload["phase"] == PHASE_COMPLETED
    assert payload["running"] is False
    assert payload["logs"] == [{"text": "a", "error": False}]
    assert payload["result"] == {"ok": True, "message": "done"}
    assert payload["reconnecting"] is False
    assert payload["reconnection_count"] == 0
