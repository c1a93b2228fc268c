from __future__ import annotations

import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from console_core.errors import HubUnavailableError
from agent_console.sync.models import SessionInfo
from agent_console.sync.poller import SessionStatusPoller


class FakeHub:
    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.calls = 0

    async def fetch_sessions(self) -> list[SessionInfo]:
        self.calls += 1
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        return response


class StatusBox:
    def __init__(self, status: str) -> None:
        self.status = status
        self.updates: list[SessionInfo] = []

    def apply(self, info: SessionInfo) -> None:
        self.updates.append(info)
        self.status = info.status


async def _no_sleep(_delay: float) -> None:
    return None


def test_poller_stops_once_session_leaves_starting() -> None:
    hub = FakeHub(
        [SessionInfo(id="s1", status="starting")],
        [SessionInfo(id="s1", status="starting")],
        [SessionInfo(id="s1", status="running", port=4100)],
    )
    box = StatusBox("starting")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        sleep=_no_sleep,
    )

    last = asyncio.run(poller.run())

    assert hub.calls == 3
    assert [info.status for info in box.updates] == ["starting", "running"]
    assert last == SessionInfo(id="s1", status="running", port=4100)


def test_poller_does_nothing_when_session_is_not_starting() -> None:
    hub = FakeHub([])
    box = StatusBox("running")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        sleep=_no_sleep,
    )

    assert asyncio.run(poller.run()) is None
    assert hub.calls == 0


def test_poller_survives_fetch_errors() -> None:
    hub = FakeHub(
        HubUnavailableError("hub down"),
        ConnectionError("refused"),
        [SessionInfo(id="s1", status="error", error="boot failed")],
    )
    box = StatusBox("starting")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        sleep=_no_sleep,
    )

    asyncio.run(poller.run())

    assert poller.ticks == 3
    assert box.status == "error"


def test_push_update_during_sleep_stops_poller_without_fetching() -> None:
    hub = FakeHub([SessionInfo(id="s1", status="starting")])
    box = StatusBox("starting")

    async def sleep_then_push(_delay: float) -> None:
        box.status = "running"

    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        sleep=sleep_then_push,
    )

    asyncio.run(poller.run())

    assert hub.calls == 0
    assert box.updates == []


def test_poller_gives_up_when_session_stays_missing() -> None:
    hub = FakeHub([SessionInfo(id="other", status="running")])
    box = StatusBox("starting")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        max_missed_polls=3,
        sleep=_no_sleep,
    )

    assert asyncio.run(poller.run()) is None
    assert hub.calls == 3
    assert poller.missed == 3
    assert box.updates == []


def test_poller_miss_count_resets_when_session_reappears() -> None:
    hub = FakeHub(
        [],
        [],
        [SessionInfo(id="s1", status="starting")],
        [],
        [],
        [SessionInfo(id="s1", status="running")],
    )
    box = StatusBox("starting")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        max_missed_polls=3,
        sleep=_no_sleep,
    )

    asyncio.run(poller.run())

    assert hub.calls == 6
    assert box.status == "running"


def test_fetch_errors_do_not_count_as_missed_polls() -> None:
    hub = FakeHub(
        ConnectionError("refused"),
        ConnectionError("refused"),
        ConnectionError("refused"),
        [SessionInfo(id="s1", status="running")],
    )
    box = StatusBox("starting")
    poller = SessionStatusPoller(
        session_id="s1",
        fetch_sessions=hub.fetch_sessions,
        current_status=lambda: box.status,
        on_update=box.apply,
        max_missed_polls=1,
        sleep=_no_sleep,
    )

    asyncio.run(poller.run())

    assert poller.missed == 0
    assert box.status == "running"


def test_stop_cancels_a_running_poller() -> None:
    async def scenario() -> None:
        hub = FakeHub([SessionInfo(id="s1", status="starting")])
        box = StatusBox("starting")
        poller = SessionStatusPoller(
            session_id="s1",
            fetch_sessions=hub.fetch_sessions,
            current_status=lambda: box.status,
            on_update=box.apply,
            interval=0.0,
        )
        task = poller.start()
        assert poller.start() is task
        while hub.calls < 3:
            await asyncio.sleep(0)
        poller.stop()
        await asyncio.gather(task, return_exceptions=True)
        assert poller.active is False
        assert [info.status for info in box.updates] == ["starting"]

    asyncio.run(scenario())
