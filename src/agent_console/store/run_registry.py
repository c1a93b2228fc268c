from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from agent_console.sync.log_window import LogWindow
from agent_console.sync.stream_controller import ReconnectingStreamController


@dataclass
class RunEntry:
    run_id: str
    window: LogWindow
    controller: ReconnectingStreamController

    @property
    def running(self) -> bool:
        return self.controller.running

    def payload(self) -> dict[str, Any]:
        state = self.controller.state
        payload = state.to_payload()
        payload["id"] = self.run_id
        payload["log_window"] = self.window.snapshot().to_payload()
        payload["rendered_logs"] = self.window.render()
        return payload


class RunRegistry:
    """Live action runs keyed by id.

    An entry is created when a run starts (or is found already running on the
    hub) and removed explicitly once nothing references it any more.
    """

    def __init__(
        self,
        *,
        controller_factory: Callable[[str, LogWindow], ReconnectingStreamController],
        window_factory: Callable[[], LogWindow],
    ) -> None:
        self._controller_factory = controller_factory
        self._window_factory = window_factory
        self._entries: dict[str, RunEntry] = {}

    def ensure(self, run_id: str) -> RunEntry:
        entry = self._entries.get(run_id)
        if entry is None:
            window = self._window_factory()
            entry = RunEntry(run_id=run_id, window=window, controller=self._controller_factory(run_id, window))
            self._entries[run_id] = entry
        return entry

    def get(self, run_id: str) -> RunEntry | None:
        return self._entries.get(run_id)

    def remove(self, run_id: str) -> RunEntry | None:
        entry = self._entries.pop(run_id, None)
        if entry is not None:
            entry.controller.cancel()
        return entry

    def ids(self) -> list[str]:
        return list(self._entries)

    def prune(self, keep: Iterable[str]) -> list[str]:
        """Drop settled entries whose id is not in ``keep``; running ones stay."""
        keep_ids = set(keep)
        removed: list[str] = []
        for run_id, entry in list(self._entries.items()):
            if run_id in keep_ids or entry.running:
                continue
            self.remove(run_id)
            removed.append(run_id)
        return removed

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
