from __future__ import annotations

from typing import Any

from fastapi import HTTPException

from agent_console.store.run_registry import RunEntry


class ActionStreamService:
    def __init__(self, *, registry: Any, hub_client: Any) -> None:
        self._registry = registry
        self._hub_client = hub_client

    def start_action(self, action_id: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        if not path.startswith("/"):
            raise HTTPException(status_code=400, detail="path must start with '/'.")
        entry = self._registry.ensure(action_id)
        if entry.running:
            raise HTTPException(status_code=409, detail="Action is already running.")
        entry.controller.start(self._hub_client.action_starter(path, body=body))
        return entry.payload()

    def action_payload(self, action_id: str) -> dict[str, Any]:
        return self._entry(action_id).payload()

    def actions_payload(self) -> dict[str, Any]:
        return {"actions": [self._registry.get(action_id).payload() for action_id in self._registry.ids()]}

    def reset_action(self, action_id: str) -> dict[str, Any]:
        entry = self._entry(action_id)
        entry.controller.reset()
        return entry.payload()

    def cancel_action(self, action_id: str) -> dict[str, Any]:
        entry = self._entry(action_id)
        entry.controller.cancel()
        return entry.payload()

    def remove_action(self, action_id: str) -> None:
        if self._registry.remove(action_id) is None:
            raise HTTPException(status_code=404, detail="Action not found.")

    def add_log(self, action_id: str, text: str, *, error: bool = False) -> dict[str, Any]:
        entry = self._registry.ensure(action_id)
        entry.controller.add_log(text, error=error)
        return entry.payload()

    def stop_all(self) -> None:
        for action_id in self._registry.ids():
            self._registry.remove(action_id)

    def _entry(self, action_id: str) -> RunEntry:
        entry = self._registry.get(action_id)
        if entry is None:
            raise HTTPException(status_code=404, detail="Action not found.")
        return entry


__all__ = ["ActionStreamService"]
