from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request


async def _json_object(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload.")
    return payload


def register_console_routes(app: FastAPI, *, state: Any, logger: logging.Logger) -> None:
    @app.get("/api/health")
    def api_health() -> dict[str, Any]:
        return {"ok": True, "hub_url": state.hub_base_url}

    @app.get("/api/sessions")
    def api_sessions() -> dict[str, Any]:
        return state.session_service.sessions_payload()

    @app.post("/api/sessions/refresh")
    async def api_refresh_sessions() -> dict[str, Any]:
        return await state.session_service.refresh()

    @app.get("/api/sessions/{session_id}")
    def api_session(session_id: str) -> dict[str, Any]:
        return {"session": state.session_service.session_payload(session_id)}

    @app.post("/api/sessions/{session_id}/watch")
    async def api_watch_session(session_id: str) -> dict[str, Any]:
        started = state.session_service.watch_starting(session_id)
        return {
            "watching": started or state.session_service.watching(session_id),
            "session": state.session_service.session_payload(session_id),
        }

    @app.get("/api/sessions/{session_id}/transcript")
    def api_session_transcript(session_id: str) -> dict[str, Any]:
        return state.chat_sync_service.transcript_payload(session_id)

    @app.get("/api/sessions/{session_id}/turns")
    def api_session_turns(session_id: str) -> dict[str, Any]:
        return state.chat_sync_service.turns_payload(session_id)

    @app.post("/api/sessions/{session_id}/snapshot")
    async def api_load_snapshot(session_id: str, request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        conversation_id = str(payload.get("conversation_id") or "").strip()
        if not conversation_id:
            raise HTTPException(status_code=400, detail="conversation_id is required.")
        state.session_service.session_payload(session_id)
        return await state.chat_sync_service.load_snapshot(session_id, conversation_id)

    @app.post("/api/sessions/{session_id}/follow")
    async def api_follow_session(session_id: str) -> dict[str, Any]:
        state.session_service.session_payload(session_id)
        state.chat_sync_service.start_follow(session_id)
        logger.debug("Following session %s push stream.", session_id)
        return {"session_id": session_id, "following": True}

    @app.delete("/api/sessions/{session_id}/follow")
    def api_unfollow_session(session_id: str) -> dict[str, Any]:
        stopped = state.chat_sync_service.stop_follow(session_id)
        return {"session_id": session_id, "following": False, "stopped": stopped}

    @app.get("/api/actions")
    def api_actions() -> dict[str, Any]:
        return state.action_stream_service.actions_payload()

    @app.post("/api/actions/{action_id}/run")
    async def api_run_action(action_id: str, request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        path = str(payload.get("path") or "").strip()
        if not path:
            raise HTTPException(status_code=400, detail="path is required.")
        body = payload.get("body")
        if body is not None and not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="body must be an object.")
        return {"action": state.action_stream_service.start_action(action_id, path, body)}

    @app.get("/api/actions/{action_id}")
    def api_action(action_id: str) -> dict[str, Any]:
        return {"action": state.action_stream_service.action_payload(action_id)}

    @app.post("/api/actions/{action_id}/reset")
    async def api_reset_action(action_id: str) -> dict[str, Any]:
        return {"action": state.action_stream_service.reset_action(action_id)}

    @app.post("/api/actions/{action_id}/cancel")
    async def api_cancel_action(action_id: str) -> dict[str, Any]:
        return {"action": state.action_stream_service.cancel_action(action_id)}

    @app.post("/api/actions/{action_id}/logs")
    async def api_add_action_log(action_id: str, request: Request) -> dict[str, Any]:
        payload = await _json_object(request)
        text = payload.get("text")
        if not isinstance(text, str):
            raise HTTPException(status_code=400, detail="text must be a string.")
        error = bool(payload.get("error"))
        return {"action": state.action_stream_service.add_log(action_id, text, error=error)}

    @app.delete("/api/actions/{action_id}")
    async def api_remove_action(action_id: str) -> dict[str, Any]:
        state.action_stream_service.remove_action(action_id)
        return {"removed": action_id}
