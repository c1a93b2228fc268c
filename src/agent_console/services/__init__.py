"""Agent Console service modules."""

__all__ = [
    "action_stream_service",
    "chat_sync_service",
    "session_service",
]
