from agent_console.api.routes import register_console_routes

__all__ = ["register_console_routes"]
