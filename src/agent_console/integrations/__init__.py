from agent_console.integrations.hub_client import HubClient

__all__ = ["HubClient"]
