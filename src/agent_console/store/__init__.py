from agent_console.store.run_registry import RunEntry, RunRegistry

__all__ = ["RunEntry", "RunRegistry"]
