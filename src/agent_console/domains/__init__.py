from agent_console.domains.chat_domain import ChatDomain
from agent_console.domains.session_domain import SessionDomain

__all__ = [
    "ChatDomain",
    "SessionDomain",
]
