"""Conversation sessions, the session pool and account failover."""

from .conversation_session import AskResult, ConversationSession, ProgressCallback
from .failover import FailoverCoordinator
from .session_manager import SessionManager

__all__ = [
    "AskResult",
    "ConversationSession",
    "FailoverCoordinator",
    "ProgressCallback",
    "SessionManager",
]
