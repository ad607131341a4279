from .config import ServiceConfig, load_config
from .session_manager import SessionManager
from .session_store import InMemorySessionStore, SessionNotFound

__all__ = [
    "ServiceConfig",
    "load_config",
    "InMemorySessionStore",
    "SessionManager",
    "SessionNotFound",
]
