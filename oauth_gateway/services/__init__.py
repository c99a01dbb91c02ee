"""
Service layer
"""

from .drive_service import DriveFlow
from .exchange_service import TokenExchanger
from .login_service import LoginFlow
from .registrar_service import RegistrarClient
from .session_service import MemorySessionStore, RedisSessionStore, SessionBroker, SessionStore

__all__ = [
    "DriveFlow",
    "LoginFlow",
    "MemorySessionStore",
    "RedisSessionStore",
    "RegistrarClient",
    "SessionBroker",
    "SessionStore",
    "TokenExchanger",
]
