"""Gramin KaamConnect session and profile client."""

from kaamconnect.core.config import Settings, get_settings
from kaamconnect.core.exceptions import AppException, ErrorCode
from kaamconnect.dependencies import (
    create_session_manager,
    create_storage,
    create_supabase_client,
)
from kaamconnect.domain.entities.profile import Profile, Role
from kaamconnect.domain.entities.session import AuthChangeEvent, Session, User
from kaamconnect.domain.entities.state import ManagerState, StatePhase
from kaamconnect.domain.services.session_manager import SessionManager

__version__ = "1.0.0"

__all__ = [
    "AppException",
    "AuthChangeEvent",
    "ErrorCode",
    "ManagerState",
    "Profile",
    "Role",
    "Session",
    "SessionManager",
    "Settings",
    "StatePhase",
    "User",
    "create_session_manager",
    "create_storage",
    "create_supabase_client",
    "get_settings",
]
