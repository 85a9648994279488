from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import Request

from src.config.session import SessionSettings

from .manager import SessionContext, SessionManager
from .store import SQLiteSessionStore

logger = logging.getLogger(__name__)

_SESSION_MANAGER: Optional[SessionManager] = None


def initialise_session_manager() -> SessionManager:
    """Create the session manager from environment configuration."""
    global _SESSION_MANAGER
    if _SESSION_MANAGER is not None:
        return _SESSION_MANAGER

    settings = SessionSettings.from_env()
    store = SQLiteSessionStore(settings.db_path)
    manager = SessionManager(store, settings)
    _SESSION_MANAGER = manager
    logger.info("Initialised session manager with DB path %s", store.db_path)
    return manager


def set_session_manager(manager: Optional[SessionManager]) -> None:
    global _SESSION_MANAGER
    _SESSION_MANAGER = manager


def get_session_manager() -> SessionManager:
    if _SESSION_MANAGER is None:
        raise RuntimeError("Session manager has not been initialised")
    return _SESSION_MANAGER


def get_session(request: Request) -> SessionContext:
    session = getattr(request.state, "session", None)
    if not isinstance(session, SessionContext):
        raise RuntimeError("No session on request; is SessionMiddleware installed?")
    return session
