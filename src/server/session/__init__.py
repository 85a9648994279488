"""Cookie sessions persisted in SQLite, with FastAPI integration."""

from .cookies import CookieJar, CookieJarMiddleware
from .dependencies import get_session, get_session_manager
from .keys import is_valid_session_key, new_session_key
from .manager import (
    COOKIE_NAME,
    InvalidSessionKeyError,
    MissingCookiesError,
    SessionContext,
    SessionDecodeError,
    SessionEncodeError,
    SessionError,
    SessionManager,
    WriteResult,
)
from .middleware import SessionMiddleware
from .migrations import SchemaMigrator
from .store import SQLiteSessionStore

__all__ = [
    "COOKIE_NAME",
    "CookieJar",
    "CookieJarMiddleware",
    "InvalidSessionKeyError",
    "MissingCookiesError",
    "SQLiteSessionStore",
    "SchemaMigrator",
    "SessionContext",
    "SessionDecodeError",
    "SessionEncodeError",
    "SessionError",
    "SessionManager",
    "SessionMiddleware",
    "WriteResult",
    "get_session",
    "get_session_manager",
    "is_valid_session_key",
    "new_session_key",
]
