from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .loader import get_bool_env, get_int_env, get_str_env

SAME_SITE_VALUES = ("strict", "lax", "none")


@dataclass(slots=True)
class SessionSettings:
    """Runtime options for the cookie session layer."""

    db_path: str = "sessions.db"
    delete_limit: int = 100
    delete_keep_days: int = 10
    delete_on_write: bool = True
    # Cookie lifetime in days; None keeps the cookie for the browser session only.
    session_expire: Optional[int] = None
    cookie_same_site: str = "lax"
    cookie_secure: bool = False

    def __post_init__(self) -> None:
        self.cookie_same_site = self.cookie_same_site.lower()
        if self.cookie_same_site not in SAME_SITE_VALUES:
            raise ValueError(
                f"cookie_same_site must be one of {', '.join(SAME_SITE_VALUES)}, got {self.cookie_same_site!r}"
            )
        if self.delete_limit < 1:
            raise ValueError("delete_limit must be at least 1")
        if self.delete_keep_days < 0:
            raise ValueError("delete_keep_days must not be negative")

    @classmethod
    def from_env(cls) -> "SessionSettings":
        return cls(
            db_path=get_str_env("SESSION_DB_PATH", "sessions.db"),
            delete_limit=get_int_env("SESSION_DELETE_LIMIT", 100),
            delete_keep_days=get_int_env("SESSION_DELETE_KEEP_DAYS", 10),
            delete_on_write=get_bool_env("SESSION_DELETE_ON_WRITE", True),
            session_expire=get_int_env("SESSION_EXPIRE_DAYS", None),
            cookie_same_site=get_str_env("SESSION_COOKIE_SAMESITE", "lax"),
            cookie_secure=get_bool_env("SESSION_COOKIE_SECURE", False),
        )
