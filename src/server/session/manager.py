"""Cookie session lifecycle: resolve a session before a request, persist it after."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Optional

from starlette.requests import Request

from src.config.session import SessionSettings

from .cookies import CookieJar
from .keys import is_valid_session_key, new_session_key
from .migrations import SchemaMigrator
from .store import SQLiteSessionStore, utc_now

COOKIE_NAME = "session"
EMPTY_PAYLOAD = "{}"


class SessionError(Exception):
    """Base class for session lifecycle failures."""


class MissingCookiesError(SessionError):
    """Raised when a request has no cookie jar attached."""


class SessionDecodeError(SessionError):
    """Raised when a stored payload is not valid JSON."""


class SessionEncodeError(SessionError):
    """Raised when session data cannot be serialized to JSON."""


class InvalidSessionKeyError(SessionError):
    """Raised when non-empty data is written under a malformed key."""


class WriteResult(str, Enum):
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    DELETED = "deleted"


class SessionContext:
    """Request-scoped session state exposed to handlers as ``request.state.session``."""

    def __init__(self, manager: "SessionManager", cookies: Optional[CookieJar]) -> None:
        self.key: Optional[str] = None
        self.data: Any = {}
        self.start_data: Optional[str] = None
        self._manager = manager
        self._cookies = cookies

    @property
    def cookies(self) -> CookieJar:
        if self._cookies is None:
            raise MissingCookiesError("Session has no cookie jar")
        return self._cookies

    async def destroy(self) -> None:
        """Delete the stored session and expire the cookie."""
        await self._manager.destroy_session(self)

    def reset(self) -> None:
        self.key = None
        self.data = {}
        self.start_data = None


class SessionManager:
    def __init__(
        self,
        store: SQLiteSessionStore,
        settings: Optional[SessionSettings] = None,
        *,
        migrator: Optional[SchemaMigrator] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._settings = settings or SessionSettings()
        self._migrator = migrator or SchemaMigrator(store.db_path)
        self._logger = logger or logging.getLogger(__name__)
        self._schema_ready = False
        self._schema_task: Optional[asyncio.Task[int]] = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> SQLiteSessionStore:
        return self._store

    @property
    def settings(self) -> SessionSettings:
        return self._settings

    @property
    def schema_ready(self) -> bool:
        return self._schema_ready

    async def ensure_schema(self) -> None:
        """Run the schema migrations once; concurrent callers share the same run."""
        if self._schema_ready:
            return

        task = self._schema_task
        if task is None:
            task = asyncio.ensure_future(self._migrate())
            self._schema_task = task

        try:
            await asyncio.shield(task)
        except Exception:
            # Let the next caller retry a failed migration.
            if self._schema_task is task:
                self._schema_task = None
            raise

    async def start(self, request: Request) -> SessionContext:
        previous = getattr(request.state, "session", None)
        jar = getattr(request.state, "cookies", None)
        context = SessionContext(self, jar if isinstance(jar, CookieJar) else None)
        request.state.session = context

        cookies = self._require_cookies(request)
        await self.ensure_schema()

        key = previous.key if isinstance(previous, SessionContext) and previous.key else None
        if key is None:
            key = cookies.get(COOKIE_NAME)
            self._logger.debug("Session key loaded from cookie: %r", key)

        if not is_valid_session_key(key):
            if key is not None:
                self._logger.debug("Discarding malformed session key")
            self._mint(context)
            return context

        self._set_cookie(cookies, key)
        payload = await self._store.get_payload(key)
        if payload is None:
            # Expired or never existed; a fresh key keeps clients from choosing their own.
            self._logger.debug("No session data found for key %s", key)
            self._mint(context)
            return context

        context.data = self._decode(key, payload)
        context.key = key
        context.start_data = payload
        self._logger.debug("Fetched session data for key %s", key)
        return context

    async def load_session(self, key: Optional[str], request: Request) -> bool:
        """Load the session stored under an explicitly supplied key.

        Returns False and leaves the request untouched when the key is malformed
        or unknown.
        """
        cookies = self._require_cookies(request)
        if not is_valid_session_key(key):
            return False

        await self.ensure_schema()
        payload = await self._store.get_payload(key)
        if payload is None:
            self._logger.debug("No session data found for key %s", key)
            return False

        data = self._decode(key, payload)
        context = getattr(request.state, "session", None)
        if not isinstance(context, SessionContext):
            context = SessionContext(self, cookies)
            request.state.session = context
        context.key = key
        context.data = data
        context.start_data = payload
        self._set_cookie(cookies, key)
        return True

    async def destroy_session(self, context: SessionContext) -> None:
        key = context.cookies.get(COOKIE_NAME)
        if not is_valid_session_key(key):
            context.reset()
            return

        await self.ensure_schema()
        await self._store.delete(key)
        context.cookies.set(
            COOKIE_NAME,
            samesite=self._settings.cookie_same_site,
            secure=self._settings.cookie_secure,
        )
        context.reset()
        self._logger.debug("Destroyed session %s", key)

    async def write_to_db(self, request: Request) -> WriteResult:
        context = getattr(request.state, "session", None)
        if not isinstance(context, SessionContext):
            raise SessionError("No session context on request, start() must run first")

        try:
            payload = json.dumps(context.data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as exc:
            self._logger.error("Could not serialize session data for key %s: %s", context.key, exc)
            raise SessionEncodeError(str(exc)) from exc

        await self.ensure_schema()

        if payload == EMPTY_PAYLOAD:
            # Only a key that was loaded from or written to the store can own a row.
            if context.start_data is not None and is_valid_session_key(context.key):
                self._logger.debug("Empty session data, removing %s from the store", context.key)
                await self._store.delete(context.key)
            context.start_data = None
            return WriteResult.DELETED

        if not is_valid_session_key(context.key):
            self._logger.info("Refusing to write session data under invalid key %r", context.key)
            raise InvalidSessionKeyError("Invalid session key")

        if payload == context.start_data:
            self._logger.debug("Session data unchanged for %s, skipping write", context.key)
            return WriteResult.SKIPPED

        await self._store.save(context.key, payload)
        context.start_data = payload

        if self._settings.delete_on_write:
            self._schedule_cleanup()
        return WriteResult.PERSISTED

    async def delete_old_sessions(self) -> int:
        await self.ensure_schema()
        cutoff = utc_now() - timedelta(days=self._settings.delete_keep_days)
        deleted = await self._store.delete_older_than(cutoff, self._settings.delete_limit)
        if deleted:
            self._logger.info("Removed %d sessions not updated since %s", deleted, cutoff.isoformat())
        else:
            self._logger.debug("No sessions older than %s", cutoff.isoformat())
        return deleted

    async def close(self) -> None:
        """Wait for background cleanup passes still in flight."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _migrate(self) -> int:
        try:
            version = await self._migrator.run()
        except Exception:
            self._logger.exception("Could not run session database migrations")
            raise
        self._schema_ready = True
        return version

    def _schedule_cleanup(self) -> None:
        task = asyncio.create_task(self._cleanup_in_background())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _cleanup_in_background(self) -> None:
        try:
            await self.delete_old_sessions()
        except Exception:  # noqa: BLE001 - cleanup must never fail the triggering request
            self._logger.exception("Background session cleanup failed")

    def _require_cookies(self, request: Request) -> CookieJar:
        cookies = getattr(request.state, "cookies", None)
        if not isinstance(cookies, CookieJar):
            raise MissingCookiesError(
                "Can not find required cookie jar on request.state.cookies, install CookieJarMiddleware"
            )
        return cookies

    def _mint(self, context: SessionContext) -> None:
        context.key = new_session_key()
        context.data = {}
        context.start_data = None
        self._set_cookie(context.cookies, context.key)
        self._logger.debug("Created new session key %s", context.key)

    def _set_cookie(self, cookies: CookieJar, key: str) -> None:
        expires = None
        if self._settings.session_expire:
            expires = utc_now() + timedelta(days=self._settings.session_expire)
        cookies.set(
            COOKIE_NAME,
            key,
            expires=expires,
            samesite=self._settings.cookie_same_site,
            secure=self._settings.cookie_secure,
            httponly=True,
        )

    def _decode(self, key: str, payload: str) -> Any:
        try:
            return json.loads(payload)
        except ValueError as exc:
            self._logger.error("Invalid session data found in database for key %s", key)
            raise SessionDecodeError(f"Invalid session data for key {key}") from exc
