from __future__ import annotations

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from .dependencies import get_session_manager
from .manager import MissingCookiesError, SessionManager

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR_DETAIL = "Internal Server Error"


class SessionMiddleware(BaseHTTPMiddleware):
    """Load the session before the endpoint runs and persist it afterwards.

    Requires :class:`~src.server.session.cookies.CookieJarMiddleware` to be
    installed outside of this middleware.
    """

    def __init__(self, app: ASGIApp, manager: Optional[SessionManager] = None) -> None:
        super().__init__(app)
        self._manager = manager

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        manager = self._manager or get_session_manager()
        try:
            await manager.start(request)
        except MissingCookiesError as exc:
            logger.error("Session could not be started: %s", exc)
            return JSONResponse(status_code=500, content={"detail": INTERNAL_SERVER_ERROR_DETAIL})

        response = await call_next(request)
        await manager.write_to_db(request)
        return response
