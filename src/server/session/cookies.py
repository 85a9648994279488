from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Literal, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SameSite = Literal["strict", "lax", "none"]


@dataclass(slots=True)
class _OutgoingCookie:
    value: Optional[str]
    path: str
    expires: Optional[datetime]
    samesite: Optional[SameSite]
    secure: bool
    httponly: bool


class CookieJar:
    """Reads inbound cookies from a request and queues outbound ones.

    Outbound cookies are written to the response by :meth:`apply` once the
    response object exists.
    """

    def __init__(self, request: Request) -> None:
        self._request = request
        self._outgoing: Dict[str, _OutgoingCookie] = {}

    def get(self, name: str) -> Optional[str]:
        return self._request.cookies.get(name)

    def set(
        self,
        name: str,
        value: Optional[str] = None,
        *,
        path: str = "/",
        expires: Optional[datetime] = None,
        samesite: Optional[SameSite] = "lax",
        secure: bool = False,
        httponly: bool = True,
        overwrite: bool = True,
    ) -> None:
        """Queue a cookie. Without ``value`` the cookie is expired on the client."""
        if not overwrite and name in self._outgoing:
            return
        self._outgoing[name] = _OutgoingCookie(
            value=value,
            path=path,
            expires=expires,
            samesite=samesite,
            secure=secure,
            httponly=httponly,
        )

    def outgoing(self, name: str) -> Optional[str]:
        cookie = self._outgoing.get(name)
        return cookie.value if cookie else None

    def is_pending(self, name: str) -> bool:
        return name in self._outgoing

    def apply(self, response: Response) -> None:
        for name, cookie in self._outgoing.items():
            if cookie.value is None:
                response.delete_cookie(
                    name,
                    path=cookie.path,
                    secure=cookie.secure,
                    httponly=cookie.httponly,
                    samesite=cookie.samesite,
                )
                continue
            response.set_cookie(
                name,
                cookie.value,
                path=cookie.path,
                expires=cookie.expires,
                secure=cookie.secure,
                httponly=cookie.httponly,
                samesite=cookie.samesite,
            )


class CookieJarMiddleware(BaseHTTPMiddleware):
    """Attach a :class:`CookieJar` to ``request.state.cookies`` for every request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        jar = CookieJar(request)
        request.state.cookies = jar
        response = await call_next(request)
        jar.apply(response)
        return response
