from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from src.server.session.cookies import CookieJar


def _make_request(cookie: Optional[str] = None) -> Request:
    headers = [(b"cookie", cookie.encode("latin-1"))] if cookie else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


def _set_cookie_headers(jar: CookieJar) -> list[str]:
    response = Response()
    jar.apply(response)
    return [value for key, value in response.headers.items() if key == "set-cookie"]


def test_get_reads_inbound_cookie():
    jar = CookieJar(_make_request("session=abc; theme=dark"))
    assert jar.get("session") == "abc"
    assert jar.get("theme") == "dark"
    assert jar.get("missing") is None


def test_set_overwrites_queued_cookie():
    jar = CookieJar(_make_request())
    jar.set("session", "first")
    jar.set("session", "second")

    headers = _set_cookie_headers(jar)
    assert len(headers) == 1
    assert headers[0].startswith("session=second;")
    assert "HttpOnly" in headers[0]
    assert "Path=/" in headers[0]
    assert "SameSite=lax" in headers[0]


def test_set_without_overwrite_keeps_first_value():
    jar = CookieJar(_make_request())
    jar.set("session", "first")
    jar.set("session", "second", overwrite=False)
    assert jar.outgoing("session") == "first"


def test_set_without_value_expires_cookie():
    jar = CookieJar(_make_request("session=abc"))
    jar.set("session")

    assert jar.is_pending("session")
    assert jar.outgoing("session") is None
    headers = _set_cookie_headers(jar)
    assert len(headers) == 1
    assert "Max-Age=0" in headers[0]


def test_set_with_expiry_and_policy():
    jar = CookieJar(_make_request())
    expires = datetime.now(timezone.utc) + timedelta(days=30)
    jar.set("session", "abc", expires=expires, samesite="strict", secure=True)

    header = _set_cookie_headers(jar)[0]
    assert "Secure" in header
    assert "SameSite=strict" in header
    expires_attr = next(part for part in header.split("; ") if part.lower().startswith("expires="))
    sent = parsedate_to_datetime(expires_attr.split("=", 1)[1])
    assert abs(sent - expires) < timedelta(seconds=2)
