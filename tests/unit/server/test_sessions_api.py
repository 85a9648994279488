import asyncio
import logging
import sqlite3
from datetime import timedelta
from email.utils import parsedate_to_datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.config.session import SessionSettings
from src.server.session.dependencies import set_session_manager
from src.server.session.keys import is_valid_session_key, new_session_key
from src.server.session.manager import SessionManager
from src.server.session.middleware import SessionMiddleware
from src.server.session.router import router as session_router
from src.server.session.store import SQLiteSessionStore, format_timestamp, utc_now


def _make_manager(tmp_path, **overrides) -> SessionManager:
    db_path = str(tmp_path / "sessions_api.db")
    return SessionManager(SQLiteSessionStore(db_path), SessionSettings(db_path=db_path, **overrides))


def _session_cookies(response) -> list[str]:
    return [value for value in response.headers.get_list("set-cookie") if value.startswith("session=")]


@pytest.fixture
def manager(tmp_path):
    manager = _make_manager(tmp_path)
    set_session_manager(manager)
    yield manager
    set_session_manager(None)


@pytest.fixture
def client(manager):
    from src.server.app import app

    with TestClient(app) as test_client:
        yield test_client


def test_first_request_sets_cookie_and_stores_nothing(client: TestClient, manager: SessionManager):
    response = client.get("/api/session")
    assert response.status_code == 200
    body = response.json()
    assert is_valid_session_key(body["key"])
    assert body["data"] == {}

    cookies = _session_cookies(response)
    assert len(cookies) == 1
    assert cookies[0].startswith(f"session={body['key']};")
    assert "HttpOnly" in cookies[0]
    assert asyncio.run(manager.store.count()) == 0


def test_data_survives_between_requests(client: TestClient, manager: SessionManager):
    response = client.put("/api/session", json={"data": "hej test test"})
    assert response.status_code == 200
    key = response.json()["key"]

    response = client.get("/api/session")
    assert response.status_code == 200
    assert response.json() == {"key": key, "data": "hej test test"}

    with sqlite3.connect(manager.store.db_path) as connection:
        rows = connection.execute("SELECT uuid, json FROM sessions").fetchall()
    assert rows == [(key, '"hej test test"')]


def test_clearing_data_removes_row(client: TestClient, manager: SessionManager):
    key = client.put("/api/session", json={"data": {"cart": [1, 2]}}).json()["key"]
    assert asyncio.run(manager.store.get_payload(key)) == '{"cart":[1,2]}'

    response = client.put("/api/session", json={"data": {}})
    assert response.json()["key"] == key
    assert asyncio.run(manager.store.get_payload(key)) is None


def test_destroy_invalidates_cookie(client: TestClient, manager: SessionManager):
    key = client.put("/api/session", json={"data": {"user": "anna"}}).json()["key"]

    response = client.delete("/api/session")
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert asyncio.run(manager.store.get_payload(key)) is None
    cookies = _session_cookies(response)
    assert len(cookies) == 1
    assert "Max-Age=0" in cookies[0]

    client.cookies.clear()
    response = client.get("/api/session", headers={"Cookie": f"session={key}"})
    body = response.json()
    assert body["key"] != key
    assert body["data"] == {}


def test_unknown_key_is_never_echoed(client: TestClient):
    unknown = new_session_key()
    response = client.get("/api/session", headers={"Cookie": f"session={unknown}"})

    body = response.json()
    assert body["key"] != unknown
    cookies = _session_cookies(response)
    assert len(cookies) == 1
    assert unknown not in cookies[0]
    assert body["key"] in cookies[0]


def test_malformed_cookie_starts_new_session(client: TestClient):
    response = client.get("/api/session", headers={"Cookie": "session=../../etc/passwd"})
    assert response.status_code == 200
    assert is_valid_session_key(response.json()["key"])


def test_load_by_explicit_key(client: TestClient):
    key = client.put("/api/session", json={"data": {"cart": [7]}}).json()["key"]
    client.cookies.clear()

    response = client.post("/api/session/load", json={"key": key})
    assert response.status_code == 200
    assert response.json() == {"key": key, "data": {"cart": [7]}}
    assert any(key in cookie for cookie in _session_cookies(response))

    response = client.post("/api/session/load", json={"key": new_session_key()})
    assert response.status_code == 404


def test_cleanup_endpoint_removes_stale_rows(client: TestClient, manager: SessionManager):
    stale = new_session_key()
    with sqlite3.connect(manager.store.db_path) as connection:
        connection.execute(
            "INSERT INTO sessions (uuid, json, updated) VALUES (?, ?, ?)",
            (stale, '"stale"', format_timestamp(utc_now() - timedelta(days=30))),
        )
        connection.commit()

    response = client.post("/api/session/cleanup")
    assert response.status_code == 200
    assert response.json() == {"deleted": 1}
    assert asyncio.run(manager.store.get_payload(stale)) is None


def test_session_expire_is_applied_to_cookie(tmp_path):
    manager = _make_manager(tmp_path, session_expire=30)
    set_session_manager(manager)
    from src.server.app import app

    try:
        with TestClient(app) as client:
            response = client.get("/api/session")
    finally:
        set_session_manager(None)

    cookie = _session_cookies(response)[0]
    expires_attr = next(part for part in cookie.split("; ") if part.lower().startswith("expires="))
    expires = parsedate_to_datetime(expires_attr.split("=", 1)[1])
    assert abs(expires - (utc_now() + timedelta(days=30))) < timedelta(days=1)


def test_missing_cookie_jar_is_a_server_error(tmp_path, caplog):
    app = FastAPI()
    app.add_middleware(SessionMiddleware, manager=_make_manager(tmp_path))
    app.include_router(session_router)

    with caplog.at_level(logging.WARNING, logger="src.server.session"):
        with TestClient(app) as client:
            response = client.get("/api/session")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal Server Error"}
    records = [record for record in caplog.records if record.name.startswith("src.server.session")]
    assert len(records) == 1
    assert records[0].levelno == logging.ERROR
    assert records[0].exc_info is None


def test_package_exposes_app_lazily():
    import src.server as server_package
    from src.server.app import app

    assert server_package.app is app
    with pytest.raises(AttributeError):
        server_package.missing_attribute
