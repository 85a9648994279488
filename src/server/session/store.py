from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import SessionRecord

logger = logging.getLogger(__name__)

# Matches SQLite's CURRENT_TIMESTAMP so text comparison orders correctly.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class SQLiteSessionStore:
    """SQLite-backed repository for cookie session payloads."""

    def __init__(self, db_path: str) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.suffix != ".db":
            path = path.with_suffix(".db")
        self._db_path = str(path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def get_payload(self, key: str) -> Optional[str]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT json FROM sessions WHERE uuid = ?",
            (key,),
        )
        return row["json"] if row else None

    async def get_record(self, key: str) -> Optional[SessionRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT uuid, json, updated FROM sessions WHERE uuid = ?",
            (key,),
        )
        if row is None:
            return None
        return SessionRecord(key=row["uuid"], payload=row["json"], updated_at=parse_timestamp(row["updated"]))

    async def count(self) -> int:
        row = await asyncio.to_thread(self._fetchone, "SELECT COUNT(*) AS total FROM sessions")
        return int(row["total"]) if row else 0

    async def save(self, key: str, payload: str) -> None:
        """Insert or replace the payload stored under ``key``."""
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO sessions (uuid, json) VALUES (?, ?)"
                " ON CONFLICT(uuid) DO UPDATE SET json = excluded.json",
                (key, payload),
            )

    async def delete(self, key: str) -> int:
        async with self._write_lock:
            return await asyncio.to_thread(
                self._execute,
                "DELETE FROM sessions WHERE uuid = ?",
                (key,),
            )

    async def delete_older_than(self, cutoff: datetime, limit: int) -> int:
        """Delete at most ``limit`` rows last updated before ``cutoff``, oldest first."""
        async with self._write_lock:
            return await asyncio.to_thread(
                self._execute,
                "DELETE FROM sessions WHERE uuid IN ("
                "SELECT uuid FROM sessions WHERE updated < ? ORDER BY updated ASC LIMIT ?)",
                (format_timestamp(cutoff), limit),
            )

    def _execute(self, query: str, params: tuple = ()) -> int:
        with sqlite3.connect(self._db_path) as connection:
            cursor = connection.execute(query, params)
            connection.commit()
            return cursor.rowcount

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            cursor = connection.execute(query, params)
            return cursor.fetchone()


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
