"""Versioned schema migrations for the session table."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

MAX_PAYLOAD_LENGTH = 15000

_CREATE_SESSIONS = f"""
CREATE TABLE IF NOT EXISTS sessions (
    uuid CHAR(36) PRIMARY KEY,
    json VARCHAR({MAX_PAYLOAD_LENGTH}) NOT NULL CHECK (length(json) <= {MAX_PAYLOAD_LENGTH}),
    updated TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

_CREATE_UPDATED_INDEX = "CREATE INDEX IF NOT EXISTS idx_sessions_updated ON sessions(updated);"

# SQLite has no ON UPDATE CURRENT_TIMESTAMP column option.
_CREATE_TOUCH_TRIGGER = """
CREATE TRIGGER IF NOT EXISTS trg_sessions_touch
AFTER UPDATE OF json ON sessions
BEGIN
    UPDATE sessions SET updated = CURRENT_TIMESTAMP WHERE uuid = NEW.uuid;
END;
"""

# Each entry is one schema version; never edit a released step, append a new one.
MIGRATIONS: tuple[tuple[str, ...], ...] = (
    (_CREATE_SESSIONS, _CREATE_UPDATED_INDEX),
    (_CREATE_TOUCH_TRIGGER,),
)


class SchemaMigrator:
    """Brings the session tables of a SQLite database to the latest version.

    The applied version is kept in a single-row bookkeeping table. Every step
    runs inside a ``BEGIN IMMEDIATE`` transaction, so concurrent processes
    serialize on the database write lock and a step is never applied twice.
    """

    def __init__(
        self,
        db_path: str,
        *,
        table_name: str = "sessions_db_version",
        migrations: Sequence[Sequence[str]] = MIGRATIONS,
    ) -> None:
        if not table_name.replace("_", "").isalnum():
            raise ValueError(f"Invalid version table name: {table_name!r}")
        self._db_path = db_path
        self._table_name = table_name
        self._migrations = tuple(tuple(step) for step in migrations)

    @property
    def latest_version(self) -> int:
        return len(self._migrations)

    async def run(self) -> int:
        """Apply pending migrations and return the resulting schema version."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        version = await asyncio.to_thread(self._run)
        logger.info("Session schema at version %d in %s", version, self._db_path)
        return version

    async def current_version(self) -> int:
        return await asyncio.to_thread(self._read_version)

    def _run(self) -> int:
        # Autocommit mode so the explicit BEGIN/COMMIT below are the only transactions.
        connection = sqlite3.connect(self._db_path, isolation_level=None)
        try:
            connection.execute(
                f"CREATE TABLE IF NOT EXISTS {self._table_name} ("
                "id INTEGER PRIMARY KEY CHECK (id = 1), version INTEGER NOT NULL)"
            )
            connection.execute(f"INSERT OR IGNORE INTO {self._table_name} (id, version) VALUES (1, 0)")

            while True:
                connection.execute("BEGIN IMMEDIATE")
                try:
                    version = self._select_version(connection)
                    if version >= len(self._migrations):
                        connection.execute("COMMIT")
                        return version

                    logger.debug("Applying session migration %d", version + 1)
                    for statement in self._migrations[version]:
                        connection.execute(statement)
                    connection.execute(
                        f"UPDATE {self._table_name} SET version = ? WHERE id = 1",
                        (version + 1,),
                    )
                    connection.execute("COMMIT")
                except Exception:
                    connection.execute("ROLLBACK")
                    raise
        finally:
            connection.close()

    def _read_version(self) -> int:
        with sqlite3.connect(self._db_path) as connection:
            try:
                return self._select_version(connection)
            except sqlite3.OperationalError:
                return 0

    def _select_version(self, connection: sqlite3.Connection) -> int:
        row = connection.execute(f"SELECT version FROM {self._table_name} WHERE id = 1").fetchone()
        return int(row[0]) if row else 0
