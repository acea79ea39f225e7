"""Durable storage used by the synchronizers and the customer session.

Two stores live here:

* :class:`KeyValueStore` – a flat ``key -> JSON`` table in SQLite that keeps
  collection caches and availability flags across restarts.
* :class:`CredentialStore` – a private JSON file that holds the session
  token and nothing else.

Storage is best effort. A failing disk must never break the shopping flow, so
errors are logged and swallowed here; the in-memory collection stays correct
for the running session.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

_LOGGER = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class KeyValueStore:
    """SQLite-backed key/value store with JSON-serialised values."""

    def __init__(self, path: str | Path = MEMORY_PATH) -> None:
        self._is_memory = str(path) == MEMORY_PATH
        self.path = Path(path) if not self._is_memory else None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._shared_conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()
        self._schema_ready = False

    # ------------------------------------------------------------------
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._is_memory:
            if self._shared_conn is None:
                self._shared_conn = sqlite3.connect(MEMORY_PATH)
            yield self._shared_conn
        else:
            conn = sqlite3.connect(self.path)
            try:
                yield conn
            finally:
                conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if self._schema_ready:
            return
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
        self._schema_ready = True

    # ------------------------------------------------------------------
    async def async_get(self, key: str) -> Any:
        """Return the decoded value stored under ``key`` or ``None``."""

        try:
            with self._connection() as conn:
                self._ensure_schema(conn)
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except (sqlite3.Error, OSError) as err:
            _LOGGER.error("Error reading %s from store: %s", key, err)
            return None
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as err:
            _LOGGER.error("Discarding unreadable value for %s: %s", key, err)
            return None

    async def async_set(self, key: str, value: Any) -> bool:
        """Persist ``value`` under ``key``; returns ``False`` when it was not saved."""

        try:
            payload = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as err:
            _LOGGER.error("Error serialising %s: %s", key, err)
            return False
        now = datetime.now(tz=UTC).isoformat()
        async with self._lock:
            try:
                with self._connection() as conn:
                    self._ensure_schema(conn)
                    conn.execute(
                        """
                        INSERT INTO kv_store(key, value, updated_at) VALUES(?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                        """,
                        (key, payload, now),
                    )
                    conn.commit()
            except (sqlite3.Error, OSError) as err:
                _LOGGER.error("Error saving %s to store: %s", key, err)
                return False
        return True

    async def async_remove(self, key: str) -> None:
        async with self._lock:
            try:
                with self._connection() as conn:
                    self._ensure_schema(conn)
                    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                    conn.commit()
            except (sqlite3.Error, OSError) as err:
                _LOGGER.error("Error removing %s from store: %s", key, err)

    async def async_clear(self) -> None:
        async with self._lock:
            try:
                with self._connection() as conn:
                    self._ensure_schema(conn)
                    conn.execute("DELETE FROM kv_store")
                    conn.commit()
            except (sqlite3.Error, OSError) as err:
                _LOGGER.error("Error clearing store: %s", err)

    def keys(self) -> list[str]:
        try:
            with self._connection() as conn:
                self._ensure_schema(conn)
                rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        except (sqlite3.Error, OSError) as err:
            _LOGGER.error("Error listing store keys: %s", err)
            return []
        return [row[0] for row in rows]

    def close(self) -> None:
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None
            self._schema_ready = False


class CredentialStore:
    """Token storage kept apart from the general store, readable by the owner only."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("credential file must contain an object")
        return {str(key): str(value) for key, value in data.items() if value is not None}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle)
        os.replace(tmp_path, self.path)

    async def async_get_token(self, key: str) -> str | None:
        try:
            return self._read().get(key)
        except (OSError, ValueError) as err:
            _LOGGER.error("Error reading token %s: %s", key, err)
            return None

    async def async_set_token(self, key: str, value: str) -> None:
        """Store ``value``; unlike the general store a failure here is raised."""

        async with self._lock:
            try:
                data = self._read()
            except (OSError, ValueError):
                _LOGGER.debug("Replacing unreadable credential file %s", self.path, exc_info=True)
                data = {}
            data[key] = value
            try:
                self._write(data)
            except OSError as err:
                _LOGGER.error("Error saving token %s: %s", key, err)
                raise

    async def async_remove_token(self, key: str) -> None:
        async with self._lock:
            try:
                data = self._read()
                if key not in data:
                    return
                data.pop(key)
                self._write(data)
            except (OSError, ValueError) as err:
                _LOGGER.error("Error removing token %s: %s", key, err)


__all__ = ["CredentialStore", "KeyValueStore", "MEMORY_PATH"]
