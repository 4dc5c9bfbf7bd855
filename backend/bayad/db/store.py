from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import psycopg

logger = logging.getLogger(__name__)


class PersistenceFailure(RuntimeError):
    """Raised when the underlying key-value store cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store. Used when DATABASE_URL is not configured."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class PostgresStore:
    """
    Key-value blobs in a single PostgreSQL table:

      kv_store(key text primary key, value bytea, updated_at timestamptz)
    """

    def __init__(self, database_url: str):
        self.database_url = database_url.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self):
        if not self.enabled:
            raise PersistenceFailure("DATABASE_URL not configured")
        try:
            return psycopg.connect(self.database_url)
        except psycopg.Error as e:
            logger.error("Could not connect to database: %s", e)
            raise PersistenceFailure("could not connect to database") from e

    def ensure_schema(self) -> None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value BYTEA NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )
                conn.commit()
        except psycopg.Error as e:
            raise PersistenceFailure("could not create kv_store table") from e

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT value
                    FROM kv_store
                    WHERE key = %s
                    """,
                    (key,),
                )
                row = cur.fetchone()
                return bytes(row[0]) if row is not None else None
        except psycopg.Error as e:
            raise PersistenceFailure(f"could not read key {key}") from e

    def set(self, key: str, value: bytes) -> None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (%s, %s, now())
                    ON CONFLICT (key)
                    DO UPDATE SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                    """,
                    (key, value),
                )
                conn.commit()
        except psycopg.Error as e:
            raise PersistenceFailure(f"could not write key {key}") from e

    def delete(self, key: str) -> None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM kv_store
                    WHERE key = %s
                    """,
                    (key,),
                )
                conn.commit()
        except psycopg.Error as e:
            raise PersistenceFailure(f"could not delete key {key}") from e
