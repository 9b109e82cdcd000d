"""
Cache stores — row storage behind the ResponseCache.

The ResponseCache owns keying and TTL rules; a store only persists rows
and must provide an atomic upsert on (cache_key, model). Two backends:

- InMemoryCacheStore: process-local dict, for tests and single workers
- SQLiteCacheStore: durable table shared by every worker on a host

Pick one from settings with `create_cache_store(config.cache)`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Optional

from llm_gateway.config.schema import CacheSettings
from llm_gateway.exceptions import CacheStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached response row."""

    key: str
    message: str
    response: str
    model: str
    created_at: float  # Unix timestamp (seconds)


class CacheStore(ABC):
    """Row store contract used by ResponseCache."""

    @abstractmethod
    def get(self, key: str, model: str) -> Optional[CacheEntry]:
        """Return the row for (key, model), expired or not."""

    @abstractmethod
    def upsert(self, entry: CacheEntry) -> None:
        """Insert the row, or overwrite response and created_at if present."""

    @abstractmethod
    def delete_older_than(self, cutoff: float) -> int:
        """Delete rows created before `cutoff`. Returns rows removed."""

    @abstractmethod
    def clear(self) -> int:
        """Delete every row. Returns rows removed."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored rows."""


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryCacheStore(CacheStore):
    """Dict-backed store. Last write wins under concurrent upserts."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, model: str) -> Optional[CacheEntry]:
        return self._rows.get((key, model))

    def upsert(self, entry: CacheEntry) -> None:
        with self._lock:
            existing = self._rows.get((entry.key, entry.model))
            if existing is not None:
                entry = replace(
                    existing,
                    response=entry.response,
                    created_at=entry.created_at,
                )
            self._rows[(entry.key, entry.model)] = entry

    def delete_older_than(self, cutoff: float) -> int:
        with self._lock:
            stale = [k for k, v in self._rows.items() if v.created_at < cutoff]
            for k in stale:
                del self._rows[k]
        return len(stale)

    def clear(self) -> int:
        with self._lock:
            count = len(self._rows)
            self._rows.clear()
        return count

    def count(self) -> int:
        return len(self._rows)


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteCacheStore(CacheStore):
    """
    Cache rows stored in SQLite.

    ```
         Column  |  Type  | Nullable |
    -------------+--------+----------+
     cache_key   | text   | not null |
     model       | text   | not null |
     message     | text   | not null |
     response    | text   | not null |
     created_at  | real   | not null |
    Indexes:
        PRIMARY KEY (cache_key, model)
        "response_cache_created_at" btree (created_at)
    ```
    """

    CREATE_CACHE_TABLE = """
        CREATE TABLE IF NOT EXISTS response_cache (
            cache_key  text NOT NULL,
            model      text NOT NULL,
            message    text NOT NULL,
            response   text NOT NULL,
            created_at real NOT NULL,
            PRIMARY KEY(cache_key, model)
        );
        """

    CREATE_INDEX = """
        CREATE INDEX IF NOT EXISTS response_cache_created_at
            ON response_cache (created_at)
        """

    SELECT_ENTRY_STATEMENT = """
        SELECT cache_key, message, response, model, created_at
          FROM response_cache
         WHERE cache_key=? AND model=?
        """

    UPSERT_ENTRY_STATEMENT = """
        INSERT INTO response_cache(cache_key, model, message, response, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (cache_key, model)
        DO UPDATE SET response = excluded.response,
                      created_at = excluded.created_at
        """

    DELETE_OLDER_THAN_STATEMENT = """
        DELETE FROM response_cache
         WHERE created_at < ?
        """

    DELETE_ALL_STATEMENT = "DELETE FROM response_cache"

    COUNT_STATEMENT = "SELECT count(*) FROM response_cache"

    def __init__(self, db_path: str = ":memory:") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self.connection: Optional[sqlite3.Connection] = None
        self.connect()

    def connect(self) -> None:
        """Open the database and create the table if needed."""
        logger.info("cache_store_connecting", extra={"db_path": self.db_path})
        try:
            self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
            cursor = self.connection.cursor()
            cursor.execute(self.CREATE_CACHE_TABLE)
            cursor.execute(self.CREATE_INDEX)
            cursor.close()
            self.connection.commit()
        except sqlite3.Error as e:
            if self.connection is not None:
                self.connection.close()
                self.connection = None
            raise CacheStoreError(
                f"Cannot initialize SQLite cache at {self.db_path}: {e}",
                operation="connect",
            ) from e

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def _execute(
        self,
        operation: str,
        statement: str,
        params: tuple = (),
        fetch: bool = False,
    ) -> Any:
        """Run one statement under the lock; return the first row or rowcount."""
        if self.connection is None:
            raise CacheStoreError(f"{operation}: cache is disconnected", operation=operation)
        try:
            with self._lock:
                cursor = self.connection.execute(statement, params)
                result = cursor.fetchone() if fetch else cursor.rowcount
                cursor.close()
                self.connection.commit()
                return result
        except sqlite3.Error as e:
            raise CacheStoreError(f"{operation}: {e}", operation=operation) from e

    def get(self, key: str, model: str) -> Optional[CacheEntry]:
        row = self._execute("get", self.SELECT_ENTRY_STATEMENT, (key, model), fetch=True)
        if row is None:
            return None
        return CacheEntry(
            key=row[0],
            message=row[1],
            response=row[2],
            model=row[3],
            created_at=row[4],
        )

    def upsert(self, entry: CacheEntry) -> None:
        self._execute(
            "upsert",
            self.UPSERT_ENTRY_STATEMENT,
            (entry.key, entry.model, entry.message, entry.response, entry.created_at),
        )

    def delete_older_than(self, cutoff: float) -> int:
        return self._execute("purge", self.DELETE_OLDER_THAN_STATEMENT, (cutoff,))

    def clear(self) -> int:
        return self._execute("clear", self.DELETE_ALL_STATEMENT)

    def count(self) -> int:
        return self._execute("count", self.COUNT_STATEMENT, fetch=True)[0]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_cache_store(config: CacheSettings) -> CacheStore:
    """Create the store configured under `cache.backend`."""
    logger.info("cache_store_create", extra={"backend": config.backend})
    match config.backend:
        case "memory":
            return InMemoryCacheStore()
        case "sqlite":
            return SQLiteCacheStore(config.sqlite_path)
        case _:
            raise ValueError(f"Invalid cache backend: {config.backend}")
