"""SQLite-backed build cache.

The cache records one row per built article and one row per resource file the
articles reference. It is the only persistent state of a build: the
orchestrator uses it to decide which articles need rebuilding and the output
writer reads it back to populate the output directory.

Every public query returns a :class:`Result` instead of raising, so callers
choose per call whether a storage failure is fatal.
"""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
import threading
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .errors import StoreError
from .utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Either ``result`` or ``error`` (with the traceback in ``stack``)."""

    result: Optional[T] = None
    error: Optional[str] = None
    stack: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise StoreError(self.error, self.stack)
        return self.result  # type: ignore[return-value]


def guarded(fn: Callable[[], T]) -> Result[T]:
    try:
        return Result(result=fn())
    except Exception as exc:
        logger.debug("Cache operation failed: %s", exc)
        return Result(error=f"{type(exc).__name__}: {exc}", stack=traceback.format_exc())


@dataclass(frozen=True)
class ArticleRow:
    local_path: str
    server_path: str
    created: dt.datetime
    modified: dt.datetime
    modified_on_disk: dt.datetime
    html: str = ""
    hash: str = ""
    title: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ResourceRow:
    local_path: str
    server_path: str
    modified_on_disk: dt.datetime
    id: Optional[int] = None


# Field name -> (column name, column declaration). SQL is generated from these
# tables, so a field rename only has to happen here.
ARTICLE_COLUMNS: dict[str, tuple[str, str]] = {
    "id": ("id", "INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL"),
    "hash": ("hash", "VARCHAR (64) NOT NULL"),
    "created": ("created", "DATETIME NOT NULL"),
    "modified": ("modified", "DATETIME NOT NULL"),
    "modified_on_disk": ("modified_on_disk", "DATETIME NOT NULL"),
    "local_path": ("local_path", "VARCHAR (2048) NOT NULL UNIQUE"),
    "server_path": ("server_path", "VARCHAR (2048) NOT NULL UNIQUE"),
    "html": ("html", "TEXT NOT NULL DEFAULT ''"),
    "title": ("title", "VARCHAR (1024)"),
}

RESOURCE_COLUMNS: dict[str, tuple[str, str]] = {
    "id": ("id", "INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL"),
    "modified_on_disk": ("modified_on_disk", "DATETIME NOT NULL"),
    "local_path": ("local_path", "VARCHAR (2048) NOT NULL UNIQUE"),
    "server_path": ("server_path", "VARCHAR (2048) NOT NULL UNIQUE"),
}

DATETIME_FIELDS = {"created", "modified", "modified_on_disk"}


def col(columns: dict[str, tuple[str, str]], field: str) -> str:
    return columns[field][0]


class _Repository(Generic[T]):
    table = ""
    columns: dict[str, tuple[str, str]] = {}
    row_type: type = object
    conflict_field = "local_path"

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock) -> None:
        self._conn = conn
        self._lock = lock

    def _col(self, field: str) -> str:
        return col(self.columns, field)

    def create_schema(self) -> None:
        decls = ",\n    ".join(f"{name} {decl}" for name, decl in self.columns.values())
        with self._lock, self._conn:
            self._conn.execute(f"CREATE TABLE IF NOT EXISTS {self.table} (\n    {decls}\n)")

    def _to_row(self, record: sqlite3.Row) -> T:
        values = {}
        for field, (name, _) in self.columns.items():
            value = record[name]
            if field in DATETIME_FIELDS:
                value = parse_timestamp(value)
            values[field] = value
        return self.row_type(**values)

    def _to_params(self, row: T) -> list:
        params = []
        for field in self._insert_fields():
            value = getattr(row, field)
            if field in DATETIME_FIELDS:
                value = format_timestamp(value)
            params.append(value)
        return params

    def _insert_fields(self) -> list[str]:
        return [field for field in self.columns if field != "id"]

    def _upsert(self, row: T) -> int:
        fields = self._insert_fields()
        names = [self._col(field) for field in fields]
        conflict = self._col(self.conflict_field)
        updates = ", ".join(f"{name} = excluded.{name}" for name in names if name != conflict)
        sql = (
            f"INSERT INTO {self.table} ({', '.join(names)}) "
            f"VALUES ({', '.join('?' for _ in names)}) "
            f"ON CONFLICT({conflict}) DO UPDATE SET {updates}"
        )
        key = getattr(row, self.conflict_field)
        with self._lock, self._conn:
            self._conn.execute(sql, self._to_params(row))
            # lastrowid is stale when the conflict branch updates an existing row.
            found = self._conn.execute(
                f"SELECT {self._col('id')} FROM {self.table} WHERE {conflict} = ?", (key,)
            ).fetchone()
        return int(found[0])

    def _select(self, where: str = "", params: Iterable = ()) -> list[T]:
        sql = f"SELECT * FROM {self.table}"
        if where:
            sql = f"{sql} WHERE {where}"
        with self._lock:
            records = self._conn.execute(sql, tuple(params)).fetchall()
        return [self._to_row(record) for record in records]

    def add(self, row: T) -> Result[int]:
        return guarded(lambda: self._upsert(row))

    def get_all(self) -> Result[list[T]]:
        return guarded(self._select)

    def get_from(self, modified_on_disk_start: dt.datetime) -> Result[list[T]]:
        """Rows whose on-disk modification time is strictly after the given time."""
        where = f"{self._col('modified_on_disk')} > ?"
        return guarded(lambda: self._select(where, (format_timestamp(modified_on_disk_start),)))


class ArticleRepository(_Repository[ArticleRow]):
    table = "article"
    columns = ARTICLE_COLUMNS
    row_type = ArticleRow

    def get_by_local_path(self, local_path: str) -> Result[Optional[ArticleRow]]:
        def query() -> Optional[ArticleRow]:
            rows = self._select(f"{self._col('local_path')} = ?", (local_path,))
            return rows[0] if rows else None

        return guarded(query)

    def get_max_modified_on_disk(self) -> Result[Optional[dt.datetime]]:
        def query() -> Optional[dt.datetime]:
            with self._lock:
                found = self._conn.execute(
                    f"SELECT MAX({self._col('modified_on_disk')}) FROM {self.table}"
                ).fetchone()
            return parse_timestamp(found[0]) if found else None

        return guarded(query)

    def remove(self, local_path: str) -> Result[int]:
        def delete() -> int:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    f"DELETE FROM {self.table} WHERE {self._col('local_path')} = ?", (local_path,)
                )
            return cursor.rowcount

        return guarded(delete)

    def clean_non_existing(self, existing_paths: Iterable[str]) -> Result[int]:
        """Delete every article whose local path is not in ``existing_paths``."""
        keep = sorted(set(existing_paths))
        local_path = self._col("local_path")

        def delete() -> int:
            with self._lock, self._conn:
                # A temp table avoids the bound-parameter limit of NOT IN (?, ?, ...).
                self._conn.execute("CREATE TEMP TABLE IF NOT EXISTS keep_path (path TEXT PRIMARY KEY)")
                self._conn.execute("DELETE FROM keep_path")
                self._conn.executemany("INSERT INTO keep_path (path) VALUES (?)", [(p,) for p in keep])
                cursor = self._conn.execute(
                    f"DELETE FROM {self.table} WHERE {local_path} NOT IN (SELECT path FROM keep_path)"
                )
                self._conn.execute("DELETE FROM keep_path")
            return cursor.rowcount

        return guarded(delete)


class ResourceRepository(_Repository[ResourceRow]):
    table = "resource"
    columns = RESOURCE_COLUMNS
    row_type = ResourceRow

    def add(self, row: ResourceRow) -> Result[int]:
        """Upsert by local path.

        Server paths are unique as well; a second local file claiming an
        existing server path is rejected instead of replacing the owner.
        """
        server_path = self._col("server_path")
        local_path = self._col("local_path")

        def upsert() -> int:
            with self._lock:
                owner = self._conn.execute(
                    f"SELECT {local_path} FROM {self.table} WHERE {server_path} = ?",
                    (row.server_path,),
                ).fetchone()
                if owner is not None and owner[0] != row.local_path:
                    raise ValueError(
                        f"Server path {row.server_path} is already used by {owner[0]}, "
                        f"cannot assign it to {row.local_path}"
                    )
                return self._upsert(row)

        return guarded(upsert)


class CacheDb:
    """One cache file holding the article and resource tables.

    The connection is shared by the build worker threads; every statement
    runs under one re-entrant lock.
    """

    def __init__(self, path: str | Path = ".cache.db") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30.0)
        self._conn.row_factory = sqlite3.Row
        self.articles = ArticleRepository(self._conn, self._lock)
        self.resources = ResourceRepository(self._conn, self._lock)

    @property
    def database_file(self) -> str:
        return self.path

    def create_schema(self) -> Result[bool]:
        def create() -> bool:
            with self._lock:
                self._conn.execute("PRAGMA temp_store = MEMORY")
                self.articles.create_schema()
                self.resources.create_schema()
            logger.debug("Cache schema ready in %s", self.path)
            return True

        return guarded(create)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "CacheDb":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_cache(path: str | Path) -> CacheDb:
    """Open the cache and create its schema, raising StoreError on failure."""
    cache = CacheDb(path)
    created = cache.create_schema()
    if not created.ok:
        cache.close()
        created.unwrap()
    return cache
