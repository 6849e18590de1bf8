from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Optional

from pantry.errors import (
    ConcurrentUpdateError,
    DocumentNotFoundError,
    IndexUnavailableError,
    StoreError,
)
from pantry.schema import COLLECTION_TABLES, INDEXED_FIELDS
from pantry.utils import iso_now

logger = logging.getLogger(__name__)

_RESERVED = {"id", "version"}


class DocumentStore:
    """
    Small document store on top of sqlite.

    Each collection is a table holding a JSON body; `branch`, `descriptionNorm`
    and `date` are mirrored into columns so equality lookups and date ordering
    can use an index. Filtering on any other field is refused with
    IndexUnavailableError: callers that need it scan a branch and filter
    client-side.

    Writes outside `transaction()` commit immediately. Inside it they commit
    together when the outermost block exits, or roll back on error.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        indexed_fields: Optional[Iterable[str]] = None,
        clock: Callable[[], str] = iso_now,
    ) -> None:
        self.conn = conn
        self.indexed_fields = set(INDEXED_FIELDS) if indexed_fields is None else set(indexed_fields)
        self._clock = clock
        self._lock = threading.RLock()
        self._depth = 0

    # -------------------------
    # Plumbing
    # -------------------------

    def server_timestamp(self) -> str:
        return self._clock()

    def _table(self, collection: str) -> str:
        try:
            return COLLECTION_TABLES[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}")

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise StoreError(f"Store failure: {e}") from e

    def _commit(self) -> None:
        if self._depth == 0:
            try:
                self.conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Store failure: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator["DocumentStore"]:
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                raise
            self._depth -= 1
            self._commit()

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> dict:
        doc = json.loads(row["body"])
        doc["id"] = int(row["id"])
        doc["version"] = int(row["version"])
        return doc

    @staticmethod
    def _columns(body: dict) -> tuple:
        return (body.get("branch"), body.get("descriptionNorm"), body.get("date"))

    # -------------------------
    # Operations
    # -------------------------

    def find(
        self, collection: str, filter: Optional[dict] = None, *, limit: Optional[int] = None
    ) -> list[dict]:
        """Equality filter on indexed fields; newest `date` first, at most `limit` rows."""
        table = self._table(collection)
        where = []
        params: list[Any] = []
        for field, value in (filter or {}).items():
            if field not in self.indexed_fields or field not in INDEXED_FIELDS:
                raise IndexUnavailableError(collection, field)
            where.append(f"{INDEXED_FIELDS[field]}=?")
            params.append(value)

        sql = f"SELECT id, version, body FROM {table}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._lock:
            rows = self._execute(sql, params).fetchall()
        return [self._row_to_doc(r) for r in rows]

    def get(self, collection: str, doc_id: int) -> dict:
        table = self._table(collection)
        with self._lock:
            row = self._execute(
                f"SELECT id, version, body FROM {table} WHERE id=?", (int(doc_id),)
            ).fetchone()
        if row is None:
            raise DocumentNotFoundError(collection, int(doc_id))
        return self._row_to_doc(row)

    def insert(self, collection: str, fields: dict) -> int:
        table = self._table(collection)
        body = {k: v for k, v in fields.items() if k not in _RESERVED}
        body.setdefault("date", self.server_timestamp())

        with self._lock:
            cur = self._execute(
                f"INSERT INTO {table} (branch, description_norm, date, version, body) VALUES (?, ?, ?, 0, ?)",
                (*self._columns(body), json.dumps(body)),
            )
            self._commit()
        doc_id = int(cur.lastrowid)
        logger.debug("insert %s id=%s", collection, doc_id)
        return doc_id

    def update(
        self,
        collection: str,
        doc_id: int,
        fields: dict,
        *,
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Merge `fields` into the stored document and bump its version.

        With `expected_version`, the write only lands when the stored version
        still matches; otherwise ConcurrentUpdateError is raised and nothing is
        written.
        """
        table = self._table(collection)
        with self._lock:
            current = self.get(collection, doc_id)
            if expected_version is not None and int(current["version"]) != int(expected_version):
                raise ConcurrentUpdateError(collection, int(doc_id), expected_version)

            body = {k: v for k, v in current.items() if k not in _RESERVED}
            body.update({k: v for k, v in fields.items() if k not in _RESERVED})
            version = int(current["version"])

            cur = self._execute(
                f"""
                UPDATE {table}
                SET branch=?, description_norm=?, date=?, version=version+1, body=?
                WHERE id=? AND version=?
                """,
                (*self._columns(body), json.dumps(body), int(doc_id), version),
            )
            if cur.rowcount == 0:
                raise ConcurrentUpdateError(collection, int(doc_id), expected_version)
            self._commit()
        logger.debug("update %s id=%s version=%s", collection, doc_id, version + 1)
        return version + 1

    def delete(self, collection: str, doc_id: int) -> None:
        table = self._table(collection)
        with self._lock:
            cur = self._execute(f"DELETE FROM {table} WHERE id=?", (int(doc_id),))
            if cur.rowcount == 0:
                raise DocumentNotFoundError(collection, int(doc_id))
            self._commit()
        logger.debug("delete %s id=%s", collection, doc_id)

    def count(self, collection: str) -> int:
        table = self._table(collection)
        with self._lock:
            row = self._execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
        return int(row["n"])

    def clear(self, collection: str) -> None:
        table = self._table(collection)
        with self._lock:
            self._execute(f"DELETE FROM {table}")
            self._commit()
