from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Union

import streamlit as st

from pantry.schema import COLLECTION_TABLES, SCHEMA_SQL
from pantry.store import DocumentStore


def _connect(db_path: Union[Path, str]) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return _connect(db_path)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    cols = [r["name"] for r in rows]
    return column in cols


def ensure_schema(conn: sqlite3.Connection) -> None:
    # Create base schema (for new installs)
    conn.executescript(SCHEMA_SQL)

    # ---- migrations for existing installs ----
    # Databases created before optimistic concurrency have no version column
    for table in COLLECTION_TABLES.values():
        if not _column_exists(conn, table, "version"):
            conn.execute(f"ALTER TABLE {table} ADD COLUMN version INTEGER NOT NULL DEFAULT 0;")

    conn.commit()


def open_store(db_path: Union[Path, str], **kwargs) -> DocumentStore:
    conn = _connect(db_path)
    ensure_schema(conn)
    return DocumentStore(conn, **kwargs)


@st.cache_resource
def get_store(db_path: Path) -> DocumentStore:
    conn = get_conn(db_path)
    ensure_schema(conn)
    return DocumentStore(conn)
