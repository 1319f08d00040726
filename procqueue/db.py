from __future__ import annotations
import os
import sqlite3
from pathlib import Path
from typing import Optional, Union

from .constants import APP_DIRNAME, DB_ENV, DB_FILENAME, DEFAULTS

PathLike = Union[str, Path]


def app_dir() -> Path:
    p = Path.home() / APP_DIRNAME
    p.mkdir(parents=True, exist_ok=True)
    return p


def db_path() -> Path:
    override = os.environ.get(DB_ENV)
    if override:
        return Path(override)
    return app_dir() / DB_FILENAME


def get_connection(path: Optional[PathLike] = None) -> sqlite3.Connection:
    # autocommit; callers open explicit transactions where they need them
    conn = sqlite3.connect(str(path or db_path()), timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path: Optional[PathLike] = None) -> None:
    """Create tables if they don't exist and seed default config."""
    conn = get_connection(path)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")

        # migrations (idempotent)
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS processing_queue (
                id TEXT PRIMARY KEY,
                payload_ref TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL DEFAULT 3,
                last_error TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_queue_status_created ON processing_queue(status, created_at);
            CREATE INDEX IF NOT EXISTS idx_queue_payload ON processing_queue(payload_ref);

            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )

        # seed defaults
        for k, v in DEFAULTS.items():
            conn.execute("INSERT OR IGNORE INTO config(key, value) VALUES(?, ?)", (k, v))
    finally:
        conn.close()


def get_config(key: str, default: Optional[str] = None, path: Optional[PathLike] = None) -> Optional[str]:
    conn = get_connection(path)
    try:
        row = conn.execute("SELECT value FROM config WHERE key=?", (key,)).fetchone()
    finally:
        conn.close()
    if row:
        return row[0]
    return default


def set_config(key: str, value: str, path: Optional[PathLike] = None) -> None:
    conn = get_connection(path)
    try:
        conn.execute(
            "INSERT INTO config(key, value) VALUES(?, ?)\n         ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
    finally:
        conn.close()


def all_config(path: Optional[PathLike] = None) -> dict:
    conn = get_connection(path)
    try:
        rows = conn.execute("SELECT key, value FROM config ORDER BY key").fetchall()
    finally:
        conn.close()
    return {r[0]: r[1] for r in rows}
