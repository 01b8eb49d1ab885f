from __future__ import annotations

import contextlib
import os
import sqlite3
from collections.abc import Iterable

from .logging_bridge import error as log_error
from .models import JobPosting, SeenRecord
from .utils import now_iso


class StoreInitError(RuntimeError):
    """Raised when the seen-job store cannot be opened or its schema created."""


# ---- Public API -------------------------------------------------------------


class SeenJobStore:
    """
    SQLite record of every posting url ever reported.

    Dedupe key: url. Read once at run start and written at most once at run end;
    the store is not safe for overlapping runs (the scheduler allows one instance).
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path

    def init(self) -> None:
        """
        Ensure the database file and schema exist. Safe to call multiple times.
        """
        try:
            _ensure_dir(self.sqlite_path)
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                _ensure_schema(conn)
        except (sqlite3.Error, OSError) as e:
            log_error({
                "component": "job_alert.db",
                "op": "init",
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise StoreInitError(f"Cannot initialize seen-job store at {self.sqlite_path!r}: {e}") from e

    def get_seen_jobs(self) -> list[SeenRecord]:
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            cur = conn.execute("SELECT url, title, place, first_seen_utc FROM seen_jobs")
            return [
                SeenRecord(url=url, title=title or "", place=place, first_seen_utc=ts or "")
                for (url, title, place, ts) in cur.fetchall()
            ]

    def add_seen_jobs(self, jobs: Iterable[JobPosting]) -> int:
        """
        Record postings as seen. Already-known urls are ignored.

        Returns:
            Number of rows actually inserted.
        """
        ts = now_iso()
        inserted = 0
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.cursor()
                cur.execute("BEGIN IMMEDIATE")
                try:
                    for job in jobs:
                        cur.execute(
                            """
                            INSERT OR IGNORE INTO seen_jobs (url, title, place, first_seen_utc)
                            VALUES (?, ?, ?, ?)
                            """,
                            (job.url, job.title, job.place, ts),
                        )
                        inserted += cur.rowcount
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
        except sqlite3.Error as e:
            log_error({
                "component": "job_alert.db",
                "op": "add_seen_jobs",
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise
        return inserted


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str) -> int:
    """Return total rows in seen_jobs; 0 if DB missing."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        (n,) = conn.execute("SELECT COUNT(*) FROM seen_jobs").fetchone()
    return int(n or 0)


def latest(sqlite_path: str, limit: int = 15) -> list[SeenRecord]:
    """Newest-first slice of the store (for operator scripts)."""
    with contextlib.closing(_connect(sqlite_path)) as conn:
        cur = conn.execute(
            """
            SELECT url, title, place, first_seen_utc
            FROM seen_jobs
            ORDER BY first_seen_utc DESC, rowid DESC
            LIMIT ?
            """,
            (int(limit),),
        )
        return [
            SeenRecord(url=url, title=title or "", place=place, first_seen_utc=ts or "")
            for (url, title, place, ts) in cur.fetchall()
        ]


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    with contextlib.suppress(FileNotFoundError):
        os.remove(sqlite_path)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; we manage transactions explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS seen_jobs (
          url   TEXT PRIMARY KEY,
          title TEXT NOT NULL DEFAULT '',
          place TEXT,
          first_seen_utc TEXT NOT NULL
        );
        """
    )
