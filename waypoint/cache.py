"""SQLite cache for Places search responses and route matrix durations."""
from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def make_request_cache_key(url: str, field_mask: str, body: Dict[str, Any]) -> str:
    payload = json.dumps(body, sort_keys=True, separators=(",", ":"))
    raw = f"{url}|{field_mask}|{payload}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def open_connection(db_path: str) -> sqlite3.Connection:
    # Worker threads share the connection; callers serialize access.
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    cur = conn.cursor()
    try:
        cur.execute("PRAGMA journal_mode=WAL")
        cur.fetchone()
    except sqlite3.DatabaseError:
        pass
    try:
        cur.execute("PRAGMA synchronous=NORMAL")
    except sqlite3.DatabaseError:
        pass
    return conn


class Cache:
    def __init__(self, db_path: str, commit_every: int = 50) -> None:
        self.db_path = db_path
        self.conn = open_connection(self.db_path)
        self._lock = threading.RLock()
        self._pending_writes = 0
        self._commit_every = max(1, int(commit_every))
        self._closed = False
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS places_search_cache (
                    key TEXT PRIMARY KEY,
                    response_json TEXT,
                    created_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS route_matrix_cache (
                    key TEXT PRIMARY KEY,
                    mode TEXT,
                    duration_seconds REAL,
                    created_at TEXT
                )
                """
            )
            self.conn.commit()

    def _mark_dirty(self) -> None:
        self._pending_writes += 1
        if self._pending_writes >= self._commit_every:
            self.commit()

    def commit(self) -> None:
        with self._lock:
            if self._pending_writes:
                self.conn.commit()
                self._pending_writes = 0

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.commit()
            self.conn.close()
            self._closed = True

    def get_search_cache(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            if self._closed:
                return None
            cur = self.conn.cursor()
            cur.execute("SELECT response_json FROM places_search_cache WHERE key = ?", (key,))
            row = cur.fetchone()
        if not row:
            return None
        return json.loads(row["response_json"])

    def set_search_cache(self, key: str, response: Dict[str, Any]) -> None:
        with self._lock:
            if self._closed:
                return
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT OR REPLACE INTO places_search_cache (key, response_json, created_at)
                VALUES (?, ?, ?)
                """,
                (key, json.dumps(response), utc_now_iso()),
            )
            self._mark_dirty()

    def get_route_duration(self, key: str) -> Optional[float]:
        with self._lock:
            if self._closed:
                return None
            cur = self.conn.cursor()
            cur.execute("SELECT duration_seconds FROM route_matrix_cache WHERE key = ?", (key,))
            row = cur.fetchone()
        if not row or row["duration_seconds"] is None:
            return None
        return float(row["duration_seconds"])

    def set_route_duration(self, key: str, mode: str, duration_seconds: float) -> None:
        with self._lock:
            if self._closed:
                return
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT OR REPLACE INTO route_matrix_cache (key, mode, duration_seconds, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, mode, float(duration_seconds), utc_now_iso()),
            )
            self._mark_dirty()
