"""Genre->place mapping and exclusion list storage."""
from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from . import config
from .cache import open_connection, utc_now_iso
from .models import Candidate, Genre

logger = logging.getLogger(__name__)


class MemoryStore:
    """Session-scoped store; nothing survives the process."""

    def __init__(self, excluded_limit: int = config.EXCLUDED_IDS_LIMIT) -> None:
        self.excluded_limit = excluded_limit
        self._places: Dict[str, Candidate] = {}
        self._genres: Dict[str, str] = {}
        self._excluded: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def save(self, candidate: Candidate, genre: Genre) -> None:
        with self._lock:
            self._places[candidate.place_id] = candidate
            self._genres[genre.id] = candidate.place_id

    def get(self, genre_id: str) -> Optional[Candidate]:
        with self._lock:
            place_id = self._genres.get(genre_id)
            if place_id is None:
                return None
            return self._places.get(place_id)

    def exclude(self, place_id: str) -> None:
        with self._lock:
            if place_id in self._excluded:
                return
            self._excluded[place_id] = None
            while len(self._excluded) > self.excluded_limit:
                self._excluded.popitem(last=False)

    def excluded_ids(self) -> List[str]:
        with self._lock:
            return list(self._excluded)

    def clear_excluded(self) -> None:
        with self._lock:
            self._excluded.clear()


class SqliteStore:
    """Persistent store backed by SQLite; the exclusion list keeps the newest ids."""

    def __init__(self, db_path: str = config.STORE_DB_PATH, excluded_limit: int = config.EXCLUDED_IDS_LIMIT) -> None:
        self.db_path = db_path
        self.excluded_limit = excluded_limit
        self.conn = open_connection(db_path)
        self._lock = threading.RLock()
        self._closed = False
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS places (
                    place_id TEXT PRIMARY KEY,
                    place_json TEXT,
                    saved_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS genre_places (
                    genre_id TEXT PRIMARY KEY,
                    place_id TEXT,
                    genre_json TEXT,
                    saved_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS excluded_places (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    place_id TEXT UNIQUE,
                    added_at TEXT
                )
                """
            )
            self.conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.conn.commit()
            self.conn.close()
            self._closed = True

    def save(self, candidate: Candidate, genre: Genre) -> None:
        now = utc_now_iso()
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                "INSERT OR REPLACE INTO places (place_id, place_json, saved_at) VALUES (?, ?, ?)",
                (candidate.place_id, json.dumps(candidate.to_dict()), now),
            )
            cur.execute(
                """
                INSERT OR REPLACE INTO genre_places (genre_id, place_id, genre_json, saved_at)
                VALUES (?, ?, ?, ?)
                """,
                (genre.id, candidate.place_id, json.dumps(genre.to_dict()), now),
            )
            self.conn.commit()

    def get(self, genre_id: str) -> Optional[Candidate]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                SELECT p.place_json FROM genre_places g
                JOIN places p ON p.place_id = g.place_id
                WHERE g.genre_id = ?
                """,
                (genre_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        try:
            return Candidate.from_dict(json.loads(row["place_json"]))
        except (ValueError, KeyError) as exc:
            logger.warning("Stored place for genre %s is unreadable: %s", genre_id, exc)
            return None

    def exclude(self, place_id: str) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                "INSERT OR IGNORE INTO excluded_places (place_id, added_at) VALUES (?, ?)",
                (place_id, utc_now_iso()),
            )
            cur.execute(
                """
                DELETE FROM excluded_places WHERE seq NOT IN (
                    SELECT seq FROM excluded_places ORDER BY seq DESC LIMIT ?
                )
                """,
                (self.excluded_limit,),
            )
            self.conn.commit()

    def excluded_ids(self) -> List[str]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT place_id FROM excluded_places ORDER BY seq")
            return [row["place_id"] for row in cur.fetchall()]

    def clear_excluded(self) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM excluded_places")
            self.conn.commit()
