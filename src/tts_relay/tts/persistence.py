"""
Durable cache index (SQLite).

One row per stored audio file, unique on (content_key, voice, format):

    CREATE TABLE tts_cache (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        content_key TEXT NOT NULL,
        voice       TEXT NOT NULL,
        format      TEXT NOT NULL,
        audio_path  TEXT NOT NULL,
        created_at  REAL NOT NULL,          -- unix seconds
        UNIQUE(content_key, voice, format)
    )

Every operation opens its own connection (WAL mode, busy timeout) so the
index can be shared by the request threadpool and the sweep thread.
Inserting a duplicate raises sqlite3.IntegrityError and leaves the
existing row untouched.
"""
from __future__ import annotations

import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from tts_relay.core.logging import debug, get_logger, info

_LOG = get_logger("tts-relay.persistence")


@dataclass
class CacheEntry:
    content_key: str
    voice: str
    format: str
    audio_path: str
    created_at: float = field(default_factory=time.time)


class CacheIndex:
    """SQLite index of stored audio, keyed by (content_key, voice, format)."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_db(self) -> None:
        with closing(self._get_connection()) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tts_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_key TEXT NOT NULL,
                    voice TEXT NOT NULL,
                    format TEXT NOT NULL,
                    audio_path TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    UNIQUE(content_key, voice, format)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tts_cache_created ON tts_cache(created_at)")
            conn.commit()
        debug(_LOG, "index_ready", path=str(self.db_path))

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
        return CacheEntry(
            content_key=row["content_key"],
            voice=row["voice"],
            format=row["format"],
            audio_path=row["audio_path"],
            created_at=row["created_at"],
        )

    def insert(self, entry: CacheEntry) -> None:
        """
        Add an entry.

        Raises:
            sqlite3.IntegrityError: An entry for (content_key, voice, format) exists.
        """
        with closing(self._get_connection()) as conn:
            conn.execute(
                """
                INSERT INTO tts_cache (content_key, voice, format, audio_path, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry.content_key, entry.voice, entry.format, str(entry.audio_path), entry.created_at),
            )
            conn.commit()

    def lookup(self, content_key: str, voice: str, fmt: str) -> Optional[CacheEntry]:
        with closing(self._get_connection()) as conn:
            row = conn.execute(
                """
                SELECT content_key, voice, format, audio_path, created_at
                FROM tts_cache
                WHERE content_key = ? AND voice = ? AND format = ?
                """,
                (content_key, voice, fmt),
            ).fetchone()
        return self._row_to_entry(row) if row is not None else None

    def delete(self, content_key: str, voice: str, fmt: str) -> bool:
        with closing(self._get_connection()) as conn:
            cur = conn.execute(
                "DELETE FROM tts_cache WHERE content_key = ? AND voice = ? AND format = ?",
                (content_key, voice, fmt),
            )
            conn.commit()
            return cur.rowcount > 0

    def older_than(self, max_age_seconds: float, now: Optional[float] = None) -> List[CacheEntry]:
        """Entries created strictly before now - max_age_seconds."""
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        with closing(self._get_connection()) as conn:
            rows = conn.execute(
                """
                SELECT content_key, voice, format, audio_path, created_at
                FROM tts_cache
                WHERE created_at < ?
                ORDER BY created_at
                """,
                (cutoff,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def evict_older_than(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """
        Delete entries created strictly before now - max_age_seconds.

        An entry exactly max_age_seconds old is kept.

        Returns:
            Number of rows deleted.
        """
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        with closing(self._get_connection()) as conn:
            cur = conn.execute("DELETE FROM tts_cache WHERE created_at < ?", (cutoff,))
            conn.commit()
            removed = cur.rowcount

        if removed > 0:
            info(_LOG, "evicted", rows=removed, max_age_s=max_age_seconds)
        return removed

    def stats(self) -> Dict[str, Any]:
        with closing(self._get_connection()) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS entries, MIN(created_at) AS oldest FROM tts_cache"
            ).fetchone()
        return {"entries": row["entries"], "oldest_created_at": row["oldest"]}
