"""
Analysis Cache

Stores analysis results (heatmaps, content analyses) in SQLite so that
re-analyzing the same PGN or article is free.

Entries are keyed by a hash of (content type, trimmed content). The store
is bounded: least recently accessed rows are dropped past ``max_entries``,
and ``clear_expired`` purges rows older than a given age.

Every failure is soft: reads miss, writes return False.
"""

import hashlib
import json
import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000


def content_key(content_type: str, content: str) -> str:
    """Stable key for a (content type, content) pair; surrounding whitespace is ignored."""
    canonical = json.dumps([content_type, (content or "").strip()], ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class AnalysisCache:
    """
    SQLite-backed cache of JSON analysis payloads.

    Args:
        db_path: Database file. ``":memory:"`` is not supported because each
            operation opens its own connection.
        max_entries: Row limit; ``None`` or 0 disables it.
        clock: Returns the current datetime; used for access stamps and expiry.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = Path(db_path)
        self.max_entries = max_entries or None
        self._clock = clock

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection, creating the table if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row

        conn.execute("""
            CREATE TABLE IF NOT EXISTS analysis_cache (
                cache_key TEXT PRIMARY KEY,
                content_type TEXT NOT NULL,
                payload TEXT NOT NULL,
                hit_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                last_accessed TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_last_accessed ON analysis_cache(last_accessed)
        """)

        conn.commit()
        return conn

    def _now(self) -> str:
        return self._clock().isoformat()

    def get(self, content_type: str, content: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a cached payload.

        Returns:
            The stored dict, or None if absent or unreadable.
        """
        key = content_key(content_type, content)
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT payload FROM analysis_cache WHERE cache_key = ?",
                    (key,),
                ).fetchone()
                if not row:
                    logger.debug("Analysis cache miss: %s %s", content_type, key[:12])
                    return None
                conn.execute(
                    """
                    UPDATE analysis_cache
                    SET hit_count = hit_count + 1, last_accessed = ?
                    WHERE cache_key = ?
                    """,
                    (self._now(), key),
                )
                conn.commit()
            finally:
                conn.close()
            payload = json.loads(row["payload"])
        except (sqlite3.Error, OSError, ValueError) as e:
            logger.warning("Analysis cache read error: %s", e)
            return None

        logger.debug("Analysis cache hit: %s %s", content_type, key[:12])
        return payload

    def put(self, content_type: str, content: str, payload: dict[str, Any]) -> bool:
        """
        Store a payload.

        Returns:
            True if cached successfully.
        """
        key = content_key(content_type, content)
        now = self._now()
        try:
            encoded = json.dumps(payload)
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO analysis_cache (
                        cache_key, content_type, payload, hit_count, created_at, last_accessed
                    ) VALUES (?, ?, ?, 0, ?, ?)
                    """,
                    (key, content_type, encoded, now, now),
                )
                self._enforce_limit(conn)
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.warning("Analysis cache write error: %s", e)
            return False
        return True

    def _enforce_limit(self, conn: sqlite3.Connection) -> int:
        if self.max_entries is None:
            return 0
        cursor = conn.execute(
            """
            DELETE FROM analysis_cache WHERE cache_key IN (
                SELECT cache_key FROM analysis_cache
                ORDER BY last_accessed DESC, rowid DESC
                LIMIT -1 OFFSET ?
            )
            """,
            (self.max_entries,),
        )
        if cursor.rowcount:
            logger.debug("Evicted %d analysis cache entries", cursor.rowcount)
        return cursor.rowcount

    def clear_expired(self, days: int = 30) -> int:
        """Delete entries not accessed within ``days``. Returns rows removed."""
        cutoff = (self._clock() - timedelta(days=days)).isoformat()
        try:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "DELETE FROM analysis_cache WHERE last_accessed < ?",
                    (cutoff,),
                )
                deleted = cursor.rowcount
                conn.commit()
            finally:
                conn.close()
            return deleted
        except (sqlite3.Error, OSError) as e:
            logger.warning("Analysis cache purge error: %s", e)
            return 0

    def clear(self, content_type: Optional[str] = None) -> int:
        """Clear the cache, optionally for one content type only."""
        try:
            conn = self._get_connection()
            try:
                if content_type:
                    cursor = conn.execute(
                        "DELETE FROM analysis_cache WHERE content_type = ?",
                        (content_type,),
                    )
                else:
                    cursor = conn.execute("DELETE FROM analysis_cache")
                deleted = cursor.rowcount
                conn.commit()
            finally:
                conn.close()
            return deleted
        except (sqlite3.Error, OSError) as e:
            logger.warning("Analysis cache clear error: %s", e)
            return 0

    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        try:
            conn = self._get_connection()
            try:
                total = conn.execute("SELECT COUNT(*) FROM analysis_cache").fetchone()[0]
                hits = conn.execute("SELECT COALESCE(SUM(hit_count), 0) FROM analysis_cache").fetchone()[0]
            finally:
                conn.close()
            size = self.db_path.stat().st_size if self.db_path.exists() else 0
        except (sqlite3.Error, OSError) as e:
            return {"error": str(e)}

        return {
            "total_entries": total,
            "total_hits": hits,
            "cache_size_mb": round(size / (1024 * 1024), 2),
            "cache_path": str(self.db_path),
        }
