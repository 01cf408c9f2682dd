"""Tests for the SQLite analysis cache."""

import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from narrator.analysis_cache import AnalysisCache, content_key


class SteppingClock:
    """Returns a time one second later on every call."""

    def __init__(self):
        self.current = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current

    def skip(self, **kwargs):
        self.current += timedelta(**kwargs)


class TestContentKey(unittest.TestCase):
    """Tests for analysis cache keys."""

    def test_whitespace_is_ignored(self):
        """Test that surrounding whitespace does not change the key."""
        self.assertEqual(content_key("heatmap", "  1. e4 e5\n"), content_key("heatmap", "1. e4 e5"))

    def test_content_type_is_part_of_key(self):
        """Test that the same content under two types gets two keys."""
        self.assertNotEqual(content_key("heatmap", "x"), content_key("content_analysis", "x"))


class TestAnalysisCache(unittest.TestCase):
    """Tests for the SQLite analysis cache."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "cache" / "analysis.db"
        self.clock = SteppingClock()

    def tearDown(self):
        self._tmp.cleanup()

    def make_cache(self, max_entries=100):
        return AnalysisCache(self.db_path, max_entries=max_entries, clock=self.clock)

    def test_roundtrip(self):
        """Test storing and reading back a payload."""
        cache = self.make_cache()
        payload = {"moves": [], "overallArc": "A thoughtful game"}

        self.assertTrue(cache.put("heatmap", "1. e4 e5", payload))
        self.assertEqual(cache.get("heatmap", " 1. e4 e5 \n"), payload)
        self.assertIsNone(cache.get("content_analysis", "1. e4 e5"))

    def test_miss(self):
        """Test that an unknown entry reads as None."""
        self.assertIsNone(self.make_cache().get("heatmap", "nothing"))

    def test_replace_existing(self):
        """Test that a second put overwrites the stored payload."""
        cache = self.make_cache()
        cache.put("heatmap", "pgn", {"v": 1})
        cache.put("heatmap", "pgn", {"v": 2})

        self.assertEqual(cache.get("heatmap", "pgn"), {"v": 2})
        self.assertEqual(cache.stats()["total_entries"], 1)

    def test_least_recently_accessed_evicted(self):
        """Test that the least recently read entry is dropped past the row limit."""
        cache = self.make_cache(max_entries=2)
        cache.put("heatmap", "a", {"n": "a"})
        cache.put("heatmap", "b", {"n": "b"})
        cache.get("heatmap", "a")
        cache.put("heatmap", "c", {"n": "c"})

        self.assertIsNotNone(cache.get("heatmap", "a"))
        self.assertIsNone(cache.get("heatmap", "b"))
        self.assertIsNotNone(cache.get("heatmap", "c"))

    def test_clear_expired(self):
        """Test purging entries not accessed within the age limit."""
        cache = self.make_cache()
        cache.put("heatmap", "old", {})
        self.clock.skip(days=40)
        cache.put("heatmap", "new", {})

        self.assertEqual(cache.clear_expired(30), 1)
        self.assertIsNone(cache.get("heatmap", "old"))
        self.assertIsNotNone(cache.get("heatmap", "new"))

    def test_clear_by_type(self):
        """Test clearing one content type only."""
        cache = self.make_cache()
        cache.put("heatmap", "a", {})
        cache.put("content_analysis", "a", {})

        self.assertEqual(cache.clear("heatmap"), 1)
        self.assertEqual(cache.stats()["total_entries"], 1)
        self.assertEqual(cache.clear(), 1)

    def test_stats_counts_hits(self):
        """Test entry and hit counts in stats."""
        cache = self.make_cache()
        cache.put("heatmap", "a", {})
        cache.get("heatmap", "a")
        cache.get("heatmap", "a")

        stats = cache.stats()
        self.assertEqual(stats["total_entries"], 1)
        self.assertEqual(stats["total_hits"], 2)
        self.assertEqual(stats["cache_path"], str(self.db_path))

    def test_unserializable_payload_is_rejected(self):
        """Test that a payload json cannot encode is not stored."""
        cache = self.make_cache()
        self.assertFalse(cache.put("heatmap", "a", {"bad": object()}))
        self.assertIsNone(cache.get("heatmap", "a"))

    def test_unusable_location_fails_softly(self):
        """Test that an unwritable database path misses instead of raising."""
        blocker = Path(self._tmp.name) / "blocker"
        blocker.write_bytes(b"")
        cache = AnalysisCache(blocker / "analysis.db", clock=self.clock)

        self.assertFalse(cache.put("heatmap", "a", {}))
        self.assertIsNone(cache.get("heatmap", "a"))
        self.assertEqual(cache.clear_expired(30), 0)
        self.assertEqual(cache.clear(), 0)
        self.assertIn("error", cache.stats())


if __name__ == "__main__":
    unittest.main()
