"""
Speech Cache

Content-addressed disk store for synthesized narration. One ``<key>.mp3``
file per entry under the cache directory, where the key is the SHA-256 of
the canonical (text, voice mode, tone) triple.

Entries are immutable once written. The store is bounded: after every
write the least recently used files (by mtime, refreshed on hit) are
evicted until the entry and byte limits hold.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import CacheIOError

logger = logging.getLogger(__name__)

AUDIO_SUFFIX = ".mp3"
DEFAULT_MAX_ENTRIES = 500


class SpeechCache:
    """
    Bounded on-disk audio cache.

    Args:
        cache_dir: Directory holding the audio files; created on demand.
        max_entries: Entry limit. ``None`` or 0 disables the limit.
        max_bytes: Total size limit. ``None`` or 0 disables the limit.
        clock: Seconds-since-epoch source used to stamp recency.

    I/O failures surface as CacheIOError; callers decide whether they are
    fatal (the synthesizer treats them as misses).
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        max_bytes: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.max_entries = max_entries or None
        self.max_bytes = max_bytes or None
        self._clock = clock

    def _path(self, key: str) -> Path:
        if not key or os.sep in key or "/" in key or key.startswith("."):
            raise CacheIOError(f"Invalid cache key: {key!r}")
        return self.cache_dir / f"{key}{AUDIO_SUFFIX}"

    def _touch(self, path: Path) -> None:
        now = self._clock()
        os.utime(path, (now, now))

    def get(self, key: str) -> Optional[bytes]:
        """Stored audio for ``key``, or None on a miss. A hit refreshes recency."""
        path = self._path(key)
        try:
            audio = path.read_bytes()
        except FileNotFoundError:
            logger.debug("Speech cache miss: %s", key)
            return None
        except OSError as e:
            raise CacheIOError(f"Cannot read cache entry {key}: {e}") from e

        try:
            self._touch(path)
        except OSError:
            # Entry evicted between read and touch; the bytes are still good
            pass
        logger.debug("Speech cache hit: %s", key)
        return audio

    def contains(self, key: str) -> bool:
        return self._path(key).is_file()

    def put(self, key: str, audio: bytes) -> None:
        """Write ``audio`` under ``key`` atomically, then enforce the bounds."""
        path = self._path(key)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.cache_dir), prefix=".tmp-", suffix=AUDIO_SUFFIX)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(audio)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            self._touch(path)
        except OSError as e:
            raise CacheIOError(f"Cannot write cache entry {key}: {e}") from e

        logger.debug("Speech cached: %s (%d bytes)", key, len(audio))
        self._evict(keep=path)

    def _evict(self, keep: Optional[Path] = None) -> int:
        """Drop least recently used entries until within bounds. Returns count removed."""
        if self.max_entries is None and self.max_bytes is None:
            return 0

        try:
            files = [(p, p.stat()) for p in self.cache_dir.glob(f"*{AUDIO_SUFFIX}") if not p.name.startswith(".")]
        except OSError as e:
            logger.warning("Speech cache scan failed: %s", e)
            return 0

        # oldest first; name breaks ties so eviction order is stable
        files.sort(key=lambda item: (item[1].st_mtime, item[0].name))
        count = len(files)
        total = sum(st.st_size for _, st in files)

        removed = 0
        for path, st in files:
            over_entries = self.max_entries is not None and count > self.max_entries
            over_bytes = self.max_bytes is not None and total > self.max_bytes
            if not (over_entries or over_bytes):
                break
            if keep is not None and path == keep:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not evict %s: %s", path.name, e)
                continue
            count -= 1
            total -= st.st_size
            removed += 1

        if removed:
            logger.debug("Evicted %d speech cache entries", removed)
        return removed

    def stats(self) -> dict:
        try:
            files = [p for p in self.cache_dir.glob(f"*{AUDIO_SUFFIX}") if not p.name.startswith(".")]
            size = sum(p.stat().st_size for p in files)
        except OSError as e:
            return {"error": str(e)}
        return {
            "entries": len(files),
            "size_bytes": size,
            "cache_dir": str(self.cache_dir),
            "max_entries": self.max_entries,
            "max_bytes": self.max_bytes,
        }

    def clear(self) -> int:
        """Remove every entry. Returns the number of files deleted."""
        if not self.cache_dir.exists():
            return 0
        deleted = 0
        for path in self.cache_dir.glob(f"*{AUDIO_SUFFIX}"):
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                logger.warning("Cache clear error for %s: %s", path.name, e)
        return deleted
