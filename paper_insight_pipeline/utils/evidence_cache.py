"""
Evidence Cache Module

Caches the flattened LaTeX source of papers so repeated analysis runs (and
depth upgrades) do not download the same archive twice.

Key Features:
- One plain-text file per normalized arXiv id
- Time-to-live expiry based on file modification time (default 7 days)
- Thread-safe writes
- Independent of paper lifecycle: clearing the ledger never touches the cache
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from paper_insight_pipeline.config import CACHE_TTL_SECONDS, PAPER_CACHE_PATH
from paper_insight_pipeline.utils.paper_id import normalize_paper_id, safe_file_stem
from paper_insight_pipeline.utils.text_cleaning import sanitize_unicode


class EvidenceCache:
    """
    Paper source text caching manager.

    Cache Structure:
        cache_dir/
        └─ <normalized_id>.txt      (flattened LaTeX source)

    An entry is considered expired once ``now - mtime > ttl_seconds``; expired
    entries are removed lazily on read.
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize evidence cache.

        Args:
            cache_dir: Directory for cached texts (defaults to PAPER_CACHE_PATH)
            ttl_seconds: Entry lifetime in seconds
            logger: Logger instance (if None, creates default logger)
        """
        self.cache_dir = Path(cache_dir or PAPER_CACHE_PATH)
        self.ttl_seconds = ttl_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._write_lock = threading.Lock()

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f"EvidenceCache initialized at: {self.cache_dir}")

    def get(self, paper_id: str) -> Optional[str]:
        """
        Retrieve cached source text for a paper.

        Args:
            paper_id: arXiv id (prefix and version suffix are ignored)

        Returns:
            Cached text, or None if missing or expired
        """
        if not normalize_paper_id(paper_id):
            return None

        cache_file = self._get_cache_path(paper_id)
        if not cache_file.exists():
            return None

        if self._is_expired(cache_file):
            self.logger.debug(f"Cache expired for {paper_id}")
            self._remove(cache_file)
            return None

        try:
            text = cache_file.read_text(encoding="utf-8")
        except OSError as e:
            self.logger.error(f"Failed to read cache for {paper_id}: {e}")
            return None

        if not text:
            self.logger.warning(f"Cache file exists but contains no text: {paper_id}")
            return None
        self.logger.debug(f"Cache hit for {paper_id} ({len(text)} chars)")
        return text

    def set(self, paper_id: str, text: str) -> bool:
        """
        Cache flattened source text.

        Returns:
            True if caching succeeded, False otherwise
        """
        if not normalize_paper_id(paper_id) or not text:
            self.logger.warning("Cannot cache: missing paper_id or text")
            return False

        cache_file = self._get_cache_path(paper_id)
        try:
            with self._write_lock:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                cache_file.write_text(sanitize_unicode(text), encoding="utf-8")
            self.logger.debug(f"Cached source for {paper_id} ({len(text)} chars)")
            return True
        except OSError as e:
            self.logger.error(f"Failed to cache source for {paper_id}: {e}")
            return False

    def has(self, paper_id: str) -> bool:
        """True when a non-expired entry exists."""
        if not normalize_paper_id(paper_id):
            return False
        cache_file = self._get_cache_path(paper_id)
        return cache_file.exists() and not self._is_expired(cache_file)

    def delete(self, paper_id: str) -> bool:
        """
        Remove a paper's cached text.

        Returns:
            True if removed, False if not found or error
        """
        if not normalize_paper_id(paper_id):
            return False
        cache_file = self._get_cache_path(paper_id)
        if not cache_file.exists():
            return False
        return self._remove(cache_file)

    def clear_all(self) -> int:
        """
        Clear all cached texts.

        Returns:
            Number of cache files removed
        """
        count = 0
        for cache_file in self.cache_dir.glob("*.txt"):
            if self._remove(cache_file):
                count += 1
        self.logger.info(f"Cleared {count} cache files")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Statistics dict with:
            - count: Number of cache files (expired ones included until read)
            - total_size_bytes: Total size on disk
            - cache_size_mb: Same, in MB
            - cache_directory: Path to cache directory
        """
        cache_files = list(self.cache_dir.glob("*.txt"))
        total_size = 0
        for cache_file in cache_files:
            try:
                total_size += cache_file.stat().st_size
            except OSError:
                continue
        return {
            "count": len(cache_files),
            "total_size_bytes": total_size,
            "cache_size_mb": round(total_size / (1024 * 1024), 2),
            "cache_directory": str(self.cache_dir),
        }

    def _is_expired(self, cache_file: Path) -> bool:
        try:
            age = time.time() - cache_file.stat().st_mtime
        except OSError:
            return True
        return age > self.ttl_seconds

    def _remove(self, cache_file: Path) -> bool:
        try:
            cache_file.unlink()
            self.logger.debug(f"Removed cache file {cache_file.name}")
            return True
        except OSError as e:
            self.logger.warning(f"Failed to remove {cache_file}: {e}")
            return False

    def _get_cache_path(self, paper_id: str) -> Path:
        # arxiv:2403.01460v2 -> 2403.01460.txt ; cs/0112017 -> cs_0112017.txt
        return self.cache_dir / f"{safe_file_stem(paper_id)}.txt"
