"""Tests for the on-disk evidence cache."""

import os
import time

import pytest

from paper_insight_pipeline.utils.evidence_cache import EvidenceCache


@pytest.fixture
def cache(tmp_path):
    return EvidenceCache(cache_dir=tmp_path / "papers", ttl_seconds=3600)


def test_set_then_get_ignores_version_suffix(cache):
    assert cache.set("2403.01460v2", "\\section{Introduction} text")
    assert cache.get("2403.01460") == "\\section{Introduction} text"
    assert cache.get("arxiv:2403.01460v5") == "\\section{Introduction} text"
    assert (cache.cache_dir / "2403.01460.txt").exists()


def test_old_style_ids_get_safe_file_names(cache):
    cache.set("cs/0112017v1", "old paper")
    assert (cache.cache_dir / "cs_0112017.txt").exists()
    assert cache.get("cs/0112017") == "old paper"


def test_miss_returns_none(cache):
    assert cache.get("2401.00001") is None
    assert not cache.has("2401.00001")


def test_expired_entry_is_removed_on_read(cache):
    cache.set("2403.01460", "stale")
    path = cache.cache_dir / "2403.01460.txt"
    two_hours_ago = time.time() - 7200
    os.utime(path, (two_hours_ago, two_hours_ago))

    assert not cache.has("2403.01460")
    assert cache.get("2403.01460") is None
    assert not path.exists()


def test_empty_text_and_id_not_cached(cache):
    assert not cache.set("2403.01460", "")
    assert not cache.set("", "text")
    assert cache.get_stats()["count"] == 0


def test_lone_surrogates_sanitized(cache):
    cache.set("2403.01460", "bad \ud800 char")
    assert cache.get("2403.01460") == "bad   char"


def test_delete_clear_and_stats(cache):
    cache.set("2403.00001", "a" * 10)
    cache.set("2403.00002", "b" * 20)

    stats = cache.get_stats()
    assert stats["count"] == 2
    assert stats["total_size_bytes"] == 30
    assert stats["cache_directory"] == str(cache.cache_dir)

    assert cache.delete("2403.00001")
    assert not cache.delete("2403.00001")
    assert cache.clear_all() == 1
    assert cache.get_stats()["count"] == 0
