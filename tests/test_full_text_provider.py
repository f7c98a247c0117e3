"""Tests for depth-based evidence acquisition."""

from unittest.mock import MagicMock

import pytest

from paper_insight_pipeline.phases.full_text_provider import FullTextProvider
from paper_insight_pipeline.services.source_fetcher import SourceUnavailableError
from paper_insight_pipeline.utils.evidence_cache import EvidenceCache


@pytest.fixture
def cache(tmp_path):
    return EvidenceCache(cache_dir=tmp_path / "cache")


def test_basic_depth_never_touches_network(cache):
    fetcher = MagicMock()
    result = FullTextProvider(cache, fetcher).get_full_text_by_depth("2403.01460", "basic")
    assert result.source == "abstract"
    assert not result.used_full_text
    fetcher.fetch.assert_not_called()


def test_miss_downloads_and_caches_raw_source(cache, sample_latex):
    fetcher = MagicMock()
    fetcher.fetch.return_value = sample_latex
    provider = FullTextProvider(cache, fetcher)

    first = provider.get_full_text_by_depth("2403.01460v2", "standard")
    assert first.source == "latex"
    assert first.used_full_text
    assert first.length == len(first.content)
    assert "Introduction" in first.content
    # The whole document is cached, not the standard-depth slice
    assert cache.get("2403.01460") == sample_latex

    second = provider.get_full_text_by_depth("2403.01460", "full")
    assert second.source == "cache"
    assert "gold reward" in second.content
    fetcher.fetch.assert_called_once()


def test_unavailable_source_reported_not_raised(cache):
    fetcher = MagicMock()
    fetcher.fetch.side_effect = SourceUnavailableError("LaTeX source not found for 2403.01460")
    result = FullTextProvider(cache, fetcher).get_full_text_by_depth("2403.01460", "full")
    assert result.source == "abstract"
    assert result.content is None
    assert result.error == "LaTeX source not found for 2403.01460"


def test_empty_source_is_unavailable(cache):
    fetcher = MagicMock()
    fetcher.fetch.return_value = "   "
    result = FullTextProvider(cache, fetcher).get_full_text_by_depth("2403.01460", "standard")
    assert not result.used_full_text
    assert cache.get("2403.01460") is None
