"""Tests for the JSON document paper store."""

import json

import pytest

from paper_insight_pipeline.models import PaperQuery
from paper_insight_pipeline.services.paper_store import LedgerError, PaperStore


@pytest.fixture
def store(tmp_path):
    return PaperStore(tmp_path / "local" / "data.json")


def add(store, arxiv_id, **fields):
    base = {
        "arxiv_id": arxiv_id,
        "title": f"Paper {arxiv_id}",
        "summary": "Abstract",
        "authors": ["Ada Lovelace"],
        "published_date": "2026-10-01T00:00:00Z",
    }
    base.update(fields)
    return store.insert(base)


class TestMutations:

    def test_insert_generates_id_and_timestamps(self, store):
        record = add(store, "2403.00001")
        assert record.id and record.created_at == record.updated_at
        assert store.get_by_id(record.id).arxiv_id == "2403.00001"
        assert store.get_by_arxiv_id("2403.00001").id == record.id
        assert store.get_by_arxiv_id("missing") is None

    def test_file_layout_and_no_temp_file_left(self, store):
        record = add(store, "2403.00001")
        data = json.loads(store.db_path.read_text(encoding="utf-8"))
        assert list(data["papers"]) == [record.id]
        assert data["last_updated"]
        assert not store.db_path.with_suffix(".json.tmp").exists()

    def test_duplicate_arxiv_id_rejected(self, store):
        add(store, "2403.00001")
        with pytest.raises(LedgerError):
            add(store, "2403.00001")

    def test_update_merges_arrays_and_replaces_scalars(self, store):
        record = add(store, "2403.00001", tags=["llm"], code_links=["https://github.com/a/b"], score=5)
        updated = store.update(
            record.id,
            {"tags": ["rl", "llm"], "code_links": ["https://github.com/c/d"], "score": 8, "id": "hijack"},
        )
        assert updated.id == record.id
        assert updated.tags == ["llm", "rl"]
        assert updated.code_links == ["https://github.com/a/b", "https://github.com/c/d"]
        assert updated.score == 8
        assert updated.created_at == record.created_at

    def test_update_unknown_paper(self, store):
        assert store.update("nope", {"score": 1}) is None

    def test_clear_all(self, store):
        add(store, "2403.00001")
        add(store, "2403.00002")
        assert store.clear_all() == 2
        assert store.all_papers() == []

    def test_corrupt_file_raises(self, store):
        store.db_path.parent.mkdir(parents=True, exist_ok=True)
        store.db_path.write_text("{not json", encoding="utf-8")
        with pytest.raises(LedgerError):
            store.all_papers()


class TestListPapers:

    @pytest.fixture
    def populated(self, store):
        add(store, "a", tags=["llm"], score=9, published_date="2026-10-03T00:00:00Z",
            is_deep_analyzed=True, ai_summary="Speculative decoding speedup")
        add(store, "b", tags=["rl"], score=4, published_date="2026-10-05T00:00:00Z",
            authors=["Grace Hopper"])
        add(store, "c", tags=["llm", "rl"], filter_score=7, published_date="2026-10-01T00:00:00Z")
        return store

    def test_default_sort_newest_first(self, populated):
        page = populated.list_papers()
        assert [p.arxiv_id for p in page.papers] == ["b", "a", "c"]
        assert page.total == 3
        assert not page.has_more

    def test_sort_by_score_uses_filter_score_fallback(self, populated):
        page = populated.list_papers(PaperQuery(sort="score"))
        assert [p.arxiv_id for p in page.papers] == ["a", "c", "b"]

    def test_filters(self, populated):
        ids = lambda q: [p.arxiv_id for p in populated.list_papers(q).papers]
        assert ids(PaperQuery(tag="rl")) == ["b", "c"]
        assert ids(PaperQuery(min_score=7)) == ["a", "c"]
        assert ids(PaperQuery(deep_analyzed_only=True)) == ["a"]
        assert ids(PaperQuery(date_from="2026-10-02", date_to="2026-10-04")) == ["a"]
        assert ids(PaperQuery(search="hopper")) == ["b"]
        assert ids(PaperQuery(search="SPECULATIVE")) == ["a"]

    def test_pagination(self, populated):
        page = populated.list_papers(PaperQuery(limit=2, offset=0))
        assert [p.arxiv_id for p in page.papers] == ["b", "a"]
        assert page.has_more
        page = populated.list_papers(PaperQuery(limit=2, offset=2))
        assert [p.arxiv_id for p in page.papers] == ["c"]
        assert not page.has_more

    def test_stats(self, populated):
        stats = populated.get_stats()
        assert stats["total"] == 3
        assert stats["by_tag"] == {"llm": 2, "rl": 2}
        assert stats["by_depth"]["none"] == 3
        assert stats["deep_analyzed"] == 1
