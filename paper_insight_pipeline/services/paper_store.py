"""
Local JSON document store for analyzed papers.

All papers live in one JSON file (``LOCAL_DB_PATH``, default
``local/data.json``) shaped as::

    {
        "papers": {"<id>": {...PaperRecord fields...}},
        "last_updated": "2026-01-01T00:00:00+00:00"
    }

Writes go to a temporary file first and are swapped in with ``os.replace`` so
an interrupted run never leaves a half-written store behind.
"""

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from paper_insight_pipeline.config import LOCAL_DB_PATH
from paper_insight_pipeline.models import AnalysisDepth, PaperPage, PaperQuery, PaperRecord

# Array fields that are merged (union, order kept) instead of replaced on update
MERGED_ARRAY_FIELDS = ("tags", "code_links")

# Fields an update may never change
IMMUTABLE_FIELDS = ("id", "arxiv_id", "created_at")


class LedgerError(Exception):
    """The paper store could not be read or written."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _merge_unique(existing: List[Any], incoming: List[Any]) -> List[Any]:
    merged = list(existing or [])
    for item in incoming or []:
        if item not in merged:
            merged.append(item)
    return merged


class PaperStore:
    """File-backed store with get/insert/partial-update/list operations."""

    def __init__(self, db_path: Optional[Path] = None, logger: Optional[logging.Logger] = None):
        self.db_path = Path(db_path or LOCAL_DB_PATH)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()

    # ----------------------------- file I/O -----------------------------

    def _read(self) -> Dict[str, Any]:
        if not self.db_path.exists():
            return {"papers": {}, "last_updated": None}
        try:
            data = json.loads(self.db_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerError(f"Failed to read paper store {self.db_path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("papers"), dict):
            raise LedgerError(f"Paper store {self.db_path} has an unexpected layout")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        data["last_updated"] = _now_iso()
        tmp_path = self.db_path.with_suffix(self.db_path.suffix + ".tmp")
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.db_path)
        except OSError as e:
            raise LedgerError(f"Failed to write paper store {self.db_path}: {e}") from e

    # ----------------------------- lookups -----------------------------

    def get_by_id(self, paper_id: str) -> Optional[PaperRecord]:
        raw = self._read()["papers"].get(paper_id)
        return PaperRecord.from_dict(raw) if raw else None

    def get_by_arxiv_id(self, arxiv_id: str) -> Optional[PaperRecord]:
        for raw in self._read()["papers"].values():
            if raw.get("arxiv_id") == arxiv_id:
                return PaperRecord.from_dict(raw)
        return None

    def all_papers(self) -> List[PaperRecord]:
        return [PaperRecord.from_dict(raw) for raw in self._read()["papers"].values()]

    # ----------------------------- mutations -----------------------------

    def insert(self, fields: Dict[str, Any]) -> PaperRecord:
        """
        Insert a new paper.

        ``id``, ``created_at`` and ``updated_at`` are generated. Raises
        LedgerError when a paper with the same arxiv_id already exists.
        """
        with self._lock:
            data = self._read()
            arxiv_id = fields.get("arxiv_id")
            if any(p.get("arxiv_id") == arxiv_id for p in data["papers"].values()):
                raise LedgerError(f"Paper {arxiv_id} already exists")

            now = _now_iso()
            payload = dict(fields)
            payload.update({"id": str(uuid.uuid4()), "created_at": now, "updated_at": now})
            record = PaperRecord.from_dict(payload)
            data["papers"][record.id] = record.to_dict()
            self._write(data)

        self.logger.debug(f"Inserted paper {record.arxiv_id} as {record.id}")
        return record

    def update(self, paper_id: str, updates: Dict[str, Any]) -> Optional[PaperRecord]:
        """
        Partially update a paper.

        Array fields in MERGED_ARRAY_FIELDS are unioned with the stored values;
        every other supplied field replaces the stored value.

        Returns:
            Updated record, or None if ``paper_id`` is unknown
        """
        with self._lock:
            data = self._read()
            current = data["papers"].get(paper_id)
            if current is None:
                return None

            merged = dict(current)
            for key, value in updates.items():
                if key in IMMUTABLE_FIELDS:
                    continue
                if key in MERGED_ARRAY_FIELDS and isinstance(value, list):
                    merged[key] = _merge_unique(current.get(key) or [], value)
                else:
                    merged[key] = value
            merged["updated_at"] = _now_iso()

            record = PaperRecord.from_dict(merged)
            data["papers"][paper_id] = record.to_dict()
            self._write(data)
        return record

    def clear_all(self) -> int:
        """Delete every paper; returns how many were removed."""
        with self._lock:
            data = self._read()
            count = len(data["papers"])
            data["papers"] = {}
            self._write(data)
        self.logger.info(f"Cleared {count} papers from {self.db_path}")
        return count

    # ----------------------------- listing -----------------------------

    def list_papers(self, query: Optional[PaperQuery] = None) -> PaperPage:
        """Filter, sort and paginate stored papers."""
        query = query or PaperQuery()
        papers = self.all_papers()

        if query.tag:
            papers = [p for p in papers if query.tag in p.tags]
        if query.min_score is not None:
            papers = [p for p in papers if (self._score(p) or 0) >= query.min_score]
        if query.deep_analyzed_only:
            papers = [p for p in papers if p.is_deep_analyzed]
        if query.date_from:
            papers = [p for p in papers if (p.published_date or "")[:10] >= query.date_from]
        if query.date_to:
            papers = [p for p in papers if (p.published_date or "")[:10] <= query.date_to]
        if query.search:
            needle = query.search.lower()
            papers = [
                p for p in papers
                if needle in (p.title or "").lower()
                or any(needle in a.lower() for a in p.authors)
                or needle in (p.ai_summary or "").lower()
            ]

        if query.sort == "score":
            papers.sort(key=lambda p: (self._score(p) or 0, p.published_date or ""), reverse=True)
        else:
            papers.sort(key=lambda p: (p.published_date or "", self._score(p) or 0), reverse=True)

        total = len(papers)
        offset = max(query.offset, 0)
        limit = query.limit if query.limit and query.limit > 0 else 20
        return PaperPage(
            papers=papers[offset : offset + limit],
            total=total,
            has_more=offset + limit < total,
        )

    def get_stats(self) -> Dict[str, Any]:
        papers = self.all_papers()
        by_tag: Dict[str, int] = {}
        by_depth: Dict[str, int] = {d.value: 0 for d in AnalysisDepth}
        for p in papers:
            for tag in p.tags:
                by_tag[tag] = by_tag.get(tag, 0) + 1
            by_depth[p.depth.value] += 1
        return {
            "total": len(papers),
            "deep_analyzed": sum(1 for p in papers if p.is_deep_analyzed),
            "by_tag": by_tag,
            "by_depth": by_depth,
        }

    @staticmethod
    def _score(paper: PaperRecord) -> Optional[int]:
        return paper.score if paper.score is not None else paper.filter_score
