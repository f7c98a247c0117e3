"""
Analysis ledger: upgrade-only bookkeeping on top of the paper store.

A paper's stored ``analysis_type`` never moves down. Lower-depth runs on a
paper that already has a deeper analysis only refresh descriptive metadata and
merge tags; equal or deeper runs replace the analysis fields.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from paper_insight_pipeline.config import DEEP_ANALYSIS_THRESHOLD
from paper_insight_pipeline.models import (
    AnalysisDepth,
    FilterVerdict,
    OrchestratorOutcome,
    PaperMetadata,
    PaperRecord,
)
from paper_insight_pipeline.services.paper_store import PaperStore


def should_process(
    record: Optional[PaperRecord],
    requested: Union[AnalysisDepth, str],
    force: bool = False,
) -> bool:
    """
    Whether a paper needs work at the requested depth.

    - unknown paper, ``none`` or ``basic``: any depth
    - ``standard``: only a ``full`` request
    - ``full``: never
    ``force`` overrides all of the above.
    """
    if force or record is None:
        return True
    requested = AnalysisDepth.parse(requested)
    current = record.depth
    if current <= AnalysisDepth.BASIC:
        return True
    if current == AnalysisDepth.STANDARD:
        return requested == AnalysisDepth.FULL
    return False


def _record_score(record: PaperRecord) -> int:
    if record.score is not None:
        return record.score
    return record.filter_score or 0


def select_for_upgrade(
    records: Iterable[PaperRecord],
    requested: Union[AnalysisDepth, str],
    threshold: int = DEEP_ANALYSIS_THRESHOLD,
) -> List[PaperRecord]:
    """
    Pick stored papers worth re-analyzing at ``requested`` depth.

    basic: only unanalyzed papers. standard: unanalyzed, or basic with a score
    at or above ``threshold``. full: unanalyzed, or anything below full with a
    score at or above ``threshold``.
    """
    requested = AnalysisDepth.parse(requested)
    selected = []
    for record in records:
        current = record.depth
        if current == AnalysisDepth.NONE:
            selected.append(record)
        elif requested == AnalysisDepth.STANDARD:
            if current == AnalysisDepth.BASIC and _record_score(record) >= threshold:
                selected.append(record)
        elif requested == AnalysisDepth.FULL:
            if current < AnalysisDepth.FULL and _record_score(record) >= threshold:
                selected.append(record)
    return selected


def _metadata_fields(metadata: PaperMetadata) -> Dict[str, Any]:
    return {
        "title": metadata.title,
        "summary": metadata.summary,
        "authors": list(metadata.authors),
        "categories": list(metadata.categories),
        "published_date": metadata.published,
        "arxiv_url": metadata.arxiv_url,
        "pdf_url": metadata.pdf_url,
        "version": metadata.version,
    }


def _analysis_fields(outcome: OrchestratorOutcome) -> Dict[str, Any]:
    """Flatten an outcome into record fields. None values are left out."""
    result = outcome.result
    fields: Dict[str, Any] = {
        "tags": list(result.tags),
        "confidence": result.confidence,
        "score": result.score,
        "reasoning": result.reasoning,
        "score_reason": result.score_reason,
        "analysis_type": outcome.depth.value,
    }
    detail = result.detail
    if detail is not None:
        fields.update(
            {
                "ai_summary": detail.ai_summary or None,
                "key_insights": list(detail.key_insights),
                "engineering_notes": detail.engineering_notes or None,
                "code_links": list(detail.code_links),
            }
        )
        if detail.key_formulas is not None:
            fields["key_formulas"] = [
                {"latex": f.latex, "name": f.name, "description": f.description}
                for f in detail.key_formulas
            ]
        if detail.algorithms is not None:
            fields["algorithms"] = [
                {"name": a.name, "steps": list(a.steps), "complexity": a.complexity}
                for a in detail.algorithms
            ]
        if detail.flow_diagram is not None:
            fields["flow_diagram"] = {
                "format": detail.flow_diagram.format,
                "content": detail.flow_diagram.content,
            }
    return {k: v for k, v in fields.items() if v is not None}


class AnalysisLedger:
    """Persist orchestrator outcomes with upgrade-only semantics."""

    def __init__(self, store: Optional[PaperStore] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.store = store or PaperStore(logger=self.logger)

    def get(self, arxiv_id: str) -> Optional[PaperRecord]:
        return self.store.get_by_arxiv_id(arxiv_id)

    def needs_processing(
        self, arxiv_id: str, requested: Union[AnalysisDepth, str], force: bool = False
    ) -> bool:
        return should_process(self.get(arxiv_id), requested, force)

    def record(
        self,
        metadata: PaperMetadata,
        outcome: OrchestratorOutcome,
        verdict: Optional[FilterVerdict] = None,
    ) -> PaperRecord:
        """
        Store an outcome for a paper.

        Args:
            metadata: Fresh metadata; its descriptive fields always overwrite
            outcome: Orchestrator result and the depth actually achieved
            verdict: Prefilter verdict, stored as filter_score/filter_reason

        Returns:
            The stored record after the write
        """
        existing = self.get(metadata.arxiv_id)
        fields = _metadata_fields(metadata)
        if verdict is not None and verdict.passed:
            fields["filter_score"] = verdict.score
            fields["filter_reason"] = verdict.reason

        analysis = _analysis_fields(outcome)
        has_summary = bool(analysis.get("ai_summary"))

        if existing is None:
            fields.update(analysis)
            fields["arxiv_id"] = metadata.arxiv_id
            fields["is_deep_analyzed"] = has_summary
            record = self.store.insert(fields)
            self.logger.info(f"Stored {metadata.arxiv_id} at depth={outcome.depth}")
            return record

        if outcome.depth < existing.depth:
            # Keep the deeper analysis; only the tag set may grow
            fields["tags"] = analysis.get("tags", [])
            self.logger.info(
                f"{metadata.arxiv_id}: keeping stored depth={existing.depth} "
                f"over new depth={outcome.depth}"
            )
        else:
            fields.update(analysis)
            fields["is_deep_analyzed"] = existing.is_deep_analyzed or has_summary
            if outcome.depth > existing.depth:
                self.logger.info(
                    f"{metadata.arxiv_id}: upgraded depth {existing.depth} -> {outcome.depth}"
                )

        updated = self.store.update(existing.id, fields)
        return updated if updated is not None else existing
